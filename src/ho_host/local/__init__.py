"""Local command execution used by the build steps."""

from .session import LocalSession, LocalCommandResult

__all__ = ["LocalSession", "LocalCommandResult"]
