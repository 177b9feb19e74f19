"""Install and build steps for uploaded projects."""

from .runner import BuildResult, BuildRunner

__all__ = ["BuildResult", "BuildRunner"]
