"""Frontend environment configuration."""

from .sync import EnvironmentSynchronizer

__all__ = ["EnvironmentSynchronizer"]
