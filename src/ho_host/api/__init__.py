"""HTTP surface for the hosting orchestrator."""

from .app import create_app

__all__ = ["create_app"]
