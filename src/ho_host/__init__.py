"""ho-host: deploy uploaded frontend+backend projects and supervise their backends."""

__version__ = "0.1.0"
