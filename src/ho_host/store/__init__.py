"""Project metadata persistence."""

from .models import Project, ProjectKind, ProjectStatus
from .projects import ProjectStore

__all__ = ["Project", "ProjectKind", "ProjectStatus", "ProjectStore"]
