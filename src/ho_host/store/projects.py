"""JSON-file backed project metadata store."""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..errors import ConflictError, NotFoundError
from ..utils.logging import get_logger
from .models import Project, ProjectStatus, utc_now_iso

logger = get_logger(__name__)

_Key = Tuple[str, str]


class ProjectStore:
    """Keeps project records keyed by (owner, name).

    The whole table is rewritten on every change. With ``path=None`` the
    store is memory-only.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._projects: Dict[_Key, Project] = {}
        self._load()

    def get(self, owner: str, name: str) -> Optional[Project]:
        with self._lock:
            return self._projects.get((owner, name))

    def require(self, owner: str, name: str) -> Project:
        project = self.get(owner, name)
        if project is None:
            raise NotFoundError("Project not found")
        return project

    def exists(self, owner: str, name: str) -> bool:
        with self._lock:
            return (owner, name) in self._projects

    def insert(self, project: Project) -> Project:
        with self._lock:
            key = (project.owner, project.name)
            if key in self._projects:
                raise ConflictError("A project with this name already exists")
            self._projects[key] = project
            self._save()
        return project

    def update_status(self, owner: str, name: str, status: ProjectStatus) -> Project:
        """Move a project to `status`, enforcing the lifecycle rules."""
        with self._lock:
            current = self._projects.get((owner, name))
            if current is None:
                raise NotFoundError(f"Project {name} not found")
            updated = current.transition(status)
            self._projects[(owner, name)] = updated
            self._save()
        return updated

    def delete(self, owner: str, name: str) -> bool:
        with self._lock:
            removed = self._projects.pop((owner, name), None)
            if removed is not None:
                self._save()
        return removed is not None

    def list_for_owner(self, owner: str) -> List[Project]:
        with self._lock:
            projects = [p for p in self._projects.values() if p.owner == owner]
        return sorted(projects, key=lambda p: p.created_at, reverse=True)

    def all(self) -> List[Project]:
        with self._lock:
            return list(self._projects.values())

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        payload = json.loads(self.path.read_text(encoding="utf-8"))
        for record in payload.get("projects", []):
            project = Project.from_dict(record)
            self._projects[(project.owner, project.name)] = project
        logger.info("Loaded %d project(s) from %s", len(self._projects), self.path)

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "saved_at": utc_now_iso(),
            "projects": [project.to_dict() for project in self._projects.values()],
        }
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)
