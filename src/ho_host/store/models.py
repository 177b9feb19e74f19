"""Project metadata model."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import StateTransitionError
from ..paths import dynamic_site_url


class ProjectKind(Enum):
    STATIC = "static"
    DYNAMIC = "dynamic"


class ProjectStatus(Enum):
    PENDING = "pending"
    DEPLOYED = "deployed"
    ACTIVE = "active"
    STOPPED = "stopped"
    FAILED = "failed"


# Forward-only lifecycle, except the reversible active <-> stopped cycle
_ALLOWED_TRANSITIONS = {
    ProjectStatus.PENDING: {ProjectStatus.DEPLOYED, ProjectStatus.ACTIVE, ProjectStatus.FAILED},
    ProjectStatus.DEPLOYED: {ProjectStatus.ACTIVE, ProjectStatus.STOPPED, ProjectStatus.FAILED},
    ProjectStatus.ACTIVE: {ProjectStatus.STOPPED, ProjectStatus.FAILED},
    ProjectStatus.STOPPED: {ProjectStatus.ACTIVE, ProjectStatus.FAILED},
    ProjectStatus.FAILED: set(),
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Project:
    """One hosted project, unique per (owner, name)."""

    owner: str
    name: str
    kind: ProjectKind = ProjectKind.DYNAMIC
    status: ProjectStatus = ProjectStatus.PENDING
    port: Optional[int] = None
    description: str = ""
    size_mb: int = 0
    frontend_package: Optional[str] = None
    backend_package: Optional[str] = None
    dependencies: Dict[str, List[str]] = field(default_factory=lambda: {"frontend": [], "backend": []})
    uses_database: bool = False
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    @property
    def url(self) -> Optional[str]:
        return dynamic_site_url(self.port) if self.port is not None else None

    def can_transition(self, status: ProjectStatus) -> bool:
        return status is self.status or status in _ALLOWED_TRANSITIONS[self.status]

    def transition(self, status: ProjectStatus) -> "Project":
        """Return a copy moved to `status`, enforcing the lifecycle."""
        if not self.can_transition(status):
            raise StateTransitionError(
                f"Project {self.name} cannot go from {self.status.value} to {status.value}"
            )
        return replace(self, status=status, updated_at=utc_now_iso())

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["kind"] = self.kind.value
        payload["status"] = self.status.value
        return payload

    def to_summary(self) -> Dict[str, Any]:
        payload = self.to_dict()
        payload["url"] = self.url
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        dependencies = data.get("dependencies") or {}
        return cls(
            owner=data["owner"],
            name=data["name"],
            kind=ProjectKind(data.get("kind", ProjectKind.DYNAMIC.value)),
            status=ProjectStatus(data.get("status", ProjectStatus.PENDING.value)),
            port=data.get("port"),
            description=data.get("description", ""),
            size_mb=data.get("size_mb", 0),
            frontend_package=data.get("frontend_package"),
            backend_package=data.get("backend_package"),
            dependencies={
                "frontend": list(dependencies.get("frontend", [])),
                "backend": list(dependencies.get("backend", [])),
            },
            uses_database=bool(data.get("uses_database", False)),
            created_at=data.get("created_at") or utc_now_iso(),
            updated_at=data.get("updated_at") or utc_now_iso(),
        )
