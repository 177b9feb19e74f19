"""Data models for the deployment orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..archive import UploadedArchive
from ..store import Project


class DeployStage(Enum):
    """Deployment state machine. FAILED is reachable from every other stage."""

    RECEIVED = "received"
    EXTRACTED = "extracted"
    STRUCTURE_VALIDATED = "structure_validated"
    RELOCATED = "relocated"
    PORT_ALLOCATED = "port_allocated"
    ENV_SYNCED = "env_synced"
    DEPS_INSTALLED = "deps_installed"
    BUILD_ATTEMPTED = "build_attempted"
    PROCESS_STARTED = "process_started"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class DeployRequest:
    """Everything the caller supplies for one dynamic deployment."""

    owner: str
    project_name: Optional[str]
    archive: Optional[UploadedArchive]
    description: str = ""


@dataclass
class DeploymentResult:
    project: Project
    port: int
    notes: List[str] = field(default_factory=list)
    env_keys_written: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    stages: List[DeployStage] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project": self.project.to_summary(),
            "port": self.port,
            "notes": list(self.notes),
            "envKeysWritten": list(self.env_keys_written),
            "warnings": list(self.warnings),
            "stages": [stage.value for stage in self.stages],
        }
