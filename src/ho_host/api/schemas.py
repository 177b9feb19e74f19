"""Response models for the hosting API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ProjectSummary(BaseModel):
    owner: str
    name: str
    kind: str
    status: str
    port: Optional[int] = None
    url: Optional[str] = None
    description: str = ""
    size_mb: int = 0
    frontend_package: Optional[str] = None
    backend_package: Optional[str] = None
    dependencies: Dict[str, List[str]] = Field(default_factory=dict)
    uses_database: bool = False
    created_at: str
    updated_at: str


class DeployResponse(BaseModel):
    success: bool = True
    message: str
    project: ProjectSummary
    port: int
    notes: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    stages: List[str] = Field(default_factory=list)


class ProjectActionResponse(BaseModel):
    success: bool = True
    message: str
    project: Optional[ProjectSummary] = None


class ProjectListResponse(BaseModel):
    success: bool = True
    projects: List[ProjectSummary] = Field(default_factory=list)


class ProcessEntry(BaseModel):
    """One backend process as reported to its owner."""
    projectName: str
    pid: int
    port: int
    running: bool
    state: str
    started_at: str


class ProcessListResponse(BaseModel):
    success: bool = True
    processes: List[ProcessEntry] = Field(default_factory=list)


class LogsResponse(BaseModel):
    success: bool = True
    logs: List[str] = Field(default_factory=list)


class SystemInfoResponse(BaseModel):
    success: bool = True
    system: Dict[str, Any]


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
