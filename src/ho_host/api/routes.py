"""
Hosting API endpoints.

- POST   /deploy/dynamic          - Upload and deploy a frontend+backend project
- POST   /stop/{project_name}     - Stop a running backend
- POST   /restart/{project_name}  - Restart a committed project on its port
- GET    /projects                - Caller's committed projects
- GET    /processes               - Caller's running backends
- DELETE /projects/{project_name} - Tear a project down completely
- GET    /system/info             - Port usage, process count, uptime
- GET    /logs                    - Recent audit lines for the caller
- GET    /health                  - Liveness check (no auth)

Endpoints are plain ``def`` so deployments run on the worker thread pool
and may block on install, build and readiness waits.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile

from .. import __version__
from ..archive import UploadedArchive
from ..orchestrator import DeploymentOrchestrator, DeployRequest
from ..utils.logging import read_recent_logs
from .auth import Identity, require_identity
from .schemas import (
    DeployResponse,
    HealthResponse,
    LogsResponse,
    ProcessEntry,
    ProcessListResponse,
    ProjectActionResponse,
    ProjectListResponse,
    ProjectSummary,
    SystemInfoResponse,
)

router = APIRouter(tags=["hosting"])


def get_orchestrator(request: Request) -> DeploymentOrchestrator:
    return request.app.state.orchestrator


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(version=__version__)


@router.post("/deploy/dynamic", response_model=DeployResponse)
def deploy_dynamic(
    zip_file: Optional[UploadFile] = File(None, alias="zipFile"),
    project_name: Optional[str] = Form(None, alias="projectName"),
    description: Optional[str] = Form(None),
    identity: Identity = Depends(require_identity),
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> DeployResponse:
    archive = None
    if zip_file is not None:
        archive = UploadedArchive(
            filename=zip_file.filename or "",
            media_type=zip_file.content_type,
            stream=zip_file.file,
            size=zip_file.size,
        )
    result = orchestrator.deploy(
        DeployRequest(
            owner=identity.owner,
            project_name=project_name,
            archive=archive,
            description=description or "",
        )
    )
    payload = result.to_dict()
    return DeployResponse(
        message="Dynamic site deployed successfully",
        project=ProjectSummary(**payload["project"]),
        port=result.port,
        notes=payload["notes"],
        warnings=payload["warnings"],
        stages=payload["stages"],
    )


@router.post("/stop/{project_name}", response_model=ProjectActionResponse)
def stop_project(
    project_name: str,
    identity: Identity = Depends(require_identity),
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> ProjectActionResponse:
    project = orchestrator.stop(identity.owner, project_name)
    return ProjectActionResponse(
        message=f"Project {project_name} stopped",
        project=ProjectSummary(**project.to_summary()) if project is not None else None,
    )


@router.post("/restart/{project_name}", response_model=ProjectActionResponse)
def restart_project(
    project_name: str,
    identity: Identity = Depends(require_identity),
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> ProjectActionResponse:
    project = orchestrator.restart(identity.owner, project_name)
    return ProjectActionResponse(
        message=f"Project {project_name} restarted",
        project=ProjectSummary(**project.to_summary()),
    )


@router.get("/projects", response_model=ProjectListResponse)
def list_projects(
    identity: Identity = Depends(require_identity),
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> ProjectListResponse:
    return ProjectListResponse(
        projects=[ProjectSummary(**project.to_summary()) for project in orchestrator.projects(identity.owner)]
    )


@router.get("/processes", response_model=ProcessListResponse)
def list_processes(
    identity: Identity = Depends(require_identity),
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> ProcessListResponse:
    processes = [
        ProcessEntry(
            projectName=info.project,
            pid=info.pid,
            port=info.port,
            running=info.running,
            state=info.state,
            started_at=info.started_at,
        )
        for info in orchestrator.processes(identity.owner)
    ]
    return ProcessListResponse(processes=processes)


@router.delete("/projects/{project_name}", response_model=ProjectActionResponse)
def delete_project(
    project_name: str,
    identity: Identity = Depends(require_identity),
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> ProjectActionResponse:
    project = orchestrator.delete(identity.owner, project_name)
    return ProjectActionResponse(
        message=f"Project {project_name} deleted",
        project=ProjectSummary(**project.to_summary()),
    )


@router.get("/system/info", response_model=SystemInfoResponse)
def system_info(
    identity: Identity = Depends(require_identity),
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> SystemInfoResponse:
    return SystemInfoResponse(system=orchestrator.system_info())


@router.get("/logs", response_model=LogsResponse)
def recent_logs(
    request: Request,
    limit: int = Query(50, ge=1, le=1000),
    identity: Identity = Depends(require_identity),
) -> LogsResponse:
    log_file = request.app.state.log_file
    if log_file is None:
        return LogsResponse(logs=[])
    return LogsResponse(logs=read_recent_logs(log_file, limit=limit, owner=identity.owner))
