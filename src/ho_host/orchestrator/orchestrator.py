"""Deployment orchestrator: runs a dynamic deployment end to end."""

from __future__ import annotations

import platform
import re
import shutil
import time
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ..archive import ArchivePipeline, LocatedProject, StructureValidator
from ..build import BuildRunner
from ..config import AppConfig
from ..environment import EnvironmentSynchronizer
from ..errors import (
    BuildWarning,
    ConflictError,
    DeploymentFailed,
    HostingError,
    NotFoundError,
    StartupError,
    ValidationError,
)
from ..paths import HostingPaths
from ..ports import PortAllocator
from ..process import (
    HttpReadinessDetector,
    OutputReadinessDetector,
    ProcessInfo,
    ProcessKey,
    ProcessSupervisor,
    ReadinessDetector,
)
from ..store import Project, ProjectKind, ProjectStatus, ProjectStore
from ..utils.logging import audit, get_logger
from .models import DeploymentResult, DeployRequest, DeployStage

logger = get_logger(__name__)

PROJECT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,99}$")

_STAGE_LABELS = {
    DeployStage.EXTRACTED: "extract archive",
    DeployStage.STRUCTURE_VALIDATED: "validate structure",
    DeployStage.RELOCATED: "relocate subtrees",
    DeployStage.PORT_ALLOCATED: "allocate port",
    DeployStage.ENV_SYNCED: "sync environment",
    DeployStage.DEPS_INSTALLED: "install dependencies",
    DeployStage.BUILD_ATTEMPTED: "build frontend",
    DeployStage.PROCESS_STARTED: "start backend",
    DeployStage.COMMITTED: "commit metadata",
}


class _Rollback:
    """Compensating actions, undone in reverse order of registration."""

    def __init__(self, owner: str, project: str) -> None:
        self.owner = owner
        self.project = project
        self._actions: List[Tuple[str, Callable[[], None]]] = []

    def push(self, description: str, action: Callable[[], None]) -> None:
        self._actions.append((description, action))

    def run(self) -> None:
        while self._actions:
            description, action = self._actions.pop()
            try:
                action()
            except Exception as exc:  # keep unwinding
                logger.error("Rollback step '%s' failed for %s: %s", description, self.project, exc)
            else:
                audit(logger, self.owner, "ROLLBACK", f"Project: {self.project}, {description}")


class DeploymentOrchestrator:
    """
    Drives one deployment through every stage and owns the teardown paths.

    Stages run in order; each one that succeeds registers how to undo it.
    When a stage fails the undo actions run in reverse, so a failed
    deployment leaves no process, lease, or directory behind.
    """

    def __init__(
        self,
        paths: HostingPaths,
        store: ProjectStore,
        ports: PortAllocator,
        archive: ArchivePipeline,
        structure: StructureValidator,
        env_sync: EnvironmentSynchronizer,
        builder: BuildRunner,
        supervisor: ProcessSupervisor,
    ) -> None:
        self.paths = paths
        self.store = store
        self.ports = ports
        self.archive = archive
        self.structure = structure
        self.env_sync = env_sync
        self.builder = builder
        self.supervisor = supervisor
        self.started_at = time.time()

    # ------------------------------------------------------------------
    # Deploy
    # ------------------------------------------------------------------
    def deploy(self, request: DeployRequest) -> DeploymentResult:
        """
        Deploy a dynamic project.

        Raises ValidationError or ConflictError before any side effect, and
        DeploymentFailed (after rollback) when a later stage fails.
        """
        name = self._validate_request(request)
        owner = request.owner
        upload = request.archive

        if self.store.exists(owner, name):
            raise ConflictError("A project with this name already exists")

        project_dir = self.paths.project_dir(name)
        self.paths.dynamic_dir.mkdir(parents=True, exist_ok=True)
        try:
            project_dir.mkdir(exist_ok=False)
        except FileExistsError as exc:
            raise ConflictError("A project with this name already exists") from exc

        audit(logger, owner, "DYNAMIC_DEPLOY_STARTED", f"Project: {name}, File: {upload.filename}")

        stages = [DeployStage.RECEIVED]
        rollback = _Rollback(owner, name)
        rollback.push("remove project directory", lambda: _remove_tree(project_dir))
        current = DeployStage.EXTRACTED
        try:
            with self.archive.stage(upload, project_dir) as scratch:
                stages.append(DeployStage.EXTRACTED)

                current = DeployStage.STRUCTURE_VALIDATED
                located = self.structure.locate(scratch)
                stages.append(current)

                current = DeployStage.RELOCATED
                frontend_dir, backend_dir = self._relocate(located, name)
                stages.append(current)

            current = DeployStage.PORT_ALLOCATED
            port = self.ports.allocate(owner, name)
            rollback.push("release port", lambda: self.ports.release(port, owner, name))
            stages.append(current)

            current = DeployStage.ENV_SYNCED
            env_keys = self.env_sync.sync(frontend_dir, port)
            if env_keys:
                audit(logger, owner, "ENV_FILE_UPDATED", f"Project: {name}, Keys: {', '.join(env_keys)}")
            stages.append(current)

            current = DeployStage.DEPS_INSTALLED
            audit(logger, owner, "INSTALLING_DEPENDENCIES", f"Project: {name}")
            self.builder.install(backend_dir)
            audit(logger, owner, "BACKEND_DEPS_INSTALLED", f"Project: {name}")
            self.builder.install(frontend_dir)
            audit(logger, owner, "FRONTEND_DEPS_INSTALLED", f"Project: {name}")
            stages.append(current)

            current = DeployStage.BUILD_ATTEMPTED
            warnings: List[str] = []
            build = self.builder.build(frontend_dir)
            if build.ok:
                audit(logger, owner, "FRONTEND_BUILT", f"Project: {name}")
            else:
                warning = BuildWarning("frontend", build.output, build.exit_status)
                warnings.append(warning.message)
                audit(logger, owner, "FRONTEND_BUILD_WARNING", f"Project: {name}, exit {build.exit_status}")
            stages.append(current)

            current = DeployStage.PROCESS_STARTED
            key = ProcessKey(owner, name)
            self.supervisor.start(backend_dir, port, key)
            rollback.push("stop backend", lambda: self.supervisor.stop(key))
            stages.append(current)

            current = DeployStage.COMMITTED
            project = self._build_project(request, name, port, located)
            self.store.insert(project)
            stages.append(current)
        except Exception as exc:
            raise self._fail(rollback, owner, name, current, exc) from exc

        audit(
            logger,
            owner,
            "DEPLOYMENT_SUCCESS",
            f"Project: {name}, Port: {port}, MongoDB: {project.uses_database}, Size: {project.size_mb}MB",
        )
        return DeploymentResult(
            project=project,
            port=port,
            notes=self._notes(project, port, env_keys, warnings),
            env_keys_written=env_keys,
            warnings=warnings,
            stages=stages,
        )

    def _validate_request(self, request: DeployRequest) -> str:
        upload = request.archive
        if upload is None or not upload.filename:
            raise ValidationError("ZIP file required")
        name = (request.project_name or "").strip()
        if not name:
            raise ValidationError("Project name required")
        if not PROJECT_NAME_PATTERN.match(name):
            raise ValidationError(
                "Project name may only contain letters, digits, '.', '_' and '-'"
            )
        self.archive.validate(upload.filename, upload.media_type, upload.size)
        return name

    def _relocate(self, located: LocatedProject, name: str) -> Tuple[Path, Path]:
        frontend_dir = self.paths.frontend_dir(name)
        backend_dir = self.paths.backend_dir(name)
        shutil.move(str(located.frontend_path), str(frontend_dir))
        shutil.move(str(located.backend_path), str(backend_dir))
        return frontend_dir, backend_dir

    def _build_project(self, request: DeployRequest, name: str, port: int, located: LocatedProject) -> Project:
        frontend = located.frontend_manifest
        backend = located.backend_manifest
        size = request.archive.size or 0
        return Project(
            owner=request.owner,
            name=name,
            kind=ProjectKind.DYNAMIC,
            status=ProjectStatus.ACTIVE,
            port=port,
            description=request.description or "",
            size_mb=round(size / (1024 * 1024)),
            frontend_package=frontend.name,
            backend_package=backend.name,
            dependencies={
                "frontend": frontend.dependency_names,
                "backend": backend.dependency_names,
            },
            uses_database=backend.uses_database,
        )

    def _notes(self, project: Project, port: int, env_keys: List[str], warnings: List[str]) -> List[str]:
        return [
            "Project deployed successfully",
            "Dependencies installed automatically",
            "Frontend build completed" if not warnings else "Frontend build failed; serving sources as uploaded",
            f"Backend started on port {port}",
            "MongoDB required" if project.uses_database else "No database detected",
            ".env updated with the backend address" if env_keys else "Existing .env configuration kept",
        ]

    def _fail(
        self,
        rollback: _Rollback,
        owner: str,
        name: str,
        stage: DeployStage,
        cause: Exception,
    ) -> DeploymentFailed:
        label = _STAGE_LABELS.get(stage, stage.value)
        if not isinstance(cause, HostingError):
            logger.error("Unexpected error during %s for %s", label, name, exc_info=cause)
        audit(logger, owner, "DEPLOYMENT_FAILED", f"Project: {name}, Stage: {label}, Error: {cause}")
        rollback.run()
        return DeploymentFailed(label, cause)

    # ------------------------------------------------------------------
    # Lifecycle of committed projects
    # ------------------------------------------------------------------
    def stop(self, owner: str, name: str) -> Project:
        if not self.supervisor.stop(ProcessKey(owner, name)):
            raise NotFoundError("Project not found or already stopped")
        project = self.store.get(owner, name)
        if project is not None:
            project = self.store.update_status(owner, name, ProjectStatus.STOPPED)
        audit(logger, owner, "PROJECT_STOPPED", f"Project: {name}")
        return project

    def restart(self, owner: str, name: str) -> Project:
        project = self.store.require(owner, name)
        if project.kind is not ProjectKind.DYNAMIC:
            raise NotFoundError("Project not found")
        if project.port is None:
            raise NotFoundError(f"Project {name} has no assigned port")

        # Re-adopt the committed port in case the lease was lost
        self.ports.reserve(project.port, owner, name)
        key = ProcessKey(owner, name)
        try:
            self.supervisor.start(self.paths.backend_dir(name), project.port, key)
        except StartupError:
            if project.status is ProjectStatus.ACTIVE:
                self.store.update_status(owner, name, ProjectStatus.STOPPED)
            raise

        project = self.store.update_status(owner, name, ProjectStatus.ACTIVE)
        audit(logger, owner, "PROJECT_RESTARTED", f"Project: {name}")
        return project

    def projects(self, owner: str) -> List[Project]:
        """Committed projects of `owner`, newest first."""
        return self.store.list_for_owner(owner)

    def processes(self, owner: str) -> List[ProcessInfo]:
        return self.supervisor.status(owner)

    def delete(self, owner: str, name: str) -> Project:
        """Stop the backend, release the port, remove files and metadata."""
        project = self.store.require(owner, name)

        self.supervisor.stop(ProcessKey(owner, name))
        self.ports.release(project.port, owner, name)
        if project.kind is ProjectKind.DYNAMIC:
            _remove_tree(self.paths.project_dir(name))
        self.store.delete(owner, name)
        audit(logger, owner, "PROJECT_DELETED", f"Project: {name}")
        return project

    def recover(self) -> int:
        """Re-adopt ports of committed projects after a host restart.

        Backends do not survive the restart, so projects recorded as active
        are marked stopped. Returns the number of ports reserved.
        """
        reserved = 0
        for project in self.store.all():
            if project.kind is not ProjectKind.DYNAMIC or project.port is None:
                continue
            if self.ports.reserve(project.port, project.owner, project.name):
                reserved += 1
            else:
                logger.warning(
                    "Port %s of %s/%s is outside the range or already taken",
                    project.port,
                    project.owner,
                    project.name,
                )
            if project.status is ProjectStatus.ACTIVE:
                self.store.update_status(project.owner, project.name, ProjectStatus.STOPPED)
        audit(logger, None, "RECOVERY_COMPLETED", f"Reserved {reserved} port(s)")
        return reserved

    def system_info(self) -> dict:
        return {
            "ports": {
                "used": self.ports.get_used(),
                "range": self.ports.range_label,
            },
            "processes": self.supervisor.count(),
            "projects": len(self.store.all()),
            "uptime": round(time.time() - self.started_at, 1),
            "python_version": platform.python_version(),
            "platform": platform.platform(),
        }

    def shutdown(self) -> int:
        stopped = self.supervisor.stop_all()
        if stopped:
            audit(logger, None, "SHUTDOWN", f"Stopped {stopped} backend(s)")
        return stopped


def _remove_tree(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)


def build_detector(config: AppConfig) -> ReadinessDetector:
    settings = config.process
    if settings.readiness_mode == "http":
        return HttpReadinessDetector(timeout=settings.readiness_timeout)
    return OutputReadinessDetector(
        markers=settings.ready_markers,
        timeout=settings.readiness_timeout,
        grace_period=settings.grace_period,
        assume_ready_after_grace=settings.assume_ready_after_grace,
    )


def build_orchestrator(config: AppConfig, store: Optional[ProjectStore] = None) -> DeploymentOrchestrator:
    """Wire every collaborator from `config`. No state is shared between calls."""
    paths = HostingPaths.from_config(config.paths)
    paths.ensure_dirs()
    return DeploymentOrchestrator(
        paths=paths,
        store=store if store is not None else ProjectStore(paths.data_file),
        ports=PortAllocator(config.ports.min_port, config.ports.max_port),
        archive=ArchivePipeline(
            uploads_dir=paths.uploads_dir,
            max_size_bytes=config.archive.max_size_bytes,
            allowed_media_types=config.archive.allowed_media_types,
        ),
        structure=StructureValidator(
            max_depth=config.archive.search_depth,
            manifest_name=config.archive.manifest_name,
        ),
        env_sync=EnvironmentSynchronizer(
            keys=config.env_sync.keys,
            env_filename=config.env_sync.env_filename,
        ),
        builder=BuildRunner(
            install_command=config.build.install_command,
            build_command=config.build.build_command,
            timeout=config.build.command_timeout,
        ),
        supervisor=ProcessSupervisor(
            start_command=config.process.start_command,
            port_env_var=config.process.port_env_var,
            extra_env=config.process.extra_env,
            detector=build_detector(config),
            stop_timeout=config.process.stop_timeout,
            tail_lines=config.process.output_tail_lines,
        ),
    )
