"""Exception taxonomy for the hosting orchestrator."""

from __future__ import annotations

from typing import Optional


class HostingError(Exception):
    """Base class for every error surfaced by ho-host."""

    error_code = "hosting_error"
    http_status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"success": False, "message": self.message, "error": self.error_code}


class ValidationError(HostingError):
    """User-correctable request problem (missing file/name, wrong type, too large)."""

    error_code = "validation_error"
    http_status = 400


class ConflictError(HostingError):
    """A project with this name already exists for the caller."""

    error_code = "conflict"
    http_status = 409


class NotFoundError(HostingError):
    error_code = "not_found"
    http_status = 404


class ExtractionError(HostingError):
    """The uploaded archive could not be unpacked."""

    error_code = "extraction_error"
    http_status = 400


class StructureError(HostingError):
    """The archive lacks a frontend and/or backend subtree."""

    error_code = "structure_error"

    def __init__(self, missing: list) -> None:
        self.missing = list(missing)
        names = " and ".join(f'"{name}"' for name in self.missing)
        super().__init__(f"Invalid structure: missing {names} directory")


class ManifestError(HostingError):
    """A subtree's package.json is missing, unreadable or not valid JSON."""

    error_code = "manifest_error"

    def __init__(self, subtree: str, reason: str) -> None:
        self.subtree = subtree
        super().__init__(f"package.json missing or invalid in {subtree}: {reason}")


class EnvFileError(HostingError):
    """The frontend .env file exists but cannot be read as UTF-8 text."""

    error_code = "env_file_error"
    http_status = 400


class PortExhausted(HostingError):
    """No free port is left in the configured range."""

    error_code = "port_exhausted"

    def __init__(self, min_port: int, max_port: int) -> None:
        self.min_port = min_port
        self.max_port = max_port
        super().__init__(f"No available port in range {min_port}-{max_port}")


class DependencyError(HostingError):
    """Dependency installation failed; carries the captured command output."""

    error_code = "dependency_error"

    def __init__(self, subtree: str, output: str, exit_status: int) -> None:
        self.subtree = subtree
        self.output = output
        self.exit_status = exit_status
        super().__init__(
            f"Dependency install failed for {subtree} (exit {exit_status}): {_tail(output)}"
        )


class BuildWarning(HostingError):
    """Non-fatal build failure. Recorded on the deployment, never raised out of it."""

    error_code = "build_warning"

    def __init__(self, subtree: str, output: str, exit_status: int) -> None:
        self.subtree = subtree
        self.output = output
        self.exit_status = exit_status
        super().__init__(f"Build failed for {subtree} (exit {exit_status}): {_tail(output)}")


class StartupError(HostingError):
    """Backend process failed to spawn or never became ready."""

    error_code = "startup_error"

    def __init__(self, message: str, output: str = "", exit_code: Optional[int] = None) -> None:
        self.output = output
        self.exit_code = exit_code
        detail = f"{message}: {_tail(output)}" if output else message
        super().__init__(detail)


class StateTransitionError(HostingError):
    error_code = "invalid_transition"
    http_status = 409


class DeploymentFailed(HostingError):
    """A deployment stage failed; wraps the stage-local cause after rollback."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        self.stage = stage
        self.cause = cause
        self.error_code = getattr(cause, "error_code", "internal_error")
        self.http_status = getattr(cause, "http_status", 500)
        super().__init__(f"{stage}: {cause}")

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["stage"] = self.stage
        return payload


def _tail(output: str, limit: int = 500) -> str:
    text = (output or "").strip()
    if len(text) <= limit:
        return text
    return "..." + text[-limit:]
