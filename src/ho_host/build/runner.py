"""Dependency install and frontend build steps."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..errors import DependencyError
from ..local import LocalCommandResult, LocalSession
from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class BuildResult:
    """Outcome of one install/build command."""

    subtree: str
    command: str
    ok: bool
    exit_status: int
    output: str
    duration: float = 0.0

    @classmethod
    def from_command(cls, subtree: str, result: LocalCommandResult) -> "BuildResult":
        return cls(
            subtree=subtree,
            command=result.command,
            ok=result.ok,
            exit_status=result.exit_status,
            output=result.output,
            duration=result.duration,
        )


class BuildRunner:
    """Runs install/build commands to completion inside a subtree."""

    def __init__(
        self,
        install_command: str = "npm install",
        build_command: str = "npm run build",
        timeout: int = 600,
        session_factory: Optional[Callable[[Path], LocalSession]] = None,
    ) -> None:
        self.install_command = install_command
        self.build_command = build_command
        self.timeout = timeout
        self._session_factory = session_factory or (lambda path: LocalSession(working_dir=str(path)))

    def install(self, subtree_path: Path) -> BuildResult:
        """Install dependencies. Raises DependencyError on failure."""
        label = Path(subtree_path).name
        result = self._run(self.install_command, subtree_path, label)
        if not result.ok:
            logger.error(
                "Install failed in %s (exit %d): %s", subtree_path, result.exit_status, result.output[-2000:]
            )
            raise DependencyError(label, result.output, result.exit_status)
        logger.info("Dependencies installed in %s (%.1fs)", subtree_path, result.duration)
        return result

    def build(self, subtree_path: Path) -> BuildResult:
        """Build the subtree. Failure is logged and returned, never raised."""
        label = Path(subtree_path).name
        result = self._run(self.build_command, subtree_path, label)
        if result.ok:
            logger.info("Build finished in %s (%.1fs)", subtree_path, result.duration)
        else:
            # Not every project defines a build script
            logger.warning(
                "Build failed in %s (exit %d), continuing: %s",
                subtree_path,
                result.exit_status,
                result.output[-2000:],
            )
        return result

    def _run(self, command: str, subtree_path: Path, label: str) -> BuildResult:
        logger.info("Running '%s' in %s", command, subtree_path)
        session = self._session_factory(Path(subtree_path))
        return BuildResult.from_command(label, session.run(command, timeout=self.timeout))
