"""Filesystem layout for ho-host.

Everything lives under the configured base directory:
- hosted-sites/static/    # Static bundles (served elsewhere)
- hosted-sites/dynamic/   # One directory per dynamic project: frontend/ + backend/
- uploads/                # Uploaded archives, removed once staged
- logs/                   # Audit log
- data/projects.json      # Project metadata
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .config import PathsConfig

TEMP_EXTRACT_DIRNAME = "temp_extract"


@dataclass(frozen=True)
class HostingPaths:
    base_dir: Path
    hosted_dir: Path
    static_dir: Path
    dynamic_dir: Path
    uploads_dir: Path
    logs_dir: Path
    data_file: Path

    @classmethod
    def from_config(cls, config: PathsConfig) -> "HostingPaths":
        base = Path(config.base_dir).expanduser().resolve()
        hosted = _under(base, config.hosted_sites_dir)
        return cls(
            base_dir=base,
            hosted_dir=hosted,
            static_dir=hosted / "static",
            dynamic_dir=hosted / "dynamic",
            uploads_dir=_under(base, config.uploads_dir),
            logs_dir=_under(base, config.logs_dir),
            data_file=_under(base, config.data_file),
        )

    def ensure_dirs(self) -> None:
        """Make sure every directory exists."""
        for directory in (
            self.hosted_dir,
            self.static_dir,
            self.dynamic_dir,
            self.uploads_dir,
            self.logs_dir,
            self.data_file.parent,
        ):
            directory.mkdir(parents=True, exist_ok=True)

    def project_dir(self, project_name: str) -> Path:
        return self.dynamic_dir / project_name

    def frontend_dir(self, project_name: str) -> Path:
        return self.project_dir(project_name) / "frontend"

    def backend_dir(self, project_name: str) -> Path:
        return self.project_dir(project_name) / "backend"


def _under(base: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else base / path


def dynamic_site_url(port: int) -> str:
    return f"http://localhost:{port}"
