"""package.json manifest parsing."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import ManifestError

DATABASE_PACKAGES = ("mongodb", "mongoose")


@dataclass
class Manifest:
    """The parts of a package.json the orchestrator cares about."""

    path: Path
    name: Optional[str] = None
    dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)

    @property
    def dependency_names(self) -> List[str]:
        return list(self.dependencies)

    @property
    def uses_database(self) -> bool:
        return any(
            package in self.dependencies or package in self.dev_dependencies
            for package in DATABASE_PACKAGES
        )

    @classmethod
    def from_dict(cls, path: Path, data: Dict[str, Any]) -> "Manifest":
        return cls(
            path=path,
            name=data.get("name") if isinstance(data.get("name"), str) else None,
            dependencies=_mapping(data.get("dependencies")),
            dev_dependencies=_mapping(data.get("devDependencies")),
        )


def load_manifest(subtree: Path, subtree_label: str, filename: str = "package.json") -> Manifest:
    """Read and parse the manifest in `subtree`, raising ManifestError on any problem."""
    manifest_path = subtree / filename
    try:
        raw = manifest_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ManifestError(subtree_label, f"{filename} not found") from None
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestError(subtree_label, f"cannot read {filename}: {exc}") from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ManifestError(subtree_label, f"invalid JSON ({exc.msg} at line {exc.lineno})") from exc

    if not isinstance(data, dict):
        raise ManifestError(subtree_label, "top-level value must be an object")
    return Manifest.from_dict(manifest_path, data)


def _mapping(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items()}
