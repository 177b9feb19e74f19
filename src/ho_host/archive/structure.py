"""Locate the frontend/backend subtrees inside an extracted archive."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import StructureError
from ..utils.logging import get_logger
from .manifest import Manifest, load_manifest

logger = get_logger(__name__)

ROLES = ("frontend", "backend")
SKIPPED_DIRS = {"__macosx", "node_modules"}


@dataclass
class LocatedProject:
    frontend_path: Path
    backend_path: Path
    frontend_manifest: Manifest
    backend_manifest: Manifest


class StructureValidator:
    """Pure inspection of an extracted tree; never modifies it."""

    def __init__(self, max_depth: int = 6, manifest_name: str = "package.json") -> None:
        self.max_depth = max_depth
        self.manifest_name = manifest_name

    def locate(self, scratch_path: Path) -> LocatedProject:
        found = self.find_subtrees(scratch_path)
        missing = [role for role in ROLES if found.get(role) is None]
        if missing:
            raise StructureError(missing)

        frontend = found["frontend"]
        backend = found["backend"]
        logger.info("Located frontend=%s backend=%s", frontend, backend)

        return LocatedProject(
            frontend_path=frontend,
            backend_path=backend,
            frontend_manifest=load_manifest(frontend, "frontend", self.manifest_name),
            backend_manifest=load_manifest(backend, "backend", self.manifest_name),
        )

    def find_subtrees(self, root: Path) -> Dict[str, Optional[Path]]:
        """Depth-first search, sorted by name, first match per role.

        A matched directory is not searched further. Depth 1 means direct
        children of `root`.
        """
        found: Dict[str, Optional[Path]] = {role: None for role in ROLES}
        self._walk(root, 1, found)
        return found

    def _walk(self, directory: Path, depth: int, found: Dict[str, Optional[Path]]) -> None:
        if depth > self.max_depth or all(found.values()):
            return
        for entry in self._child_dirs(directory):
            role = entry.name.lower()
            if role in found:
                if found[role] is None:
                    found[role] = entry
                continue
            if all(found.values()):
                return
            self._walk(entry, depth + 1, found)

    def _child_dirs(self, directory: Path) -> List[Path]:
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as exc:
            logger.warning("Cannot read %s: %s", directory, exc)
            return []
        return [
            entry
            for entry in entries
            if entry.is_dir()
            and not entry.is_symlink()
            and not entry.name.startswith(".")
            and entry.name.lower() not in SKIPPED_DIRS
        ]
