"""Archive staging and project-structure inspection."""

from .manifest import Manifest, load_manifest
from .pipeline import ArchivePipeline, UploadedArchive
from .structure import LocatedProject, StructureValidator

__all__ = [
    "Manifest",
    "load_manifest",
    "ArchivePipeline",
    "UploadedArchive",
    "LocatedProject",
    "StructureValidator",
]
