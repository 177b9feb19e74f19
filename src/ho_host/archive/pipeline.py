"""Upload validation and extraction into a per-deployment scratch directory."""

from __future__ import annotations

import shutil
import time
import uuid
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterator, List, Optional

from ..errors import ExtractionError, ValidationError
from ..paths import TEMP_EXTRACT_DIRNAME
from ..utils.logging import get_logger

logger = get_logger(__name__)

_COPY_CHUNK = 1024 * 1024


@dataclass
class UploadedArchive:
    """An uploaded archive as received from the client."""

    filename: str
    media_type: Optional[str]
    stream: BinaryIO
    size: Optional[int] = None


class ArchivePipeline:
    """Validates uploads and materialises them under ``<project_dir>/temp_extract``.

    Neither the uploaded blob nor the scratch directory outlives a call to
    :meth:`stage`, whatever the outcome.
    """

    def __init__(
        self,
        uploads_dir: Path,
        max_size_bytes: int,
        allowed_media_types: List[str],
    ) -> None:
        self.uploads_dir = Path(uploads_dir)
        self.max_size_bytes = max_size_bytes
        self.allowed_media_types = {t.lower() for t in allowed_media_types}

    def validate(self, filename: Optional[str], media_type: Optional[str], size: Optional[int]) -> None:
        """Reject anything that is not a ZIP or is too large. Touches no files."""
        if not filename:
            raise ValidationError("ZIP file required")
        media = (media_type or "").split(";")[0].strip().lower()
        if media not in self.allowed_media_types and not filename.lower().endswith(".zip"):
            raise ValidationError("Only ZIP archives are accepted")
        if size is not None and size > self.max_size_bytes:
            raise ValidationError(
                f"Archive is {size} bytes; the limit is {self.max_size_bytes} bytes"
            )

    @contextmanager
    def stage(self, upload: UploadedArchive, project_dir: Path) -> Iterator[Path]:
        """Write, check and extract `upload`; yield the scratch path.

        The scratch path and the uploaded blob are removed when the block
        exits, on success and on failure alike.
        """
        self.validate(upload.filename, upload.media_type, upload.size)

        blob_path = self._blob_path(upload.filename)
        scratch_path = Path(project_dir) / TEMP_EXTRACT_DIRNAME
        try:
            self._write_blob(upload.stream, blob_path)
            scratch_path.mkdir(parents=True, exist_ok=False)
            self._extract(blob_path, scratch_path)
            yield scratch_path
        finally:
            shutil.rmtree(scratch_path, ignore_errors=True)
            blob_path.unlink(missing_ok=True)
            logger.debug("Removed scratch %s and upload %s", scratch_path, blob_path)

    def _blob_path(self, filename: str) -> Path:
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        safe_name = PurePosixPath(filename.replace("\\", "/")).name or "upload.zip"
        return self.uploads_dir / f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{safe_name}"

    def _write_blob(self, stream: BinaryIO, blob_path: Path) -> None:
        written = 0
        with blob_path.open("wb") as handle:
            while True:
                chunk = stream.read(_COPY_CHUNK)
                if not chunk:
                    break
                written += len(chunk)
                if written > self.max_size_bytes:
                    raise ValidationError(
                        f"Archive exceeds the limit of {self.max_size_bytes} bytes"
                    )
                handle.write(chunk)
        logger.info("Stored upload %s (%d bytes)", blob_path.name, written)

    def _extract(self, blob_path: Path, scratch_path: Path) -> None:
        if not zipfile.is_zipfile(blob_path):
            raise ExtractionError("Uploaded file is not a valid ZIP archive")

        root = scratch_path.resolve()
        try:
            with zipfile.ZipFile(blob_path) as archive:
                for member in archive.infolist():
                    target = (root / member.filename).resolve()
                    if target != root and root not in target.parents:
                        raise ExtractionError(f"Archive entry escapes extraction root: {member.filename}")
                archive.extractall(root)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, EOFError) as exc:
            raise ExtractionError(f"Corrupt archive: {exc}") from exc
        except (NotImplementedError, RuntimeError) as exc:
            # Unsupported compression methods and password-protected entries
            raise ExtractionError(f"Unsupported archive: {exc}") from exc
        logger.info("Extracted archive into %s", scratch_path)
