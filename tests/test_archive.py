import io
import tempfile
import unittest
import zipfile
from pathlib import Path

from ho_host.archive import ArchivePipeline, StructureValidator, UploadedArchive
from ho_host.errors import ExtractionError, ManifestError, StructureError, ValidationError

from helpers import make_upload, make_zip_bytes, package_json, patch_zip_headers, project_files


def _pipeline(root: Path, limit: int = 1024 * 1024) -> ArchivePipeline:
    return ArchivePipeline(
        uploads_dir=root / "uploads",
        max_size_bytes=limit,
        allowed_media_types=["application/zip", "application/x-zip-compressed"],
    )


class ArchivePipelineTests(unittest.TestCase):
    def test_validate_rejects_before_touching_disk(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            pipeline = _pipeline(Path(tmp), limit=10)
            with self.assertRaises(ValidationError):
                pipeline.validate(None, "application/zip", 5)
            with self.assertRaises(ValidationError):
                pipeline.validate("site.tar.gz", "application/gzip", 5)
            with self.assertRaises(ValidationError):
                pipeline.validate("site.zip", "application/zip", 11)
            # A .zip name is accepted even with a generic media type
            pipeline.validate("site.zip", "application/octet-stream", 5)
            self.assertFalse((Path(tmp) / "uploads").exists())

    def test_stage_extracts_and_cleans_up(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            project_dir = root / "project"
            project_dir.mkdir()
            pipeline = _pipeline(root)

            with pipeline.stage(make_upload(project_files()), project_dir) as scratch:
                self.assertEqual(scratch, project_dir / "temp_extract")
                self.assertTrue((scratch / "frontend" / "package.json").is_file())
                self.assertEqual(len(list((root / "uploads").iterdir())), 1)

            self.assertFalse((project_dir / "temp_extract").exists())
            self.assertEqual(list((root / "uploads").iterdir()), [])

    def test_corrupt_archive_removes_scratch_and_blob(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            project_dir = root / "project"
            project_dir.mkdir()
            upload = UploadedArchive("broken.zip", "application/zip", io.BytesIO(b"not a zip"), 9)

            with self.assertRaises(ExtractionError):
                with _pipeline(root).stage(upload, project_dir):
                    self.fail("stage should not yield for a corrupt archive")

            self.assertFalse((project_dir / "temp_extract").exists())
            self.assertEqual(list((root / "uploads").iterdir()), [])

    def test_oversized_stream_is_rejected_while_copying(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            project_dir = root / "project"
            project_dir.mkdir()
            blob = make_zip_bytes(project_files())
            # Size unknown up front, so the limit is enforced during the copy
            upload = UploadedArchive("big.zip", "application/zip", io.BytesIO(blob), None)

            with self.assertRaises(ValidationError):
                with _pipeline(root, limit=len(blob) - 1).stage(upload, project_dir):
                    pass
            self.assertEqual(list((root / "uploads").iterdir()), [])

    def test_entries_escaping_root_are_rejected(self) -> None:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("../evil.txt", "pwned")
        data = buffer.getvalue()

        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            project_dir = root / "project"
            project_dir.mkdir()
            upload = UploadedArchive("evil.zip", "application/zip", io.BytesIO(data), len(data))
            with self.assertRaises(ExtractionError):
                with _pipeline(root).stage(upload, project_dir):
                    pass
            self.assertFalse((project_dir / "evil.txt").exists())
            self.assertFalse((project_dir / "temp_extract").exists())

    def test_unsupported_entries_become_extraction_errors(self) -> None:
        blob = make_zip_bytes(project_files())
        cases = {
            "aes": patch_zip_headers(blob, method=99),
            "deflate64": patch_zip_headers(blob, method=9),
            "encrypted": patch_zip_headers(blob, flag_bits=0x1),
        }
        for label, data in cases.items():
            with self.subTest(label), tempfile.TemporaryDirectory() as tmp:
                root = Path(tmp)
                project_dir = root / "project"
                project_dir.mkdir()
                with self.assertRaises(ExtractionError) as ctx:
                    with _pipeline(root).stage(make_upload(blob=data), project_dir):
                        pass
                self.assertIn("Unsupported archive", ctx.exception.message)
                self.assertEqual(ctx.exception.http_status, 400)
                self.assertFalse((project_dir / "temp_extract").exists())
                self.assertEqual(list((root / "uploads").iterdir()), [])

class StructureValidatorTests(unittest.TestCase):
    def _extract(self, root: Path, files: dict) -> Path:
        for name, content in files.items():
            path = root / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return root

    def test_locates_top_level_subtrees(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            scratch = self._extract(Path(tmp), project_files())
            located = StructureValidator().locate(scratch)
            self.assertEqual(located.frontend_path, scratch / "frontend")
            self.assertEqual(located.backend_path, scratch / "backend")
            self.assertEqual(located.backend_manifest.name, "demo-backend")
            self.assertTrue(located.backend_manifest.uses_database)
            self.assertFalse(located.frontend_manifest.uses_database)

    def test_locates_nested_subtrees_case_insensitively(self) -> None:
        files = {
            "my-app/Frontend/package.json": package_json("f"),
            "my-app/BACKEND/package.json": package_json("b"),
            "__MACOSX/frontend/package.json": "junk",
        }
        with tempfile.TemporaryDirectory() as tmp:
            scratch = self._extract(Path(tmp), files)
            located = StructureValidator().locate(scratch)
            self.assertEqual(located.frontend_path, scratch / "my-app" / "Frontend")
            self.assertEqual(located.backend_path, scratch / "my-app" / "BACKEND")

    def test_depth_limit_is_respected(self) -> None:
        files = {
            "a/b/frontend/package.json": package_json("f"),
            "a/b/backend/package.json": package_json("b"),
        }
        with tempfile.TemporaryDirectory() as tmp:
            scratch = self._extract(Path(tmp), files)
            with self.assertRaises(StructureError):
                StructureValidator(max_depth=2).locate(scratch)
            StructureValidator(max_depth=3).locate(scratch)

    def test_missing_subtree_is_named(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            scratch = self._extract(Path(tmp), {"frontend/package.json": package_json("f")})
            with self.assertRaises(StructureError) as ctx:
                StructureValidator().locate(scratch)
            self.assertEqual(ctx.exception.missing, ["backend"])

            empty = Path(tmp) / "empty"
            empty.mkdir()
            with self.assertRaises(StructureError) as ctx:
                StructureValidator().locate(empty)
            self.assertEqual(ctx.exception.missing, ["frontend", "backend"])

    def test_invalid_manifest_names_subtree(self) -> None:
        files = {
            "frontend/package.json": package_json("f"),
            "backend/package.json": "{ not json",
        }
        with tempfile.TemporaryDirectory() as tmp:
            scratch = self._extract(Path(tmp), files)
            with self.assertRaises(ManifestError) as ctx:
                StructureValidator().locate(scratch)
            self.assertEqual(ctx.exception.subtree, "backend")

    def test_missing_manifest_is_reported(self) -> None:
        files = {"frontend/index.html": "<html></html>", "backend/package.json": package_json("b")}
        with tempfile.TemporaryDirectory() as tmp:
            scratch = self._extract(Path(tmp), files)
            with self.assertRaises(ManifestError) as ctx:
                StructureValidator().locate(scratch)
            self.assertEqual(ctx.exception.subtree, "frontend")


if __name__ == "__main__":
    unittest.main()
