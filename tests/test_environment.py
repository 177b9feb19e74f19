import tempfile
import unittest
from pathlib import Path

from ho_host.environment import EnvironmentSynchronizer
from ho_host.errors import EnvFileError


class EnvironmentSynchronizerTests(unittest.TestCase):
    def test_creates_env_file_with_all_keys(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            written = EnvironmentSynchronizer().sync(Path(tmp), 3005)
            content = (Path(tmp) / ".env").read_text(encoding="utf-8")

        self.assertEqual(written, ["VITE_API_URL", "BACKEND_ADRESSE"])
        self.assertEqual(
            content,
            "VITE_API_URL=http://localhost:3005\nBACKEND_ADRESSE=http://localhost:3005\n",
        )

    def test_existing_values_are_preserved(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            env_path = Path(tmp) / ".env"
            env_path.write_text("VITE_API_URL=https://api.example.com\nOTHER=1", encoding="utf-8")

            written = EnvironmentSynchronizer().sync(Path(tmp), 3005)
            lines = env_path.read_text(encoding="utf-8").splitlines()

        self.assertEqual(written, ["BACKEND_ADRESSE"])
        self.assertEqual(
            lines,
            ["VITE_API_URL=https://api.example.com", "OTHER=1", "BACKEND_ADRESSE=http://localhost:3005"],
        )

    def test_repeated_sync_never_duplicates_keys(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            sync = EnvironmentSynchronizer()
            sync.sync(Path(tmp), 3001)
            self.assertEqual(sync.sync(Path(tmp), 3002), [])
            content = (Path(tmp) / ".env").read_text(encoding="utf-8")

        self.assertEqual(content.count("VITE_API_URL="), 1)
        self.assertEqual(content.count("BACKEND_ADRESSE="), 1)
        self.assertIn("http://localhost:3001", content)

    def test_non_utf8_file_is_reported_and_left_untouched(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            env_path = Path(tmp) / ".env"
            env_path.write_bytes(b"VITE_API_URL=caf\xe9\n")

            with self.assertRaises(EnvFileError) as ctx:
                EnvironmentSynchronizer().sync(Path(tmp), 3005)

            self.assertEqual(env_path.read_bytes(), b"VITE_API_URL=caf\xe9\n")
        self.assertIn("not valid UTF-8", ctx.exception.message)


if __name__ == "__main__":
    unittest.main()
