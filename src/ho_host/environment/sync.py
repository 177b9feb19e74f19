"""Inject the backend address into the frontend's .env file."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Dict, List, Sequence

from dotenv import dotenv_values

from ..errors import EnvFileError
from ..paths import dynamic_site_url
from ..utils.logging import get_logger

logger = get_logger(__name__)


class EnvironmentSynchronizer:
    """Appends missing backend-address keys to ``frontend/.env``.

    Keys already present keep their values; nothing is ever rewritten or
    duplicated, so repeated syncs of the same tree are no-ops.
    """

    def __init__(
        self,
        keys: Sequence[str] = ("VITE_API_URL", "BACKEND_ADRESSE"),
        env_filename: str = ".env",
    ) -> None:
        self.keys = list(keys)
        self.env_filename = env_filename

    def desired_values(self, port: int) -> Dict[str, str]:
        url = dynamic_site_url(port)
        return {key: url for key in self.keys}

    def sync(self, frontend_path: Path, port: int) -> List[str]:
        """Write the keys that are missing; return the ones written.

        Raises EnvFileError when an existing file is not UTF-8 text.
        """
        env_path = Path(frontend_path) / self.env_filename
        existing: Dict[str, object] = {}
        content = ""
        if env_path.is_file():
            try:
                content = env_path.read_text(encoding="utf-8")
            except UnicodeDecodeError as exc:
                raise EnvFileError(
                    f"{env_path.name} is not valid UTF-8: {exc.reason} at byte {exc.start}"
                ) from exc
            existing = dotenv_values(stream=io.StringIO(content))

        to_write = {
            key: value
            for key, value in self.desired_values(port).items()
            if key not in existing
        }
        if not to_write:
            logger.info("%s already defines %s", env_path, ", ".join(self.keys))
            return []

        lines = "".join(f"{key}={value}\n" for key, value in to_write.items())
        prefix = "\n" if content and not content.endswith("\n") else ""
        with env_path.open("a", encoding="utf-8") as handle:
            handle.write(prefix + lines)

        logger.info("Wrote %s to %s", ", ".join(to_write), env_path)
        return list(to_write)
