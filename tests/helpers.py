"""Shared builders for archives, commands and configs used across the tests."""

import io
import json
import shlex
import struct
import sys
import textwrap
import zipfile
from pathlib import Path
from typing import Dict, Optional, Union

from ho_host.archive import UploadedArchive
from ho_host.config import AppConfig

SERVER_SCRIPT = textwrap.dedent(
    """
    import json, os, sys, time
    with open("env.json", "w") as fh:
        json.dump({"PORT": os.environ.get("PORT"), "NODE_ENV": os.environ.get("NODE_ENV")}, fh)
    print("Server listening on port " + os.environ["PORT"], flush=True)
    while True:
        time.sleep(0.1)
    """
)

SILENT_SCRIPT = textwrap.dedent(
    """
    import time
    while True:
        time.sleep(0.1)
    """
)


def python_command(code: str) -> str:
    """Shell command running `code` with the current interpreter."""
    return f"{shlex.quote(sys.executable)} -c {shlex.quote(code)}"


def python_script_command(script: str) -> str:
    return f"{shlex.quote(sys.executable)} {shlex.quote(script)}"


def package_json(name: str, dependencies: Optional[Dict[str, str]] = None, **extra) -> str:
    payload = {"name": name, "version": "1.0.0", "dependencies": dependencies or {}}
    payload.update(extra)
    return json.dumps(payload)


def project_files(root: str = "", server: str = SERVER_SCRIPT) -> Dict[str, str]:
    """A minimal frontend+backend project, optionally nested under `root`."""
    prefix = f"{root.rstrip('/')}/" if root else ""
    return {
        f"{prefix}frontend/package.json": package_json("demo-frontend", {"react": "^18.0.0"}),
        f"{prefix}frontend/src/App.js": "export default function App() { return null }\n",
        f"{prefix}backend/package.json": package_json(
            "demo-backend", {"express": "^4.18.0", "mongoose": "^7.0.0"}
        ),
        f"{prefix}backend/server.py": server,
    }


def make_zip_bytes(files: Dict[str, Union[str, bytes]]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def patch_zip_headers(blob: bytes, method: Optional[int] = None, flag_bits: int = 0) -> bytes:
    """Rewrite the compression method and OR in flag bits on every local and central header."""
    data = bytearray(blob)
    for signature, flags_at, method_at in ((b"PK\x03\x04", 6, 8), (b"PK\x01\x02", 8, 10)):
        start = data.find(signature)
        while start != -1:
            flags = struct.unpack_from("<H", data, start + flags_at)[0]
            struct.pack_into("<H", data, start + flags_at, flags | flag_bits)
            if method is not None:
                struct.pack_into("<H", data, start + method_at, method)
            start = data.find(signature, start + 4)
    return bytes(data)


def make_upload(
    files: Optional[Dict[str, Union[str, bytes]]] = None,
    filename: str = "project.zip",
    blob: Optional[bytes] = None,
) -> UploadedArchive:
    if blob is None:
        blob = make_zip_bytes(files or {})
    return UploadedArchive(
        filename=filename,
        media_type="application/zip",
        stream=io.BytesIO(blob),
        size=len(blob),
    )


def make_config(base_dir: Path, **process_overrides) -> AppConfig:
    """Config that runs python stand-ins for npm and keeps timeouts short."""
    config = AppConfig.from_dict(
        {
            "paths": {"base_dir": str(base_dir)},
            "ports": {"min_port": 3901, "max_port": 3910},
            "build": {
                "install_command": python_command("print('installed')"),
                "build_command": python_command("print('built')"),
                "command_timeout": 60,
            },
            "process": {
                "start_command": python_script_command("server.py"),
                "readiness_timeout": 10.0,
                "grace_period": 5.0,
                "stop_timeout": 5.0,
                **process_overrides,
            },
            "server": {"api_tokens": {"tok-alice": "alice", "tok-bob": "bob"}},
            "logging": {"level": "INFO", "file": "logs/host-logs.txt"},
        }
    )
    return config
