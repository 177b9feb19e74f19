"""Configuration loading utilities for ho-host."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

_DEFAULT_CONFIG_PATH = Path("config/default_config.json")

ZIP_MEDIA_TYPES = [
    "application/zip",
    "application/x-zip-compressed",
    "application/x-zip",
    "multipart/x-zip",
]


@dataclass
class PathsConfig:
    """Filesystem layout, relative to ``base_dir`` unless absolute."""

    base_dir: str = "."
    hosted_sites_dir: str = "hosted-sites"
    uploads_dir: str = "uploads"
    logs_dir: str = "logs"
    data_file: str = "data/projects.json"


@dataclass
class PortConfig:
    """Inclusive range dynamic-project backends are assigned from."""

    min_port: int = 3001
    max_port: int = 4000


@dataclass
class ArchiveConfig:
    max_size_bytes: int = 100 * 1024 * 1024  # 100 MiB
    allowed_media_types: List[str] = field(default_factory=lambda: list(ZIP_MEDIA_TYPES))
    search_depth: int = 6
    manifest_name: str = "package.json"


@dataclass
class BuildConfig:
    """Commands run inside the frontend/backend subtrees."""

    install_command: str = "npm install"
    build_command: str = "npm run build"
    command_timeout: int = 600


@dataclass
class ProcessConfig:
    """Backend process spawn and readiness settings."""

    start_command: str = "npm start"
    port_env_var: str = "PORT"
    extra_env: Dict[str, str] = field(default_factory=lambda: {"NODE_ENV": "production"})
    readiness_mode: str = "output"  # "output" | "http"
    readiness_timeout: float = 30.0
    grace_period: float = 5.0
    assume_ready_after_grace: bool = True
    ready_markers: List[str] = field(default_factory=lambda: ["listening", "started"])
    stop_timeout: float = 10.0
    output_tail_lines: int = 200


@dataclass
class EnvSyncConfig:
    env_filename: str = ".env"
    keys: List[str] = field(default_factory=lambda: ["VITE_API_URL", "BACKEND_ADRESSE"])


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 5000
    api_tokens: Dict[str, str] = field(default_factory=dict)  # token -> owner id


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = "logs/host-logs.txt"


@dataclass
class AppConfig:
    """Top-level configuration."""

    paths: PathsConfig = field(default_factory=PathsConfig)
    ports: PortConfig = field(default_factory=PortConfig)
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    process: ProcessConfig = field(default_factory=ProcessConfig)
    env_sync: EnvSyncConfig = field(default_factory=EnvSyncConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        def section(name: str) -> Dict[str, Any]:
            data = payload.get(name, {}) or {}
            # Keys starting with "_" are comments
            return {k: v for k, v in data.items() if not k.startswith("_")}

        return cls(
            paths=PathsConfig(**{**PathsConfig().__dict__, **section("paths")}),
            ports=PortConfig(**{**PortConfig().__dict__, **section("ports")}),
            archive=ArchiveConfig(**{**ArchiveConfig().__dict__, **section("archive")}),
            build=BuildConfig(**{**BuildConfig().__dict__, **section("build")}),
            process=ProcessConfig(**{**ProcessConfig().__dict__, **section("process")}),
            env_sync=EnvSyncConfig(**{**EnvSyncConfig().__dict__, **section("env_sync")}),
            server=ServerConfig(**{**ServerConfig().__dict__, **section("server")}),
            logging=LoggingConfig(**{**LoggingConfig().__dict__, **section("logging")}),
        )

    def validate(self) -> None:
        if self.ports.min_port < 1 or self.ports.max_port > 65535:
            raise ValueError("Port range must lie within 1-65535")
        if self.ports.min_port > self.ports.max_port:
            raise ValueError(
                f"Invalid port range {self.ports.min_port}-{self.ports.max_port}"
            )
        if self.process.readiness_mode not in ("output", "http"):
            raise ValueError(f"Unknown readiness mode: {self.process.readiness_mode}")
        if self.process.grace_period > self.process.readiness_timeout:
            raise ValueError("grace_period must not exceed readiness_timeout")


def parse_api_tokens(raw: str) -> Dict[str, str]:
    """Parse ``token:owner,token2:owner2`` into a mapping."""
    tokens: Dict[str, str] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        token, sep, owner = item.partition(":")
        if not sep or not token.strip() or not owner.strip():
            raise ValueError(f"Malformed API token entry: {item!r}")
        tokens[token.strip()] = owner.strip()
    return tokens


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or the default location.

    Falls back to built-in defaults when no file is found, unless `path` was
    given explicitly.

    Environment variables (higher priority than config file):
    - HO_HOST_BASE_DIR: Root directory for hosted sites, uploads, logs and data
    - HO_HOST_PORT_MIN / HO_HOST_PORT_MAX: Backend port range
    - HO_HOST_SERVER_HOST / HO_HOST_SERVER_PORT: API bind address
    - HO_HOST_API_TOKENS: Bearer tokens as ``token:owner,token2:owner2``
    - HO_HOST_LOG_LEVEL: Logging level
    - HO_HOST_LOG_FILE: Audit log file ("" disables the file handler)
    """

    if path and not Path(path).is_file():
        raise FileNotFoundError(f"Could not find configuration file: {path}")

    candidate_paths = []
    if path:
        candidate_paths.append(Path(path))
    candidate_paths.append(_DEFAULT_CONFIG_PATH)

    config = AppConfig()
    for candidate in candidate_paths:
        if candidate.is_file():
            with candidate.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
            config = AppConfig.from_dict(data)
            break

    _apply_env_overrides(config)
    config.validate()
    return config


def _apply_env_overrides(config: AppConfig) -> None:
    env_base = os.getenv("HO_HOST_BASE_DIR")
    if env_base:
        config.paths.base_dir = env_base

    env_min = os.getenv("HO_HOST_PORT_MIN")
    if env_min:
        config.ports.min_port = int(env_min)

    env_max = os.getenv("HO_HOST_PORT_MAX")
    if env_max:
        config.ports.max_port = int(env_max)

    env_host = os.getenv("HO_HOST_SERVER_HOST")
    if env_host:
        config.server.host = env_host

    env_port = os.getenv("HO_HOST_SERVER_PORT")
    if env_port:
        config.server.port = int(env_port)

    env_tokens = os.getenv("HO_HOST_API_TOKENS")
    if env_tokens:
        config.server.api_tokens.update(parse_api_tokens(env_tokens))

    env_level = os.getenv("HO_HOST_LOG_LEVEL")
    if env_level:
        config.logging.level = env_level.upper()

    env_log_file = os.getenv("HO_HOST_LOG_FILE")
    if env_log_file is not None:
        config.logging.file = env_log_file or None
