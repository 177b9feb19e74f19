"""Command-line interface for ho-host."""

from __future__ import annotations

import argparse
import json
from dataclasses import asdict, dataclass
from typing import Optional

from .config import AppConfig, load_config
from .paths import HostingPaths
from .utils.logging import read_recent_logs


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    config: AppConfig
    paths: HostingPaths


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ho-host",
        description="Deploy and supervise uploaded frontend+backend projects on this host.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file overriding defaults.",
    )
    parser.add_argument(
        "--base-dir",
        type=str,
        default=None,
        help="Root directory for hosted sites, uploads, logs and data.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the hosting API server")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port")

    logs_parser = subparsers.add_parser("logs", help="Show recent audit log lines")
    logs_parser.add_argument(
        "--limit", "-n", type=int, default=50,
        help="Number of lines to show"
    )
    logs_parser.add_argument(
        "--owner", type=str, default=None,
        help="Only show lines for this owner (plus SYSTEM events)"
    )

    subparsers.add_parser("config", help="Print the effective configuration as JSON")

    return parser


def _build_context(args: argparse.Namespace) -> CLIContext:
    config = load_config(args.config)
    if args.base_dir:
        config.paths.base_dir = args.base_dir
    return CLIContext(config=config, paths=HostingPaths.from_config(config.paths))


def handle_serve_command(args: argparse.Namespace, context: CLIContext) -> int:
    """Run the API with uvicorn until interrupted."""
    import uvicorn

    from .api import create_app

    config = context.config
    host = args.host or config.server.host
    port = args.port or config.server.port
    if not config.server.api_tokens:
        print("⚠️  No API tokens configured; every request will be rejected.")
        print("   Set HO_HOST_API_TOKENS=token:owner or server.api_tokens in the config file.")

    app = create_app(config)
    uvicorn.run(app, host=host, port=port, log_config=None)
    return 0


def handle_logs_command(args: argparse.Namespace, context: CLIContext) -> int:
    if not context.config.logging.file:
        print("📁 File logging is disabled.")
        return 0

    log_file = context.paths.base_dir / context.config.logging.file
    lines = read_recent_logs(log_file, limit=args.limit, owner=args.owner)
    if not lines:
        print(f"📁 No log lines found in {log_file}")
        return 0
    for line in lines:
        print(line)
    return 0


def handle_config_command(context: CLIContext) -> int:
    payload = asdict(context.config)
    # Owners only, never token values
    payload["server"]["api_tokens"] = sorted(set(context.config.server.api_tokens.values()))
    print(json.dumps(payload, indent=2))
    return 0


def dispatch_command(args: argparse.Namespace) -> int:
    context = _build_context(args)

    if args.command == "serve":
        return handle_serve_command(args, context)

    if args.command == "logs":
        return handle_logs_command(args, context)

    if args.command == "config":
        return handle_config_command(context)

    raise ValueError(f"Unsupported command: {args.command}")


def run_cli(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return dispatch_command(args)
