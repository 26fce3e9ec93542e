"""
Knowledge Bridge CLI.

Usage:
    knowledge-bridge serve
    knowledge-bridge doctor [options]
    knowledge-bridge watch [options]
    python -m knowledge_bridge --help

Commands:
    serve     Run the MCP server over stdio for the configured project.
    doctor    Check API reachability with the configured credential and print
              a JSON report.
    watch     Start a webhook receiver, register it with the API, and print
              every received notification as a JSON line.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, Optional, Sequence

import pydantic
import requests
from dotenv import load_dotenv

from knowledge_bridge.core.config import BridgeConfig, LoggingConfig
from knowledge_bridge.core.identity import SessionContext, resolve_project_id
from knowledge_bridge.mcp.router import DispatchRouter
from knowledge_bridge.mcp.server import McpServer
from knowledge_bridge.providers import build_providers
from knowledge_bridge.sdk.client import KnowledgeClient
from knowledge_bridge.sdk.errors import BridgeError, ConfigurationError
from knowledge_bridge.sdk.events import EventKind
from knowledge_bridge.sdk.gateway import USER_AGENT, ApiGateway
from knowledge_bridge.version import __version__

logger = logging.getLogger("KnowledgeBridge.cli")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
EXIT_CONFIG_ERROR = 2


def configure_logging(config: LoggingConfig) -> None:
    """Route logs to stderr or LOG_FILE; stdout is reserved for JSON-RPC."""
    root_logger = logging.getLogger("KnowledgeBridge")
    if not config.enabled:
        root_logger.setLevel(logging.CRITICAL + 1)
        return

    level = getattr(logging, config.level.upper(), logging.INFO)
    if config.file:
        logging.basicConfig(level=level, format=LOG_FORMAT, filename=config.file, filemode="a", force=True)
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)
    root_logger.setLevel(level)


def _load_config(args: argparse.Namespace) -> BridgeConfig:
    load_dotenv(args.env_file, override=False)
    config = BridgeConfig.from_env()
    configure_logging(config.logging)
    return config


def _print_config_error(exc: Exception) -> int:
    print(f"Configuration error: {exc}", file=sys.stderr)
    return EXIT_CONFIG_ERROR


# ─────────────────────────────────────────────────────────────────────────────
# serve
# ─────────────────────────────────────────────────────────────────────────────

async def _serve(config: BridgeConfig, context: SessionContext) -> None:
    async with ApiGateway(config) as gateway:
        router = DispatchRouter(build_providers(gateway), context, gateway, config.mcp.version)
        server = McpServer(router, config.mcp.name, config.mcp.version)
        logger.info("Connected to API: %s", config.api_url)
        await server.serve()


def cmd_serve(args: argparse.Namespace) -> int:
    try:
        config = _load_config(args)
        context = SessionContext.from_config(config)
    except (ConfigurationError, pydantic.ValidationError) as exc:
        return _print_config_error(exc)

    try:
        asyncio.run(_serve(config, context))
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# doctor
# ─────────────────────────────────────────────────────────────────────────────

def _check_api_health(config: BridgeConfig, timeout_seconds: float) -> tuple[bool, str]:
    headers = {"User-Agent": USER_AGENT}
    if config.api_key:
        headers["X-API-Key"] = config.api_key
    try:
        response = requests.get(f"{config.api_url}/health", headers=headers, timeout=timeout_seconds)
        if 200 <= response.status_code < 300:
            return True, "ok"
        return False, f"http_{response.status_code}"
    except requests.RequestException as exc:
        return False, str(exc)


def cmd_doctor(args: argparse.Namespace) -> int:
    try:
        config = _load_config(args)
    except pydantic.ValidationError as exc:
        return _print_config_error(exc)

    report: Dict[str, Any] = {
        "version": __version__,
        "apiUrl": config.api_url,
        "hasApiKey": bool(config.api_key),
        "webhookEnabled": config.webhook.enabled,
    }
    project_ok = True
    try:
        report["project"] = resolve_project_id(config.project_id, config.api_key)
    except ConfigurationError as exc:
        project_ok = False
        report["project"] = None
        report["projectError"] = str(exc)

    timeout = args.timeout_seconds if args.timeout_seconds is not None else config.http.timeout
    health_ok, detail = _check_api_health(config, timeout)
    report["health"] = {"ok": health_ok, "detail": detail}
    report["status"] = "ok" if health_ok and project_ok else "failed"

    print(json.dumps(report, indent=2))
    return 0 if report["status"] == "ok" else 1


# ─────────────────────────────────────────────────────────────────────────────
# watch
# ─────────────────────────────────────────────────────────────────────────────

async def _watch(config: BridgeConfig) -> None:
    client = KnowledgeClient(config)

    def _print_envelope(envelope: Any) -> None:
        sys.stdout.write(json.dumps(envelope) + "\n")
        sys.stdout.flush()

    client.on(EventKind.WEBHOOK_RECEIVED, _print_envelope)
    async with client:
        print(f"Listening for webhooks at {client.webhook_url}", file=sys.stderr)
        await asyncio.Event().wait()


def cmd_watch(args: argparse.Namespace) -> int:
    try:
        config = _load_config(args)
        updates: Dict[str, Any] = {"enabled": True}
        if args.host is not None:
            updates["host"] = args.host
        if args.port is not None:
            updates["port"] = args.port
        config = config.with_overrides(webhook=config.webhook.model_copy(update=updates))
    except pydantic.ValidationError as exc:
        return _print_config_error(exc)

    try:
        asyncio.run(_watch(config))
    except KeyboardInterrupt:
        return 0
    except BridgeError as exc:
        print(f"Watch failed: {exc}", file=sys.stderr)
        return 1
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# Argument parser
# ─────────────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="knowledge-bridge",
        description="Knowledge Bridge: MCP access to a remote knowledge API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  knowledge-bridge serve\n"
               "  knowledge-bridge doctor --timeout-seconds 2\n"
               "  knowledge-bridge watch --port 8787\n",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--env-file",
        default=None,
        metavar="PATH",
        help="Path to a .env file (default: search from the current directory).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "serve",
        help="Run the MCP server over stdio.",
        description="Serves tools and resources over stdio JSON-RPC for the configured project.",
    )

    doctor = subparsers.add_parser(
        "doctor",
        help="Check API reachability and credentials.",
        description="Resolves the active project and checks GET /health with the configured credential.",
    )
    doctor.add_argument(
        "--timeout-seconds",
        type=float,
        default=None,
        help="HTTP timeout for the health check (default: TIMEOUT).",
    )

    watch = subparsers.add_parser(
        "watch",
        help="Print webhook notifications as JSON lines.",
        description="Starts a local webhook receiver, registers it with the API, and prints each envelope.",
    )
    watch.add_argument("--host", default=None, help="Bind address (default: WEBHOOK_HOST).")
    watch.add_argument("--port", type=int, default=None, help="Bind port, 0 for any (default: WEBHOOK_PORT).")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        return cmd_serve(args)
    if args.command == "doctor":
        return cmd_doctor(args)
    if args.command == "watch":
        return cmd_watch(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
