"""CLI entry point for the storefront sync server."""

import argparse
import asyncio
import logging
import os
import sys

from .config import ENV_PREFIX, Settings


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Storefront configuration sync server")
    parser.add_argument(
        "--mode",
        choices=["stdio", "http"],
        default="stdio",
        help="Server mode: stdio (for MCP protocol) or http (for REST API)",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (HTTP mode only, default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (HTTP mode only, default: 8000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable hot reloading (HTTP mode only, watches for file changes)",
    )
    parser.add_argument("--tenant-id", help=f"Admin/tenant id (overrides {ENV_PREFIX}TENANT_ID)")
    parser.add_argument("--app-id", help=f"Published app id (overrides {ENV_PREFIX}APP_ID)")
    parser.add_argument("--api-base", help=f"Backend base URL (overrides {ENV_PREFIX}API_BASE)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Log level (overrides {ENV_PREFIX}LOG_LEVEL, default: INFO)",
    )

    args = parser.parse_args()

    # Flags go through the environment so a reloading HTTP worker sees them too.
    for key, value in (
        ("TENANT_ID", args.tenant_id),
        ("APP_ID", args.app_id),
        ("API_BASE", args.api_base),
        ("LOG_LEVEL", args.log_level),
    ):
        if value:
            os.environ[f"{ENV_PREFIX}{key}"] = value

    try:
        settings = Settings.from_env()
        settings.session_context()
    except ValueError as e:
        parser.error(str(e))

    # stdout carries the MCP protocol in stdio mode
    logging.basicConfig(level=settings.log_level.upper(), stream=sys.stderr)

    if args.mode == "http":
        from .http_server import run_http_server
        run_http_server(host=args.host, port=args.port, reload=args.reload, log_level=settings.log_level.lower())
    else:
        from .server import main as server_main
        asyncio.run(server_main(settings))


if __name__ == "__main__":
    main()
