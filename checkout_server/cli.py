"""Command-line interface for Checkout MCP Server."""

import argparse
import asyncio
from typing import Optional

from .config import CheckoutSettings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Checkout MCP Server - Price, validate and submit storefront orders"
    )
    parser.add_argument(
        "--mode",
        choices=["stdio", "http"],
        default="stdio",
        help="Server mode: stdio (for MCP clients) or http (REST API)",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="HTTP server host (only for http mode, default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="HTTP server port (only for http mode, default: 8080)",
    )
    parser.add_argument("--api-url", help="Storefront API base URL (overrides CHECKOUT_API_URL)")
    parser.add_argument("--session-file", help="Checkout snapshot file (overrides CHECKOUT_SESSION_FILE)")
    parser.add_argument("--user-id", help="Authenticated user ID (overrides CHECKOUT_USER_ID)")
    parser.add_argument("--locale", help="Storefront locale (overrides CHECKOUT_LOCALE)")
    return parser


def build_settings(args: argparse.Namespace) -> CheckoutSettings:
    """Environment settings with command-line overrides applied on top."""
    settings = CheckoutSettings.from_env()
    overrides = {
        field: value
        for field, value in (
            ("api_url", args.api_url),
            ("session_file", args.session_file),
            ("user_id", args.user_id),
            ("locale", args.locale),
        )
        if value
    }
    return settings.model_copy(update=overrides) if overrides else settings


def main(argv: Optional[list[str]] = None):
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    settings = build_settings(args)

    if args.mode == "stdio":
        # Run MCP server via stdio
        from .server import main as server_main

        asyncio.run(server_main(settings))
    elif args.mode == "http":
        # Run HTTP server
        from .http_server import run_http_server

        print(f"Starting Checkout HTTP Server on {args.host}:{args.port} against {settings.api_url}")
        print(f"API documentation available at http://{args.host}:{args.port}/docs")
        run_http_server(host=args.host, port=args.port, settings=settings)


if __name__ == "__main__":
    main()
