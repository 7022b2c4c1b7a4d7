"""
OpenClaw MCP - command line entry point.

Command line options override OPENCLAW_MCP_* environment variables.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from loguru import logger

from openclaw_mcp import __version__
from openclaw_mcp.config import ConfigurationError, Settings, settings as env_settings
from openclaw_mcp.logging_config import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="openclaw-mcp",
        description="MCP server bridging MCP clients to an OpenClaw gateway",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  openclaw-mcp                                   Serve over stdio (Claude Desktop)
  openclaw-mcp -u http://gateway:18789           Use a remote gateway
  openclaw-mcp --transport http --port 3000      Serve streamable HTTP on /mcp
  openclaw-mcp --transport sse --auth \\
      --client-id my-client --client-secret ... \\
      --redirect-uri https://claude.ai/api/mcp/auth_callback
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--openclaw-url", "-u", help="OpenClaw gateway URL")
    parser.add_argument("--gateway-token", help="Bearer token for the OpenClaw gateway")
    parser.add_argument(
        "--transport",
        choices=["stdio", "http", "sse"],
        help="MCP transport (default: stdio)",
    )
    parser.add_argument("--host", help="Bind address for http/sse")
    parser.add_argument("--port", type=int, help="Port for http/sse")
    parser.add_argument("--issuer-url", help="Public base URL used in OAuth metadata")
    parser.add_argument(
        "--auth",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Enable the OAuth 2.1 authorization server (http/sse only)",
    )
    parser.add_argument("--client-id", help="Pre-registered OAuth client ID")
    parser.add_argument("--client-secret", help="Pre-registered OAuth client secret (min 32 chars)")
    parser.add_argument(
        "--redirect-uri",
        action="append",
        dest="redirect_uris",
        help="Allowed OAuth redirect URI (repeatable)",
    )
    parser.add_argument(
        "--log-level",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Log level (default: INFO)",
    )
    return parser


def apply_overrides(base: Settings, args: argparse.Namespace) -> Settings:
    """Return a copy of base with every option given on the command line applied."""
    overrides = {
        "openclaw_url": args.openclaw_url,
        "gateway_token": args.gateway_token,
        "transport": args.transport,
        "host": args.host,
        "port": args.port,
        "issuer_url": args.issuer_url,
        "auth_enabled": args.auth,
        "client_id": args.client_id,
        "client_secret": args.client_secret,
        "redirect_uris": args.redirect_uris,
        "log_level": args.log_level,
    }
    return base.model_copy(update={k: v for k, v in overrides.items() if v is not None})


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    settings = apply_overrides(env_settings, args)

    configure_logging(settings.log_level)

    try:
        settings.validate_auth_config()
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(1)

    if settings.auth_enabled and not settings.is_remote:
        logger.warning("OAuth only applies to the http and sse transports; ignoring it for stdio")

    # Imported here so that logging is configured before fastmcp loads
    from openclaw_mcp.server import build_services, log_startup, run_stdio, serve_http

    log_startup(settings)
    services = build_services(settings)

    try:
        if settings.is_remote:
            asyncio.run(serve_http(services))
        else:
            asyncio.run(run_stdio(services))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
