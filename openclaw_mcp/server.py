"""
OpenClaw MCP server assembly.

build_services() wires the task store, worker, gateway client and OAuth
authorization server from settings. create_mcp() registers the tools on a
FastMCP instance; create_app() wraps its ASGI app with the OAuth endpoints,
the bearer middleware and a lifespan that owns the background loops.
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

import uvicorn
from fastmcp import FastMCP
from loguru import logger
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route

from openclaw_mcp import __version__
from openclaw_mcp.auth.clients import ClientRegistry
from openclaw_mcp.auth.middleware import BearerAuthMiddleware
from openclaw_mcp.auth.routes import OAuthEndpoints
from openclaw_mcp.auth.server import AuthorizationServer
from openclaw_mcp.config import Settings
from openclaw_mcp.gateway.client import OpenClawClient
from openclaw_mcp.tasks.store import TaskStore
from openclaw_mcp.tasks.worker import TaskWorker, build_worker
from openclaw_mcp.tools import register_tools

SERVER_NAME = "openclaw-mcp"


@dataclass
class Services:
    """Long-lived collaborators shared by the tools and the HTTP app."""

    settings: Settings
    store: TaskStore
    worker: TaskWorker
    client: OpenClawClient
    clients: ClientRegistry
    auth_server: AuthorizationServer


def build_services(settings: Settings) -> Services:
    client = OpenClawClient(
        settings.openclaw_url,
        gateway_token=settings.gateway_token,
        timeout=settings.gateway_timeout_seconds,
        model=settings.gateway_model,
    )
    store = TaskStore(max_tasks=settings.max_tasks)
    clients = ClientRegistry.from_settings(settings)
    return Services(
        settings=settings,
        store=store,
        worker=build_worker(store, client),
        client=client,
        clients=clients,
        auth_server=AuthorizationServer(clients),
    )


def create_mcp(services: Services) -> FastMCP:
    mcp = FastMCP(name=SERVER_NAME)
    register_tools(mcp, services)
    return mcp


def _mcp_path(transport: str) -> str:
    return "/sse" if transport == "sse" else "/mcp"


def create_app(services: Services, mcp: Optional[FastMCP] = None) -> Starlette:
    """
    Build the Starlette application for the http and sse transports.

    Args:
        services: Shared services from build_services()
        mcp: MCP server instance; created with create_mcp() when omitted

    Returns:
        Starlette app serving /health, the OAuth endpoints (when auth is
        enabled) and the MCP endpoint
    """
    settings = services.settings
    mcp = mcp or create_mcp(services)
    mcp_path = _mcp_path(settings.transport)
    mcp_app = mcp.http_app(path=mcp_path, transport=settings.transport)

    async def health(request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "server": SERVER_NAME,
                "version": __version__,
                "transport": settings.transport,
                "auth": settings.auth_enabled,
            }
        )

    routes = [Route("/health", health, methods=["GET"])]
    middleware = []

    if settings.auth_enabled:
        endpoints = OAuthEndpoints(
            services.auth_server,
            issuer_url=settings.issuer_url,
            resource_path=mcp_path,
        )
        routes.extend(endpoints.routes())
        middleware.append(
            Middleware(
                BearerAuthMiddleware,
                auth_server=services.auth_server,
                issuer_url=settings.issuer_url,
            )
        )
    else:
        logger.warning("⚠️  OAuth is DISABLED: the MCP endpoint is open to anyone who can reach it")

    routes.append(Mount("/", app=mcp_app))

    @asynccontextmanager
    async def lifespan(app: Starlette):
        async with mcp_app.lifespan(app):
            services.store.start_cleanup()
            if settings.auth_enabled:
                services.auth_server.start_reaper()
            try:
                yield
            finally:
                await services.worker.aclose()
                await services.store.stop_cleanup()
                await services.auth_server.stop_reaper()
                await services.client.aclose()
                logger.info("OpenClaw MCP server shut down")

    return Starlette(routes=routes, middleware=middleware, lifespan=lifespan)


def log_startup(settings: Settings) -> None:
    logger.info(f"🚀 OpenClaw MCP Server v{__version__}")
    logger.info(f"✓ OpenClaw gateway: {settings.openclaw_url}")
    logger.info(f"✓ Transport: {settings.transport}")
    if settings.is_remote:
        base = settings.issuer_url or f"http://{settings.host}:{settings.port}"
        logger.info(f"✓ MCP endpoint: {base}{_mcp_path(settings.transport)}")
        if settings.auth_enabled:
            logger.info(f"🔐 OAuth 2.1 enabled for client {settings.client_id}")
            logger.info(f"✓ Authorization server metadata: {base}/.well-known/oauth-authorization-server")


async def run_stdio(services: Services) -> None:
    """Serve MCP over stdin/stdout until the client disconnects."""
    mcp = create_mcp(services)
    services.store.start_cleanup()
    try:
        await mcp.run_async(transport="stdio")
    finally:
        await services.worker.aclose()
        await services.store.stop_cleanup()
        await services.client.aclose()


async def serve_http(services: Services) -> None:
    """Run uvicorn with explicit signal handling for graceful shutdown."""
    settings = services.settings
    app = create_app(services)

    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=settings.uvicorn_access_log,
        timeout_graceful_shutdown=settings.shutdown_timeout_seconds,
    )
    server = uvicorn.Server(config)

    loop = asyncio.get_running_loop()

    def handle_exit(sig: int, *_: object) -> None:
        logger.info(f"Received signal {sig}, initiating graceful shutdown")
        server.should_exit = True

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handle_exit, sig)
        except NotImplementedError:
            # Non-POSIX platforms
            pass

    logger.info(f"🌐 Starting Uvicorn on {settings.host}:{settings.port}")
    logger.info(f"✓ Graceful shutdown timeout: {settings.shutdown_timeout_seconds}s")
    await server.serve()
