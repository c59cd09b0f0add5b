import asyncio
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Optional

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from cache.core import ResponseCache
from config.logging import log_error
from config.settings import ProxySettings
from .aggregator import HeightAggregator
from .service import ProxyService
from .upstream import UpstreamClient

logger = structlog.get_logger()

SECURITY_HEADERS = {
    "X-Requested-With": "*",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "Referrer-Policy": "no-referrer",
}


class RoutingError(ValueError):
    """Path or body that cannot be turned into a daemon query."""
    pass


def parse_port(port: Optional[str]) -> Optional[int]:
    if port is None:
        return None
    try:
        value = int(port)
    except ValueError:
        raise RoutingError(f"invalid port {port!r}")
    if not 0 < value < 65536:
        raise RoutingError(f"port {value} out of range")
    return value


def get_service(request: Request) -> ProxyService:
    return request.app.state.service


def get_aggregator(request: Request) -> HeightAggregator:
    return request.app.state.aggregator


async def respond(request: Request, handler: Callable[[], Awaitable[Any]]) -> Response:
    """Serialize a core result as 200 JSON, or an empty 400 if the call itself broke."""
    try:
        return JSONResponse(await handler())
    except Exception as e:
        log_error(logger, e, {"method": request.method, "path": request.url.path})
        return Response(status_code=400)


def create_app(
    settings: Optional[ProxySettings] = None,
    client: Optional[UpstreamClient] = None
) -> FastAPI:
    """
    Build the proxy HTTP application.

    Args:
        settings: Proxy configuration, defaults to ``ProxySettings()``
        client: Upstream client, replaceable in tests

    Returns:
        The FastAPI app; the cache sweeper and upstream session live for
        the duration of its lifespan
    """
    settings = settings or ProxySettings()
    client = client if client is not None else UpstreamClient(
        request_timeout=settings.request_timeout,
        target_block_time=settings.target_block_time
    )
    cache = ResponseCache(default_ttl=settings.cache_ttl)
    service = ProxyService(client, cache=cache, settings=settings)
    aggregator = HeightAggregator(service, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = asyncio.create_task(cache.run_sweeper())
        logger.info("proxy_started", cache_ttl=settings.cache_ttl, seeds=len(aggregator.seeds))
        try:
            yield
        finally:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass
            await client.close()
            service.monitor.log_metrics()
            logger.info("proxy_stopped")

    app = FastAPI(title="TurtleCoin API Proxy", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.cache = cache
    app.state.service = service
    app.state.aggregator = aggregator

    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept"]
    )
    app.add_middleware(GZipMiddleware)

    @app.get("/")
    async def read_root():
        return Response(status_code=404)

    @app.get("/metrics")
    async def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/globalHeight")
    async def global_height(request: Request, aggregator: HeightAggregator = Depends(get_aggregator)):
        return await respond(request, aggregator.global_height)

    def add_daemon_routes(operation: str, method_name: str) -> None:
        """Register the three path shapes (default, node, node and port) for one GET operation."""

        async def default_node(request: Request, service: ProxyService = Depends(get_service)):
            return await respond(request, lambda: getattr(service, method_name)())

        async def named_node(request: Request, node: str, service: ProxyService = Depends(get_service)):
            return await respond(request, lambda: getattr(service, method_name)(node))

        async def node_and_port(request: Request, node: str, port: str,
                                service: ProxyService = Depends(get_service)):
            return await respond(request, lambda: getattr(service, method_name)(node, parse_port(port)))

        app.add_api_route(f"/{operation}", default_node, methods=["GET"], name=f"{operation}_default")
        app.add_api_route(f"/{{node}}/{operation}", named_node, methods=["GET"], name=f"{operation}_node")
        app.add_api_route(f"/{{node}}/{{port}}/{operation}", node_and_port, methods=["GET"],
                          name=f"{operation}_node_port")

    add_daemon_routes("getinfo", "get_info")
    add_daemon_routes("getheight", "get_height")
    add_daemon_routes("gettransactions", "get_transactions")
    add_daemon_routes("json_rpc", "get_json_rpc")

    async def read_rpc_body(request: Request) -> Any:
        try:
            return await request.json()
        except ValueError as e:
            raise RoutingError(f"request body is not valid JSON: {e}") from e

    @app.post("/json_rpc")
    async def post_json_rpc(request: Request, service: ProxyService = Depends(get_service)):
        async def handler():
            return await service.post_json_rpc(await read_rpc_body(request))
        return await respond(request, handler)

    @app.post("/{node}/json_rpc")
    async def post_json_rpc_node(request: Request, node: str, service: ProxyService = Depends(get_service)):
        async def handler():
            return await service.post_json_rpc(await read_rpc_body(request), node)
        return await respond(request, handler)

    @app.post("/{node}/{port}/json_rpc")
    async def post_json_rpc_node_port(request: Request, node: str, port: str,
                                      service: ProxyService = Depends(get_service)):
        async def handler():
            return await service.post_json_rpc(await read_rpc_body(request), node, parse_port(port))
        return await respond(request, handler)

    return app
