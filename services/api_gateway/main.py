"""
Local MCP Gateway - API Gateway
FastAPI 기반 동적 서비스 게이트웨이

설정 디렉터리의 MCP 서버 정의(YAML)를 감시하여
- /openapi.json : 활성 서비스 전체의 통합 OpenAPI 문서
- 그 외 모든 경로 : 매칭되는 백엔드로 프록시
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mcp_gateway import __version__
from mcp_gateway.config import AppSettings, get_settings
from mcp_gateway.exceptions import BackendError, RouteNotFound
from mcp_gateway.middleware import RequestLoggingMiddleware
from mcp_gateway.proxy.reverse_proxy import ReverseProxy
from mcp_gateway.registry.service_registry import ServiceRegistry
from mcp_gateway.registry.watcher import DirectoryWatcher
from services.api_gateway.routes.gateway import CORS_HEADERS, router as gateway_router

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[AppSettings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    watch: bool = True,
) -> FastAPI:
    """
    게이트웨이 애플리케이션 생성

    Args:
        settings: 설정 (없으면 환경변수에서 로드)
        http_client: 백엔드 호출용 클라이언트 (없으면 lifespan 에서 생성/종료)
        watch: 설정 디렉터리 감시 여부

    Returns:
        FastAPI 애플리케이션
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """애플리케이션 라이프사이클 관리"""
        # Startup
        registry = ServiceRegistry(settings.config)
        # 디렉터리를 만들 수 없으면 GatewayStartupError 로 시작 중단
        registry.ensure_config_dir()
        services = registry.load_existing()

        watcher = None
        if watch:
            watcher = DirectoryWatcher(
                registry,
                load_delay=settings.load_settle_delay,
                rescan_delay=settings.rescan_settle_delay,
            )
            watcher.start()

        client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.proxy_timeout),
            follow_redirects=False,
        )
        proxy = ReverseProxy(registry, client=client, timeout=settings.proxy_timeout)

        app.state.settings = settings
        app.state.registry = registry
        app.state.proxy = proxy
        app.state.watcher = watcher

        if not services:
            logger.info(f"No services detected yet. Drop MCP YAML files into {registry.config_dir}")
        for service in services:
            logger.info(
                f"Service ready: {service.name} -> {service.address} ({len(service.endpoints)} endpoints)"
            )

        yield

        # Shutdown
        logger.info("Gateway shutting down...")
        if watcher is not None:
            watcher.stop()
        await proxy.aclose()
        if http_client is None:
            await client.aclose()

    app = FastAPI(
        title="Local MCP Gateway",
        description="로컬 MCP 서버 정의 기반 동적 프록시 및 OpenAPI 통합",
        version=__version__,
        lifespan=lifespan,
        # /openapi.json 은 게이트웨이가 직접 생성
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )

    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(RouteNotFound)
    async def route_not_found_handler(request: Request, exc: RouteNotFound):
        """매칭 엔드포인트 없음"""
        return JSONResponse(
            status_code=404,
            content={
                "status": "error",
                "code": 404,
                "detail": "no matching endpoint",
                "path": str(request.url.path),
            },
            headers=CORS_HEADERS,
        )

    @app.exception_handler(BackendError)
    async def backend_error_handler(request: Request, exc: BackendError):
        """백엔드 호출 실패 (재시도 없음)"""
        logger.error(f"proxy error: {exc.message}", extra={"service": exc.service})
        return JSONResponse(
            status_code=502,
            content={
                "status": "error",
                "code": 502,
                "detail": "proxy error",
                "path": str(request.url.path),
            },
            headers=CORS_HEADERS,
        )

    app.include_router(gateway_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    host, port = get_settings().resolve_listen_address()
    uvicorn.run(
        "services.api_gateway.main:app",
        host=host,
        port=port,
    )
