"""
Gateway Routes
OpenAPI 문서 엔드포인트와 나머지 모든 경로를 받는 프록시 엔드포인트
"""

import logging
from typing import List, Tuple

from fastapi import APIRouter, Request, Response
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from mcp_gateway.exceptions import ClientDisconnected
from mcp_gateway.openapi.synthesizer import build_openapi_spec, render_openapi_spec
from mcp_gateway.proxy.reverse_proxy import InboundRequest, ReverseProxy
from mcp_gateway.registry.service_registry import ServiceRegistry

logger = logging.getLogger(__name__)

router = APIRouter()

OPENAPI_PATH = "/openapi.json"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Requested-With",
    "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
}


def get_registry(request: Request) -> ServiceRegistry:
    """lifespan 에서 생성된 레지스트리"""
    return request.app.state.registry


def get_proxy(request: Request) -> ReverseProxy:
    return request.app.state.proxy


def preflight_response() -> Response:
    """CORS pre-flight 응답 (204)"""
    return Response(status_code=204, headers=CORS_HEADERS)


def external_base_url(request: Request) -> str:
    """
    외부에서 보이는 게이트웨이 주소

    scheme 은 X-Forwarded-Proto 우선, 없으면 전송 계층 보안 여부,
    host 는 인바운드 요청의 Host 헤더.
    """
    scheme = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("host") or request.url.netloc
    return f"{scheme}://{host}"


async def wait_for_disconnect(request: Request) -> None:
    """호출자 연결 종료까지 대기 (요청 바디를 모두 읽은 뒤 사용)"""
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def inbound_from_request(request: Request) -> InboundRequest:
    body = b"" if request.method == "HEAD" else await request.body()
    return InboundRequest(
        method=request.method,
        # request.url.path 는 디코딩된 "?" 에서 잘리므로 scope 값을 그대로 사용
        path=request.scope["path"],
        query_string=request.scope.get("query_string", b"").decode("latin-1"),
        headers=[(name, value) for name, value in request.headers.items()],
        host=request.headers.get("host") or request.url.netloc,
        scheme=request.url.scheme,
        body=body,
    )


def _to_bytes(value: str) -> bytes:
    try:
        return value.encode("latin-1")
    except UnicodeEncodeError:
        return value.encode("utf-8")


def _encode_headers(headers: List[Tuple[str, str]]) -> List[Tuple[bytes, bytes]]:
    """백엔드 응답 헤더 + (백엔드가 지정하지 않은) CORS 헤더"""
    raw = [(_to_bytes(name.lower()), _to_bytes(value)) for name, value in headers]
    present = {name for name, _ in raw}
    for name, value in CORS_HEADERS.items():
        key = name.lower().encode("latin-1")
        if key not in present:
            raw.append((key, value.encode("latin-1")))
    return raw


# ============================================================================
# OpenAPI 문서
# ============================================================================

async def openapi_document(request: Request) -> Response:
    """
    활성 서비스 전체의 통합 OpenAPI 문서

    레지스트리의 한 시점 스냅샷으로 생성되며 백엔드를 호출하지 않습니다.
    """
    if request.method == "OPTIONS":
        return preflight_response()

    spec = build_openapi_spec(get_registry(request), external_base_url(request))
    return Response(
        content=render_openapi_spec(spec),
        media_type="application/json",
        headers=CORS_HEADERS,
    )


# ============================================================================
# Proxy (catch-all)
# ============================================================================

async def proxy_request(request: Request) -> Response:
    """
    등록된 서비스로 요청 프록시

    - 매칭 없음: 404 (RouteNotFound 예외 핸들러)
    - 백엔드 실패/타임아웃: 502 (BackendError 예외 핸들러)
    - 호출자 연결 종료: 백엔드 호출 취소, 응답 없음
    """
    if request.method == "OPTIONS":
        return preflight_response()

    inbound = await inbound_from_request(request)
    try:
        result = await get_proxy(request).forward(inbound, lambda: wait_for_disconnect(request))
    except ClientDisconnected:
        # 응답을 받을 호출자가 없음
        return Response(status_code=499)

    request.state.service = result.route.service.name
    response = StreamingResponse(
        result.body,
        status_code=result.status_code,
        background=BackgroundTask(result.aclose),
    )
    response.raw_headers = _encode_headers(result.headers)
    return response


# 메서드 제한 없이 등록 (정의에 선언된 임의의 메서드, 예: PURGE 도 프록시)
router.add_route(OPENAPI_PATH, openapi_document, methods=None, include_in_schema=False)
router.add_route("/{full_path:path}", proxy_request, methods=None, include_in_schema=False)
