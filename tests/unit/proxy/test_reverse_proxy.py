"""
Reverse Proxy 단위 테스트

httpx.MockTransport 로 백엔드를 대체하여 헤더 처리, 타임아웃, 연결 종료 취소 검증
"""

import asyncio
import time

import httpx
import pytest

from mcp_gateway.exceptions import (
    BackendTimeout,
    BackendUnreachable,
    ClientDisconnected,
    RouteNotFound,
)
from mcp_gateway.proxy.reverse_proxy import (
    InboundRequest,
    ReverseProxy,
    build_forward_headers,
    build_target_url,
    filter_hop_by_hop,
)
from mcp_gateway.registry.service_registry import ServiceRegistry


@pytest.fixture
def registry(config_dir, write_definition, weather_yaml, todo_yaml) -> ServiceRegistry:
    write_definition("weather.yaml", weather_yaml)
    write_definition("todo.yaml", todo_yaml)
    registry = ServiceRegistry(config_dir)
    registry.load_existing()
    return registry


def make_proxy(registry, handler, timeout: float = 5.0) -> ReverseProxy:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ReverseProxy(registry, client=client, timeout=timeout)


async def read_body(response) -> bytes:
    chunks = [chunk async for chunk in response.body]
    await response.aclose()
    return b"".join(chunks)


def inbound(method: str = "GET", path: str = "/weather/Seoul", **kwargs) -> InboundRequest:
    kwargs.setdefault("host", "gateway.local:8080")
    return InboundRequest(method=method, path=path, **kwargs)


def slow_handler(delay: float):
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(delay)
        return httpx.Response(200, content=b"ok")
    return handler


class TestHeaderHelpers:
    """헤더 처리 함수 테스트"""

    def test_filter_hop_by_hop(self):
        headers = [
            ("Connection", "keep-alive, X-Custom-Hop"),
            ("Keep-Alive", "timeout=5"),
            ("Transfer-Encoding", "chunked"),
            ("Upgrade", "websocket"),
            ("TE", "trailers"),
            ("X-Custom-Hop", "1"),
            ("Content-Type", "application/json"),
            ("Set-Cookie", "a=1"),
            ("Set-Cookie", "b=2"),
        ]

        assert filter_hop_by_hop(headers) == [
            ("Content-Type", "application/json"),
            ("Set-Cookie", "a=1"),
            ("Set-Cookie", "b=2"),
        ]

    def test_forward_headers_set_forwarded_fields(self):
        request = inbound(
            headers=[("host", "gateway.local:8080"), ("accept", "application/json"), ("content-length", "0")],
            scheme="http",
        )

        headers = build_forward_headers(request)

        assert ("accept", "application/json") in headers
        assert ("X-Forwarded-Host", "gateway.local:8080") in headers
        assert ("X-Forwarded-Proto", "http") in headers
        names = [name.lower() for name, _ in headers]
        assert "host" not in names
        assert "content-length" not in names

    def test_forwarded_proto_preserved(self):
        """기존 X-Forwarded-Proto 는 유지"""
        request = inbound(headers=[("x-forwarded-proto", "https")], scheme="http")

        assert ("X-Forwarded-Proto", "https") in build_forward_headers(request)

    def test_forwarded_proto_from_tls(self):
        request = inbound(scheme="https")

        assert ("X-Forwarded-Proto", "https") in build_forward_headers(request)


class TestBuildTargetUrl:
    """build_target_url() 테스트"""

    def test_join_with_query(self):
        url = build_target_url("http://localhost:9001", "/weather/Seoul", "units=metric&x=%20y")

        assert str(url) == "http://localhost:9001/weather/Seoul?units=metric&x=%20y"

    def test_forward_path_replaces_base_path(self):
        """절대 경로 결합 (기본 주소의 경로는 대체됨)"""
        url = build_target_url("http://localhost:9001/api", "/todos")

        assert str(url) == "http://localhost:9001/todos"

    @pytest.mark.parametrize("forward_path, expected", [
        ("/weather/what?city", "/weather/what%3Fcity"),
        ("/weather/a#b", "/weather/a%23b"),
        ("/weather/New York", "/weather/New%20York"),
        ("/weather/100%", "/weather/100%25"),
        ("/weather/서울", "/weather/%EC%84%9C%EC%9A%B8"),
    ])
    def test_decoded_path_re_encoded(self, forward_path, expected):
        """디코딩된 매칭 값은 다시 인코딩되어 경로에 남음"""
        url = build_target_url("http://localhost:9001", forward_path, "units=metric")

        assert url.raw_path == f"{expected}?units=metric".encode("ascii")
        assert url.query == b"units=metric"


class TestReverseProxyForward:
    """forward() 테스트"""

    @pytest.mark.asyncio
    async def test_forward_get(self, registry):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            return httpx.Response(
                200,
                headers=[("Content-Type", "application/json"), ("Connection", "close"), ("X-Backend", "1")],
                content=b'{"temp": 21}',
            )

        proxy = make_proxy(registry, handler)
        response = await proxy.forward(inbound(
            query_string="units=metric",
            headers=[("host", "gateway.local:8080"), ("connection", "keep-alive"), ("x-trace", "t1")],
        ))

        assert response.status_code == 200
        assert response.route.service.name == "weather"
        assert await read_body(response) == b'{"temp": 21}'

        assert seen["url"] == "http://localhost:9001/weather/Seoul?units=metric"
        assert seen["headers"]["x-trace"] == "t1"
        assert seen["headers"]["x-forwarded-host"] == "gateway.local:8080"
        assert seen["headers"]["x-forwarded-proto"] == "http"
        assert seen["headers"]["host"] == "localhost:9001"

        names = [name for name, _ in response.headers]
        assert "connection" not in names
        assert "x-backend" in names

    @pytest.mark.asyncio
    async def test_forward_keeps_encoded_question_mark(self, registry):
        """경로 값의 "?" 는 쿼리로 잘리지 않고 %3F 로 전달"""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["raw_path"] = request.url.raw_path
            return httpx.Response(200, content=b"ok")

        proxy = make_proxy(registry, handler)
        response = await proxy.forward(inbound(path="/weather/what?city", query_string="units=metric"))

        assert response.route.path_params == {"city": "what?city"}
        assert await read_body(response) == b"ok"
        assert seen["raw_path"] == b"/weather/what%3Fcity?units=metric"

    @pytest.mark.asyncio
    async def test_forward_post_body(self, registry):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["body"] = request.content
            return httpx.Response(201, json={"id": 1})

        proxy = make_proxy(registry, handler)
        response = await proxy.forward(inbound(
            "POST", "/todos",
            headers=[("content-type", "application/json")],
            body=b'{"title": "milk"}',
        ))

        assert response.status_code == 201
        await response.aclose()
        assert seen == {"method": "POST", "body": b'{"title": "milk"}'}

    @pytest.mark.asyncio
    async def test_backend_error_status_passed_through(self, registry):
        """백엔드 에러 상태 코드는 그대로 전달"""
        proxy = make_proxy(registry, lambda request: httpx.Response(503, content=b"down"))

        response = await proxy.forward(inbound())

        assert response.status_code == 503
        assert await read_body(response) == b"down"

    @pytest.mark.asyncio
    async def test_head_uses_get_route_without_body(self, registry):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["body"] = request.content
            return httpx.Response(200, headers={"Content-Length": "12"}, content=b"")

        proxy = make_proxy(registry, handler)
        response = await proxy.forward(inbound("HEAD", body=b"ignored"))

        assert seen == {"method": "HEAD", "body": b""}
        assert await read_body(response) == b""

    @pytest.mark.asyncio
    async def test_route_not_found(self, registry):
        handler_calls = []
        proxy = make_proxy(registry, lambda request: handler_calls.append(request))

        with pytest.raises(RouteNotFound):
            await proxy.forward(inbound("GET", "/nowhere"))
        assert handler_calls == []


class TestReverseProxyFailures:
    """백엔드 실패 / 타임아웃 / 연결 종료 테스트"""

    @pytest.mark.asyncio
    async def test_unreachable_backend(self, registry):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        proxy = make_proxy(registry, handler)

        with pytest.raises(BackendUnreachable) as exc_info:
            await proxy.forward(inbound())
        assert exc_info.value.service == "weather"

    @pytest.mark.asyncio
    async def test_response_within_timeout(self, registry):
        """타임아웃 안의 응답은 성공"""
        proxy = make_proxy(registry, slow_handler(0.05), timeout=1.0)

        response = await proxy.forward(inbound())

        assert await read_body(response) == b"ok"

    @pytest.mark.asyncio
    async def test_timeout_boundary(self, registry):
        """설정한 타임아웃 시점에 BackendTimeout (더 이르지도, 한참 늦지도 않게)"""
        timeout = 0.3
        proxy = make_proxy(registry, slow_handler(5.0), timeout=timeout)

        started = time.perf_counter()
        with pytest.raises(BackendTimeout) as exc_info:
            await proxy.forward(inbound())
        elapsed = time.perf_counter() - started

        assert timeout - 0.01 <= elapsed < timeout + 0.5
        assert exc_info.value.service == "weather"

    @pytest.mark.asyncio
    async def test_client_disconnect_cancels_backend_call(self, registry):
        cancelled = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return httpx.Response(200)

        async def disconnect():
            await asyncio.sleep(0.05)

        proxy = make_proxy(registry, handler, timeout=5.0)

        with pytest.raises(ClientDisconnected):
            await proxy.forward(inbound(), disconnect)
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_body_truncated_at_deadline(self, registry):
        """바디 스트리밍이 전체 타임아웃을 넘으면 잘라냄"""

        async def chunks():
            yield b"first"
            await asyncio.sleep(2.0)
            yield b"second"

        proxy = make_proxy(registry, lambda request: httpx.Response(200, content=chunks()), timeout=0.3)

        response = await proxy.forward(inbound())

        assert await read_body(response) == b"first"

    @pytest.mark.asyncio
    async def test_owned_client_closed(self, registry):
        proxy = ReverseProxy(registry, timeout=1.0)

        await proxy.aclose()

        assert proxy._client.is_closed
