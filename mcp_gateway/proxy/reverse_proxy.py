"""
Reverse Proxy
매칭된 요청을 소유 백엔드로 전달하고 응답을 스트리밍으로 돌려줌

- hop-by-hop 헤더 제거, X-Forwarded-Host / X-Forwarded-Proto 설정
- 고정 전체 타임아웃 (응답 헤더 수신 + 바디 스트리밍)
- 호출자 연결 종료 시 백엔드 호출 취소
- 재시도 없음: 실패는 호출자에게 한 번만 보고
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Iterable, List, Optional, Tuple
from urllib.parse import quote

import httpx

from mcp_gateway.exceptions import (
    BackendTimeout,
    BackendUnreachable,
    ClientDisconnected,
)
from mcp_gateway.registry.service_registry import ServiceRegistry
from mcp_gateway.routing.route_table import RouteMatch

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0

# 경로 세그먼트에서 인코딩하지 않는 문자 (RFC 3986 pchar + "/")
PATH_SAFE_CHARS = "/:@!$&'()*+,;=-._~"

# 연결 구간에만 의미가 있는 헤더 (전달 시 제거)
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
})

# 대상 URL/바디에 맞춰 httpx 가 다시 계산하는 헤더
_RECOMPUTED_REQUEST_HEADERS = frozenset({"host", "content-length"})

Headers = List[Tuple[str, str]]


@dataclass
class InboundRequest:
    """프레임워크와 무관한 인바운드 요청 표현"""
    method: str
    path: str
    query_string: str = ""
    headers: Headers = field(default_factory=list)
    host: str = ""
    scheme: str = "http"
    body: bytes = b""


@dataclass
class ProxyResponse:
    """백엔드 응답 (바디는 스트리밍)"""
    status_code: int
    headers: Headers
    body: AsyncIterator[bytes]
    route: RouteMatch
    url: str
    _upstream: Optional[httpx.Response] = None

    async def aclose(self) -> None:
        """백엔드 응답 스트림 정리 (여러 번 호출해도 안전)"""
        if self._upstream is not None and not self._upstream.is_closed:
            await self._upstream.aclose()


def is_hop_by_hop(name: str) -> bool:
    return name.lower() in HOP_BY_HOP_HEADERS


def filter_hop_by_hop(headers: Iterable[Tuple[str, str]]) -> Headers:
    """
    hop-by-hop 헤더 제거

    Connection 헤더에 나열된 헤더 이름도 함께 제거합니다.
    """
    headers = list(headers)
    connection_tokens = set()
    for name, value in headers:
        if name.lower() == "connection":
            connection_tokens.update(
                token.strip().lower() for token in value.split(",") if token.strip()
            )
    return [
        (name, value)
        for name, value in headers
        if not is_hop_by_hop(name) and name.lower() not in connection_tokens
    ]


def build_forward_headers(inbound: InboundRequest) -> Headers:
    """
    백엔드로 보낼 요청 헤더 생성

    X-Forwarded-Host 는 항상 원래 Host, X-Forwarded-Proto 는 기존 값이 있으면 유지하고
    없으면 인바운드 전송 계층(https/http)에서 결정합니다.
    """
    forwarded_proto = None
    headers: Headers = []
    for name, value in filter_hop_by_hop(inbound.headers):
        lowered = name.lower()
        if lowered in _RECOMPUTED_REQUEST_HEADERS or lowered == "x-forwarded-host":
            continue
        if lowered == "x-forwarded-proto":
            if forwarded_proto is None and value:
                forwarded_proto = value
            continue
        headers.append((name, value))

    headers.append(("X-Forwarded-Host", inbound.host))
    headers.append(("X-Forwarded-Proto", forwarded_proto or ("https" if inbound.scheme == "https" else "http")))
    return headers


def build_target_url(address: str, forward_path: str, query_string: str = "") -> httpx.URL:
    """
    서비스 기본 주소에 전달 경로를 결합 (쿼리 문자열은 그대로 유지)

    전달 경로는 디코딩된 값이므로 다시 퍼센트 인코딩한 뒤 결합합니다.
    매칭 값 안의 "?", "#" 가 쿼리/프래그먼트로 잘려 나가지 않도록 "%3F", "%23" 으로 보냅니다.

    Raises:
        httpx.InvalidURL: 잘못된 서비스 주소
    """
    url = httpx.URL(address).join(quote(forward_path, safe=PATH_SAFE_CHARS))
    if query_string:
        url = url.copy_with(query=query_string.encode("latin-1"))
    return url


class ReverseProxy:
    """
    Reverse Proxy

    Usage:
        proxy = ReverseProxy(registry, timeout=60.0)
        response = await proxy.forward(inbound, wait_for_disconnect)
        async for chunk in response.body:
            ...
        await proxy.aclose()
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Args:
            registry: 라우트 조회용 ServiceRegistry
            client: 공유 httpx.AsyncClient (없으면 생성, 소유권 가짐)
            timeout: 백엔드 호출 전체 타임아웃 (초)
        """
        self.registry = registry
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=False,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def forward(
        self,
        inbound: InboundRequest,
        wait_for_disconnect: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> ProxyResponse:
        """
        인바운드 요청을 백엔드로 전달

        Args:
            inbound: 인바운드 요청
            wait_for_disconnect: 호출자 연결 종료 시 완료되는 코루틴 함수

        Returns:
            ProxyResponse (바디 스트림 소비 후 또는 aclose() 로 정리)

        Raises:
            RouteNotFound: 매칭 라우트 없음
            BackendTimeout: 타임아웃 초과
            BackendUnreachable: 전송 계층 실패
            ClientDisconnected: 백엔드 응답 전에 호출자 연결 종료
        """
        route = self.registry.match(inbound.method, inbound.path)
        service_name = route.service.name

        try:
            url = build_target_url(route.service.address, route.forward_path, inbound.query_string)
        except httpx.InvalidURL as e:
            raise BackendUnreachable(
                f"invalid service address for {service_name}: {e}", service=service_name
            ) from e

        method = inbound.method.upper()
        request = self._client.build_request(
            method,
            url,
            headers=build_forward_headers(inbound),
            content=None if method == "HEAD" else (inbound.body or None),
        )

        logger.info(
            f"proxy {method} {inbound.path} -> {url}",
            extra={"service": service_name, "target": str(url)},
        )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        upstream = await self._send(request, wait_for_disconnect, service_name, str(url))

        headers = filter_hop_by_hop(upstream.headers.multi_items())
        if method == "HEAD":
            await upstream.aclose()
            body = _empty_body()
        else:
            body = self._stream_body(upstream, deadline, service_name, str(url))

        return ProxyResponse(
            status_code=upstream.status_code,
            headers=headers,
            body=body,
            route=route,
            url=str(url),
            _upstream=upstream,
        )

    async def _send(
        self,
        request: httpx.Request,
        wait_for_disconnect: Optional[Callable[[], Awaitable[None]]],
        service_name: str,
        url: str,
    ) -> httpx.Response:
        """백엔드 호출과 호출자 연결 종료를 타임아웃 안에서 경쟁시킴"""
        send_task = asyncio.ensure_future(self._client.send(request, stream=True))
        disconnect_task = (
            asyncio.ensure_future(wait_for_disconnect()) if wait_for_disconnect else None
        )
        waiters = {send_task} | ({disconnect_task} if disconnect_task else set())

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=self.timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            await _cancel_send(send_task)
            raise
        finally:
            if disconnect_task is not None and not disconnect_task.done():
                disconnect_task.cancel()

        if disconnect_task is not None and disconnect_task in done:
            await _cancel_send(send_task)
            logger.info(f"Client disconnected, cancelled backend call to {url}")
            raise ClientDisconnected()

        if send_task not in done:
            await _cancel_send(send_task)
            logger.warning(f"Backend {service_name} timed out after {self.timeout}s ({url})")
            raise BackendTimeout(
                f"backend {service_name} did not respond within {self.timeout}s",
                service=service_name,
                url=url,
            )

        try:
            return send_task.result()
        except httpx.TimeoutException as e:
            logger.warning(f"Backend {service_name} timed out: {e!r}")
            raise BackendTimeout(
                f"backend {service_name} timed out: {e}", service=service_name, url=url
            ) from e
        except (httpx.HTTPError, OSError) as e:
            logger.error(f"Backend {service_name} unreachable: {e!r}")
            raise BackendUnreachable(
                f"backend {service_name} unreachable: {e}", service=service_name, url=url
            ) from e

    async def _stream_body(
        self,
        upstream: httpx.Response,
        deadline: float,
        service_name: str,
        url: str,
    ) -> AsyncIterator[bytes]:
        """백엔드 바디를 수정 없이 전달 (전체 타임아웃 초과 시 잘라내고 로그)"""
        if upstream.is_stream_consumed:
            # 트랜스포트가 바디를 미리 읽어 둔 응답 (예: 메모리 내 응답)
            try:
                if upstream.content:
                    yield upstream.content
            finally:
                await upstream.aclose()
            return

        loop = asyncio.get_running_loop()
        chunks = upstream.aiter_raw()
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise asyncio.TimeoutError()
                try:
                    chunk = await asyncio.wait_for(chunks.__anext__(), remaining)
                except StopAsyncIteration:
                    break
                yield chunk
        except asyncio.TimeoutError:
            logger.warning(f"Response body from {service_name} truncated at timeout ({url})")
        except httpx.HTTPError as e:
            logger.warning(f"Response body from {service_name} interrupted: {e!r}")
        finally:
            await upstream.aclose()


async def _cancel_send(task: "asyncio.Future[httpx.Response]") -> None:
    """진행 중인 백엔드 호출 취소 (그 사이 완료된 응답은 닫음)"""
    task.cancel()
    try:
        response = await task
    except (asyncio.CancelledError, Exception):
        return
    await response.aclose()


async def _empty_body() -> AsyncIterator[bytes]:
    return
    yield  # noqa: unreachable - 빈 async generator
