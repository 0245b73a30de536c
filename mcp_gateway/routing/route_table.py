"""
Route Table
서비스 정의 전체로부터 method → Route 목록 인덱스를 만들고 요청을 매칭
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from mcp_gateway.exceptions import RouteNotFound
from mcp_gateway.registry.definitions import Endpoint, ServiceDefinition
from mcp_gateway.routing.path_template import (
    PathSegment,
    PathTemplateError,
    compile_path,
    match_segments,
    split_request_path,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Route:
    """엔드포인트 경로 템플릿의 컴파일된 형태"""
    service: ServiceDefinition
    endpoint: Endpoint
    segments: Tuple[PathSegment, ...]

    @classmethod
    def from_endpoint(cls, service: ServiceDefinition, endpoint: Endpoint) -> "Route":
        return cls(service=service, endpoint=endpoint, segments=compile_path(endpoint.path))


@dataclass(frozen=True)
class RouteMatch:
    """라우팅 결과"""
    service: ServiceDefinition
    endpoint: Endpoint
    forward_path: str
    path_params: Dict[str, str] = field(default_factory=dict)


class RouteTable:
    """
    method 별 Route 버킷

    항상 전체 서비스 집합에서 한 번에 생성되며 생성 후 변경되지 않습니다.
    레지스트리는 재빌드 시 테이블 자체를 교체합니다.
    """

    def __init__(self, routes: Optional[Dict[str, List[Route]]] = None):
        self._routes: Dict[str, Tuple[Route, ...]] = {
            method: tuple(bucket) for method, bucket in (routes or {}).items()
        }

    @classmethod
    def build(cls, services: Iterable[ServiceDefinition]) -> "RouteTable":
        """
        서비스 정의 전체로부터 라우트 테이블 생성

        컴파일할 수 없는 엔드포인트는 로그를 남기고 제외합니다.
        """
        routes: Dict[str, List[Route]] = {}
        for service in services:
            for endpoint in service.endpoints:
                try:
                    route = Route.from_endpoint(service, endpoint)
                except PathTemplateError as e:
                    logger.warning(
                        f"Skipping endpoint {endpoint.method} {endpoint.path}: {e}",
                        extra={"service": service.name},
                    )
                    continue
                routes.setdefault(endpoint.method.upper(), []).append(route)
        return cls(routes)

    def match(self, method: str, path: str) -> RouteMatch:
        """
        (method, path) 매칭

        Args:
            method: HTTP 메서드
            path: 요청 경로 (쿼리 제외)

        Returns:
            RouteMatch

        Raises:
            RouteNotFound: 매칭되는 라우트 없음
        """
        method = method.upper()
        candidates = self._routes.get(method, ())
        if not candidates and method == "HEAD":
            candidates = self._routes.get("GET", ())

        parts = split_request_path(path)
        for route in candidates:
            result = match_segments(route.segments, parts)
            if result is not None:
                forward_path, params = result
                return RouteMatch(
                    service=route.service,
                    endpoint=route.endpoint,
                    forward_path=forward_path,
                    path_params=params,
                )
        raise RouteNotFound(method, path)

    def routes_for(self, method: str) -> Tuple[Route, ...]:
        return self._routes.get(method.upper(), ())

    def methods(self) -> List[str]:
        return sorted(self._routes)

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._routes.values())
