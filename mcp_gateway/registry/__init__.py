"""
Service Registry 패키지
서비스 정의 로딩(definitions), 등록/제거(service_registry), 디렉터리 감시(watcher)
"""

from mcp_gateway.registry.definitions import (
    Endpoint,
    MediaTypeSpec,
    Parameter,
    RequestBodySpec,
    ServiceDefinition,
    load_service_definition,
    parse_service_definition,
)

__all__ = [
    "Endpoint",
    "MediaTypeSpec",
    "Parameter",
    "RequestBodySpec",
    "ServiceDefinition",
    "load_service_definition",
    "parse_service_definition",
]
