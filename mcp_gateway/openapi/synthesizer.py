"""
OpenAPI Synthesizer
레지스트리의 일관된 스냅샷 하나로부터 통합 OpenAPI 3.1 문서 생성

I/O 없이 이미 검증된 메타데이터만 변환하므로 레지스트리가 바뀌지 않으면
render_openapi_spec 결과는 바이트 단위로 동일합니다.
"""

import json
import re
from typing import Any, Dict, Iterable, List, Optional

from mcp_gateway.registry.definitions import (
    Endpoint,
    Parameter,
    RequestBodySpec,
    ServiceDefinition,
)
from mcp_gateway.registry.service_registry import ServiceRegistry

OPENAPI_VERSION = "3.1.0"
DOCUMENT_TITLE = "Local MCP Gateway"
DOCUMENT_VERSION = "1.0.0"
DOCUMENT_DESCRIPTION = "Auto-generated OpenAPI schema for locally discovered MCP servers."

_NON_IDENTIFIER = re.compile(r"[^A-Za-z0-9_]")
_UNDERSCORES = re.compile(r"_+")


def build_openapi_spec(registry: ServiceRegistry, base_url: str) -> Dict[str, Any]:
    """
    레지스트리 전체로 OpenAPI 문서 생성

    문서 생성 전체 구간 동안 공유 읽기 락을 유지하여 한 시점의 상태만 반영합니다.

    Args:
        registry: ServiceRegistry
        base_url: 외부에서 보이는 게이트웨이 주소 (servers[0].url)

    Returns:
        OpenAPI 문서 dict
    """
    with registry.read_lock() as services:
        return build_openapi_document(services, base_url)


def build_openapi_document(services: Iterable[ServiceDefinition], base_url: str) -> Dict[str, Any]:
    """서비스 목록으로 OpenAPI 문서 생성 (서비스 이름순)"""
    ordered = sorted(services, key=lambda s: s.name)

    spec: Dict[str, Any] = {
        "openapi": OPENAPI_VERSION,
        "info": {
            "title": DOCUMENT_TITLE,
            "version": DOCUMENT_VERSION,
            "description": DOCUMENT_DESCRIPTION,
        },
        "servers": [{"url": base_url}],
    }

    if ordered:
        tags = []
        for service in ordered:
            tag = {"name": service.name}
            if service.description:
                tag["description"] = service.description
            tags.append(tag)
        spec["tags"] = tags

    paths: Dict[str, Dict[str, Any]] = {}
    for service in ordered:
        for endpoint in service.endpoints:
            method = endpoint.method.lower()
            if not method:
                continue
            paths.setdefault(endpoint.path, {})[method] = build_operation(service, endpoint)
    spec["paths"] = paths
    return spec


def build_operation(service: ServiceDefinition, endpoint: Endpoint) -> Dict[str, Any]:
    """엔드포인트 하나의 operation 객체"""
    method = endpoint.method.lower()
    operation: Dict[str, Any] = {
        "summary": endpoint.description or f"{endpoint.method.upper()} {endpoint.path}",
        "description": build_operation_description(service, endpoint),
        "operationId": endpoint.operation_id or generate_operation_id(service.name, method, endpoint.path),
        "tags": [service.name],
    }

    parameters = convert_parameters(endpoint.parameters)
    if parameters:
        operation["parameters"] = parameters

    request_body = convert_request_body(endpoint.request_body)
    if request_body is not None:
        operation["requestBody"] = request_body

    operation["responses"] = {
        "200": {"description": "Successful response."},
        "default": {"description": "Unexpected error."},
    }
    operation["x-service-name"] = service.name
    operation["x-service-address"] = service.address
    return operation


def build_operation_description(service: ServiceDefinition, endpoint: Endpoint) -> str:
    parts = []
    if endpoint.description:
        parts.append(endpoint.description)
    if service.description:
        parts.append(f"Service description: {service.description}")
    parts.append(f"Requests are proxied to {service.address}{endpoint.path}")
    return "\n\n".join(parts)


def convert_parameters(parameters: Iterable[Parameter]) -> List[Dict[str, Any]]:
    """(location, name) 순으로 정렬된 파라미터 목록"""
    result = []
    for param in sorted(parameters, key=lambda p: (p.location, p.name)):
        item: Dict[str, Any] = {
            "name": param.name,
            "in": param.location,
            "required": param.required,
        }
        if param.description:
            item["description"] = param.description
        if param.schema:
            item["schema"] = param.schema
        result.append(item)
    return result


def convert_request_body(body: Optional[RequestBodySpec]) -> Optional[Dict[str, Any]]:
    """요청 바디 정의 (스키마/예시가 모두 없는 미디어 타입은 제외)"""
    if body is None:
        return None

    content: Dict[str, Any] = {}
    for media_type, definition in body.content.items():
        if definition.schema is None and definition.example is None:
            continue
        media: Dict[str, Any] = {}
        if definition.schema is not None:
            media["schema"] = definition.schema
        if definition.example is not None:
            media["example"] = definition.example
        content[media_type] = media
    if not content:
        return None

    result: Dict[str, Any] = {}
    if body.description:
        result["description"] = body.description
    if body.required:
        result["required"] = True
    result["content"] = content
    return result


def generate_operation_id(service_name: str, method: str, path: str) -> str:
    """
    서비스 이름, 메서드, 경로로 결정적인 operationId 생성

    예: ("weather", "get", "/weather/{city}") → "weather_get_weather_city"
    """
    sanitized = path.replace("{", "").replace("}", "")
    sanitized = _NON_IDENTIFIER.sub("_", sanitized)
    sanitized = _UNDERSCORES.sub("_", sanitized).strip("_")
    if not sanitized:
        sanitized = "root"
    return f"{service_name}_{method.lower()}_{sanitized}"


def render_openapi_spec(spec: Dict[str, Any]) -> bytes:
    """OpenAPI 문서를 JSON 바이트로 직렬화 (2칸 들여쓰기, UTF-8)"""
    return json.dumps(spec, indent=2, ensure_ascii=False).encode("utf-8")
