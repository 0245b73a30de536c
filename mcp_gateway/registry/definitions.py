"""
Service Definition Loader
MCP 서버 정의 YAML 파일을 검증된 ServiceDefinition으로 변환

설정 파일 형식 (파일 하나에 서비스 하나):

    serviceName: weather
    serviceAddress: http://localhost:9001/
    description: Weather forecasts
    endpoints:
      - path: /weather/{city}
        method: get
        description: Current weather for a city
        parameters:
          - name: units
            in: query
            schema: {type: string, enum: [metric, imperial]}
"""

import datetime as dt
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from mcp_gateway.exceptions import ConfigParseError, ValidationError
from mcp_gateway.routing.path_template import PathTemplateError, extract_param_names

# YAML 에서 온 스키마 조각 (null/bool/number/string/list/map 트리)
JSONValue = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]

DEFINITION_SUFFIXES = {".yaml", ".yml"}
PARAM_LOCATIONS = {"path", "query"}


def default_schema() -> Dict[str, Any]:
    return {"type": "string"}


@dataclass(frozen=True)
class Parameter:
    """엔드포인트 파라미터"""
    name: str
    location: str                       # "path" | "query"
    required: bool = False
    description: str = ""
    schema: Dict[str, Any] = field(default_factory=default_schema)


@dataclass(frozen=True)
class MediaTypeSpec:
    """요청 바디 미디어 타입 정의"""
    schema: Optional[Dict[str, Any]] = None
    example: JSONValue = None


@dataclass(frozen=True)
class RequestBodySpec:
    """요청 바디 정의"""
    description: str = ""
    required: bool = False
    content: Dict[str, MediaTypeSpec] = field(default_factory=dict)


@dataclass(frozen=True)
class Endpoint:
    """호출 가능한 method + path 쌍"""
    path: str
    method: str
    description: str = ""
    operation_id: str = ""
    parameters: Tuple[Parameter, ...] = ()
    request_body: Optional[RequestBodySpec] = None


@dataclass(frozen=True)
class ServiceDefinition:
    """백엔드 서비스 하나의 선언적 정의"""
    name: str
    address: str
    description: str = ""
    endpoints: Tuple[Endpoint, ...] = ()
    source: str = ""


def is_definition_file(path: Union[str, Path]) -> bool:
    """YAML 정의 파일 여부 (.yaml / .yml, 대소문자 무시)"""
    return Path(path).suffix.lower() in DEFINITION_SUFFIXES


def load_service_definition(path: Union[str, Path]) -> ServiceDefinition:
    """
    YAML 파일 하나를 읽어 ServiceDefinition 생성

    Args:
        path: 정의 파일 경로

    Returns:
        정규화/검증된 ServiceDefinition

    Raises:
        ConfigParseError: 파일을 읽을 수 없거나 YAML 문법 오류
        ValidationError: 필수 필드 누락 또는 잘못된 값
    """
    file_path = Path(path)
    source = str(file_path)
    if file_path.is_dir():
        raise ConfigParseError(f"{source} is a directory, expected a YAML file", source)
    try:
        content = file_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigParseError(f"unable to read {file_path.name}: {e}", source) from e
    return parse_service_definition(content, source)


def parse_service_definition(content: str, source: str = "<memory>") -> ServiceDefinition:
    """
    YAML 문자열을 ServiceDefinition으로 변환

    Args:
        content: YAML 문서
        source: 원본 식별자 (파일 경로)

    Returns:
        정규화/검증된 ServiceDefinition
    """
    name = Path(source).name
    try:
        raw = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"failed to parse {name}: {e}", source) from e

    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ConfigParseError(f"failed to parse {name}: top level must be a mapping", source)

    try:
        return _normalize_service(raw, source)
    except ValidationError as e:
        raise ValidationError(
            f"invalid service definition {name}: {e.message}", source, e.field
        ) from e


# ============================================================================
# 정규화 / 검증
# ============================================================================

def _normalize_service(raw: Mapping[str, Any], source: str) -> ServiceDefinition:
    service_name = _text(raw.get("serviceName"), "serviceName")
    if not service_name:
        raise ValidationError("serviceName is required", field="serviceName")

    address = _text(raw.get("serviceAddress"), "serviceAddress")
    if not address:
        raise ValidationError("serviceAddress is required", field="serviceAddress")
    address = address.rstrip("/")
    if not address:
        raise ValidationError("serviceAddress is invalid", field="serviceAddress")

    description = _text(raw.get("description"), "description")

    raw_endpoints = raw.get("endpoints")
    if raw_endpoints is None or raw_endpoints == []:
        raise ValidationError("service must define at least one endpoint", field="endpoints")
    if not isinstance(raw_endpoints, list):
        raise ValidationError("endpoints must be a list", field="endpoints")

    endpoints = tuple(
        _normalize_endpoint(item, index) for index, item in enumerate(raw_endpoints)
    )
    return ServiceDefinition(
        name=service_name,
        address=address,
        description=description,
        endpoints=endpoints,
        source=source,
    )


def _normalize_endpoint(raw: Any, index: int) -> Endpoint:
    if not isinstance(raw, Mapping):
        raise ValidationError(f"endpoint {index} must be a mapping", field=f"endpoints[{index}]")

    path = _text(raw.get("path"), f"endpoints[{index}].path")
    if not path:
        raise ValidationError(f"endpoint {index} path is required", field=f"endpoints[{index}].path")
    if not path.startswith("/"):
        path = "/" + path

    method = _text(raw.get("method"), f"endpoints[{index}].method").upper()
    if not method:
        raise ValidationError(
            f"endpoint {path} must define a method", field=f"endpoints[{index}].method"
        )

    try:
        placeholders = extract_param_names(path)
    except PathTemplateError as e:
        raise ValidationError(
            f"endpoint {method} {path} has invalid path: {e}", field=f"endpoints[{index}].path"
        ) from e

    parameters = _normalize_parameters(raw.get("parameters"), placeholders, method, path, index)

    return Endpoint(
        path=path,
        method=method,
        description=_text(raw.get("description"), f"endpoints[{index}].description"),
        operation_id=_text(raw.get("operationId"), f"endpoints[{index}].operationId"),
        parameters=parameters,
        request_body=_normalize_request_body(raw.get("requestBody"), index),
    )


def _normalize_parameters(
    raw: Any,
    placeholders: List[str],
    method: str,
    path: str,
    index: int,
) -> Tuple[Parameter, ...]:
    if raw is None:
        raw = []
    if not isinstance(raw, list):
        raise ValidationError(
            f"endpoint {method} {path} parameters must be a list",
            field=f"endpoints[{index}].parameters",
        )

    parameters: List[Parameter] = []
    seen = set()
    for p_index, item in enumerate(raw):
        field_prefix = f"endpoints[{index}].parameters[{p_index}]"
        if not isinstance(item, Mapping):
            raise ValidationError(
                f"endpoint {method} {path} parameter {p_index} must be a mapping", field=field_prefix
            )

        name = _text(item.get("name"), f"{field_prefix}.name")
        if not name:
            raise ValidationError(
                f"endpoint {method} {path} has a parameter with an empty name",
                field=f"{field_prefix}.name",
            )

        location = _text(item.get("in"), f"{field_prefix}.in").lower()
        if not location:
            location = "path" if name in placeholders else "query"
        if location not in PARAM_LOCATIONS:
            raise ValidationError(
                f"endpoint {method} {path} parameter {name} has unsupported location {location!r}",
                field=f"{field_prefix}.in",
            )

        # 같은 이름의 쿼리 파라미터는 허용, path 파라미터만 유일해야 함
        if location == "path" and (location, name) in seen:
            raise ValidationError(
                f"endpoint {method} {path} declares path parameter {name} more than once",
                field=f"{field_prefix}.name",
            )
        seen.add((location, name))

        schema = item.get("schema")
        if schema is None:
            schema = default_schema()
        elif not isinstance(schema, Mapping):
            raise ValidationError(
                f"endpoint {method} {path} parameter {name} schema must be a mapping",
                field=f"{field_prefix}.schema",
            )

        parameters.append(Parameter(
            name=name,
            location=location,
            # path 파라미터는 항상 필수
            required=True if location == "path" else _flag(item.get("required"), f"{field_prefix}.required"),
            description=_text(item.get("description"), f"{field_prefix}.description"),
            schema=to_json_value(schema),
        ))

    # 선언되지 않은 placeholder 는 기본 string 스키마로 보충
    for name in placeholders:
        if ("path", name) not in seen:
            seen.add(("path", name))
            parameters.append(Parameter(name=name, location="path", required=True))

    return tuple(parameters)


def _normalize_request_body(raw: Any, index: int) -> Optional[RequestBodySpec]:
    if raw is None:
        return None
    field_prefix = f"endpoints[{index}].requestBody"
    if not isinstance(raw, Mapping):
        raise ValidationError("requestBody must be a mapping", field=field_prefix)

    raw_content = raw.get("content") or {}
    if not isinstance(raw_content, Mapping):
        raise ValidationError("requestBody content must be a mapping", field=f"{field_prefix}.content")

    content: Dict[str, MediaTypeSpec] = {}
    for media_type, definition in raw_content.items():
        if definition is None:
            definition = {}
        if not isinstance(definition, Mapping):
            raise ValidationError(
                f"requestBody media type {media_type} must be a mapping",
                field=f"{field_prefix}.content.{media_type}",
            )
        schema = definition.get("schema")
        if schema is not None and not isinstance(schema, Mapping):
            raise ValidationError(
                f"requestBody media type {media_type} schema must be a mapping",
                field=f"{field_prefix}.content.{media_type}.schema",
            )
        content[str(media_type)] = MediaTypeSpec(
            schema=to_json_value(schema) if schema is not None else None,
            example=to_json_value(definition.get("example")),
        )

    # 미디어 타입이 하나도 없으면 바디 정의 자체를 버림
    if not content:
        return None

    return RequestBodySpec(
        description=_text(raw.get("description"), f"{field_prefix}.description"),
        required=_flag(raw.get("required"), f"{field_prefix}.required"),
        content=content,
    )


def _flag(value: Any, field_name: str) -> bool:
    """불리언 필드 (None → False, 문자열 "false" 등은 거부)"""
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a boolean", field=field_name)
    return value


def _text(value: Any, field_name: str) -> str:
    """스칼라 값을 공백 제거된 문자열로 변환 (None → "")"""
    if value is None:
        return ""
    if isinstance(value, (Mapping, list)):
        raise ValidationError(f"{field_name} must be a string", field=field_name)
    return str(value).strip()


def to_json_value(value: Any) -> JSONValue:
    """
    YAML 값을 JSON 직렬화 가능한 트리로 변환

    날짜/시간은 ISO-8601 문자열, 문자열이 아닌 키는 str 로 변환합니다.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (dt.datetime, dt.date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_json_value(v) for v in value]
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)
