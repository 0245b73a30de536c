"""
라우팅 패키지
경로 템플릿 컴파일 및 (method, path) 매칭
"""

from mcp_gateway.routing.path_template import (
    PathSegment,
    PathTemplateError,
    compile_path,
    extract_param_names,
)

__all__ = [
    "PathSegment",
    "PathTemplateError",
    "compile_path",
    "extract_param_names",
]
