"""
Path Template
엔드포인트 경로 템플릿("/weather/{city}")을 세그먼트 목록으로 컴파일하고
요청 경로와 매칭
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


class PathTemplateError(ValueError):
    """잘못된 경로 템플릿"""


@dataclass(frozen=True)
class PathSegment:
    """경로 세그먼트 (리터럴 또는 이름 있는 파라미터)"""
    value: str              # 리터럴 토큰 또는 파라미터 이름
    is_param: bool = False


def compile_path(template: str) -> Tuple[PathSegment, ...]:
    """
    경로 템플릿 컴파일

    Args:
        template: "/" 로 시작하는 경로 템플릿

    Returns:
        세그먼트 튜플 (루트 "/" 는 빈 튜플)

    Raises:
        PathTemplateError: 빈 경로, 선행 "/" 누락, 빈 세그먼트, 짝이 맞지 않는 중괄호
    """
    if not template:
        raise PathTemplateError("path cannot be empty")
    if not template.startswith("/"):
        raise PathTemplateError(f"path must start with '/' (got {template!r})")

    trimmed = template.strip("/")
    if not trimmed:
        return ()

    segments: List[PathSegment] = []
    for part in trimmed.split("/"):
        if not part:
            raise PathTemplateError(f"path {template!r} contains empty segment")
        if "{" in part or "}" in part:
            if part.startswith("{") and part.endswith("}"):
                name = part[1:-1].strip()
                if not name:
                    raise PathTemplateError(f"path {template!r} contains empty parameter name")
                if "{" in name or "}" in name:
                    raise PathTemplateError(f"path segment {part!r} has unmatched braces")
                segments.append(PathSegment(name, is_param=True))
                continue
            raise PathTemplateError(f"path segment {part!r} has unmatched braces")
        segments.append(PathSegment(part))
    return tuple(segments)


def extract_param_names(template: str) -> List[str]:
    """템플릿의 파라미터 이름 목록 (경로 순서)"""
    return [seg.value for seg in compile_path(template) if seg.is_param]


def split_request_path(path: str) -> List[str]:
    """요청 경로를 세그먼트로 분리 (앞뒤 "/" 제거, 루트는 빈 리스트)"""
    trimmed = path.strip("/")
    if not trimmed:
        return []
    return trimmed.split("/")


def match_segments(
    segments: Tuple[PathSegment, ...],
    parts: List[str],
) -> Optional[Tuple[str, Dict[str, str]]]:
    """
    컴파일된 세그먼트와 요청 세그먼트 매칭

    Args:
        segments: compile_path 결과
        parts: split_request_path 결과

    Returns:
        (전달 경로, 파라미터 값 dict) 또는 None (불일치)
    """
    if len(parts) != len(segments):
        return None
    if not segments:
        return "/", {}

    matched: List[str] = []
    params: Dict[str, str] = {}
    for seg, part in zip(segments, parts):
        if seg.is_param:
            if not part:
                return None
            matched.append(part)
            params[seg.value] = part
            continue
        if seg.value != part:
            return None
        matched.append(seg.value)
    return "/" + "/".join(matched), params
