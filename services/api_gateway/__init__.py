"""
API Gateway Package
MCP 서비스 프록시 및 통합 OpenAPI 문서 제공
"""

import sys
from pathlib import Path

# 프로젝트 루트를 sys.path에 추가 (필요시)
_project_root = Path(__file__).parent.parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))


def __getattr__(name: str):
    """지연 import 지원 (main 모듈은 import 시 앱을 생성하므로)"""
    if name in ("app", "create_app"):
        from services.api_gateway import main
        return getattr(main, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["app", "create_app"]
