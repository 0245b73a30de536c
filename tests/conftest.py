"""
Pytest Configuration
테스트 설정 및 Fixture 정의
"""

import os
import sys
from pathlib import Path
from textwrap import dedent

import pytest

# 경로 설정
sys.path.insert(0, str(Path(__file__).parent.parent))

# 로컬 .env / 셸 환경변수가 설정 테스트에 섞이지 않도록 제거
for _key in list(os.environ):
    if _key.startswith("CHATGPT_GATEWAY_"):
        del os.environ[_key]


# ============================================================================
# 마커 정의
# ============================================================================

def pytest_configure(config):
    """Pytest 설정 훅 - 마커 등록"""
    config.addinivalue_line(
        "markers",
        "unit: 단위 테스트 마커 (외부 의존성 없음)"
    )
    config.addinivalue_line(
        "markers",
        "integration: 통합 테스트 마커 (실제 파일시스템 감시 등)"
    )
    config.addinivalue_line(
        "markers",
        "slow: 느린 테스트 마커"
    )


# ============================================================================
# 서비스 정의 Fixture
# ============================================================================

WEATHER_YAML = dedent("""\
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
            schema:
              type: string
              enum: [metric, imperial]
""")

TODO_YAML = dedent("""\
    serviceName: todo
    serviceAddress: http://localhost:9002
    endpoints:
      - path: /todos
        method: get
      - path: /todos
        method: post
        description: Create a todo
        requestBody:
          required: true
          content:
            application/json:
              schema:
                type: object
                properties:
                  title: {type: string}
              example:
                title: Buy milk
""")


@pytest.fixture
def weather_yaml() -> str:
    return WEATHER_YAML


@pytest.fixture
def todo_yaml() -> str:
    return TODO_YAML


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    """빈 설정 디렉터리"""
    directory = tmp_path / "mcp_servers"
    directory.mkdir()
    return directory


@pytest.fixture
def write_definition(config_dir: Path):
    """설정 디렉터리에 YAML 파일을 쓰는 헬퍼"""

    def _write(filename: str, content: str) -> Path:
        path = config_dir / filename
        path.write_text(content, encoding="utf-8")
        return path

    return _write
