"""
API Gateway 테스트 설정
pytest fixtures 및 공통 설정
"""

import sys
from pathlib import Path
from textwrap import dedent

# 프로젝트 루트를 sys.path에 추가
_current_dir = Path(__file__).parent.resolve()
_project_root = _current_dir.parent.parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import httpx
import pytest
from fastapi.testclient import TestClient

from mcp_gateway.config import AppSettings

WEATHER_YAML = dedent("""\
    serviceName: weather
    serviceAddress: http://weather.backend:9001
    description: Weather forecasts
    endpoints:
      - path: /weather/{city}
        method: get
        description: Current weather for a city
        parameters:
          - name: units
            in: query
""")

TODO_YAML = dedent("""\
    serviceName: todo
    serviceAddress: http://todo.backend:9002
    endpoints:
      - path: /todos
        method: get
      - path: /todos
        method: post
        requestBody:
          content:
            application/json:
              schema: {type: object}
""")


class BackendStub:
    """
    httpx.MockTransport 용 백엔드 스텁

    받은 요청을 기록하고 handler 로 응답을 만듭니다.
    """

    def __init__(self):
        self.requests = []
        self.handler = self.default_handler

    def default_handler(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"backend": request.url.host, "path": request.url.path},
            headers={"X-Backend": request.url.host, "Keep-Alive": "timeout=5"},
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "mcp_servers"
    directory.mkdir()
    (directory / "weather.yaml").write_text(WEATHER_YAML, encoding="utf-8")
    (directory / "todo.yaml").write_text(TODO_YAML, encoding="utf-8")
    return directory


@pytest.fixture
def settings(config_dir: Path) -> AppSettings:
    return AppSettings(_env_file=None, config=str(config_dir), proxy_timeout=2.0)


@pytest.fixture
def backend() -> BackendStub:
    return BackendStub()


@pytest.fixture
def client(settings, backend):
    """감시 비활성화, 백엔드는 MockTransport 로 대체한 게이트웨이"""
    from services.api_gateway.main import create_app

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    app = create_app(settings, http_client=http_client, watch=False)
    with TestClient(app) as test_client:
        yield test_client
