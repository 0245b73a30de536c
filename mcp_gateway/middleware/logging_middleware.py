"""
요청/응답 로깅 미들웨어
게이트웨이를 거치는 HTTP 요청마다 요청 ID를 부여하고 처리 결과를 한 줄로 기록합니다.
"""

import time
import uuid
from typing import Any, Callable, Dict, Iterable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from mcp_gateway.utils.logging_config import bind_request_id, get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
REDACTED = "***REDACTED***"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    요청/응답 로깅 미들웨어

    - X-Request-ID 재사용 또는 생성, 응답 헤더로 반환
    - 처리 결과 한 줄 로그: "GET /weather/Seoul -> 200 via weather (12.3ms)"
      (프록시된 요청은 라우트가 request.state.service 에 서비스 이름을 남김)
    - 5xx ERROR, 4xx WARNING, 그 외 INFO
    - 인증 관련 헤더 마스킹 (DEBUG 요청 로그)
    """

    SENSITIVE_HEADERS = frozenset({
        "authorization",
        "proxy-authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
    })

    def __init__(self, app: ASGIApp, skip_paths: Optional[Iterable[str]] = None) -> None:
        """
        Args:
            app: ASGI 애플리케이션
            skip_paths: 로그를 남기지 않을 경로 (요청 ID 는 그대로 부여)
        """
        super().__init__(app)
        self.skip_paths = frozenset(skip_paths or ())

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        bind_request_id(request_id)
        request.state.request_id = request_id

        if request.url.path in self.skip_paths:
            return await call_next(request)

        started = time.perf_counter()
        logger.debug(
            f"--> {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "query": request.url.query or None,
                "client": self._client_address(request),
                "headers": self._mask_headers(request.headers.items()),
            },
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"{request.method} {request.url.path} failed: {type(e).__name__}",
                extra={
                    **self._fields(request, started),
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
            )
            raise

        self._log_completed(request, response, started)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    def _fields(self, request: Request, started: float) -> Dict[str, Any]:
        return {
            "method": request.method,
            "path": request.url.path,
            "service": getattr(request.state, "service", None),
            "process_time": round(time.perf_counter() - started, 4),
        }

    def _log_completed(self, request: Request, response: Response, started: float) -> None:
        fields = self._fields(request, started)
        fields["status_code"] = response.status_code

        via = f" via {fields['service']}" if fields["service"] else ""
        message = (
            f"{request.method} {request.url.path} -> {response.status_code}{via} "
            f"({fields['process_time'] * 1000:.1f}ms)"
        )

        if response.status_code >= 500:
            logger.error(message, extra=fields)
        elif response.status_code >= 400:
            logger.warning(message, extra=fields)
        else:
            logger.info(message, extra=fields)

    @staticmethod
    def _client_address(request: Request) -> Optional[str]:
        """호출자 주소 (앞단 프록시가 있으면 X-Forwarded-For 첫 항목)"""
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        return request.client.host if request.client else None

    def _mask_headers(self, headers: Iterable) -> Dict[str, str]:
        return {
            name: REDACTED if name.lower() in self.SENSITIVE_HEADERS else value
            for name, value in headers
        }
