"""
게이트웨이 로깅 설정
표준 logging 위에 요청 ID 추적, JSON 출력(운영), 컬러 콘솔(개발)을 구성
"""

import contextvars
import copy
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

# 요청 단위 추적 ID (RequestLoggingMiddleware 에서 바인딩)
_request_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)

# LogRecord 기본 속성 (이외의 속성은 extra 로 취급)
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "request_id"}

# 게이트웨이 동작과 무관한 라이브러리 로그는 경고 이상만
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "watchdog")

CONSOLE_FORMAT = "%(asctime)s [%(levelname)-8s] [%(request_id)s] [%(name)s] %(message)s"
CONSOLE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def bind_request_id(request_id: Optional[str]) -> None:
    """현재 컨텍스트(요청 태스크)에 요청 ID 바인딩"""
    _request_id.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id.get()


class RequestIDFilter(logging.Filter):
    """레코드에 현재 요청 ID 부착 (요청 밖에서는 None)"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """logger.xxx(..., extra={...}) 로 전달된 필드"""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS
    }


class JSONFormatter(logging.Formatter):
    """한 줄에 레코드 하나씩 JSON 으로 출력"""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = getattr(record, "request_id", None)
        if request_id:
            payload["request_id"] = request_id

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = _extra_fields(record)
        if extra:
            payload["extra"] = extra

        # Path, 예외 객체 등은 문자열로
        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """
    컬러 콘솔 포매터 (개발용)

    요청 밖에서 남긴 로그는 요청 ID 자리에 "-" 를 출력합니다.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self):
        super().__init__(fmt=CONSOLE_FORMAT, datefmt=CONSOLE_DATEFMT)

    def format(self, record: logging.LogRecord) -> str:
        # 같은 레코드를 받는 파일(JSON) 핸들러에 색상 코드가 남지 않도록 복사본에 적용
        colored = copy.copy(record)
        colored.request_id = getattr(record, "request_id", None) or "-"
        color = self.COLORS.get(record.levelname)
        if color:
            colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def _handler(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.addFilter(RequestIDFilter())
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_output: bool = False,
    service_name: str = "mcp_gateway",
) -> None:
    """
    로깅 시스템 초기화

    Args:
        level: 로그 레벨 (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: 로그 파일 경로 (None이면 파일 출력 없음, 파일은 항상 JSON)
        json_output: 콘솔 JSON 출력 여부 (False이면 컬러 콘솔)
        service_name: 시작 로그에 표시할 서비스 이름
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_formatter = JSONFormatter() if json_output else ColoredFormatter()
    root_logger.addHandler(_handler(logging.StreamHandler(sys.stdout), console_formatter))

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        root_logger.addHandler(
            _handler(logging.FileHandler(log_file, encoding="utf-8"), JSONFormatter())
        )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(f"Logging initialized: {service_name}, level={level.upper()}")


def get_logger(name: str) -> logging.Logger:
    """
    named logger 반환

    Args:
        name: 로거 이름 (보통 __name__ 사용)

    Returns:
        logging.Logger 인스턴스
    """
    return logging.getLogger(name)
