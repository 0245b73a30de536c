"""
Gateway 예외 정의
서비스 정의 로딩, 라우팅, 백엔드 프록시 단계별 에러 계층
"""

from typing import Optional


class GatewayError(Exception):
    """게이트웨이 기본 에러"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# ============================================================================
# 서비스 정의 (설정 파일)
# ============================================================================

class ServiceDefinitionError(GatewayError):
    """설정 파일 하나를 서비스 정의로 만들 수 없음 (해당 파일만 건너뜀)"""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        super().__init__(message)


class ConfigParseError(ServiceDefinitionError):
    """YAML 파싱 실패 또는 읽을 수 없는 설정 파일"""


class ValidationError(ServiceDefinitionError):
    """필수 필드 누락 또는 잘못된 필드 값"""

    def __init__(self, message: str, source: Optional[str] = None, field: Optional[str] = None):
        self.field = field
        super().__init__(message, source)


# ============================================================================
# 라우팅 / 프록시
# ============================================================================

class RouteNotFound(GatewayError):
    """(method, path)에 매칭되는 엔드포인트 없음"""

    def __init__(self, method: str, path: str):
        self.method = method
        self.path = path
        super().__init__(f"no matching endpoint for {method} {path}")


class BackendError(GatewayError):
    """백엔드 호출 실패 (게이트웨이 실패로 한 번만 보고, 재시도 없음)"""

    def __init__(self, message: str, service: Optional[str] = None, url: Optional[str] = None):
        self.service = service
        self.url = url
        super().__init__(message)


class BackendUnreachable(BackendError):
    """연결 거부, 이름 해석 실패 등 전송 계층 에러"""


class BackendTimeout(BackendError):
    """고정 타임아웃 초과"""


class ClientDisconnected(GatewayError):
    """백엔드 응답 전에 호출자가 연결을 끊음 (응답을 쓸 대상 없음)"""

    def __init__(self):
        super().__init__("client disconnected before backend responded")


# ============================================================================
# 감시 / 시작
# ============================================================================

class WatchSubsystemError(GatewayError):
    """파일 변경 알림 처리 중 일시적 에러 (로그만 남기고 감시 계속)"""


class GatewayStartupError(GatewayError):
    """설정 디렉터리 접근/생성 실패 (시작 중단)"""
