#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Gateway Application Settings
Pydantic Settings v2 기반 환경변수 설정 관리
"""
from typing import Literal, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    게이트웨이 설정 클래스

    CHATGPT_GATEWAY_ 접두사 환경변수 또는 .env 파일에서 값을 로드합니다.
    (예: CHATGPT_GATEWAY_CONFIG=./mcp_servers, CHATGPT_GATEWAY_PORT=8080)
    """

    model_config = SettingsConfigDict(
        env_prefix="CHATGPT_GATEWAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === 서비스 정의 디렉터리 ===
    config: str = Field(
        default="./mcp_servers",
        description="MCP 서버 정의(YAML) 디렉터리",
    )

    # === 리슨 주소 ===
    addr: Optional[str] = Field(
        default=None,
        description="리슨 주소 (host:port 또는 :port), 지정 시 port보다 우선",
    )
    port: int = Field(
        default=8080,
        description="리슨 포트",
    )

    # === 프록시 ===
    proxy_timeout: float = Field(
        default=60.0,
        description="백엔드 호출 전체 타임아웃 (초)",
    )

    # === 디렉터리 감시 ===
    load_settle_delay: float = Field(
        default=0.2,
        description="생성/수정 이벤트 후 로드까지 대기 시간 (초)",
    )
    rescan_settle_delay: float = Field(
        default=0.3,
        description="이름 변경 이벤트 후 전체 재스캔까지 대기 시간 (초)",
    )

    # === Logging 설정 ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="로그 레벨",
    )
    log_json: bool = Field(
        default=False,
        description="JSON 로그 출력 여부",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="로그 파일 경로",
    )

    # === 유효성 검사 ===
    @field_validator("proxy_timeout", "load_settle_delay", "rescan_settle_delay")
    @classmethod
    def validate_positive(cls, v: float, info) -> float:
        """시간 값은 양수여야 함"""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """포트 범위 검사"""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        """소문자 로그 레벨 허용"""
        if isinstance(v, str):
            return v.upper()
        return v

    # === 헬퍼 메서드 ===
    def resolve_listen_address(self) -> Tuple[str, int]:
        """
        (host, port) 반환

        addr가 ":9000" 이면 모든 인터페이스, "127.0.0.1:9000" 이면 해당 호스트,
        포트 없는 값이면 port 설정을 사용합니다.
        """
        if self.addr:
            host, sep, port = self.addr.rpartition(":")
            if sep and port.isdigit():
                return (host or "0.0.0.0", int(port))
            return (self.addr, self.port)
        return ("0.0.0.0", self.port)


# === 싱글톤 패턴 구현 ===
_settings: AppSettings | None = None


def get_settings() -> AppSettings:
    """
    싱글톤 패턴으로 AppSettings 인스턴스 반환

    Returns:
        AppSettings: 애플리케이션 설정 인스턴스
    """
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def reload_settings(**overrides) -> AppSettings:
    """
    환경변수를 다시 로드하여 새로운 AppSettings 인스턴스 생성

    CLI 인자처럼 환경변수보다 우선하는 값은 overrides로 전달합니다.

    Returns:
        AppSettings: 새로운 애플리케이션 설정 인스턴스
    """
    global _settings
    _settings = AppSettings(**{k: v for k, v in overrides.items() if v is not None})
    return _settings
