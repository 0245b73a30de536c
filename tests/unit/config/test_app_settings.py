#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
mcp_gateway/config/app_settings.py 테스트

Pydantic Settings v2 기반 AppSettings 클래스 테스트
- 기본값 테스트
- 환경변수 오버라이드 테스트
- 유효성 검사 테스트
- get_settings() 싱글톤 / reload_settings() 테스트
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from mcp_gateway.config import app_settings
from mcp_gateway.config.app_settings import (
    AppSettings,
    get_settings,
    reload_settings,
)


@pytest.fixture(autouse=True)
def reset_singleton():
    """테스트 간 싱글톤 초기화"""
    app_settings._settings = None
    yield
    app_settings._settings = None


# =============================================================================
# AppSettings 기본값 테스트
# =============================================================================
class TestAppSettingsDefaults:
    """AppSettings 기본값 테스트"""

    def test_defaults(self):
        settings = AppSettings(_env_file=None)

        assert settings.config == "./mcp_servers"
        assert settings.addr is None
        assert settings.port == 8080
        assert settings.proxy_timeout == 60.0
        assert settings.load_settle_delay == 0.2
        assert settings.rescan_settle_delay == 0.3
        assert settings.log_level == "INFO"
        assert settings.log_json is False
        assert settings.log_file is None


# =============================================================================
# 환경변수 오버라이드 테스트
# =============================================================================
class TestAppSettingsEnvOverride:
    """환경변수 오버라이드 테스트"""

    def test_env_prefix(self):
        env = {
            "CHATGPT_GATEWAY_CONFIG": "/etc/mcp",
            "CHATGPT_GATEWAY_ADDR": ":9000",
            "CHATGPT_GATEWAY_PROXY_TIMEOUT": "5",
            "CHATGPT_GATEWAY_LOG_LEVEL": "debug",
        }
        with patch.dict(os.environ, env):
            settings = AppSettings(_env_file=None)

        assert settings.config == "/etc/mcp"
        assert settings.addr == ":9000"
        assert settings.proxy_timeout == 5.0
        assert settings.log_level == "DEBUG"

    def test_unprefixed_env_ignored(self):
        with patch.dict(os.environ, {"PORT": "1234"}):
            assert AppSettings(_env_file=None).port == 8080


# =============================================================================
# 유효성 검사 테스트
# =============================================================================
class TestAppSettingsValidation:
    """유효성 검사 테스트"""

    @pytest.mark.parametrize("field", ["proxy_timeout", "load_settle_delay", "rescan_settle_delay"])
    def test_non_positive_durations_rejected(self, field):
        with pytest.raises(ValidationError):
            AppSettings(_env_file=None, **{field: 0})

    @pytest.mark.parametrize("port", [0, 70000])
    def test_port_range(self, port):
        with pytest.raises(ValidationError):
            AppSettings(_env_file=None, port=port)

    def test_unknown_log_level(self):
        with pytest.raises(ValidationError):
            AppSettings(_env_file=None, log_level="verbose")


# =============================================================================
# 리슨 주소 테스트
# =============================================================================
class TestResolveListenAddress:
    """resolve_listen_address() 테스트"""

    @pytest.mark.parametrize("addr, port, expected", [
        (None, 8080, ("0.0.0.0", 8080)),
        (":9000", 8080, ("0.0.0.0", 9000)),
        ("127.0.0.1:9000", 8080, ("127.0.0.1", 9000)),
        ("localhost", 8081, ("localhost", 8081)),
    ])
    def test_resolve(self, addr, port, expected):
        settings = AppSettings(_env_file=None, addr=addr, port=port)

        assert settings.resolve_listen_address() == expected


# =============================================================================
# 싱글톤 테스트
# =============================================================================
class TestSettingsSingleton:
    """get_settings() / reload_settings() 테스트"""

    def test_get_settings_singleton(self):
        assert get_settings() is get_settings()

    def test_reload_settings_overrides(self):
        first = get_settings()

        reloaded = reload_settings(config="/srv/mcp", addr=None, log_level="warning")

        assert reloaded is not first
        assert reloaded is get_settings()
        assert reloaded.config == "/srv/mcp"
        # None 값은 무시 (환경변수/기본값 유지)
        assert reloaded.addr is None
        assert reloaded.log_level == "WARNING"
