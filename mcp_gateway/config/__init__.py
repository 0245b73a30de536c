"""
Gateway Configuration Package
"""

from mcp_gateway.config.app_settings import (
    AppSettings,
    get_settings,
    reload_settings,
)

__all__ = [
    "AppSettings",
    "get_settings",
    "reload_settings",
]
