"""
미들웨어 패키지
"""

from mcp_gateway.middleware.logging_middleware import RequestLoggingMiddleware

__all__ = [
    "RequestLoggingMiddleware",
]
