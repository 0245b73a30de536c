"""
Local MCP Gateway
로컬 MCP 서버 정의를 수집하여 단일 엔드포인트로 프록시하는 게이트웨이 코어 패키지
"""

__version__ = "1.0.0"
