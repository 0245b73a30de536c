"""
OpenAPI 문서 생성 패키지
"""
