"""
API Gateway 라우터
"""
