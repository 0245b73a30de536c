"""
Reverse Proxy 패키지
"""
