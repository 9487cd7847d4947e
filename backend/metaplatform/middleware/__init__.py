"""
ASGI middleware
"""
