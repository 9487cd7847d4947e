"""
REST API routers
"""
