"""
Middleware Package
==================

FastAPI middleware for the DisputeHub API.
"""

from .security import SecurityHeadersMiddleware

__all__ = [
    "SecurityHeadersMiddleware",
]
