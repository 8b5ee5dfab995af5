"""API route handlers."""

from src.api.openapi.routes import health, host, published, staging

__all__ = [
    "health",
    "host",
    "published",
    "staging",
]
