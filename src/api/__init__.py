"""API layer - REST endpoints for staging, publishing and host info."""

from src.api.main import app, create_app

__all__ = [
    "app",
    "create_app",
]
