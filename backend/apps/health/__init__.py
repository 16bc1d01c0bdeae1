"""Health module - service status endpoint."""

from apps.health.routes import router

__all__ = ["router"]
