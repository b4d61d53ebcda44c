"""API routers for the adaptive SQL tutor."""

from src.api.routers import tutor_router

__all__ = ["tutor_router"]
