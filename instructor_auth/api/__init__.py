"""HTTP adapter for the session service."""

from instructor_auth.api.auth import router as auth_router

__all__ = ["auth_router"]
