"""Authentication API endpoints.

Maps session-service errors onto status codes; nothing below this layer knows
about HTTP.
"""

from fastapi import APIRouter, Depends, HTTPException, status
import structlog

from instructor_auth.api.dependencies import get_current_user_id, get_session_service
from instructor_auth.errors import (
    IdentityError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
)
from instructor_auth.models.auth import (
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenPair,
)
from instructor_auth.models.user import PublicProfile, RegisteredUser
from instructor_auth.services.session_service import SessionService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    service: SessionService = Depends(get_session_service),
) -> RegisteredUser:
    """Register a new instructor.

    Raises:
        HTTPException 400: Invalid input or username/email already registered
    """
    try:
        return await service.register(request)
    except IdentityError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


@router.post("/login")
async def login(
    request: LoginRequest,
    service: SessionService = Depends(get_session_service),
) -> TokenPair:
    """Login with username and password.

    Raises:
        HTTPException 401: If credentials are invalid
    """
    try:
        return await service.login(request.username, request.password)
    except InvalidCredentialsError as e:
        raise _unauthorized(e.message)


@router.get("/profile")
async def profile(
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
) -> PublicProfile:
    """Profile of the authenticated instructor."""
    try:
        return await service.profile(user_id)
    except NotFoundError:
        raise _unauthorized("Failed to get user!")


@router.get("/instructors", dependencies=[Depends(get_current_user_id)])
async def instructors(
    service: SessionService = Depends(get_session_service),
) -> dict:
    """All registered instructors."""
    profiles = await service.list_instructors()
    return {"instructors": [p.model_dump(mode="json") for p in profiles]}


@router.get("/tokens", dependencies=[Depends(get_current_user_id)])
async def tokens(
    service: SessionService = Depends(get_session_service),
) -> dict:
    """All stored refresh-token records (hashes only)."""
    records = await service.list_refresh_tokens()
    return {"tokens": [r.model_dump(mode="json") for r in records]}


@router.post("/refresh-token")
async def refresh_token(
    request: RefreshRequest,
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
) -> TokenPair:
    """Exchange the current refresh token for a new pair (rotation).

    Raises:
        HTTPException 401: On any failure
    """
    try:
        return await service.refresh(request.refresh_token, user_id)
    except IdentityError as e:
        raise _unauthorized(e.message)


@router.post("/logout")
async def logout(
    request: RefreshRequest,
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
) -> dict:
    """Log out by deleting the caller's refresh token.

    Raises:
        HTTPException 401: If the refresh token does not verify
        HTTPException 500: On any other failure
    """
    try:
        revoked = await service.logout(request.refresh_token, user_id)
    except (InvalidTokenError, NotFoundError) as e:
        raise _unauthorized(e.message)
    except IdentityError as e:
        logger.error("logout_failed", user_id=user_id, error=e.message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to logout!",
        )

    return {"message": "Logout successful!", "revoked": revoked}
