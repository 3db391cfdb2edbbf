"""FastAPI dependencies for authentication and service access."""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from instructor_auth.errors import InvalidTokenError
from instructor_auth.services.session_service import SessionService
from instructor_auth.services.token_service import ACCESS_TOKEN_TYPE, TokenIssuer

bearer_scheme = HTTPBearer(auto_error=False)


def get_session_service(request: Request) -> SessionService:
    """Session service built once at startup."""
    return request.app.state.session_service


def get_token_issuer(request: Request) -> TokenIssuer:
    """Token issuer built once at startup."""
    return request.app.state.token_issuer


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> str:
    """Resolve the caller's user id from a Bearer access token.

    Raises:
        HTTPException 401: If the header is missing or the token is not a
            valid, unexpired access token
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = issuer.validate_token(
            credentials.credentials, expected_type=ACCESS_TOKEN_TYPE
        )
    except InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired access token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return claims.subject
