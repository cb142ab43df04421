"""FastAPI dependencies for database sessions and authentication."""
from typing import AsyncGenerator, Optional
from uuid import UUID

import jwt
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.auth.jwt import jwt_auth
from invoicing.database import AsyncSessionLocal

logger = structlog.get_logger(__name__)

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database session dependency.

    Services commit their own units of work; anything left pending when the
    request ends is committed here.

    Yields:
        AsyncSession: Database session for the request lifecycle
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict[str, str]:
    """
    Claims of the bearer token issued by the upstream auth service.

    Only mutations depend on this; read endpoints stay anonymous.

    Raises:
        HTTPException: 401 when the token is missing, expired or invalid
    """
    if not credentials:
        raise _unauthorized("Authentication required")

    token = credentials.credentials
    try:
        payload = jwt_auth.verify_access_token(token)
    except jwt.ExpiredSignatureError:
        logger.warning("token_expired", token_preview=token[:20] + "...")
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning("invalid_token", error=str(e), token_preview=token[:20] + "...")
        raise _unauthorized(f"Invalid authentication token: {e}")

    logger.debug("user_authenticated", user_id=payload.get("sub"))
    return payload


async def get_actor_id(user: dict = Depends(get_current_user)) -> UUID:
    """Id of the authenticated user, stored as ``created_by`` on payments."""
    try:
        return UUID(str(user.get("sub")))
    except ValueError:
        raise _unauthorized("Invalid authentication token: subject is not a user id")
