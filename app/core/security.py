"""
Security utilities for authentication and authorization
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
import hashlib
import uuid
from jose import JWTError, jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import time

from app.config import settings
from app.core.database import get_session
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _revocation_key(token: str) -> str:
    # The signature segment identifies a token uniquely
    signature = token.rsplit(".", 1)[-1]
    return f"blacklist:{hashlib.sha256(signature.encode()).hexdigest()}"


class SecurityManager:
    """
    Verifies access tokens issued by the auth service and manages revocation
    """

    @staticmethod
    def create_access_token(
        data: Dict[str, Any],
        expires_delta: Optional[timedelta] = None
    ) -> str:
        """
        Create a JWT access token (used by service-to-service callers and tests)
        """
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        to_encode.update({
            "exp": expire,
            "type": "access",
            "iat": int(time.time()),
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(
            to_encode,
            settings.JWT_SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM
        )

    @staticmethod
    async def is_token_revoked(token: str) -> bool:
        """
        Check the Redis revocation store
        """
        if not settings.TOKEN_REVOCATION_ENABLED:
            return False
        try:
            from app.core.redis import redis_manager
            return await redis_manager.exists(_revocation_key(token))
        except Exception as e:
            logger.error(f"Error checking token revocation: {e}")
            return False  # Fail open for availability

    @staticmethod
    async def revoke_token(token: str):
        """
        Revoke a token until it would have expired anyway
        """
        from app.core.redis import redis_manager

        payload = jwt.get_unverified_claims(token)
        expires_at = datetime.fromtimestamp(payload.get("exp", 0), tz=timezone.utc)
        ttl = max(1, int((expires_at - datetime.now(timezone.utc)).total_seconds()))
        await redis_manager.set(_revocation_key(token), "1", ttl=ttl)

    @staticmethod
    async def decode_token(token: str) -> Dict[str, Any]:
        """
        Decode and verify a JWT token, checking revocation first
        """
        if await SecurityManager.is_token_revoked(token):
            raise AuthenticationError("Token has been invalidated")

        try:
            payload = jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM]
            )
        except JWTError as e:
            logger.info(f"JWT decode error: {e}")
            raise AuthenticationError("Could not validate credentials")

        if payload.get("type", "access") != "access":
            raise AuthenticationError("Invalid token type. Expected access")
        return payload


# Create global security manager
security_manager = SecurityManager()


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_session)
) -> User:
    """
    Resolve the bearer token to an active user
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = await security_manager.decode_token(credentials.credentials)
    subject = payload.get("sub")
    if subject is None:
        raise AuthenticationError("Could not validate credentials")

    try:
        user_id = uuid.UUID(str(subject))
    except ValueError:
        raise AuthenticationError("Could not validate credentials")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise AuthenticationError("User not found or inactive")
    return user


async def require_owner(current_user: User = Depends(get_current_user)) -> User:
    """
    Require venue owner or admin role for endpoint
    """
    if current_user.role not in (UserRole.OWNER, UserRole.ADMIN):
        raise AuthorizationError("Venue owner access required")
    return current_user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """
    Require admin role for endpoint
    """
    if current_user.role != UserRole.ADMIN:
        raise AuthorizationError("Admin access required")
    return current_user


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create access token helper function
    """
    return security_manager.create_access_token(data, expires_delta)
