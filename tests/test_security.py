"""
Unit tests for security module
"""

import pytest
from datetime import datetime, timedelta, timezone
from jose import jwt

from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.security import security_manager, require_owner, require_admin, _revocation_key
from app.config import settings
from app.models.user import User, UserRole


@pytest.mark.unit
@pytest.mark.asyncio
class TestJWTTokens:
    """Test JWT token functionality"""

    async def test_decode_valid_token(self):
        """Test decoding valid token"""
        data = {"sub": "user123", "email": "test@example.com"}
        token = security_manager.create_access_token(data)
        decoded = await security_manager.decode_token(token)

        assert decoded["sub"] == data["sub"]
        assert decoded["email"] == data["email"]
        assert decoded["type"] == "access"
        assert "exp" in decoded
        assert "jti" in decoded

    async def test_decode_expired_token(self):
        """Test decoding expired token"""
        token = security_manager.create_access_token(
            {"sub": "user123"}, expires_delta=timedelta(seconds=-1)
        )

        with pytest.raises(AuthenticationError):
            await security_manager.decode_token(token)

    async def test_decode_invalid_token(self):
        with pytest.raises(AuthenticationError) as exc_info:
            await security_manager.decode_token("invalid.token.here")
        assert exc_info.value.status_code == 401

    async def test_token_data_integrity(self):
        """Test that token data cannot be tampered with"""
        token = security_manager.create_access_token({"sub": "user123", "role": "user"})
        header, payload, signature = token.split(".")
        tampered_token = ".".join([header, payload, signature[::-1]])

        with pytest.raises(AuthenticationError):
            await security_manager.decode_token(tampered_token)

    async def test_foreign_secret_rejected(self):
        token = jwt.encode(
            {"sub": "user123", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            "some-other-secret-that-is-long-enough-to-sign",
            algorithm=settings.JWT_ALGORITHM
        )

        with pytest.raises(AuthenticationError):
            await security_manager.decode_token(token)

    async def test_refresh_token_rejected(self):
        token = jwt.encode(
            {"sub": "user123", "type": "refresh", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            settings.JWT_SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM
        )

        with pytest.raises(AuthenticationError) as exc_info:
            await security_manager.decode_token(token)
        assert exc_info.value.message == "Invalid token type. Expected access"

    async def test_token_expiration_time(self):
        """Test token expiration time"""
        token = security_manager.create_access_token({"sub": "user123"}, timedelta(minutes=15))

        decoded = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        time_diff = datetime.fromtimestamp(decoded["exp"], tz=timezone.utc) - datetime.now(timezone.utc)

        # Allow 1 second tolerance for test execution time
        assert 14 * 60 <= time_diff.total_seconds() <= 15 * 60 + 1

    async def test_revocation_disabled_skips_lookup(self):
        token = security_manager.create_access_token({"sub": "user123"})
        assert settings.TOKEN_REVOCATION_ENABLED is False
        assert await security_manager.is_token_revoked(token) is False


@pytest.mark.unit
class TestRevocationKey:

    def test_key_depends_on_signature_only(self):
        assert _revocation_key("a.b.sig") == _revocation_key("x.y.sig")
        assert _revocation_key("a.b.sig") != _revocation_key("a.b.other")

    def test_key_prefix(self):
        key = _revocation_key("a.b.sig")
        assert key.startswith("blacklist:")
        assert len(key) == len("blacklist:") + 64


@pytest.mark.unit
@pytest.mark.asyncio
class TestRoleGuards:

    @pytest.mark.parametrize("role", [UserRole.OWNER, UserRole.ADMIN])
    async def test_owner_guard_allows(self, role):
        user = User(role=role)
        assert await require_owner(user) is user

    async def test_owner_guard_rejects_customers(self):
        with pytest.raises(AuthorizationError):
            await require_owner(User(role=UserRole.USER))

    async def test_admin_guard(self):
        with pytest.raises(AuthorizationError):
            await require_admin(User(role=UserRole.OWNER))
