"""JWT token generation and validation, plus the identity verifier built on it.

Tokens are issued by the account service; this module only verifies them.
`generate_token` exists for local development and tests.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from pydantic import BaseModel, ValidationError, model_validator

from config.settings import get_settings
from core.exceptions import AuthError
from schemas.session import Identity

logger = logging.getLogger(__name__)


def _require_jwt_secret(secret: Optional[str] = None) -> str:
    """Read JWT secret and fail closed if configuration is invalid."""
    secret = secret if secret is not None else get_settings().JWT_SECRET
    if not secret:
        raise AuthError("JWT secret is not configured")
    return secret


class TokenClaims(BaseModel):
    """Claims embedded in auth JWT. `label` falls back to `email`, then `user_id`."""
    user_id: str
    label: Optional[str] = None
    email: Optional[str] = None
    iat: float
    exp: float

    @model_validator(mode="after")
    def _default_label(self) -> "TokenClaims":
        if not self.label:
            self.label = self.email or self.user_id
        return self

    def to_identity(self) -> Identity:
        return Identity(id=self.user_id, label=self.label)


def generate_token(
    user_id: str,
    label: Optional[str] = None,
    secret: Optional[str] = None,
    expires_in_s: Optional[int] = None,
) -> str:
    """Generate a signed JWT for the given user."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    ttl = expires_in_s if expires_in_s is not None else settings.JWT_EXPIRY_SECONDS
    payload = {
        "user_id": user_id,
        "label": label or user_id,
        "iat": now.timestamp(),
        "exp": (now + timedelta(seconds=ttl)).timestamp(),
    }
    token = jwt.encode(payload, _require_jwt_secret(secret), algorithm=settings.JWT_ALGORITHM)
    logger.info("Token generated for user=%s", user_id)
    return token


def validate_token(token: str, secret: Optional[str] = None) -> TokenClaims:
    """Validate and decode a JWT. Raises AuthError on failure."""
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            _require_jwt_secret(secret),
            algorithms=[settings.JWT_ALGORITHM],
        )
        return TokenClaims(**payload)
    except jwt.ExpiredSignatureError:
        logger.warning("Token expired")
        raise AuthError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token: %s", str(e))
        raise AuthError(f"Invalid token: {str(e)}")
    except ValidationError as e:
        logger.warning("Token claims rejected: %s", e.errors()[0].get("msg", "invalid"))
        raise AuthError("Token claims are incomplete")


class IdentityVerifier(ABC):
    """verify(credential) → Identity, raising AuthError on failure."""

    @abstractmethod
    async def verify(self, credential: str) -> Identity:
        ...


class JWTIdentityVerifier(IdentityVerifier):
    """Verifies HS256 bearer tokens signed with JWT_SECRET."""

    def __init__(self, secret: Optional[str] = None):
        self._secret = secret

    async def verify(self, credential: str) -> Identity:
        return validate_token(credential, secret=self._secret).to_identity()
