"""
Identity and role provider.

* Passwords are hashed with bcrypt.
* Sessions are stateless HS256 JWTs carrying the user id.
* Integration clients authenticate with API keys; only the sha256 of a
  key is stored and a key always acts with the ``staff`` role.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.config import settings
from backoffice.domain.enums import WRITER_ROLES, UserRole
from backoffice.domain.errors import Conflict, Forbidden, Unauthorized, ValidationFailed
from backoffice.infrastructure.models import ApiKeyModel, UserModel
from backoffice.infrastructure.repositories import ApiKeyRepository, UserRepository

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of a request."""

    id: Optional[int]  # None for API-key callers
    email: str
    role: UserRole

    @property
    def can_write(self) -> bool:
        return self.role in WRITER_ROLES

    def require(self, *roles: UserRole) -> None:
        if self.role not in roles:
            raise Forbidden()


# ── Passwords ─────────────────────────────────────────────────────────


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode(), salt).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # malformed stored hash
        return False


# ── Tokens ────────────────────────────────────────────────────────────


def issue_token(user_id: int, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_expires_minutes),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[int]:
    """Return the user id in a valid token, or None."""
    try:
        claims = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
        return int(claims["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        return None


def hash_api_key(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def new_api_key() -> str:
    return secrets.token_hex(32)


# ── Service ───────────────────────────────────────────────────────────


class AuthService:
    def __init__(self, session: AsyncSession):
        self.users = UserRepository(session)
        self.api_keys = ApiKeyRepository(session)

    async def login(self, email: str, password: str) -> tuple[UserModel, str]:
        user = await self.users.get_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            raise Unauthorized("Invalid email or password")
        logger.info("User %s logged in", user.id)
        return user, issue_token(user.id)

    async def authenticate(self, credential: str) -> Principal:
        """Resolve a bearer token, API key or session cookie to a caller."""
        user_id = decode_token(credential)
        if user_id is not None:
            user = await self.users.get_by_id(user_id)
            if user:
                return Principal(id=user.id, email=user.email, role=user.role)
            raise Unauthorized()

        key = await self.api_keys.get_by_hash(hash_api_key(credential))
        if key:
            key.last_used_at = datetime.now(timezone.utc)
            return Principal(id=None, email=f"api:{key.name}", role=UserRole.STAFF)
        raise Unauthorized()

    async def change_password(
        self, user_id: int, current_password: str, new_password: str
    ) -> None:
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationFailed(
                f"New password must be at least {MIN_PASSWORD_LENGTH} characters",
                field="new_password",
            )
        user = await self.users.get_by_id(user_id)
        if not user or not verify_password(current_password, user.password_hash):
            raise Unauthorized("Incorrect current password")
        user.password_hash = hash_password(new_password)

    async def create_user(self, email: str, password: str, role: UserRole) -> UserModel:
        if await self.users.get_by_email(email):
            raise Conflict("Email already registered")
        return await self.users.create(
            UserModel(email=email, password_hash=hash_password(password), role=role)
        )

    async def create_api_key(self, name: str) -> tuple[ApiKeyModel, str]:
        raw = new_api_key()
        key = await self.api_keys.create(
            ApiKeyModel(name=name.strip(), token_hash=hash_api_key(raw))
        )
        return key, raw
