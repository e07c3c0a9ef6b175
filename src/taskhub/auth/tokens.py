"""Session token issuance, verification and revocation.

Learn: A session token is a JWT with these claims:
- sub:  the user id
- sid:  the id of the UserSession row created when the token was issued
- type: always "session"
- iat / exp: issued-at and expiry (TASKHUB_TOKEN_EXPIRE_DAYS, 0 = never)

verify_token() only proves that *we* signed the token and that it has not
expired. Whether it is still live (not logged out) is decided by looking
up the session row — see TokenService.find_live_session(), called by
the auth gate on every request.
"""

import hashlib
import hmac
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.config import settings
from taskhub.db.models import UserSession
from taskhub.errors import PersistenceError

logger = structlog.get_logger()

TOKEN_TYPE = "session"


class InvalidTokenError(Exception):
    """Raised when a token is malformed, badly signed or expired."""


@dataclass(frozen=True)
class TokenClaims:
    user_id: uuid.UUID
    session_id: uuid.UUID


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a raw token (what the session row stores)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session_token(
    user_id: uuid.UUID,
    session_id: uuid.UUID,
    expires_days: Optional[int] = None,
) -> str:
    """Sign a session token for a user."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "sid": str(session_id),
        "type": TOKEN_TYPE,
        "iat": now,
    }
    days = settings.token_expire_days if expires_days is None else expires_days
    if days > 0:
        payload["exp"] = now + timedelta(days=days)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> TokenClaims:
    """Verify signature, expiry and claim shape.

    Returns the decoded claims on success.
    Raises InvalidTokenError on failure.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "sid", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise InvalidTokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise InvalidTokenError(f"Invalid token: {e}")

    if payload.get("type") != TOKEN_TYPE:
        raise InvalidTokenError("Not a session token")

    try:
        return TokenClaims(
            user_id=uuid.UUID(payload["sub"]),
            session_id=uuid.UUID(payload["sid"]),
        )
    except (ValueError, TypeError, AttributeError):
        raise InvalidTokenError("Invalid token: malformed claims")


class TokenService:
    """Issues tokens and keeps the per-user arena of live sessions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def stage(self, user_id: uuid.UUID) -> str:
        """Add a session row to the current transaction without committing.

        The caller commits, so the row lands together with whatever else
        that transaction writes (signup commits the user and its first
        session at once).
        """
        session_id = uuid.uuid4()
        token = create_session_token(user_id, session_id)
        self.db.add(
            UserSession(id=session_id, user_id=user_id, token_hash=hash_token(token))
        )
        return token

    async def issue(self, user_id: uuid.UUID) -> str:
        """Create a session row for the user and return its signed token.

        Earlier sessions are left alone — a user can be logged in from
        several places at once.
        """
        token = self.stage(user_id)
        await self._commit("issue")
        logger.info("taskhub.session_issued", user_id=str(user_id))
        return token

    async def find_live_session(
        self, claims: TokenClaims, token: str
    ) -> Optional[UserSession]:
        """Return the session row backing this token, or None if revoked."""
        result = await self.db.execute(
            select(UserSession).where(
                UserSession.id == claims.session_id,
                UserSession.user_id == claims.user_id,
            )
        )
        session = result.scalars().first()
        if not session or not hmac.compare_digest(session.token_hash, hash_token(token)):
            return None
        return session

    async def revoke(self, user_id: uuid.UUID, token: str) -> bool:
        """Remove exactly the session backing `token`. Returns False if none."""
        result = await self.db.execute(
            delete(UserSession).where(
                UserSession.user_id == user_id,
                UserSession.token_hash == hash_token(token),
            )
        )
        await self._commit("revoke")
        return result.rowcount > 0

    async def revoke_all(self, user_id: uuid.UUID) -> int:
        """Remove every session for the user. Returns how many were live."""
        result = await self.db.execute(
            delete(UserSession).where(UserSession.user_id == user_id)
        )
        await self._commit("revoke_all")
        logger.info("taskhub.sessions_revoked", user_id=str(user_id), count=result.rowcount)
        return result.rowcount

    async def _commit(self, op: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("taskhub.session_store_failed", op=op, error=str(e))
            raise PersistenceError() from e
