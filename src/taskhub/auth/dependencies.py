"""FastAPI auth dependencies — the gate every protected route goes through.

Learn: get_current_session is used as Depends() in route handlers.
It runs four checks, any of which rejects the request with 401:

1. an "Authorization: Bearer <token>" header is present
2. the token's signature, expiry and claims verify
3. the user named by the token still exists
4. the session named by the token is still live (not logged out)

On success the resolved CurrentSession is also stored on
request.state.session so middleware and handlers can read it.
The gate only reads; nothing is written.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.tokens import InvalidTokenError, TokenService, verify_token
from taskhub.db.engine import get_db
from taskhub.db.models import User
from taskhub.errors import UnauthorizedError


@dataclass
class CurrentSession:
    """The authenticated user plus the exact token they presented."""

    user: User
    token: str
    session_id: uuid.UUID

    @property
    def user_id(self) -> uuid.UUID:
        return self.user.id


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def authenticate(token: str, db: AsyncSession) -> CurrentSession:
    """Resolve a raw bearer token to a live session. Raises UnauthorizedError."""
    try:
        claims = verify_token(token)
    except InvalidTokenError as e:
        raise UnauthorizedError(str(e))

    user = await db.get(User, claims.user_id)
    if not user:
        raise UnauthorizedError()

    session = await TokenService(db).find_live_session(claims, token)
    if not session:
        raise UnauthorizedError("Session has been logged out")

    return CurrentSession(user=user, token=token, session_id=session.id)


async def get_current_session(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> CurrentSession:
    """Required auth dependency — 401 unless the bearer token is live."""
    token = _bearer_token(authorization)
    if not token:
        raise UnauthorizedError()

    current = await authenticate(token, db)
    request.state.session = current
    return current


async def get_current_user(
    current: CurrentSession = Depends(get_current_session),
) -> User:
    """Shortcut for handlers that only need the user."""
    return current.user
