"""User service — signup, login, sessions, profile, avatar, account deletion.

Learn: Every write is a whole-record read-modify-write followed by one
commit. Notifications are enqueued only after that commit succeeds, so
a failed write never sends an email and a failed email never undoes a
write.

Login deliberately returns the same InvalidCredentialsError whether the
email is unknown or the password is wrong (no account enumeration).
"""

import asyncio
import uuid
from typing import Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.password import dummy_hash, hash_password, verify_password
from taskhub.auth.tokens import TokenService
from taskhub.db.models import Task, User, UserSession
from taskhub.errors import (
    EmailTakenError,
    InvalidCredentialsError,
    NotFoundError,
    PersistenceError,
)
from taskhub.notifications import (
    NotificationOutbox,
    cancellation_email,
    welcome_email,
)
from taskhub.schemas.user import UserCreate, UserUpdate
from taskhub.services.avatar import process_avatar

logger = structlog.get_logger()


class UserService:
    def __init__(self, db: AsyncSession, outbox: Optional[NotificationOutbox] = None):
        self.db = db
        self.tokens = TokenService(db)
        self.outbox = outbox

    # ─── Lookup ──────────────────────────────────────────

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.email == email.strip().lower())
        )
        return result.scalars().first()

    async def _email_taken(self, email: str, exclude_id: Optional[uuid.UUID] = None) -> bool:
        q = select(User.id).where(User.email == email)
        if exclude_id is not None:
            q = q.where(User.id != exclude_id)
        result = await self.db.execute(q)
        return result.first() is not None

    # ─── Signup / login / logout ─────────────────────────

    async def signup(self, body: UserCreate) -> tuple[User, str]:
        """Create the account, issue its first token, queue the welcome email."""
        if await self._email_taken(body.email):
            raise EmailTakenError()

        user = User(
            id=uuid.uuid4(),
            email=body.email,
            name=body.name,
            age=body.age,
            password_hash=hash_password(body.password),
        )
        self.db.add(user)
        # The user row must exist before its session row references it,
        # but neither is committed until both are in.
        await self._save("signup", flush_only=True, writes_email=True)
        token = self.tokens.stage(user.id)
        await self._save("signup")
        logger.info("taskhub.user_signed_up", user_id=str(user.id))

        self._notify(welcome_email(user.email, user.name))
        return user, token

    async def login(self, email: str, password: str) -> tuple[User, str]:
        """Check credentials and open a new session. Other sessions stay valid."""
        user = await self.get_by_email(email)
        if user is None:
            # Same bcrypt cost as a wrong password
            verify_password(password, dummy_hash())
            logger.info("taskhub.login_failed")
            raise InvalidCredentialsError()
        if not verify_password(password, user.password_hash):
            logger.info("taskhub.login_failed")
            raise InvalidCredentialsError()

        token = await self.tokens.issue(user.id)
        logger.info("taskhub.user_logged_in", user_id=str(user.id))
        return user, token

    async def logout(self, user: User, token: str) -> int:
        """Revoke just the presented token."""
        revoked = await self.tokens.revoke(user.id, token)
        return 1 if revoked else 0

    async def logout_all(self, user: User) -> int:
        """Revoke every session the user has."""
        return await self.tokens.revoke_all(user.id)

    # ─── Profile ─────────────────────────────────────────

    async def update_profile(self, user: User, body: UserUpdate) -> User:
        """Apply the fields present in the update command."""
        changes = body.model_dump(exclude_unset=True, exclude_none=True)

        if "email" in changes and changes["email"] != user.email:
            if await self._email_taken(changes["email"], exclude_id=user.id):
                raise EmailTakenError()

        if "password" in changes:
            user.password_hash = hash_password(changes.pop("password"))
        for field, value in changes.items():
            setattr(user, field, value)

        await self._save("update_profile", writes_email="email" in changes)
        logger.info("taskhub.user_updated", user_id=str(user.id), fields=sorted(body.model_fields_set))
        return user

    async def delete_account(self, user: User) -> User:
        """Delete the user, their tasks and their sessions in one transaction.

        Learn: Owned rows are removed explicitly rather than relying on the
        database's ON DELETE CASCADE, which SQLite only honours when foreign
        keys are switched on.
        """
        await self.db.execute(delete(Task).where(Task.owner_id == user.id))
        await self.db.execute(delete(UserSession).where(UserSession.user_id == user.id))
        await self.db.delete(user)
        await self._save("delete_account")
        logger.info("taskhub.user_deleted", user_id=str(user.id))

        self._notify(cancellation_email(user.email, user.name))
        return user

    # ─── Avatar ──────────────────────────────────────────

    async def set_avatar(self, user: User, filename: Optional[str], data: bytes) -> None:
        user.avatar = await asyncio.to_thread(process_avatar, filename, data)
        await self._save("set_avatar")

    async def clear_avatar(self, user: User) -> None:
        user.avatar = None
        await self._save("clear_avatar")

    async def get_avatar(self, user_id: str) -> bytes:
        """PNG bytes for a user's avatar. NotFoundError if user or avatar is missing."""
        try:
            uid = uuid.UUID(user_id)
        except ValueError:
            raise NotFoundError()
        result = await self.db.execute(select(User.avatar).where(User.id == uid))
        avatar = result.scalar_one_or_none()
        if not avatar:
            raise NotFoundError()
        return avatar

    # ─── Helpers ─────────────────────────────────────────

    def _notify(self, message) -> None:
        if self.outbox is not None:
            self.outbox.enqueue(message)

    async def _save(self, op: str, *, flush_only: bool = False, writes_email: bool = False) -> None:
        """Commit (or just flush) and map store failures to domain errors.

        Learn: A unique-constraint violation means "email taken" only for
        writes that set an email (signup, profile update), where it closes
        the race with the _email_taken() pre-check. Anywhere else it is an
        ordinary store failure.
        """
        try:
            if flush_only:
                await self.db.flush()
            else:
                await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if writes_email:
                raise EmailTakenError() from e
            logger.error("taskhub.user_store_failed", op=op, error=str(e))
            raise PersistenceError() from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("taskhub.user_store_failed", op=op, error=str(e))
            raise PersistenceError() from e
