"""Users API — signup, login/logout, profile, avatar, account deletion.

Learn: Routes for the credential lifecycle:
- POST   /users               → sign up, returns {user, token}
- POST   /users/login         → email/password → {user, token}
- POST   /users/logout        → revoke the presented token
- POST   /users/logoutAll     → revoke every token of the user
- GET    /users/me            → current user
- PATCH  /users/me            → update name/email/password/age only
- DELETE /users/me            → delete account + tasks
- POST   /users/me/avatar     → upload avatar (multipart field "avatar")
- DELETE /users/me/avatar     → remove avatar
- GET    /users/{id}/avatar   → public PNG avatar

Routes only translate HTTP to service calls; the service raises
TaskhubError subclasses that the app-level handler turns into responses.
"""

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.dependencies import CurrentSession, get_current_session
from taskhub.config import settings
from taskhub.db.engine import get_db
from taskhub.notifications import NotificationOutbox, get_outbox
from taskhub.schemas.user import (
    AuthResponse,
    LoginRequest,
    LogoutResponse,
    UserCreate,
    UserRead,
    UserUpdate,
)
from taskhub.services.user_service import UserService

router = APIRouter(prefix="/users")


def _user_svc(
    db: AsyncSession = Depends(get_db),
    outbox: NotificationOutbox = Depends(get_outbox),
) -> UserService:
    return UserService(db, outbox)


# ─── Signup / login ──────────────────────────────────────


@router.post("", response_model=AuthResponse, status_code=201)
async def signup(body: UserCreate, svc: UserService = Depends(_user_svc)):
    """Create an account and log it in."""
    user, token = await svc.signup(body)
    return AuthResponse(user=UserRead.model_validate(user), token=token)


@router.post("/login", response_model=AuthResponse)
async def login(body: LoginRequest, svc: UserService = Depends(_user_svc)):
    """Open a new session. Existing sessions stay valid."""
    user, token = await svc.login(body.email, body.password)
    return AuthResponse(user=UserRead.model_validate(user), token=token)


# ─── Logout ──────────────────────────────────────────────


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    current: CurrentSession = Depends(get_current_session),
    svc: UserService = Depends(_user_svc),
):
    """Revoke only the token used for this request."""
    revoked = await svc.logout(current.user, current.token)
    return LogoutResponse(sessions_revoked=revoked)


@router.post("/logoutAll", response_model=LogoutResponse)
async def logout_all(
    current: CurrentSession = Depends(get_current_session),
    svc: UserService = Depends(_user_svc),
):
    """Revoke every session of the current user, this one included."""
    revoked = await svc.logout_all(current.user)
    return LogoutResponse(sessions_revoked=revoked)


# ─── Me ──────────────────────────────────────────────────


@router.get("/me", response_model=UserRead)
async def get_me(current: CurrentSession = Depends(get_current_session)):
    return current.user


@router.patch("/me", response_model=UserRead)
async def update_me(
    body: UserUpdate,
    current: CurrentSession = Depends(get_current_session),
    svc: UserService = Depends(_user_svc),
):
    """Update name, email, password or age. Any other key is a 400."""
    return await svc.update_profile(current.user, body)


@router.delete("/me", response_model=UserRead)
async def delete_me(
    current: CurrentSession = Depends(get_current_session),
    svc: UserService = Depends(_user_svc),
):
    """Delete the account together with its tasks and sessions."""
    return await svc.delete_account(current.user)


# ─── Avatar ──────────────────────────────────────────────


@router.post("/me/avatar")
async def upload_avatar(
    avatar: UploadFile = File(...),
    current: CurrentSession = Depends(get_current_session),
    svc: UserService = Depends(_user_svc),
):
    """Store the upload as a 250x250 PNG."""
    # One byte past the limit is enough to know it's too big
    data = await avatar.read(settings.avatar_max_bytes + 1)
    await svc.set_avatar(current.user, avatar.filename, data)
    return {"uploaded": True}


@router.delete("/me/avatar")
async def delete_avatar(
    current: CurrentSession = Depends(get_current_session),
    svc: UserService = Depends(_user_svc),
):
    await svc.clear_avatar(current.user)
    return {"deleted": True}


@router.get("/{user_id}/avatar")
async def get_avatar(user_id: str, svc: UserService = Depends(_user_svc)):
    """Public avatar image. 404 if the user or the avatar doesn't exist."""
    data = await svc.get_avatar(user_id)
    return Response(content=data, media_type="image/png")
