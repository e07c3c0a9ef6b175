"""Store failure tests — what the API does when a commit fails.

Learn: AsyncSession.commit is swapped for a version that raises while
`store.error` is set, and rollback is counted. Every write path must
roll back, answer 500 {"detail": "Could not save changes"} and leave
the data exactly as it was.
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import signup
from taskhub.db.models import Task, User, UserSession

SAVE_FAILED = {"detail": "Could not save changes"}


class StoreSwitch:
    def __init__(self):
        self.error = None
        self.rollbacks = 0

    def fail_with(self, error):
        self.error = error
        self.rollbacks = 0

    def recover(self):
        self.error = None


@pytest.fixture
def store(monkeypatch):
    switch = StoreSwitch()
    real_commit = AsyncSession.commit
    real_rollback = AsyncSession.rollback

    async def commit(self):
        if switch.error is not None:
            raise switch.error
        return await real_commit(self)

    async def rollback(self):
        switch.rollbacks += 1
        return await real_rollback(self)

    monkeypatch.setattr(AsyncSession, "commit", commit)
    monkeypatch.setattr(AsyncSession, "rollback", rollback)
    return switch


def _disk_error():
    return OperationalError("COMMIT", {}, Exception("disk I/O error"))


def _constraint_error():
    return IntegrityError("COMMIT", {}, Exception("constraint failed"))


async def _count(session_factory, model) -> int:
    async with session_factory() as db:
        return await db.scalar(select(func.count()).select_from(model))


# ═══════════════════════════════════════════════════════════
# Sessions
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_logout_store_failure(client, user_one, store):
    store.fail_with(_disk_error())
    r = await client.post("/users/logout", headers=user_one["headers"])
    assert r.status_code == 500
    assert r.json() == SAVE_FAILED
    assert store.rollbacks == 1

    store.recover()
    r = await client.get("/users/me", headers=user_one["headers"])
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_logout_all_store_failure(client, user_one, store, session_factory):
    store.fail_with(_disk_error())
    r = await client.post("/users/logoutAll", headers=user_one["headers"])
    assert r.status_code == 500
    assert r.json() == SAVE_FAILED
    assert store.rollbacks == 1

    store.recover()
    assert await _count(session_factory, UserSession) == 1
    assert (await client.get("/users/me", headers=user_one["headers"])).status_code == 200


@pytest.mark.asyncio
async def test_login_store_failure(client, user_one, store, session_factory):
    store.fail_with(_disk_error())
    r = await client.post(
        "/users/login",
        json={"email": "mike@example.com", "password": user_one["password"]},
    )
    assert r.status_code == 500
    assert r.json() == SAVE_FAILED

    store.recover()
    assert await _count(session_factory, UserSession) == 1


# ═══════════════════════════════════════════════════════════
# Accounts
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_signup_store_failure_leaves_nothing_behind(client, store, session_factory):
    """User and first session are committed together or not at all."""
    store.fail_with(_disk_error())
    r = await client.post(
        "/users",
        json={"name": "Ada", "email": "ada@example.com", "password": "MyPass777!"},
    )
    assert r.status_code == 500
    assert r.json() == SAVE_FAILED
    assert store.rollbacks == 1

    store.recover()
    assert await _count(session_factory, User) == 0
    assert await _count(session_factory, UserSession) == 0

    # Retrying is not "Email already registered"
    data = await signup(client, "Ada", "ada@example.com")
    assert data["token"]


@pytest.mark.asyncio
async def test_profile_update_store_failure(client, user_one, store):
    store.fail_with(_disk_error())
    r = await client.patch("/users/me", json={"name": "Jess"}, headers=user_one["headers"])
    assert r.status_code == 500
    assert r.json() == SAVE_FAILED

    store.recover()
    me = (await client.get("/users/me", headers=user_one["headers"])).json()
    assert me["name"] == "Mike"


@pytest.mark.asyncio
async def test_profile_email_constraint_is_email_taken(client, user_one, store):
    store.fail_with(_constraint_error())
    r = await client.patch(
        "/users/me", json={"email": "new@example.com"}, headers=user_one["headers"]
    )
    assert r.status_code == 400
    assert r.json() == {"detail": "Email already registered"}


@pytest.mark.asyncio
async def test_delete_account_constraint_is_not_email_taken(
    client, user_one, store, session_factory, outbox, sender
):
    await outbox.drain()
    store.fail_with(_constraint_error())
    r = await client.delete("/users/me", headers=user_one["headers"])
    assert r.status_code == 500
    assert r.json() == SAVE_FAILED

    store.recover()
    assert await _count(session_factory, User) == 1
    await outbox.drain()
    assert [m.kind for m in sender.sent] == ["welcome"]


@pytest.mark.asyncio
async def test_avatar_constraint_is_not_email_taken(client, user_one, store):
    import io

    from PIL import Image

    buf = io.BytesIO()
    Image.new("RGB", (50, 50)).save(buf, format="PNG")

    store.fail_with(_constraint_error())
    r = await client.post(
        "/users/me/avatar",
        files={"avatar": ("me.png", buf.getvalue(), "image/png")},
        headers=user_one["headers"],
    )
    assert r.status_code == 500
    assert r.json() == SAVE_FAILED


# ═══════════════════════════════════════════════════════════
# Tasks
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_create_task_store_failure(client, user_one, store, session_factory):
    store.fail_with(_disk_error())
    r = await client.post("/tasks", json={"description": "lost"}, headers=user_one["headers"])
    assert r.status_code == 500
    assert r.json() == SAVE_FAILED
    assert store.rollbacks == 1

    store.recover()
    assert await _count(session_factory, Task) == 0


@pytest.mark.asyncio
async def test_update_task_store_failure(client, user_one, store):
    r = await client.post("/tasks", json={"description": "keep"}, headers=user_one["headers"])
    task_id = r.json()["id"]

    store.fail_with(_disk_error())
    r = await client.patch(
        f"/tasks/{task_id}", json={"completed": True}, headers=user_one["headers"]
    )
    assert r.status_code == 500
    assert r.json() == SAVE_FAILED

    store.recover()
    r = await client.get(f"/tasks/{task_id}", headers=user_one["headers"])
    assert r.json()["completed"] is False


@pytest.mark.asyncio
async def test_delete_task_store_failure(client, user_one, store, session_factory):
    r = await client.post("/tasks", json={"description": "keep"}, headers=user_one["headers"])
    task_id = r.json()["id"]

    store.fail_with(_disk_error())
    r = await client.delete(f"/tasks/{task_id}", headers=user_one["headers"])
    assert r.status_code == 500

    store.recover()
    assert await _count(session_factory, Task) == 1
