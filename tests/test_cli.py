"""CLI tests — commands against a mocked Taskhub API.

Learn: The CLI builds its httpx client through _transport(), so the
tests swap in an httpx.MockTransport that records each request and
answers like the API would. No server, no database.
"""

import json
import uuid

import httpx
import pytest
from click.testing import CliRunner

from taskhub.cli import main as cli

TOKEN = "tok-123"
USER = {"id": str(uuid.uuid4()), "name": "Ada", "email": "ada@example.com", "age": 36}


class FakeApi:
    """Routes (method, path) to canned responses and remembers requests."""

    def __init__(self, routes: dict):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.routes.get(
            (request.method, request.url.path), (404, {"detail": "Not Found"})
        )
        return httpx.Response(status, json=body)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def runner(monkeypatch):
    monkeypatch.delenv("TASKHUB_TOKEN", raising=False)
    monkeypatch.setenv("TASKHUB_API_URL", "http://taskhub.test/")
    return CliRunner()


@pytest.fixture
def api(monkeypatch):
    def install(routes: dict) -> FakeApi:
        fake = FakeApi(routes)
        monkeypatch.setattr(cli, "_transport", lambda: httpx.MockTransport(fake))
        return fake

    return install


# ═══════════════════════════════════════════════════════════
# Account
# ═══════════════════════════════════════════════════════════


def test_signup(runner, api):
    fake = api({("POST", "/users"): (201, {"user": USER, "token": TOKEN})})
    result = runner.invoke(
        cli.main, ["signup", "Ada", "ada@example.com", "--password", "MyPass777!", "--age", "36"]
    )
    assert result.exit_code == 0, result.output
    assert f"export TASKHUB_TOKEN={TOKEN}" in result.output
    assert str(fake.last.url) == "http://taskhub.test/users"
    assert json.loads(fake.last.content) == {
        "name": "Ada",
        "email": "ada@example.com",
        "password": "MyPass777!",
        "age": 36,
    }


def test_signup_error_is_reported(runner, api):
    api({("POST", "/users"): (400, {"detail": "Email already registered"})})
    result = runner.invoke(
        cli.main, ["signup", "Ada", "ada@example.com", "--password", "MyPass777!"]
    )
    assert result.exit_code == 1
    assert "Error (400): Email already registered" in result.output


def test_login(runner, api):
    fake = api({("POST", "/users/login"): (200, {"user": USER, "token": TOKEN})})
    result = runner.invoke(cli.main, ["login", "ada@example.com", "--password", "MyPass777!"])
    assert result.exit_code == 0, result.output
    assert "Logged in as Ada" in result.output
    assert json.loads(fake.last.content) == {"email": "ada@example.com", "password": "MyPass777!"}


def test_me_requires_token(runner, api):
    api({})
    result = runner.invoke(cli.main, ["me"])
    assert result.exit_code == 1
    assert "TASKHUB_TOKEN" in result.output


def test_me_sends_bearer_token(runner, api):
    fake = api({("GET", "/users/me"): (200, USER)})
    result = runner.invoke(cli.main, ["me"], env={"TASKHUB_TOKEN": TOKEN})
    assert result.exit_code == 0, result.output
    assert "Ada <ada@example.com>" in result.output
    assert fake.last.headers["Authorization"] == f"Bearer {TOKEN}"


def test_me_with_revoked_token(runner, api):
    api({("GET", "/users/me"): (401, {"detail": "Please authenticate"})})
    result = runner.invoke(cli.main, ["me", "--token", "old"])
    assert result.exit_code == 1
    assert "Error (401)" in result.output


@pytest.mark.parametrize(
    "args,path,revoked",
    [([], "/users/logout", 1), (["--all"], "/users/logoutAll", 3)],
)
def test_logout(runner, api, args, path, revoked):
    fake = api({("POST", path): (200, {"logged_out": True, "sessions_revoked": revoked})})
    result = runner.invoke(cli.main, ["logout", "--token", TOKEN, *args])
    assert result.exit_code == 0, result.output
    assert fake.last.url.path == path
    assert f"{revoked} session" in result.output


# ═══════════════════════════════════════════════════════════
# Tasks
# ═══════════════════════════════════════════════════════════


def _task(description, completed=False) -> dict:
    return {
        "id": str(uuid.uuid4()),
        "description": description,
        "completed": completed,
        "owner_id": USER["id"],
        "created_at": "2026-01-01T00:00:00Z",
        "updated_at": "2026-01-01T00:00:00Z",
    }


def test_tasks_list(runner, api):
    rows = [_task("buy milk"), _task("walk dog", completed=True)]
    fake = api({("GET", "/tasks"): (200, rows)})
    result = runner.invoke(
        cli.main,
        ["tasks", "--token", TOKEN, "--state", "open", "--sort", "created_at:desc", "-n", "5"],
    )
    assert result.exit_code == 0, result.output
    assert "Tasks (2)" in result.output
    assert "buy milk" in result.output
    params = dict(fake.last.url.params)
    assert params == {"limit": "5", "skip": "0", "completed": "false", "sort_by": "created_at:desc"}


def test_tasks_list_empty(runner, api):
    fake = api({("GET", "/tasks"): (200, [])})
    result = runner.invoke(cli.main, ["tasks", "--token", TOKEN])
    assert result.exit_code == 0
    assert "No tasks found." in result.output
    assert "completed" not in dict(fake.last.url.params)


def test_add(runner, api):
    task = _task("buy milk")
    fake = api({("POST", "/tasks"): (201, task)})
    result = runner.invoke(cli.main, ["add", "buy milk", "--token", TOKEN])
    assert result.exit_code == 0, result.output
    assert task["id"] in result.output
    assert json.loads(fake.last.content) == {"description": "buy milk"}


@pytest.mark.parametrize("args,completed", [([], True), (["--undo"], False)])
def test_done(runner, api, args, completed):
    task = _task("buy milk", completed=completed)
    fake = api({("PATCH", f"/tasks/{task['id']}"): (200, task)})
    result = runner.invoke(cli.main, ["done", task["id"], "--token", TOKEN, *args])
    assert result.exit_code == 0, result.output
    assert json.loads(fake.last.content) == {"completed": completed}


def test_rm_missing_task(runner, api):
    api({})
    result = runner.invoke(cli.main, ["rm", str(uuid.uuid4()), "--token", TOKEN])
    assert result.exit_code == 1
    assert "Error (404)" in result.output


def test_version(runner):
    result = runner.invoke(cli.main, ["--version"])
    assert result.exit_code == 0
    assert "taskhub" in result.output
