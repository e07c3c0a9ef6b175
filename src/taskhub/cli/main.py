"""Taskhub CLI — a small client for the Taskhub API.

Usage:
    taskhub signup "Ada" ada@example.com            # Create account, print token
    taskhub login ada@example.com                   # New session, print token
    export TASKHUB_TOKEN=...                        # Use it for everything below
    taskhub me                                      # Current user
    taskhub add "buy milk"                          # Create a task
    taskhub tasks --state open                      # List open tasks
    taskhub done <task-id>                          # Mark a task completed
    taskhub rm <task-id>                            # Delete a task
    taskhub logout [--all]                          # Revoke this / every session
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

from taskhub import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("TASKHUB_API_URL", DEFAULT_API_URL).rstrip("/")


def _transport() -> Optional[httpx.AsyncBaseTransport]:
    """Transport override hook (tests swap in httpx.MockTransport)."""
    return None


def _client(token: Optional[str] = None) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the Taskhub backend."""
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.AsyncClient(
        base_url=_api_url(),
        timeout=30.0,
        headers=headers,
        transport=_transport(),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _token_from_ctx(token: Optional[str]) -> str:
    """Resolve the session token from --token or TASKHUB_TOKEN."""
    tok = token or os.environ.get("TASKHUB_TOKEN")
    if not tok:
        click.secho(
            "Error: --token required (or set TASKHUB_TOKEN env var)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    return tok


def _check(r: httpx.Response) -> None:
    """Exit with the API's error detail on any non-2xx response."""
    if r.is_success:
        return
    try:
        detail = r.json().get("detail", r.text)
    except ValueError:
        detail = r.text
    if not isinstance(detail, str):
        detail = json.dumps(detail)
    click.secho(f"Error ({r.status_code}): {detail}", fg="red", err=True)
    sys.exit(1)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k, "—"))[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


def _print_auth(data: dict) -> None:
    user = data["user"]
    click.secho(f"Logged in as {user['name']} <{user['email']}>", fg="green")
    click.echo(f"export TASKHUB_TOKEN={data['token']}")


token_option = click.option(
    "--token", envvar="TASKHUB_TOKEN", help="Session token (or set TASKHUB_TOKEN)"
)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="taskhub")
def main():
    """Taskhub — manage your tasks from the terminal."""


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


@main.command()
@click.argument("name")
@click.argument("email")
@click.password_option()
@click.option("--age", type=int, default=0, show_default=True)
def signup(name: str, email: str, password: str, age: int):
    """Create an account and print its first session token."""
    _run(_signup_impl(name, email, password, age))


async def _signup_impl(name: str, email: str, password: str, age: int):
    async with _client() as c:
        r = await c.post("/users", json={
            "name": name,
            "email": email,
            "password": password,
            "age": age,
        })
        _check(r)
        _print_auth(r.json())


@main.command()
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True)
def login(email: str, password: str):
    """Open a new session and print its token."""
    _run(_login_impl(email, password))


async def _login_impl(email: str, password: str):
    async with _client() as c:
        r = await c.post("/users/login", json={"email": email, "password": password})
        _check(r)
        _print_auth(r.json())


@main.command()
@token_option
@click.option("--all", "everywhere", is_flag=True, help="Log out every session")
def logout(token: Optional[str], everywhere: bool):
    """Revoke the current session (or all of them)."""
    _run(_logout_impl(_token_from_ctx(token), everywhere))


async def _logout_impl(token: str, everywhere: bool):
    async with _client(token) as c:
        r = await c.post("/users/logoutAll" if everywhere else "/users/logout")
        _check(r)
        n = r.json()["sessions_revoked"]
        click.secho(f"Logged out ({n} session{'s' if n != 1 else ''} revoked)", fg="green")


@main.command()
@token_option
def me(token: Optional[str]):
    """Show the current user."""
    _run(_me_impl(_token_from_ctx(token)))


async def _me_impl(token: str):
    async with _client(token) as c:
        r = await c.get("/users/me")
        _check(r)
        user = r.json()
        click.echo(f"{user['name']} <{user['email']}>  age={user['age']}  id={user['id']}")


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@main.command()
@token_option
@click.option("--state", type=click.Choice(["open", "completed"]), help="Filter by state")
@click.option("--sort", "sort_by", help="<field>:<asc|desc>, e.g. created_at:desc")
@click.option("--limit", "-n", default=100, show_default=True)
@click.option("--skip", default=0, show_default=True)
def tasks(token: Optional[str], state: Optional[str], sort_by: Optional[str],
          limit: int, skip: int):
    """List your tasks."""
    completed = None if state is None else state == "completed"
    _run(_tasks_impl(_token_from_ctx(token), completed, sort_by, limit, skip))


async def _tasks_impl(token: str, completed: Optional[bool], sort_by: Optional[str],
                      limit: int, skip: int):
    async with _client(token) as c:
        params: dict = {"limit": limit, "skip": skip}
        if completed is not None:
            params["completed"] = str(completed).lower()
        if sort_by:
            params["sort_by"] = sort_by

        r = await c.get("/tasks", params=params)
        _check(r)
        rows = r.json()

        if not rows:
            click.echo("No tasks found.")
            return

        for row in rows:
            row["done"] = "x" if row["completed"] else " "
        click.secho(f"Tasks ({len(rows)}):", bold=True)
        click.echo()
        _print_table(rows, [
            ("ID", "id", 36),
            ("Done", "done", 4),
            ("Description", "description", 60),
        ])


@main.command()
@token_option
@click.argument("description")
def add(token: Optional[str], description: str):
    """Create a task."""
    _run(_add_impl(_token_from_ctx(token), description))


async def _add_impl(token: str, description: str):
    async with _client(token) as c:
        r = await c.post("/tasks", json={"description": description})
        _check(r)
        click.secho(f"Task {r.json()['id']} created", fg="green")


@main.command()
@token_option
@click.argument("task_id")
@click.option("--undo", is_flag=True, help="Mark as not completed instead")
def done(token: Optional[str], task_id: str, undo: bool):
    """Mark a task completed."""
    _run(_done_impl(_token_from_ctx(token), task_id, undo))


async def _done_impl(token: str, task_id: str, undo: bool):
    async with _client(token) as c:
        r = await c.patch(f"/tasks/{task_id}", json={"completed": not undo})
        _check(r)
        state = "open" if undo else "completed"
        click.secho(f"Task {task_id} marked {state}", fg="green")


@main.command()
@token_option
@click.argument("task_id")
def rm(token: Optional[str], task_id: str):
    """Delete a task."""
    _run(_rm_impl(_token_from_ctx(token), task_id))


async def _rm_impl(token: str, task_id: str):
    async with _client(token) as c:
        r = await c.delete(f"/tasks/{task_id}")
        _check(r)
        click.secho(f"Task {task_id} deleted", fg="green")


if __name__ == "__main__":
    main()
