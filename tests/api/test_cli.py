"""Tests for the lms admin CLI."""

import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine
from typer.testing import CliRunner

from lms.cli.main import app
from lms.models import SubscriptionModel, UserModel

runner = CliRunner()


@pytest.fixture
def database_url(tmp_path, monkeypatch) -> str:
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("LMS_DATABASE_URL", url)
    result = runner.invoke(app, ["db", "init"])
    assert result.exit_code == 0, result.output
    return url


def run_sql(url: str, work):
    async def _run():
        engine = create_async_engine(url)
        try:
            async with engine.begin() as conn:
                return await work(conn)
        finally:
            await engine.dispose()

    return asyncio.run(_run())


def seed_user(url: str, user_id: str = "usr-00000001", email: str = "ada@example.com") -> None:
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    async def _insert(conn):
        await conn.execute(
            UserModel.__table__.insert().values(
                id=user_id,
                email=email,
                name="Ada",
                role="Student",
                token_version=1,
                created_at=now,
                updated_at=now,
            )
        )

    run_sql(url, _insert)


class TestDbCommands:
    def test_db_init_is_repeatable(self, database_url):
        result = runner.invoke(app, ["db", "init"])

        assert result.exit_code == 0
        assert "Database initialized successfully" in result.output


class TestUserCommands:
    def test_logout_all_bumps_token_version(self, database_url):
        seed_user(database_url)

        result = runner.invoke(app, ["user", "logout-all", "ADA@example.com"])

        assert result.exit_code == 0, result.output
        assert "token version 2" in result.output

        async def _version(conn):
            return await conn.scalar(select(UserModel.token_version))

        assert run_sql(database_url, _version) == 2

    def test_logout_all_unknown_email(self, database_url):
        result = runner.invoke(app, ["user", "logout-all", "nobody@example.com"])

        assert result.exit_code == 1


class TestSubscriptionCommands:
    def test_set_plan(self, database_url):
        seed_user(database_url)

        result = runner.invoke(app, ["subscription", "set-plan", "usr-00000001", "enterprise"])

        assert result.exit_code == 0, result.output
        assert "now on plan enterprise" in result.output

        async def _plan(conn):
            return await conn.scalar(select(SubscriptionModel.plan))

        assert run_sql(database_url, _plan) == "enterprise"

    def test_set_plan_unknown_user(self, database_url):
        result = runner.invoke(app, ["subscription", "set-plan", "usr-missing", "pro"])

        assert result.exit_code == 1

    def test_set_plan_rejects_unknown_plan(self, database_url):
        result = runner.invoke(app, ["subscription", "set-plan", "usr-00000001", "platinum"])

        assert result.exit_code != 0
