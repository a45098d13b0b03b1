"""
Tests for application wiring — flow construction, startup and shutdown hooks,
and the abandoned-challenge sweeper.
"""

import asyncio
import contextlib
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import update

import api.dependencies as dependencies
from config.settings import config
from database.models import PendingChallenge
from main import create_app, sweep_abandoned_challenges
from oauth.encryption import generate_key
from oauth.exceptions import ConfigurationError
from oauth.flow import OAuthFlow


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(config, "client_id", "client-id")
    monkeypatch.setattr(config, "client_secret", "client-secret")
    monkeypatch.setattr(config, "token_encryption_key", generate_key())
    monkeypatch.setattr(dependencies, "_flow", None)
    return config


class TestBuildOAuthFlow:
    def test_builds_from_config(self, configured):
        flow = dependencies.build_oauth_flow()
        assert isinstance(flow, OAuthFlow)
        assert flow.redirect_uri == configured.redirect_uri

    @pytest.mark.parametrize("key", ["", "abc", "zz" * 32, "00" * 16])
    def test_bad_key(self, configured, monkeypatch, key):
        monkeypatch.setattr(config, "token_encryption_key", key)
        with pytest.raises(ConfigurationError):
            dependencies.build_oauth_flow()

    def test_missing_client_credentials(self, configured, monkeypatch):
        monkeypatch.setattr(config, "client_secret", "")
        with pytest.raises(ConfigurationError):
            dependencies.build_oauth_flow()

    def test_get_oauth_flow_is_cached(self, configured):
        assert dependencies.get_oauth_flow() is dependencies.get_oauth_flow()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_startup_purges_stale_challenges_and_shutdown_stops_sweeper(
        self, flow, pkce_storage, session_factory, monkeypatch
    ):
        monkeypatch.setattr(config, "pkce_sweep_interval_seconds", 3600)
        await pkce_storage.save("stale", "v-old")
        await pkce_storage.save("fresh", "v-new")
        async with session_factory() as session:
            await session.execute(
                update(PendingChallenge)
                .where(PendingChallenge.tenant_id == "stale")
                .values(created_at=datetime.now(timezone.utc) - timedelta(hours=2))
            )
            await session.commit()

        app = create_app()
        before = asyncio.all_tasks()
        with patch("main.get_oauth_flow", return_value=flow), patch(
            "main.create_tables", new_callable=AsyncMock
        ) as create_tables:
            for handler in app.router.on_startup:
                await handler()

        create_tables.assert_awaited_once()
        assert not await pkce_storage.exists("stale")
        assert await pkce_storage.retrieve("fresh") == "v-new"

        (sweeper,) = asyncio.all_tasks() - before
        assert not sweeper.done()

        for handler in app.router.on_shutdown:
            await handler()
        assert sweeper.cancelled()

    @pytest.mark.asyncio
    async def test_sweeper_disabled(self, flow, monkeypatch):
        monkeypatch.setattr(config, "pkce_sweep_interval_seconds", 0)
        app = create_app()
        before = asyncio.all_tasks()
        with patch("main.get_oauth_flow", return_value=flow), patch(
            "main.create_tables", new_callable=AsyncMock
        ):
            for handler in app.router.on_startup:
                await handler()

        assert asyncio.all_tasks() - before == set()
        for handler in app.router.on_shutdown:
            await handler()

    @pytest.mark.asyncio
    async def test_startup_fails_fast_on_bad_config(self, monkeypatch):
        monkeypatch.setattr(config, "token_encryption_key", "")
        monkeypatch.setattr(dependencies, "_flow", None)
        app = create_app()
        with pytest.raises(ConfigurationError):
            for handler in app.router.on_startup:
                await handler()


class TestSweeper:
    @pytest.mark.asyncio
    async def test_keeps_running_after_failure(self, monkeypatch):
        monkeypatch.setattr(config, "pkce_sweep_interval_seconds", 0.01)
        calls = []

        async def purge_expired(ttl_seconds):
            calls.append(ttl_seconds)
            if len(calls) == 1:
                raise RuntimeError("db down")
            return 0

        storage = MagicMock()
        storage.purge_expired = AsyncMock(side_effect=purge_expired)

        task = asyncio.create_task(sweep_abandoned_challenges(storage))
        for _ in range(200):
            if storage.purge_expired.await_count >= 2:
                break
            await asyncio.sleep(0.01)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        assert storage.purge_expired.await_count >= 2
        storage.purge_expired.assert_awaited_with(config.pkce_ttl_seconds)
        assert task.cancelled()
