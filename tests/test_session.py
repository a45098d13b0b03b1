"""
Tests for OAuthSession — token refresh and authenticated provider calls.
"""

import httpx
import pytest

from conftest import make_tokens
from oauth.exceptions import ExchangeError, NotFoundError
from oauth.session import OAuthSession


def _session(fake_client, token_storage, handler=None, **kwargs) -> OAuthSession:
    transport = httpx.MockTransport(handler) if handler else None
    return OAuthSession("cust-1", fake_client, token_storage, transport=transport, **kwargs)


class TestGetAccessToken:
    @pytest.mark.asyncio
    async def test_valid_token_is_used_as_is(self, fake_client, token_storage):
        await token_storage.save("cust-1", make_tokens("AT-1"))
        assert await _session(fake_client, token_storage).get_access_token() == "AT-1"
        fake_client.refresh_tokens.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed_and_saved(self, fake_client, token_storage):
        await token_storage.save("cust-1", make_tokens("AT-1", "RT-1", expires_in=-10))
        fake_client.refresh_tokens.return_value = make_tokens("AT-2", "RT-2")

        assert await _session(fake_client, token_storage).get_access_token() == "AT-2"

        fake_client.refresh_tokens.assert_awaited_once_with("cust-1", "RT-1")
        stored = await token_storage.retrieve("cust-1")
        assert (stored.access_token, stored.refresh_token) == ("AT-2", "RT-2")

    @pytest.mark.asyncio
    async def test_token_within_skew_is_refreshed(self, fake_client, token_storage):
        await token_storage.save("cust-1", make_tokens("AT-1", expires_in=30))
        session = _session(fake_client, token_storage, refresh_skew_seconds=60)
        assert await session.get_access_token() == "AT-2"

    @pytest.mark.asyncio
    async def test_refresh_failure_propagates(self, fake_client, token_storage):
        await token_storage.save("cust-1", make_tokens("AT-1", expires_in=-10))
        fake_client.refresh_tokens.side_effect = ExchangeError("revoked", tenant_id="cust-1")

        with pytest.raises(ExchangeError):
            await _session(fake_client, token_storage).get_access_token()
        assert (await token_storage.retrieve("cust-1")).access_token == "AT-1"

    @pytest.mark.asyncio
    async def test_credentials_removed_after_open(self, fake_client, token_storage):
        with pytest.raises(NotFoundError):
            await _session(fake_client, token_storage).get_access_token()


class TestRequest:
    @pytest.mark.asyncio
    async def test_sends_bearer_and_default_headers(self, fake_client, token_storage):
        await token_storage.save("cust-1", make_tokens("AT-1"))
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": []})

        resp = await _session(fake_client, token_storage, handler).request("GET", "/api/profiles/")

        assert resp.json() == {"data": []}
        (request,) = seen
        assert str(request.url) == "https://provider.test/api/profiles/"
        assert request.headers["Authorization"] == "Bearer AT-1"
        assert request.headers["revision"] == "2024-10-15"

    @pytest.mark.asyncio
    async def test_401_triggers_one_refresh_and_retry(self, fake_client, token_storage):
        await token_storage.save("cust-1", make_tokens("AT-1"))
        auth_headers = []

        def handler(request: httpx.Request) -> httpx.Response:
            auth_headers.append(request.headers["Authorization"])
            if request.headers["Authorization"] == "Bearer AT-1":
                return httpx.Response(401)
            return httpx.Response(200, json={"ok": True})

        resp = await _session(fake_client, token_storage, handler).request("GET", "api/accounts/")

        assert resp.status_code == 200
        assert auth_headers == ["Bearer AT-1", "Bearer AT-2"]
        fake_client.refresh_tokens.assert_awaited_once()
        assert (await token_storage.retrieve("cust-1")).access_token == "AT-2"

    @pytest.mark.asyncio
    async def test_second_401_is_returned(self, fake_client, token_storage):
        await token_storage.save("cust-1", make_tokens("AT-1"))

        resp = await _session(
            fake_client, token_storage, lambda request: httpx.Response(401)
        ).request("GET", "/api/profiles/")

        assert resp.status_code == 401
        fake_client.refresh_tokens.assert_awaited_once()
