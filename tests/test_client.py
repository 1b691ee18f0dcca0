"""Tests for the Front API client: refresh, classification and the breaker."""

import asyncio
from datetime import datetime, timezone
from typing import Callable, List, Optional

import httpx
import pytest

from api.circuit_breaker import CircuitBreaker, CircuitState
from api.client import FrontClient, parse_retry_after
from api.errors import (
    AuthError,
    CircuitOpenError,
    HTTPError,
    NotFoundError,
    RateLimitError,
    TokenNotFoundError,
    UsageError,
    WrongResourceTypeError,
)
from api.token_source import AccessTokenSource
from errfmt import format_error
from utils.storage import Token

from conftest import API_BASE, TOKEN_URL, token_payload


class FakeFront:
    """MockTransport handler for both the token endpoint and the API."""

    def __init__(self, api: Callable[[httpx.Request], httpx.Response], token_responses: Optional[List] = None) -> None:
        self.api = api
        self.token_responses = token_responses or []
        self.token_requests: List[httpx.Request] = []
        self.api_requests: List[httpx.Request] = []
        self.issued = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URL:
            self.token_requests.append(request)
            if self.token_responses:
                return self.token_responses.pop(0)
            self.issued += 1
            return httpx.Response(200, json=token_payload(f"at-{self.issued}"))
        self.api_requests.append(request)
        return self.api(request)


def ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"path": request.url.path})


def run_with_client(front: FakeFront, scenario, credentials, breaker=None, load=lambda: "rt-1", save=None):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(front)) as http:
            source = AccessTokenSource(credentials, load, save, http_client=http, token_url=TOKEN_URL)
            client = FrontClient(source, base_url=API_BASE, breaker=breaker, http_client=http)
            return await scenario(client)

    return asyncio.run(go())


class TestTokenHandling:
    def test_bearer_token_and_single_refresh(self, credentials) -> None:
        front = FakeFront(ok)

        async def scenario(client):
            first = await client.request("GET", "/me")
            second = await client.request("GET", "/teammates")
            return first, second

        first, second = run_with_client(front, scenario, credentials)

        assert first == {"path": "/me"}
        assert second == {"path": "/teammates"}
        assert len(front.token_requests) == 1
        assert all(r.headers["Authorization"] == "Bearer at-1" for r in front.api_requests)

    def test_refresh_failure_sends_nothing(self, credentials) -> None:
        front = FakeFront(ok, token_responses=[httpx.Response(400, json={"error": "invalid_grant"})])

        with pytest.raises(AuthError):
            run_with_client(front, lambda client: client.request("GET", "/me"), credentials)
        assert front.api_requests == []

    def test_missing_stored_token_is_auth_error(self, credentials, store) -> None:
        front = FakeFront(ok)

        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(front)) as http:
                client = FrontClient.for_account(credentials, store, "me@example.com", http_client=http, base_url=API_BASE)
                client.token_source.token_url = TOKEN_URL
                await client.me()

        with pytest.raises(AuthError) as excinfo:
            asyncio.run(go())
        assert isinstance(excinfo.value.cause, TokenNotFoundError)
        assert front.token_requests == []

    def test_expired_access_token_is_refreshed(self, credentials) -> None:
        front = FakeFront(
            ok,
            token_responses=[
                httpx.Response(200, json=token_payload("short", expires_in=30)),
                httpx.Response(200, json=token_payload("long", expires_in=3600)),
            ],
        )

        async def scenario(client):
            await client.request("GET", "/me")
            await client.request("GET", "/me")

        run_with_client(front, scenario, credentials)

        # 30s lifetime is inside the 60s skew, so the second call refreshes
        assert len(front.token_requests) == 2
        assert front.api_requests[1].headers["Authorization"] == "Bearer long"

    def test_rotated_refresh_token_is_persisted(self, credentials, store) -> None:
        store.set_token("default", "me@example.com", Token("default", "me@example.com", "rt-old"))
        front = FakeFront(ok, token_responses=[httpx.Response(200, json=token_payload("at", "rt-new"))])

        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(front)) as http:
                source = AccessTokenSource.from_store(
                    credentials, store, "me@example.com", http_client=http, token_url=TOKEN_URL
                )
                client = FrontClient(source, base_url=API_BASE, http_client=http)
                await client.me()

        asyncio.run(go())

        assert "refresh_token=rt-old" in front.token_requests[0].content.decode()
        assert store.get_token("default", "me@example.com").refresh_token == "rt-new"

    def test_from_refresh_token_tracks_rotation(self, credentials) -> None:
        front = FakeFront(ok, token_responses=[httpx.Response(200, json=token_payload("at", "rt-2"))])

        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(front)) as http:
                source = AccessTokenSource.from_refresh_token(credentials, "rt-1", http_client=http, token_url=TOKEN_URL)
                await source.get_token()
                return source.load_refresh_token()

        assert asyncio.run(go()) == "rt-2"

    def test_concurrent_requests_share_one_refresh(self, credentials) -> None:
        front = FakeFront(ok)

        async def scenario(client):
            return await asyncio.gather(*(client.request("GET", f"/items/{i}") for i in range(5)))

        results = run_with_client(front, scenario, credentials)

        assert len(results) == 5
        assert len(front.token_requests) == 1
        assert len(front.api_requests) == 5


class TestUnauthorizedRetry:
    def test_401_with_cached_token_retries_once(self, credentials) -> None:
        def api(request):
            if request.headers["Authorization"] == "Bearer at-1" and len(front.api_requests) > 1:
                return httpx.Response(401, json={"_error": {"title": "Unauthorized", "message": "token revoked"}})
            return ok(request)

        front = FakeFront(api)

        async def scenario(client):
            await client.request("GET", "/first")
            return await client.request("GET", "/second")

        result = run_with_client(front, scenario, credentials)

        assert result == {"path": "/second"}
        assert len(front.token_requests) == 2
        assert [r.url.path for r in front.api_requests] == ["/first", "/second", "/second"]
        assert front.api_requests[-1].headers["Authorization"] == "Bearer at-2"

    def test_second_401_is_auth_error(self, credentials) -> None:
        calls = []

        def api(request):
            calls.append(request)
            if len(calls) == 1:
                return ok(request)
            return httpx.Response(401, json={"_error": {"title": "Unauthorized", "message": "nope"}})

        front = FakeFront(api)

        async def scenario(client):
            await client.request("GET", "/first")
            await client.request("GET", "/second")

        with pytest.raises(AuthError) as excinfo:
            run_with_client(front, scenario, credentials)

        assert isinstance(excinfo.value.cause, HTTPError)
        assert excinfo.value.cause.status_code == 401
        assert len(calls) == 3

    def test_401_with_fresh_token_is_not_retried(self, credentials) -> None:
        front = FakeFront(lambda r: httpx.Response(401, json={}))

        with pytest.raises(AuthError):
            run_with_client(front, lambda client: client.request("GET", "/me"), credentials)
        assert len(front.api_requests) == 1
        assert len(front.token_requests) == 1

    def test_403_is_auth_error(self, credentials) -> None:
        front = FakeFront(lambda r: httpx.Response(403, json={"_error": {"title": "Forbidden", "message": "admins only"}}))

        with pytest.raises(AuthError) as excinfo:
            run_with_client(front, lambda client: client.request("GET", "/me"), credentials)
        assert excinfo.value.cause.status_code == 403
        assert excinfo.value.cause.details == "admins only"


class TestClassification:
    def test_not_found_carries_hint_fields(self, credentials) -> None:
        front = FakeFront(lambda r: httpx.Response(404, json={"_error": {"title": "Not found", "message": "gone"}}))

        with pytest.raises(NotFoundError) as excinfo:
            run_with_client(front, lambda c: c.get_resource("conversation", "cnv_123"), credentials)

        err = excinfo.value
        assert err.requested_id == "cnv_123"
        assert err.expected_resource == "conversation"
        assert err.details == "gone"
        assert front.api_requests[0].url.path == "/conversations/cnv_123"

    def test_wrong_prefix_fails_before_any_request(self, credentials) -> None:
        front = FakeFront(ok)

        with pytest.raises(WrongResourceTypeError):
            run_with_client(front, lambda c: c.get_resource("conversation", "msg_123"), credentials)
        assert front.api_requests == []

    def test_unknown_prefix_reaches_api_and_404_hint_is_generic(self, credentials) -> None:
        front = FakeFront(lambda r: httpx.Response(404, json={}))

        with pytest.raises(NotFoundError) as excinfo:
            run_with_client(front, lambda c: c.get_resource("conversation", "abc123"), credentials)
        assert "doesn't exist or you don't have access" in format_error(excinfo.value)

    def test_unknown_resource_kind(self, credentials) -> None:
        with pytest.raises(UsageError):
            run_with_client(FakeFront(ok), lambda c: c.get_resource("spaceship", "spc_1"), credentials)

    def test_rate_limit_with_retry_after_seconds(self, credentials) -> None:
        front = FakeFront(lambda r: httpx.Response(429, headers={"Retry-After": "7"}))

        with pytest.raises(RateLimitError) as excinfo:
            run_with_client(front, lambda c: c.request("GET", "/me"), credentials)
        assert excinfo.value.retry_after == 7
        assert len(front.api_requests) == 1

    def test_server_error_message_and_details(self, credentials) -> None:
        body = {"_error": {"status": 500, "title": "Internal Server Error", "message": "database unavailable"}}
        front = FakeFront(lambda r: httpx.Response(500, json=body))

        with pytest.raises(HTTPError) as excinfo:
            run_with_client(front, lambda c: c.request("GET", "/me"), credentials)
        assert excinfo.value.status_code == 500
        assert excinfo.value.message == "Internal Server Error"
        assert excinfo.value.details == "database unavailable"
        assert len(front.api_requests) == 1

    def test_non_json_error_body(self, credentials) -> None:
        front = FakeFront(lambda r: httpx.Response(502, text="upstream down"))

        with pytest.raises(HTTPError) as excinfo:
            run_with_client(front, lambda c: c.request("GET", "/me"), credentials)
        assert excinfo.value.status_code == 502
        assert excinfo.value.details == "upstream down"

    def test_transport_failure_is_status_zero(self, credentials) -> None:
        def api(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(HTTPError) as excinfo:
            run_with_client(FakeFront(api), lambda c: c.request("GET", "/me"), credentials)
        assert excinfo.value.status_code == 0
        assert "connection refused" in excinfo.value.details

    def test_empty_success_body(self, credentials) -> None:
        front = FakeFront(lambda r: httpx.Response(204))
        assert run_with_client(front, lambda c: c.request("DELETE", "/tags/tag_1"), credentials) is None


class TestRetryAfter:
    def test_seconds(self) -> None:
        assert parse_retry_after("120") == 120

    def test_http_date(self) -> None:
        now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert parse_retry_after("Mon, 01 Jan 2024 12:00:30 GMT", now=now) == 30

    def test_past_date_is_zero(self) -> None:
        now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert parse_retry_after("Mon, 01 Jan 2024 11:00:00 GMT", now=now) == 0

    @pytest.mark.parametrize("value", [None, "", "soon"])
    def test_missing_or_garbage(self, value) -> None:
        assert parse_retry_after(value) == 0


class TestCircuitBreakerIntegration:
    def test_opens_after_consecutive_server_errors(self, credentials) -> None:
        front = FakeFront(lambda r: httpx.Response(503, json={}))
        breaker = CircuitBreaker(failure_threshold=3, reset_timeout=60)

        async def scenario(client):
            for _ in range(3):
                with pytest.raises(HTTPError):
                    await client.request("GET", "/me")
            with pytest.raises(CircuitOpenError):
                await client.request("GET", "/me")

        run_with_client(front, scenario, credentials, breaker=breaker)

        assert breaker.state == CircuitState.OPEN
        assert len(front.api_requests) == 3

    def test_rate_limits_count_as_failures(self, credentials) -> None:
        front = FakeFront(lambda r: httpx.Response(429))
        breaker = CircuitBreaker(failure_threshold=2, reset_timeout=60)

        async def scenario(client):
            for _ in range(2):
                with pytest.raises(RateLimitError):
                    await client.request("GET", "/me")

        run_with_client(front, scenario, credentials, breaker=breaker)
        assert breaker.state == CircuitState.OPEN

    def test_client_errors_do_not_trip(self, credentials) -> None:
        front = FakeFront(lambda r: httpx.Response(404, json={}))
        breaker = CircuitBreaker(failure_threshold=2, reset_timeout=60)

        async def scenario(client):
            for _ in range(4):
                with pytest.raises(NotFoundError):
                    await client.request("GET", "/conversations/cnv_1")

        run_with_client(front, scenario, credentials, breaker=breaker)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 0

    def test_probe_success_closes(self, credentials) -> None:
        clock = [0.0]
        responses = [503, 503, 200]
        front = FakeFront(lambda r: httpx.Response(responses.pop(0), json={}))
        breaker = CircuitBreaker(failure_threshold=2, reset_timeout=30, clock=lambda: clock[0])

        async def scenario(client):
            for _ in range(2):
                with pytest.raises(HTTPError):
                    await client.request("GET", "/me")
            with pytest.raises(CircuitOpenError):
                await client.request("GET", "/me")
            clock[0] = 30.0
            return await client.request("GET", "/me")

        assert run_with_client(front, scenario, credentials, breaker=breaker) == {}
        assert breaker.state == CircuitState.CLOSED
        assert len(front.api_requests) == 3

    def test_token_failure_does_not_touch_breaker(self, credentials) -> None:
        front = FakeFront(ok, token_responses=[httpx.Response(500, json={})])
        breaker = CircuitBreaker(failure_threshold=1, reset_timeout=60)

        with pytest.raises(AuthError):
            run_with_client(front, lambda c: c.request("GET", "/me"), credentials, breaker=breaker)
        assert breaker.state == CircuitState.CLOSED

    def test_cancelled_probe_releases_half_open_slot(self, credentials) -> None:
        clock = [0.0]
        calls = []

        async def api(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503, json={})
            if len(calls) == 2:
                await asyncio.sleep(10)
            return httpx.Response(200, json={})

        front = FakeFront(api)
        breaker = CircuitBreaker(failure_threshold=1, reset_timeout=30, clock=lambda: clock[0])

        async def scenario(client):
            with pytest.raises(HTTPError):
                await client.request("GET", "/me")
            clock[0] = 30.0
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(client.request("GET", "/me"), 0.1)
            assert breaker.state == CircuitState.OPEN
            clock[0] = 60.0
            return await client.request("GET", "/me")

        assert run_with_client(front, scenario, credentials, breaker=breaker) == {}
        assert breaker.state == CircuitState.CLOSED


class TestConvenienceCalls:
    def test_me(self, credentials) -> None:
        front = FakeFront(lambda r: httpx.Response(200, json={"id": "acc_1", "name": "Acme"}))
        assert run_with_client(front, lambda c: c.me(), credentials) == {"id": "acc_1", "name": "Acme"}
        assert front.api_requests[0].url.path == "/me"

    def test_list_teammates_follows_pagination(self, credentials) -> None:
        def api(request):
            if request.url.params.get("page_token") == "2":
                return httpx.Response(200, json={"_results": [{"email": "b@x.io"}], "_pagination": {"next": None}})
            return httpx.Response(
                200,
                json={
                    "_results": [{"email": "a@x.io"}],
                    "_pagination": {"next": f"{API_BASE}/teammates?page_token=2"},
                },
            )

        teammates = run_with_client(FakeFront(api), lambda c: c.list_teammates(), credentials)
        assert [t["email"] for t in teammates] == ["a@x.io", "b@x.io"]

    def test_aclose_leaves_injected_client_open(self, credentials) -> None:
        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(ok)) as http:
                source = AccessTokenSource(credentials, lambda: "rt", http_client=http, token_url=TOKEN_URL)
                async with FrontClient(source, base_url=API_BASE, http_client=http):
                    pass
                return http.is_closed

        assert asyncio.run(go()) is False
