"""Tests for the cooldown gate, dispatcher, FCM token sources and push client."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import httpx
import pytest
from google.auth.exceptions import RefreshError

from beastwatch.care.schemas import Alert
from beastwatch.errors import CooldownStoreError, DispatchFailed
from beastwatch.notify.credentials import GoogleTokenSource, StaticTokenSource
from beastwatch.notify.dispatcher import Dispatcher
from beastwatch.notify.gate import CooldownGate
from beastwatch.notify.push import FcmPushClient
from tests.conftest import HOUR_MS, MINUTE_MS, T0, RecordingPush

ALERT = Alert(kind="hunger", title="Hungry", body="Your beast's hunger is low (40/100).")


# ---------------------------------------------------------------------------
# CooldownGate
# ---------------------------------------------------------------------------


class TestCooldownGate:

    async def test_never_notified_is_admitted(self, cooldown_store):
        gate = CooldownGate(cooldown_store, HOUR_MS)
        assert await gate.admit("0xa", T0) is True

    async def test_within_window_suppressed(self, cooldown_store):
        gate = CooldownGate(cooldown_store, HOUR_MS)
        assert await gate.admit("0xa", T0)
        await gate.record("0xa", T0)
        assert await gate.admit("0xa", T0 + 30 * MINUTE_MS) is False
        assert await gate.admit("0xa", T0 + HOUR_MS - 1) is False

    async def test_window_boundary_admits(self, cooldown_store):
        gate = CooldownGate(cooldown_store, HOUR_MS)
        await gate.record("0xa", T0)
        assert await gate.admit("0xa", T0 + HOUR_MS) is True

    async def test_owners_are_independent(self, cooldown_store):
        gate = CooldownGate(cooldown_store, HOUR_MS)
        await gate.record("0xa", T0)
        assert await gate.admit("0xb", T0) is True

    async def test_zero_window_always_admits(self, cooldown_store):
        gate = CooldownGate(cooldown_store, 0)
        await gate.record("0xa", T0)
        assert await gate.admit("0xa", T0) is True

    async def test_record_stores_timestamp(self, cooldown_store):
        gate = CooldownGate(cooldown_store, HOUR_MS)
        await gate.record("0xa", T0)
        assert cooldown_store.records == {"0xa": T0}

    async def test_read_failure_wrapped(self, cooldown_store):
        cooldown_store.fail_get = True
        gate = CooldownGate(cooldown_store, HOUR_MS)
        with pytest.raises(CooldownStoreError) as exc_info:
            await gate.admit("0xa", T0)
        assert exc_info.value.owner_id == "0xa"

    async def test_write_failure_wrapped(self, cooldown_store):
        cooldown_store.fail_set = True
        gate = CooldownGate(cooldown_store, HOUR_MS)
        with pytest.raises(CooldownStoreError):
            await gate.record("0xa", T0)


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class TestDispatcher:

    async def test_success(self, push):
        result = await Dispatcher(push).send("tok", ALERT)
        assert result.ok is True
        assert result.error is None
        assert push.sent == [("tok", ALERT.title, ALERT.body)]

    async def test_failure_returned_not_raised(self):
        push = RecordingPush({"tok": DispatchFailed("transient", "503")})
        result = await Dispatcher(push).send("tok", ALERT)
        assert result.ok is False
        assert result.error.kind == "transient"

    async def test_invalid_token_kind_preserved(self):
        push = RecordingPush({"dead-tok": DispatchFailed("invalid_token")})
        result = await Dispatcher(push).send("dead-tok", ALERT)
        assert result.ok is False
        assert result.error.kind == "invalid_token"

    async def test_unexpected_exception_becomes_unknown_failure(self):
        class Broken:
            async def send(self, token, title, body):
                raise RuntimeError("kaboom")

        result = await Dispatcher(Broken()).send("tok", ALERT)
        assert result.ok is False
        assert result.error.kind == "unknown"


# ---------------------------------------------------------------------------
# Token sources
# ---------------------------------------------------------------------------


def _credentials(valid: bool, token: str | None = "fresh", project_id: str = "bytebeasts"):
    creds = MagicMock()
    creds.valid = valid
    creds.token = token
    creds.project_id = project_id

    def refresh(request):
        creds.token = "refreshed"
        creds.valid = True

    creds.refresh.side_effect = refresh
    return creds


class TestGoogleTokenSource:

    async def test_valid_credentials_not_refreshed(self):
        creds = _credentials(valid=True)
        source = GoogleTokenSource(credentials=creds)
        assert await source.token() == "fresh"
        creds.refresh.assert_not_called()
        assert source.project_id == "bytebeasts"

    async def test_expired_credentials_refreshed(self):
        creds = _credentials(valid=False, token="stale")
        source = GoogleTokenSource(credentials=creds)
        assert await source.token() == "refreshed"
        creds.refresh.assert_called_once()

    async def test_refresh_error_is_auth_failure(self):
        creds = _credentials(valid=False)
        creds.refresh.side_effect = RefreshError("invalid_grant")
        source = GoogleTokenSource(credentials=creds)
        with pytest.raises(DispatchFailed) as exc_info:
            await source.token()
        assert exc_info.value.kind == "auth"

    async def test_missing_key_file_is_auth_failure(self, tmp_path):
        source = GoogleTokenSource(str(tmp_path / "missing.json"))
        with pytest.raises(DispatchFailed) as exc_info:
            await source.token()
        assert exc_info.value.kind == "auth"

    async def test_invalidate_forces_refresh(self):
        creds = _credentials(valid=True)
        source = GoogleTokenSource(credentials=creds)
        source.invalidate()
        assert creds.token is None

    async def test_static_source_without_token_fails(self):
        with pytest.raises(DispatchFailed) as exc_info:
            await StaticTokenSource("").token()
        assert exc_info.value.kind == "auth"


# ---------------------------------------------------------------------------
# FcmPushClient
# ---------------------------------------------------------------------------


def _fcm_error(status: int, fcm_status: str, error_code: str | None = None) -> httpx.Response:
    details = []
    if error_code:
        details.append({
            "@type": "type.googleapis.com/google.firebase.fcm.v1.FcmError",
            "errorCode": error_code,
        })
    return httpx.Response(
        status,
        json={"error": {"code": status, "status": fcm_status, "details": details}},
    )


class RotatingTokens:
    """Token source that hands out tok-1, tok-2, ... and counts invalidations."""

    def __init__(self, project_id: str | None = "bytebeasts") -> None:
        self.project_id = project_id
        self.issued = 0
        self.invalidated = 0
        self._current: str | None = None

    async def token(self) -> str:
        if self._current is None:
            self.issued += 1
            self._current = f"tok-{self.issued}"
        return self._current

    def invalidate(self) -> None:
        self.invalidated += 1
        self._current = None


def _client(handler, tokens=None) -> tuple[FcmPushClient, httpx.AsyncClient]:
    http = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="https://fcm.test/v1"
    )
    tokens = tokens or StaticTokenSource("access")
    return FcmPushClient("bytebeasts", tokens, http=http), http


class TestFcmPushClient:

    async def test_sends_message_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"name": "projects/bytebeasts/messages/1"})

        client, http = _client(handler)
        name = await client.send("tok", "Title", "Body")
        assert name == "projects/bytebeasts/messages/1"
        assert seen["url"] == "https://fcm.test/v1/projects/bytebeasts/messages:send"
        assert seen["auth"] == "Bearer access"
        assert seen["body"] == {
            "message": {"token": "tok", "notification": {"title": "Title", "body": "Body"}}
        }
        await http.aclose()

    @pytest.mark.parametrize(
        "status, fcm_status, error_code, kind",
        [
            (404, "NOT_FOUND", "UNREGISTERED", "invalid_token"),
            (400, "INVALID_ARGUMENT", "INVALID_ARGUMENT", "invalid_token"),
            (403, "PERMISSION_DENIED", "SENDER_ID_MISMATCH", "invalid_token"),
            (401, "UNAUTHENTICATED", None, "auth"),
            (403, "PERMISSION_DENIED", None, "auth"),
            (429, "RESOURCE_EXHAUSTED", "QUOTA_EXCEEDED", "quota_exceeded"),
            (503, "UNAVAILABLE", "UNAVAILABLE", "transient"),
            (500, "INTERNAL", None, "transient"),
        ],
    )
    async def test_error_classification(self, status, fcm_status, error_code, kind):
        client, http = _client(lambda request: _fcm_error(status, fcm_status, error_code))
        with pytest.raises(DispatchFailed) as exc_info:
            await client.send("tok", "Title", "Body")
        assert exc_info.value.kind == kind
        await http.aclose()

    async def test_plain_text_server_error_is_transient(self):
        client, http = _client(lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(DispatchFailed) as exc_info:
            await client.send("tok", "Title", "Body")
        assert exc_info.value.kind == "transient"
        await http.aclose()

    async def test_network_error_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        client, http = _client(handler)
        with pytest.raises(DispatchFailed) as exc_info:
            await client.send("tok", "Title", "Body")
        assert exc_info.value.kind == "transient"
        await http.aclose()

    async def test_unauthorized_refreshes_token_and_retries(self):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["Authorization"])
            if request.headers["Authorization"] == "Bearer tok-1":
                return _fcm_error(401, "UNAUTHENTICATED")
            return httpx.Response(200, json={"name": "projects/bytebeasts/messages/2"})

        tokens = RotatingTokens()
        client, http = _client(handler, tokens)
        assert await client.send("tok", "Title", "Body") == "projects/bytebeasts/messages/2"
        assert seen == ["Bearer tok-1", "Bearer tok-2"]
        assert tokens.invalidated == 1
        await http.aclose()

    async def test_token_fetched_per_request(self):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["Authorization"])
            return httpx.Response(200, json={"name": "n"})

        tokens = RotatingTokens()
        client, http = _client(handler, tokens)
        await client.send("tok", "Title", "Body")
        tokens.invalidate()
        await client.send("tok", "Title", "Body")
        assert seen == ["Bearer tok-1", "Bearer tok-2"]
        await http.aclose()

    async def test_project_id_from_credentials(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            return httpx.Response(200, json={"name": "n"})

        http = httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="https://fcm.test/v1"
        )
        client = FcmPushClient("", RotatingTokens(project_id="from-creds"), http=http)
        await client.send("tok", "Title", "Body")
        assert seen["path"] == "/v1/projects/from-creds/messages:send"
        await http.aclose()

    async def test_missing_project_id_is_auth_failure(self):
        http = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})),
            base_url="https://fcm.test/v1",
        )
        client = FcmPushClient("", RotatingTokens(project_id=None), http=http)
        with pytest.raises(DispatchFailed) as exc_info:
            await client.send("tok", "Title", "Body")
        assert exc_info.value.kind == "auth"
        await http.aclose()
