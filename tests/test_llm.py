"""Tests for the completion client, credential checks and error classification."""
import asyncio
import json
import time

import anthropic
import httpx
import pytest

from pdcopilot.artifacts import API_KEY_KEY
from pdcopilot.composer import compose_request
from pdcopilot.config import Settings
from pdcopilot.credentials import (
    ChainedCredentialProvider,
    EnvCredentialProvider,
    StoredCredentialProvider,
    clear_api_key,
    save_api_key,
)
from pdcopilot.llm import (
    CompletionClient,
    CompletionTimeout,
    InvalidCredentialFormat,
    MissingCredential,
    NetworkOther,
    RateLimited,
    Unauthorized,
    classify_error,
    resolve_client,
    to_payload,
)

from conftest import VALID_KEY, make_http_client, make_sdk_client, message_body

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _status_error(cls, status: int):
    response = httpx.Response(status, request=_REQUEST)
    return cls(f"status {status}", response=response, body=None)


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

class TestCredentials:

    @pytest.mark.parametrize("key", [None, "", "   "])
    def test_missing_key_fails_before_network(self, settings, key):
        sdk = make_sdk_client("unused")
        client = CompletionClient(lambda: key, settings, client=sdk)
        with pytest.raises(MissingCredential):
            client.complete(compose_request("tone"))
        sdk.messages.create.assert_not_called()

    def test_wrong_prefix_fails_before_network(self, settings):
        sdk = make_sdk_client("unused")
        client = CompletionClient(lambda: "not-a-key", settings, client=sdk)
        with pytest.raises(InvalidCredentialFormat):
            client.complete(compose_request("tone"))
        sdk.messages.create.assert_not_called()

    def test_credentials_read_on_every_call(self, settings):
        keys = iter([VALID_KEY, None])
        client = CompletionClient(lambda: next(keys), settings, client=make_sdk_client("a", "b"))
        assert client.complete(compose_request("tone")) == "a"
        with pytest.raises(MissingCredential):
            client.complete(compose_request("tone"))

    def test_save_and_read_stored_key(self, kv):
        save_api_key(kv, f"  {VALID_KEY} ")
        assert kv.get(API_KEY_KEY) == VALID_KEY
        assert StoredCredentialProvider(kv)() == VALID_KEY

    def test_save_rejects_bad_format(self, kv):
        with pytest.raises(InvalidCredentialFormat):
            save_api_key(kv, "sk-something")
        assert kv.get(API_KEY_KEY) is None

    def test_clear_key(self, kv):
        save_api_key(kv, VALID_KEY)
        clear_api_key(kv)
        assert StoredCredentialProvider(kv)() is None

    def test_env_provider(self, monkeypatch):
        monkeypatch.setenv("PDCOPILOT_TEST_KEY", VALID_KEY)
        assert EnvCredentialProvider("PDCOPILOT_TEST_KEY")() == VALID_KEY

    def test_chained_provider_takes_first_non_empty(self):
        provider = ChainedCredentialProvider(lambda: None, lambda: " ", lambda: VALID_KEY)
        assert provider() == VALID_KEY


# ---------------------------------------------------------------------------
# Request payload
# ---------------------------------------------------------------------------

class TestCompletionCall:

    def test_payload_shape(self, settings):
        sdk = make_sdk_client("---PATCH---\nx")
        client = CompletionClient(lambda: VALID_KEY, settings, client=sdk)
        raw = client.complete(compose_request("tone", "VuMeter"))

        assert raw == "---PATCH---\nx"
        kwargs = sdk.messages.create.call_args.kwargs
        assert kwargs["model"] == settings.model
        assert kwargs["max_tokens"] == 2000
        assert kwargs["extra_body"] == {"temperature": 0.7}
        assert "Pure Data" in kwargs["system"]
        assert "---PATCH---" in kwargs["system"]
        blocks = kwargs["messages"][0]["content"]
        assert [b["text"] for b in blocks] == ["tone", "Errors to fix: VuMeter"]

    def test_to_payload_single_user_message(self):
        system, messages = to_payload(compose_request("tone"))
        assert len(messages) == 1
        assert messages[0]["role"] == "user"
        assert "#N canvas 0 0 520 400;" in system

    def test_empty_completion_is_not_an_error(self, settings):
        client = CompletionClient(lambda: VALID_KEY, settings, client=make_sdk_client(""))
        assert client.complete(compose_request("tone")) == ""


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

class TestErrorClassification:

    def test_authentication_error(self):
        error = classify_error(_status_error(anthropic.AuthenticationError, 401), 30.0)
        assert isinstance(error, Unauthorized)
        assert error.kind == "unauthorized"

    def test_rate_limit_error(self):
        error = classify_error(_status_error(anthropic.RateLimitError, 429), 30.0)
        assert isinstance(error, RateLimited)

    def test_timeout_error(self):
        error = classify_error(anthropic.APITimeoutError(request=_REQUEST), 30.0)
        assert isinstance(error, CompletionTimeout)
        assert error.seconds == 30.0
        assert "30s" in error.message

    def test_connection_error(self):
        error = classify_error(anthropic.APIConnectionError(request=_REQUEST), 30.0)
        assert isinstance(error, NetworkOther)

    def test_server_error(self):
        error = classify_error(_status_error(anthropic.InternalServerError, 500), 30.0)
        assert isinstance(error, NetworkOther)

    def test_client_raises_classified_error(self, settings):
        sdk = make_sdk_client()
        sdk.messages.create.side_effect = _status_error(anthropic.RateLimitError, 429)
        client = CompletionClient(lambda: VALID_KEY, settings, client=sdk)
        with pytest.raises(RateLimited) as exc_info:
            client.complete(compose_request("tone"))
        assert isinstance(exc_info.value.__cause__, anthropic.RateLimitError)
        assert sdk.messages.create.call_count == 1


# ---------------------------------------------------------------------------
# Real SDK client over a mocked transport
# ---------------------------------------------------------------------------

def _error_body(kind: str, message: str) -> dict:
    return {"type": "error", "error": {"type": kind, "message": message}}


class TestRealClient:

    def test_resolve_client_disables_sdk_retries(self):
        client = resolve_client(api_key=VALID_KEY, timeout=5.0)
        assert isinstance(client, anthropic.AsyncAnthropic)
        assert client.max_retries == 0
        assert client.timeout == 5.0

    def test_success_sends_sampling_settings(self, settings):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=message_body("---PATCH---\nx\n---EXPLANATION---\ny"))

        client = CompletionClient(lambda: VALID_KEY, settings, http_client=make_http_client(handler))
        raw = client.complete(compose_request("tone"))

        assert raw == "---PATCH---\nx\n---EXPLANATION---\ny"
        assert len(requests) == 1
        assert requests[0].url.path.endswith("/v1/messages")
        assert requests[0].headers["x-api-key"] == VALID_KEY
        body = json.loads(requests[0].content)
        assert body["model"] == settings.model
        assert body["max_tokens"] == 2000
        assert body["temperature"] == 0.7
        assert "Pure Data" in body["system"]
        assert body["messages"][0]["content"][0]["text"] == "tone"

    def test_401_is_unauthorized(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json=_error_body("authentication_error", "invalid x-api-key"))

        client = CompletionClient(lambda: VALID_KEY, settings, http_client=make_http_client(handler))
        with pytest.raises(Unauthorized):
            client.complete(compose_request("tone"))

    def test_429_is_rate_limited_without_retry(self, settings):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(429, json=_error_body("rate_limit_error", "slow down"))

        client = CompletionClient(lambda: VALID_KEY, settings, http_client=make_http_client(handler))
        with pytest.raises(RateLimited):
            client.complete(compose_request("tone"))
        assert len(calls) == 1

    def test_slow_trickling_response_hits_wall_clock_deadline(self, tmp_path):
        settings = Settings(data_dir=tmp_path, timeout=0.5)
        payload = json.dumps(message_body("---PATCH---\nx\n---EXPLANATION---\ny")).encode()
        chunk = len(payload) // 6 + 1
        sent = []

        async def trickle():
            for start in range(0, len(payload), chunk):
                sent.append(start)
                yield payload[start:start + chunk]
                await asyncio.sleep(0.3)

        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"content-type": "application/json"}, content=trickle())

        client = CompletionClient(lambda: VALID_KEY, settings, http_client=make_http_client(handler))
        started = time.monotonic()
        with pytest.raises(CompletionTimeout) as exc_info:
            client.complete(compose_request("tone"))
        elapsed = time.monotonic() - started

        assert elapsed < 2.0
        assert exc_info.value.seconds == 0.5
        assert len(sent) < 6
