from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from pdcopilot.artifacts import KeyValueStore
from pdcopilot.config import Settings
from pdcopilot.llm import CompletionClient
from pdcopilot.store import RevisionStore

VALID_KEY = "sk-ant-test-key"

# Scenario A: every checklist item present, 7 connections, gain 0.25.
COMPLETE_PATCH = """#N canvas 0 0 520 400;
#X obj 10 10 cnv 15 500 60 empty empty Sine Tone 20 12 0 14 -233017 -66577 0;
#X text 20 30 Instructions: 1) Click START 2) Listen;
#X obj 50 100 loadbang;
#X msg 50 120 1;
#X obj 50 140 tgl 15 0 empty empty START 17 7 0 10 -262144 -1 -1 0 1;
#X obj 50 160 metro 100;
#X obj 50 200 osc~ 440;
#X obj 50 250 *~ 0.25;
#X obj 50 300 clip~ -1 1;
#X obj 50 350 dac~;
#X obj 150 300 vu 15 120 empty empty -1 -8 0 10 -66577 -1 1;
#X connect 2 0 3 0;
#X connect 3 0 4 0;
#X connect 4 0 5 0;
#X connect 6 0 7 0;
#X connect 7 0 8 0;
#X connect 8 0 9 0;
#X connect 8 1 9 1;"""

# Scenario B: no level meter and only 4 connections.
NO_METER_PATCH = """#N canvas 0 0 520 400;
#X obj 10 10 cnv 15 500 60 empty empty Sine Tone 20 12 0 14 -233017 -66577 0;
#X text 20 30 Instructions: 1) Click START 2) Listen;
#X obj 50 100 loadbang;
#X msg 50 120 1;
#X obj 50 140 tgl 15 0 empty empty START 17 7 0 10 -262144 -1 -1 0 1;
#X obj 50 160 metro 100;
#X obj 50 200 osc~ 440;
#X obj 50 250 *~ 0.25;
#X obj 50 300 clip~ -1 1;
#X obj 50 350 dac~;
#X connect 2 0 3 0;
#X connect 3 0 4 0;
#X connect 6 0 7 0;
#X connect 7 0 8 0;"""


def make_completion(body: str, explanation: str = "Step 1: press START.") -> str:
    return f"Here is your patch.\n---PATCH---\n```pd\n{body}\n```\n---EXPLANATION---\n{explanation}\n"


def make_response(text: str) -> SimpleNamespace:
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])


def make_sdk_client(*texts: str) -> MagicMock:
    """SDK stand-in whose messages.create returns the given completions in order."""
    sdk = MagicMock()
    sdk.messages.create = AsyncMock(side_effect=[make_response(text) for text in texts])
    return sdk


def message_body(text: str) -> dict:
    """JSON body of a Messages API response carrying one text block."""
    return {
        "id": "msg_test",
        "type": "message",
        "role": "assistant",
        "model": "claude-opus-4-6",
        "content": [{"type": "text", "text": text}],
        "stop_reason": "end_turn",
        "stop_sequence": None,
        "usage": {"input_tokens": 10, "output_tokens": 20},
    }


def make_http_client(handler) -> httpx.AsyncClient:
    """HTTP client for a real SDK instance whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=tmp_path)


@pytest.fixture
def kv(tmp_path):
    return KeyValueStore.in_dir(tmp_path)


@pytest.fixture
def store(kv):
    return RevisionStore(kv)


@pytest.fixture
def client_factory(settings):
    def _make(*texts: str, api_key: str | None = VALID_KEY):
        sdk = make_sdk_client(*texts)
        return CompletionClient(lambda: api_key, settings, client=sdk), sdk

    return _make
