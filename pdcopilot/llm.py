import asyncio
import logging
from typing import Any, Callable, List, Optional

import anthropic
from anthropic import AsyncAnthropic

from .config import Settings
from .models import Turn

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "sk-ant-"


class CompletionError(RuntimeError):
    """Base class for classified completion failures."""

    kind = "network_other"

    def __init__(self, message: str, error: str | None = None):
        super().__init__(message)
        self.message = message
        self.error = error or message


class MissingCredential(CompletionError):
    kind = "missing_credential"

    def __init__(self):
        super().__init__("Please set your Anthropic API key in the settings to generate patches")


class InvalidCredentialFormat(CompletionError):
    kind = "invalid_credential_format"

    def __init__(self, prefix: str = API_KEY_PREFIX):
        super().__init__(f'Invalid API key format. Should start with "{prefix}"')
        self.prefix = prefix


class Unauthorized(CompletionError):
    kind = "unauthorized"

    def __init__(self, error: str | None = None):
        super().__init__("Invalid API key. Please check your Anthropic API key in settings", error)


class RateLimited(CompletionError):
    kind = "rate_limited"

    def __init__(self, error: str | None = None):
        super().__init__("API rate limit exceeded. Please try again later", error)


class CompletionTimeout(CompletionError):
    kind = "timeout"

    def __init__(self, seconds: float, error: str | None = None):
        super().__init__(f"Completion request timed out after {seconds:g}s", error)
        self.seconds = seconds


class NetworkOther(CompletionError):
    kind = "network_other"

    def __init__(self, error: str):
        super().__init__(f"Completion request failed: {error}", error)


def check_api_key(api_key: Optional[str]) -> str:
    if not api_key or not api_key.strip():
        raise MissingCredential()
    api_key = api_key.strip()
    if not api_key.startswith(API_KEY_PREFIX):
        raise InvalidCredentialFormat(API_KEY_PREFIX)
    return api_key


def resolve_client(
    client: Any | None = None,
    api_key: str | None = None,
    timeout: float = 30.0,
    http_client: Any | None = None,
) -> Any:
    if client is not None:
        return client
    if not api_key:
        raise MissingCredential()
    return AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0, http_client=http_client)


def extract_text(resp) -> str:
    parts = []
    for block in resp.content:
        if hasattr(block, "text") and block.text:
            parts.append(block.text)
    return "".join(parts).strip()


def to_payload(turns: List[Turn]) -> tuple[str, list[dict[str, Any]]]:
    system = "\n\n".join(turn.content for turn in turns if turn.role == "system")
    blocks = [{"type": "text", "text": turn.content} for turn in turns if turn.role == "user"]
    return system, [{"role": "user", "content": blocks}]


def classify_error(exc: Exception, timeout: float) -> CompletionError:
    if isinstance(exc, CompletionError):
        return exc
    if isinstance(exc, (anthropic.APITimeoutError, TimeoutError, asyncio.TimeoutError)):
        return CompletionTimeout(timeout, str(exc))
    if isinstance(exc, anthropic.AuthenticationError):
        return Unauthorized(str(exc))
    if isinstance(exc, anthropic.RateLimitError):
        return RateLimited(str(exc))
    if isinstance(exc, anthropic.APIStatusError):
        if exc.status_code == 401:
            return Unauthorized(str(exc))
        if exc.status_code == 429:
            return RateLimited(str(exc))
    return NetworkOther(str(exc))


class CompletionClient:
    """Sends composed turns to the completion service. Performs no retries.

    Each call runs against a wall-clock deadline of ``settings.timeout``
    seconds. When the deadline passes the in-flight request is cancelled,
    which closes its connection, and the call fails with CompletionTimeout.
    """

    def __init__(
        self,
        credentials: Callable[[], Optional[str]],
        settings: Settings | None = None,
        *,
        client: Any | None = None,
        http_client: Any | None = None,
    ):
        self.credentials = credentials
        self.settings = settings or Settings()
        self._client = client
        self._http_client = http_client

    def complete(self, turns: List[Turn]) -> str:
        api_key = check_api_key(self.credentials())
        system, messages = to_payload(turns)

        logger.debug("Requesting completion from %s (%d turns)", self.settings.model, len(turns))
        try:
            resp = asyncio.run(self._request(api_key, system, messages))
        except (anthropic.APIError, OSError, asyncio.TimeoutError) as e:
            error = classify_error(e, self.settings.timeout)
            logger.error("Completion failed (%s): %s", error.kind, error.error)
            raise error from e

        return extract_text(resp)

    async def _request(self, api_key: str, system: str, messages: list[dict[str, Any]]):
        owned = self._client is None
        client = resolve_client(
            client=self._client,
            api_key=api_key,
            timeout=self.settings.timeout,
            http_client=self._http_client,
        )
        try:
            return await asyncio.wait_for(
                client.messages.create(
                    model=self.settings.model,
                    max_tokens=self.settings.max_tokens,
                    system=system,
                    messages=messages,
                    # Sent as a raw body field: newer SDK releases dropped the keyword.
                    extra_body={"temperature": self.settings.temperature},
                ),
                timeout=self.settings.timeout,
            )
        finally:
            if owned:
                await client.close()
