"""Generative text backend used to write incident summaries."""
from typing import Any, Protocol
import httpx
import structlog

log = structlog.get_logger()

_HTTP_ERROR_STATUS_THRESHOLD = 400
_HTTP_RATE_LIMITED = 429


class SummaryBackend(Protocol):
    """Anything that turns a free-text prompt into free-text content."""

    async def generate(self, prompt: str) -> str:
        ...


class GenerativeBackendError(Exception):
    """Base exception for generative backend failures."""


class GenerativeAPIError(GenerativeBackendError):
    """Raised when the backend call fails or returns an error status."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(cls, status_code: int) -> "GenerativeAPIError":
        return cls(f"Generative API HTTP error {status_code}", status_code=status_code)

    @classmethod
    def rate_limited(cls) -> "GenerativeAPIError":
        return cls("Generative API rate limited", status_code=_HTTP_RATE_LIMITED)

    @classmethod
    def timeout(cls) -> "GenerativeAPIError":
        return cls("Generative API request timed out")

    @classmethod
    def network_error(cls, detail: str) -> "GenerativeAPIError":
        return cls(f"Generative API network error: {detail}")


class GenerativeResponseShapeError(GenerativeBackendError):
    """Raised when the backend response is missing expected fields."""

    @classmethod
    def missing(cls, field: str) -> "GenerativeResponseShapeError":
        return cls(f"Generative API response missing expected field: {field}")


class GeminiClient:
    """
    Gemini ``generateContent`` client.

    Args:
        api_key: API key sent in the ``x-goog-api-key`` header
        api_url: Full ``:generateContent`` endpoint URL
        timeout_s: Request timeout in seconds
        http_client: Optional client for testing; the instance owns and
            closes its client only when none is injected
    """

    def __init__(
        self,
        api_key: str,
        api_url: str,
        timeout_s: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        if not api_key.strip():
            raise ValueError("Gemini API key must be non-empty")
        self.api_url = api_url
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout_s)
        self._headers = {"Content-Type": "application/json", "x-goog-api-key": api_key}

    async def generate(self, prompt: str) -> str:
        """
        Send a single prompt and return the generated text.

        Raises:
            GenerativeAPIError: On transport failures or error statuses
            GenerativeResponseShapeError: If the body lacks candidate text
        """
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            response = await self._client.post(self.api_url, json=payload, headers=self._headers)
        except httpx.TimeoutException as e:
            raise GenerativeAPIError.timeout() from e
        except httpx.RequestError as e:
            raise GenerativeAPIError.network_error(str(e)) from e

        if response.status_code == _HTTP_RATE_LIMITED:
            raise GenerativeAPIError.rate_limited()
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise GenerativeAPIError.http_error(response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise GenerativeResponseShapeError("Generative API returned invalid JSON") from e
        return _extract_text(data)

    async def aclose(self) -> None:
        """Close the HTTP client if this instance owns it."""
        if self._owns_client:
            await self._client.aclose()


def _extract_text(data: Any) -> str:
    """Pull ``candidates[0].content.parts[0].text`` out of a response body."""
    if not isinstance(data, dict):
        raise GenerativeResponseShapeError.missing("candidates")
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        raise GenerativeResponseShapeError.missing("candidates")

    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        raise GenerativeResponseShapeError.missing("candidates[0].content.parts")

    text = parts[0].get("text")
    if not isinstance(text, str):
        raise GenerativeResponseShapeError.missing("candidates[0].content.parts[0].text")
    return text
