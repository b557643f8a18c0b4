"""Client for the public GitHub events feed."""
import time
from typing import Any
import httpx
import structlog

log = structlog.get_logger()

_HTTP_ERROR_STATUS_THRESHOLD = 400
_RATE_LIMIT_STATUSES = (403, 429)


class GitHubError(Exception):
    """Base exception for upstream feed failures."""


class GitHubAPIError(GitHubError):
    """Raised on transport failures and non-success responses."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(cls, status_code: int) -> "GitHubAPIError":
        return cls(f"GitHub API HTTP {status_code}", status_code=status_code)

    @classmethod
    def timeout(cls) -> "GitHubAPIError":
        return cls("GitHub API request timed out")

    @classmethod
    def network_error(cls, detail: str) -> "GitHubAPIError":
        return cls(f"GitHub API network error: {detail}")


class GitHubRateLimitError(GitHubAPIError):
    """Raised when the feed signals rate limiting.

    Attributes:
        reset_at: Epoch seconds when the limit resets, if the feed said so
    """

    def __init__(self, status_code: int, reset_at: float | None = None):
        self.reset_at = reset_at
        message = f"GitHub API rate limited (HTTP {status_code})"
        if reset_at is not None:
            message = f"{message}, resets in {max(0, round(reset_at - time.time()))}s"
        super().__init__(message, status_code=status_code)


class GitHubResponseShapeError(GitHubError):
    """Raised when the feed body is not a list of event records."""


def _rate_limit_reset(response: httpx.Response) -> float | None:
    """Read the reset time from x-ratelimit-reset or Retry-After."""
    reset = response.headers.get("x-ratelimit-reset")
    if reset and reset.isdigit():
        return float(reset)
    retry_after = response.headers.get("retry-after")
    if retry_after and retry_after.isdigit():
        return time.time() + int(retry_after)
    return None


class GitHubEventsClient:
    """
    Fetches pages of the public events feed.

    The client is created and owned by this instance unless one is injected,
    in which case the caller is responsible for closing it.
    """

    def __init__(
        self,
        events_url: str = "https://api.github.com/events",
        token: str = "",
        per_page: int = 100,
        timeout_s: float = 20.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.events_url = events_url
        self.per_page = per_page
        headers = {
            "User-Agent": "gitmonitor/0.1",
            "Accept": "application/vnd.github+json",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._headers = headers
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout_s)

    async def fetch_events(self) -> list[dict[str, Any]]:
        """
        Fetch one page of events, newest first.

        Returns:
            Raw event records as returned by the feed

        Raises:
            GitHubRateLimitError: On 403/429 responses
            GitHubAPIError: On other error statuses or transport failures
            GitHubResponseShapeError: If the body is not a JSON list
        """
        try:
            response = await self._client.get(
                self.events_url, params={"per_page": self.per_page}, headers=self._headers
            )
        except httpx.TimeoutException as e:
            raise GitHubAPIError.timeout() from e
        except httpx.RequestError as e:
            raise GitHubAPIError.network_error(str(e)) from e

        if response.status_code in _RATE_LIMIT_STATUSES:
            raise GitHubRateLimitError(response.status_code, _rate_limit_reset(response))
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise GitHubAPIError.http_error(response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise GitHubResponseShapeError("GitHub events response is not JSON") from e
        if not isinstance(body, list):
            raise GitHubResponseShapeError(
                f"GitHub events response must be a list, got {type(body).__name__}"
            )

        log.debug(
            "github.events_fetched",
            count=len(body),
            rate_limit_remaining=response.headers.get("x-ratelimit-remaining"),
        )
        return body

    async def aclose(self) -> None:
        """Close the HTTP client if this instance owns it."""
        if self._owns_client:
            await self._client.aclose()
