"""
Record Search Client

Async client for the record-search backend:

    GET <RECORD_API_BASE_URL>/api/search?q=<term>&limit=<n>
    Authorization: Bearer <RECORD_API_BEARER_TOKEN>   (when configured)

Features:
- aiohttp with an explicit total timeout per call
- Retry with exponential backoff on transient failures (tenacity):
  connection errors, truncated bodies, timeouts, HTTP 429 and 5xx
- Every transport or HTTP failure surfaces as RecordSearchError
- Optional shared session via ``async with RecordSearchClient() as client``
- Call statistics

The discovery loop only relies on ``await client.search(term, limit)``
returning the decoded JSON payload, so tests substitute any object with that
coroutine.
"""

import asyncio
import time
from typing import Any, Dict, Optional

import aiohttp
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)

from config.logging_config import get_logger
from config.settings import settings

logger = get_logger(__name__)


class RecordSearchError(RuntimeError):
    """A record lookup failed (after retries, for transient errors)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TransientBackendError(RecordSearchError):
    """429 / 5xx from the backend, worth retrying."""


RETRYABLE_ERRORS = (
    aiohttp.ClientConnectionError,
    aiohttp.ClientPayloadError,
    asyncio.TimeoutError,
    TransientBackendError,
)


class RecordSearchClient:
    """
    Client for the record-search backend.

    Example:
        >>> async with RecordSearchClient() as client:
        ...     payload = await client.search("9876543210", limit=100)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        bearer_token: Optional[str] = None,
        search_path: Optional[str] = None,
        timeout: Optional[int] = None
    ):
        """
        Args:
            base_url: Backend base URL (settings.RECORD_API_BASE_URL if None)
            bearer_token: Bearer token (settings.RECORD_API_BEARER_TOKEN if None)
            search_path: Search endpoint path (settings.RECORD_API_SEARCH_PATH if None)
            timeout: Total seconds per request (settings.RECORD_API_TIMEOUT if None)
        """
        self.base_url = (base_url or settings.RECORD_API_BASE_URL).rstrip("/")
        self.bearer_token = bearer_token if bearer_token is not None else settings.RECORD_API_BEARER_TOKEN
        self.search_path = "/" + (search_path or settings.RECORD_API_SEARCH_PATH).lstrip("/")
        self.timeout = timeout or settings.RECORD_API_TIMEOUT

        self._session: Optional[aiohttp.ClientSession] = None

        self.stats = {
            "total_searches": 0,
            "successes": 0,
            "errors": 0,
            "total_latency_ms": 0.0,
        }

        logger.info(
            "Record search client initialized",
            extra={
                "base_url": self.base_url,
                "search_path": self.search_path,
                "authenticated": bool(self.bearer_token),
                "timeout": self.timeout
            }
        )

    # ========================================================================
    # SESSION LIFECYCLE
    # ========================================================================

    async def __aenter__(self) -> "RecordSearchClient":
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.headers)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.search_path}"

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.bearer_token:
            headers["Authorization"] = f"Bearer {self.bearer_token}"
        return headers

    async def search(self, term: str, limit: int = 100) -> Any:
        """
        Look up one term.

        Returns:
            Decoded JSON payload, in whatever layout the backend uses

        Raises:
            ValueError: If term is empty
            RecordSearchError: On HTTP errors, bad bodies or exhausted retries
        """
        if not term or not str(term).strip():
            raise ValueError("Search term cannot be empty")

        self.stats["total_searches"] += 1
        start_time = time.time()

        try:
            payload = await self._get_with_retry(str(term), int(limit))
        except RecordSearchError:
            self.stats["errors"] += 1
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.stats["errors"] += 1
            raise RecordSearchError(f"Record search failed for {term!r}: {e}") from e

        latency_ms = (time.time() - start_time) * 1000
        self.stats["successes"] += 1
        self.stats["total_latency_ms"] += latency_ms

        logger.debug(
            "Record search completed",
            extra={"term": term, "latency_ms": f"{latency_ms:.1f}"}
        )

        return payload

    def get_statistics(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "success_rate": self.stats["successes"] / max(self.stats["total_searches"], 1),
            "avg_latency_ms": self.stats["total_latency_ms"] / max(self.stats["successes"], 1),
        }

    # ========================================================================
    # HTTP
    # ========================================================================

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        reraise=True
    )
    async def _get_with_retry(self, term: str, limit: int) -> Any:
        params = {"q": term, "limit": limit}
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        if self._session is not None and not self._session.closed:
            return await self._get(self._session, params, timeout)

        async with aiohttp.ClientSession(headers=self.headers) as session:
            return await self._get(session, params, timeout)

    async def _get(
        self,
        session: aiohttp.ClientSession,
        params: Dict[str, Any],
        timeout: aiohttp.ClientTimeout
    ) -> Any:
        async with session.get(self.url, params=params, timeout=timeout) as response:
            if response.status == 429 or response.status >= 500:
                raise TransientBackendError(
                    f"Record store returned HTTP {response.status}",
                    status=response.status
                )
            if response.status >= 400:
                raise RecordSearchError(
                    f"Record store returned HTTP {response.status}",
                    status=response.status
                )
            try:
                return await response.json(content_type=None)
            except ValueError as e:
                raise RecordSearchError(f"Record store returned invalid JSON: {e}") from e


__all__ = [
    "RecordSearchClient",
    "RecordSearchError",
    "TransientBackendError",
]
