"""Rate-limited async HTTP client shared by quote and FX providers."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from aiolimiter import AsyncLimiter

from tokenfolio.core.exceptions import (
    MalformedResponseError,
    ProviderError,
    RateLimitError,
    TransientProviderError,
)

logger = logging.getLogger(__name__)

_USER_AGENT = "tokenfolio/0.1 (+https://pypi.org/project/tokenfolio)"
_SERVER_ERRORS = frozenset({500, 502, 503, 504})


class ProviderClient:
    """One provider's HTTP session: token-bucket rate limit plus error taxonomy.

    Retries are deliberately not performed here; callers (the BatchFetcher)
    retry whole jobs so pacing stays under their control.

    Use via ``async with ProviderClient(...) as client:`` or call ``close()``.
    """

    def __init__(
        self,
        provider: str,
        base_url: str,
        rate_limit: float = 10.0,
        timeout: float = 15.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.provider = provider
        self._base_url = base_url.rstrip("/")
        self._limiter = AsyncLimiter(max_rate=rate_limit, time_period=1.0)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": _USER_AGENT, "Accept": "application/json", **(headers or {})},
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
        )

    async def __aenter__(self) -> ProviderClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    def url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    async def get_json(self, path: str, **kwargs: Any) -> Any:
        return await self.request_json("GET", path, **kwargs)

    async def post_json(self, path: str, **kwargs: Any) -> Any:
        return await self.request_json("POST", path, **kwargs)

    async def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        """Execute a rate-limited request and decode the JSON body.

        Error mapping:
            - HTTP 429: RateLimitError (retry_after from the Retry-After header)
            - HTTP 500/502/503/504, timeouts, connection errors: TransientProviderError
            - Other non-2xx: ProviderError (not retried)
            - Undecodable body: MalformedResponseError

        Raises:
            ProviderError: or one of its subclasses, per the table above.
        """
        url = self.url(path)
        context = {"provider": self.provider, "url": url}

        await self._limiter.acquire()
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientProviderError(
                f"{self.provider} timed out: {url}", context={**context, "error": str(e)}
            ) from e
        except httpx.TransportError as e:
            raise TransientProviderError(
                f"{self.provider} connection failed: {url}", context={**context, "error": str(e)}
            ) from e

        status = response.status_code
        if status == 429:
            raise RateLimitError(
                f"{self.provider} rate limit exceeded: {url}",
                context={**context, "status_code": status, "retry_after": _parse_retry_after(response)},
            )
        if status in _SERVER_ERRORS:
            raise TransientProviderError(
                f"{self.provider} server error {status}: {url}",
                context={**context, "status_code": status},
            )
        if not response.is_success:
            raise ProviderError(
                f"HTTP {status} from {self.provider}: {url}",
                context={**context, "status_code": status},
            )

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"{self.provider} returned a non-JSON body: {url}", context=context
            ) from e


def _parse_retry_after(response: httpx.Response) -> float | None:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(float(raw), 0.0)
    except ValueError:
        return None
