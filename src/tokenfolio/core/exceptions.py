"""Custom exception hierarchy for tokenfolio."""

from typing import Any


class TokenfolioError(Exception):
    """Base exception for all tokenfolio errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(TokenfolioError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str — the config field that failed validation
        value: Any — the invalid value (redacted for secrets)
    """


class ProviderError(TokenfolioError):
    """A quote provider call failed.

    Policy: fall through to the next provider in the resolver chain.
    Not retried unless it is a TransientProviderError.

    Context keys:
        provider: str — "alchemy", "coingecko", "openexchangerates", ...
        url: str — the URL that was being fetched
        status_code: int | None — HTTP status code if applicable
    """

    retryable = False


class TransientProviderError(ProviderError):
    """Timeout, connection failure or 5xx from a provider.

    Policy: retried with exponential backoff by the BatchFetcher, then
    downgraded to "no data".
    """

    retryable = True


class RateLimitError(TransientProviderError):
    """Provider returned HTTP 429 (too many requests).

    Policy: same as TransientProviderError, honoring Retry-After.

    Context keys:
        retry_after: float | None — seconds the provider asked us to wait
    """

    @property
    def retry_after(self) -> float | None:
        value = self.context.get("retry_after")
        return float(value) if value is not None else None


class ProviderNotConfiguredError(ProviderError):
    """Provider has no credential configured.

    Policy: treated exactly like a provider failure; the chain falls
    through immediately without any network call.
    """


class IdentifierResolutionError(ProviderError):
    """Asset has no known mapping to a provider-specific identifier.

    Policy: terminal for that asset. Never retried.

    Context keys:
        address: str
        chain_id: int
    """


class MalformedResponseError(ProviderError):
    """Provider returned no data points or is missing expected fields.

    Policy: treated as a failure, never as a crash.
    """
