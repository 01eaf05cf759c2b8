from __future__ import annotations

from typing import Optional


class SourceError(Exception):
    """Recoverable failure while talking to a price provider.

    ``code`` is a stable, provider-namespaced identifier such as
    ``coingecko_api_error_wrong_status``; it is safe to log and to show to
    operators, but never to anonymous clients.
    """

    kind = "source_error"

    def __init__(self, slug: str, message: str, endpoint: Optional[str] = None) -> None:
        super().__init__(message)
        self.slug = slug
        self.endpoint = endpoint
        self.message = message

    @property
    def code(self) -> str:
        return f"{self.slug}_api_error_{self.kind}"


class MissingCredentials(SourceError):
    kind = "missing_key"


class TransportError(SourceError):
    kind = "transport"


class UnexpectedStatus(SourceError):
    kind = "wrong_status"

    def __init__(self, slug: str, status_code: int, endpoint: Optional[str] = None) -> None:
        super().__init__(
            slug,
            f"External API({endpoint}) returned non-200 status code: {status_code}.",
            endpoint=endpoint,
        )
        self.status_code = status_code


class MalformedPayload(SourceError):
    kind = "malformed_json"


class UnsupportedSourceError(ValueError):
    """Raised when no adapter is registered for a provider slug."""


class InvalidKeyError(ValueError):
    """Raised for cache keys that are empty or contain reserved characters."""
