from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional

if TYPE_CHECKING:
    from .adapters.http_dispatcher import NormalizedResult


class ExchangeError(Exception):
    """Base class for every failure raised by the exchange core."""


class UnknownSymbolError(ExchangeError, LookupError):
    def __init__(self, symbol: str) -> None:
        super().__init__(f"Unknown asset: {symbol}")
        self.symbol = symbol


class WireEncodingError(ExchangeError, ValueError):
    """An order or action cannot be expressed in the venue wire format."""


class SigningError(ExchangeError):
    """The signing key is unusable or the action is malformed for its protocol."""


class RateLimitTimeoutError(ExchangeError, TimeoutError):
    def __init__(self, endpoint: str, weight: int, timeout: float) -> None:
        super().__init__(
            f"Rate budget for {endpoint} not available for weight {weight} within {timeout:.2f}s"
        )
        self.endpoint = endpoint
        self.weight = weight
        self.timeout = timeout


class TransientNetworkError(ExchangeError):
    """Connection failures or 5xx answers that persisted through every retry."""

    def __init__(self, message: str, *, attempts: int, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.status_code = status_code


class VenueRejectionError(ExchangeError):
    """Terminal rejection: an HTTP 4xx or a business error reported by the venue.

    For batched actions ``statuses`` holds the complete per-order sequence,
    aligned with the submitted orders, so callers can tell which ones landed.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        statuses: Optional[List[Any]] = None,
        result: Optional["NormalizedResult"] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.statuses: List[Any] = list(statuses or [])
        self.result = result


class IndeterminateOutcomeError(ExchangeError):
    """The request may or may not have reached the venue; its effect is unknown."""

    def __init__(self, message: str, *, nonce: Optional[int] = None) -> None:
        super().__init__(message)
        self.nonce = nonce
