from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..errors import (
    IndeterminateOutcomeError,
    RateLimitTimeoutError,
    TransientNetworkError,
    VenueRejectionError,
)
from ..services.rate_limiter import EXCHANGE_ENDPOINT, INFO_ENDPOINT, RateLimiter
from ..utils.redact import envelope_for_log, scrub_secrets


logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {500, 502, 503, 504}

# Raised before the request left the process; a retry cannot double-submit.
_NOT_SENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


@dataclass
class SignedEnvelope:
    action: Dict[str, Any]
    nonce: int
    signature: Dict[str, Any]
    vault_address: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "nonce": self.nonce,
            "signature": self.signature,
            "vaultAddress": self.vault_address,
        }


@dataclass
class NormalizedResult:
    """Venue response decoded at the boundary.

    ``kind`` is ``"multi"`` when the venue answered with a per-item status
    list (orders, cancels, modifies); ``statuses[i]`` then describes item
    ``i`` of the submitted action. Everything else is ``"single"``.
    """

    kind: str
    response_type: Optional[str]
    statuses: List[Any] = field(default_factory=list)
    raw: Any = None

    @property
    def ok(self) -> bool:
        return self.first_error is None

    @property
    def first_error(self) -> Optional[str]:
        for status in self.statuses:
            if isinstance(status, dict) and "error" in status:
                return str(status["error"])
        return None


def normalize_response(payload: Any) -> NormalizedResult:
    if not isinstance(payload, dict) or "status" not in payload:
        raise IndeterminateOutcomeError(f"Unrecognised venue response: {payload!r}")
    status = payload.get("status")
    response = payload.get("response")

    if status != "ok":
        message = response if isinstance(response, str) else json.dumps(response)
        raise VenueRejectionError(message or "Venue returned an error status")

    if isinstance(response, str):
        return NormalizedResult(kind="single", response_type=None, raw=payload)
    if not isinstance(response, dict):
        return NormalizedResult(kind="single", response_type=None, raw=payload)

    response_type = response.get("type")
    data = response.get("data")
    statuses = data.get("statuses") if isinstance(data, dict) else None
    if not isinstance(statuses, list):
        return NormalizedResult(kind="single", response_type=response_type, raw=payload)

    result = NormalizedResult(
        kind="multi",
        response_type=response_type,
        statuses=list(statuses),
        raw=payload,
    )
    error = result.first_error
    if error is not None:
        raise VenueRejectionError(error, statuses=result.statuses, result=result)
    return result


class HttpDispatcher:
    """Sends signed envelopes to ``/exchange`` and queries to ``/info``."""

    def __init__(
        self,
        base_url: str,
        rate_limiter: RateLimiter,
        *,
        timeout_seconds: float = 10.0,
        max_retries: int = 2,
        retry_backoff: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._rate_limiter = rate_limiter
        self._max_retries = max(0, int(max_retries))
        self._retry_backoff = max(0.0, float(retry_backoff))
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
        )
        self._order_tap = deque(maxlen=10)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpDispatcher":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def recent_requests(self) -> List[Dict[str, Any]]:
        """Recent exchange requests for debugging (never includes signatures)."""
        return list(self._order_tap)

    async def send(
        self,
        envelope: SignedEnvelope,
        *,
        weight: int = 1,
        timeout: Optional[float] = None,
    ) -> NormalizedResult:
        """Admit, post and normalize one signed envelope.

        ``timeout`` bounds the whole call. Running out while waiting for rate
        budget raises ``RateLimitTimeoutError`` (nothing was sent); running out
        once the request is on the wire raises ``IndeterminateOutcomeError``.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        await self._rate_limiter.admit(weight, endpoint=EXCHANGE_ENDPOINT, timeout=timeout)
        remaining = None
        if deadline is not None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise RateLimitTimeoutError(EXCHANGE_ENDPOINT, weight, timeout)
        payload = envelope.to_payload()
        tap_entry: Dict[str, Any] = {
            "path": EXCHANGE_ENDPOINT,
            "body": envelope_for_log(payload),
            "timestamp": time.time(),
        }
        self._order_tap.appendleft(tap_entry)
        logger.info("Dispatching %s", tap_entry["body"])
        try:
            try:
                body = await asyncio.wait_for(
                    self._post_with_retries(EXCHANGE_ENDPOINT, payload), timeout=remaining
                )
            except asyncio.TimeoutError as exc:
                raise IndeterminateOutcomeError(
                    f"Gave up after {timeout}s waiting for the venue; outcome unknown",
                    nonce=envelope.nonce,
                ) from exc
            result = normalize_response(body)
        except VenueRejectionError as exc:
            tap_entry["error"] = exc.message
            logger.error("Venue rejected %s: %s", tap_entry["body"]["type"], exc.message)
            raise
        except (TransientNetworkError, IndeterminateOutcomeError) as exc:
            tap_entry["error"] = str(exc)
            if isinstance(exc, IndeterminateOutcomeError) and exc.nonce is None:
                exc.nonce = envelope.nonce
            logger.error("Dispatch of %s failed: %s", tap_entry["body"]["type"], exc)
            raise
        tap_entry["status"] = "ok"
        tap_entry["responseType"] = result.response_type
        return result

    async def info(self, query: Dict[str, Any], *, weight: int = 20) -> Any:
        await self._rate_limiter.admit(weight, endpoint=INFO_ENDPOINT)
        return await self._post_with_retries(INFO_ENDPOINT, query)

    async def _post_with_retries(self, path: str, payload: Dict[str, Any]) -> Any:
        # The body is serialized once; retries resend the identical bytes.
        content = json.dumps(payload, separators=(",", ":"))
        headers = {"Content-Type": "application/json"}
        attempt = 0
        last_exc: Optional[Exception] = None
        delivered = False
        while attempt <= self._max_retries:
            try:
                response = await self._client.post(path, content=content, headers=headers)
            except _NOT_SENT_ERRORS as exc:
                last_exc = exc
            except (httpx.TimeoutException, httpx.RequestError) as exc:
                # The request may have been received; only a retry of the same
                # nonce is safe, and the venue ignores duplicates.
                last_exc = exc
                delivered = True
            else:
                if response.status_code in RETRYABLE_STATUS:
                    last_exc = httpx.HTTPStatusError(
                        f"{response.status_code} from {path}",
                        request=response.request,
                        response=response,
                    )
                elif 400 <= response.status_code < 500:
                    raise VenueRejectionError(
                        scrub_secrets(response.text) or f"HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                else:
                    return self._parse_json(response)
            attempt += 1
            if attempt > self._max_retries:
                break
            delay = self._retry_delay(attempt - 1, getattr(last_exc, "response", None))
            logger.warning(
                "POST %s attempt %d failed (%s); retrying in %.2fs",
                path,
                attempt,
                self._format_error(last_exc),
                delay,
            )
            if delay > 0:
                await asyncio.sleep(delay)

        if delivered:
            raise IndeterminateOutcomeError(
                f"POST {path} may have been received but no answer came back after {attempt} attempts: {self._format_error(last_exc)}"
            ) from last_exc
        status_code = None
        if isinstance(last_exc, httpx.HTTPStatusError):
            status_code = last_exc.response.status_code
        raise TransientNetworkError(
            f"POST {path} failed after {attempt} attempts: {self._format_error(last_exc)}",
            attempts=attempt,
            status_code=status_code,
        ) from last_exc

    @staticmethod
    def _parse_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise IndeterminateOutcomeError(
                f"Unparseable response (status {response.status_code}): {response.text[:200]!r}"
            ) from exc

    def _retry_delay(self, attempt: int, response: Optional[httpx.Response]) -> float:
        retry_after = None
        if response is not None:
            retry_value = response.headers.get("Retry-After")
            if retry_value:
                try:
                    retry_after = float(retry_value)
                except ValueError:
                    retry_after = None
        if retry_after is not None and retry_after >= 0:
            return retry_after
        return self._retry_backoff * (attempt + 1)

    @staticmethod
    def _format_error(exc: Optional[Exception]) -> str:
        if isinstance(exc, httpx.HTTPStatusError):
            return str(exc.response.status_code)
        if isinstance(exc, httpx.TimeoutException):
            return "timeout"
        return str(exc)
