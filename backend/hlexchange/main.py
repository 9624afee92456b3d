from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .adapters.http_dispatcher import NormalizedResult
from .config import get_settings
from .errors import (
    ExchangeError,
    IndeterminateOutcomeError,
    RateLimitTimeoutError,
    SigningError,
    TransientNetworkError,
    UnknownSymbolError,
    VenueRejectionError,
    WireEncodingError,
)
from .schemas import (
    ActionReceipt,
    BatchModifyBody,
    CancelByCloidRequest,
    CancelOrdersBody,
    IsolatedMarginBody,
    LeverageBody,
    ModifyRequest,
    PlaceOrdersBody,
    ReferrerBody,
    ScheduleCancelBody,
    SpotPerpTransferBody,
    SpotTransferBody,
    UsdTransferBody,
    VaultTransferBody,
)
from .services.exchange import ExchangeAPI
from .utils.redact import scrub_secrets

settings = get_settings()

logger = logging.getLogger(__name__)

STARTUP_TS_MS = int(time.time() * 1000)

app = FastAPI(
    title="Hyperliquid Exchange Desk",
    description="Signs and dispatches Hyperliquid trading actions.",
    version="0.1.0",
)

_ERROR_STATUS = (
    (UnknownSymbolError, 404),
    (WireEncodingError, 400),
    (SigningError, 400),
    (VenueRejectionError, 422),
    (RateLimitTimeoutError, 429),
    (TransientNetworkError, 502),
    (IndeterminateOutcomeError, 504),
)


def _status_for(exc: ExchangeError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


@app.exception_handler(ExchangeError)
async def exchange_error_handler(request: Request, exc: ExchangeError) -> JSONResponse:
    content: Dict[str, Any] = {
        "ok": False,
        "error": exc.__class__.__name__,
        "msg": scrub_secrets(str(exc)),
    }
    if isinstance(exc, VenueRejectionError) and exc.statuses:
        content["statuses"] = exc.statuses
    if isinstance(exc, IndeterminateOutcomeError) and exc.nonce is not None:
        content["nonce"] = exc.nonce
    return JSONResponse(status_code=_status_for(exc), content=content)


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
    app.state.exchange = None
    if not settings.has_hyperliquid_credentials():
        logger.warning(
            "System: HYPERLIQUID_PRIVATE_KEY is not set. Trading endpoints are disabled."
        )
        return
    app.state.exchange = ExchangeAPI.from_settings(settings)


@app.on_event("shutdown")
async def shutdown_event() -> None:
    exchange: Optional[ExchangeAPI] = getattr(app.state, "exchange", None)
    if exchange is not None:
        await exchange.close()


def get_exchange(request: Request) -> ExchangeAPI:
    exchange = getattr(request.app.state, "exchange", None)
    if exchange is None:
        raise HTTPException(status_code=503, detail="Trading is disabled: no signing key configured.")
    return exchange


def _receipt(result: NormalizedResult) -> ActionReceipt:
    return ActionReceipt(
        ok=result.ok,
        response_type=result.response_type,
        statuses=result.statuses,
        raw=result.raw,
    )


@app.get("/api/health")
async def health() -> Dict[str, object]:
    return {
        "ok": True,
        "network": "mainnet" if settings.is_mainnet else "testnet",
        "keys": settings.credential_status,
        "startupTs": STARTUP_TS_MS,
    }


@app.post("/api/assets/refresh")
async def refresh_assets(exchange: ExchangeAPI = Depends(get_exchange)) -> Dict[str, object]:
    exchange.registry.invalidate()
    indices = await exchange.registry.refresh()
    return {"ok": True, "count": len(indices)}


@app.post("/api/orders", response_model=ActionReceipt)
async def place_orders(body: PlaceOrdersBody, exchange: ExchangeAPI = Depends(get_exchange)) -> ActionReceipt:
    kwargs: Dict[str, Any] = {"grouping": body.grouping, "builder": body.builder}
    if body.vault_address is not None:
        kwargs["vault_address"] = body.vault_address
    return _receipt(await exchange.place_orders(body.orders, **kwargs))


@app.post("/api/orders/cancel", response_model=ActionReceipt)
async def cancel_orders(body: CancelOrdersBody, exchange: ExchangeAPI = Depends(get_exchange)) -> ActionReceipt:
    return _receipt(await exchange.cancel_orders(body.cancels))


@app.post("/api/orders/cancel-by-cloid", response_model=ActionReceipt)
async def cancel_by_cloid(
    body: CancelByCloidRequest, exchange: ExchangeAPI = Depends(get_exchange)
) -> ActionReceipt:
    return _receipt(await exchange.cancel_by_cloid(body.symbol, body.cloid))


@app.post("/api/orders/modify", response_model=ActionReceipt)
async def modify_order(body: ModifyRequest, exchange: ExchangeAPI = Depends(get_exchange)) -> ActionReceipt:
    return _receipt(await exchange.modify_order(body.oid, body.order))


@app.post("/api/orders/batch-modify", response_model=ActionReceipt)
async def batch_modify(body: BatchModifyBody, exchange: ExchangeAPI = Depends(get_exchange)) -> ActionReceipt:
    return _receipt(await exchange.batch_modify_orders(body.modifies))


@app.post("/api/schedule-cancel", response_model=ActionReceipt)
async def schedule_cancel(
    body: ScheduleCancelBody, exchange: ExchangeAPI = Depends(get_exchange)
) -> ActionReceipt:
    return _receipt(await exchange.schedule_cancel(body.time))


@app.post("/api/leverage", response_model=ActionReceipt)
async def update_leverage(body: LeverageBody, exchange: ExchangeAPI = Depends(get_exchange)) -> ActionReceipt:
    return _receipt(await exchange.update_leverage(body.symbol, body.leverage, body.mode))


@app.post("/api/isolated-margin", response_model=ActionReceipt)
async def update_isolated_margin(
    body: IsolatedMarginBody, exchange: ExchangeAPI = Depends(get_exchange)
) -> ActionReceipt:
    return _receipt(await exchange.update_isolated_margin(body.symbol, body.is_buy, body.amount))


@app.post("/api/referrer", response_model=ActionReceipt)
async def set_referrer(body: ReferrerBody, exchange: ExchangeAPI = Depends(get_exchange)) -> ActionReceipt:
    return _receipt(await exchange.set_referrer(body.code))


@app.post("/api/transfers/usd", response_model=ActionReceipt)
async def usd_transfer(body: UsdTransferBody, exchange: ExchangeAPI = Depends(get_exchange)) -> ActionReceipt:
    return _receipt(await exchange.usd_transfer(body.destination, body.amount))


@app.post("/api/transfers/spot", response_model=ActionReceipt)
async def spot_transfer(body: SpotTransferBody, exchange: ExchangeAPI = Depends(get_exchange)) -> ActionReceipt:
    return _receipt(await exchange.spot_transfer(body.destination, body.token, body.amount))


@app.post("/api/transfers/spot-perp", response_model=ActionReceipt)
async def spot_perp_transfer(
    body: SpotPerpTransferBody, exchange: ExchangeAPI = Depends(get_exchange)
) -> ActionReceipt:
    return _receipt(await exchange.transfer_between_spot_and_perp(body.amount, body.to_perp))


@app.post("/api/withdrawals", response_model=ActionReceipt)
async def withdraw(body: UsdTransferBody, exchange: ExchangeAPI = Depends(get_exchange)) -> ActionReceipt:
    return _receipt(await exchange.withdraw(body.destination, body.amount))


@app.post("/api/vault-transfer", response_model=ActionReceipt)
async def vault_transfer(
    body: VaultTransferBody, exchange: ExchangeAPI = Depends(get_exchange)
) -> ActionReceipt:
    return _receipt(await exchange.vault_transfer(body.vault_address, body.is_deposit, body.amount))
