from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence, Union

from ..adapters.http_dispatcher import HttpDispatcher, NormalizedResult, SignedEnvelope
from ..adapters.info_client import InfoClient
from ..config import Settings
from ..errors import SigningError, WireEncodingError
from ..schemas import (
    BuilderFee,
    CancelByCloidRequest,
    CancelRequest,
    Grouping,
    LeverageMode,
    ModifyRequest,
    Order,
)
from ..utils.redact import mask_address
from .asset_registry import AssetRegistry
from .nonce import NonceSource, nonce_source_for
from .rate_limiter import RateLimiter
from .signing import ActionSigner, SigningContext
from .wire import (
    batch_weight,
    decimal_to_wire,
    encode_action,
    encode_order,
    encode_order_action,
    resolve_builder,
    usd_to_int,
)


logger = logging.getLogger(__name__)

Amount = Union[Decimal, int, str]

_DEFAULT_VAULT = object()


class ExchangeAPI:
    """Caller-facing trading operations.

    Every operation resolves symbols, encodes, signs with a fresh nonce and
    dispatches through the shared rate limiter. Encoding and lookup failures
    surface before anything is signed or sent.
    """

    def __init__(
        self,
        signer: ActionSigner,
        registry: AssetRegistry,
        dispatcher: HttpDispatcher,
        *,
        nonce_source: Optional[NonceSource] = None,
        vault_address: Optional[str] = None,
        signature_chain_id: str = "0xa4b1",
    ) -> None:
        self._signer = signer
        self._registry = registry
        self._dispatcher = dispatcher
        self._nonces = nonce_source or nonce_source_for(signer.context.address)
        self._vault_address = vault_address
        self._signature_chain_id = signature_chain_id

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExchangeAPI":
        if not settings.has_hyperliquid_credentials():
            raise SigningError("HYPERLIQUID_PRIVATE_KEY is not configured.")
        context = SigningContext.from_key(
            settings.hyperliquid_private_key, is_mainnet=settings.is_mainnet
        )
        limiter = RateLimiter(settings.rate_limit_capacity, settings.rate_limit_window_seconds)
        dispatcher = HttpDispatcher(
            settings.base_url,
            limiter,
            timeout_seconds=settings.http_timeout_seconds,
            max_retries=settings.http_max_retries,
        )
        registry = AssetRegistry(InfoClient(dispatcher).fetch_asset_directory)
        logger.info(
            "Exchange client ready for signer %s on %s (vault=%s)",
            mask_address(context.address),
            context.chain_name,
            mask_address(settings.hyperliquid_vault_address),
        )
        return cls(
            ActionSigner(context),
            registry,
            dispatcher,
            vault_address=settings.hyperliquid_vault_address,
            signature_chain_id=settings.signature_chain_id,
        )

    async def close(self) -> None:
        await self._dispatcher.close()

    async def __aenter__(self) -> "ExchangeAPI":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def address(self) -> str:
        return self._signer.context.address

    @property
    def is_mainnet(self) -> bool:
        return self._signer.context.is_mainnet

    @property
    def registry(self) -> AssetRegistry:
        return self._registry

    @property
    def dispatcher(self) -> HttpDispatcher:
        return self._dispatcher

    # ==================== ORDERS ====================

    async def place_order(
        self,
        order: Order,
        *,
        grouping: Grouping = Grouping.NA,
        builder: Optional[BuilderFee] = None,
        vault_address: Any = _DEFAULT_VAULT,
        timeout: Optional[float] = None,
    ) -> NormalizedResult:
        return await self.place_orders(
            [order],
            grouping=grouping,
            builder=builder,
            vault_address=vault_address,
            timeout=timeout,
        )

    async def place_orders(
        self,
        orders: Sequence[Order],
        *,
        grouping: Grouping = Grouping.NA,
        builder: Optional[BuilderFee] = None,
        vault_address: Any = _DEFAULT_VAULT,
        timeout: Optional[float] = None,
    ) -> NormalizedResult:
        if not orders:
            raise WireEncodingError("place_orders needs at least one order")
        indices = await self._registry.resolve_all(order.symbol for order in orders)
        wires = [encode_order(order, indices[order.symbol]) for order in orders]
        action = encode_order_action(wires, grouping, resolve_builder(orders, builder))
        logger.info(
            "Placing %d order(s): %s",
            len(orders),
            ", ".join(
                f"{'BUY' if o.is_buy else 'SELL'} {o.symbol} {w['s']} @ {w['p']}"
                for o, w in zip(orders, wires)
            ),
        )
        return await self._submit_l1(
            action,
            vault_address=vault_address,
            weight=batch_weight(len(wires)),
            timeout=timeout,
        )

    async def cancel_order(self, symbol: str, oid: int, *, timeout: Optional[float] = None) -> NormalizedResult:
        return await self.cancel_orders([CancelRequest(symbol=symbol, oid=oid)], timeout=timeout)

    async def cancel_orders(
        self, cancels: Sequence[CancelRequest], *, timeout: Optional[float] = None
    ) -> NormalizedResult:
        if not cancels:
            raise WireEncodingError("cancel_orders needs at least one cancel")
        indices = await self._registry.resolve_all(c.symbol for c in cancels)
        action = encode_action(
            "cancel",
            {"cancels": [{"a": indices[c.symbol], "o": c.oid} for c in cancels]},
        )
        return await self._submit_l1(action, weight=batch_weight(len(cancels)), timeout=timeout)

    async def cancel_by_cloid(
        self, symbol: str, cloid: str, *, timeout: Optional[float] = None
    ) -> NormalizedResult:
        return await self.cancel_by_cloids(
            [CancelByCloidRequest(symbol=symbol, cloid=cloid)], timeout=timeout
        )

    async def cancel_by_cloids(
        self, cancels: Sequence[CancelByCloidRequest], *, timeout: Optional[float] = None
    ) -> NormalizedResult:
        if not cancels:
            raise WireEncodingError("cancel_by_cloids needs at least one cancel")
        indices = await self._registry.resolve_all(c.symbol for c in cancels)
        action = encode_action(
            "cancelByCloid",
            {"cancels": [{"asset": indices[c.symbol], "cloid": c.cloid} for c in cancels]},
        )
        return await self._submit_l1(action, weight=batch_weight(len(cancels)), timeout=timeout)

    async def modify_order(
        self, oid: Union[int, str], order: Order, *, timeout: Optional[float] = None
    ) -> NormalizedResult:
        asset = await self._registry.resolve(order.symbol)
        action = encode_action("modify", {"oid": oid, "order": encode_order(order, asset)})
        return await self._submit_l1(action, timeout=timeout)

    async def batch_modify_orders(
        self, modifies: Sequence[ModifyRequest], *, timeout: Optional[float] = None
    ) -> NormalizedResult:
        if not modifies:
            raise WireEncodingError("batch_modify_orders needs at least one modify")
        indices = await self._registry.resolve_all(m.order.symbol for m in modifies)
        action = encode_action(
            "batchModify",
            {
                "modifies": [
                    {"oid": m.oid, "order": encode_order(m.order, indices[m.order.symbol])}
                    for m in modifies
                ]
            },
        )
        return await self._submit_l1(action, weight=batch_weight(len(modifies)), timeout=timeout)

    async def schedule_cancel(
        self, time: Optional[int] = None, *, timeout: Optional[float] = None
    ) -> NormalizedResult:
        """Cancel all open orders at ``time`` (epoch ms); ``None`` clears the schedule."""
        action = encode_action("scheduleCancel", {"time": time})
        return await self._submit_l1(action, timeout=timeout)

    # ==================== ACCOUNT ====================

    async def update_leverage(
        self,
        symbol: str,
        leverage: int,
        mode: LeverageMode = LeverageMode.CROSS,
        *,
        timeout: Optional[float] = None,
    ) -> NormalizedResult:
        if leverage < 1:
            raise WireEncodingError("leverage must be at least 1")
        asset = await self._registry.resolve(symbol)
        action = encode_action(
            "updateLeverage",
            {"asset": asset, "isCross": LeverageMode(mode) == LeverageMode.CROSS, "leverage": int(leverage)},
        )
        return await self._submit_l1(action, timeout=timeout)

    async def update_isolated_margin(
        self, symbol: str, is_buy: bool, amount: Amount, *, timeout: Optional[float] = None
    ) -> NormalizedResult:
        asset = await self._registry.resolve(symbol)
        action = encode_action(
            "updateIsolatedMargin",
            {"asset": asset, "isBuy": bool(is_buy), "ntli": usd_to_int(amount)},
        )
        return await self._submit_l1(action, timeout=timeout)

    async def set_referrer(self, code: str, *, timeout: Optional[float] = None) -> NormalizedResult:
        action = encode_action("setReferrer", {"code": code})
        return await self._submit_l1(action, vault_address=None, timeout=timeout)

    # ==================== TRANSFERS ====================

    async def usd_transfer(
        self, destination: str, amount: Amount, *, timeout: Optional[float] = None
    ) -> NormalizedResult:
        """Send USDC from the perp balance to another address without touching the bridge."""
        return await self._submit_user_signed(
            "usdSend",
            {"destination": destination, "amount": decimal_to_wire(amount)},
            timeout=timeout,
        )

    async def spot_transfer(
        self, destination: str, token: str, amount: Amount, *, timeout: Optional[float] = None
    ) -> NormalizedResult:
        return await self._submit_user_signed(
            "spotSend",
            {"destination": destination, "token": token, "amount": decimal_to_wire(amount)},
            timeout=timeout,
        )

    async def withdraw(
        self, destination: str, amount: Amount, *, timeout: Optional[float] = None
    ) -> NormalizedResult:
        """Withdraw USDC across the bridge; the venue charges a flat fee."""
        return await self._submit_user_signed(
            "withdraw3",
            {"destination": destination, "amount": decimal_to_wire(amount)},
            timeout=timeout,
        )

    async def transfer_between_spot_and_perp(
        self, amount: Amount, to_perp: bool, *, timeout: Optional[float] = None
    ) -> NormalizedResult:
        action = encode_action(
            "spotUser",
            {"classTransfer": {"usdc": usd_to_int(amount), "toPerp": bool(to_perp)}},
        )
        return await self._submit_l1(action, vault_address=None, timeout=timeout)

    async def vault_transfer(
        self,
        vault_address: str,
        is_deposit: bool,
        amount: Amount,
        *,
        timeout: Optional[float] = None,
    ) -> NormalizedResult:
        action = encode_action(
            "vaultTransfer",
            {"vaultAddress": vault_address, "isDeposit": bool(is_deposit), "usd": usd_to_int(amount)},
        )
        return await self._submit_l1(action, vault_address=None, timeout=timeout)

    # ==================== INTERNALS ====================

    async def _submit_l1(
        self,
        action: Dict[str, Any],
        *,
        vault_address: Any = _DEFAULT_VAULT,
        weight: int = 1,
        timeout: Optional[float] = None,
    ) -> NormalizedResult:
        if vault_address is _DEFAULT_VAULT:
            vault_address = self._vault_address
        nonce = self._nonces.next()
        signature = self._signer.sign_l1_action(action, nonce, vault_address)
        envelope = SignedEnvelope(action, nonce, signature, vault_address)
        return await self._dispatcher.send(envelope, weight=weight, timeout=timeout)

    async def _submit_user_signed(
        self,
        action_type: str,
        fields: Dict[str, Any],
        *,
        timeout: Optional[float] = None,
    ) -> NormalizedResult:
        nonce = self._nonces.next()
        action = encode_action(
            action_type,
            {
                "hyperliquidChain": self._signer.context.chain_name,
                "signatureChainId": self._signature_chain_id,
                **fields,
                "time": nonce,
            },
        )
        signature = self._signer.sign_user_signed_action(action)
        envelope = SignedEnvelope(action, nonce, signature)
        return await self._dispatcher.send(envelope, timeout=timeout)
