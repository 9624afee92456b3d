from __future__ import annotations

import re
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
_CLOID_PATTERN = re.compile(r"^0x[0-9a-fA-F]{32}$")


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderKind(str, Enum):
    LIMIT = "limit"
    MARKET = "market"  # sent as an IOC limit at the caller's worst acceptable price
    TRIGGER = "trigger"


class TimeInForce(str, Enum):
    GTC = "Gtc"
    IOC = "Ioc"
    ALO = "Alo"


class TpSl(str, Enum):
    TAKE_PROFIT = "tp"
    STOP_LOSS = "sl"


class Grouping(str, Enum):
    NA = "na"
    NORMAL_TPSL = "normalTpsl"
    POSITION_TPSL = "positionTpsl"


class LeverageMode(str, Enum):
    CROSS = "cross"
    ISOLATED = "isolated"


class ExchangeBaseModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


def _check_address(value: str) -> str:
    if not isinstance(value, str) or not _ADDRESS_PATTERN.match(value):
        raise ValueError(f"Not a 20-byte hex address: {value!r}")
    return value


def _check_cloid(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if not _CLOID_PATTERN.match(value):
        raise ValueError("cloid must be 0x followed by 32 hex characters")
    return value.lower()


class BuilderFee(ExchangeBaseModel):
    """Third-party builder fee attached once to an order action."""

    address: str = Field(..., description="Builder address (0x...).")
    fee: int = Field(..., ge=0, description="Fee in tenths of a basis point.")

    @field_validator("address")
    @classmethod
    def _validate_address(cls, value: str) -> str:
        return _check_address(value)


class TriggerSpec(ExchangeBaseModel):
    trigger_price: Decimal = Field(..., gt=0, alias="triggerPx")
    is_market: bool = Field(True, alias="isMarket")
    tpsl: TpSl = TpSl.STOP_LOSS


class Order(ExchangeBaseModel):
    """A caller's order intent, expressed with a human-readable symbol."""

    symbol: str = Field(..., min_length=1, description="Perp name (BTC) or spot pair (PURR/USDC).")
    side: Side
    limit_price: Decimal = Field(..., gt=0, alias="limitPrice")
    size: Decimal = Field(..., gt=0)
    order_type: OrderKind = Field(OrderKind.LIMIT, alias="orderType")
    time_in_force: TimeInForce = Field(TimeInForce.GTC, alias="timeInForce")
    trigger: Optional[TriggerSpec] = None
    reduce_only: bool = Field(False, alias="reduceOnly")
    cloid: Optional[str] = Field(None, description="Client order id, 0x + 32 hex chars.")
    builder: Optional[BuilderFee] = None

    @field_validator("cloid")
    @classmethod
    def _validate_cloid(cls, value: Optional[str]) -> Optional[str]:
        return _check_cloid(value)

    @model_validator(mode="after")
    def _validate_trigger(self) -> "Order":
        if self.order_type == OrderKind.TRIGGER and self.trigger is None:
            raise ValueError("trigger orders require a trigger specification")
        if self.order_type != OrderKind.TRIGGER and self.trigger is not None:
            raise ValueError("trigger specification is only valid for trigger orders")
        return self

    @property
    def is_buy(self) -> bool:
        return self.side == Side.BUY


class CancelRequest(ExchangeBaseModel):
    symbol: str = Field(..., min_length=1)
    oid: int = Field(..., ge=0)


class CancelByCloidRequest(ExchangeBaseModel):
    symbol: str = Field(..., min_length=1)
    cloid: str

    @field_validator("cloid")
    @classmethod
    def _validate_cloid(cls, value: str) -> str:
        return _check_cloid(value)


class ModifyRequest(ExchangeBaseModel):
    oid: Union[int, str] = Field(..., description="Venue order id or client order id.")
    order: Order


# ---------------------------------------------------------------------------
# HTTP service request bodies
# ---------------------------------------------------------------------------


class PlaceOrdersBody(ExchangeBaseModel):
    orders: List[Order] = Field(default_factory=list)
    grouping: Grouping = Grouping.NA
    builder: Optional[BuilderFee] = None
    vault_address: Optional[str] = Field(None, alias="vaultAddress")


class CancelOrdersBody(ExchangeBaseModel):
    cancels: List[CancelRequest]


class BatchModifyBody(ExchangeBaseModel):
    modifies: List[ModifyRequest]


class LeverageBody(ExchangeBaseModel):
    symbol: str
    leverage: int = Field(..., ge=1)
    mode: LeverageMode = LeverageMode.CROSS


class IsolatedMarginBody(ExchangeBaseModel):
    symbol: str
    is_buy: bool = Field(..., alias="isBuy")
    amount: Decimal = Field(..., description="USD margin to add (negative to remove).")


class UsdTransferBody(ExchangeBaseModel):
    destination: str
    amount: Decimal = Field(..., gt=0)

    @field_validator("destination")
    @classmethod
    def _validate_destination(cls, value: str) -> str:
        return _check_address(value)


class SpotTransferBody(UsdTransferBody):
    token: str = Field(..., min_length=1, description="Token identifier, e.g. PURR:0xc1fb593aeffbeb02f85e0308e9956a90.")


class SpotPerpTransferBody(ExchangeBaseModel):
    amount: Decimal = Field(..., gt=0, description="USDC amount.")
    to_perp: bool = Field(..., alias="toPerp")


class VaultTransferBody(ExchangeBaseModel):
    vault_address: str = Field(..., alias="vaultAddress")
    is_deposit: bool = Field(..., alias="isDeposit")
    amount: Decimal = Field(..., gt=0, description="USD amount.")

    @field_validator("vault_address")
    @classmethod
    def _validate_vault(cls, value: str) -> str:
        return _check_address(value)


class ScheduleCancelBody(ExchangeBaseModel):
    time: Optional[int] = Field(None, ge=0, description="Epoch ms; null clears the schedule.")


class ReferrerBody(ExchangeBaseModel):
    code: str = Field(..., min_length=1)


class ActionReceipt(BaseModel):
    ok: bool
    response_type: Optional[str] = Field(default=None, serialization_alias="responseType")
    statuses: List[Any] = Field(default_factory=list)
    raw: Any = None
