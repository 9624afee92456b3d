"""Canonical wire encoding for Hyperliquid exchange actions.

Key order inside every dict is significant: the L1 signature is computed
over the msgpack encoding of the action, so a reordered field produces a
different hash and a rejected request.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from ..errors import WireEncodingError
from ..schemas import BuilderFee, Grouping, Order, OrderKind, TimeInForce


WIRE_DECIMALS = 8
USD_INT_DECIMALS = 6
_WIRE_QUANTUM = Decimal(1).scaleb(-WIRE_DECIMALS)

Number = Union[Decimal, int, str, float]

# Field set per action type, in wire order. "type" always comes first.
ACTION_FIELDS: Dict[str, Sequence[str]] = {
    "order": ("orders", "grouping"),
    "cancel": ("cancels",),
    "cancelByCloid": ("cancels",),
    "modify": ("oid", "order"),
    "batchModify": ("modifies",),
    "scheduleCancel": (),
    "updateLeverage": ("asset", "isCross", "leverage"),
    "updateIsolatedMargin": ("asset", "isBuy", "ntli"),
    "usdSend": ("hyperliquidChain", "signatureChainId", "destination", "amount", "time"),
    "spotSend": ("hyperliquidChain", "signatureChainId", "destination", "token", "amount", "time"),
    "withdraw3": ("hyperliquidChain", "signatureChainId", "destination", "amount", "time"),
    "spotUser": ("classTransfer",),
    "vaultTransfer": ("vaultAddress", "isDeposit", "usd"),
    "setReferrer": ("code",),
}

# Fields that may be left out of the wire entirely when absent.
OPTIONAL_ACTION_FIELDS: Dict[str, Sequence[str]] = {
    "order": ("builder",),
    "scheduleCancel": ("time",),
}

USER_SIGNED_ACTIONS = frozenset({"usdSend", "spotSend", "withdraw3"})


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # repr() gives the shortest string that round-trips the float
        value = repr(value)
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise WireEncodingError(f"Not a number: {value!r}") from exc


def decimal_to_wire(value: Number) -> str:
    """Format a number as the venue's fixed-point string.

    At most eight decimals, trailing zeros stripped, never exponent notation.
    Values that would lose precision are rejected rather than rounded.
    """
    number = _to_decimal(value)
    if not number.is_finite():
        raise WireEncodingError(f"Not a finite number: {value!r}")
    try:
        quantized = number.quantize(_WIRE_QUANTUM, rounding=ROUND_DOWN)
    except InvalidOperation as exc:
        raise WireEncodingError(f"{value!r} is out of range") from exc
    if quantized != number:
        raise WireEncodingError(
            f"{value!r} has more than {WIRE_DECIMALS} decimals and would be rounded"
        )
    normalized = quantized.normalize()
    if normalized.is_zero():
        return "0"
    return f"{normalized:f}"


def usd_to_int(value: Number) -> int:
    """USD amount as integer micro-units, as the venue expects for margin and vault moves."""
    number = _to_decimal(value)
    if not number.is_finite():
        raise WireEncodingError(f"Not a finite number: {value!r}")
    scaled = number.scaleb(USD_INT_DECIMALS)
    if scaled != scaled.to_integral_value():
        raise WireEncodingError(f"{value!r} has more than {USD_INT_DECIMALS} decimals")
    return int(scaled)


def order_type_to_wire(order: Order) -> Dict[str, Any]:
    if order.order_type == OrderKind.TRIGGER:
        trigger = order.trigger
        if trigger is None:
            raise WireEncodingError("trigger orders require a trigger specification")
        return {
            "trigger": {
                "isMarket": trigger.is_market,
                "triggerPx": decimal_to_wire(trigger.trigger_price),
                "tpsl": trigger.tpsl.value,
            }
        }
    if order.order_type == OrderKind.MARKET:
        return {"limit": {"tif": TimeInForce.IOC.value}}
    return {"limit": {"tif": order.time_in_force.value}}


def encode_order(order: Order, asset: int) -> Dict[str, Any]:
    if asset < 0:
        raise WireEncodingError(f"Invalid asset index {asset}")
    wire: Dict[str, Any] = {
        "a": asset,
        "b": order.is_buy,
        "p": decimal_to_wire(order.limit_price),
        "s": decimal_to_wire(order.size),
        "r": order.reduce_only,
        "t": order_type_to_wire(order),
    }
    if order.cloid is not None:
        wire["c"] = order.cloid
    return wire


def builder_to_wire(builder: BuilderFee) -> Dict[str, Any]:
    return {"b": builder.address.lower(), "f": builder.fee}


def resolve_builder(
    orders: Iterable[Order], builder: Optional[BuilderFee] = None
) -> Optional[BuilderFee]:
    """Pick the single builder fee for an order action.

    An explicit action-level builder wins; otherwise every order that names
    one must name the same one.
    """
    if builder is not None:
        return builder
    found = {o.builder for o in orders if o.builder is not None}
    if len(found) > 1:
        raise WireEncodingError("orders in one action must share the same builder fee")
    return next(iter(found), None)


def encode_order_action(
    order_wires: List[Dict[str, Any]],
    grouping: Union[Grouping, str] = Grouping.NA,
    builder: Optional[BuilderFee] = None,
) -> Dict[str, Any]:
    if not order_wires:
        raise WireEncodingError("an order action needs at least one order")
    try:
        grouping_value = Grouping(grouping).value
    except ValueError as exc:
        raise WireEncodingError(f"Unknown grouping: {grouping!r}") from exc
    action: Dict[str, Any] = {
        "type": "order",
        "orders": order_wires,
        "grouping": grouping_value,
    }
    if builder is not None:
        action["builder"] = builder_to_wire(builder)
    return action


def encode_action(action_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Assemble a non-order action with its category's fields in wire order."""
    fields = ACTION_FIELDS.get(action_type)
    if fields is None:
        raise WireEncodingError(f"Unknown action type: {action_type}")
    missing = [name for name in fields if name not in payload]
    if missing:
        raise WireEncodingError(f"{action_type} action missing {', '.join(missing)}")
    allowed = set(fields) | set(OPTIONAL_ACTION_FIELDS.get(action_type, ()))
    unexpected = sorted(set(payload) - allowed)
    if unexpected:
        raise WireEncodingError(f"{action_type} action does not take {', '.join(unexpected)}")
    action: Dict[str, Any] = {"type": action_type}
    for name in fields:
        action[name] = payload[name]
    for name in OPTIONAL_ACTION_FIELDS.get(action_type, ()):
        if payload.get(name) is not None:
            action[name] = payload[name]
    return action


def batch_weight(length: int) -> int:
    """Rate-limit weight of an exchange action carrying ``length`` items."""
    return 1 + max(0, length) // 40
