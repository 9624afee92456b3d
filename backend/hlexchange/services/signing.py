from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from eth_account import Account
from eth_account.signers.local import LocalAccount
from hyperliquid.utils.signing import (
    SPOT_TRANSFER_SIGN_TYPES,
    USD_SEND_SIGN_TYPES,
    WITHDRAW_SIGN_TYPES,
    sign_inner,
    sign_l1_action,
    user_signed_payload,
)

from ..errors import SigningError
from .wire import ACTION_FIELDS, USER_SIGNED_ACTIONS


# action type -> (EIP-712 primary type, field schema)
USER_SIGNED_SCHEMAS: Dict[str, Tuple[str, List[Dict[str, str]]]] = {
    "usdSend": ("HyperliquidTransaction:UsdSend", USD_SEND_SIGN_TYPES),
    "spotSend": ("HyperliquidTransaction:SpotSend", SPOT_TRANSFER_SIGN_TYPES),
    "withdraw3": ("HyperliquidTransaction:Withdraw", WITHDRAW_SIGN_TYPES),
}


@dataclass(frozen=True)
class SigningContext:
    """Signing key plus the network it signs for. Built once per session."""

    account: LocalAccount = field(repr=False)
    is_mainnet: bool = True

    @classmethod
    def from_key(cls, private_key: str, *, is_mainnet: bool = True) -> "SigningContext":
        try:
            account = Account.from_key(private_key)
        except (ValueError, TypeError) as exc:
            raise SigningError("Invalid signing key") from exc
        return cls(account=account, is_mainnet=is_mainnet)

    @property
    def address(self) -> str:
        return self.account.address

    @property
    def chain_name(self) -> str:
        return "Mainnet" if self.is_mainnet else "Testnet"


def _check_fields(action: Dict[str, Any]) -> str:
    action_type = action.get("type") if isinstance(action, dict) else None
    fields = ACTION_FIELDS.get(action_type) if isinstance(action_type, str) else None
    if fields is None:
        raise SigningError(f"Cannot sign unknown action type {action_type!r}")
    missing = [name for name in fields if name not in action]
    if missing:
        raise SigningError(f"{action_type} action missing {', '.join(missing)}")
    return action_type


class ActionSigner:
    """Produces venue signatures for both action categories.

    L1 actions (orders, cancels, leverage and the rest of the trading
    catalog) are signed through the SDK's phantom-agent scheme, whose
    ``source`` separates mainnet from testnet. Transfers and withdrawals
    are signed as explicit EIP-712 messages under the action's own
    ``signatureChainId``.
    """

    def __init__(self, context: SigningContext) -> None:
        self._context = context

    @property
    def context(self) -> SigningContext:
        return self._context

    def sign_l1_action(
        self, action: Dict[str, Any], nonce: int, vault_address: Optional[str] = None
    ) -> Dict[str, Any]:
        action_type = _check_fields(action)
        if action_type in USER_SIGNED_ACTIONS:
            raise SigningError(f"{action_type} must be user-signed, not signed as an L1 action")
        try:
            return sign_l1_action(
                self._context.account,
                action,
                vault_address,
                nonce,
                None,
                self._context.is_mainnet,
            )
        except (TypeError, ValueError, OverflowError) as exc:
            raise SigningError(f"Cannot sign {action_type} action: {exc}") from exc

    def sign_user_signed_action(self, action: Dict[str, Any]) -> Dict[str, Any]:
        action_type = _check_fields(action)
        schema = USER_SIGNED_SCHEMAS.get(action_type)
        if schema is None:
            raise SigningError(f"{action_type} is not a user-signed action")
        expected_chain = self._context.chain_name
        if action["hyperliquidChain"] != expected_chain:
            raise SigningError(
                f"{action_type} targets {action['hyperliquidChain']} but the signer is on {expected_chain}"
            )
        primary_type, payload_types = schema
        try:
            payload = user_signed_payload(primary_type, payload_types, action)
        except (TypeError, ValueError) as exc:
            raise SigningError(f"Invalid signatureChainId for {action_type}") from exc
        try:
            return sign_inner(self._context.account, payload)
        except (TypeError, ValueError, KeyError) as exc:
            raise SigningError(f"Typed-data signing failed: {exc}") from exc

    def sign(
        self, action: Dict[str, Any], nonce: int, vault_address: Optional[str] = None
    ) -> Dict[str, Any]:
        """Sign ``action`` with whichever protocol its type requires."""
        if action.get("type") in USER_SIGNED_ACTIONS:
            return self.sign_user_signed_action(action)
        return self.sign_l1_action(action, nonce, vault_address)
