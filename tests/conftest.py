from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from eth_account import Account
from hyperliquid.utils.signing import (
    SPOT_TRANSFER_SIGN_TYPES,
    USD_SEND_SIGN_TYPES,
    WITHDRAW_SIGN_TYPES,
    recover_agent_or_user_from_l1_action,
    recover_user_from_user_signed_action,
)

from hlexchange.adapters.http_dispatcher import HttpDispatcher
from hlexchange.adapters.info_client import InfoClient
from hlexchange.services.asset_registry import AssetRegistry
from hlexchange.services.exchange import ExchangeAPI
from hlexchange.services.nonce import NonceSource
from hlexchange.services.rate_limiter import RateLimiter
from hlexchange.services.signing import ActionSigner, SigningContext

# Well-known development key (hardhat account #0); never funded on the venue.
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcc78a2ff8f8f2ff80"
TEST_ADDRESS = Account.from_key(TEST_PRIVATE_KEY).address

BASE_URL = "https://api.test"

PERP_META = {
    "universe": [
        {"name": "BTC", "szDecimals": 5},
        {"name": "ETH", "szDecimals": 4},
        {"name": "SOL", "szDecimals": 2},
    ]
}

SPOT_META = {
    "tokens": [
        {"name": "USDC", "index": 0},
        {"name": "PURR", "index": 1},
    ],
    "universe": [
        {"name": "PURR/USDC", "tokens": [1, 0], "index": 0},
        {"name": "@1", "tokens": [2, 0], "index": 1},
    ],
}


def ok_order_response(count: int) -> Dict[str, Any]:
    return {
        "status": "ok",
        "response": {
            "type": "order",
            "data": {"statuses": [{"resting": {"oid": 1000 + i}} for i in range(count)]},
        },
    }


class FakeVenue:
    """In-process stand-in for the venue's /info and /exchange endpoints."""

    def __init__(self) -> None:
        self.info_calls: List[Dict[str, Any]] = []
        self.exchange_calls: List[Dict[str, Any]] = []
        self.raw_exchange_bodies: List[bytes] = []
        # each item: a JSON-able dict, an httpx.Response, or a callable(request) raising
        self.exchange_script: List[Any] = []
        self.perp_meta: Dict[str, Any] = PERP_META
        self.spot_meta: Dict[str, Any] = SPOT_META

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if request.url.path == "/info":
            self.info_calls.append(body)
            if body["type"] == "meta":
                return httpx.Response(200, json=self.perp_meta)
            if body["type"] == "spotMeta":
                return httpx.Response(200, json=self.spot_meta)
            return httpx.Response(422, text="unknown info type")

        self.exchange_calls.append(body)
        self.raw_exchange_bodies.append(request.content)
        if self.exchange_script:
            step = self.exchange_script.pop(0)
            if callable(step):
                return step(request)
            if isinstance(step, httpx.Response):
                return step
            return httpx.Response(200, json=step)
        action = body["action"]
        if action["type"] == "order":
            return httpx.Response(200, json=ok_order_response(len(action["orders"])))
        return httpx.Response(200, json={"status": "ok", "response": {"type": "default"}})


@pytest.fixture
def venue() -> FakeVenue:
    return FakeVenue()


@pytest.fixture
def signing_context() -> SigningContext:
    return SigningContext.from_key(TEST_PRIVATE_KEY, is_mainnet=True)


def build_dispatcher(venue: FakeVenue, *, max_retries: int = 2, limiter: Optional[RateLimiter] = None) -> HttpDispatcher:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(venue.handler))
    return HttpDispatcher(
        BASE_URL,
        limiter or RateLimiter(1200, 60.0),
        max_retries=max_retries,
        retry_backoff=0,
        client=client,
    )


@pytest.fixture
def exchange_factory(venue: FakeVenue) -> Callable[..., ExchangeAPI]:
    def factory(
        *,
        is_mainnet: bool = True,
        vault_address: Optional[str] = None,
        max_retries: int = 2,
        limiter: Optional[RateLimiter] = None,
    ) -> ExchangeAPI:
        dispatcher = build_dispatcher(venue, max_retries=max_retries, limiter=limiter)
        registry = AssetRegistry(InfoClient(dispatcher).fetch_asset_directory)
        signer = ActionSigner(SigningContext.from_key(TEST_PRIVATE_KEY, is_mainnet=is_mainnet))
        return ExchangeAPI(
            signer,
            registry,
            dispatcher,
            nonce_source=NonceSource(),
            vault_address=vault_address,
        )

    return factory


# primary type and field schema the venue expects for each user-signed action
USER_SIGNED_REFERENCE = {
    "usdSend": ("HyperliquidTransaction:UsdSend", USD_SEND_SIGN_TYPES),
    "spotSend": ("HyperliquidTransaction:SpotSend", SPOT_TRANSFER_SIGN_TYPES),
    "withdraw3": ("HyperliquidTransaction:Withdraw", WITHDRAW_SIGN_TYPES),
}


def recover_l1_signer(
    action: Dict[str, Any],
    nonce: int,
    signature: Dict[str, Any],
    *,
    vault_address: Optional[str] = None,
    is_mainnet: bool = True,
) -> str:
    return recover_agent_or_user_from_l1_action(
        action, signature, vault_address, nonce, None, is_mainnet
    )


def recover_user_signer(action: Dict[str, Any], signature: Dict[str, Any]) -> str:
    primary_type, payload_types = USER_SIGNED_REFERENCE[action["type"]]
    return recover_user_from_user_signed_action(
        dict(action),
        signature,
        payload_types,
        primary_type,
        action["hyperliquidChain"] == "Mainnet",
    )
