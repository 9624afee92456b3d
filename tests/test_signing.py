import pytest
from eth_account import Account
from hyperliquid.utils import signing as sdk_signing

from hlexchange.errors import SigningError
from hlexchange.services.signing import ActionSigner, SigningContext

from conftest import TEST_ADDRESS, TEST_PRIVATE_KEY, recover_l1_signer, recover_user_signer

VAULT = "0x1719884eb866cb12b2287399b15f7db5e7d775ea"
DESTINATION = "0x5e9ee1089755c3435139848e47e6635505d5a13a"

ORDER_ACTION = {
    "type": "order",
    "orders": [
        {"a": 0, "b": True, "p": "30000", "s": "1.5", "r": False, "t": {"limit": {"tif": "Gtc"}}}
    ],
    "grouping": "na",
}


def _usd_send(chain="Mainnet", time=1700000000000):
    return {
        "type": "usdSend",
        "hyperliquidChain": chain,
        "signatureChainId": "0xa4b1",
        "destination": DESTINATION,
        "amount": "10.5",
        "time": time,
    }


def test_context_rejects_invalid_key():
    with pytest.raises(SigningError):
        SigningContext.from_key("0x1234")
    with pytest.raises(SigningError):
        SigningContext.from_key("not-a-key")


def test_context_exposes_address_and_chain():
    context = SigningContext.from_key(TEST_PRIVATE_KEY, is_mainnet=False)
    assert context.address == TEST_ADDRESS
    assert context.chain_name == "Testnet"
    assert TEST_PRIVATE_KEY not in repr(context)


def test_l1_signature_recovers_to_signer(signing_context):
    signer = ActionSigner(signing_context)
    signature = signer.sign_l1_action(ORDER_ACTION, 1700000000000)
    assert set(signature) == {"r", "s", "v"}
    assert signature["r"].startswith("0x")
    assert signature["v"] in (27, 28)
    assert recover_l1_signer(ORDER_ACTION, 1700000000000, signature) == TEST_ADDRESS


def test_repeated_l1_signatures_both_verify(signing_context):
    signer = ActionSigner(signing_context)
    first = signer.sign_l1_action(ORDER_ACTION, 42)
    second = signer.sign_l1_action(ORDER_ACTION, 42)
    assert recover_l1_signer(ORDER_ACTION, 42, first) == TEST_ADDRESS
    assert recover_l1_signer(ORDER_ACTION, 42, second) == TEST_ADDRESS


def test_mainnet_and_testnet_signatures_differ():
    mainnet = ActionSigner(SigningContext.from_key(TEST_PRIVATE_KEY, is_mainnet=True))
    testnet = ActionSigner(SigningContext.from_key(TEST_PRIVATE_KEY, is_mainnet=False))
    sig_main = mainnet.sign_l1_action(ORDER_ACTION, 7)
    sig_test = testnet.sign_l1_action(ORDER_ACTION, 7)
    assert sig_main != sig_test
    assert recover_l1_signer(ORDER_ACTION, 7, sig_test, is_mainnet=False) == TEST_ADDRESS
    # verifying under the wrong network yields some other address
    assert recover_l1_signer(ORDER_ACTION, 7, sig_test, is_mainnet=True) != TEST_ADDRESS


def test_vault_address_is_bound_into_l1_signature(signing_context):
    signer = ActionSigner(signing_context)
    signature = signer.sign_l1_action(ORDER_ACTION, 9, VAULT)
    assert recover_l1_signer(ORDER_ACTION, 9, signature, vault_address=VAULT) == TEST_ADDRESS
    assert recover_l1_signer(ORDER_ACTION, 9, signature) != TEST_ADDRESS


def test_user_signed_action_recovers_to_signer(signing_context):
    action = _usd_send()
    signature = ActionSigner(signing_context).sign_user_signed_action(action)
    assert recover_user_signer(action, signature) == TEST_ADDRESS


def test_spot_send_and_withdraw_use_their_own_schema(signing_context):
    signer = ActionSigner(signing_context)
    spot = {**_usd_send(), "type": "spotSend", "token": "PURR:0xc1fb593aeffbeb02f85e0308e9956a90"}
    withdraw = {**_usd_send(), "type": "withdraw3"}
    spot_sig = signer.sign_user_signed_action(spot)
    withdraw_sig = signer.sign_user_signed_action(withdraw)
    usd_sig = signer.sign_user_signed_action(_usd_send())
    assert recover_user_signer(spot, spot_sig) == TEST_ADDRESS
    assert recover_user_signer(withdraw, withdraw_sig) == TEST_ADDRESS
    # same fields, different primary type
    assert withdraw_sig != usd_sig


def test_user_signed_rejects_wrong_chain(signing_context):
    with pytest.raises(SigningError):
        ActionSigner(signing_context).sign_user_signed_action(_usd_send(chain="Testnet"))


def test_user_signed_rejects_missing_field(signing_context):
    action = _usd_send()
    del action["destination"]
    with pytest.raises(SigningError):
        ActionSigner(signing_context).sign_user_signed_action(action)


def test_l1_refuses_transfer_actions(signing_context):
    with pytest.raises(SigningError):
        ActionSigner(signing_context).sign_l1_action(_usd_send(), 1)


def test_l1_rejects_unknown_or_malformed_actions(signing_context):
    signer = ActionSigner(signing_context)
    with pytest.raises(SigningError):
        signer.sign_l1_action({"type": "teleport"}, 1)
    with pytest.raises(SigningError):
        signer.sign_l1_action({"type": "cancel"}, 1)


def test_sign_dispatches_by_category(signing_context):
    signer = ActionSigner(signing_context)
    action = _usd_send()
    assert signer.sign(action, 0) == signer.sign_user_signed_action(action)
    assert signer.sign(ORDER_ACTION, 5) == signer.sign_l1_action(ORDER_ACTION, 5)


@pytest.mark.parametrize("is_mainnet", [True, False])
def test_l1_signature_matches_sdk_reference(is_mainnet):
    signer = ActionSigner(SigningContext.from_key(TEST_PRIVATE_KEY, is_mainnet=is_mainnet))
    wallet = Account.from_key(TEST_PRIVATE_KEY)
    expected = sdk_signing.sign_l1_action(wallet, ORDER_ACTION, None, 1700000000000, None, is_mainnet)
    assert signer.sign_l1_action(ORDER_ACTION, 1700000000000) == expected
    expected_vault = sdk_signing.sign_l1_action(wallet, ORDER_ACTION, VAULT, 1700000000000, None, is_mainnet)
    assert signer.sign_l1_action(ORDER_ACTION, 1700000000000, VAULT) == expected_vault


@pytest.mark.parametrize(
    "action_type, extra, reference",
    [
        ("usdSend", {}, sdk_signing.sign_usd_transfer_action),
        ("spotSend", {"token": "PURR:0xc1fb593aeffbeb02f85e0308e9956a90"}, sdk_signing.sign_spot_transfer_action),
        ("withdraw3", {}, sdk_signing.sign_withdraw_from_bridge_action),
    ],
)
def test_user_signed_signature_matches_sdk_reference(signing_context, action_type, extra, reference):
    # the SDK reference signers always sign under chain id 0x66eee
    action = {**_usd_send(), "type": action_type, "signatureChainId": "0x66eee", **extra}
    expected = reference(Account.from_key(TEST_PRIVATE_KEY), dict(action), True)
    assert ActionSigner(signing_context).sign_user_signed_action(action) == expected


def test_signature_chain_id_is_bound_into_user_signature(signing_context):
    signer = ActionSigner(signing_context)
    arbitrum = _usd_send()
    custom = {**_usd_send(), "signatureChainId": "0x66eee"}
    assert signer.sign_user_signed_action(arbitrum) != signer.sign_user_signed_action(custom)
    assert recover_user_signer(arbitrum, signer.sign_user_signed_action(arbitrum)) == TEST_ADDRESS


def test_invalid_vault_address_is_a_signing_error(signing_context):
    with pytest.raises(SigningError):
        ActionSigner(signing_context).sign_l1_action(ORDER_ACTION, 1, "0xnot-hex")
