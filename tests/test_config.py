from hyperliquid.utils import constants

from hlexchange.config import Settings


def test_network_selects_base_url():
    assert Settings(hyperliquid_testnet=False).base_url == constants.MAINNET_API_URL
    assert Settings(hyperliquid_testnet=True).base_url == constants.TESTNET_API_URL


def test_explicit_base_url_wins():
    settings = Settings(hyperliquid_testnet=True, hyperliquid_base_url="http://localhost:3001/")
    assert settings.base_url == "http://localhost:3001"


def test_credentials_require_hex_key():
    assert not Settings(hyperliquid_private_key="").has_hyperliquid_credentials()
    assert not Settings(hyperliquid_private_key="abc").has_hyperliquid_credentials()
    assert Settings(hyperliquid_private_key="0x" + "1" * 64).has_hyperliquid_credentials()


def test_invalid_values_fall_back_to_defaults():
    settings = Settings(
        rate_limit_capacity=0,
        rate_limit_window_seconds=-5,
        hyperliquid_vault_address="",
        log_level="debug",
    )
    assert settings.rate_limit_capacity == 1200
    assert settings.rate_limit_window_seconds == 60.0
    assert settings.hyperliquid_vault_address is None
    assert settings.log_level == "DEBUG"


def test_credential_status_reports_signing_inputs_only():
    settings = Settings(hyperliquid_private_key="0x" + "1" * 64, hyperliquid_vault_address=None)
    assert settings.credential_status == {"private_key": True, "vault_address": False}
    assert not hasattr(settings, "hyperliquid_wallet_address")
