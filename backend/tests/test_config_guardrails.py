import json

import pytest

from core import config as config_module
from core.config import Settings
from core.merchants import load_merchants, resolve_merchant
from simulator.config import SimulationConfig


def _reset_settings_cache():
    config_module.get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _fresh_settings():
    _reset_settings_cache()
    yield
    _reset_settings_cache()


def test_non_local_debug_mode_is_blocked(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.setenv("CLOVER_API_TOKEN", "real-token-1234567890")

    with pytest.raises(ValueError, match="debug=true"):
        config_module.get_settings()


def test_non_local_placeholder_token_is_blocked(monkeypatch):
    monkeypatch.setenv("APP_ENV", "staging")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("CLOVER_API_TOKEN", config_module.SANDBOX_API_TOKEN)

    with pytest.raises(ValueError, match="placeholder Clover API token"):
        config_module.get_settings()


def test_local_allows_dev_defaults(monkeypatch):
    monkeypatch.setenv("APP_ENV", "local")
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.setenv("CLOVER_API_TOKEN", config_module.SANDBOX_API_TOKEN)

    settings = config_module.get_settings()
    assert settings.app_env == "local"
    assert settings.tax_rate == 8.25


def test_refund_percentage_out_of_range(monkeypatch):
    monkeypatch.setenv("APP_ENV", "local")
    monkeypatch.setenv("REFUND_PERCENTAGE", "150")

    with pytest.raises(ValueError, match="refund_percentage"):
        config_module.get_settings()


def test_environment_gets_trailing_slash():
    settings = Settings(clover_environment="https://sandbox.dev.clover.com")
    assert settings.clover_environment == "https://sandbox.dev.clover.com/"


def test_simulation_config_from_settings():
    settings = Settings(tax_rate=7.5, refund_percentage=10)
    config = SimulationConfig.from_settings(settings, "MID1")
    assert (config.merchant_id, config.tax_rate, config.refund_percentage) == ("MID1", 7.5, 10)
    assert config.with_refund_percentage(None) is config
    assert config.with_refund_percentage(0).refund_percentage == 0


def test_simulation_config_validates():
    with pytest.raises(ValueError):
        SimulationConfig(merchant_id="")
    with pytest.raises(ValueError):
        SimulationConfig(merchant_id="MID1", refund_percentage=101)


def test_merchants_from_env_and_file(tmp_path):
    merchants_file = tmp_path / ".env.json"
    merchants_file.write_text(
        json.dumps(
            [
                {"CLOVER_MERCHANT_ID": "MID2", "CLOVER_MERCHANT_NAME": "Diner Two", "CLOVER_API_TOKEN": "oauth-token-123456"},
                {
                    "CLOVER_MERCHANT_ID": "MID3",
                    "CLOVER_API_TOKEN": "oauth-token-abcdef",
                    "CLOVER_ACTUAL_API_TOKEN": "static-token-abcdef",
                },
                {"CLOVER_MERCHANT_ID": "MID1", "CLOVER_API_TOKEN": "duplicate-token-xyz"},
                {"CLOVER_MERCHANT_NAME": "No id"},
            ]
        ),
        encoding="utf-8",
    )
    settings = Settings(
        clover_merchant_id="MID1",
        clover_merchant_name="Diner One",
        clover_api_token="env-token-1234567890",
        merchants_file=str(merchants_file),
    )

    merchants = load_merchants(settings)

    assert [m.merchant_id for m in merchants] == ["MID1", "MID2", "MID3"]
    assert merchants[0].api_token == "env-token-1234567890"
    assert merchants[2].api_token == "static-token-abcdef"
    assert merchants[1].environment == settings.clover_environment
    assert resolve_merchant(settings, "MID2").name == "Diner Two"
    assert resolve_merchant(settings).merchant_id == "MID1"


def test_unknown_merchant(tmp_path):
    settings = Settings(clover_merchant_id="", merchants_file=str(tmp_path / "missing.json"))
    with pytest.raises(ValueError, match="No merchant configured"):
        resolve_merchant(settings)

    settings = Settings(clover_merchant_id="MID1", merchants_file=str(tmp_path / "missing.json"))
    with pytest.raises(ValueError, match="Merchant not found"):
        resolve_merchant(settings, "MID9")


def test_unparseable_merchants_file_is_ignored(tmp_path):
    merchants_file = tmp_path / ".env.json"
    merchants_file.write_text("{not json", encoding="utf-8")
    settings = Settings(clover_merchant_id="", merchants_file=str(merchants_file))
    assert load_merchants(settings) == []
