"""Tests for the configuration loader and its catalog helpers."""

import json

import pytest

from gasless.config import NATIVE_CURRENCY, ConfigError, load_config


def test_bundled_defaults(config):
    assert config.relay.base_url == "https://api.relay.link"
    assert config.relay.api_key is None
    assert config.relay.referrer == "relay.link"
    assert (config.polling.max_attempts, config.polling.interval_seconds) == (60, 5.0)
    assert (config.permit_polling.max_attempts, config.permit_polling.interval_seconds) == (100, 3.0)
    assert config.contracts.entry_point == "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
    assert config.chain(8453).name == "Base"


def test_env_overrides():
    config = load_config(
        env={
            "RELAY_API_URL": "https://api.testnets.relay.link/",
            "RELAY_API_KEY": " secret ",
            "BASE_RPC_URL": "http://localhost:8545",
        }
    )

    assert config.relay.base_url == "https://api.testnets.relay.link"
    assert config.relay.ensure_api_key() == "secret"
    assert config.chain(8453).ensure_rpc_url() == "http://localhost:8545"
    assert config.chain(10).rpc_url == "https://mainnet.optimism.io"


def test_missing_api_key_is_reported(config):
    with pytest.raises(ConfigError, match="RELAY_API_KEY"):
        config.relay.ensure_api_key()


def test_unknown_chain(config):
    with pytest.raises(ConfigError, match="Unsupported chain id: 999"):
        config.chain(999)


def test_origin_currencies_only_include_permit_tokens(config):
    symbols = [currency.symbol for currency in config.origin_currencies(8453)]
    assert symbols == ["USDC"]
    assert config.origin_currencies(999) == []


def test_destination_currencies_list_native_first(config):
    currencies = config.destination_currencies(42161)
    assert currencies[0].address == NATIVE_CURRENCY
    assert currencies[0].is_native
    assert [currency.symbol for currency in currencies[1:]] == ["USDC", "USDT"]
    assert config.destination_currencies(999) == []


def test_find_currency_by_symbol_or_address(config):
    by_symbol = config.find_currency(8453, "usdc")
    by_address = config.find_currency(8453, "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913")

    assert by_symbol is not None and by_symbol == by_address
    assert by_symbol.decimals == 6
    assert config.find_currency(8453, "pengu").decimals == 18
    assert config.find_currency(8453, "DOGE") is None


def test_explorer_tx_url(config):
    assert config.explorer_tx_url(8453, "0xabc") == "https://basescan.org/tx/0xabc"
    assert config.explorer_tx_url(None, "0xabc") == "https://etherscan.io/tx/0xabc"
    assert config.explorers()[10] == "https://optimistic.etherscan.io"


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="Config file not found"):
        load_config(tmp_path / "missing.json", env={})


def test_invalid_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid JSON"):
        load_config(path, env={})


def _write(tmp_path, data):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_missing_sections_are_reported(tmp_path):
    with pytest.raises(ConfigError, match="config missing required keys: polling"):
        load_config(_write(tmp_path, {"relay": {}, "contracts": {}, "chains": {}, "currencies": {}}), env={})


def test_currencies_must_reference_known_chains(config, tmp_path):
    data = config.to_dict()
    data["currencies"] = {"999": []}
    with pytest.raises(ConfigError, match="unknown chain 999"):
        load_config(_write(tmp_path, data), env={})


def test_polling_must_be_positive(config, tmp_path):
    data = config.to_dict()
    data["polling"] = {"default": {"max_attempts": 0, "interval_seconds": 5}, "permit": data["polling"]["permit"]}
    with pytest.raises(ConfigError, match="max_attempts must be positive"):
        load_config(_write(tmp_path, data), env={})


def test_invalid_contract_address(config, tmp_path):
    data = config.to_dict()
    data["contracts"] = dict(data["contracts"], calibur="not-an-address")
    with pytest.raises(ConfigError, match="Invalid address for calibur"):
        load_config(_write(tmp_path, data), env={})


def test_supported_chains_are_sorted(config):
    assert [chain.chain_id for chain in config.supported_chains()] == [1, 10, 137, 8453, 42161]
