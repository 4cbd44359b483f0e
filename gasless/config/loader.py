"""Config loader for the gasless bridging flows."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional

from web3 import Web3

NATIVE_CURRENCY = "0x0000000000000000000000000000000000000000"
DEFAULT_EXPLORER = "https://etherscan.io"
DEFAULT_CONFIG_FILE = "default_config.json"


class ConfigError(ValueError):
    """Raised when configuration data is invalid or missing."""


def _require_keys(data: Mapping[str, Any], keys: Iterable[str], context: str) -> None:
    missing = [key for key in keys if key not in data]
    if missing:
        raise ConfigError(f"{context} missing required keys: {', '.join(missing)}")


def _to_checksum(value: str, *, field_name: str) -> str:
    try:
        return Web3.to_checksum_address(value)
    except Exception as exc:  # web3 raises ValueError for malformed inputs
        raise ConfigError(f"Invalid address for {field_name}: {value}") from exc


@dataclass(frozen=True)
class RelayApiConfig:
    """Relay API endpoint and credentials."""

    base_url: str
    api_key: Optional[str]
    timeout: int
    referrer: str

    def ensure_api_key(self) -> str:
        """Return the API key or raise if it is missing."""
        if not self.api_key:
            raise ConfigError("RELAY_API_KEY is required for this request")
        return self.api_key


@dataclass(frozen=True)
class PollingConfig:
    """Fixed-interval status polling parameters."""

    max_attempts: int
    interval_seconds: float


@dataclass(frozen=True)
class ContractsConfig:
    """Addresses of the deployed contracts the flows call into."""

    entry_point: str
    simple_account_factory: str
    calibur: str
    multi_send: str


@dataclass(frozen=True)
class CurrencyConfig:
    """A token the flows can bridge from or to."""

    address: str
    symbol: str
    name: str
    decimals: int
    chain_id: int
    supports_permit: bool = False

    @property
    def is_native(self) -> bool:
        return self.address == NATIVE_CURRENCY


@dataclass(frozen=True)
class ChainConfig:
    """Configuration for a blockchain network."""

    chain_id: int
    name: str
    native: CurrencyConfig
    rpc_url: Optional[str] = None
    explorer: str = DEFAULT_EXPLORER

    def ensure_rpc_url(self) -> str:
        """Return the RPC URL or raise if it is missing."""
        if not self.rpc_url:
            raise ConfigError(f"RPC URL required for {self.name} ({self.chain_id}) but not configured")
        return self.rpc_url


@dataclass(frozen=True)
class GaslessConfig:
    """Typed wrapper around the gasless flow configuration."""

    relay: RelayApiConfig
    polling: PollingConfig
    permit_polling: PollingConfig
    contracts: ContractsConfig
    chains: Mapping[int, ChainConfig]
    currencies: Mapping[int, List[CurrencyConfig]]
    raw: Mapping[str, Any] = field(repr=False)

    def to_dict(self) -> Dict[str, Any]:
        """Return the original configuration mapping."""
        return dict(self.raw)

    def chain(self, chain_id: int) -> ChainConfig:
        """Return the chain config for ``chain_id`` or raise."""
        try:
            return self.chains[int(chain_id)]
        except KeyError as exc:
            raise ConfigError(f"Unsupported chain id: {chain_id}") from exc

    def supported_chains(self) -> List[ChainConfig]:
        return [self.chains[chain_id] for chain_id in sorted(self.chains)]

    def origin_currencies(self, chain_id: int) -> List[CurrencyConfig]:
        """Permit-enabled currencies that can be spent without gas on ``chain_id``."""
        return [currency for currency in self.currencies.get(int(chain_id), []) if currency.supports_permit]

    def destination_currencies(self, chain_id: int) -> List[CurrencyConfig]:
        """All currencies receivable on ``chain_id``, native first."""
        chain = self.chains.get(int(chain_id))
        if chain is None:
            return []
        return [chain.native, *self.currencies.get(int(chain_id), [])]

    def find_currency(self, chain_id: int, key: str) -> Optional[CurrencyConfig]:
        """Look up a currency on ``chain_id`` by address or symbol (case-insensitive)."""
        needle = key.lower()
        for currency in self.destination_currencies(chain_id):
            if currency.address.lower() == needle or currency.symbol.lower() == needle:
                return currency
        return None

    def explorer_tx_url(self, chain_id: Optional[int], tx_hash: str) -> str:
        chain = self.chains.get(int(chain_id)) if chain_id is not None else None
        base = chain.explorer if chain else DEFAULT_EXPLORER
        return f"{base.rstrip('/')}/tx/{tx_hash}"

    def explorers(self) -> Dict[int, str]:
        return {chain_id: chain.explorer for chain_id, chain in self.chains.items()}


def _load_json(path: Path) -> MutableMapping[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file contains invalid JSON: {path}") from exc


def _load_bundled() -> MutableMapping[str, Any]:
    with resources.files(__package__).joinpath(DEFAULT_CONFIG_FILE).open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _parse_polling(data: Mapping[str, Any], context: str) -> PollingConfig:
    _require_keys(data, ["max_attempts", "interval_seconds"], context)
    polling = PollingConfig(
        max_attempts=int(data["max_attempts"]),
        interval_seconds=float(data["interval_seconds"]),
    )
    if polling.max_attempts <= 0:
        raise ConfigError(f"{context}.max_attempts must be positive")
    if polling.interval_seconds < 0:
        raise ConfigError(f"{context}.interval_seconds cannot be negative")
    return polling


def _parse_currency(data: Mapping[str, Any], chain_id: int) -> CurrencyConfig:
    _require_keys(data, ["address", "symbol", "decimals"], f"currency on chain {chain_id}")
    return CurrencyConfig(
        address=_to_checksum(data["address"], field_name=f"{data['symbol']} on chain {chain_id}"),
        symbol=str(data["symbol"]),
        name=str(data.get("name", data["symbol"])),
        decimals=int(data["decimals"]),
        chain_id=chain_id,
        supports_permit=bool(data.get("supports_permit", False)),
    )


def _parse_chains(chains: Mapping[str, Any], env: Mapping[str, str]) -> Dict[int, ChainConfig]:
    result: Dict[int, ChainConfig] = {}
    for key, chain_data in chains.items():
        chain_id = int(key)
        _require_keys(chain_data, ["name", "native"], f"chain {chain_id}")
        name = str(chain_data["name"])
        native = chain_data["native"]
        _require_keys(native, ["symbol", "decimals"], f"chain {chain_id} native")
        rpc_override = (env.get(f"{name.upper()}_RPC_URL") or "").strip()
        result[chain_id] = ChainConfig(
            chain_id=chain_id,
            name=name,
            native=CurrencyConfig(
                address=NATIVE_CURRENCY,
                symbol=str(native["symbol"]),
                name=str(native.get("name", native["symbol"])),
                decimals=int(native["decimals"]),
                chain_id=chain_id,
            ),
            rpc_url=rpc_override or chain_data.get("rpc_url"),
            explorer=str(chain_data.get("explorer", DEFAULT_EXPLORER)),
        )
    if not result:
        raise ConfigError("chains cannot be empty")
    return result


def load_config(config_path: Optional[Path] = None, *, env: Optional[Mapping[str, str]] = None) -> GaslessConfig:
    """Load and validate configuration, applying environment overrides.

    Without ``config_path`` the configuration bundled with the package is used.
    """
    env = os.environ if env is None else env
    data = _load_json(Path(config_path)) if config_path else _load_bundled()

    _require_keys(data, ["relay", "polling", "contracts", "chains", "currencies"], "config")

    relay = data["relay"]
    _require_keys(relay, ["api_url", "timeout"], "relay")
    relay_config = RelayApiConfig(
        base_url=str(env.get("RELAY_API_URL") or relay["api_url"]).rstrip("/"),
        api_key=(env.get("RELAY_API_KEY") or relay.get("api_key") or "").strip() or None,
        timeout=int(relay["timeout"]),
        referrer=str(env.get("RELAY_REFERRER") or relay.get("referrer", "relay.link")),
    )
    if relay_config.timeout <= 0:
        raise ConfigError("relay.timeout must be positive")

    polling = data["polling"]
    _require_keys(polling, ["default", "permit"], "polling")

    contracts = data["contracts"]
    _require_keys(contracts, ["entry_point", "simple_account_factory", "calibur", "multi_send"], "contracts")
    contracts_config = ContractsConfig(
        entry_point=_to_checksum(contracts["entry_point"], field_name="entry_point"),
        simple_account_factory=_to_checksum(contracts["simple_account_factory"], field_name="simple_account_factory"),
        calibur=_to_checksum(contracts["calibur"], field_name="calibur"),
        multi_send=_to_checksum(contracts["multi_send"], field_name="multi_send"),
    )

    chains = _parse_chains(data["chains"], env)
    currencies: Dict[int, List[CurrencyConfig]] = {}
    for key, entries in data["currencies"].items():
        chain_id = int(key)
        if chain_id not in chains:
            raise ConfigError(f"currencies reference unknown chain {chain_id}")
        currencies[chain_id] = [_parse_currency(entry, chain_id) for entry in entries]

    return GaslessConfig(
        relay=relay_config,
        polling=_parse_polling(polling["default"], "polling.default"),
        permit_polling=_parse_polling(polling["permit"], "polling.permit"),
        contracts=contracts_config,
        chains=chains,
        currencies=currencies,
        raw=data,
    )


__all__ = [
    "ChainConfig",
    "ConfigError",
    "ContractsConfig",
    "CurrencyConfig",
    "DEFAULT_EXPLORER",
    "GaslessConfig",
    "NATIVE_CURRENCY",
    "PollingConfig",
    "RelayApiConfig",
    "load_config",
]
