"""Configuration utilities for the gasless flows."""

from .loader import (
    ChainConfig,
    ConfigError,
    ContractsConfig,
    CurrencyConfig,
    DEFAULT_EXPLORER,
    GaslessConfig,
    NATIVE_CURRENCY,
    PollingConfig,
    RelayApiConfig,
    load_config,
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
