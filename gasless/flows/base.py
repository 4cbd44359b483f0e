"""Shared plumbing for the gasless bridge flows."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from eth_account.signers.local import LocalAccount
from web3 import Web3

from gasless.config import ConfigError, CurrencyConfig, GaslessConfig, PollingConfig
from gasless.core.execution import ExecutionState
from gasless.core.relay import RelayClient
from gasless.core.status import wait_for_success
from gasless.core.utils import get_logger, parse_units

LOGGER = get_logger("gasless.flows")


class InsufficientFundsError(ValueError):
    """Raised when neither the smart account nor its owner holds enough tokens."""


@dataclass(frozen=True)
class BridgeParams:
    """What to bridge. ``amount`` is a decimal string in whole tokens."""

    origin_chain_id: int
    destination_chain_id: int
    origin_currency: str
    destination_currency: str
    amount: str
    recipient: Optional[str] = None
    decimals: Optional[int] = None


@dataclass(frozen=True)
class FlowResult:
    request_id: Optional[str]
    execute_body: Optional[Dict[str, Any]]
    final_status: Optional[Dict[str, Any]] = None
    execution: Optional[ExecutionState] = None

    @property
    def submitted(self) -> bool:
        return self.final_status is not None


def resolve_currency(config: GaslessConfig, chain_id: int, key: str, decimals: Optional[int] = None) -> CurrencyConfig:
    """Look up ``key`` in the catalog, or accept a raw address when ``decimals`` is known."""
    currency = config.find_currency(chain_id, key)
    if currency is not None:
        return currency
    if decimals is not None and Web3.is_address(key):
        address = Web3.to_checksum_address(key)
        return CurrencyConfig(address=address, symbol=address[:10], name=address, decimals=decimals, chain_id=chain_id)
    raise ConfigError(f"Unknown currency {key} on chain {chain_id}")


def resolve_destination(config: GaslessConfig, chain_id: int, key: str) -> str:
    currency = config.find_currency(chain_id, key)
    if currency is not None:
        return currency.address
    if Web3.is_address(key):
        return Web3.to_checksum_address(key)
    raise ConfigError(f"Unknown destination currency {key} on chain {chain_id}")


class GaslessFlow:
    """Base class: numbered step logging, dry-run short circuit, submit + poll."""

    title = "Gasless flow"

    def __init__(
        self,
        *,
        config: GaslessConfig,
        client: RelayClient,
        account: LocalAccount,
        web3: Web3,
        dry_run: bool = False,
        polling: Optional[PollingConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.client = client
        self.account = account
        self.web3 = web3
        self.dry_run = dry_run
        self.polling = polling or config.polling
        self.sleep = sleep

    def run(self, params: BridgeParams) -> FlowResult:
        raise NotImplementedError

    def _banner(self) -> None:
        LOGGER.info("%s", self.title)
        if self.dry_run:
            LOGGER.info("[DRY RUN MODE]")

    @staticmethod
    def _step(number: int, title: str) -> None:
        LOGGER.info("--- Step %s: %s ---", number, title)

    def _amount(self, params: BridgeParams) -> int:
        currency = resolve_currency(self.config, params.origin_chain_id, params.origin_currency, params.decimals)
        amount = parse_units(params.amount, currency.decimals)
        if amount <= 0:
            raise ValueError(f"Amount must be positive, got {params.amount}")
        return amount

    def _dry_run_result(self, body: Dict[str, Any], request_id: Optional[str]) -> FlowResult:
        LOGGER.info("[DRY RUN] Skipping /execute call.")
        LOGGER.info("Request body:\n%s", json.dumps(body, indent=2))
        return FlowResult(request_id=request_id, execute_body=body)

    def _execute(self, body: Dict[str, Any], request_id: Optional[str]) -> str:
        result = self.client.execute(body)
        submitted = result.get("requestId") or request_id
        if not submitted:
            raise ValueError("Relay /execute response did not include a requestId")
        LOGGER.info("Submitted: %s", submitted)
        return submitted

    def _submit_and_wait(self, body: Dict[str, Any], request_id: Optional[str], *, poll_step: int) -> FlowResult:
        if self.dry_run:
            return self._dry_run_result(body, request_id)
        submitted = self._execute(body, request_id)
        self._step(poll_step, "Poll status")
        final = wait_for_success(
            self.client,
            submitted,
            max_attempts=self.polling.max_attempts,
            interval=self.polling.interval_seconds,
            sleep=self.sleep,
        )
        LOGGER.info("Done.")
        return FlowResult(request_id=submitted, execute_body=body, final_status=final)


__all__ = [
    "BridgeParams",
    "FlowResult",
    "GaslessFlow",
    "InsufficientFundsError",
    "resolve_currency",
    "resolve_destination",
]
