"""Execution progress tracking and a generic Relay quote-step executor."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Optional

from eth_account.signers.local import LocalAccount
from web3 import Web3

from gasless.core.relay import RelayClient
from gasless.core.signing import extract_item_request_id, sign_step_item
from gasless.core.status import DEFAULT_INTERVAL, DEFAULT_MAX_ATTEMPTS, RelayFillError, is_success, poll_status
from gasless.core.utils import get_logger, hex_to_bytes, to_hex

LOGGER = get_logger("gasless.execution")

PENDING = "pending"
ACTIVE = "active"
COMPLETE = "complete"
ERROR = "error"

IDLE = "idle"
EXECUTING = "executing"

FILL_STEP_ID = "fill"


@dataclass(frozen=True)
class ProgressStep:
    id: str
    label: str
    description: Optional[str] = None
    status: str = PENDING


@dataclass
class ExecutionState:
    status: str = IDLE
    steps: List[ProgressStep] = field(default_factory=list)
    error: Optional[str] = None
    fill_status: Optional[Dict[str, Any]] = None


class ExecutionTracker:
    """Mutable holder for :class:`ExecutionState` with an optional change listener."""

    def __init__(self, listener: Optional[Callable[[ExecutionState], None]] = None) -> None:
        self.state = ExecutionState()
        self._listener = listener

    def _notify(self) -> None:
        if self._listener is not None:
            self._listener(self.state)

    def start(self, quote: Mapping[str, Any]) -> ExecutionState:
        steps = [
            ProgressStep(id=step.get("id", str(idx)), label=step.get("action", ""), description=step.get("description"))
            for idx, step in enumerate(quote.get("steps") or [])
        ]
        steps.append(
            ProgressStep(
                id=FILL_STEP_ID,
                label="Waiting for Fill",
                description="Relay is filling your order on the destination chain",
            )
        )
        self.state = ExecutionState(status=EXECUTING, steps=steps)
        self._notify()
        return self.state

    @property
    def fill_index(self) -> int:
        return len(self.state.steps) - 1

    def mark(self, index: int, status: str) -> None:
        self.state.steps[index] = replace(self.state.steps[index], status=status)
        self._notify()

    def set_fill_status(self, status: Dict[str, Any]) -> None:
        self.state.fill_status = status
        self._notify()

    def complete(self) -> None:
        self.state.steps[self.fill_index] = replace(self.state.steps[self.fill_index], status=COMPLETE)
        self.state.status = COMPLETE
        self._notify()

    def fail(self, message: str) -> None:
        """Record ``message`` and flag whichever step was active as failed."""
        for idx, step in enumerate(self.state.steps):
            if step.status == ACTIVE:
                self.state.steps[idx] = replace(step, status=ERROR)
                break
        self.state.status = ERROR
        self.state.error = message
        self._notify()

    def reset(self) -> None:
        self.state = ExecutionState()
        self._notify()


class QuoteExecutor:
    """Walk a quote's steps with a local account, then wait for the fill.

    Signature steps are signed and posted back to Relay; transaction steps
    are broadcast on the item's chain. Failures are recorded in the returned
    state rather than raised.
    """

    def __init__(
        self,
        client: RelayClient,
        account: LocalAccount,
        web3_for_chain: Callable[[int], Web3],
        *,
        tracker: Optional[ExecutionTracker] = None,
        poll_attempts: int = DEFAULT_MAX_ATTEMPTS,
        poll_interval: float = DEFAULT_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.account = account
        self.web3_for_chain = web3_for_chain
        self.tracker = tracker or ExecutionTracker()
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval
        self.sleep = sleep

    def execute(self, quote: Mapping[str, Any]) -> ExecutionState:
        tracker = self.tracker
        tracker.start(quote)
        request_id: Optional[str] = None

        try:
            for idx, step in enumerate(quote.get("steps") or []):
                tracker.mark(idx, ACTIVE)
                LOGGER.info("Step %s: %s", idx + 1, step.get("action") or step.get("id"))
                kind = step.get("kind")
                if kind not in ("signature", "transaction"):
                    LOGGER.warning("Skipping step %s with unsupported kind: %s", step.get("id"), kind)
                    tracker.mark(idx, COMPLETE)
                    continue
                for item in step.get("items") or []:
                    if item.get("status") == COMPLETE:
                        continue
                    if kind == "signature":
                        request_id = self._run_signature_item(item, step.get("requestId")) or request_id
                    else:
                        self._run_transaction_item(item)
                        request_id = step.get("requestId") or request_id
                tracker.mark(idx, COMPLETE)

            tracker.mark(tracker.fill_index, ACTIVE)
            if not request_id:
                LOGGER.info("No request id to poll, marking complete")
                tracker.complete()
                return tracker.state

            final = poll_status(
                self.client,
                request_id,
                tracker.set_fill_status,
                max_attempts=self.poll_attempts,
                interval=self.poll_interval,
                sleep=self.sleep,
            )
            if is_success(final):
                tracker.complete()
            else:
                tracker.fail(str(RelayFillError(final)))
        except Exception as exc:
            LOGGER.error("Execution failed: %s", exc)
            tracker.fail(str(exc) or exc.__class__.__name__)

        return tracker.state

    def _run_signature_item(self, item: Mapping[str, Any], step_request_id: Optional[str]) -> Optional[str]:
        signature = sign_step_item(self.account, item)
        LOGGER.info("Signed %s payload", (item["data"].get("sign") or {}).get("signatureKind"))
        post = item["data"].get("post")
        if post:
            self.client.post_signature(post["endpoint"], signature, post.get("body") or {})
            LOGGER.info("Posted signature to %s", post["endpoint"])
        return extract_item_request_id(item, step_request_id)

    def _run_transaction_item(self, item: Mapping[str, Any]) -> str:
        data = item.get("data") or {}
        chain_id = int(data["chainId"])
        return send_transaction(
            self.web3_for_chain(chain_id),
            self.account,
            to=data["to"],
            data=hex_to_bytes(data.get("data") or "0x"),
            value=int(data.get("value") or 0),
            chain_id=chain_id,
            gas=int(data["gas"]) if data.get("gas") else None,
            max_fee_per_gas=int(data["maxFeePerGas"]) if data.get("maxFeePerGas") else None,
            max_priority_fee_per_gas=int(data["maxPriorityFeePerGas"]) if data.get("maxPriorityFeePerGas") else None,
        )


def send_transaction(
    web3: Web3,
    account: LocalAccount,
    *,
    to: str,
    data: bytes,
    value: int,
    chain_id: int,
    gas: Optional[int] = None,
    max_fee_per_gas: Optional[int] = None,
    max_priority_fee_per_gas: Optional[int] = None,
) -> str:
    """Sign and broadcast an EIP-1559 transaction, then wait for a successful receipt."""
    tx: Dict[str, Any] = {
        "to": Web3.to_checksum_address(to),
        "data": data,
        "value": value,
        "chainId": chain_id,
        "nonce": web3.eth.get_transaction_count(account.address),
    }
    if max_fee_per_gas is not None and max_priority_fee_per_gas is not None:
        tx["maxFeePerGas"] = max_fee_per_gas
        tx["maxPriorityFeePerGas"] = max_priority_fee_per_gas
    else:
        gas_price = web3.eth.gas_price
        max_priority_fee = getattr(web3.eth, "max_priority_fee", gas_price)
        tx["maxFeePerGas"] = gas_price + max_priority_fee
        tx["maxPriorityFeePerGas"] = max_priority_fee
    tx["gas"] = gas if gas is not None else web3.eth.estimate_gas({**tx, "from": account.address})

    LOGGER.info("Signing transaction")
    signed = account.sign_transaction(tx)
    tx_hash = web3.eth.send_raw_transaction(signed.raw_transaction)
    tx_hex = to_hex(tx_hash)
    LOGGER.info("Transaction hash: %s", tx_hex)

    receipt = web3.eth.wait_for_transaction_receipt(tx_hash)
    if receipt["status"] != 1:
        raise RuntimeError(f"Transaction {tx_hex} failed with status {receipt['status']}")
    LOGGER.info("Transaction confirmed in block %s", receipt["blockNumber"])
    return tx_hex


__all__ = [
    "ACTIVE",
    "COMPLETE",
    "ERROR",
    "EXECUTING",
    "ExecutionState",
    "ExecutionTracker",
    "IDLE",
    "PENDING",
    "ProgressStep",
    "QuoteExecutor",
    "send_transaction",
]
