"""Origin-subsidised bridge out of a Safe multisig.

A Safe owner signs the ``SafeTx``; Relay's relayer submits
``execTransaction`` with ``subsidizeFees`` so neither the Safe nor the owner
pays origin gas.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from web3 import Web3
from web3.exceptions import ContractLogicError, Web3Exception

from gasless.core.quotes import ExecuteRequest, QuoteRequest, extract_calls, log_quote_summary
from gasless.core.safe import (
    NotSafeOwnerError,
    SafeInfo,
    build_safe_transaction,
    encode_exec_transaction,
    get_safe_nonce,
    read_safe_info,
    sign_safe_transaction,
    simulate_exec_transaction,
    verify_safe_signature,
)
from gasless.core.status import describe_status, is_success, poll_status
from gasless.core.utils import get_logger, to_hex
from gasless.flows.base import BridgeParams, FlowResult, GaslessFlow, resolve_currency, resolve_destination

LOGGER = get_logger("gasless.flows.safe")


def first_step_request_id(quote: Mapping[str, Any]) -> Optional[str]:
    steps = quote.get("steps") or []
    if steps and steps[0].get("requestId"):
        return steps[0]["requestId"]
    return quote.get("requestId")


class SafeFlow(GaslessFlow):
    title = "Origin-subsidised Safe bridge + Relay /execute"

    def __init__(self, *, safe_address: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.safe_address = Web3.to_checksum_address(safe_address)

    def validate_safe(self) -> SafeInfo:
        """Confirm the address is a Safe and the signer is one of its owners."""
        owner = self.account.address
        try:
            info = read_safe_info(self.web3, self.safe_address, owner)
        except (ContractLogicError, Web3Exception, ValueError) as exc:
            raise NotSafeOwnerError(f"{self.safe_address} is not a readable Safe: {exc}") from exc
        if not info.is_owner:
            raise NotSafeOwnerError(f"{owner} is not an owner of Safe {self.safe_address}")
        LOGGER.info("Safe: %s", self.safe_address)
        LOGGER.info("Owner (signer): %s, threshold: %s", owner, info.threshold)
        return info

    def run(self, params: BridgeParams) -> FlowResult:
        self._banner()
        safe = self.safe_address
        multi_send = self.config.contracts.multi_send
        origin_currency = resolve_currency(self.config, params.origin_chain_id, params.origin_currency, params.decimals)
        amount = self._amount(params)

        self._step(1, "Validate Safe")
        self.validate_safe()

        self._step(2, "Get quote from Relay (user = Safe)")
        request = QuoteRequest(
            user=safe,
            origin_chain_id=params.origin_chain_id,
            destination_chain_id=params.destination_chain_id,
            origin_currency=origin_currency.address,
            destination_currency=resolve_destination(self.config, params.destination_chain_id, params.destination_currency),
            amount=amount,
            recipient=params.recipient,
        )
        quote = self.client.get_quote(request.to_payload())
        log_quote_summary(quote)

        self._step(3, "Build Safe transaction")
        calls = extract_calls(quote, transaction_only=False)
        LOGGER.info("Built %s inner call(s) from quote", len(calls))
        nonce = get_safe_nonce(self.web3, safe)
        LOGGER.info("Safe nonce: %s", nonce)
        safe_tx = build_safe_transaction(calls, nonce, multi_send)
        if len(calls) == 1:
            LOGGER.info("Single call, no MultiSend needed")
        else:
            LOGGER.info("Encoded %s calls into MultiSend", len(calls))

        self._step(4, "Sign SafeTx")
        signature = sign_safe_transaction(self.account, safe, params.origin_chain_id, safe_tx)
        verify_safe_signature(safe, params.origin_chain_id, safe_tx, signature, self.account.address)
        LOGGER.info("Signer verified as Safe owner")

        self._step(5, "Encode and simulate execTransaction")
        exec_data = encode_exec_transaction(safe_tx, signature)
        LOGGER.info("Encoded execTransaction %s...", to_hex(exec_data)[:66])
        simulate_exec_transaction(self.web3, safe, exec_data)
        LOGGER.info("Simulation passed")

        self._step(6, "Submit to Relay /execute")
        request_id = first_step_request_id(quote)
        body = ExecuteRequest(
            chain_id=params.origin_chain_id,
            to=safe,
            data=exec_data,
            value=0,
            request_id=request_id,
            referrer=self.config.relay.referrer,
            subsidize_fees=True,
        ).to_payload()
        if self.dry_run:
            return self._dry_run_result(body, request_id)

        submitted = self._execute(body, request_id)
        self._step(7, "Poll status")
        final = poll_status(
            self.client,
            submitted,
            self._log_update,
            max_attempts=self.polling.max_attempts,
            interval=self.polling.interval_seconds,
            sleep=self.sleep,
        )
        if is_success(final):
            LOGGER.info("Transaction completed successfully!")
        else:
            LOGGER.error("Transaction ended with status: %s", final.get("status"))
        for line in describe_status(final, self.config.explorers()):
            LOGGER.info("%s", line)
        return FlowResult(request_id=submitted, execute_body=body, final_status=final)

    @staticmethod
    def _log_update(status: Dict[str, Any]) -> None:
        LOGGER.info("Status update: %s", status.get("status"))


__all__ = ["SafeFlow", "first_step_request_id"]
