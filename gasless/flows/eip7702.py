"""Gasless swap through an EIP-7702 delegation to Calibur.

The EOA delegates to Calibur, signs the approve + deposit batch with EIP-712
and Relay's relayer submits ``execute(SignedBatchedCall, wrappedSignature)``
against the EOA itself. Works with any ERC-20, permit or not.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Sequence

from gasless.core.calibur import (
    authorization_to_payload,
    build_signed_batched_call,
    check_delegation,
    encode_calibur_execute,
    get_calibur_nonce,
    sign_batched_call,
    sign_delegation,
    wrap_signature,
)
from gasless.core.quotes import ExecuteRequest, QuoteRequest, extract_calls, extract_request_id, log_calls, log_quote_summary
from gasless.core.relay import LEGACY_QUOTE_PATH
from gasless.core.utils import get_logger
from gasless.flows.base import BridgeParams, FlowResult, GaslessFlow, resolve_currency, resolve_destination

LOGGER = get_logger("gasless.flows.eip7702")


class Eip7702Flow(GaslessFlow):
    title = "EIP-7702 Gasless Swap: Calibur batch executor + Relay /execute"

    def __init__(
        self,
        *,
        subsidize_fees: bool = False,
        app_fees: Optional[Sequence[Mapping[str, str]]] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.subsidize_fees = subsidize_fees
        self.app_fees = app_fees

    def run(self, params: BridgeParams) -> FlowResult:
        self._banner()
        user = self.account.address
        calibur = self.config.contracts.calibur
        origin_currency = resolve_currency(self.config, params.origin_chain_id, params.origin_currency, params.decimals)
        amount = self._amount(params)
        LOGGER.info("User: %s", user)
        LOGGER.info(
            "Swap: %s %s (chain %s) -> %s (chain %s)",
            params.amount,
            origin_currency.symbol,
            params.origin_chain_id,
            params.destination_currency,
            params.destination_chain_id,
        )

        self._step(1, "Check delegation")
        delegated = check_delegation(self.web3, user, calibur)
        LOGGER.info("Delegation: %s", "already delegated" if delegated else "needs delegation")

        self._step(2, "Get quote")
        request = QuoteRequest(
            user=user,
            origin_chain_id=params.origin_chain_id,
            destination_chain_id=params.destination_chain_id,
            origin_currency=origin_currency.address,
            destination_currency=resolve_destination(self.config, params.destination_chain_id, params.destination_currency),
            amount=amount,
            recipient=params.recipient or user,
            subsidize_fees=self.subsidize_fees,
            app_fees=self.app_fees,
        )
        quote = self.client.get_quote(request.to_payload(), path=LEGACY_QUOTE_PATH)
        log_quote_summary(quote)

        self._step(3, "Extract calls from quote steps")
        calls = extract_calls(quote)
        if not calls:
            raise ValueError("No transaction steps in quote")
        log_calls(calls)
        request_id = extract_request_id(quote)

        authorization: Optional[Dict[str, Any]] = None
        if not delegated:
            self._step(4, "Sign EIP-7702 authorization")
            account_nonce = self.web3.eth.get_transaction_count(user)
            signed_auth = sign_delegation(self.account, params.origin_chain_id, account_nonce, calibur)
            authorization = authorization_to_payload(signed_auth)
            LOGGER.info("Signed 7702 authorization (nonce %s)", account_nonce)

        self._step(5, "Sign batch via EIP-712")
        calibur_nonce = get_calibur_nonce(self.web3, user)
        LOGGER.info("Calibur nonce: %s", calibur_nonce)
        message = build_signed_batched_call(calls, calibur_nonce)
        signature = sign_batched_call(self.account, message, params.origin_chain_id, calibur)
        batch_call_data = encode_calibur_execute(message, wrap_signature(signature))
        LOGGER.info("Signed EIP-712 batch")
        LOGGER.info("Request ID: %s", request_id or "(none)")

        self._step(6, "Submit via /execute")
        body = ExecuteRequest(
            chain_id=params.origin_chain_id,
            to=user,
            data=batch_call_data,
            value=0,
            request_id=request_id,
            authorization_list=[authorization] if authorization else None,
            referrer=self.config.relay.referrer,
            subsidize_fees=self.subsidize_fees,
        ).to_payload()
        return self._submit_and_wait(body, request_id, poll_step=7)


__all__ = ["Eip7702Flow"]
