"""Gasless bridge from an app-owned SimpleAccount (ERC-4337 v0.7).

The app holds the owner key of the smart account (embedded wallet pattern).
Relay pays gas, so the UserOperation carries zero fee fields and no
paymaster; the signed ``handleOps`` call is handed to ``/execute``.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from gasless.config import CurrencyConfig
from gasless.core.execution import send_transaction
from gasless.core.quotes import (
    ExecuteRequest,
    QuoteRequest,
    extract_calls,
    extract_request_id,
    log_calls,
    log_quote_summary,
    mock_quote,
)
from gasless.core.smart_account import (
    CALL_GAS_LIMIT,
    PRE_VERIFICATION_GAS,
    VERIFICATION_GAS_LIMIT,
    PackedUserOperation,
    build_init_code,
    encode_account_call,
    encode_handle_ops,
    get_account_address,
    get_entry_point_nonce,
    is_deployed,
    pack_account_gas_limits,
    pack_gas_fees,
    sign_user_op,
)
from gasless.core.tokens import balance_of, encode_transfer
from gasless.core.utils import format_units, get_logger, to_hex
from gasless.flows.base import BridgeParams, FlowResult, GaslessFlow, InsufficientFundsError, resolve_currency, resolve_destination

LOGGER = get_logger("gasless.flows.erc4337")

ORIGIN_GAS_OVERHEAD = 300_000


class Erc4337Flow(GaslessFlow):
    title = "ERC-4337 Gasless Bridge: SimpleAccount + Relay /execute"

    def __init__(self, *, salt: int = 0, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.salt = salt

    def run(self, params: BridgeParams) -> FlowResult:
        self._banner()
        contracts = self.config.contracts
        owner = self.account.address
        origin_currency = resolve_currency(self.config, params.origin_chain_id, params.origin_currency, params.decimals)
        amount = self._amount(params)
        # Without a key the dry run stays offline: no balance reads, mocked quote.
        offline = self.dry_run and not self.config.relay.api_key

        self._step(0, "Setup")
        LOGGER.info("  Owner EOA:     %s", owner)
        smart_account = get_account_address(self.web3, owner, self.salt, contracts.simple_account_factory)
        deployed = is_deployed(self.web3, smart_account)
        LOGGER.info("  Smart Account: %s", smart_account)
        LOGGER.info("  Deployed:      %s", deployed)

        if offline:
            LOGGER.info("  %s balance: [skipped, no API key in dry run]", origin_currency.symbol)
        else:
            self._fund_smart_account(smart_account, origin_currency, amount, params.origin_chain_id)

        self._step(1, "Get quote from Relay")
        request = QuoteRequest(
            user=smart_account,
            origin_chain_id=params.origin_chain_id,
            destination_chain_id=params.destination_chain_id,
            origin_currency=origin_currency.address,
            destination_currency=resolve_destination(self.config, params.destination_chain_id, params.destination_currency),
            amount=amount,
            recipient=params.recipient or smart_account,
            origin_gas_overhead=ORIGIN_GAS_OVERHEAD,
        )
        payload = request.to_payload()
        if offline:
            LOGGER.info("[DRY RUN] No RELAY_API_KEY, skipping quote fetch. Quote request body:\n%s", json.dumps(payload, indent=2))
            quote = mock_quote(params.origin_chain_id, params.destination_chain_id, symbol=origin_currency.symbol)
        else:
            quote = self.client.get_quote(payload)
        log_quote_summary(quote)

        calls = extract_calls(quote)
        if not calls:
            raise ValueError("No transaction steps found in quote")
        log_calls(calls)
        request_id = extract_request_id(quote)
        LOGGER.info("Request ID: %s", request_id or "(none)")

        self._step(2, "Build UserOperation")
        nonce = get_entry_point_nonce(self.web3, smart_account, entry_point=contracts.entry_point)
        init_code = b"" if deployed else build_init_code(owner, self.salt, contracts.simple_account_factory)
        call_data = encode_account_call(calls)
        user_op = PackedUserOperation(
            sender=smart_account,
            nonce=nonce,
            init_code=init_code,
            call_data=call_data,
            account_gas_limits=pack_account_gas_limits(VERIFICATION_GAS_LIMIT, CALL_GAS_LIMIT),
            pre_verification_gas=PRE_VERIFICATION_GAS,
            gas_fees=pack_gas_fees(0, 0),
        )
        LOGGER.info("  Nonce: %s", nonce)
        LOGGER.info("  initCode: %s", "(empty, already deployed)" if deployed else to_hex(init_code)[:50] + "...")
        LOGGER.info("  callData: %s %s...", "execute" if len(calls) == 1 else "executeBatch", to_hex(call_data)[:42])
        LOGGER.info("  gasFees: 0 (Relay pays)")

        self._step(3, "Sign UserOperation")
        signed_op = sign_user_op(self.account, user_op, params.origin_chain_id, contracts.entry_point)
        LOGGER.info("  Signature: %s...", to_hex(signed_op.signature)[:42])

        self._step(4, "Submit to Relay /execute")
        handle_ops = encode_handle_ops(signed_op, owner)
        body = ExecuteRequest(
            chain_id=params.origin_chain_id,
            to=contracts.entry_point,
            data=handle_ops,
            value=0,
            request_id=request_id,
            referrer=self.config.relay.referrer,
            subsidize_fees=True,
        ).to_payload()
        LOGGER.info("  EntryPoint: %s", contracts.entry_point)
        LOGGER.info("  handleOps calldata: %s...", to_hex(handle_ops)[:42])
        return self._submit_and_wait(body, request_id, poll_step=5)

    def _fund_smart_account(self, smart_account: str, currency: CurrencyConfig, amount: int, chain_id: int) -> Optional[str]:
        """Top the smart account up from the owner EOA when it holds less than ``amount``."""
        owner = self.account.address
        balance = balance_of(self.web3, currency.address, smart_account)
        LOGGER.info(
            "  Smart account balance: %s %s (need %s)",
            format_units(balance, currency.decimals),
            currency.symbol,
            format_units(amount, currency.decimals),
        )
        if balance >= amount:
            return None

        needed = amount - balance
        owner_balance = balance_of(self.web3, currency.address, owner)
        LOGGER.info("  Owner EOA balance: %s %s", format_units(owner_balance, currency.decimals), currency.symbol)
        if owner_balance < needed:
            raise InsufficientFundsError(
                f"Not enough funds. Need {needed} more on owner EOA ({owner}) or smart account ({smart_account})."
            )

        if self.dry_run:
            LOGGER.info("  [DRY RUN] Would transfer %s from owner EOA to smart account.", needed)
            return None

        LOGGER.info("  Transferring %s to smart account", needed)
        tx: Dict[str, Any]
        if currency.is_native:
            tx = {"to": smart_account, "data": b"", "value": needed}
        else:
            tx = {"to": currency.address, "data": encode_transfer(smart_account, needed), "value": 0}
        return send_transaction(self.web3, self.account, chain_id=chain_id, **tx)


__all__ = ["Erc4337Flow", "ORIGIN_GAS_OVERHEAD"]
