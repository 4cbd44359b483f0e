"""Bring-your-own EOA bridge using permit signatures instead of transactions."""

from __future__ import annotations

from typing import Any, Callable, Optional

from web3 import Web3

from gasless.config import ConfigError
from gasless.core.execution import ACTIVE, ERROR, ExecutionState, ExecutionTracker, QuoteExecutor
from gasless.core.quotes import QuoteRequest, extract_request_id, log_quote_summary
from gasless.core.status import describe_status
from gasless.core.utils import get_logger, parse_units
from gasless.flows.base import BridgeParams, FlowResult, GaslessFlow, resolve_destination

LOGGER = get_logger("gasless.flows.permit")


class PermitFlow(GaslessFlow):
    title = "Gasless permit bridge: EOA signatures + Relay"

    def __init__(self, *, web3_for_chain: Optional[Callable[[int], Web3]] = None, **kwargs: Any) -> None:
        kwargs.setdefault("polling", kwargs["config"].permit_polling)
        super().__init__(**kwargs)
        self._web3_for_chain = web3_for_chain

    def web3_for_chain(self, chain_id: int) -> Web3:
        if self._web3_for_chain is not None:
            return self._web3_for_chain(chain_id)
        if self.web3.eth.chain_id == chain_id:
            return self.web3
        return Web3(Web3.HTTPProvider(self.config.chain(chain_id).ensure_rpc_url()))

    def run(self, params: BridgeParams) -> FlowResult:
        self._banner()
        user = self.account.address

        self._step(1, "Validate origin currency")
        currency = next(
            (
                candidate
                for candidate in self.config.origin_currencies(params.origin_chain_id)
                if params.origin_currency.lower() in (candidate.address.lower(), candidate.symbol.lower())
            ),
            None,
        )
        if currency is None:
            raise ConfigError(f"{params.origin_currency} does not support gasless permits on chain {params.origin_chain_id}")
        amount = parse_units(params.amount, currency.decimals)
        if amount <= 0:
            raise ValueError(f"Amount must be positive, got {params.amount}")
        LOGGER.info("Spending %s %s (%s base units) from %s", params.amount, currency.symbol, amount, user)

        self._step(2, "Get quote with usePermit")
        request = QuoteRequest(
            user=user,
            origin_chain_id=params.origin_chain_id,
            destination_chain_id=params.destination_chain_id,
            origin_currency=currency.address,
            destination_currency=resolve_destination(self.config, params.destination_chain_id, params.destination_currency),
            amount=amount,
            recipient=params.recipient or user,
            use_permit=True,
        )
        quote = self.client.get_quote(request.to_payload())
        summary = log_quote_summary(quote)

        if self.dry_run:
            for idx, step in enumerate(quote.get("steps") or [], start=1):
                LOGGER.info(
                    "  [%s] %s (%s, %s item(s))",
                    idx,
                    step.get("action") or step.get("id"),
                    step.get("kind"),
                    len(step.get("items") or []),
                )
            LOGGER.info("[DRY RUN] Skipping signing and execution (%s).", summary.flow_label)
            return FlowResult(request_id=extract_request_id(quote), execute_body=None)

        self._step(3, "Execute quote steps")
        executor = QuoteExecutor(
            self.client,
            self.account,
            self.web3_for_chain,
            tracker=ExecutionTracker(listener=self._log_progress),
            poll_attempts=self.polling.max_attempts,
            poll_interval=self.polling.interval_seconds,
            sleep=self.sleep,
        )
        state = executor.execute(quote)
        if state.status == ERROR:
            LOGGER.error("Execution failed: %s", state.error)
        if state.fill_status:
            for line in describe_status(state.fill_status, self.config.explorers()):
                LOGGER.info("%s", line)
        return FlowResult(
            request_id=(state.fill_status or {}).get("requestId") or extract_request_id(quote),
            execute_body=None,
            final_status=state.fill_status,
            execution=state,
        )

    @staticmethod
    def _log_progress(state: ExecutionState) -> None:
        active = [step.label for step in state.steps if step.status == ACTIVE]
        if active:
            LOGGER.debug("Progress: %s", active[0])


__all__ = ["PermitFlow"]
