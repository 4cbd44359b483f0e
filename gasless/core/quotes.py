"""Quote request shaping and quote response helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from web3 import Web3

from gasless.core.utils import Call, get_logger, hex_to_bytes, to_hex

LOGGER = get_logger("gasless.quotes")

EXACT_INPUT = "EXACT_INPUT"
EXACT_OUTPUT = "EXACT_OUTPUT"


@dataclass(frozen=True)
class QuoteRequest:
    """Body of a ``/quote`` or ``/quote/v2`` request."""

    user: str
    origin_chain_id: int
    destination_chain_id: int
    origin_currency: str
    destination_currency: str
    amount: int
    trade_type: str = EXACT_INPUT
    recipient: Optional[str] = None
    use_permit: Optional[bool] = None
    subsidize_fees: Optional[bool] = None
    origin_gas_overhead: Optional[int] = None
    user_operation_gas_overhead: Optional[int] = None
    app_fees: Optional[Sequence[Mapping[str, str]]] = None

    def to_payload(self) -> Dict[str, Any]:
        if self.trade_type not in (EXACT_INPUT, EXACT_OUTPUT):
            raise ValueError(f"Unsupported trade type: {self.trade_type}")
        payload: Dict[str, Any] = {
            "user": Web3.to_checksum_address(self.user),
            "originChainId": self.origin_chain_id,
            "destinationChainId": self.destination_chain_id,
            "originCurrency": self.origin_currency,
            "destinationCurrency": self.destination_currency,
            "amount": str(self.amount),
            "tradeType": self.trade_type,
        }
        if self.recipient is not None:
            payload["recipient"] = Web3.to_checksum_address(self.recipient)
        if self.use_permit is not None:
            payload["usePermit"] = self.use_permit
        if self.subsidize_fees is not None:
            payload["subsidizeFees"] = self.subsidize_fees
        if self.origin_gas_overhead is not None:
            payload["originGasOverhead"] = str(self.origin_gas_overhead)
        if self.user_operation_gas_overhead is not None:
            payload["userOperationGasOverhead"] = str(self.user_operation_gas_overhead)
        if self.app_fees:
            payload["appFees"] = [dict(fee) for fee in self.app_fees]
        return payload


@dataclass(frozen=True)
class ExecuteRequest:
    """Body of an ``/execute`` request carrying a single raw call."""

    chain_id: int
    to: str
    data: bytes
    value: int = 0
    request_id: Optional[str] = None
    authorization_list: Optional[Sequence[Mapping[str, Any]]] = None
    referrer: Optional[str] = None
    subsidize_fees: Optional[bool] = None

    def to_payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "chainId": self.chain_id,
            "to": Web3.to_checksum_address(self.to),
            "data": to_hex(self.data),
            "value": str(self.value),
        }
        if self.authorization_list:
            data["authorizationList"] = [dict(auth) for auth in self.authorization_list]

        options: Dict[str, Any] = {}
        if self.referrer is not None:
            options["referrer"] = self.referrer
        if self.subsidize_fees is not None:
            options["subsidizeFees"] = self.subsidize_fees

        payload: Dict[str, Any] = {"executionKind": "rawCalls", "data": data}
        if options:
            payload["executionOptions"] = options
        if self.request_id:
            payload["requestId"] = self.request_id
        return payload


def extract_calls(quote: Mapping[str, Any], *, transaction_only: bool = True) -> List[Call]:
    """Flatten the quote's step items into calls (approve + deposit, typically)."""
    calls: List[Call] = []
    for step in quote.get("steps") or []:
        if transaction_only and step.get("kind") != "transaction":
            continue
        for item in step.get("items") or []:
            data = item.get("data") or {}
            if not data.get("to"):
                continue
            calls.append(
                Call(
                    to=Web3.to_checksum_address(data["to"]),
                    value=int(data.get("value") or 0),
                    data=hex_to_bytes(data.get("data") or "0x"),
                )
            )
    return calls


def extract_request_id(quote: Mapping[str, Any]) -> Optional[str]:
    """Return the request id hoisted from the transaction steps, else the top-level one."""
    request_id: Optional[str] = None
    for step in quote.get("steps") or []:
        if step.get("kind") == "transaction" and step.get("requestId"):
            request_id = step["requestId"]
    return request_id or quote.get("requestId")


def has_signature_steps(quote: Mapping[str, Any]) -> bool:
    return any(step.get("kind") == "signature" for step in quote.get("steps") or [])


@dataclass(frozen=True)
class QuoteSummary:
    """Display-oriented digest of a quote response."""

    amount_out: Optional[str]
    symbol: Optional[str]
    destination_chain_id: Optional[int]
    value_usd: Optional[str]
    relay_fee_usd: Optional[str]
    gas_usd: Optional[str]
    time_estimate: Optional[int]
    price_impact_percent: Optional[str]
    gasless: bool

    @property
    def flow_label(self) -> str:
        return "Gasless (permit)" if self.gasless else "On-chain tx"


def summarize_quote(quote: Mapping[str, Any]) -> QuoteSummary:
    details = quote.get("details") or {}
    fees = quote.get("fees") or {}
    currency_out = details.get("currencyOut") or {}
    # /quote/v2 nests token metadata under "currency"; the permit app's shape inlines it.
    currency = currency_out.get("currency") or currency_out
    impact = details.get("totalImpact") or {}
    return QuoteSummary(
        amount_out=currency_out.get("amountFormatted"),
        symbol=currency.get("symbol"),
        destination_chain_id=currency.get("chainId"),
        value_usd=currency_out.get("amountUsd"),
        relay_fee_usd=(fees.get("relayer") or {}).get("amountUsd"),
        gas_usd=(fees.get("gas") or {}).get("amountUsd"),
        time_estimate=details.get("timeEstimate"),
        price_impact_percent=impact.get("percent"),
        gasless=has_signature_steps(quote),
    )


def log_quote_summary(quote: Mapping[str, Any]) -> QuoteSummary:
    summary = summarize_quote(quote)
    if summary.amount_out is not None:
        LOGGER.info(
            "Quote: receive ~%s %s on chain %s",
            summary.amount_out,
            summary.symbol,
            summary.destination_chain_id,
        )
    if summary.value_usd:
        LOGGER.info("  Value: $%s", summary.value_usd)
    if summary.relay_fee_usd:
        LOGGER.info("  Relay fee: $%s", summary.relay_fee_usd)
    if summary.gas_usd:
        LOGGER.info("  Gas: $%s", summary.gas_usd)
    if summary.time_estimate:
        LOGGER.info("  Est. time: ~%ss", summary.time_estimate)
    if summary.price_impact_percent:
        LOGGER.info("  Price impact: %s%%", summary.price_impact_percent)
    LOGGER.info("  Flow: %s", summary.flow_label)
    return summary


def log_calls(calls: Sequence[Call]) -> None:
    LOGGER.info("Calls from quote: %s", len(calls))
    for idx, call in enumerate(calls, start=1):
        LOGGER.info("  [%s] to=%s value=%s data=%s...", idx, call.to, call.value, to_hex(call.data)[:10])


def mock_quote(origin_chain_id: int, destination_chain_id: int, *, symbol: str = "USDC") -> Dict[str, Any]:
    """Offline approve + deposit quote used for dry runs without an API key."""
    return {
        "steps": [
            {
                "id": "deposit",
                "kind": "transaction",
                "requestId": "dry-run-request-id",
                "items": [
                    {
                        "status": "incomplete",
                        "data": {
                            "to": "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa",
                            "value": "0",
                            "data": "0x095ea7b3",
                            "chainId": origin_chain_id,
                        },
                    },
                    {
                        "status": "incomplete",
                        "data": {
                            "to": "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb",
                            "value": "0",
                            "data": "0xe8017952",
                            "chainId": origin_chain_id,
                        },
                    },
                ],
            }
        ],
        "details": {
            "currencyOut": {
                "amountFormatted": "~1.00",
                "currency": {"symbol": symbol, "chainId": destination_chain_id},
            }
        },
    }


__all__ = [
    "EXACT_INPUT",
    "EXACT_OUTPUT",
    "ExecuteRequest",
    "QuoteRequest",
    "QuoteSummary",
    "extract_calls",
    "extract_request_id",
    "has_signature_steps",
    "log_calls",
    "log_quote_summary",
    "mock_quote",
    "summarize_quote",
]
