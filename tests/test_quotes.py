"""Tests for quote payload shaping and quote response helpers."""

import pytest
from web3 import Web3

from gasless.core.quotes import (
    ExecuteRequest,
    QuoteRequest,
    extract_calls,
    extract_request_id,
    has_signature_steps,
    mock_quote,
    summarize_quote,
)
from gasless.core.utils import Call

USER = "0x03508bb71268bba25ecacc8f620e01866650532c"
USDC_BASE = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
USDC_ARB = "0xaf88d065e77c8cC2239327C5EDb3A432268e5831"
RECEIVER = "0xa5f565650890fba1824ee0f21ebbbf660a179934"
USER_CHECKSUM = Web3.to_checksum_address(USER)


def _quote():
    return {
        "steps": [
            {
                "id": "authorize",
                "kind": "signature",
                "requestId": "0xsig",
                "items": [{"data": {"sign": {"signatureKind": "eip191", "message": "hi"}}}],
            },
            {
                "id": "approve",
                "kind": "transaction",
                "requestId": "0xfirst",
                "items": [{"data": {"to": USDC_BASE, "data": "0x095ea7b3", "value": "0", "chainId": 8453}}],
            },
            {
                "id": "deposit",
                "kind": "transaction",
                "requestId": "0xlast",
                "items": [
                    {"data": {"to": RECEIVER, "data": "0xe8017952", "chainId": 8453}},
                    {"data": {"chainId": 8453}},
                ],
            },
        ],
        "details": {
            "currencyOut": {
                "amountFormatted": "0.99",
                "amountUsd": "0.99",
                "currency": {"symbol": "USDC", "chainId": 42161},
            },
            "timeEstimate": 4,
            "totalImpact": {"percent": "-0.5"},
        },
        "fees": {"relayer": {"amountUsd": "0.01"}, "gas": {"amountUsd": "0.002"}},
    }


def test_quote_payload_shape():
    payload = QuoteRequest(
        user=USER,
        origin_chain_id=8453,
        destination_chain_id=42161,
        origin_currency=USDC_BASE,
        destination_currency=USDC_ARB,
        amount=1_000_000,
        recipient=USER,
        origin_gas_overhead=300_000,
    ).to_payload()

    assert payload == {
        "user": USER_CHECKSUM,
        "originChainId": 8453,
        "destinationChainId": 42161,
        "originCurrency": USDC_BASE,
        "destinationCurrency": USDC_ARB,
        "amount": "1000000",
        "tradeType": "EXACT_INPUT",
        "recipient": USER_CHECKSUM,
        "originGasOverhead": "300000",
    }


def test_quote_payload_optional_flags():
    payload = QuoteRequest(
        user=USER,
        origin_chain_id=8453,
        destination_chain_id=10,
        origin_currency=USDC_BASE,
        destination_currency=USDC_ARB,
        amount=5,
        use_permit=True,
        subsidize_fees=False,
        app_fees=[{"recipient": USER, "fee": "80"}],
    ).to_payload()

    assert payload["usePermit"] is True
    assert payload["subsidizeFees"] is False
    assert payload["appFees"] == [{"recipient": USER, "fee": "80"}]
    assert "recipient" not in payload


def test_quote_payload_rejects_unknown_trade_type():
    with pytest.raises(ValueError):
        QuoteRequest(USER, 1, 2, USDC_BASE, USDC_ARB, 1, trade_type="EXPECTED_OUTPUT").to_payload()


def test_execute_payload_shape():
    payload = ExecuteRequest(
        chain_id=8453,
        to=USER,
        data=b"\x12\x34",
        request_id="0xreq",
        authorization_list=[{"chainId": 8453, "nonce": 1}],
        referrer="relay.link",
        subsidize_fees=True,
    ).to_payload()

    assert payload == {
        "executionKind": "rawCalls",
        "data": {
            "chainId": 8453,
            "to": USER_CHECKSUM,
            "data": "0x1234",
            "value": "0",
            "authorizationList": [{"chainId": 8453, "nonce": 1}],
        },
        "executionOptions": {"referrer": "relay.link", "subsidizeFees": True},
        "requestId": "0xreq",
    }


def test_execute_payload_omits_empty_optionals():
    payload = ExecuteRequest(chain_id=1, to=USER, data=b"").to_payload()
    assert payload == {
        "executionKind": "rawCalls",
        "data": {"chainId": 1, "to": USER_CHECKSUM, "data": "0x", "value": "0"},
    }


def test_extract_calls_only_transactions_and_skips_missing_to():
    calls = extract_calls(_quote())

    assert calls == [
        Call(to=USDC_BASE, value=0, data=bytes.fromhex("095ea7b3")),
        Call(to=Web3.to_checksum_address(RECEIVER), value=0, data=bytes.fromhex("e8017952")),
    ]


def test_extract_calls_all_steps_skips_items_without_target():
    calls = extract_calls(_quote(), transaction_only=False)
    assert len(calls) == 2


def test_extract_request_id_prefers_last_transaction_step():
    assert extract_request_id(_quote()) == "0xlast"
    assert extract_request_id({"steps": [], "requestId": "0xtop"}) == "0xtop"
    assert extract_request_id({"steps": []}) is None


def test_summarize_quote():
    summary = summarize_quote(_quote())

    assert summary.amount_out == "0.99"
    assert summary.symbol == "USDC"
    assert summary.destination_chain_id == 42161
    assert summary.relay_fee_usd == "0.01"
    assert summary.gas_usd == "0.002"
    assert summary.time_estimate == 4
    assert summary.price_impact_percent == "-0.5"
    assert summary.gasless is True
    assert summary.flow_label == "Gasless (permit)"


def test_mock_quote_is_approve_plus_deposit():
    quote = mock_quote(8453, 42161)

    assert not has_signature_steps(quote)
    assert extract_request_id(quote) == "dry-run-request-id"
    calls = extract_calls(quote)
    assert [call.data.hex() for call in calls] == ["095ea7b3", "e8017952"]
    assert summarize_quote(quote).flow_label == "On-chain tx"
