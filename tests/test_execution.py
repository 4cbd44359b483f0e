"""
Tests for execution progress tracking and the quote step executor.

The Relay client and web3 are mocks; signing uses a deterministic local key.
"""

from unittest.mock import MagicMock, Mock

from gasless.core.execution import (
    ACTIVE,
    COMPLETE,
    ERROR,
    EXECUTING,
    IDLE,
    PENDING,
    ExecutionTracker,
    QuoteExecutor,
    send_transaction,
)

TOKEN = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"


def _permit_quote():
    return {
        "steps": [
            {
                "id": "authorize",
                "action": "Sign authorization",
                "description": "Authorize the transfer",
                "kind": "signature",
                "requestId": "0xstep",
                "items": [
                    {
                        "status": "incomplete",
                        "data": {
                            "sign": {"signatureKind": "eip191", "message": "0x" + "ab" * 32},
                            "post": {"endpoint": "/execute/permits", "method": "POST", "body": {"requestId": "0xpermit"}},
                        },
                    }
                ],
            }
        ]
    }


def _transaction_quote():
    return {
        "steps": [
            {
                "id": "deposit",
                "action": "Confirm transaction",
                "kind": "transaction",
                "requestId": "0xtx",
                "items": [
                    {
                        "status": "incomplete",
                        "data": {"to": TOKEN, "data": "0x095ea7b3", "value": "0", "chainId": 8453, "gas": "60000"},
                    }
                ],
            }
        ]
    }


def _executor(account, client, web3=None, tracker=None, attempts=3):
    return QuoteExecutor(
        client,
        account,
        lambda chain_id: web3,
        tracker=tracker,
        poll_attempts=attempts,
        poll_interval=0,
        sleep=Mock(),
    )


def test_tracker_builds_steps_with_trailing_fill():
    tracker = ExecutionTracker()
    state = tracker.start(_permit_quote())

    assert state.status == EXECUTING
    assert [step.id for step in state.steps] == ["authorize", "fill"]
    assert state.steps[0].label == "Sign authorization"
    assert state.steps[1].label == "Waiting for Fill"
    assert all(step.status == PENDING for step in state.steps)


def test_tracker_fail_marks_active_step_and_notifies():
    listener = Mock()
    tracker = ExecutionTracker(listener)
    tracker.start(_permit_quote())
    tracker.mark(0, ACTIVE)

    tracker.fail("user rejected")

    assert tracker.state.status == ERROR
    assert tracker.state.error == "user rejected"
    assert tracker.state.steps[0].status == ERROR
    assert tracker.state.steps[1].status == PENDING
    assert listener.call_count == 3


def test_tracker_reset():
    tracker = ExecutionTracker()
    tracker.start(_permit_quote())
    tracker.reset()
    assert tracker.state.status == IDLE
    assert tracker.state.steps == []


def test_signature_step_is_posted_and_polled(account):
    client = Mock()
    client.get_status.side_effect = [{"status": "pending"}, {"status": "success", "requestId": "0xpermit"}]
    updates = []
    tracker = ExecutionTracker(lambda state: updates.append(state.fill_status))

    state = _executor(account, client, tracker=tracker).execute(_permit_quote())

    assert state.status == COMPLETE
    assert [step.status for step in state.steps] == [COMPLETE, COMPLETE]
    assert state.fill_status == {"status": "success", "requestId": "0xpermit"}
    endpoint, signature, body = client.post_signature.call_args.args
    assert endpoint == "/execute/permits"
    assert signature.startswith("0x") and len(signature) == 132
    assert body == {"requestId": "0xpermit"}
    client.get_status.assert_called_with("0xpermit")
    assert {"status": "pending"} in updates


def test_completed_items_are_skipped(account):
    quote = _permit_quote()
    quote["steps"][0]["items"][0]["status"] = "complete"
    client = Mock()

    state = _executor(account, client).execute(quote)

    client.post_signature.assert_not_called()
    client.get_status.assert_not_called()
    assert state.status == COMPLETE


def test_fill_failure_is_recorded(account):
    client = Mock()
    client.get_status.return_value = {"status": "refund", "details": "slippage"}

    state = _executor(account, client).execute(_permit_quote())

    assert state.status == ERROR
    assert state.error == "Fill refund: slippage"
    assert state.steps[-1].status == ERROR


def test_signing_error_is_recorded_on_active_step(account):
    quote = _permit_quote()
    quote["steps"][0]["items"][0]["data"]["sign"]["signatureKind"] = "unknown"

    state = _executor(account, Mock()).execute(quote)

    assert state.status == ERROR
    assert "Unsupported signature kind" in state.error
    assert state.steps[0].status == ERROR


def test_unsupported_step_kind_is_skipped(account):
    quote = _permit_quote()
    quote["steps"].insert(0, {"id": "unknown", "kind": "bridge-intent", "items": [{"status": "incomplete", "data": {}}]})
    client = Mock()
    client.get_status.return_value = {"status": "success"}

    state = _executor(account, client).execute(quote)

    assert state.status == COMPLETE
    assert [step.status for step in state.steps] == [COMPLETE, COMPLETE, COMPLETE]
    client.post_signature.assert_called_once()


def test_polling_timeout_is_recorded(account):
    client = Mock()
    client.get_status.return_value = {"status": "pending"}

    state = _executor(account, client, attempts=2).execute(_permit_quote())

    assert state.status == ERROR
    assert state.error == "Polling timed out after 2 attempts"


def _web3(status=1):
    web3 = MagicMock()
    web3.eth.get_transaction_count.return_value = 0
    web3.eth.gas_price = 1_000_000_000
    web3.eth.max_priority_fee = 1_000_000
    web3.eth.send_raw_transaction.return_value = b"\x12" * 32
    web3.eth.wait_for_transaction_receipt.return_value = {"status": status, "blockNumber": 10}
    return web3


def test_transaction_step_is_broadcast(account):
    client = Mock()
    client.get_status.return_value = {"status": "success"}
    web3 = _web3()

    state = _executor(account, client, web3=web3).execute(_transaction_quote())

    assert state.status == COMPLETE
    web3.eth.send_raw_transaction.assert_called_once()
    web3.eth.estimate_gas.assert_not_called()
    client.get_status.assert_called_with("0xtx")


def test_reverted_transaction_fails_execution(account):
    state = _executor(account, Mock(), web3=_web3(status=0)).execute(_transaction_quote())

    assert state.status == ERROR
    assert "failed with status 0" in state.error
    assert state.steps[0].status == ERROR


def test_send_transaction_estimates_gas_and_fees(account):
    web3 = _web3()
    web3.eth.estimate_gas.return_value = 21_000

    tx_hash = send_transaction(web3, account, to=TOKEN, data=b"", value=1, chain_id=8453)

    assert tx_hash == "0x" + "12" * 32
    estimate_args = web3.eth.estimate_gas.call_args.args[0]
    assert estimate_args["from"] == account.address
    assert estimate_args["maxFeePerGas"] == 1_001_000_000
    assert estimate_args["maxPriorityFeePerGas"] == 1_000_000
