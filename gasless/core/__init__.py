"""Core request building, signing and polling logic for the gasless flows."""

from .execution import ExecutionState, ExecutionTracker, QuoteExecutor
from .quotes import ExecuteRequest, QuoteRequest, extract_calls, extract_request_id
from .relay import RelayApiError, RelayClient
from .status import PollingTimeoutError, RelayFillError, poll_status, wait_for_success

__all__ = [
    "ExecuteRequest",
    "ExecutionState",
    "ExecutionTracker",
    "PollingTimeoutError",
    "QuoteExecutor",
    "QuoteRequest",
    "RelayApiError",
    "RelayClient",
    "RelayFillError",
    "extract_calls",
    "extract_request_id",
    "poll_status",
    "wait_for_success",
]
