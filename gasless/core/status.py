"""Fill status polling and rendering."""

from __future__ import annotations

import time
from typing import Any, Callable, Collection, Dict, List, Mapping, Optional

from gasless.config import DEFAULT_EXPLORER
from gasless.core.utils import get_logger, short_hash

LOGGER = get_logger("gasless.status")

SUCCESS = "success"
FAILURE = "failure"
REFUND = "refund"
REFUNDED = "refunded"

# The status API has reported both spellings of the refund state.
TERMINAL_STATES = frozenset({SUCCESS, FAILURE, REFUND, REFUNDED})

DEFAULT_MAX_ATTEMPTS = 60
DEFAULT_INTERVAL = 5.0

StatusCallback = Callable[[Dict[str, Any]], None]


class PollingTimeoutError(TimeoutError):
    """Raised when no terminal status was observed within the attempt budget."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Polling timed out after {attempts} attempts")


class RelayFillError(RuntimeError):
    """Raised when a request settles in a terminal state other than success."""

    def __init__(self, status: Mapping[str, Any]) -> None:
        self.status = dict(status)
        message = f"Fill {status.get('status')}"
        if status.get("details"):
            message = f"{message}: {status['details']}"
        super().__init__(message)


def is_success(status: Mapping[str, Any]) -> bool:
    return status.get("status") == SUCCESS


def is_failure(status: Mapping[str, Any]) -> bool:
    return status.get("status") in TERMINAL_STATES and not is_success(status)


def poll_status(
    client: Any,
    request_id: str,
    on_update: Optional[StatusCallback] = None,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    interval: float = DEFAULT_INTERVAL,
    terminal_states: Collection[str] = TERMINAL_STATES,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:
    """Query ``client.get_status`` until the request reaches a terminal state.

    ``on_update`` receives every fetched status, the terminal one included.
    The loop waits a fixed ``interval`` between attempts and raises
    :class:`PollingTimeoutError` once ``max_attempts`` fetches came back
    non-terminal, so a non-positive ``max_attempts`` times out without
    fetching.
    """
    LOGGER.info("Polling request %s", request_id)
    for attempt in range(1, max_attempts + 1):
        status = client.get_status(request_id)
        LOGGER.info("  [%s] %s", attempt, status.get("status"))
        if on_update is not None:
            on_update(status)
        if status.get("status") in terminal_states:
            return status
        if attempt < max_attempts:
            sleep(interval)

    raise PollingTimeoutError(max_attempts)


def wait_for_success(
    client: Any,
    request_id: str,
    on_update: Optional[StatusCallback] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    """Like :func:`poll_status` but raise :class:`RelayFillError` unless the fill succeeded."""
    status = poll_status(client, request_id, on_update, **kwargs)
    if not is_success(status):
        raise RelayFillError(status)
    hashes = status.get("txHashes") or status.get("outTxHashes") or []
    LOGGER.info("  Tx: %s", hashes[0] if hashes else "N/A")
    return status


def _explorer_link(explorers: Mapping[int, str], chain_id: Optional[int], tx_hash: str) -> str:
    base = explorers.get(chain_id, DEFAULT_EXPLORER) if chain_id is not None else DEFAULT_EXPLORER
    return f"{base}/tx/{tx_hash}"


def describe_status(status: Mapping[str, Any], explorers: Optional[Mapping[int, str]] = None) -> List[str]:
    """Render a final status as human-readable lines."""
    explorers = explorers or {}
    lines = [f"Status: {str(status.get('status', 'unknown')).upper()}"]
    if status.get("requestId"):
        lines.append(f"Request ID: {status['requestId']}")
    if status.get("details"):
        lines.append(f"Details: {status['details']}")
    for tx_hash in status.get("inTxHashes") or []:
        link = _explorer_link(explorers, status.get("originChainId"), tx_hash)
        lines.append(f"Origin TX: {short_hash(tx_hash)} {link}")
    for tx_hash in status.get("outTxHashes") or status.get("txHashes") or []:
        link = _explorer_link(explorers, status.get("destinationChainId"), tx_hash)
        lines.append(f"Dest TX: {short_hash(tx_hash)} {link}")
    return lines


__all__ = [
    "DEFAULT_INTERVAL",
    "DEFAULT_MAX_ATTEMPTS",
    "FAILURE",
    "PollingTimeoutError",
    "REFUND",
    "REFUNDED",
    "RelayFillError",
    "SUCCESS",
    "TERMINAL_STATES",
    "describe_status",
    "is_failure",
    "is_success",
    "poll_status",
    "wait_for_success",
]
