"""Utility helpers shared across gasless core modules."""

from __future__ import annotations

import functools
import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Any, Optional, Sequence, Union

from web3 import Web3
from web3.contract import Contract

from gasless.contracts import cached_abi

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

_RAW_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def get_logger(name: str = "gasless") -> logging.Logger:
    """Return a configured logger that prints to stdout."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger


def ensure_web3_connected(web3: Web3, *, expected_chain_id: Optional[int] = None) -> None:
    """Validate that ``web3`` is connected and optionally matches the expected chain id."""
    if not web3.is_connected():
        raise ConnectionError("Failed to connect to the configured RPC endpoint")
    if expected_chain_id is not None and web3.eth.chain_id != expected_chain_id:
        raise ValueError(f"RPC chain ID mismatch: expected {expected_chain_id}, got {web3.eth.chain_id}")


def hex_to_bytes(data: Union[str, bytes, None]) -> bytes:
    """Convert a hex string (with or without ``0x``) to bytes."""
    if data is None:
        return b""
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    data = data[2:] if data.startswith("0x") else data
    return bytes.fromhex(data)


def to_hex(data: Union[bytes, bytearray, str]) -> str:
    """Return ``data`` as a ``0x``-prefixed lowercase hex string."""
    if isinstance(data, str):
        return data if data.startswith("0x") else f"0x{data}"
    return "0x" + bytes(data).hex()


def is_raw_hash(message: str) -> bool:
    """True when ``message`` is a 32-byte hex digest rather than text."""
    return bool(_RAW_HASH_RE.match(message))


def short_hash(value: str, head: int = 10, tail: int = 8) -> str:
    """Abbreviate a hash for log output, e.g. ``0x12345678...90abcdef``."""
    if len(value) <= head + tail:
        return value
    return f"{value[:head]}...{value[-tail:]}"


def parse_units(amount: Union[str, int, Decimal], decimals: int) -> int:
    """Convert a decimal token amount to its integer base-unit value (rounding down)."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {amount}") from exc
    return int((value * (Decimal(10) ** decimals)).quantize(Decimal("1"), rounding=ROUND_DOWN))


def format_units(value: int, decimals: int) -> str:
    """Inverse of :func:`parse_units` for display."""
    scaled = Decimal(int(value)) / (Decimal(10) ** decimals)
    text = format(scaled.normalize(), "f")
    return text


@functools.lru_cache(maxsize=None)
def abi_contract(abi_file: str) -> Contract:
    """Address-less contract used purely for calldata encoding."""
    return Web3().eth.contract(abi=list(cached_abi(abi_file)))


def encode_call(abi_file: str, fn_name: str, args: Sequence[Any]) -> bytes:
    """ABI-encode ``fn_name(*args)`` using the ABI bundled as ``abi_file``."""
    return hex_to_bytes(abi_contract(abi_file).encode_abi(fn_name, args=list(args)))


def bound_contract(web3: Web3, abi_file: str, address: str) -> Contract:
    return web3.eth.contract(address=Web3.to_checksum_address(address), abi=list(cached_abi(abi_file)))


@dataclass(frozen=True)
class Call:
    """A single contract call lifted out of a Relay quote."""

    to: str
    value: int
    data: bytes

    def as_tuple(self) -> tuple:
        return (self.to, self.value, self.data)


__all__ = [
    "Call",
    "ZERO_ADDRESS",
    "abi_contract",
    "bound_contract",
    "encode_call",
    "ensure_web3_connected",
    "format_units",
    "get_logger",
    "hex_to_bytes",
    "is_raw_hash",
    "parse_units",
    "short_hash",
    "to_hex",
]
