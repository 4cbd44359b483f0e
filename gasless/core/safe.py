"""Safe multisig helpers: MultiSend packing, SafeTx signing and execTransaction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import ContractLogicError, Web3Exception

from gasless.core.signing import recover_typed_data_signer, sign_typed_data
from gasless.core.utils import ZERO_ADDRESS, Call, bound_contract, encode_call, get_logger, hex_to_bytes

LOGGER = get_logger("gasless.safe")

# MultiSendCallOnly v1.3.0 on Base.
MULTI_SEND_CALL_ONLY = "0xA1dabEF33b3B82c7814B6D82A79e50F4AC44102B"

SAFE_ABI_FILE = "safe.json"
MULTI_SEND_ABI_FILE = "multi_send.json"

CALL = 0
DELEGATE_CALL = 1

SAFE_TX_TYPES = {
    "SafeTx": [
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "data", "type": "bytes"},
        {"name": "operation", "type": "uint8"},
        {"name": "safeTxGas", "type": "uint256"},
        {"name": "baseGas", "type": "uint256"},
        {"name": "gasPrice", "type": "uint256"},
        {"name": "gasToken", "type": "address"},
        {"name": "refundReceiver", "type": "address"},
        {"name": "nonce", "type": "uint256"},
    ],
}


class SignatureMismatchError(ValueError):
    """Raised when a signature does not recover to the expected signer."""


class SimulationError(RuntimeError):
    """Raised when a local ``eth_call`` of the Safe transaction reverts."""


class NotSafeOwnerError(ValueError):
    """Raised when the signing account is not an owner of the Safe."""


@dataclass(frozen=True)
class SafeInfo:
    threshold: int
    owners: List[str]
    is_owner: bool


@dataclass(frozen=True)
class SafeTransaction:
    """Fields of the ``SafeTx`` EIP-712 struct (gas refund fields left at zero)."""

    to: str
    value: int
    data: bytes
    operation: int
    nonce: int
    safe_tx_gas: int = 0
    base_gas: int = 0
    gas_price: int = 0
    gas_token: str = ZERO_ADDRESS
    refund_receiver: str = ZERO_ADDRESS

    def to_message(self) -> Dict[str, Any]:
        return {
            "to": Web3.to_checksum_address(self.to),
            "value": self.value,
            "data": self.data,
            "operation": self.operation,
            "safeTxGas": self.safe_tx_gas,
            "baseGas": self.base_gas,
            "gasPrice": self.gas_price,
            "gasToken": Web3.to_checksum_address(self.gas_token),
            "refundReceiver": Web3.to_checksum_address(self.refund_receiver),
            "nonce": self.nonce,
        }


def encode_multisend_data(calls: Sequence[Call], operation: int = CALL) -> bytes:
    """Pack transactions as ``operation ‖ to ‖ value ‖ len(data) ‖ data`` per entry."""
    packed = bytearray()
    for call in calls:
        packed += operation.to_bytes(1, "big")
        packed += hex_to_bytes(Web3.to_checksum_address(call.to))
        packed += int(call.value).to_bytes(32, "big")
        packed += len(call.data).to_bytes(32, "big")
        packed += call.data
    return bytes(packed)


def build_safe_transaction(calls: Sequence[Call], nonce: int, multi_send: str = MULTI_SEND_CALL_ONLY) -> SafeTransaction:
    """Execute a single call directly; batch several through ``multiSend`` via DELEGATECALL."""
    if not calls:
        raise ValueError("No calls found in quote response")
    if len(calls) == 1:
        call = calls[0]
        return SafeTransaction(to=call.to, value=call.value, data=call.data, operation=CALL, nonce=nonce)
    data = encode_call(MULTI_SEND_ABI_FILE, "multiSend", [encode_multisend_data(calls)])
    return SafeTransaction(to=multi_send, value=0, data=data, operation=DELEGATE_CALL, nonce=nonce)


def safe_domain(chain_id: int, safe_address: str) -> Dict[str, Any]:
    # Safe's domain separator has no name or version.
    return {"chainId": chain_id, "verifyingContract": Web3.to_checksum_address(safe_address)}


def sign_safe_transaction(account: LocalAccount, safe_address: str, chain_id: int, tx: SafeTransaction) -> str:
    return sign_typed_data(account, safe_domain(chain_id, safe_address), SAFE_TX_TYPES, "SafeTx", tx.to_message())


def recover_safe_signer(safe_address: str, chain_id: int, tx: SafeTransaction, signature: str) -> str:
    return recover_typed_data_signer(safe_domain(chain_id, safe_address), SAFE_TX_TYPES, "SafeTx", tx.to_message(), signature)


def verify_safe_signature(safe_address: str, chain_id: int, tx: SafeTransaction, signature: str, expected: str) -> str:
    recovered = recover_safe_signer(safe_address, chain_id, tx, signature)
    if recovered.lower() != expected.lower():
        raise SignatureMismatchError(f"Signature mismatch! Expected {expected}, got {recovered}")
    return recovered


def encode_exec_transaction(tx: SafeTransaction, signature: str) -> bytes:
    return encode_call(
        SAFE_ABI_FILE,
        "execTransaction",
        [
            Web3.to_checksum_address(tx.to),
            tx.value,
            tx.data,
            tx.operation,
            tx.safe_tx_gas,
            tx.base_gas,
            tx.gas_price,
            Web3.to_checksum_address(tx.gas_token),
            Web3.to_checksum_address(tx.refund_receiver),
            hex_to_bytes(signature),
        ],
    )


def read_safe_info(web3: Web3, safe_address: str, owner: str) -> SafeInfo:
    contract = bound_contract(web3, SAFE_ABI_FILE, safe_address)
    threshold = int(contract.functions.getThreshold().call())
    owners = [Web3.to_checksum_address(address) for address in contract.functions.getOwners().call()]
    is_owner = any(address.lower() == owner.lower() for address in owners)
    return SafeInfo(threshold=threshold, owners=owners, is_owner=is_owner)


def get_safe_nonce(web3: Web3, safe_address: str) -> int:
    return int(bound_contract(web3, SAFE_ABI_FILE, safe_address).functions.nonce().call())


def simulate_exec_transaction(web3: Web3, safe_address: str, calldata: bytes) -> None:
    """``eth_call`` the Safe transaction; raise :class:`SimulationError` on revert."""
    try:
        web3.eth.call({"to": Web3.to_checksum_address(safe_address), "data": calldata})
    except (ContractLogicError, Web3Exception, ValueError) as exc:
        raise SimulationError(f"execTransaction simulation failed: {exc}") from exc


__all__ = [
    "CALL",
    "DELEGATE_CALL",
    "MULTI_SEND_CALL_ONLY",
    "NotSafeOwnerError",
    "SAFE_TX_TYPES",
    "SafeInfo",
    "SafeTransaction",
    "SignatureMismatchError",
    "SimulationError",
    "build_safe_transaction",
    "encode_exec_transaction",
    "encode_multisend_data",
    "get_safe_nonce",
    "read_safe_info",
    "recover_safe_signer",
    "safe_domain",
    "sign_safe_transaction",
    "simulate_exec_transaction",
    "verify_safe_signature",
]
