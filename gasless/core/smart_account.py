"""ERC-4337 SimpleAccount (EntryPoint v0.7) helpers.

Covers the pieces an app-owned embedded wallet needs to hand a signed
UserOperation to Relay: counterfactual address lookup, initCode, execute /
executeBatch calldata, gas packing, the v0.7 userOpHash and ``handleOps``
encoding. Fee fields stay zero because Relay pays origin gas.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Sequence

from eth_abi import encode as abi_encode
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import ContractLogicError, Web3Exception

from gasless.core.utils import Call, bound_contract, encode_call, get_logger, hex_to_bytes, to_hex

LOGGER = get_logger("gasless.smart_account")

ENTRY_POINT = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
SIMPLE_ACCOUNT_FACTORY = "0x91E60e0613810449d098b0b5Ec8b51A0FE8c8985"

ENTRY_POINT_ABI_FILE = "entry_point.json"
SIMPLE_ACCOUNT_ABI_FILE = "simple_account.json"
FACTORY_ABI_FILE = "simple_account_factory.json"

VERIFICATION_GAS_LIMIT = 500_000
CALL_GAS_LIMIT = 500_000
PRE_VERIFICATION_GAS = 100_000

_UINT128_MAX = (1 << 128) - 1


@dataclass(frozen=True)
class PackedUserOperation:
    """v0.7 packed UserOperation."""

    sender: str
    nonce: int
    init_code: bytes
    call_data: bytes
    account_gas_limits: bytes
    pre_verification_gas: int
    gas_fees: bytes
    paymaster_and_data: bytes = b""
    signature: bytes = b""

    def as_tuple(self) -> tuple:
        return (
            Web3.to_checksum_address(self.sender),
            self.nonce,
            self.init_code,
            self.call_data,
            self.account_gas_limits,
            self.pre_verification_gas,
            self.gas_fees,
            self.paymaster_and_data,
            self.signature,
        )


def pack_uint128(high: int, low: int) -> bytes:
    """Pack two uint128 values into one bytes32 as ``(high << 128) | low``."""
    for value in (high, low):
        if value < 0 or value > _UINT128_MAX:
            raise ValueError(f"value {value} does not fit in uint128")
    return ((high << 128) | low).to_bytes(32, "big")


def pack_account_gas_limits(verification_gas_limit: int, call_gas_limit: int) -> bytes:
    return pack_uint128(verification_gas_limit, call_gas_limit)


def pack_gas_fees(max_priority_fee_per_gas: int, max_fee_per_gas: int) -> bytes:
    return pack_uint128(max_priority_fee_per_gas, max_fee_per_gas)


def build_init_code(owner: str, salt: int, factory: str = SIMPLE_ACCOUNT_FACTORY) -> bytes:
    """``factory ‖ createAccount(owner, salt)`` for a not-yet-deployed account."""
    create_account = encode_call(FACTORY_ABI_FILE, "createAccount", [Web3.to_checksum_address(owner), salt])
    return hex_to_bytes(Web3.to_checksum_address(factory)) + create_account


def encode_execute(call: Call) -> bytes:
    return encode_call(SIMPLE_ACCOUNT_ABI_FILE, "execute", [Web3.to_checksum_address(call.to), call.value, call.data])


def encode_execute_batch(calls: Sequence[Call]) -> bytes:
    return encode_call(
        SIMPLE_ACCOUNT_ABI_FILE,
        "executeBatch",
        [
            [Web3.to_checksum_address(call.to) for call in calls],
            [call.value for call in calls],
            [call.data for call in calls],
        ],
    )


def encode_account_call(calls: Sequence[Call]) -> bytes:
    """``execute`` for a single call, ``executeBatch`` otherwise."""
    if not calls:
        raise ValueError("At least one call is required")
    if len(calls) == 1:
        return encode_execute(calls[0])
    return encode_execute_batch(calls)


def get_user_op_hash(user_op: PackedUserOperation, chain_id: int, entry_point: str = ENTRY_POINT) -> bytes:
    inner = Web3.keccak(
        abi_encode(
            ["address", "uint256", "bytes32", "bytes32", "bytes32", "uint256", "bytes32", "bytes32"],
            [
                Web3.to_checksum_address(user_op.sender),
                user_op.nonce,
                Web3.keccak(user_op.init_code),
                Web3.keccak(user_op.call_data),
                user_op.account_gas_limits,
                user_op.pre_verification_gas,
                user_op.gas_fees,
                Web3.keccak(user_op.paymaster_and_data),
            ],
        )
    )
    return bytes(
        Web3.keccak(
            abi_encode(
                ["bytes32", "address", "uint256"],
                [inner, Web3.to_checksum_address(entry_point), chain_id],
            )
        )
    )


def sign_user_op(
    account: LocalAccount,
    user_op: PackedUserOperation,
    chain_id: int,
    entry_point: str = ENTRY_POINT,
) -> PackedUserOperation:
    """Return ``user_op`` with the owner's signature attached.

    SimpleAccount validates with ``toEthSignedMessageHash``, so the hash is
    signed as an EIP-191 personal message over its raw 32 bytes.
    """
    op_hash = get_user_op_hash(user_op, chain_id, entry_point)
    signed = account.sign_message(encode_defunct(primitive=op_hash))
    LOGGER.info("UserOp hash: %s", to_hex(op_hash))
    return replace(user_op, signature=bytes(signed.signature))


def encode_handle_ops(user_op: PackedUserOperation, beneficiary: str) -> bytes:
    return encode_call(ENTRY_POINT_ABI_FILE, "handleOps", [[user_op.as_tuple()], Web3.to_checksum_address(beneficiary)])


def get_account_address(web3: Web3, owner: str, salt: int = 0, factory: str = SIMPLE_ACCOUNT_FACTORY) -> str:
    """Counterfactual SimpleAccount address from the factory."""
    contract = bound_contract(web3, FACTORY_ABI_FILE, factory)
    return Web3.to_checksum_address(contract.functions.getAddress(Web3.to_checksum_address(owner), salt).call())


def is_deployed(web3: Web3, address: str) -> bool:
    code = web3.eth.get_code(Web3.to_checksum_address(address))
    return bool(code) and len(code) > 0


def get_entry_point_nonce(web3: Web3, sender: str, key: int = 0, entry_point: str = ENTRY_POINT) -> int:
    contract = bound_contract(web3, ENTRY_POINT_ABI_FILE, entry_point)
    try:
        return int(contract.functions.getNonce(Web3.to_checksum_address(sender), key).call())
    except (ContractLogicError, Web3Exception, ValueError) as exc:
        LOGGER.info("getNonce failed, using 0 (account may not be deployed yet): %s", exc)
        return 0


__all__ = [
    "CALL_GAS_LIMIT",
    "ENTRY_POINT",
    "PRE_VERIFICATION_GAS",
    "PackedUserOperation",
    "SIMPLE_ACCOUNT_FACTORY",
    "VERIFICATION_GAS_LIMIT",
    "build_init_code",
    "encode_account_call",
    "encode_execute",
    "encode_execute_batch",
    "encode_handle_ops",
    "get_account_address",
    "get_entry_point_nonce",
    "get_user_op_hash",
    "is_deployed",
    "pack_account_gas_limits",
    "pack_gas_fees",
    "pack_uint128",
    "sign_user_op",
]
