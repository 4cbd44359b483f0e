"""EIP-7702 delegation and Calibur signed batch execution helpers.

Calibur is Uniswap's minimal batch executor, deployed at the same address on
every supported chain. Once an EOA delegates to it, anyone may submit
``execute(SignedBatchedCall, wrappedSignature)`` as long as the batch carries
the EOA's EIP-712 signature and ``executor`` is the zero address. That lets
Relay's relayer pay for the transaction while the user only signs.
"""

from __future__ import annotations

from typing import Any, Dict, Sequence, Union

from eth_abi import encode as abi_encode
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import ContractLogicError, Web3Exception

from gasless.core.signing import recover_typed_data_signer, sign_typed_data
from gasless.core.utils import ZERO_ADDRESS, Call, bound_contract, encode_call, get_logger, hex_to_bytes, to_hex

LOGGER = get_logger("gasless.calibur")

CALIBUR_ADDRESS = "0x000000009B1D0aF20D8C6d0A44e162d11F9b8f00"
CALIBUR_ABI_FILE = "calibur.json"

DELEGATION_PREFIX = "0xef0100"

# bytes32(0): the EOA's own root key.
ROOT_KEY_HASH = b"\x00" * 32

CALIBUR_EIP712_TYPES = {
    "SignedBatchedCall": [
        {"name": "batchedCall", "type": "BatchedCall"},
        {"name": "nonce", "type": "uint256"},
        {"name": "keyHash", "type": "bytes32"},
        {"name": "executor", "type": "address"},
        {"name": "deadline", "type": "uint256"},
    ],
    "BatchedCall": [
        {"name": "calls", "type": "Call[]"},
        {"name": "revertOnFailure", "type": "bool"},
    ],
    "Call": [
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "data", "type": "bytes"},
    ],
}
PRIMARY_TYPE = "SignedBatchedCall"


def calibur_salt(implementation: str = CALIBUR_ADDRESS) -> bytes:
    """Domain salt: ``pack(saltPrefix=0, implementation)`` left-padded to 32 bytes."""
    return hex_to_bytes(implementation).rjust(32, b"\x00")


CALIBUR_SALT = calibur_salt()


def is_delegated_to(code: Union[bytes, str, None], delegate: str = CALIBUR_ADDRESS) -> bool:
    """True when ``code`` is an EIP-7702 delegation designator pointing at ``delegate``."""
    if not code:
        return False
    code_hex = to_hex(code).lower()
    if not code_hex.startswith(DELEGATION_PREFIX):
        return False
    return code_hex[len(DELEGATION_PREFIX):] == delegate.lower()[2:]


def check_delegation(web3: Web3, user: str, delegate: str = CALIBUR_ADDRESS) -> bool:
    return is_delegated_to(web3.eth.get_code(Web3.to_checksum_address(user)), delegate)


def build_signed_batched_call(
    calls: Sequence[Call],
    nonce: int,
    *,
    revert_on_failure: bool = True,
    executor: str = ZERO_ADDRESS,
    deadline: int = 0,
    key_hash: bytes = ROOT_KEY_HASH,
) -> Dict[str, Any]:
    if not calls:
        raise ValueError("Calibur batch needs at least one call")
    return {
        "batchedCall": {
            "calls": [
                {"to": Web3.to_checksum_address(call.to), "value": call.value, "data": call.data}
                for call in calls
            ],
            "revertOnFailure": revert_on_failure,
        },
        "nonce": nonce,
        "keyHash": key_hash,
        "executor": Web3.to_checksum_address(executor),
        "deadline": deadline,
    }


def calibur_domain(user: str, chain_id: int, implementation: str = CALIBUR_ADDRESS) -> Dict[str, Any]:
    return {
        "name": "Calibur",
        "version": "1.0.0",
        "chainId": chain_id,
        "verifyingContract": Web3.to_checksum_address(user),
        "salt": calibur_salt(implementation),
    }


def sign_batched_call(
    account: LocalAccount,
    message: Dict[str, Any],
    chain_id: int,
    implementation: str = CALIBUR_ADDRESS,
) -> str:
    """EIP-712 sign the batch; the delegated EOA itself is the verifying contract.

    ``implementation`` must be the contract the EOA delegates to, since its
    address is the domain salt.
    """
    domain = calibur_domain(account.address, chain_id, implementation)
    return sign_typed_data(account, domain, CALIBUR_EIP712_TYPES, PRIMARY_TYPE, message)


def recover_batch_signer(
    user: str,
    message: Dict[str, Any],
    chain_id: int,
    signature: str,
    implementation: str = CALIBUR_ADDRESS,
) -> str:
    domain = calibur_domain(user, chain_id, implementation)
    return recover_typed_data_signer(domain, CALIBUR_EIP712_TYPES, PRIMARY_TYPE, message, signature)


def wrap_signature(signature: Union[str, bytes], hook_data: bytes = b"") -> bytes:
    """``abi.encode(signature, hookData)``; hook data is empty for the root key."""
    return abi_encode(["bytes", "bytes"], [hex_to_bytes(signature), hook_data])


def _as_abi_tuple(message: Dict[str, Any]) -> tuple:
    batched = message["batchedCall"]
    return (
        (
            [(call["to"], call["value"], call["data"]) for call in batched["calls"]],
            batched["revertOnFailure"],
        ),
        message["nonce"],
        message["keyHash"],
        message["executor"],
        message["deadline"],
    )


def encode_calibur_execute(message: Dict[str, Any], wrapped_signature: bytes) -> bytes:
    return encode_call(CALIBUR_ABI_FILE, "execute", [_as_abi_tuple(message), wrapped_signature])


def sign_delegation(account: LocalAccount, chain_id: int, nonce: int, delegate: str = CALIBUR_ADDRESS) -> Any:
    """Sign an EIP-7702 authorization delegating ``account`` to ``delegate``."""
    return account.sign_authorization(
        {
            "chainId": chain_id,
            "address": Web3.to_checksum_address(delegate),
            "nonce": nonce,
        }
    )


def authorization_to_payload(signed: Any) -> Dict[str, Any]:
    """Render a signed authorization the way ``/execute`` expects it."""
    address = signed.address
    if isinstance(address, (bytes, bytearray)):
        address = to_hex(address)
    return {
        "chainId": int(signed.chain_id),
        "address": Web3.to_checksum_address(address),
        "nonce": int(signed.nonce),
        "yParity": int(signed.y_parity or 0),
        "r": "0x%064x" % int(signed.r),
        "s": "0x%064x" % int(signed.s),
    }


def get_calibur_nonce(web3: Web3, user: str, key: int = 0) -> int:
    """Read ``getSeq(key)`` from the delegated EOA; 0 before delegation."""
    contract = bound_contract(web3, CALIBUR_ABI_FILE, user)
    try:
        return int(contract.functions.getSeq(key).call())
    except (ContractLogicError, Web3Exception, ValueError) as exc:
        LOGGER.info("Calibur nonce: 0 (getSeq failed: %s)", str(exc)[:80])
        return 0


__all__ = [
    "CALIBUR_ADDRESS",
    "CALIBUR_EIP712_TYPES",
    "CALIBUR_SALT",
    "ROOT_KEY_HASH",
    "authorization_to_payload",
    "build_signed_batched_call",
    "calibur_domain",
    "calibur_salt",
    "check_delegation",
    "encode_calibur_execute",
    "get_calibur_nonce",
    "is_delegated_to",
    "recover_batch_signer",
    "sign_batched_call",
    "sign_delegation",
    "wrap_signature",
]
