"""Tests for EIP-7702 delegation detection and Calibur batch signing."""

from types import SimpleNamespace

import pytest
from eth_abi import decode as abi_decode
from unittest.mock import MagicMock
from web3 import Web3
from web3.exceptions import ContractLogicError

from gasless.core.calibur import (
    CALIBUR_ADDRESS,
    CALIBUR_SALT,
    ROOT_KEY_HASH,
    authorization_to_payload,
    build_signed_batched_call,
    calibur_domain,
    check_delegation,
    encode_calibur_execute,
    get_calibur_nonce,
    is_delegated_to,
    recover_batch_signer,
    sign_batched_call,
    sign_delegation,
    wrap_signature,
)
from gasless.core.utils import ZERO_ADDRESS, Call

TARGET = Web3.to_checksum_address("0x" + "ab" * 20)
CALLS = [Call(TARGET, 0, b"\x09\x5e\xa7\xb3"), Call(TARGET, 1, b"")]


def test_salt_is_padded_implementation_address():
    assert len(CALIBUR_SALT) == 32
    assert CALIBUR_SALT[:12] == b"\x00" * 12
    assert CALIBUR_SALT[12:] == bytes.fromhex(CALIBUR_ADDRESS[2:])


@pytest.mark.parametrize(
    "code, expected",
    [
        ("0xef0100" + CALIBUR_ADDRESS[2:].lower(), True),
        ("0xEF0100" + CALIBUR_ADDRESS[2:].upper(), True),
        (bytes.fromhex("ef0100" + CALIBUR_ADDRESS[2:]), True),
        ("0xef0100" + "11" * 20, False),
        ("0x6080604052", False),
        ("0x", False),
        (b"", False),
        (None, False),
    ],
)
def test_is_delegated_to(code, expected):
    assert is_delegated_to(code) is expected


def test_check_delegation_reads_code(account):
    web3 = MagicMock()
    web3.eth.get_code.return_value = bytes.fromhex("ef0100" + CALIBUR_ADDRESS[2:])
    assert check_delegation(web3, account.address) is True
    web3.eth.get_code.assert_called_once_with(account.address)


def test_signed_batched_call_defaults():
    message = build_signed_batched_call(CALLS, 3)

    assert message["nonce"] == 3
    assert message["keyHash"] == ROOT_KEY_HASH
    assert message["executor"] == ZERO_ADDRESS
    assert message["deadline"] == 0
    assert message["batchedCall"]["revertOnFailure"] is True
    assert [call["value"] for call in message["batchedCall"]["calls"]] == [0, 1]


def test_signed_batched_call_requires_calls():
    with pytest.raises(ValueError):
        build_signed_batched_call([], 0)


def test_domain_uses_eoa_as_verifying_contract(account):
    domain = calibur_domain(account.address, 8453)
    assert domain == {
        "name": "Calibur",
        "version": "1.0.0",
        "chainId": 8453,
        "verifyingContract": account.address,
        "salt": CALIBUR_SALT,
    }


def test_batch_signature_recovers_eoa(account, other_account):
    message = build_signed_batched_call(CALLS, 0)
    signature = sign_batched_call(account, message, 8453)

    assert recover_batch_signer(account.address, message, 8453, signature) == account.address
    # Same signature checked against a different EOA's domain recovers someone else.
    assert recover_batch_signer(other_account.address, message, 8453, signature) != account.address


def test_wrap_signature_is_abi_encoded_pair():
    signature = "0x" + "aa" * 65
    wrapped = wrap_signature(signature)

    decoded_sig, hook_data = abi_decode(["bytes", "bytes"], wrapped)
    assert decoded_sig == b"\xaa" * 65
    assert hook_data == b""


def test_encode_execute_selector(account):
    message = build_signed_batched_call(CALLS, 0)
    data = encode_calibur_execute(message, wrap_signature(sign_batched_call(account, message, 8453)))

    selector = Web3.keccak(text="execute((((address,uint256,bytes)[],bool),uint256,bytes32,address,uint256),bytes)")[:4]
    assert data[:4] == bytes(selector)


def test_authorization_payload_formatting():
    signed = SimpleNamespace(chain_id=8453, address=bytes.fromhex(CALIBUR_ADDRESS[2:]), nonce=4, y_parity=1, r=0x1234, s=0xABCD)
    payload = authorization_to_payload(signed)

    assert payload == {
        "chainId": 8453,
        "address": Web3.to_checksum_address(CALIBUR_ADDRESS),
        "nonce": 4,
        "yParity": 1,
        "r": "0x" + "0" * 60 + "1234",
        "s": "0x" + "0" * 60 + "abcd",
    }


def test_sign_delegation_targets_calibur(account):
    payload = authorization_to_payload(sign_delegation(account, 8453, 9))

    assert payload["chainId"] == 8453
    assert payload["address"] == Web3.to_checksum_address(CALIBUR_ADDRESS)
    assert payload["nonce"] == 9
    assert payload["yParity"] in (0, 1)
    assert len(payload["r"]) == 66 and len(payload["s"]) == 66


def test_calibur_nonce_defaults_to_zero_before_delegation(account):
    web3 = MagicMock()
    web3.eth.contract.return_value.functions.getSeq.return_value.call.side_effect = ContractLogicError("no code")
    assert get_calibur_nonce(web3, account.address) == 0

    web3.eth.contract.return_value.functions.getSeq.return_value.call.side_effect = None
    web3.eth.contract.return_value.functions.getSeq.return_value.call.return_value = 2
    assert get_calibur_nonce(web3, account.address) == 2
