"""EIP-191 / EIP-712 signing helpers for wallet-side signatures."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from eth_account import Account
from eth_account.messages import SignableMessage, encode_defunct, encode_typed_data
from eth_account.signers.local import LocalAccount

from gasless.core.utils import get_logger, hex_to_bytes, is_raw_hash, to_hex

LOGGER = get_logger("gasless.signing")

# Canonical member order of EIP712Domain.
DOMAIN_FIELDS = (
    ("name", "string"),
    ("version", "string"),
    ("chainId", "uint256"),
    ("verifyingContract", "address"),
    ("salt", "bytes32"),
)


def _domain_type(domain: Mapping[str, Any]) -> List[Dict[str, str]]:
    return [{"name": name, "type": type_} for name, type_ in DOMAIN_FIELDS if name in domain]


def _coerce_value(type_: str, value: Any, types: Mapping[str, Sequence[Mapping[str, str]]]) -> Any:
    if type_.endswith("]"):
        inner = type_[: type_.rindex("[")]
        return [_coerce_value(inner, entry, types) for entry in value]
    if type_ in types:
        return _coerce_struct(type_, value, types)
    if (type_.startswith("uint") or type_.startswith("int")) and isinstance(value, str):
        return int(value, 0)
    return value


def _coerce_struct(type_name: str, value: Mapping[str, Any], types: Mapping[str, Sequence[Mapping[str, str]]]) -> Dict[str, Any]:
    result = dict(value)
    for member in types[type_name]:
        if member["name"] in result:
            result[member["name"]] = _coerce_value(member["type"], result[member["name"]], types)
    return result


def build_typed_data(
    domain: Mapping[str, Any],
    types: Mapping[str, Sequence[Mapping[str, str]]],
    primary_type: str,
    message: Mapping[str, Any],
) -> Dict[str, Any]:
    """Assemble a full EIP-712 document.

    Any caller-supplied ``EIP712Domain`` entry is replaced by one derived from
    the keys actually present in ``domain``. Numeric strings in integer fields
    are converted to ``int``.
    """
    struct_types = {name: [dict(member) for member in members] for name, members in types.items() if name != "EIP712Domain"}
    if primary_type not in struct_types:
        raise ValueError(f"primaryType {primary_type} not present in types")
    domain_values = dict(domain)
    if isinstance(domain_values.get("chainId"), str):
        domain_values["chainId"] = int(domain_values["chainId"], 0)
    return {
        "types": {"EIP712Domain": _domain_type(domain_values), **struct_types},
        "primaryType": primary_type,
        "domain": domain_values,
        "message": _coerce_struct(primary_type, message, struct_types),
    }


def typed_data_message(
    domain: Mapping[str, Any],
    types: Mapping[str, Sequence[Mapping[str, str]]],
    primary_type: str,
    message: Mapping[str, Any],
) -> SignableMessage:
    return encode_typed_data(full_message=build_typed_data(domain, types, primary_type, message))


def sign_typed_data(
    account: LocalAccount,
    domain: Mapping[str, Any],
    types: Mapping[str, Sequence[Mapping[str, str]]],
    primary_type: str,
    message: Mapping[str, Any],
) -> str:
    """Sign EIP-712 typed data and return the 65-byte signature as hex."""
    signed = account.sign_message(typed_data_message(domain, types, primary_type, message))
    return to_hex(signed.signature)


def recover_typed_data_signer(
    domain: Mapping[str, Any],
    types: Mapping[str, Sequence[Mapping[str, str]]],
    primary_type: str,
    message: Mapping[str, Any],
    signature: str,
) -> str:
    return Account.recover_message(
        typed_data_message(domain, types, primary_type, message),
        signature=hex_to_bytes(signature),
    )


def personal_message(message: str) -> SignableMessage:
    # A 32-byte digest is signed as raw bytes, not as its hex text.
    if is_raw_hash(message):
        return encode_defunct(primitive=hex_to_bytes(message))
    return encode_defunct(text=message)


def sign_personal_message(account: LocalAccount, message: str) -> str:
    """EIP-191 ``personal_sign`` of ``message``."""
    return to_hex(account.sign_message(personal_message(message)).signature)


def sign_step_item(account: LocalAccount, item: Mapping[str, Any]) -> str:
    """Sign the payload carried by a signature step item of a Relay quote."""
    sign_data = (item.get("data") or {}).get("sign")
    if not sign_data:
        raise ValueError("Step item has no sign data")

    kind = sign_data.get("signatureKind")
    if kind == "eip191":
        message = sign_data.get("message")
        if message is None:
            raise ValueError("eip191 sign data is missing the message")
        return sign_personal_message(account, message)
    if kind == "eip712":
        return sign_typed_data(
            account,
            sign_data.get("domain") or {},
            sign_data.get("types") or {},
            sign_data["primaryType"],
            sign_data.get("value") or {},
        )
    raise ValueError(f"Unsupported signature kind: {kind}")


def extract_item_request_id(item: Mapping[str, Any], step_request_id: Optional[str] = None) -> Optional[str]:
    post = (item.get("data") or {}).get("post") or {}
    return (post.get("body") or {}).get("requestId") or step_request_id


__all__ = [
    "build_typed_data",
    "extract_item_request_id",
    "personal_message",
    "recover_typed_data_signer",
    "sign_personal_message",
    "sign_step_item",
    "sign_typed_data",
    "typed_data_message",
]
