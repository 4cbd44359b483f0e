"""Token balance and transfer helpers."""

from __future__ import annotations

from typing import Dict, Tuple

from web3 import Web3
from web3.contract import Contract

from gasless.config import NATIVE_CURRENCY
from gasless.contracts import cached_abi
from gasless.core.utils import encode_call

ERC20_ABI_FILE = "erc20.json"


def get_contract(web3: Web3, token_address: str) -> Contract:
    """Return a cached ERC20 contract instance for ``token_address``."""
    return _get_or_create_contract(web3, token_address)


_CONTRACT_CACHE: Dict[Tuple[int, str], Contract] = {}


def _get_or_create_contract(web3: Web3, token_address: str) -> Contract:
    checksum_address = Web3.to_checksum_address(token_address)
    key = (id(web3), checksum_address)
    contract = _CONTRACT_CACHE.get(key)
    if contract is None:
        contract = web3.eth.contract(address=checksum_address, abi=list(cached_abi(ERC20_ABI_FILE)))
        _CONTRACT_CACHE[key] = contract
    return contract


def balance_of(web3: Web3, token_address: str, owner: str) -> int:
    """Fetch the ERC20 balance, or the native balance for the zero address."""
    owner = Web3.to_checksum_address(owner)
    if token_address.lower() == NATIVE_CURRENCY:
        return web3.eth.get_balance(owner)
    contract = get_contract(web3, token_address)
    return contract.functions.balanceOf(owner).call()


def encode_transfer(to: str, amount: int) -> bytes:
    """Calldata for ``transfer(to, amount)``."""
    return encode_call(ERC20_ABI_FILE, "transfer", [Web3.to_checksum_address(to), int(amount)])


__all__ = ["ERC20_ABI_FILE", "balance_of", "encode_transfer", "get_contract"]
