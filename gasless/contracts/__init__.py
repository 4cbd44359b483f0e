"""Contract ABIs used by the gasless flows."""

from importlib import resources
from typing import Any, Dict, List
import functools
import json


def load_contract_abi(filename: str) -> List[Dict[str, Any]]:
    """Load an ABI JSON file from the contracts package."""
    with resources.files(__package__).joinpath(filename).open("r", encoding="utf-8") as fh:
        return json.load(fh)


@functools.lru_cache(maxsize=None)
def cached_abi(filename: str) -> tuple:
    """Return the ABI for ``filename``, loading it once per process."""
    return tuple(load_contract_abi(filename))


__all__ = ["cached_abi", "load_contract_abi"]
