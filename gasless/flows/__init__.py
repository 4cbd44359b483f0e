"""Example gasless bridge flows."""

from .base import BridgeParams, FlowResult, GaslessFlow, InsufficientFundsError
from .eip7702 import Eip7702Flow
from .erc4337 import Erc4337Flow
from .permit import PermitFlow
from .safe import SafeFlow

__all__ = [
    "BridgeParams",
    "Eip7702Flow",
    "Erc4337Flow",
    "FlowResult",
    "GaslessFlow",
    "InsufficientFundsError",
    "PermitFlow",
    "SafeFlow",
]
