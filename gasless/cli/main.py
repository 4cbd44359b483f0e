"""CLI entrypoint for running the gasless bridge flows."""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Type

from dotenv import load_dotenv
from eth_account import Account
from web3 import Web3

from gasless.config import GaslessConfig, load_config
from gasless.core.execution import ERROR
from gasless.core.relay import RelayClient
from gasless.core.status import RelayFillError, is_success
from gasless.core.utils import ensure_web3_connected, get_logger
from gasless.flows import BridgeParams, Eip7702Flow, Erc4337Flow, FlowResult, GaslessFlow, PermitFlow, SafeFlow

LOGGER = get_logger("gasless.cli")

load_dotenv()


@dataclass(frozen=True)
class FlowDefaults:
    """Default route and signer variable for one subcommand."""

    flow_class: Type[GaslessFlow]
    help: str
    key_env: str
    origin_chain: int
    destination_chain: int
    origin_currency: str
    destination_currency: str
    amount: str


FLOWS: Dict[str, FlowDefaults] = {
    "4337": FlowDefaults(
        flow_class=Erc4337Flow,
        help="ERC-4337 SimpleAccount owned by the app (1 USDC Base -> Arbitrum)",
        key_env="OWNER_PRIVATE_KEY",
        origin_chain=8453,
        destination_chain=42161,
        origin_currency="USDC",
        destination_currency="USDC",
        amount="1",
    ),
    "7702": FlowDefaults(
        flow_class=Eip7702Flow,
        help="EIP-7702 delegation to Calibur (100000 PENGU Base -> USDC Optimism)",
        key_env="USER_PRIVATE_KEY",
        origin_chain=8453,
        destination_chain=10,
        origin_currency="PENGU",
        destination_currency="USDC",
        amount="100000",
    ),
    "safe": FlowDefaults(
        flow_class=SafeFlow,
        help="Origin-subsidised Safe execTransaction (0.001 ETH Base -> Arbitrum)",
        key_env="PRIVATE_KEY",
        origin_chain=8453,
        destination_chain=42161,
        origin_currency="ETH",
        destination_currency="ETH",
        amount="0.001",
    ),
    "permit": FlowDefaults(
        flow_class=PermitFlow,
        help="Bring-your-own EOA with permit signatures (1 USDC Base -> Arbitrum)",
        key_env="USER_PRIVATE_KEY",
        origin_chain=8453,
        destination_chain=42161,
        origin_currency="USDC",
        destination_currency="USDC",
        amount="1",
    ),
}


def resolve_private_key(flow: str, env: Optional[Mapping[str, str]] = None) -> str:
    """Return the flow's signer key, falling back to ``PRIVATE_KEY``."""
    env = os.environ if env is None else env
    return (env.get(FLOWS[flow].key_env) or env.get("PRIVATE_KEY") or "").strip()


class FlowRunner:
    """Wire config, Relay client, RPC and signer together for one flow."""

    def __init__(
        self,
        *,
        flow: str,
        private_key: str,
        config: Optional[GaslessConfig] = None,
        origin_chain: Optional[int] = None,
        web3_factory: Callable[[str], Web3] = lambda url: Web3(Web3.HTTPProvider(url)),
    ) -> None:
        self.flow = flow
        self.defaults = FLOWS[flow]
        self.config = config or load_config()

        chain = self.config.chain(origin_chain or self.defaults.origin_chain)
        self.web3 = web3_factory(chain.ensure_rpc_url())
        ensure_web3_connected(self.web3, expected_chain_id=chain.chain_id)

        self.account = Account.from_key(private_key)
        self.client = RelayClient(self.config.relay)
        LOGGER.info("Connected to %s (%s) as %s", chain.name, chain.chain_id, self.account.address)

    def build(self, *, dry_run: bool, safe_address: Optional[str] = None) -> GaslessFlow:
        kwargs = dict(config=self.config, client=self.client, account=self.account, web3=self.web3, dry_run=dry_run)
        if self.flow == "safe":
            if not safe_address:
                raise ValueError("--safe (or SAFE_ADDRESS) is required for the safe flow")
            kwargs["safe_address"] = safe_address
        return self.defaults.flow_class(**kwargs)

    def run(self, params: BridgeParams, *, dry_run: bool, safe_address: Optional[str] = None) -> FlowResult:
        result = self.build(dry_run=dry_run, safe_address=safe_address).run(params)
        if result.execution is not None and result.execution.status == ERROR:
            raise RuntimeError(result.execution.error or "Execution failed")
        if result.final_status is not None and not is_success(result.final_status):
            raise RelayFillError(result.final_status)
        return result


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bridge tokens cross-chain without paying gas, via Relay")
    subparsers = parser.add_subparsers(dest="flow", required=True)
    for name, defaults in FLOWS.items():
        sub = subparsers.add_parser(name, help=defaults.help)
        group = sub.add_mutually_exclusive_group(required=True)
        group.add_argument("--dry-run", action="store_true", help="Build and sign everything but skip /execute")
        group.add_argument("--send", action="store_true", help="Submit to Relay and wait for the fill")
        sub.add_argument("--origin-chain", type=int, default=defaults.origin_chain)
        sub.add_argument("--destination-chain", type=int, default=defaults.destination_chain)
        sub.add_argument("--origin-currency", default=defaults.origin_currency, help="Symbol or token address")
        sub.add_argument("--destination-currency", default=defaults.destination_currency, help="Symbol or token address")
        sub.add_argument("--amount", default=defaults.amount, help="Amount in whole tokens")
        sub.add_argument("--decimals", type=int, default=None, help="Decimals for a token missing from the catalog")
        sub.add_argument("--recipient", default=None)
        sub.add_argument("--config", type=Path, default=None, help="Path to a JSON config file")
        if name == "safe":
            sub.add_argument("--safe", default=os.getenv("SAFE_ADDRESS"), help="Safe address (defaults to SAFE_ADDRESS)")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)

    private_key = resolve_private_key(args.flow)
    if not private_key:
        print(f"❌ Error: {FLOWS[args.flow].key_env} environment variable not set")
        sys.exit(1)

    params = BridgeParams(
        origin_chain_id=args.origin_chain,
        destination_chain_id=args.destination_chain,
        origin_currency=args.origin_currency,
        destination_currency=args.destination_currency,
        amount=args.amount,
        recipient=args.recipient,
        decimals=args.decimals,
    )

    try:
        runner = FlowRunner(
            flow=args.flow,
            private_key=private_key,
            config=load_config(args.config),
            origin_chain=args.origin_chain,
        )
        runner.run(params, dry_run=args.dry_run, safe_address=getattr(args, "safe", None))
    except Exception as exc:
        print(f"\n❌ Error: {exc}")
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover - CLI entry
    main()
