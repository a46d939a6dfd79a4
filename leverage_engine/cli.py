"""Command-line interface for the leverage engine simulation."""
from __future__ import annotations

import argparse
import asyncio
import sys
from decimal import Decimal, InvalidOperation

from .config import load_config
from .constants import HEALTH_FACTOR_MAX, HEALTH_FACTOR_ONE, PRECISION
from .errors import LeverageEngineError, UnsupportedAsset
from .leverage import format_leverage
from .logging_setup import configure_logging
from .models import CollateralInput, PositionInfo
from .simulation import SimulationEnvironment, build_environment


def _parse_leverage(value: str) -> int:
    try:
        return int(Decimal(value) * PRECISION)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"Invalid leverage: {value}") from None


def _parse_collateral(value: str) -> tuple[str, Decimal]:
    symbol, sep, amount = value.partition("=")
    if not sep or not symbol:
        raise argparse.ArgumentTypeError(f"Expected SYMBOL=AMOUNT, got '{value}'")
    try:
        return symbol.upper(), Decimal(amount)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"Invalid amount in '{value}'") from None


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="leverage-engine",
        description="Build leveraged collateral positions against a simulated lending protocol",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    max_parser = sub.add_parser("max-leverage", help="Safe leverage ceiling for a collateral set")
    max_parser.add_argument("assets", nargs="+", help="Collateral asset symbols")

    for name, help_text in (
        ("open-safe", "Open a multi-collateral position in one pass"),
        ("open-degen", "Open a single-collateral position by looping"),
    ):
        open_parser = sub.add_parser(name, help=help_text)
        open_parser.add_argument(
            "--collateral",
            action="append",
            type=_parse_collateral,
            required=True,
            metavar="SYMBOL=AMOUNT",
            help="Collateral deposit in whole units (repeatable for open-safe)",
        )
        open_parser.add_argument("--debt", required=True, help="Debt asset symbol")
        open_parser.add_argument(
            "--leverage", type=_parse_leverage, required=True, help="Target leverage, e.g. 1.5"
        )
        open_parser.add_argument("--owner", default="cli-user", help="Owner identity")

    return parser


def _to_native(env: SimulationEnvironment, symbol: str, amount: Decimal) -> int:
    return int(amount * 10**env.valuation.decimals(symbol))


def _format_info(env: SimulationEnvironment, info: PositionInfo) -> str:
    def units(asset: str, amount: int) -> str:
        return f"{Decimal(amount) / 10**env.valuation.decimals(asset):f} {asset}"

    if info.health_factor == HEALTH_FACTOR_MAX:
        health = "∞"
    else:
        health = f"{info.health_factor / HEALTH_FACTOR_ONE:.4f}"
    collateral = ", ".join(units(a, amt) for a, amt in info.collateral)
    return (
        f"Position {info.position_id} ({info.mode.value if info.mode else '-'})\n"
        f"  Owner:         {info.owner}\n"
        f"  Collateral:    {collateral}\n"
        f"  Debt:          {units(info.debt_asset, info.debt_amount)}\n"
        f"  Collateral $:  {info.collateral_usd / 10**8:,.2f}\n"
        f"  Debt $:        {info.debt_usd / 10**8:,.2f}\n"
        f"  Leverage:      {format_leverage(info.leverage)}\n"
        f"  Health factor: {health}"
    )


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    env = build_environment(config)
    registry = env.registry

    if args.command == "max-leverage":
        assets = [a.upper() for a in args.assets]
        for asset in assets:
            if not await env.lending.is_asset_supported(asset):
                raise UnsupportedAsset(asset)
        maximum = await registry.calculator.max_safe_leverage(assets)
        print(f"Safe leverage ceiling for {', '.join(assets)}: {format_leverage(maximum)}")
        return 0

    collaterals: list[CollateralInput] = []
    for symbol, amount in args.collateral:
        native = _to_native(env, symbol, amount)
        env.ledger.mint(args.owner, symbol, native)
        collaterals.append(CollateralInput(asset=symbol, amount=native))
    debt_asset = args.debt.upper()

    if args.command == "open-safe":
        position_id = await registry.open_safe(args.owner, collaterals, debt_asset, args.leverage)
    else:
        if len(collaterals) != 1:
            print("open-degen takes exactly one --collateral", file=sys.stderr)
            return 1
        position_id = await registry.open_degen(
            args.owner, collaterals[0], debt_asset, args.leverage
        )

    info = await registry.manager(position_id).position_info()
    print(_format_info(env, info))
    return 0


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        sys.exit(asyncio.run(_run(args)))
    except LeverageEngineError as e:
        print(f"Error [{e.code}] {type(e).__name__}: {e.message}", file=sys.stderr)
        sys.exit(1)
