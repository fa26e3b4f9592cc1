from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .balance_feed import BalanceFeedError, fetch_snapshots
from .calc import DistributionError, format_distribution
from .config import ConfigError, SettlementConfig, snapshot_file_from_env
from .io_store import PlanEntry, load_currencies, load_snapshot, save_plan, save_snapshot, save_snapshots
from .models import BalanceSource, CurrencySnapshot, DistributionResult
from .planner import plan_settlement


def fmt_units(amount: int, decimals: int) -> str:
    whole, frac = divmod(amount, 10**decimals) if decimals > 0 else (amount, 0)
    text = f"{whole:,}"
    return f"{text}.{frac:0{decimals}d}" if decimals > 0 else text


def print_table(result: DistributionResult, decimals: int) -> None:
    headers = ["Source", "Label", "Share", "Amount", "Original", "Remaining"]
    rows = []
    for d in result.distributions:
        rows.append(
            [
                d.source_key,
                d.label or "",
                f"{d.percentage:.2f}%",
                fmt_units(d.amount, decimals),
                fmt_units(d.original_balance, decimals),
                fmt_units(d.remaining_balance, decimals),
            ]
        )
    widths = [max(len(str(x)) for x in col) for col in zip(headers, *rows)]
    line = " | ".join(h.ljust(w) for h, w in zip(headers, widths))
    print(line)
    print("-" * len(line))
    for row in rows:
        print(" | ".join(str(x).ljust(w) for x, w in zip(row, widths)))
    print("-" * len(line))
    print(
        f"Platform: {fmt_units(result.total_balance, decimals)} | "
        f"Target: {fmt_units(result.target_balance, decimals)} | "
        f"Settlement: {fmt_units(result.settlement_amount, decimals)}"
    )


def cmd_plan(config: SettlementConfig, currencies: Sequence[str], snapshot_file: Path, output: Path) -> int:
    if not currencies:
        currencies = load_currencies(snapshot_file)

    plans: Dict[str, PlanEntry] = {}
    failed: List[str] = []
    for currency in currencies:
        snapshot = load_snapshot(currency, snapshot_file)
        print(f"== {currency}")
        try:
            result = plan_settlement(snapshot, config)
        except DistributionError as exc:
            print(f"Error ({currency}): {exc}")
            plans[currency] = exc
            failed.append(currency)
            continue

        plans[currency] = result
        if result is None:
            print("No settlement needed")
            continue
        print_table(result, snapshot.decimals)
        print()
        print(format_distribution(result, currency, snapshot.decimals))
        print()

    save_plan(plans, output)
    print(f"Plan written -> {output}")
    if failed:
        print(f"Failed: {', '.join(failed)}")
        return 1
    return 0


def cmd_fetch(config: SettlementConfig, snapshot_file: Path) -> int:
    try:
        raw = fetch_snapshots(config)
    except BalanceFeedError as exc:
        print(f"Error: {exc}")
        return 1
    save_snapshots(raw, snapshot_file)
    print(f"Balances saved -> {snapshot_file} ({', '.join(raw) or 'empty'})")
    return 0


def cmd_init_example(snapshot_file: Path) -> int:
    examples: List[CurrencySnapshot] = [
        CurrencySnapshot(
            currency="USDT",
            decimals=6,
            external_balance="40000000",
            sources=[
                BalanceSource("eip155:1", "10000000", "Ethereum"),
                BalanceSource("eip155:56", "20000000", "BSC"),
                BalanceSource("solana:5eykt4UsFv8P8NJdTREpY1vzqKqZKvdp", "30000000", "Solana"),
            ],
        ),
        CurrencySnapshot(
            currency="BTC",
            decimals=8,
            external_balance="300000000",
            sources=[BalanceSource("bip122:000000000019d6689c085ae165831e93", "100000000", "Bitcoin")],
        ),
    ]
    for snapshot in examples:
        save_snapshot(snapshot, snapshot_file)
    print(f"Example balances written: {snapshot_file}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Settlement distribution tool")
    sub = parser.add_subparsers(dest="cmd")

    init_p = sub.add_parser("init-example", help="Write an example balances file")
    init_p.add_argument("--snapshot", type=Path, help="Balances file")

    plan_p = sub.add_parser("plan", help="Compute the settlement plan")
    plan_p.add_argument("currencies", nargs="*", help="Currencies to plan (default: all)")
    plan_p.add_argument("--snapshot", type=Path, help="Balances file")
    plan_p.add_argument("--output", type=Path, help="Plan output file")

    fetch_p = sub.add_parser("fetch", help="Download balances from the feed")
    fetch_p.add_argument("--snapshot", type=Path, help="Balances file")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "init-example":
        return cmd_init_example(args.snapshot or snapshot_file_from_env())
    if args.cmd not in ("plan", "fetch"):
        parser.print_help()
        return 0

    try:
        config = SettlementConfig.from_env()
    except ConfigError as exc:
        print(f"Config error: {exc}")
        return 2

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    snapshot_file = args.snapshot or config.snapshot_file

    if args.cmd == "plan":
        try:
            return cmd_plan(config, args.currencies, snapshot_file, args.output or config.plan_file)
        except (FileNotFoundError, KeyError) as exc:
            print(f"Error: {exc}")
            return 1
    return cmd_fetch(config, snapshot_file)


if __name__ == "__main__":
    raise SystemExit(main())
