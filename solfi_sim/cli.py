"""Command line entry point for the SolFi simulator."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import config
from .cutoffs import collect_cutoffs, format_cutoffs
from .exceptions import InputError, SolfiSimError
from .fetch import build_client, fetch_and_persist_accounts, fetch_and_persist_single_market
from .report import SwapResultWriter, format_multi_pool, format_single_market, write_spreads_csv
from .simulate import simulate_multi_pool
from .snapshot import SnapshotStore
from .spreads import compute_multi_pool_rows, compute_single_market_row, sweep_rows
from .svm import EnvironmentSeed
from .swap import SwapDirection


def parse_sizes(text: str) -> List[float]:
    try:
        return [float(part) for part in text.split(",") if part.strip()]
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid size list {text!r}") from exc


def _store(args: argparse.Namespace) -> SnapshotStore:
    return SnapshotStore(args.data_dir)


def _program_path(args: argparse.Namespace) -> Path:
    return args.program or Path(args.data_dir) / config.PROGRAM_PATH.name


def _market_triplet(args: argparse.Namespace):
    values = (args.market, args.market_token_quote, args.market_token_base)
    if not any(values):
        return None
    if not all(values):
        raise InputError(
            "When using --market mode, you must provide all of: "
            "--market, --market-token-quote, --market-token-base"
        )
    return (
        config.parse_pubkey(args.market, "market"),
        config.parse_pubkey(args.market_token_quote, "quote vault"),
        config.parse_pubkey(args.market_token_base, "base vault"),
    )


def cmd_fetch_accounts(args: argparse.Namespace) -> None:
    triplet = _market_triplet(args)
    client = build_client(config.rpc_url())
    store = _store(args)
    if triplet is None:
        fetch_and_persist_accounts(client, store, config.canonical_markets())
    else:
        fetch_and_persist_single_market(client, store, *triplet)


def cmd_cutoffs(args: argparse.Namespace) -> None:
    print(format_cutoffs(collect_cutoffs(_store(args), config.canonical_markets())))


def cmd_simulate(args: argparse.Namespace) -> None:
    simulate_multi_pool(
        direction=args.direction,
        amount=args.amount,
        slot=args.slot,
        ignore_errors=args.ignore_errors,
        markets=config.canonical_markets(),
        store=_store(args),
        program_path=_program_path(args),
        on_result=SwapResultWriter(sys.stdout),
    )


def _spreads_single_market(args, store, seed, sizes, triplet) -> None:
    market, quote_vault, base_vault = triplet

    def compute(size: float):
        row = compute_single_market_row(size, market, quote_vault, base_vault, args.slot, store, seed=seed)
        return [row] if row is not None else []

    if args.csv:
        write_spreads_csv(sweep_rows(sizes, compute), args.csv)
        return

    generated = store.generation_slot(market)
    if generated is not None:
        print(f"== using market snapshot generated slot {generated} ==\n")
    for size in sizes:
        for row in compute(size):
            print(format_single_market(row))
        if len(sizes) > 1:
            print()


def _spreads_multi_pool(args, store, seed, sizes) -> None:
    markets = config.canonical_markets()

    def compute(size: float):
        return compute_multi_pool_rows(size, args.slot, markets, store, seed=seed)

    if args.csv:
        write_spreads_csv(sweep_rows(sizes, compute), args.csv)
        return

    print(format_cutoffs(collect_cutoffs(store, markets)))
    for index, size in enumerate(sizes):
        if index == 0:
            print(f"\nCalculating spreads based on a round trip starting with {size:.2f} USDC...\n")
        else:
            print(f"\n== Amount: {size:.2f} USDC ==\n")
        print(format_multi_pool(compute(size)))


def cmd_spreads(args: argparse.Namespace) -> None:
    triplet = _market_triplet(args)
    sizes = args.sizes or [args.starting_usdc]
    store = _store(args)
    seed = EnvironmentSeed.load(store, _program_path(args))
    if triplet is not None:
        _spreads_single_market(args, store, seed, sizes, triplet)
    else:
        _spreads_multi_pool(args, store, seed, sizes)


def _add_market_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--market", help="Market account (single-market mode)")
    parser.add_argument("--market-token-quote", help="Quote vault of --market")
    parser.add_argument("--market-token-base", help="Base vault of --market")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Simulate SolFi swaps and spreads on snapshotted state")
    parser.add_argument("--data-dir", type=Path, default=config.DATA_DIR, help="Snapshot directory")
    parser.add_argument("--program", type=Path, help="SolFi program bytecode (default: <data-dir>/solfi.so)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    fetch = sub.add_parser("fetch-accounts", help="Fetch and persist pool accounts")
    _add_market_args(fetch)
    fetch.set_defaults(func=cmd_fetch_accounts)

    cutoffs = sub.add_parser("cutoffs", help="Show per-market generation slots")
    cutoffs.set_defaults(func=cmd_cutoffs)

    spreads = sub.add_parser("spreads", help="Round-trip spreads per market")
    spreads.add_argument("starting_usdc", type=float, help="USDC amount for the buy leg")
    spreads.add_argument("--sizes", type=parse_sizes, help="Comma-separated USDC sizes to sweep")
    spreads.add_argument("--csv", type=Path, help="Write rows to this CSV instead of the console")
    spreads.add_argument("--slot", type=int, help="Warp to this slot instead of the snapshot's")
    _add_market_args(spreads)
    spreads.set_defaults(func=cmd_spreads)

    simulate = sub.add_parser("simulate", help="Simulate one swap leg on every canonical market")
    simulate.add_argument("-a", "--amount", type=float, help="Input amount in human units")
    simulate.add_argument(
        "-d",
        "--direction",
        type=SwapDirection.from_label,
        choices=list(SwapDirection),
        default=SwapDirection.BASE_TO_QUOTE,
    )
    simulate.add_argument("-s", "--slot", type=int, help="Warp to this slot instead of the snapshot's")
    simulate.add_argument("--ignore-errors", action="store_true", help="Drop failed markets from output")
    simulate.set_defaults(func=cmd_simulate)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO, format="[%(levelname)s] %(message)s"
    )
    try:
        args.func(args)
    except SolfiSimError as exc:
        logging.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
