"""Console and CSV rendering of swap results and spread rows."""
from __future__ import annotations

import csv
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Iterable, List, Sequence, TextIO, Tuple

import pandas as pd

from .simulate import SwapResult
from .spreads import SpreadRow

SPREAD_COLUMNS = ["amount_usdc", "market", "buy_price", "sell_price", "spread_usd", "spread_bps"]


class SwapResultWriter:
    """Headerless CSV stream of swap results, flushed row by row."""

    def __init__(self, stream: TextIO):
        self._stream = stream
        self._writer = csv.writer(stream)

    def __call__(self, result: SwapResult) -> None:
        self._writer.writerow(result.as_row())
        self._stream.flush()


def spread_frame(sweep: Iterable[Tuple[float, Sequence[SpreadRow]]]) -> pd.DataFrame:
    """Rows in size-major, then market order, unsorted."""
    records = []
    for _, rows in sweep:
        for row in rows:
            record = asdict(row)
            record["amount_usdc"] = record.pop("amount")
            records.append(record)
    return pd.DataFrame(records, columns=SPREAD_COLUMNS)


def write_spreads_csv(sweep: Iterable[Tuple[float, Sequence[SpreadRow]]], output_path: Path) -> int:
    df = spread_frame(sweep)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=False)
    logging.info("Spread rows written to %s", output_path)
    return len(df)


def sorted_by_spread(rows: Iterable[SpreadRow]) -> List[SpreadRow]:
    return sorted(rows, key=lambda row: row.spread_bps)


def format_multi_pool(rows: Sequence[SpreadRow]) -> str:
    if not rows:
        return "Could not complete a round-trip simulation on any market.\n"
    lines = []
    for row in sorted_by_spread(rows):
        lines.extend(
            [
                f"--- Market: {row.market} ---",
                f"  Buy SOL at:  ${row.buy_price:<10.4f} (Ask)",
                f"  Sell SOL at: ${row.sell_price:<10.4f} (Bid)",
                f"  Spread:      ${row.spread_usd:<10.6f}",
                f"  Spread:      {row.spread_bps:<10.2f} bps",
                "",
            ]
        )
    return "\n".join(lines)


def format_single_market(row: SpreadRow) -> str:
    return "\n".join(
        [
            f"Calculating single-market spread (round trip) with {row.amount:.2f} USDC on {row.market}...",
            "",
            f"--- Market: {row.market} ---",
            f"  Buy BASE at:  ${row.buy_price:<10.6f} (Ask)",
            f"  Sell BASE at: ${row.sell_price:<10.6f} (Bid)",
            f"  Spread:       ${row.spread_usd:<10.6f}",
            f"  Spread:       {row.spread_bps:<10.2f} bps",
            "",
        ]
    )
