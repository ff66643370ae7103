"""Round-trip (buy then sell) spread computation on top of the simulators."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from solders.pubkey import Pubkey

from .config import PROGRAM_PATH, canonical_markets
from .snapshot import SnapshotStore
from .simulate import resolve_slot, simulate_multi_pool, simulate_single_market
from .svm import EnvironmentFactory, EnvironmentSeed, LiteSvmEnvironment
from .swap import SwapDirection


@dataclass(frozen=True)
class SpreadRow:
    amount: float
    market: str
    buy_price: float
    sell_price: float
    spread_usd: float
    spread_bps: float


def spread_from_legs(
    amount: float, market: str, quote_in: float, base_out: float, quote_out: float
) -> Optional[SpreadRow]:
    """Derive ask/bid prices from a round trip; ``None`` when any price is degenerate.

    buy_price = quote_in / base_out, sell_price = quote_out / base_out, and the
    spread in bps is taken relative to their mean.
    """
    if not base_out > 0:
        return None
    buy_price = quote_in / base_out
    sell_price = quote_out / base_out
    if not (math.isfinite(buy_price) and math.isfinite(sell_price)):
        return None
    if buy_price <= 0 or sell_price <= 0:
        return None

    spread_usd = buy_price - sell_price
    mid = (buy_price + sell_price) / 2
    if not mid > 0:
        return None
    spread_bps = spread_usd / mid * 10_000
    if not math.isfinite(spread_bps):
        return None

    return SpreadRow(
        amount=amount,
        market=market,
        buy_price=buy_price,
        sell_price=sell_price,
        spread_usd=spread_usd,
        spread_bps=spread_bps,
    )


def compute_single_market_row(
    amount: float,
    market: Pubkey,
    vault_quote: Pubkey,
    vault_base: Pubkey,
    slot: Optional[int] = None,
    store: Optional[SnapshotStore] = None,
    program_path: Path = PROGRAM_PATH,
    env_factory: EnvironmentFactory = LiteSvmEnvironment,
    seed: Optional[EnvironmentSeed] = None,
) -> Optional[SpreadRow]:
    store = store or SnapshotStore()
    seed = seed or EnvironmentSeed.load(store, program_path)
    # Both legs must see the same slot so the price curve is consistent
    warp_slot = resolve_slot(store, [market], slot)
    common = dict(slot=warp_slot, store=store, env_factory=env_factory, seed=seed)

    buy = simulate_single_market(
        market, vault_quote, vault_base, amount, SwapDirection.QUOTE_TO_BASE, **common
    )
    if not buy.succeeded:
        logging.warning("Buy leg failed on %s: %s", market, buy.error)
        return None
    if not buy.out_amount > 0:
        logging.warning("Buy leg on %s returned no base tokens", market)
        return None

    sell = simulate_single_market(
        market, vault_quote, vault_base, buy.out_amount, SwapDirection.BASE_TO_QUOTE, **common
    )
    if not sell.succeeded:
        logging.warning("Sell leg failed on %s: %s", market, sell.error)
        return None

    return spread_from_legs(amount, str(market), amount, buy.out_amount, sell.out_amount)


def compute_multi_pool_rows(
    amount: float,
    slot: Optional[int] = None,
    markets: Optional[Sequence[Pubkey]] = None,
    store: Optional[SnapshotStore] = None,
    program_path: Path = PROGRAM_PATH,
    env_factory: EnvironmentFactory = LiteSvmEnvironment,
    seed: Optional[EnvironmentSeed] = None,
) -> List[SpreadRow]:
    """Spread rows for every canonical market with a successful buy and sell, in market order."""
    store = store or SnapshotStore()
    markets = list(markets) if markets is not None else canonical_markets()
    seed = seed or EnvironmentSeed.load(store, program_path)
    warp_slot = resolve_slot(store, markets, slot)
    common = dict(store=store, env_factory=env_factory, seed=seed)

    buys = simulate_multi_pool(
        SwapDirection.QUOTE_TO_BASE, amount, warp_slot, ignore_errors=True, markets=markets, **common
    )
    base_out_by_market = {result.market: result.out_amount for result in buys if result.succeeded}

    rows: List[SpreadRow] = []
    for market in markets:
        base_out = base_out_by_market.get(str(market))
        if base_out is None or base_out <= 0:
            continue
        sells = simulate_multi_pool(
            SwapDirection.BASE_TO_QUOTE,
            base_out,
            warp_slot,
            ignore_errors=True,
            markets=[market],
            funded_pools=len(markets),
            **common,
        )
        sell = next((result for result in sells if result.market == str(market)), None)
        if sell is None:
            continue
        row = spread_from_legs(amount, str(market), amount, base_out, sell.out_amount)
        if row is not None:
            rows.append(row)
    return rows


def sweep_rows(
    sizes: Sequence[float], compute: Callable[[float], List[SpreadRow]]
) -> List[Tuple[float, List[SpreadRow]]]:
    """Run ``compute`` once per size, independently, keeping size order."""
    return [(size, compute(size)) for size in sizes]
