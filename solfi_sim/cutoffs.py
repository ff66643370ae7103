"""Per-market generation markers versus the snapshot slot."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from solders.pubkey import Pubkey

from .snapshot import SnapshotStore


@dataclass
class Cutoff:
    market: str
    generated_slot: Optional[int]
    snapshot_slot: Optional[int]

    @property
    def lag(self) -> Optional[int]:
        if self.generated_slot is None or self.snapshot_slot is None:
            return None
        return self.snapshot_slot - self.generated_slot


def collect_cutoffs(store: SnapshotStore, markets: Sequence[Pubkey]) -> List[Cutoff]:
    metadata = store.read_metadata()
    snapshot_slot = metadata.slot if metadata else None
    return [
        Cutoff(market=str(market), generated_slot=store.generation_slot(market), snapshot_slot=snapshot_slot)
        for market in markets
    ]


def format_cutoffs(cutoffs: Sequence[Cutoff]) -> str:
    lines = ["Market generation cutoffs:"]
    for cutoff in cutoffs:
        if cutoff.generated_slot is None:
            lines.append(f"  {cutoff.market}: no snapshot")
            continue
        detail = f"generated at slot {cutoff.generated_slot}"
        if cutoff.lag is not None:
            detail += f" ({cutoff.lag} slots before snapshot slot {cutoff.snapshot_slot})"
        lines.append(f"  {cutoff.market}: {detail}")
    return "\n".join(lines)
