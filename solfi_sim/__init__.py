"""Offline SolFi swap and spread simulator over snapshotted Solana state."""

__version__ = "0.1.0"
