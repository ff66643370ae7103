"""Shared configuration for the SolFi simulator."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from solders.pubkey import Pubkey
from spl.token.constants import WRAPPED_SOL_MINT

from .exceptions import InputError

SOLFI_PROGRAM_ID = Pubkey.from_string("SoLFiHG9TfgtdUXUjWAxi3LtvYuFyDLVhBWxdMZxyCe")

WSOL_MINT = WRAPPED_SOL_MINT
USDC_MINT = Pubkey.from_string("EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v")

SOL_DECIMALS = 9
USDC_DECIMALS = 6

DEFAULT_SWAP_AMOUNT_SOL = 10.0
DEFAULT_SWAP_AMOUNT_USDC = 1000.0

# Lamports airdropped to every ephemeral signer to cover fees
FEE_LAMPORTS = 1_000_000_000

# u64 LE slot at which the market account was last regenerated
GENERATION_MARKER_OFFSET = 464

# Canonical SolFi WSOL/USDC markets
DEFAULT_MARKETS = [
    "5guD4Uz462GT4Y4gEuqyGsHZ59JGxFN4a3rF6KWguMcJ",
    "DH4xmaWDnTzKXehVaPSNy9tMKJxnYL5Mo5U3oTHFtNYJ",
    "AHhiY6GAKfBkvseQDQbBC7qp3fTRNpyZccuEdYSdPFEf",
    "CAPhoEse9xEH95XmdnJjYrZdNCA8xfUWdy3aWymHa1Vj",
]

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"

DATA_DIR = Path(os.getenv("SOLFI_DATA_DIR", "data"))
PROGRAM_PATH = DATA_DIR / "solfi.so"


def parse_pubkey(text: str, label: str = "address") -> Pubkey:
    try:
        return Pubkey.from_string(text.strip())
    except ValueError as exc:
        raise InputError(f"invalid {label} pubkey: {text!r}") from exc


def canonical_markets(raw: Optional[str] = None) -> List[Pubkey]:
    """Return the canonical market set, honouring a ``SOLFI_MARKETS`` override."""
    raw = raw if raw is not None else os.getenv("SOLFI_MARKETS", "")
    entries = [entry.strip() for entry in raw.split(",") if entry.strip()] or DEFAULT_MARKETS
    return [parse_pubkey(entry, "market") for entry in entries]


def rpc_url() -> str:
    load_dotenv()
    url = (os.getenv("RPC_URL") or "").strip()
    if not url:
        logging.warning("No RPC_URL found in env. Using %s", DEFAULT_RPC_URL)
        return DEFAULT_RPC_URL
    return url
