"""SolFi swap instruction builders."""
from __future__ import annotations

import struct
from enum import Enum

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.sysvar import INSTRUCTIONS as SYSVAR_INSTRUCTIONS_ID
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

from .config import SOLFI_PROGRAM_ID

SWAP_DISCRIMINATOR = 7
INSTRUCTION_DATA_LEN = 18


class SwapDirection(Enum):
    """Swap side; the value is the tag written into the last instruction byte."""

    BASE_TO_QUOTE = 0
    QUOTE_TO_BASE = 1

    @property
    def label(self) -> str:
        return "sol-to-usdc" if self is SwapDirection.BASE_TO_QUOTE else "usdc-to-sol"

    @classmethod
    def from_label(cls, label: str) -> "SwapDirection":
        for direction in cls:
            if direction.label == label:
                return direction
        raise ValueError(f"unknown swap direction: {label}")

    def __str__(self) -> str:
        return self.label


def instruction_data(direction: SwapDirection, amount_in: int) -> bytes:
    # opcode | amount u64 LE | 8 zero bytes | direction
    return struct.pack("<BQ8xB", SWAP_DISCRIMINATOR, amount_in, direction.value)


def associated_token_address(
    owner: Pubkey, mint: Pubkey, token_program: Pubkey = TOKEN_PROGRAM_ID
) -> Pubkey:
    address, _ = Pubkey.find_program_address(
        [bytes(owner), bytes(token_program), bytes(mint)], ASSOCIATED_TOKEN_PROGRAM_ID
    )
    return address


def _swap_instruction(
    direction: SwapDirection,
    market: Pubkey,
    user: Pubkey,
    vault_base: Pubkey,
    vault_quote: Pubkey,
    user_base: Pubkey,
    user_quote: Pubkey,
    token_program: Pubkey,
    amount: int,
) -> Instruction:
    accounts = [
        AccountMeta(user, is_signer=True, is_writable=True),
        AccountMeta(market, is_signer=False, is_writable=True),
        AccountMeta(vault_base, is_signer=False, is_writable=True),
        AccountMeta(vault_quote, is_signer=False, is_writable=True),
        AccountMeta(user_base, is_signer=False, is_writable=True),
        AccountMeta(user_quote, is_signer=False, is_writable=True),
        AccountMeta(token_program, is_signer=False, is_writable=False),
        AccountMeta(SYSVAR_INSTRUCTIONS_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(SOLFI_PROGRAM_ID, instruction_data(direction, amount), accounts)


def create_swap_ix(
    direction: SwapDirection,
    market: Pubkey,
    user: Pubkey,
    base_mint: Pubkey,
    quote_mint: Pubkey,
    amount: int,
) -> Instruction:
    """Swap on a market whose vaults are the market's own associated token accounts."""
    return _swap_instruction(
        direction,
        market,
        user,
        associated_token_address(market, base_mint),
        associated_token_address(market, quote_mint),
        associated_token_address(user, base_mint),
        associated_token_address(user, quote_mint),
        TOKEN_PROGRAM_ID,
        amount,
    )


def create_swap_ix_with_vaults(
    direction: SwapDirection,
    market: Pubkey,
    user: Pubkey,
    vault_base: Pubkey,
    vault_quote: Pubkey,
    base_mint: Pubkey,
    quote_mint: Pubkey,
    token_program: Pubkey,
    amount: int,
) -> Instruction:
    """Swap with explicit vaults under either token program (SPL Token or Token-2022)."""
    return _swap_instruction(
        direction,
        market,
        user,
        vault_base,
        vault_quote,
        associated_token_address(user, base_mint, token_program),
        associated_token_address(user, quote_mint, token_program),
        token_program,
        amount,
    )
