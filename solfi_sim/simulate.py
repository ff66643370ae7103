"""Replay SolFi swaps against a forked environment seeded from the snapshot store.

Every leg runs in its own freshly built environment with its own ephemeral
signer, so pools never observe each other's state. Two entry points:

* ``simulate_multi_pool`` swaps the fixed WSOL/USDC pair on every canonical
  market; vaults are the markets' associated token accounts.
* ``simulate_single_market`` swaps on one market with explicit vaults whose
  token program (SPL Token or Token-2022) and mint decimals are read from
  the snapshot.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import SyncNativeParams, sync_native

from .balances import (
    account_token_standard,
    read_mint_decimals,
    read_token_account_mint,
    token_balance,
)
from .config import (
    DEFAULT_SWAP_AMOUNT_SOL,
    DEFAULT_SWAP_AMOUNT_USDC,
    FEE_LAMPORTS,
    PROGRAM_PATH,
    SOL_DECIMALS,
    USDC_DECIMALS,
    USDC_MINT,
    WSOL_MINT,
    canonical_markets,
)
from .exceptions import DecodeError, TransactionRejected
from .snapshot import SnapshotStore
from .svm import (
    EnvironmentFactory,
    EnvironmentSeed,
    ExecutionEnvironment,
    LiteSvmEnvironment,
    submit,
)
from .swap import SwapDirection, associated_token_address, create_swap_ix, create_swap_ix_with_vaults
from .token_accounts import TokenStandard, make_native_wrapper_account, make_token_account
from .units import to_atomic, to_human


@dataclass(frozen=True)
class SwapResult:
    """Outcome of one leg on one market; exactly one of ``out_amount``/``error`` is set."""

    market: str
    in_amount: float
    out_amount: Optional[float] = None
    error: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.out_amount is None) == (self.error is None):
            raise ValueError("SwapResult needs exactly one of out_amount or error")

    @property
    def succeeded(self) -> bool:
        return self.out_amount is not None

    def as_row(self) -> list:
        return [
            self.market,
            self.in_amount,
            "" if self.out_amount is None else self.out_amount,
            self.error or "",
        ]


ResultCallback = Callable[[SwapResult], None]


def resolve_slot(
    store: SnapshotStore, markets: Iterable[Pubkey], slot: Optional[int] = None
) -> Optional[int]:
    """Explicit slot, else the oldest generation marker among ``markets``, else the fetch slot."""
    if slot is not None:
        return slot
    markers = [marker for marker in (store.generation_slot(m) for m in markets) if marker is not None]
    if markers:
        return min(markers)
    metadata = store.read_metadata()
    return metadata.slot if metadata else None


def _fresh_environment(
    seed: EnvironmentSeed, factory: EnvironmentFactory, slot: Optional[int]
) -> ExecutionEnvironment:
    env = seed.build(factory)
    if slot is not None:
        env.warp_to(slot)
    return env


def _execute_leg(
    env: ExecutionEnvironment,
    signer: Keypair,
    instructions: Sequence[Instruction],
    market: Pubkey,
    in_amount: float,
    destination: Pubkey,
    standard: TokenStandard,
    out_decimals: int,
) -> SwapResult:
    balance_before = token_balance(env, destination, standard)
    try:
        submit(env, instructions, signer)
    except TransactionRejected as exc:
        logging.debug("Swap on %s rejected: %s", market, exc)
        for line in exc.logs:
            logging.debug("  %s", line)
        return SwapResult(market=str(market), in_amount=in_amount, error=str(exc))

    balance_after = token_balance(env, destination, standard)
    out_atomic = max(balance_after - balance_before, 0)
    return SwapResult(
        market=str(market), in_amount=in_amount, out_amount=to_human(out_atomic, out_decimals)
    )


def _simulate_pair_on_market(
    seed: EnvironmentSeed,
    factory: EnvironmentFactory,
    market: Pubkey,
    direction: SwapDirection,
    in_amount: float,
    amount_in_atomic: int,
    native_prefund: int,
    slot: Optional[int],
) -> SwapResult:
    signer = Keypair()
    user = signer.pubkey()
    env = _fresh_environment(seed, factory, slot)

    wsol_ata = associated_token_address(user, WSOL_MINT)
    usdc_ata = associated_token_address(user, USDC_MINT)
    sells_base = direction is SwapDirection.BASE_TO_QUOTE

    if sells_base:
        env.airdrop(user, FEE_LAMPORTS + native_prefund)
        env.set_account(usdc_ata, make_token_account(USDC_MINT, user, 0))
    else:
        env.airdrop(user, FEE_LAMPORTS)
        env.set_account(usdc_ata, make_token_account(USDC_MINT, user, amount_in_atomic))
    env.set_account(wsol_ata, make_native_wrapper_account(user))

    instructions: List[Instruction] = []
    if sells_base:
        instructions.append(
            transfer(TransferParams(from_pubkey=user, to_pubkey=wsol_ata, lamports=amount_in_atomic))
        )
        instructions.append(sync_native(SyncNativeParams(program_id=TOKEN_PROGRAM_ID, account=wsol_ata)))
    instructions.append(create_swap_ix(direction, market, user, WSOL_MINT, USDC_MINT, amount_in_atomic))

    destination, out_decimals = (usdc_ata, USDC_DECIMALS) if sells_base else (wsol_ata, SOL_DECIMALS)
    return _execute_leg(
        env, signer, instructions, market, in_amount, destination, TokenStandard.LEGACY, out_decimals
    )


def simulate_multi_pool(
    direction: SwapDirection = SwapDirection.BASE_TO_QUOTE,
    amount: Optional[float] = None,
    slot: Optional[int] = None,
    ignore_errors: bool = False,
    markets: Optional[Sequence[Pubkey]] = None,
    store: Optional[SnapshotStore] = None,
    program_path: Path = PROGRAM_PATH,
    env_factory: EnvironmentFactory = LiteSvmEnvironment,
    seed: Optional[EnvironmentSeed] = None,
    funded_pools: Optional[int] = None,
    on_result: Optional[ResultCallback] = None,
) -> List[SwapResult]:
    """Run one WSOL/USDC leg on every market, each in an isolated environment.

    ``funded_pools`` sizes the native airdrop as if one signer funded that
    many pools; it defaults to ``len(markets)``.
    """
    store = store or SnapshotStore()
    markets = list(markets) if markets is not None else canonical_markets()
    seed = seed or EnvironmentSeed.load(store, program_path)
    warp_slot = resolve_slot(store, markets, slot)

    if direction is SwapDirection.BASE_TO_QUOTE:
        in_amount = DEFAULT_SWAP_AMOUNT_SOL if amount is None else amount
        in_decimals = SOL_DECIMALS
    else:
        in_amount = DEFAULT_SWAP_AMOUNT_USDC if amount is None else amount
        in_decimals = USDC_DECIMALS
    amount_in_atomic = to_atomic(in_amount, in_decimals)

    native_prefund = 0
    if direction is SwapDirection.BASE_TO_QUOTE:
        native_prefund = amount_in_atomic * (funded_pools if funded_pools is not None else len(markets))

    logging.info(
        "Simulating %s of %s on %d market(s) at slot %s", direction, in_amount, len(markets), warp_slot
    )

    results: List[SwapResult] = []
    for market in markets:
        result = _simulate_pair_on_market(
            seed, env_factory, market, direction, in_amount, amount_in_atomic, native_prefund, warp_slot
        )
        if not result.succeeded and ignore_errors:
            logging.debug("Dropping %s: %s", market, result.error)
            continue
        if on_result is not None:
            on_result(result)
        results.append(result)
    return results


def simulate_single_market(
    market: Pubkey,
    vault_quote: Pubkey,
    vault_base: Pubkey,
    amount: float,
    direction: SwapDirection,
    slot: Optional[int] = None,
    store: Optional[SnapshotStore] = None,
    program_path: Path = PROGRAM_PATH,
    env_factory: EnvironmentFactory = LiteSvmEnvironment,
    seed: Optional[EnvironmentSeed] = None,
) -> SwapResult:
    """Run one leg on a market with explicit vaults under either token program."""
    store = store or SnapshotStore()
    seed = seed or EnvironmentSeed.load(store, program_path)
    warp_slot = resolve_slot(store, [market], slot)

    signer = Keypair()
    user = signer.pubkey()
    env = _fresh_environment(seed, env_factory, warp_slot)

    quote_standard = account_token_standard(env, vault_quote)
    base_standard = account_token_standard(env, vault_base)
    if quote_standard is not base_standard:
        raise DecodeError(
            f"vault token programs mismatch: quote {vault_quote} is {quote_standard.layout.name}, "
            f"base {vault_base} is {base_standard.layout.name}"
        )
    standard = quote_standard

    quote_mint = read_token_account_mint(env, vault_quote)
    base_mint = read_token_account_mint(env, vault_base)
    quote_decimals = read_mint_decimals(env, quote_mint, standard)
    base_decimals = read_mint_decimals(env, base_mint, standard)

    env.airdrop(user, FEE_LAMPORTS)

    user_base = associated_token_address(user, base_mint, standard.program_id)
    user_quote = associated_token_address(user, quote_mint, standard.program_id)
    input_is_quote = direction is SwapDirection.QUOTE_TO_BASE
    amount_in_atomic = to_atomic(amount, quote_decimals if input_is_quote else base_decimals)

    env.set_account(
        user_base, make_token_account(base_mint, user, 0 if input_is_quote else amount_in_atomic, standard)
    )
    env.set_account(
        user_quote, make_token_account(quote_mint, user, amount_in_atomic if input_is_quote else 0, standard)
    )

    ix = create_swap_ix_with_vaults(
        direction,
        market,
        user,
        vault_base,
        vault_quote,
        base_mint,
        quote_mint,
        standard.program_id,
        amount_in_atomic,
    )
    destination, out_decimals = (
        (user_base, base_decimals) if input_is_quote else (user_quote, quote_decimals)
    )
    logging.info("Simulating %s of %s on %s at slot %s", direction, amount, market, warp_slot)
    return _execute_leg(env, signer, [ix], market, amount, destination, standard, out_decimals)
