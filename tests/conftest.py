"""
Pytest fixtures: an in-memory ledger standing in for LiteSVM and a
snapshot directory holding a small WSOL/USDC universe.
"""

import copy
import struct
from dataclasses import replace
from pathlib import Path

import pytest
from solders.account import Account
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from solfi_sim.config import GENERATION_MARKER_OFFSET, SOLFI_PROGRAM_ID, USDC_MINT, WSOL_MINT
from solfi_sim.exceptions import TransactionRejected
from solfi_sim.snapshot import FetchMetadata, SnapshotAccount, SnapshotStore
from solfi_sim.swap import associated_token_address
from solfi_sim.token_accounts import (
    ACCOUNT_TYPE_ACCOUNT,
    MINT_LAYOUT,
    TokenStandard,
    decode_mint,
    decode_token_account,
    encode_token_account,
    make_token_account,
)

SNAPSHOT_SLOT = 350_000_000


def mint_account(decimals, standard=TokenStandard.LEGACY, supply=10**15):
    data = MINT_LAYOUT.build(
        dict(
            mint_authority_option=0,
            mint_authority=bytes(32),
            supply=supply,
            decimals=decimals,
            is_initialized=1,
            freeze_authority_option=0,
            freeze_authority=bytes(32),
        )
    )
    return Account(lamports=1_461_600, data=data, owner=standard.program_id, executable=False, rent_epoch=0)


def market_account(generated_slot, size=GENERATION_MARKER_OFFSET + 64):
    data = bytearray(size)
    struct.pack_into("<Q", data, GENERATION_MARKER_OFFSET, generated_slot)
    return Account(lamports=10_000_000, data=bytes(data), owner=SOLFI_PROGRAM_ID, executable=False, rent_epoch=0)


def with_extensions(account):
    """Append the account-type byte and an ImmutableOwner TLV entry, as Token-2022 vaults carry."""
    data = bytes(account.data) + bytes([ACCOUNT_TYPE_ACCOUNT]) + struct.pack("<HH", 7, 0)
    return Account(
        lamports=account.lamports, data=data, owner=account.owner, executable=False, rent_epoch=account.rent_epoch
    )


class FakeLedger:
    """Executes system transfers, sync_native and SolFi swaps at a fixed price.

    ``prices`` maps market -> integer quote units per base unit; ``fees_bps``
    maps market -> fee charged on both legs; markets in ``failing`` reject
    every swap.
    """

    def __init__(self, prices=None, fees_bps=None, failing=(), default_price=20):
        self.accounts = {}
        self.programs = {}
        self.slot = 0
        self.transactions = []
        self.prices = dict(prices or {})
        self.fees_bps = dict(fees_bps or {})
        self.failing = set(failing)
        self.default_price = default_price

    def set_account(self, address, account):
        self.accounts[address] = account

    def add_program(self, program_id, bytecode):
        self.programs[program_id] = bytecode

    def warp_to(self, slot):
        self.slot = slot

    def get_account(self, address):
        return self.accounts.get(address)

    def airdrop(self, address, lamports):
        current = self.accounts.get(address)
        balance = current.lamports if current else 0
        self.accounts[address] = Account(
            lamports=balance + lamports, data=b"", owner=SYSTEM_PROGRAM_ID, executable=False, rent_epoch=0
        )

    def latest_blockhash(self):
        return Hash.default()

    def send_transaction(self, tx):
        saved = copy.copy(self.accounts)
        message = tx.message
        keys = list(message.account_keys)
        try:
            for compiled in message.instructions:
                program = keys[compiled.program_id_index]
                accounts = [keys[index] for index in compiled.accounts]
                data = bytes(compiled.data)
                if program == SYSTEM_PROGRAM_ID:
                    self._transfer(accounts, data)
                elif program == SOLFI_PROGRAM_ID:
                    self._swap(accounts, data)
                elif program in (TokenStandard.LEGACY.program_id, TokenStandard.EXTENDED.program_id):
                    self._sync_native(accounts)
                else:
                    raise TransactionRejected(f"unknown program {program}")
        except TransactionRejected:
            self.accounts = saved
            raise
        self.transactions.append(tx)
        return tx

    def _with_lamports(self, address, delta):
        account = self.accounts[address]
        if account.lamports + delta < 0:
            raise TransactionRejected("insufficient lamports")
        self.accounts[address] = Account(
            lamports=account.lamports + delta,
            data=bytes(account.data),
            owner=account.owner,
            executable=account.executable,
            rent_epoch=account.rent_epoch,
        )

    def _transfer(self, accounts, data):
        _, lamports = struct.unpack("<IQ", data)
        self._with_lamports(accounts[0], -lamports)
        self._with_lamports(accounts[1], lamports)

    def _token(self, address):
        account = self.accounts.get(address)
        if account is None:
            raise TransactionRejected(f"missing account {address}")
        standard = TokenStandard.from_program_id(account.owner)
        return account, standard, decode_token_account(bytes(account.data), standard)

    def _store_token(self, address, account, state):
        self.accounts[address] = Account(
            lamports=account.lamports,
            data=encode_token_account(state),
            owner=account.owner,
            executable=False,
            rent_epoch=account.rent_epoch,
        )

    def _adjust(self, address, delta):
        account, _, state = self._token(address)
        if state.amount + delta < 0:
            raise TransactionRejected("custom program error: 0x1 (insufficient funds)")
        self._store_token(address, account, replace(state, amount=state.amount + delta))

    def _sync_native(self, accounts):
        account, _, state = self._token(accounts[0])
        if state.is_native is None:
            raise TransactionRejected("non-native account can only be synced")
        self._store_token(accounts[0], account, replace(state, amount=account.lamports - state.is_native))

    def _decimals(self, token_address):
        _, standard, state = self._token(token_address)
        mint = self.accounts[state.mint]
        return decode_mint(bytes(mint.data), standard).decimals

    def _swap(self, accounts, data):
        _user, market, vault_base, vault_quote, user_base, user_quote = accounts[:6]
        opcode, amount, direction = struct.unpack("<BQ8xB", data)
        assert opcode == 7
        if market in self.failing:
            raise TransactionRejected("custom program error: 0x10")
        for vault in (vault_base, vault_quote):
            if vault not in self.accounts:
                raise TransactionRejected(f"missing vault {vault}")

        price = self.prices.get(market, self.default_price)
        keep = 10_000 - self.fees_bps.get(market, 0)
        base_scale = 10 ** self._decimals(user_base)
        quote_scale = 10 ** self._decimals(user_quote)
        if direction == 1:
            out = amount * base_scale * keep // (price * quote_scale * 10_000)
            self._adjust(user_quote, -amount)
            self._adjust(user_base, out)
        else:
            out = amount * price * quote_scale * keep // (base_scale * 10_000)
            self._adjust(user_base, -amount)
            self._adjust(user_quote, out)


class LedgerFactory:
    """Builds a new FakeLedger per call and remembers every one it built."""

    def __init__(self, **options):
        self.options = options
        self.created = []

    def __call__(self):
        ledger = FakeLedger(**self.options)
        self.created.append(ledger)
        return ledger


@pytest.fixture
def markets():
    return [Pubkey.new_unique() for _ in range(3)]


@pytest.fixture
def generation_slots(markets):
    return {market: SNAPSHOT_SLOT - 100 * (index + 1) for index, market in enumerate(markets)}


@pytest.fixture
def store(tmp_path, markets, generation_slots):
    """Snapshot directory with both mints, every market and its two vaults."""
    store = SnapshotStore(tmp_path / "data")
    snapshots = [
        SnapshotAccount(WSOL_MINT, mint_account(9)),
        SnapshotAccount(USDC_MINT, mint_account(6)),
    ]
    for market in markets:
        snapshots.append(SnapshotAccount(market, market_account(generation_slots[market])))
        snapshots.append(
            SnapshotAccount(
                associated_token_address(market, WSOL_MINT),
                make_token_account(WSOL_MINT, market, 5_000 * 10**9),
            )
        )
        snapshots.append(
            SnapshotAccount(
                associated_token_address(market, USDC_MINT),
                make_token_account(USDC_MINT, market, 1_000_000 * 10**6),
            )
        )
    store.save_accounts(snapshots)
    store.save_metadata(FetchMetadata(slot=SNAPSHOT_SLOT))
    return store


@pytest.fixture
def program_path(tmp_path):
    path = Path(tmp_path) / "solfi.so"
    path.write_bytes(b"\x7fELF" + bytes(60))
    return path


@pytest.fixture
def extended_market(request, store):
    """A Token-2022 market with an 8-decimal base and 6-decimal quote.

    Parametrize indirectly with ``True`` to give both vaults extensions.
    """
    extend = with_extensions if getattr(request, "param", False) else (lambda account: account)
    market, base_mint, quote_mint = Pubkey.new_unique(), Pubkey.new_unique(), Pubkey.new_unique()
    vault_base, vault_quote = Pubkey.new_unique(), Pubkey.new_unique()
    store.save_accounts(
        [
            SnapshotAccount(market, market_account(1_000)),
            SnapshotAccount(base_mint, mint_account(8, TokenStandard.EXTENDED)),
            SnapshotAccount(quote_mint, mint_account(6, TokenStandard.EXTENDED)),
            SnapshotAccount(
                vault_base, extend(make_token_account(base_mint, market, 10**14, TokenStandard.EXTENDED))
            ),
            SnapshotAccount(
                vault_quote, extend(make_token_account(quote_mint, market, 10**14, TokenStandard.EXTENDED))
            ),
        ]
    )
    return market, vault_quote, vault_base
