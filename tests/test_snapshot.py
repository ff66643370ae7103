"""Snapshot store files, generation markers and slot resolution."""

import json

import pytest
from solders.account import Account
from solders.pubkey import Pubkey

from solfi_sim.config import SOLFI_PROGRAM_ID
from solfi_sim.exceptions import SetupError
from solfi_sim.simulate import resolve_slot
from solfi_sim.snapshot import FetchMetadata, SnapshotAccount, SnapshotStore, u64_at_offset

from .conftest import SNAPSHOT_SLOT, market_account


def test_account_round_trips_through_json(tmp_path):
    store = SnapshotStore(tmp_path)
    address, owner = Pubkey.new_unique(), Pubkey.new_unique()
    account = Account(lamports=42, data=b"\x00\x01\xff", owner=owner, executable=True, rent_epoch=7)
    path = store.save_account(SnapshotAccount(address, account))

    assert path.name == f"account_{address}.json"
    assert json.loads(path.read_text())["data_base64"] == "AAH/"
    loaded = store.read_account(address)
    assert loaded.address == address
    assert loaded.account == account


def test_read_all_and_metadata(store, markets):
    snapshots = store.read_all()
    assert len(snapshots) == 2 + 3 * len(markets)
    assert store.read_metadata() == FetchMetadata(slot=SNAPSHOT_SLOT)


def test_missing_snapshot_is_a_setup_error(tmp_path):
    store = SnapshotStore(tmp_path / "nowhere")
    with pytest.raises(SetupError):
        store.read_all()
    with pytest.raises(SetupError):
        store.read_account(Pubkey.new_unique())
    assert store.find_account(Pubkey.new_unique()) is None
    assert store.read_metadata() is None


def test_malformed_snapshot_is_a_setup_error(tmp_path):
    store = SnapshotStore(tmp_path)
    address = Pubkey.new_unique()
    store.account_path(address).write_text("{not json")
    with pytest.raises(SetupError, match="Malformed"):
        store.read_account(address)


def test_generation_slot(store, markets, generation_slots):
    assert store.generation_slot(markets[0]) == generation_slots[markets[0]]
    assert store.generation_slot(Pubkey.new_unique()) is None


def test_undersized_market_payload_is_a_setup_error(tmp_path):
    store = SnapshotStore(tmp_path)
    market = Pubkey.new_unique()
    store.save_account(
        SnapshotAccount(
            market, Account(lamports=1, data=bytes(100), owner=SOLFI_PROGRAM_ID, executable=False, rent_epoch=0)
        )
    )
    with pytest.raises(SetupError):
        store.generation_slot(market)
    with pytest.raises(SetupError):
        u64_at_offset(bytes(4), 0)


def test_resolve_slot_precedence(store, markets, generation_slots):
    assert resolve_slot(store, markets, slot=123) == 123
    assert resolve_slot(store, markets) == min(generation_slots.values())
    assert resolve_slot(store, markets[:1]) == generation_slots[markets[0]]
    assert resolve_slot(store, [Pubkey.new_unique()]) == SNAPSHOT_SLOT


def test_resolve_slot_without_any_source(tmp_path):
    assert resolve_slot(SnapshotStore(tmp_path), [Pubkey.new_unique()]) is None
