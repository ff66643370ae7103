"""Fetch live SolFi accounts over JSON-RPC and persist them as snapshot files."""
from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Processed
from solders.account import Account
from solders.pubkey import Pubkey

from .config import USDC_MINT, WSOL_MINT
from .exceptions import SetupError
from .snapshot import FetchMetadata, SnapshotAccount, SnapshotStore
from .swap import associated_token_address
from .token_accounts import TokenStandard, decode_token_account


def build_client(rpc_endpoint: str) -> Client:
    logging.info("Using RPC endpoint %s", rpc_endpoint)
    return Client(rpc_endpoint, timeout=45)


def canonical_addresses(markets: Sequence[Pubkey]) -> List[Pubkey]:
    addresses = [WSOL_MINT, USDC_MINT]
    for market in markets:
        addresses.append(market)
        addresses.append(associated_token_address(market, WSOL_MINT))
        addresses.append(associated_token_address(market, USDC_MINT))
    return addresses


def fetch_snapshots(client: Client, addresses: Sequence[Pubkey]) -> Tuple[List[SnapshotAccount], int]:
    """Fetch ``addresses`` in one request; returns the found accounts and the context slot."""
    try:
        response = client.get_multiple_accounts(list(addresses), commitment=Processed)
    except SolanaRpcException as exc:
        raise SetupError(f"RPC request failed: {exc}") from exc

    snapshots = []
    for address, account in zip(addresses, response.value):
        if account is None:
            logging.warning("Account %s not found, skipping", address)
            continue
        snapshots.append(SnapshotAccount(address=address, account=account))
    return snapshots, response.context.slot


def _persist(store: SnapshotStore, snapshots: List[SnapshotAccount], slot: int) -> int:
    count = store.save_accounts(snapshots)
    store.save_metadata(FetchMetadata(slot=slot))
    return count


def fetch_and_persist_accounts(client: Client, store: SnapshotStore, markets: Sequence[Pubkey]) -> int:
    addresses = canonical_addresses(markets)
    logging.info("Fetching %d accounts for canonical WSOL/USDC pools", len(addresses))
    snapshots, slot = fetch_snapshots(client, addresses)
    count = _persist(store, snapshots, slot)
    logging.info("Fetched and saved %d accounts at slot %d", count, slot)
    return count


def _fetch_vault(client: Client, vault: Pubkey, label: str) -> Account:
    try:
        account = client.get_account_info(vault, commitment=Processed).value
    except SolanaRpcException as exc:
        raise SetupError(f"RPC request failed: {exc}") from exc
    if account is None:
        raise SetupError(f"missing {label} vault account {vault}")
    return account


def vault_mint(account: Account) -> Pubkey:
    standard = TokenStandard.from_program_id(account.owner)
    return decode_token_account(bytes(account.data), standard).mint


def fetch_and_persist_single_market(
    client: Client,
    store: SnapshotStore,
    market: Pubkey,
    quote_vault: Pubkey,
    base_vault: Pubkey,
) -> int:
    """Fetch one market, its two vaults and their mints."""
    logging.info("Fetching single market %s with vaults (quote=%s, base=%s)", market, quote_vault, base_vault)
    quote_mint = vault_mint(_fetch_vault(client, quote_vault, "quote"))
    base_mint = vault_mint(_fetch_vault(client, base_vault, "base"))

    snapshots, slot = fetch_snapshots(client, [market, quote_vault, base_vault, quote_mint, base_mint])
    count = _persist(store, snapshots, slot)
    logging.info(
        "Fetched and saved single market %s (+vaults+mints) at slot %d (%d accounts)", market, slot, count
    )
    return count
