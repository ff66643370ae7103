"""Flat per-account snapshot files and the fetch metadata record."""
from __future__ import annotations

import base64
import json
import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from solders.account import Account
from solders.pubkey import Pubkey

from .config import DATA_DIR, GENERATION_MARKER_OFFSET
from .exceptions import SetupError

METADATA_FILE = "fetch_metadata.json"


@dataclass
class SnapshotAccount:
    address: Pubkey
    account: Account

    def to_json(self) -> dict:
        return {
            "address": str(self.address),
            "lamports": self.account.lamports,
            "owner": str(self.account.owner),
            "data_base64": base64.b64encode(bytes(self.account.data)).decode(),
            "executable": self.account.executable,
            "rent_epoch": self.account.rent_epoch,
        }

    @classmethod
    def from_json(cls, payload: dict) -> "SnapshotAccount":
        return cls(
            address=Pubkey.from_string(payload["address"]),
            account=Account(
                lamports=int(payload["lamports"]),
                data=base64.b64decode(payload["data_base64"]),
                owner=Pubkey.from_string(payload["owner"]),
                executable=bool(payload.get("executable", False)),
                rent_epoch=int(payload.get("rent_epoch", 0)),
            ),
        )


@dataclass
class FetchMetadata:
    slot: int


def u64_at_offset(data: bytes, offset: int) -> int:
    if len(data) < offset + 8:
        raise SetupError(f"account data is {len(data)} bytes, need {offset + 8} to read u64 at {offset}")
    return struct.unpack_from("<Q", data, offset)[0]


class SnapshotStore:
    """Directory of ``account_<address>.json`` files plus ``fetch_metadata.json``."""

    def __init__(self, root: Path = DATA_DIR):
        self.root = Path(root)

    def account_path(self, address: Pubkey) -> Path:
        return self.root / f"account_{address}.json"

    @property
    def metadata_path(self) -> Path:
        return self.root / METADATA_FILE

    def save_account(self, snapshot: SnapshotAccount) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.account_path(snapshot.address)
        path.write_text(json.dumps(snapshot.to_json(), indent=2))
        logging.debug("Snapshot saved to %s", path)
        return path

    def save_accounts(self, snapshots: Iterable[SnapshotAccount]) -> int:
        count = 0
        for snapshot in snapshots:
            self.save_account(snapshot)
            count += 1
        return count

    def read_account(self, address: Pubkey) -> SnapshotAccount:
        return self._read_file(self.account_path(address))

    def find_account(self, address: Pubkey) -> Optional[SnapshotAccount]:
        path = self.account_path(address)
        if not path.exists():
            return None
        return self._read_file(path)

    def read_all(self) -> List[SnapshotAccount]:
        if not self.root.is_dir():
            raise SetupError(f"Snapshot directory not found: {self.root}")
        accounts = [self._read_file(path) for path in sorted(self.root.glob("account_*.json"))]
        logging.debug("Loaded %d snapshot accounts from %s", len(accounts), self.root)
        return accounts

    def save_metadata(self, metadata: FetchMetadata) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.metadata_path.write_text(json.dumps({"slot": metadata.slot}, indent=2))

    def read_metadata(self) -> Optional[FetchMetadata]:
        if not self.metadata_path.exists():
            return None
        try:
            payload = json.loads(self.metadata_path.read_text())
            return FetchMetadata(slot=int(payload["slot"]))
        except (ValueError, KeyError) as exc:
            raise SetupError(f"Malformed metadata file {self.metadata_path}: {exc}") from exc

    def generation_slot(self, market: Pubkey) -> Optional[int]:
        """Slot recorded in the market's generation marker, if its snapshot exists."""
        snapshot = self.find_account(market)
        if snapshot is None:
            return None
        return u64_at_offset(bytes(snapshot.account.data), GENERATION_MARKER_OFFSET)

    def _read_file(self, path: Path) -> SnapshotAccount:
        if not path.exists():
            raise SetupError(f"Snapshot file not found: {path}")
        try:
            return SnapshotAccount.from_json(json.loads(path.read_text()))
        except (ValueError, KeyError, TypeError) as exc:
            raise SetupError(f"Malformed snapshot file {path}: {exc}") from exc
