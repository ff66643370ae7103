"""Execution environment contract and the LiteSVM-backed implementation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence

from solders.account import Account
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.litesvm import LiteSVM
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from solders.transaction_metadata import FailedTransactionMetadata

from .config import PROGRAM_PATH, SOLFI_PROGRAM_ID
from .exceptions import SetupError, TransactionRejected
from .snapshot import SnapshotAccount, SnapshotStore


class ExecutionEnvironment(Protocol):
    """Capabilities the simulator needs from a forked ledger."""

    def set_account(self, address: Pubkey, account: Account) -> None: ...

    def add_program(self, program_id: Pubkey, bytecode: bytes) -> None: ...

    def warp_to(self, slot: int) -> None: ...

    def get_account(self, address: Pubkey) -> Optional[Account]: ...

    def airdrop(self, address: Pubkey, lamports: int) -> None: ...

    def latest_blockhash(self) -> Hash: ...

    def send_transaction(self, tx: Transaction) -> object:
        """Execute ``tx``; raise ``TransactionRejected`` when it fails."""
        ...


class LiteSvmEnvironment:
    """Adapter over ``solders.litesvm.LiteSVM``."""

    def __init__(self) -> None:
        self._svm = LiteSVM()

    def set_account(self, address: Pubkey, account: Account) -> None:
        self._svm.set_account(address, account)

    def add_program(self, program_id: Pubkey, bytecode: bytes) -> None:
        self._svm.add_program(program_id, bytecode)

    def warp_to(self, slot: int) -> None:
        self._svm.warp_to_slot(slot)

    def get_account(self, address: Pubkey) -> Optional[Account]:
        return self._svm.get_account(address)

    def airdrop(self, address: Pubkey, lamports: int) -> None:
        result = self._svm.airdrop(address, lamports)
        if isinstance(result, FailedTransactionMetadata):
            raise SetupError(f"failed to airdrop SOL: {result.err()}")

    def latest_blockhash(self) -> Hash:
        return self._svm.latest_blockhash()

    def send_transaction(self, tx: Transaction) -> object:
        result = self._svm.send_transaction(tx)
        if isinstance(result, FailedTransactionMetadata):
            raise TransactionRejected(str(result.err()), list(result.meta().logs()))
        return result


EnvironmentFactory = Callable[[], ExecutionEnvironment]


def read_program(path: Path = PROGRAM_PATH) -> bytes:
    try:
        bytecode = Path(path).read_bytes()
    except OSError as exc:
        raise SetupError(f"Cannot read program bytecode {path}: {exc}") from exc
    if not bytecode:
        raise SetupError(f"Program bytecode {path} is empty")
    return bytecode


@dataclass
class EnvironmentSeed:
    """Snapshot accounts plus program bytecode used to build fresh environments."""

    accounts: List[SnapshotAccount]
    bytecode: bytes
    program_id: Pubkey = SOLFI_PROGRAM_ID

    @classmethod
    def load(cls, store: SnapshotStore, program_path: Path = PROGRAM_PATH) -> "EnvironmentSeed":
        return cls(accounts=store.read_all(), bytecode=read_program(program_path))

    def build(self, factory: EnvironmentFactory = LiteSvmEnvironment) -> ExecutionEnvironment:
        env = factory()
        for snapshot in self.accounts:
            env.set_account(snapshot.address, snapshot.account)
        env.add_program(self.program_id, self.bytecode)
        logging.debug("Seeded environment with %d accounts", len(self.accounts))
        return env


def submit(env: ExecutionEnvironment, instructions: Sequence[Instruction], signer: Keypair) -> object:
    tx = Transaction.new_signed_with_payer(
        list(instructions), signer.pubkey(), [signer], env.latest_blockhash()
    )
    return env.send_transaction(tx)
