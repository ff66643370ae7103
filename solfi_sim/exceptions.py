"""Typed errors raised by the simulator."""
from __future__ import annotations

from typing import List, Optional


class SolfiSimError(Exception):
    """Base exception for the simulator."""


class InputError(SolfiSimError, ValueError):
    """Malformed address or inconsistent argument combination."""


class SetupError(SolfiSimError):
    """Snapshot files, program bytecode or environment seeding failed."""


class DecodeError(SolfiSimError, ValueError):
    """Account bytes matching none of the supported token standards."""


class TransactionRejected(SolfiSimError):
    """The execution environment refused a submitted transaction."""

    def __init__(self, message: str, logs: Optional[List[str]] = None):
        super().__init__(message)
        self.logs = list(logs or [])
