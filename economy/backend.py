# economy/backend.py
"""
Storage contract shared by the JSON file store and the MongoDB store.

All ids passed in are already canonical (see economy.accounts). Implementations
raise StorageUnavailable on I/O or connectivity failure and never turn such a
failure into a zero balance.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import List, Tuple


class Backend(ABC):
    @abstractmethod
    def get_balance(self, account_id: str) -> int:
        """Current balance, 0 when the account has no record."""

    @abstractmethod
    def has_account(self, account_id: str) -> bool: ...

    @abstractmethod
    def set_balance(self, account_id: str, amount: int) -> None:
        """Overwrite the balance (creates the record if absent)."""

    @abstractmethod
    def increment_balance(self, account_id: str, delta: int) -> int:
        """
        Add `delta` and return the new balance.
        A negative delta only applies if the balance covers it; otherwise
        InsufficientFunds is raised and nothing changes.
        """

    @abstractmethod
    def transfer(self, source: str, destination: str, amount: int) -> None:
        """Move `amount` as one unit: both legs happen or neither does."""

    @abstractmethod
    def delete_account(self, account_id: str) -> None:
        """Remove the record; a missing account is not an error."""

    @abstractmethod
    def reset_all(self) -> None: ...

    @abstractmethod
    def list_top(self, n: int) -> List[Tuple[str, int]]:
        """Up to `n` (account_id, balance) pairs, richest first."""

    def close(self) -> None:
        """Release connections/handles. Safe to call twice."""
