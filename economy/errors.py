# economy/errors.py
"""
Error kinds raised by the ledger.

Validation errors (InvalidAmount, InvalidAccount, SelfTransfer) are raised before
any storage I/O. InsufficientFunds and TransferAborted may come from the backend
itself, after its atomic re-check. StorageUnavailable means "unknown state": the
caller must not assume a balance changed.
"""

from __future__ import annotations
from typing import Optional


class LedgerError(Exception):
    """Base class for every ledger failure."""


class InvalidAmount(LedgerError, ValueError):
    pass


class InvalidAccount(LedgerError, ValueError):
    pass


class SelfTransfer(LedgerError, ValueError):
    def __init__(self, account_id: str):
        super().__init__(f"cannot transfer to the same account '{account_id}'")
        self.account_id = account_id


class InsufficientFunds(LedgerError):
    def __init__(self, account_id: str, needed: int, available: Optional[int] = None):
        if available is None:
            msg = f"insufficient funds in '{account_id}' (need {needed})"
        else:
            msg = f"insufficient funds in '{account_id}' (need {needed}, have {available})"
        super().__init__(msg)
        self.account_id = account_id
        self.needed = needed
        self.available = available


class AccountNotFound(LedgerError, KeyError):
    def __init__(self, account_id: str):
        super().__init__(account_id)
        self.account_id = account_id

    def __str__(self) -> str:
        return f"no such account '{self.account_id}'"


class StorageUnavailable(LedgerError):
    pass


class TransferAborted(LedgerError):
    """A transfer failed after its debit leg and was rolled back."""

    def __init__(self, source: str, destination: str, amount: int):
        super().__init__(f"transfer of {amount} from '{source}' to '{destination}' was rolled back")
        self.source = source
        self.destination = destination
        self.amount = amount
