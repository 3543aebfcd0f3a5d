# economy/ledger.py
"""
Ledger service: the one entry point callers use.

- Canonicalizes account ids (economy.accounts) before they reach storage
- Rejects bad amounts and self-transfers before any I/O
- Runs a fast optimistic funds check for debits/transfers; the backend re-checks
  atomically at mutation time, so the check never replaces the guard
- Owns its backend: close() (or leaving a `with` block) releases it
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple
import logging

from .accounts import require_id
from .backend import Backend
from .config import Settings
from .errors import AccountNotFound, InsufficientFunds, InvalidAmount, SelfTransfer

# Child logger (parent configured in economy.logs)
logger = logging.getLogger("economy.ledger")

DEFAULT_TOP = 20
# Largest exact JS integer; well inside MongoDB's 8-byte ints
MAX_AMOUNT = 2**53 - 1


def _check_amount(amount, *, allow_zero: bool = False) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"amount must be an integer, got {amount!r}")
    if amount < 0 or (amount == 0 and not allow_zero):
        raise InvalidAmount(f"amount must be greater than zero, got {amount}")
    if amount > MAX_AMOUNT:
        raise InvalidAmount(f"amount must be at most {MAX_AMOUNT}, got {amount}")
    return amount


def build_backend(settings: Settings) -> Backend:
    """Pick the storage strategy once, from configuration."""
    if settings.backend == "mongo":
        from .mongo_store import MongoStore

        return MongoStore(
            settings.mongo_url,
            settings.mongo_db,
            settings.mongo_collection,
            transactions=settings.mongo_transactions,
            timeout_ms=settings.mongo_timeout_ms,
        )
    from .file_store import FileStore

    return FileStore(settings.json_path)


class Ledger:
    def __init__(self, backend: Backend):
        self._backend = backend
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Ledger":
        settings = settings or Settings.from_env()
        logger.info(f"ledger:init backend='{settings.backend}'")
        return cls(build_backend(settings))

    @property
    def backend(self) -> Backend:
        return self._backend

    # ---------------- Queries ----------------
    def balance_of(self, account) -> int:
        """Balance of `account` (0 if it has never been credited)."""
        return self._backend.get_balance(require_id(account))

    def lookup(self, account) -> int:
        """Like balance_of, but an account with no record raises AccountNotFound."""
        key = require_id(account)
        if not self._backend.has_account(key):
            raise AccountNotFound(key)
        return self._backend.get_balance(key)

    def top_accounts(self, n: int = DEFAULT_TOP) -> List[Tuple[str, int]]:
        """Up to `n` (account_id, balance) pairs, richest first."""
        if n < 0:
            raise ValueError(f"n must be >= 0, got {n}")
        return self._backend.list_top(n)

    # ---------------- Mutations ----------------
    def credit(self, account, amount: int) -> int:
        """Add `amount` (> 0); returns the new balance."""
        amt = _check_amount(amount)
        return self._backend.increment_balance(require_id(account), amt)

    def debit(self, account, amount: int) -> int:
        """Remove `amount` (> 0) if the balance covers it; returns the new balance."""
        amt = _check_amount(amount)
        key = require_id(account)
        have = self._backend.get_balance(key)
        if have < amt:
            raise InsufficientFunds(key, amt, have)
        return self._backend.increment_balance(key, -amt)

    def set_balance(self, account, amount: int) -> None:
        """Overwrite a balance (administrative correction); amount may be 0."""
        amt = _check_amount(amount, allow_zero=True)
        self._backend.set_balance(require_id(account), amt)

    def transfer(self, source, destination, amount: int) -> None:
        amt = _check_amount(amount)
        src = require_id(source)
        dst = require_id(destination)
        if src == dst:
            raise SelfTransfer(src)
        have = self._backend.get_balance(src)
        if have < amt:
            raise InsufficientFunds(src, amt, have)
        self._backend.transfer(src, dst, amt)

    def delete_account(self, account) -> None:
        self._backend.delete_account(require_id(account))

    def reset_all(self) -> None:
        self._backend.reset_all()

    # ---------------- Lifetime ----------------
    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._backend.close()
        logger.info("ledger:closed")

    def __enter__(self) -> "Ledger":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


@contextmanager
def open_ledger(settings: Optional[Settings] = None) -> Iterator[Ledger]:
    """Build a ledger from settings and guarantee its backend is released."""
    ledger = Ledger.from_settings(settings)
    try:
        yield ledger
    finally:
        ledger.close()
