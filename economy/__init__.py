from .accounts import to_id
from .backend import Backend
from .config import Settings, load_settings
from .errors import (
    AccountNotFound,
    InsufficientFunds,
    InvalidAccount,
    InvalidAmount,
    LedgerError,
    SelfTransfer,
    StorageUnavailable,
    TransferAborted,
)
from .file_store import FileStore
from .ledger import Ledger, open_ledger
from .logs import setup_logging

__all__ = [
    "AccountNotFound",
    "Backend",
    "FileStore",
    "InsufficientFunds",
    "InvalidAccount",
    "InvalidAmount",
    "Ledger",
    "LedgerError",
    "SelfTransfer",
    "Settings",
    "StorageUnavailable",
    "TransferAborted",
    "load_settings",
    "open_ledger",
    "setup_logging",
    "to_id",
]
