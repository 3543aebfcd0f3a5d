# economy/config.py
"""
Ledger configuration from environment variables (optionally loaded from a .env file).

The backend choice is made once, when the ledger is built; it never changes
for the lifetime of the process.
"""

from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

BACKENDS = ("json", "mongo")


def _env_flag(name: str, default: str) -> bool:
    return (os.getenv(name, default) or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    backend: str = "json"
    data_dir: str = "./databases"
    json_file: str = "economy.json"
    mongo_url: str = "mongodb://localhost:27017"
    mongo_db: str = "pokemonshowdown"
    mongo_collection: str = "economy"
    mongo_transactions: bool = True
    mongo_timeout_ms: int = 5000
    log_level: str = "INFO"
    log_file: str = "economy.log"

    def __post_init__(self):
        if self.backend not in BACKENDS:
            raise ValueError(f"ECONOMY_BACKEND must be one of {BACKENDS}, got {self.backend!r}")

    @property
    def json_path(self) -> str:
        # os.path.join keeps an absolute json_file as-is
        return os.path.join(self.data_dir, self.json_file)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            backend=(os.getenv("ECONOMY_BACKEND", "json") or "json").strip().lower(),
            data_dir=os.getenv("DATA_DIR", "./databases"),
            json_file=os.getenv("ECONOMY_FILE", "economy.json"),
            mongo_url=os.getenv("MONGO_URL", "mongodb://localhost:27017"),
            mongo_db=os.getenv("MONGO_DB", "pokemonshowdown"),
            mongo_collection=os.getenv("MONGO_COLLECTION", "economy"),
            mongo_transactions=_env_flag("MONGO_TRANSACTIONS", "1"),
            mongo_timeout_ms=int(os.getenv("MONGO_TIMEOUT_MS", "5000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("LOG_FILE", "economy.log"),
        )


def load_settings(dotenv_path: Optional[Union[str, Path]] = None) -> Settings:
    """Load .env (if any) into the environment, then read Settings from it."""
    load_dotenv(dotenv_path=dotenv_path, override=True)
    return Settings.from_env()
