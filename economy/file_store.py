# economy/file_store.py
"""
JSON-backed balance store.

Key features
------------
- Whole table held in memory, mirrored to one JSON file after every mutation
- One lock per store serializes read-modify-persist (no lost updates)
- Atomic writes (temp file + fsync + os.replace) to avoid partial/corrupt files
- A missing or corrupt file at startup means "start empty", never a crash

Storage format
--------------
economy.json is a flat dict of canonical account id -> balance:
{
  "ashketchum": 150,
  "misty": 40
}
"""

from __future__ import annotations
import json
import os
import threading
import tempfile
from contextlib import contextmanager
from typing import Dict, Iterator, List, Tuple
import logging

from .backend import Backend
from .errors import InsufficientFunds, StorageUnavailable

# Child logger (parent configured in economy.logs)
logger = logging.getLogger("economy.file_store")


class FileStore(Backend):
    def __init__(self, path: str):
        self.path = os.path.abspath(path)
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        self._lock = threading.Lock()
        # Published table; replaced wholesale, never mutated in place
        self._data: Dict[str, int] = self._load()

    # ---------------- Internal I/O ----------------
    def _load(self) -> Dict[str, int]:
        if not os.path.exists(self.path):
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(f"load:missing_file path='{self.path}' -> {{}}")
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.exception(f"load:json_decode_error file='{self.path}': {e}")
            return {}
        except Exception as e:
            logger.exception(f"load:error file='{self.path}': {e}")
            return {}

        if not isinstance(data, dict):
            logger.error(f"load:not_an_object file='{self.path}' type={type(data).__name__} -> {{}}")
            return {}

        # Ensure canonical types
        out: Dict[str, int] = {}
        bad = 0
        for k, v in data.items():
            if isinstance(v, bool) or not isinstance(v, int) or v < 0:
                bad += 1
                continue
            out[str(k)] = v
        if bad:
            logger.warning(f"load:skipped_entries file='{self.path}' bad={bad}")
        logger.info(f"load:ok path='{self.path}' count={len(out)} bad={bad}")
        return out

    def _atomic_write(self, data: Dict[str, int]) -> None:
        """Write JSON atomically; raises StorageUnavailable on failure."""
        dir_ = os.path.dirname(self.path) or "."
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", delete=False, dir=dir_, prefix=".economy-", suffix=".tmp", encoding="utf-8"
            ) as tmp:
                tmp_path = tmp.name
                json.dump(data, tmp, indent=2)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, self.path)
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(f"save:ok path='{self.path}' count={len(data)}")
        except OSError as e:
            logger.exception(f"save:error path='{self.path}': {e}")
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    logger.warning(f"save:tmp_cleanup_failed tmp='{tmp_path}'")
            raise StorageUnavailable(f"could not write '{self.path}'") from e

    @contextmanager
    def _mutate(self) -> Iterator[Dict[str, int]]:
        """
        Yield a private copy of the table under the lock. On normal exit the copy
        is persisted and published; on any error the published table is untouched.
        """
        with self._lock:
            draft = dict(self._data)
            yield draft
            self._atomic_write(draft)
            self._data = draft

    # ---------------- Reads ----------------
    def get_balance(self, account_id: str) -> int:
        v = self._data.get(account_id, 0)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"get_balance key='{account_id}' balance={v}")
        return v

    def has_account(self, account_id: str) -> bool:
        return account_id in self._data

    def snapshot(self) -> Dict[str, int]:
        """Copy of the whole table."""
        return dict(self._data)

    def list_top(self, n: int) -> List[Tuple[str, int]]:
        # sorted() is stable, so ties keep insertion (first-seen) order
        ranked = sorted(self._data.items(), key=lambda kv: kv[1], reverse=True)
        res = ranked[:n]
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"list_top n={n} returned={len(res)}")
        return res

    # ---------------- Mutations ----------------
    def set_balance(self, account_id: str, amount: int) -> None:
        with self._mutate() as data:
            data[account_id] = int(amount)
        logger.info(f"set_balance key='{account_id}' balance={int(amount)}")

    def increment_balance(self, account_id: str, delta: int) -> int:
        if delta == 0:
            return self.get_balance(account_id)
        with self._mutate() as data:
            cur = data.get(account_id, 0)
            if cur + delta < 0:
                logger.info(f"debit:insufficient key='{account_id}' need={-delta} have={cur}")
                raise InsufficientFunds(account_id, -delta, cur)
            data[account_id] = cur + delta
        logger.info(
            f"increment key='{account_id}' delta={delta} new={cur + delta} prev={cur}"
        )
        return cur + delta

    def transfer(self, source: str, destination: str, amount: int) -> None:
        # Both legs land in the same file write, so a crash cannot split them
        with self._mutate() as data:
            s_cur = data.get(source, 0)
            if s_cur < amount:
                logger.info(
                    f"transfer:insufficient sender_key='{source}' have={s_cur} need={amount}"
                )
                raise InsufficientFunds(source, amount, s_cur)
            data[source] = s_cur - amount
            data[destination] = data.get(destination, 0) + amount
            r_new = data[destination]
        logger.info(
            f"transfer:ok sender_key='{source}' -> receiver_key='{destination}' amt={amount} "
            f"sender_new={s_cur - amount} receiver_new={r_new}"
        )

    def delete_account(self, account_id: str) -> None:
        with self._lock:
            if account_id not in self._data:
                logger.info(f"delete:noop key='{account_id}' (not found)")
                return
            draft = dict(self._data)
            prev = draft.pop(account_id)
            self._atomic_write(draft)
            self._data = draft
        logger.info(f"delete:ok key='{account_id}' prev={prev}")

    def reset_all(self) -> None:
        with self._mutate() as data:
            count = len(data)
            data.clear()
        logger.info(f"reset_all:ok path='{self.path}' cleared={count}")
