# economy/mongo_store.py
"""
MongoDB-backed balance store.

One document per account: {"accountId": "<canonical id>", "balance": <int>}
Indexes: unique accountId, descending balance (for leaderboards).

There is no process-local lock here: debits are conditional atomic updates
("$inc by -amount where balance >= amount") and transfers run in a multi-document
transaction, so several ledger processes can share one database safely.
On servers without transactions (standalone mongod) transfers fall back to a
compensating protocol: debit, credit, and undo the debit if the credit fails.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple
import logging

from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from .backend import Backend
from .errors import InsufficientFunds, StorageUnavailable, TransferAborted

# Child logger (parent configured in economy.logs)
logger = logging.getLogger("economy.mongo_store")

ID_FIELD = "accountId"
BALANCE_FIELD = "balance"


@contextmanager
def _storage_errors(op: str, **ctx) -> Iterator[None]:
    """Translate driver failures into StorageUnavailable."""
    try:
        yield
    except PyMongoError as e:
        details = " ".join(f"{k}='{v}'" for k, v in ctx.items())
        logger.exception(f"{op}:db_error {details}: {e}")
        raise StorageUnavailable(f"{op} failed: {e}") from e


def _in_session(session) -> dict:
    # mongomock does not handle sessions
    return {"session": session} if session is not None else {}


class MongoStore(Backend):
    def __init__(
        self,
        url: str = "mongodb://localhost:27017",
        database: str = "pokemonshowdown",
        collection: str = "economy",
        *,
        client: Optional[MongoClient] = None,
        transactions: bool = True,
        timeout_ms: int = 5000,
    ):
        self._owns_client = client is None
        if client is None:
            client = MongoClient(url, serverSelectionTimeoutMS=timeout_ms)
        self._client = client
        self._collection = client[database][collection]
        self.transactions = transactions
        try:
            self._ensure_indexes()
        except StorageUnavailable:
            if self._owns_client:
                client.close()
            raise
        logger.info(
            f"connect:ok database='{database}' collection='{collection}' transactions={transactions}"
        )

    def _ensure_indexes(self) -> None:
        with _storage_errors("create_index"):
            self._collection.create_index([(ID_FIELD, ASCENDING)], unique=True)
            self._collection.create_index([(BALANCE_FIELD, DESCENDING)])

    # ---------------- Reads ----------------
    def get_balance(self, account_id: str) -> int:
        with _storage_errors("get_balance", key=account_id):
            doc = self._collection.find_one({ID_FIELD: account_id}, {BALANCE_FIELD: 1})
        v = int(doc.get(BALANCE_FIELD, 0)) if doc else 0
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"get_balance key='{account_id}' balance={v}")
        return v

    def has_account(self, account_id: str) -> bool:
        with _storage_errors("has_account", key=account_id):
            return self._collection.find_one({ID_FIELD: account_id}, {"_id": 1}) is not None

    def list_top(self, n: int) -> List[Tuple[str, int]]:
        if n <= 0:
            # limit(0) means "no limit" to the server
            return []
        with _storage_errors("list_top", n=n):
            cursor = (
                self._collection.find({}, {"_id": 0, ID_FIELD: 1, BALANCE_FIELD: 1})
                .sort([(BALANCE_FIELD, DESCENDING), ("_id", ASCENDING)])
                .limit(n)
            )
            res = [(d[ID_FIELD], int(d.get(BALANCE_FIELD, 0))) for d in cursor]
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"list_top n={n} returned={len(res)}")
        return res

    # ---------------- Single-document mutations ----------------
    def _credit(self, account_id: str, amount: int, session=None) -> int:
        doc = self._collection.find_one_and_update(
            {ID_FIELD: account_id},
            {"$inc": {BALANCE_FIELD: amount}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
            **_in_session(session),
        )
        return int(doc[BALANCE_FIELD])

    def _debit(self, account_id: str, amount: int, session=None) -> int:
        doc = self._collection.find_one_and_update(
            {ID_FIELD: account_id, BALANCE_FIELD: {"$gte": amount}},
            {"$inc": {BALANCE_FIELD: -amount}},
            return_document=ReturnDocument.AFTER,
            **_in_session(session),
        )
        if doc is None:
            logger.info(f"debit:insufficient key='{account_id}' need={amount}")
            raise InsufficientFunds(account_id, amount)
        return int(doc[BALANCE_FIELD])

    def set_balance(self, account_id: str, amount: int) -> None:
        with _storage_errors("set_balance", key=account_id):
            self._collection.update_one(
                {ID_FIELD: account_id}, {"$set": {BALANCE_FIELD: int(amount)}}, upsert=True
            )
        logger.info(f"set_balance key='{account_id}' balance={int(amount)}")

    def increment_balance(self, account_id: str, delta: int) -> int:
        if delta == 0:
            return self.get_balance(account_id)
        with _storage_errors("increment", key=account_id, delta=delta):
            if delta > 0:
                new = self._credit(account_id, delta)
            else:
                new = self._debit(account_id, -delta)
        logger.info(f"increment key='{account_id}' delta={delta} new={new}")
        return new

    def delete_account(self, account_id: str) -> None:
        with _storage_errors("delete", key=account_id):
            result = self._collection.delete_one({ID_FIELD: account_id})
        if result.deleted_count == 0:
            logger.info(f"delete:noop key='{account_id}' (not found)")
        else:
            logger.info(f"delete:ok key='{account_id}'")

    def reset_all(self) -> None:
        with _storage_errors("reset_all"):
            self._collection.drop()
        self._ensure_indexes()
        logger.info(f"reset_all:ok collection='{self._collection.name}'")

    # ---------------- Transfers ----------------
    def transfer(self, source: str, destination: str, amount: int) -> None:
        if self.transactions:
            self._transfer_in_transaction(source, destination, amount)
        else:
            self._transfer_compensated(source, destination, amount)
        logger.info(
            f"transfer:ok sender_key='{source}' -> receiver_key='{destination}' amt={amount}"
        )

    def _transfer_in_transaction(self, source: str, destination: str, amount: int) -> None:
        with _storage_errors("transfer:session", sender=source):
            session = self._client.start_session()
        with session:
            with _storage_errors("transfer:start", sender=source):
                session.start_transaction()
            debited = False
            try:
                self._debit(source, amount, session=session)
                debited = True
                result = self._collection.update_one(
                    {ID_FIELD: destination},
                    {"$inc": {BALANCE_FIELD: amount}},
                    upsert=True,
                    session=session,
                )
                if result.matched_count == 0 and result.upserted_id is None:
                    raise StorageUnavailable(f"recipient '{destination}' was not updated")
            except (PyMongoError, StorageUnavailable) as e:
                session.abort_transaction()
                logger.exception(
                    f"transfer:aborted sender_key='{source}' receiver_key='{destination}' "
                    f"amt={amount} debited={debited}: {e}"
                )
                if debited:
                    raise TransferAborted(source, destination, amount) from e
                raise StorageUnavailable(f"transfer failed: {e}") from e
            except InsufficientFunds:
                session.abort_transaction()
                raise

            with _storage_errors("transfer:commit", sender=source, receiver=destination):
                session.commit_transaction()

    def _transfer_compensated(self, source: str, destination: str, amount: int) -> None:
        with _storage_errors("transfer:debit", sender=source):
            self._debit(source, amount)
        try:
            self._credit(destination, amount)
        except PyMongoError as e:
            logger.exception(
                f"transfer:credit_failed receiver_key='{destination}' amt={amount}, undoing debit: {e}"
            )
            try:
                self._credit(source, amount)
            except PyMongoError as undo_err:
                logger.critical(
                    f"transfer:undo_failed sender_key='{source}' amt={amount} "
                    f"receiver_key='{destination}': {undo_err}"
                )
                raise StorageUnavailable(
                    f"transfer from '{source}' left unreconciled after credit failure"
                ) from undo_err
            raise TransferAborted(source, destination, amount) from e

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            logger.info("close:ok")
        self._client = None
