from unittest import mock

import pytest
from pymongo.errors import AutoReconnect, OperationFailure

from economy import InsufficientFunds, StorageUnavailable, TransferAborted
from economy.mongo_store import MongoStore


def test_documents_and_indexes(mongo_store, mongo_client):
    mongo_store.increment_balance("ash", 10)
    coll = mongo_client["pokemonshowdown"]["economy"]
    doc = coll.find_one({"accountId": "ash"}, {"_id": 0})
    assert doc == {"accountId": "ash", "balance": 10}

    keys = [list(ix["key"]) for ix in coll.index_information().values()]
    assert [("accountId", 1)] in keys
    assert [("balance", -1)] in keys


def test_credit_upserts_and_increments(mongo_store):
    assert mongo_store.get_balance("ash") == 0
    assert not mongo_store.has_account("ash")
    assert mongo_store.increment_balance("ash", 25) == 25
    assert mongo_store.increment_balance("ash", 5) == 30
    assert mongo_store.has_account("ash")


def test_conditional_debit(mongo_store):
    mongo_store.increment_balance("ash", 10)
    assert mongo_store.increment_balance("ash", -4) == 6
    with pytest.raises(InsufficientFunds):
        mongo_store.increment_balance("ash", -7)
    assert mongo_store.get_balance("ash") == 6
    with pytest.raises(InsufficientFunds):
        mongo_store.increment_balance("ghost", -1)
    assert not mongo_store.has_account("ghost")


def test_set_delete_reset(mongo_store, mongo_client):
    mongo_store.set_balance("ash", 12)
    mongo_store.set_balance("misty", 3)
    assert mongo_store.get_balance("ash") == 12

    mongo_store.delete_account("ash")
    mongo_store.delete_account("ash")
    assert mongo_store.get_balance("ash") == 0

    mongo_store.reset_all()
    assert mongo_store.list_top(10) == []
    coll = mongo_client["pokemonshowdown"]["economy"]
    keys = [list(ix["key"]) for ix in coll.index_information().values()]
    assert [("balance", -1)] in keys
    # usable again after the drop
    assert mongo_store.increment_balance("misty", 1) == 1


def test_list_top(mongo_store):
    for name, amt in [("a", 3), ("b", 9), ("c", 9), ("d", 1)]:
        mongo_store.increment_balance(name, amt)
    assert mongo_store.list_top(3) == [("b", 9), ("c", 9), ("a", 3)]
    assert mongo_store.list_top(0) == []


def test_compensated_transfer(mongo_store):
    mongo_store.increment_balance("ash", 50)
    mongo_store.transfer("ash", "misty", 20)
    assert mongo_store.get_balance("ash") == 30
    assert mongo_store.get_balance("misty") == 20
    with pytest.raises(InsufficientFunds):
        mongo_store.transfer("ash", "misty", 31)
    assert mongo_store.get_balance("ash") == 30


def test_compensated_transfer_undoes_debit(mongo_store):
    mongo_store.increment_balance("ash", 50)
    real_credit = mongo_store._credit

    def flaky_credit(account_id, amount, session=None):
        if account_id == "misty":
            raise AutoReconnect("connection lost")
        return real_credit(account_id, amount, session)

    with mock.patch.object(mongo_store, "_credit", side_effect=flaky_credit):
        with pytest.raises(TransferAborted):
            mongo_store.transfer("ash", "misty", 20)
    assert mongo_store.get_balance("ash") == 50
    assert mongo_store.get_balance("misty") == 0


def test_compensated_transfer_undo_failure_is_unavailable(mongo_store, caplog):
    mongo_store.increment_balance("ash", 50)
    with mock.patch.object(mongo_store, "_credit", side_effect=AutoReconnect("down")):
        with pytest.raises(StorageUnavailable):
            mongo_store.transfer("ash", "misty", 20)
    assert "transfer:undo_failed" in caplog.text


def test_driver_errors_become_storage_unavailable(mongo_store):
    with mock.patch.object(
        mongo_store._collection, "find_one", side_effect=AutoReconnect("down")
    ):
        with pytest.raises(StorageUnavailable):
            mongo_store.get_balance("ash")


def test_close_only_owned_client(mongo_client):
    store = MongoStore(client=mongo_client)
    with mock.patch.object(mongo_client, "close") as close:
        store.close()
    close.assert_not_called()


def test_owned_client_closed_when_startup_fails():
    client = mock.MagicMock()
    coll = client.__getitem__.return_value.__getitem__.return_value
    coll.create_index.side_effect = AutoReconnect("no server")

    with mock.patch("economy.mongo_store.MongoClient", return_value=client):
        with pytest.raises(StorageUnavailable):
            MongoStore("mongodb://unreachable:27017")
    client.close.assert_called_once()


def test_injected_client_left_open_when_startup_fails():
    client = mock.MagicMock()
    coll = client.__getitem__.return_value.__getitem__.return_value
    coll.create_index.side_effect = AutoReconnect("no server")

    with pytest.raises(StorageUnavailable):
        MongoStore(client=client)
    client.close.assert_not_called()


# ---------------- Transactional transfers (mocked driver) ----------------

@pytest.fixture
def txn():
    client = mock.MagicMock()
    coll = mock.MagicMock()
    client.__getitem__.return_value.__getitem__.return_value = coll
    session = mock.MagicMock()
    session.__enter__.return_value = session
    client.start_session.return_value = session
    store = MongoStore(client=client, transactions=True)
    return store, coll, session


def test_transaction_commits(txn):
    store, coll, session = txn
    coll.find_one_and_update.return_value = {"accountId": "ash", "balance": 30}
    coll.update_one.return_value = mock.Mock(matched_count=0, upserted_id="x")

    store.transfer("ash", "misty", 20)

    session.start_transaction.assert_called_once()
    session.commit_transaction.assert_called_once()
    session.abort_transaction.assert_not_called()
    debit_filter = coll.find_one_and_update.call_args[0][0]
    assert debit_filter == {"accountId": "ash", "balance": {"$gte": 20}}
    assert coll.find_one_and_update.call_args[1]["session"] is session
    assert coll.update_one.call_args[1]["session"] is session
    assert coll.update_one.call_args[1]["upsert"] is True


def test_transaction_insufficient_aborts(txn):
    store, coll, session = txn
    coll.find_one_and_update.return_value = None

    with pytest.raises(InsufficientFunds):
        store.transfer("ash", "misty", 20)
    session.abort_transaction.assert_called_once()
    session.commit_transaction.assert_not_called()
    coll.update_one.assert_not_called()


def test_transaction_credit_failure_rolls_back(txn):
    store, coll, session = txn
    coll.find_one_and_update.return_value = {"accountId": "ash", "balance": 30}
    coll.update_one.side_effect = OperationFailure("write conflict")

    with pytest.raises(TransferAborted) as exc:
        store.transfer("ash", "misty", 20)
    assert exc.value.source == "ash"
    assert exc.value.amount == 20
    session.abort_transaction.assert_called_once()
    session.commit_transaction.assert_not_called()


def test_transaction_debit_error_is_unavailable(txn):
    store, coll, session = txn
    coll.find_one_and_update.side_effect = AutoReconnect("down")

    with pytest.raises(StorageUnavailable):
        store.transfer("ash", "misty", 20)
    session.abort_transaction.assert_called_once()


def test_transaction_commit_failure_is_unavailable(txn):
    store, coll, session = txn
    coll.find_one_and_update.return_value = {"accountId": "ash", "balance": 30}
    coll.update_one.return_value = mock.Mock(matched_count=1, upserted_id=None)
    session.commit_transaction.side_effect = AutoReconnect("down")

    with pytest.raises(StorageUnavailable):
        store.transfer("ash", "misty", 20)
