import mongomock
import pytest

from economy.file_store import FileStore
from economy.ledger import Ledger
from economy.mongo_store import MongoStore


@pytest.fixture
def json_path(tmp_path):
    return str(tmp_path / "databases" / "economy.json")


@pytest.fixture
def file_store(json_path):
    return FileStore(json_path)


@pytest.fixture
def mongo_client():
    client = mongomock.MongoClient()
    yield client
    client.close()


@pytest.fixture
def mongo_store(mongo_client):
    # mongomock has no sessions: use the compensating transfer protocol
    return MongoStore(client=mongo_client, transactions=False)


@pytest.fixture(params=["json", "mongo"])
def ledger(request, json_path, mongo_client):
    """Same ledger tests, run against both storage strategies."""
    if request.param == "json":
        backend = FileStore(json_path)
    else:
        backend = MongoStore(client=mongo_client, transactions=False)
    with Ledger(backend) as led:
        yield led
