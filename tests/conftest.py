from collections.abc import Iterator

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from auth import get_current_user_id
from database import ensure_indexes, get_db
from main import app


@pytest.fixture
def db():
    client = mongomock.MongoClient()
    database = client["devconnector_test"]
    ensure_indexes(database)
    yield database
    client.close()


@pytest.fixture
def user(db) -> str:
    result = db["user"].insert_one(
        {
            "name": "Ada Lovelace",
            "email": "ada@example.com",
            "avatar": "https://gravatar.com/avatar/ada",
        }
    )
    return str(result.inserted_id)


@pytest.fixture
def other_user(db) -> str:
    result = db["user"].insert_one(
        {"name": "Grace Hopper", "email": "grace@example.com", "avatar": ""}
    )
    return str(result.inserted_id)


@pytest.fixture
def test_client(db) -> Iterator[TestClient]:
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def authorized_client(test_client, user) -> Iterator[TestClient]:
    app.dependency_overrides[get_current_user_id] = lambda: user
    yield test_client
    app.dependency_overrides.pop(get_current_user_id, None)


@pytest.fixture
def missing_id() -> str:
    return str(ObjectId())
