import random
from typing import List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from submission_api import repository
from submission_api.db import init_db, make_engine
from submission_api.errors import StorageError
from submission_api.main import app, get_db, get_object_store, get_scorer
from submission_api.scoring import RandomScorer
from submission_api.settings import settings
from submission_api.storage import LocalObjectStore, StoredObject

ADMIN_KEY = "test-admin-key"


class FlakyStore:
    """In-memory store that fails the n-th put (1-based)."""

    public_base_url = "http://files.test"

    def __init__(self, fail_on: int = 0):
        self.fail_on = fail_on
        self.puts = 0
        self.objects = {}
        self.deleted: List[str] = []

    def put(self, data, name, content_type):
        self.puts += 1
        if self.puts == self.fail_on:
            raise StorageError("bucket unavailable")
        key = f"assignments/{self.puts}_{name}"
        self.objects[key] = data
        return StoredObject(key=key, url=f"{self.public_base_url}/{key}")

    def delete(self, key):
        self.deleted.append(key)
        self.objects.pop(key, None)


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(tmp_path):
    return LocalObjectStore(str(tmp_path / "uploads"), "http://testserver/uploads")


@pytest.fixture
def client(session_factory, store, monkeypatch):
    monkeypatch.setattr(settings, "admin_api_key", ADMIN_KEY)

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_object_store] = lambda: store
    app.dependency_overrides[get_scorer] = lambda: RandomScorer(13, 19, random.Random(7))
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin():
    return {"X-Admin-Key": ADMIN_KEY}


@pytest.fixture
def seed_token(db):
    def _seed(value="ICT-AB12CD34"):
        repository.insert_tokens(db, [value])
        db.commit()
        return value
    return _seed
