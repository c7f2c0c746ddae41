"""Shared fixtures: a temp-dir JSON record store and an in-memory storage backend."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from cloudpaste.database import JsonRecordStore
from cloudpaste.errors import StorageError, StorageNotReadyError
from cloudpaste.main import app
from cloudpaste.service import PasteService, get_paste_service
from cloudpaste.storage import BackendState

BASE_URL = "http://paste.test"
STORAGE_URL = "https://storage.test/pastes"


class FakeBackend:
    """Keeps uploaded objects in a dict keyed by link."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.state = BackendState.READY
        self.fail_store = False
        self.fail_fetch = False
        self.fetches = 0

    @property
    def is_ready(self) -> bool:
        return self.state is BackendState.READY

    async def store(self, name: str, data: bytes) -> str:
        if not self.is_ready:
            raise StorageNotReadyError("not ready")
        if self.fail_store:
            raise StorageError("upload failed")
        link = f"{STORAGE_URL}/{len(self.objects)}/{name}"
        self.objects[link] = data
        return link

    async def fetch(self, link: str) -> bytes:
        self.fetches += 1
        if self.fail_fetch:
            raise StorageError("download failed")
        try:
            return self.objects[link]
        except KeyError:
            raise StorageError(f"no object at {link}")

    async def close(self) -> None:
        pass


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def store(tmp_path):
    return JsonRecordStore(str(tmp_path / "db.json"))


@pytest.fixture
def service(store, backend):
    return PasteService(store=store, backend=backend, base_url=BASE_URL)


@pytest.fixture
def client(service):
    app.dependency_overrides[get_paste_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()
