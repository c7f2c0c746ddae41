"""Tests for PasteService create/view/raw against the fake backend."""

from __future__ import annotations

import json
import random
from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from cloudpaste.errors import PasteNotFoundError, PersistenceError, StorageError
from cloudpaste.service import PasteService, new_slug, resolve_filename

from conftest import BASE_URL


def seeded_slug_factory(seed: int):
    rng = random.Random(seed)
    return lambda: rng.getrandbits(128).to_bytes(16, "big").hex()


# ---------------------------------------------------------------------------
# Slugs and filenames
# ---------------------------------------------------------------------------


def test_new_slug_is_32_hex_chars():
    slug = new_slug()
    assert len(slug) == 32
    int(slug, 16)


def test_seeded_slugs_are_distinct():
    factory = seeded_slug_factory(1234)
    slugs = [factory() for _ in range(10_000)]
    assert len(set(slugs)) == len(slugs)


def test_random_slugs_are_distinct():
    slugs = {new_slug() for _ in range(10_000)}
    assert len(slugs) == 10_000


@pytest.mark.parametrize(
    "filename, language, expected",
    [
        (None, "text", "abc.txt"),
        ("", "text", "abc.txt"),
        ("   ", "python", "abc.python"),
        (None, "python", "abc.python"),
        ("  main.py ", "python", "main.py"),
    ],
)
def test_resolve_filename(filename, language, expected):
    assert resolve_filename("abc", filename, language) == expected


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_hello_world_scenario(service, backend):
    created = await service.create(b"hello world")

    record = created.record
    assert record.language == "text"
    assert record.filename == f"{created.slug}.txt"
    assert created.url == f"{BASE_URL}/paste/{created.slug}"
    assert created.backend_url == record.storage_link
    assert backend.objects[record.storage_link] == b"hello world"

    raw = await service.raw(created.slug)
    assert raw.text == "hello world"


@pytest.mark.asyncio
async def test_create_with_language_defaults_filename(service):
    created = await service.create(b"print(1)", language="python")
    assert created.record.filename == f"{created.slug}.python"
    assert created.record.language == "python"


@pytest.mark.asyncio
async def test_create_records_utc_timestamp(service):
    created = await service.create(b"x")
    created_at = datetime.fromisoformat(created.record.created_at)
    assert created_at.utcoffset().total_seconds() == 0


@pytest.mark.parametrize(
    "content, language",
    [
        ("hello world", "text"),
        ("def f():\n    return 'ü'\n", "python"),
        ("emoji \U0001f600 and tabs\t\n\n", "markdown"),
        ("{\"a\": [1, 2, 3]}", "json"),
    ],
)
@pytest.mark.asyncio
async def test_create_then_view_returns_identical_text(service, content, language):
    created = await service.create(content.encode("utf-8"), language=language)
    paste = await service.view(created.slug)
    assert paste.text == content
    assert paste.fallback_url is None
    assert paste.record.language == language


@pytest.mark.asyncio
async def test_upload_failure_writes_no_record(service, backend, store):
    backend.fail_store = True
    with pytest.raises(StorageError):
        await service.create(b"hello")
    with open(store.path) as fh:
        assert json.load(fh) == {}


@pytest.mark.asyncio
async def test_persistence_failure_propagates(backend):
    store = AsyncMock()
    store.exists.return_value = False
    store.put.side_effect = PersistenceError("disk full")
    service = PasteService(store=store, backend=backend, base_url=BASE_URL)

    with pytest.raises(PersistenceError):
        await service.create(b"hello")
    # the upload already happened and is left orphaned
    assert len(backend.objects) == 1


@pytest.mark.asyncio
async def test_slug_collision_generates_another(store, backend):
    slugs = iter(["taken", "taken", "fresh"])
    service = PasteService(store=store, backend=backend, base_url=BASE_URL, slug_factory=lambda: next(slugs))
    first = await service.create(b"one")
    second = await service.create(b"two")
    assert first.slug == "taken"
    assert second.slug == "fresh"


@pytest.mark.asyncio
async def test_slug_collision_gives_up(store, backend):
    service = PasteService(store=store, backend=backend, base_url=BASE_URL, slug_factory=lambda: "same")
    await service.create(b"one")
    with pytest.raises(PersistenceError):
        await service.create(b"two")


# ---------------------------------------------------------------------------
# View / raw
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_unknown_slug_is_not_found(service):
    with pytest.raises(PasteNotFoundError):
        await service.view("missing")
    with pytest.raises(PasteNotFoundError):
        await service.raw("missing")


@pytest.mark.asyncio
async def test_view_is_idempotent(service, backend):
    created = await service.create(b"same every time")
    first = await service.view(created.slug)
    second = await service.view(created.slug)
    assert first.text == second.text == "same every time"
    assert first.record == second.record
    assert backend.fetches == 2


@pytest.mark.asyncio
async def test_fetch_failure_falls_back_to_link(service, backend):
    created = await service.create(b"hello")
    backend.fail_fetch = True

    paste = await service.view(created.slug)
    assert paste.text is None
    assert paste.fallback_url == created.backend_url

    raw = await service.raw(created.slug)
    assert raw.fallback_url == created.backend_url


@pytest.mark.asyncio
async def test_fetch_failure_without_redirect_policy(store, backend):
    service = PasteService(store=store, backend=backend, base_url=BASE_URL, redirect_on_fetch_failure=False)
    created = await service.create(b"hello")
    backend.fail_fetch = True
    with pytest.raises(StorageError):
        await service.view(created.slug)


@pytest.mark.asyncio
async def test_invalid_utf8_is_replaced(service):
    created = await service.create(b"ok \xff\xfe end")
    paste = await service.raw(created.slug)
    assert paste.text == "ok \ufffd\ufffd end"
