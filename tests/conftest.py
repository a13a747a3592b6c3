from __future__ import annotations

import io
from datetime import datetime, timezone
from typing import Iterable
from zoneinfo import ZoneInfo

import pytest
from PIL import Image

from campusboard.services.owners import OwnerDirectory
from campusboard.shared.blob_store import MemoryBlobStore
from campusboard.shared.clock import fixed_clock
from campusboard.shared.store_memory import MemoryDocumentStore

TOKYO = ZoneInfo("Asia/Tokyo")
NOW = datetime(2024, 5, 20, 3, 0, tzinfo=timezone.utc)  # 12:00 in Tokyo


class FlakyStore(MemoryDocumentStore):
    """Memory store whose named methods raise until ``fail_on`` is cleared."""

    def __init__(self, fail_on: Iterable[str] = ()):
        super().__init__()
        self.fail_on = set(fail_on)
        self.calls = []

    def _maybe_fail(self, name: str, *args) -> None:
        self.calls.append((name,) + args)
        if name in self.fail_on:
            raise RuntimeError(f"{name} unavailable")

    def get(self, path):
        self._maybe_fail("get", path)
        return super().get(path)

    def add(self, collection_path, data):
        self._maybe_fail("add", collection_path)
        return super().add(collection_path, data)

    def update(self, path, fields):
        self._maybe_fail("update", path)
        return super().update(path, fields)

    def delete(self, path):
        self._maybe_fail("delete", path)
        return super().delete(path)

    def query(self, query):
        self._maybe_fail("query", query.collection)
        return super().query(query)


@pytest.fixture
def clock():
    return fixed_clock(NOW)


@pytest.fixture
def store() -> FlakyStore:
    store = FlakyStore()
    store.set("companies/A", {"name": "Acme Corp", "logo": "https://cdn.example.com/acme.png"})
    store.set("companies/C", {"name": "Contoso"})
    store.set("media-group/B", {"name": "Campus Press"})
    return store


@pytest.fixture
def blobs() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def owners(store) -> OwnerDirectory:
    return OwnerDirectory(store)


@pytest.fixture
def png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color=(200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()
