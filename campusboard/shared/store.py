"""Document store interface.

Documents are addressed by slash-joined paths in the Firestore manner:
``<collection>/<docId>[/<subcollection>/<docId>...]``. A
:class:`CollectionQuery` selects one collection, or every collection whose
last path segment has a given name (a collection group).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from campusboard.specs.common.errors import ConfigurationError

SnapshotListener = Callable[[List["RawDocument"]], None]
ErrorListener = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


def split_path(path: str) -> List[str]:
    return [segment for segment in (path or "").strip("/").split("/") if segment]


def join_path(*segments: str) -> str:
    return "/".join(s.strip("/") for s in segments if s)


def parent_of(path: str) -> str:
    return "/".join(split_path(path)[:-1])


def is_document_path(path: str) -> bool:
    segments = split_path(path)
    return bool(segments) and len(segments) % 2 == 0


def is_collection_path(path: str) -> bool:
    return len(split_path(path)) % 2 == 1


@dataclass(frozen=True)
class RawDocument:
    """A stored document as returned by the backend, before any mapping."""

    id: str
    path: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def parent_path(self) -> str:
        return parent_of(self.path)

    @property
    def segments(self) -> List[str]:
        return split_path(self.path)


@dataclass(frozen=True)
class CollectionQuery:
    collection: str
    group: bool = False
    order_by: Optional[str] = None
    descending: bool = True

    def matches(self, doc_path: str) -> bool:
        parent = split_path(parent_of(doc_path))
        if self.group:
            return bool(parent) and parent[-1] == self.collection
        return parent == split_path(self.collection)

    @property
    def collection_name(self) -> str:
        return split_path(self.collection)[-1]


def order_value(value: Any) -> Tuple[int, Any]:
    """Sort key across mixed stored types: null < numbers < strings < timestamps."""
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, datetime):
        return (3, value.timestamp())
    return (4, repr(value))


def sort_documents(docs: List[RawDocument], query: CollectionQuery) -> List[RawDocument]:
    docs = sorted(docs, key=lambda d: d.path)
    if query.order_by:
        docs.sort(key=lambda d: order_value(d.data.get(query.order_by)), reverse=query.descending)
    return docs


class DocumentStore(ABC):
    """Point reads and writes, ordered queries and push subscriptions."""

    @abstractmethod
    def get(self, path: str) -> Optional[RawDocument]:
        ...

    @abstractmethod
    def add(self, collection_path: str, data: Dict[str, Any]) -> RawDocument:
        """Create a document with a store-assigned id."""

    @abstractmethod
    def set(self, path: str, data: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def update(self, path: str, fields: Dict[str, Any]) -> None:
        """Merge ``fields`` into an existing document.

        Raises :class:`ResourceNotFoundError` when the document is missing.
        """

    @abstractmethod
    def delete(self, path: str) -> None:
        """Remove a document; deleting a missing document is not an error."""

    @abstractmethod
    def query(self, query: CollectionQuery) -> List[RawDocument]:
        ...

    @abstractmethod
    def watch(
        self,
        query: CollectionQuery,
        listener: SnapshotListener,
        on_error: Optional[ErrorListener] = None,
    ) -> Unsubscribe:
        """Deliver the full ordered result now and after every change.

        The returned callable stops delivery and may be called more than once.
        """


def create_document_store(settings) -> DocumentStore:
    """Build the store named by ``settings.store``."""
    if settings.store == "memory":
        from campusboard.shared.store_memory import MemoryDocumentStore

        return MemoryDocumentStore()
    if settings.store == "cosmos":
        from campusboard.shared.store_cosmos import CosmosDocumentStore

        return CosmosDocumentStore(settings)
    raise ConfigurationError(f"Unknown document store '{settings.store}'")
