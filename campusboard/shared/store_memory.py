import copy
import threading
import uuid
from typing import Any, Dict, List, Optional, Tuple

from campusboard.shared.logging_utils import debug as log_debug, error as log_error
from campusboard.shared.store import (
    CollectionQuery,
    DocumentStore,
    ErrorListener,
    RawDocument,
    SnapshotListener,
    Unsubscribe,
    is_collection_path,
    is_document_path,
    join_path,
    sort_documents,
    split_path,
)
from campusboard.specs.common.errors import ResourceNotFoundError


class MemoryDocumentStore(DocumentStore):
    """Process-local store used for development and tests.

    Watchers receive their first snapshot synchronously inside :meth:`watch`
    and a fresh full snapshot after each write that touches their query.
    """

    def __init__(self) -> None:
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._watchers: Dict[int, Tuple[CollectionQuery, SnapshotListener, Optional[ErrorListener]]] = {}
        self._next_token = 0
        self._lock = threading.RLock()

    def get(self, path: str) -> Optional[RawDocument]:
        with self._lock:
            data = self._docs.get(join_path(*split_path(path)))
            if data is None:
                return None
            return self._raw(path, data)

    def add(self, collection_path: str, data: Dict[str, Any]) -> RawDocument:
        if not is_collection_path(collection_path):
            raise ValueError(f"'{collection_path}' is not a collection path")
        doc_id = uuid.uuid4().hex
        path = join_path(collection_path, doc_id)
        self.set(path, data)
        return self._raw(path, data)

    def set(self, path: str, data: Dict[str, Any]) -> None:
        path = self._document_path(path)
        with self._lock:
            self._docs[path] = copy.deepcopy(dict(data))
        log_debug(path, "memory_store:set")
        self._notify(path)

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        path = self._document_path(path)
        with self._lock:
            current = self._docs.get(path)
            if current is None:
                raise ResourceNotFoundError("Document", path)
            current.update(copy.deepcopy(dict(fields)))
        log_debug(path, "memory_store:update", fields=sorted(fields))
        self._notify(path)

    def delete(self, path: str) -> None:
        path = self._document_path(path)
        with self._lock:
            existed = self._docs.pop(path, None) is not None
        if existed:
            log_debug(path, "memory_store:delete")
            self._notify(path)

    def query(self, query: CollectionQuery) -> List[RawDocument]:
        with self._lock:
            docs = [self._raw(path, data) for path, data in self._docs.items() if query.matches(path)]
        return sort_documents(docs, query)

    def watch(
        self,
        query: CollectionQuery,
        listener: SnapshotListener,
        on_error: Optional[ErrorListener] = None,
    ) -> Unsubscribe:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._watchers[token] = (query, listener, on_error)

        def unsubscribe() -> None:
            with self._lock:
                self._watchers.pop(token, None)

        self._deliver(query, listener, on_error)
        return unsubscribe

    def _notify(self, path: str) -> None:
        with self._lock:
            targets = [w for w in self._watchers.values() if w[0].matches(path)]
        for query, listener, on_error in targets:
            self._deliver(query, listener, on_error)

    def _deliver(self, query: CollectionQuery, listener: SnapshotListener, on_error: Optional[ErrorListener]) -> None:
        snapshot = self.query(query)
        try:
            listener(snapshot)
        except Exception as exc:
            # the write itself succeeded; report to the watcher instead of the writer
            log_error(query.collection, "memory_store:listener_failed", error=str(exc))
            if on_error is not None:
                on_error(exc)

    @staticmethod
    def _document_path(path: str) -> str:
        if not is_document_path(path):
            raise ValueError(f"'{path}' is not a document path")
        return join_path(*split_path(path))

    @staticmethod
    def _raw(path: str, data: Dict[str, Any]) -> RawDocument:
        segments = split_path(path)
        return RawDocument(id=segments[-1], path="/".join(segments), data=copy.deepcopy(data))
