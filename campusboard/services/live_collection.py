"""
Live read models over a store query.

A :class:`Subscription` owns one store watch. Every delivery from the store
is a complete ordered result set; it is mapped record by record and replaces
the previous list wholesale. Consumers either register a callback or iterate
the subscription, which yields the newest unseen :class:`Snapshot` and stops
once the subscription is cancelled.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, tzinfo
from functools import partial
from typing import Callable, Generic, Iterator, List, Optional, Tuple, TypeVar

from campusboard.services.record_mapper import MappingResult, map_article, map_documents, map_notification
from campusboard.shared.clock import Clock, utc_now
from campusboard.shared.config import ARTICLES_COLLECTION, DEFAULT_NOTIFICATIONS_COLLECTION
from campusboard.shared.logging_utils import error as log_error, info as log_info
from campusboard.shared.store import CollectionQuery, DocumentStore, RawDocument
from campusboard.specs.models.domain import Article, Notification

T = TypeVar("T")

ARTICLES_QUERY = CollectionQuery(ARTICLES_COLLECTION, group=True, order_by="date", descending=True)


def notifications_query(collection: str = DEFAULT_NOTIFICATIONS_COLLECTION) -> CollectionQuery:
    return CollectionQuery(collection, order_by="createdAt", descending=True)


@dataclass(frozen=True)
class Snapshot(Generic[T]):
    items: Tuple[T, ...]
    version: int
    received_at: datetime


class Subscription(Generic[T]):
    def __init__(
        self,
        store: DocumentStore,
        query: CollectionQuery,
        mapper: Callable[[RawDocument], MappingResult[T]],
        callback: Optional[Callable[[List[T]], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        clock: Clock = utc_now,
    ):
        self.query = query
        self._mapper = mapper
        self._callback = callback
        self._on_error = on_error
        self._clock = clock
        self._cond = threading.Condition()
        self._snapshot: Optional[Snapshot[T]] = None
        self._cancelled = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.last_error: Optional[Exception] = None

        unsubscribe = store.watch(query, self._handle_snapshot, self._handle_error)
        with self._cond:
            if self._cancelled:
                unsubscribe()
            else:
                self._unsubscribe = unsubscribe
        log_info(query.collection, "live:subscribed", group=query.group)

    @property
    def items(self) -> List[T]:
        with self._cond:
            return list(self._snapshot.items) if self._snapshot else []

    @property
    def loaded(self) -> bool:
        with self._cond:
            return self._snapshot is not None

    @property
    def version(self) -> int:
        with self._cond:
            return self._snapshot.version if self._snapshot else 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _handle_snapshot(self, docs: List[RawDocument]) -> None:
        if self._cancelled:
            return
        entities = map_documents(docs, self._mapper)
        with self._cond:
            if self._cancelled:
                return
            version = self._snapshot.version + 1 if self._snapshot else 1
            self._snapshot = Snapshot(tuple(entities), version, self._clock())
            self.last_error = None
            self._cond.notify_all()
        if self._callback is not None and not self._cancelled:
            self._callback(list(entities))

    def _handle_error(self, exc: Exception) -> None:
        if self._cancelled:
            return
        log_error(self.query.collection, "live:delivery_failed", error=str(exc))
        self.last_error = exc
        if self._on_error is not None:
            self._on_error(exc)

    def cancel(self) -> None:
        """Stop delivery and release the store watch. Safe to call repeatedly."""
        with self._cond:
            if self._cancelled:
                return
            self._cancelled = True
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            self._cond.notify_all()
        if unsubscribe is not None:
            unsubscribe()
        log_info(self.query.collection, "live:cancelled")

    def wait(self, after_version: int = 0, timeout: Optional[float] = None) -> Optional[Snapshot[T]]:
        """Block until a snapshot newer than ``after_version`` arrives.

        Returns ``None`` on timeout or once cancelled.
        """
        with self._cond:
            self._cond.wait_for(
                lambda: self._cancelled or (self._snapshot is not None and self._snapshot.version > after_version),
                timeout=timeout,
            )
            if self._cancelled or self._snapshot is None or self._snapshot.version <= after_version:
                return None
            return self._snapshot

    def __iter__(self) -> Iterator[Snapshot[T]]:
        seen = 0
        while True:
            snapshot = self.wait(seen)
            if snapshot is None:
                return
            seen = snapshot.version
            yield snapshot

    def __enter__(self) -> "Subscription[T]":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()


def subscribe_articles(
    store: DocumentStore,
    callback: Optional[Callable[[List[Article]], None]] = None,
    on_error: Optional[Callable[[Exception], None]] = None,
    *,
    now: Clock = utc_now,
    tz: Optional[tzinfo] = None,
) -> Subscription[Article]:
    """Every owner's ``news`` sub-collection, newest ``date`` first."""
    return Subscription(store, ARTICLES_QUERY, partial(map_article, now=now, tz=tz), callback, on_error, now)


def subscribe_notifications(
    store: DocumentStore,
    callback: Optional[Callable[[List[Notification]], None]] = None,
    on_error: Optional[Callable[[Exception], None]] = None,
    *,
    collection: str = DEFAULT_NOTIFICATIONS_COLLECTION,
    now: Clock = utc_now,
    tz: Optional[tzinfo] = None,
) -> Subscription[Notification]:
    """Notifications, newest ``createdAt`` first."""
    return Subscription(
        store,
        notifications_query(collection),
        partial(map_notification, now=now, tz=tz),
        callback,
        on_error,
        now,
    )
