"""
Filter/sort view-models for the article and notification lists.

Each view-model holds the latest full entity list plus the user's filter and
sort choices and derives the displayed sequence from them. Any input change
bumps a revision counter; the derived list is cached against that revision,
so a read never returns a result computed for older inputs.

Sorting maps each entity to a number. Entities whose date cannot be read get
``+inf`` when ascending and ``-inf`` when descending, which puts them last
either way. Ties keep their input order.
"""
from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from datetime import datetime, tzinfo
from enum import Enum
from typing import Callable, Generic, Iterable, List, Optional, Sequence, Tuple, TypeVar, Union

from campusboard.services.publish_status import classify
from campusboard.shared.clock import Clock, utc_now
from campusboard.shared.dates import combine_local, epoch_millis, safe_date
from campusboard.specs.common.enums import (
    ArticleSortKey,
    NotificationSortKey,
    OwnerType,
    PublishStatus,
    SortDirection,
)
from campusboard.specs.common.targets import ALL_SENTINEL, covers_all_faculties, covers_all_grades
from campusboard.specs.models.domain import Article, Notification

T = TypeVar("T")
K = TypeVar("K", bound=Enum)

DEFAULT_PAGE_SIZE = 10


@dataclass(frozen=True)
class SortState(Generic[K]):
    key: K
    direction: SortDirection = SortDirection.DESC

    def toggled(self, key: K) -> "SortState[K]":
        """Same key flips direction; a different key starts descending."""
        if key == self.key:
            flipped = SortDirection.ASC if self.direction == SortDirection.DESC else SortDirection.DESC
            return SortState(key, flipped)
        return SortState(key, SortDirection.DESC)


def missing_value(direction: SortDirection) -> float:
    return math.inf if direction == SortDirection.ASC else -math.inf


def sort_entities(
    items: Sequence[T],
    value_of: Callable[[T], Optional[Union[float, str]]],
    direction: SortDirection,
) -> List[T]:
    """Stable sort; ``None`` values go last in both directions."""
    fallback = missing_value(direction)
    reverse = direction == SortDirection.DESC

    def key(item: T):
        value = value_of(item)
        if value is None or (isinstance(value, float) and math.isnan(value)):
            return fallback
        return value

    # Python's sort is stable for reverse=True as well, so equal values keep input order.
    return sorted(items, key=key, reverse=reverse)


def matches_text(query: str, fields: Iterable[str]) -> bool:
    needle = (query or "").strip().casefold()
    if not needle:
        return True
    return any(needle in (f or "").casefold() for f in fields)


def matches_category(selected: Optional[str], value: str) -> bool:
    return selected in (None, "", ALL_SENTINEL) or selected == value


def matches_audience(selected: Optional[str], labels: Sequence[str], covers_all: Callable[[Sequence[str]], bool]) -> bool:
    """Audience lists naming everyone (or carrying the sentinel) match any filter value."""
    if selected in (None, "", ALL_SENTINEL):
        return True
    return selected in labels or covers_all(labels)


class _ListViewModel(Generic[T]):
    def __init__(self, clock: Clock = utc_now, tz: Optional[tzinfo] = None):
        self._clock = clock
        self._tz = tz
        self._items: Tuple[T, ...] = ()
        self._revision = 0
        self._memo: Optional[Tuple[int, List[T]]] = None
        self._lock = threading.RLock()

    def _touch(self) -> None:
        with self._lock:
            self._revision += 1

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def source(self) -> List[T]:
        return list(self._items)

    def replace(self, items: Iterable[T]) -> None:
        """Install a new full snapshot; suitable as a live subscription callback."""
        with self._lock:
            self._items = tuple(items)
            self._touch()

    def filtered(self) -> List[T]:
        with self._lock:
            return [item for item in self._items if self._matches(item)]

    @property
    def visible(self) -> List[T]:
        with self._lock:
            if self._memo is not None and self._memo[0] == self._revision:
                return list(self._memo[1])
            result = self._sort(self.filtered())
            self._memo = (self._revision, result)
            return list(result)

    def _matches(self, item: T) -> bool:
        raise NotImplementedError

    def _sort(self, items: List[T]) -> List[T]:
        raise NotImplementedError

    def _epoch(self, value) -> float:
        return epoch_millis(safe_date(value, now=self._clock, tz=self._tz))


class ArticleListViewModel(_ListViewModel[Article]):
    """Article table: title search, owner filters, date/title sort, paging.

    Without an explicit sort the store order (newest ``date`` first) is kept.
    """

    def __init__(self, clock: Clock = utc_now, tz: Optional[tzinfo] = None, page_size: int = DEFAULT_PAGE_SIZE):
        super().__init__(clock, tz)
        self._search = ""
        self._owner_filter: str = ALL_SENTINEL
        self._owner_type_filter: Optional[str] = None
        self._sort_state: Optional[SortState[ArticleSortKey]] = None
        self.page_size = max(1, page_size)
        self._page_index = 0

    # Inputs are read-only; changing them goes through the setters so the
    # derived list is invalidated.

    @property
    def search(self) -> str:
        return self._search

    @property
    def owner_filter(self) -> str:
        return self._owner_filter

    @property
    def owner_type_filter(self) -> Optional[str]:
        return self._owner_type_filter

    @property
    def sort(self) -> Optional[SortState[ArticleSortKey]]:
        return self._sort_state

    @property
    def page_index(self) -> int:
        return self._page_index

    def set_search(self, text: str) -> None:
        with self._lock:
            self._search = text or ""
            self._page_index = 0
            self._touch()

    def set_owner_filter(self, value: Optional[str]) -> None:
        """``"all"`` or an ``<ownerType>:<ownerId>`` selector."""
        with self._lock:
            self._owner_filter = value or ALL_SENTINEL
            self._page_index = 0
            self._touch()

    def set_owner_type_filter(self, value: Optional[Union[OwnerType, str]]) -> None:
        owner_type = OwnerType(value).value if value not in (None, "", ALL_SENTINEL) else None
        with self._lock:
            self._owner_type_filter = owner_type
            self._page_index = 0
            self._touch()

    def toggle_sort(self, key: Union[ArticleSortKey, str]) -> SortState[ArticleSortKey]:
        key = ArticleSortKey(key)
        with self._lock:
            self._sort_state = self._sort_state.toggled(key) if self._sort_state else SortState(key)
            self._touch()
            return self._sort_state

    def clear_sort(self) -> None:
        with self._lock:
            self._sort_state = None
            self._touch()

    def _matches(self, article: Article) -> bool:
        if not matches_text(self._search, [article.title]):
            return False
        if not matches_category(self._owner_type_filter, article.ownerType.value):
            return False
        return matches_category(self._owner_filter, article.owner_key)

    def _sort(self, items: List[Article]) -> List[Article]:
        if self._sort_state is None:
            return items
        if self._sort_state.key == ArticleSortKey.TITLE:
            return sort_entities(items, lambda a: a.title.casefold(), self._sort_state.direction)
        return sort_entities(items, lambda a: self._epoch(a.date), self._sort_state.direction)

    def status_of(self, article: Article, reference: Optional[datetime] = None) -> PublishStatus:
        return classify(article.date, reference or self._clock(), now=self._clock, tz=self._tz)

    @property
    def page_count(self) -> int:
        return max(1, math.ceil(len(self.visible) / self.page_size))

    def page(self) -> List[Article]:
        index = min(self.page_index, self.page_count - 1)
        start = index * self.page_size
        return self.visible[start:start + self.page_size]

    @property
    def can_next(self) -> bool:
        return self.page_index < self.page_count - 1

    @property
    def can_previous(self) -> bool:
        return self.page_index > 0

    def next_page(self) -> None:
        if self.can_next:
            self._page_index += 1

    def previous_page(self) -> None:
        if self.can_previous:
            self._page_index -= 1


class NotificationListViewModel(_ListViewModel[Notification]):
    """Notification list: search over title and department, audience and
    importance filters, sort by UTAS posting time or app delivery time."""

    def __init__(self, clock: Clock = utc_now, tz: Optional[tzinfo] = None):
        super().__init__(clock, tz)
        self._search = ""
        self._faculty_filter: Optional[str] = None
        self._grade_filter: Optional[str] = None
        self._important_only = False
        self._sort_state: SortState[NotificationSortKey] = SortState(NotificationSortKey.APP)

    @property
    def search(self) -> str:
        return self._search

    @property
    def faculty_filter(self) -> Optional[str]:
        return self._faculty_filter

    @property
    def grade_filter(self) -> Optional[str]:
        return self._grade_filter

    @property
    def important_only(self) -> bool:
        return self._important_only

    @property
    def sort(self) -> SortState[NotificationSortKey]:
        return self._sort_state

    def set_search(self, text: str) -> None:
        with self._lock:
            self._search = text or ""
            self._touch()

    def set_faculty_filter(self, value: Optional[str]) -> None:
        with self._lock:
            self._faculty_filter = value or None
            self._touch()

    def set_grade_filter(self, value: Optional[str]) -> None:
        with self._lock:
            self._grade_filter = value or None
            self._touch()

    def set_important_only(self, flag: bool) -> None:
        with self._lock:
            self._important_only = bool(flag)
            self._touch()

    def toggle_sort(self, key: Union[NotificationSortKey, str]) -> SortState[NotificationSortKey]:
        key = NotificationSortKey(key)
        with self._lock:
            self._sort_state = self._sort_state.toggled(key)
            self._touch()
            return self._sort_state

    def _matches(self, n: Notification) -> bool:
        if not matches_text(self._search, [n.title, n.department]):
            return False
        if self._important_only and not n.isImportant:
            return False
        if not matches_audience(self._faculty_filter, n.targetFaculties, covers_all_faculties):
            return False
        return matches_audience(self._grade_filter, n.targetGrades, covers_all_grades)

    def utas_value(self, n: Notification) -> Optional[float]:
        moment = combine_local(n.utasPublishedDate, n.utasPublishedTime, self._tz)
        return epoch_millis(moment) if moment else None

    def _sort(self, items: List[Notification]) -> List[Notification]:
        if self._sort_state.key == NotificationSortKey.UTAS:
            return sort_entities(items, self.utas_value, self._sort_state.direction)
        return sort_entities(items, lambda n: self._epoch(n.publishedAt), self._sort_state.direction)
