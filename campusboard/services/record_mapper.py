"""
Parse raw stored documents into typed entities.

Every mapper answers :class:`Mapped` or :class:`Rejected`; a rejected record
is logged and left out of the read model, it never fails the snapshot it came
from and never yields a half-filled entity.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, TypeVar, Union

from pydantic import ValidationError

from campusboard.services.publish_status import classify
from campusboard.shared.clock import Clock, utc_now
from campusboard.shared.dates import safe_date, to_iso
from campusboard.shared.logging_utils import debug as log_debug, warning as log_warning
from campusboard.shared.store import RawDocument
from campusboard.specs.common.enums import DeliveryType, OwnerType, PublishStatus
from campusboard.specs.models.domain import (
    PLACEHOLDER_IMAGE,
    UNKNOWN_OWNER_NAME,
    Article,
    Notification,
    Owner,
)
from campusboard.specs.models.persistence import ArticleDocument, NotificationDocument

T = TypeVar("T")

_OWNER_TYPES = {t.value for t in OwnerType}


@dataclass(frozen=True)
class Mapped(Generic[T]):
    entity: T


@dataclass(frozen=True)
class Rejected:
    doc_id: str
    path: str
    reason: str
    # tombstones are expected and not worth a warning
    expected: bool = False


MappingResult = Union[Mapped[T], Rejected]


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _labels(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [v for v in value if isinstance(v, str)]


def map_article(raw: RawDocument, *, now: Clock = utc_now, tz: Optional[tzinfo] = None) -> MappingResult[Article]:
    """Map a ``news`` document.

    Owner fields may be on the document or, for older documents, only in the
    path ``<ownerType>/<ownerId>/news/<id>``.
    """
    data = raw.data
    if data.get("deleted") is True:
        return Rejected(raw.id, raw.path, "tombstoned", expected=True)

    segments = raw.segments
    owner_type = data.get("ownerType") or (segments[0] if len(segments) >= 2 else None)
    owner_id = data.get("ownerId") or (segments[1] if len(segments) >= 2 else None)

    if not isinstance(owner_type, str) or owner_type not in _OWNER_TYPES:
        return Rejected(raw.id, raw.path, f"unknown ownerType {owner_type!r}")
    if not isinstance(owner_id, str) or not owner_id.strip():
        return Rejected(raw.id, raw.path, "blank ownerId")

    try:
        article = Article(
            id=raw.id,
            title=_text(data.get("title")),
            url=_text(data.get("url")),
            imageUrl=_text(data.get("imageUrl")) or PLACEHOLDER_IMAGE,
            date=safe_date(data.get("date"), now=now, tz=tz),
            ownerType=OwnerType(owner_type),
            ownerId=owner_id,
        )
    except (ValidationError, TypeError, ValueError, OverflowError) as exc:
        return Rejected(raw.id, raw.path, f"invalid article: {exc}")
    return Mapped(article)


def map_notification(raw: RawDocument, *, now: Clock = utc_now, tz: Optional[tzinfo] = None) -> MappingResult[Notification]:
    data = raw.data
    for name in ("title", "content", "department"):
        if not isinstance(data.get(name), str):
            return Rejected(raw.id, raw.path, f"missing {name}")

    published_at = safe_date(data.get("publishedAt"), now=now, tz=tz)

    try:
        delivery = DeliveryType(data.get("deliveryType"))
    except ValueError:
        delivery = (
            DeliveryType.SCHEDULED
            if data.get("scheduledDate") and data.get("scheduledTime")
            else DeliveryType.IMMEDIATE
        )
    try:
        status = PublishStatus(data.get("status"))
    except ValueError:
        status = classify(published_at, now(), now=now)

    try:
        notification = Notification(
            id=raw.id,
            title=data["title"],
            content=data["content"],
            department=data["department"],
            isImportant=bool(data.get("isImportant", False)),
            targetFaculties=_labels(data.get("targetFaculties")),
            targetGrades=_labels(data.get("targetGrades")),
            links=_labels(data.get("links")),
            utasPublishedDate=_text(data.get("utasPublishedDate")),
            utasPublishedTime=_text(data.get("utasPublishedTime")),
            deliveryType=delivery,
            scheduledDate=data.get("scheduledDate") or None,
            scheduledTime=data.get("scheduledTime") or None,
            publishedAt=published_at,
            status=status,
            createdAt=_optional_date(data.get("createdAt"), now, tz),
            updatedAt=_optional_date(data.get("updatedAt"), now, tz),
        )
    except (ValidationError, TypeError, ValueError, OverflowError) as exc:
        return Rejected(raw.id, raw.path, f"invalid notification: {exc}")
    return Mapped(notification)


def _optional_date(value: Any, now: Clock, tz: Optional[tzinfo]) -> Optional[datetime]:
    if value is None or value == "":
        return None
    return safe_date(value, now=now, tz=tz)


def map_owner(raw: RawDocument, owner_type: OwnerType) -> Owner:
    data = raw.data
    return Owner(
        id=raw.id,
        name=_text(data.get("name")) or UNKNOWN_OWNER_NAME,
        type=owner_type,
        logo=_text(data.get("logo")) or None,
    )


def map_documents(
    docs: Iterable[RawDocument],
    mapper: Callable[[RawDocument], MappingResult[T]],
) -> List[T]:
    """Apply ``mapper`` to a snapshot, keeping order and dropping rejects."""
    entities: List[T] = []
    for raw in docs:
        try:
            result = mapper(raw)
        except Exception as exc:
            result = Rejected(raw.id, raw.path, f"unmappable record: {type(exc).__name__}: {exc}")
        if isinstance(result, Mapped):
            entities.append(result.entity)
        elif result.expected:
            log_debug(result.path, "mapper:skipped", reason=result.reason)
        else:
            log_warning(result.path, "mapper:rejected", docId=result.doc_id, reason=result.reason)
    return entities


def article_to_document(article: Article) -> Dict[str, Any]:
    """Persisted shape of an article (inverse of :func:`map_article`)."""
    document = ArticleDocument(
        title=article.title,
        url=article.url,
        imageUrl=article.imageUrl,
        date=to_iso(article.date),
        ownerType=article.ownerType.value,
        ownerId=article.ownerId,
    )
    return document.model_dump(exclude_none=True)


def notification_to_document(notification: Notification) -> Dict[str, Any]:
    """Persisted shape of a notification (inverse of :func:`map_notification`)."""
    body = notification.model_dump(
        mode="json",
        exclude={"id", "publishedAt", "createdAt", "updatedAt"},
    )
    document = NotificationDocument(
        **body,
        publishedAt=to_iso(notification.publishedAt),
        createdAt=to_iso(notification.createdAt) if notification.createdAt else None,
        updatedAt=to_iso(notification.updatedAt) if notification.updatedAt else None,
    )
    return document.model_dump()
