"""
Create/update/delete for articles and notifications.

Forms are validated before any remote call. Remote failures are wrapped in
:class:`RemoteOperationError` and raised to the caller; nothing is retried
and no local list is touched, the live subscription picks up the result.
"""
from __future__ import annotations

import time
from datetime import tzinfo
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

from pydantic import BaseModel

from campusboard.media.thumbnails import inspect_thumbnail, thumbnail_blob_name
from campusboard.services.owners import OwnerDirectory
from campusboard.services.publish_status import derive_publication
from campusboard.services.record_mapper import (
    Mapped,
    article_to_document,
    map_documents,
    map_notification,
    notification_to_document,
)
from campusboard.services.live_collection import notifications_query
from campusboard.shared.blob_store import BlobStore
from campusboard.shared.clock import Clock, utc_now
from campusboard.shared.config import DEFAULT_NOTIFICATIONS_COLLECTION
from campusboard.shared.dates import epoch_millis, safe_date
from campusboard.shared.logging_utils import error as log_error, info as log_info
from campusboard.shared.store import DocumentStore, join_path
from campusboard.specs.common.envelope import MutationResponse
from campusboard.specs.common.errors import (
    CampusBoardError,
    FormValidationError,
    RemoteOperationError,
    ResourceNotFoundError,
)
from campusboard.specs.models.domain import (
    PLACEHOLDER_IMAGE,
    Article,
    Notification,
    Owner,
    news_collection_path,
)
from campusboard.specs.models.forms import (
    ArticleForm,
    ArticleUpdateForm,
    NotificationForm,
    ThumbnailUpload,
    parse_form,
)

R = TypeVar("R")


def _remote(operation: str, path: str, call: Callable[[], R]) -> R:
    try:
        return call()
    except CampusBoardError:
        raise
    except Exception as exc:
        log_error(path, f"mutation:{operation.replace(' ', '_')}_failed", error=str(exc))
        raise RemoteOperationError(operation, path, exc) from exc


class ArticleMutations:
    def __init__(
        self,
        store: DocumentStore,
        blobs: BlobStore,
        owners: OwnerDirectory,
        clock: Clock = utc_now,
        tz: Optional[tzinfo] = None,
    ):
        self.store = store
        self.blobs = blobs
        self.owners = owners
        self.clock = clock
        self.tz = tz

    def _owner(self, form: Union[ArticleForm, ArticleUpdateForm]) -> Owner:
        owner = self.owners.get(form.owner_type, form.owner_id)
        if owner is None:
            raise FormValidationError({"owner": ["選択された配信元が見つかりません"]})
        return owner

    def _upload(self, thumbnail: ThumbnailUpload) -> str:
        content_type, _ = inspect_thumbnail(thumbnail.data)
        blob_name = thumbnail_blob_name(thumbnail.filename, int(epoch_millis(self.clock())))
        return _remote(
            "upload thumbnail",
            blob_name,
            lambda: self.blobs.upload(blob_name, thumbnail.data, content_type),
        )

    def create(self, form: Union[ArticleForm, Dict[str, Any]], thumbnail: Optional[ThumbnailUpload]) -> Article:
        """Upload the thumbnail, then write the article under its owner.

        Returns the stored article with its new id.
        """
        form = parse_form(ArticleForm, form)
        if thumbnail is None:
            raise FormValidationError({"thumbnail": ["サムネイル画像を選択してください"]})
        owner = self._owner(form)

        publish_at = self.clock() if form.publishType == "now" else safe_date(form.date, now=self.clock, tz=self.tz)
        image_url = self._upload(thumbnail)

        collection = news_collection_path(owner.type, owner.id)
        draft = Article(
            id="",
            title=form.title,
            url=form.url,
            imageUrl=image_url,
            date=publish_at,
            ownerType=owner.type,
            ownerId=owner.id,
        )
        raw = _remote("create article", collection, lambda: self.store.add(collection, article_to_document(draft)))
        log_info(raw.path, "article:created", publishType=form.publishType)
        return draft.model_copy(update={"id": raw.id})

    def update(
        self,
        article: Article,
        form: Union[ArticleUpdateForm, Dict[str, Any]],
        thumbnail: Optional[ThumbnailUpload] = None,
    ) -> Article:
        """Apply an edit to ``article`` (the identity the caller holds).

        Changing the owner moves the document: a new document is created under
        the new owner and the old one is marked ``deleted``. The returned
        article then carries the new id.
        """
        form = parse_form(ArticleUpdateForm, form)
        owner = self._owner(form)
        image_url = self._upload(thumbnail) if thumbnail is not None else (article.imageUrl or PLACEHOLDER_IMAGE)

        updated = Article(
            id=article.id,
            title=form.title,
            url=form.url,
            imageUrl=image_url,
            date=safe_date(form.date, now=self.clock, tz=self.tz),
            ownerType=owner.type,
            ownerId=owner.id,
        )
        body = article_to_document(updated)

        if (article.ownerType, article.ownerId) == (owner.type, owner.id):
            _remote("update article", article.path, lambda: self.store.update(article.path, body))
            log_info(article.path, "article:updated")
            return updated

        collection = news_collection_path(owner.type, owner.id)
        raw = _remote("move article", collection, lambda: self.store.add(collection, body))
        try:
            _remote("tombstone article", article.path, lambda: self.store.update(article.path, {"deleted": True}))
        except CampusBoardError:
            # leave the backend as it was: drop the copy we just created
            _remote("rollback article move", raw.path, lambda: self.store.delete(raw.path))
            raise
        log_info(raw.path, "article:moved", previous=article.path)
        return updated.model_copy(update={"id": raw.id})

    def delete(self, article: Article) -> None:
        _remote("delete article", article.path, lambda: self.store.delete(article.path))
        log_info(article.path, "article:deleted")


class NotificationMutations:
    def __init__(
        self,
        store: DocumentStore,
        collection: str = DEFAULT_NOTIFICATIONS_COLLECTION,
        clock: Clock = utc_now,
        tz: Optional[tzinfo] = None,
    ):
        self.store = store
        self.collection = collection
        self.clock = clock
        self.tz = tz

    def path_for(self, notification_id: str) -> str:
        return join_path(self.collection, notification_id)

    def _build(self, form: NotificationForm, notification_id: str, created_at, updated_at) -> Notification:
        published_at, status = derive_publication(
            form.deliveryType, form.scheduledDate, form.scheduledTime, updated_at, self.tz
        )
        return Notification(
            id=notification_id,
            **form.model_dump(),
            publishedAt=published_at,
            status=status,
            createdAt=created_at,
            updatedAt=updated_at,
        )

    def create(self, form: Union[NotificationForm, Dict[str, Any]]) -> Notification:
        form = parse_form(NotificationForm, form)
        now = self.clock()
        notification = self._build(form, "", now, now)
        raw = _remote(
            "create notification",
            self.collection,
            lambda: self.store.add(self.collection, notification_to_document(notification)),
        )
        log_info(raw.path, "notification:created", status=notification.status.value)
        return notification.model_copy(update={"id": raw.id})

    def update(self, notification_id: str, form: Union[NotificationForm, Dict[str, Any]]) -> Notification:
        """Rewrite every form field and recompute ``publishedAt``/``status``.

        ``createdAt`` is kept from the stored document.
        """
        form = parse_form(NotificationForm, form)
        path = self.path_for(notification_id)
        current = self.get(notification_id)
        if current is None:
            raise ResourceNotFoundError("Notification", notification_id)

        notification = self._build(form, notification_id, current.createdAt, self.clock())
        body = notification_to_document(notification)
        body.pop("createdAt", None)
        _remote("update notification", path, lambda: self.store.update(path, body))
        log_info(path, "notification:updated", status=notification.status.value)
        return notification

    def delete(self, notification_id: str) -> None:
        path = self.path_for(notification_id)
        _remote("delete notification", path, lambda: self.store.delete(path))
        log_info(path, "notification:deleted")

    def get(self, notification_id: str) -> Optional[Notification]:
        path = self.path_for(notification_id)
        raw = _remote("read notification", path, lambda: self.store.get(path))
        if raw is None:
            return None
        result = map_notification(raw, now=self.clock, tz=self.tz)
        return result.entity if isinstance(result, Mapped) else None

    def list_all(self) -> List[Notification]:
        query = notifications_query(self.collection)
        docs = _remote("list notifications", self.collection, lambda: self.store.query(query))
        return map_documents(docs, lambda raw: map_notification(raw, now=self.clock, tz=self.tz))


def run_mutation(action: str, operation: Callable[[], Any]) -> MutationResponse:
    """Run a façade call and wrap the outcome in a :class:`MutationResponse`."""
    start = time.time()
    try:
        outcome = operation()
    except CampusBoardError as e:
        log_error(None, f"{action}:failed", code=e.code, error=str(e))
        return MutationResponse(
            status="failed",
            error=e.to_dict(),
            meta={"action": action, "durationMs": int((time.time() - start) * 1000)},
        )

    if isinstance(outcome, BaseModel):
        result = {"document": outcome.model_dump(mode="json"), "documentId": getattr(outcome, "id", None)}
    else:
        result = None
    return MutationResponse(
        status="completed",
        result=result,
        meta={"action": action, "durationMs": int((time.time() - start) * 1000)},
    )
