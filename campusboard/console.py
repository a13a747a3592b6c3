"""Wiring for one console session.

Reads flow store -> subscription -> mapper -> view-model; writes go through
the mutation façades and come back through the subscriptions.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from campusboard.services.live_collection import Subscription, subscribe_articles, subscribe_notifications
from campusboard.services.mutations import ArticleMutations, NotificationMutations
from campusboard.services.owners import OwnerDirectory
from campusboard.services.view_models import ArticleListViewModel, NotificationListViewModel
from campusboard.shared.blob_store import BlobStore, create_blob_store
from campusboard.shared.clock import Clock, utc_now
from campusboard.shared.config import Settings
from campusboard.shared.logging_utils import configure_logging, error as log_error
from campusboard.shared.store import DocumentStore, create_document_store
from campusboard.specs.models.domain import Article, Notification


@dataclass
class Console:
    settings: Settings
    store: DocumentStore
    blobs: BlobStore
    clock: Clock = utc_now
    tz: Optional[tzinfo] = None

    def __post_init__(self) -> None:
        if self.tz is None:
            self.tz = ZoneInfo(self.settings.timezone)
        self.owners = OwnerDirectory(self.store)
        self.articles = ArticleMutations(self.store, self.blobs, self.owners, self.clock, self.tz)
        self.notifications = NotificationMutations(
            self.store, self.settings.notifications_collection, self.clock, self.tz
        )

    def article_view(self, page_size: int = 10) -> Tuple[ArticleListViewModel, Subscription[Article]]:
        """A view-model kept current by a live article subscription.

        Cancel the returned subscription when the view goes away.
        """
        view = ArticleListViewModel(self.clock, self.tz, page_size)
        sub = subscribe_articles(
            self.store,
            view.replace,
            lambda exc: log_error(None, "console:article_feed_failed", error=str(exc)),
            now=self.clock,
            tz=self.tz,
        )
        return view, sub

    def notification_view(self) -> Tuple[NotificationListViewModel, Subscription[Notification]]:
        view = NotificationListViewModel(self.clock, self.tz)
        sub = subscribe_notifications(
            self.store,
            view.replace,
            lambda exc: log_error(None, "console:notification_feed_failed", error=str(exc)),
            collection=self.settings.notifications_collection,
            now=self.clock,
            tz=self.tz,
        )
        return view, sub


def build_console(
    settings: Optional[Settings] = None,
    *,
    store: Optional[DocumentStore] = None,
    blobs: Optional[BlobStore] = None,
    clock: Clock = utc_now,
) -> Console:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level, azure_level="WARNING")
    return Console(
        settings=settings,
        store=store or create_document_store(settings),
        blobs=blobs or create_blob_store(settings),
        clock=clock,
    )
