from __future__ import annotations

from .domain import (
    PLACEHOLDER_IMAGE,
    UNKNOWN_OWNER_NAME,
    Article,
    Notification,
    Owner,
    article_path,
    news_collection_path,
    owner_key,
)
from .forms import (
    ArticleForm,
    ArticleUpdateForm,
    NotificationForm,
    ThumbnailUpload,
    parse_form,
    split_owner,
)
from .persistence import ArticleDocument, NotificationDocument

__all__ = [
    "PLACEHOLDER_IMAGE",
    "UNKNOWN_OWNER_NAME",
    "Article",
    "Notification",
    "Owner",
    "article_path",
    "news_collection_path",
    "owner_key",
    "ArticleForm",
    "ArticleUpdateForm",
    "NotificationForm",
    "ThumbnailUpload",
    "parse_form",
    "split_owner",
    "ArticleDocument",
    "NotificationDocument",
]
