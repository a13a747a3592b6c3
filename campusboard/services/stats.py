from datetime import timedelta, tzinfo
from typing import Iterable, Optional

from pydantic import BaseModel

from campusboard.shared.clock import Clock, utc_now
from campusboard.shared.dates import DEFAULT_TIMEZONE, safe_date
from campusboard.specs.models.domain import Article, Notification

WEEK = timedelta(days=7)


class ArticleStats(BaseModel):
    total: int
    today: int
    this_week: int


class NotificationStats(BaseModel):
    total: int
    important: int
    this_week: int


def article_stats(articles: Iterable[Article], *, clock: Clock = utc_now, tz: Optional[tzinfo] = None) -> ArticleStats:
    """Counts for the dashboard: all, dated today (local calendar), last 7 days."""
    zone = tz or DEFAULT_TIMEZONE
    now = clock()
    today = now.astimezone(zone).date()
    week_ago = now - WEEK
    total = today_count = week_count = 0
    for article in articles:
        moment = safe_date(article.date, now=clock, tz=zone)
        total += 1
        if moment.astimezone(zone).date() == today:
            today_count += 1
        if moment > week_ago:
            week_count += 1
    return ArticleStats(total=total, today=today_count, this_week=week_count)


def notification_stats(
    notifications: Iterable[Notification], *, clock: Clock = utc_now, tz: Optional[tzinfo] = None
) -> NotificationStats:
    week_ago = clock() - WEEK
    items = list(notifications)
    return NotificationStats(
        total=len(items),
        important=sum(1 for n in items if n.isImportant),
        this_week=sum(1 for n in items if safe_date(n.publishedAt, now=clock, tz=tz) > week_ago),
    )
