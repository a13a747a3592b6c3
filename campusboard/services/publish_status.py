from datetime import datetime, tzinfo
from typing import Any, Optional, Tuple

from campusboard.shared.clock import Clock, utc_now
from campusboard.shared.dates import combine_local, safe_compare
from campusboard.specs.common.enums import DeliveryType, PublishStatus


def classify(publish_date: Any, reference: Any, *, now: Clock = utc_now, tz: Optional[tzinfo] = None) -> PublishStatus:
    """Published when ``publish_date`` is at or before ``reference``.

    Both sides go through the date normaliser first; an unreadable stored date
    becomes "now" and therefore usually classifies as published.
    """
    if safe_compare(publish_date, reference, now=now, tz=tz):
        return PublishStatus.PUBLISHED
    return PublishStatus.SCHEDULED


def derive_publication(
    delivery_type: DeliveryType,
    scheduled_date: Optional[str],
    scheduled_time: Optional[str],
    reference: datetime,
    tz: Optional[tzinfo] = None,
) -> Tuple[datetime, PublishStatus]:
    """Compute ``(publishedAt, status)`` for a notification write.

    Immediate delivery publishes at ``reference``; scheduled delivery at the
    local date/time pair, and is marked scheduled regardless of whether that
    moment has already passed.
    """
    if DeliveryType(delivery_type) == DeliveryType.IMMEDIATE:
        return reference, PublishStatus.PUBLISHED
    published_at = combine_local(scheduled_date, scheduled_time, tz)
    if published_at is None:
        raise ValueError(f"Unreadable schedule {scheduled_date!r} {scheduled_time!r}")
    return published_at, PublishStatus.SCHEDULED
