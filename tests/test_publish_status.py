from datetime import datetime, timedelta, timezone

import pytest

from campusboard.services.publish_status import classify, derive_publication
from campusboard.shared.clock import fixed_clock
from campusboard.specs.common.enums import DeliveryType, PublishStatus
from tests.conftest import NOW, TOKYO

T = datetime(2024, 6, 1, 0, 0, tzinfo=timezone.utc)


def test_equal_moment_is_published():
    assert classify(T, T) == PublishStatus.PUBLISHED


def test_one_millisecond_later_is_scheduled():
    assert classify(T + timedelta(milliseconds=1), T) == PublishStatus.SCHEDULED


def test_mixed_representations_are_normalised():
    assert classify("2024-06-01T09:00:00+09:00", T) == PublishStatus.PUBLISHED
    assert classify(int(T.timestamp() * 1000) + 1, T) == PublishStatus.SCHEDULED


def test_unreadable_date_counts_as_now():
    clock = fixed_clock(NOW)
    assert classify("garbage", NOW, now=clock) == PublishStatus.PUBLISHED


def test_immediate_publication_uses_reference():
    assert derive_publication(DeliveryType.IMMEDIATE, None, None, T, TOKYO) == (T, PublishStatus.PUBLISHED)


def test_scheduled_publication_uses_local_wall_clock():
    published_at, status = derive_publication(DeliveryType.SCHEDULED, "2024-06-01", "09:00", NOW, TOKYO)
    assert published_at == datetime(2024, 6, 1, 9, 0, tzinfo=TOKYO)
    assert status == PublishStatus.SCHEDULED


def test_past_schedule_is_still_scheduled():
    _, status = derive_publication(DeliveryType.SCHEDULED, "2020-01-01", "00:00", NOW, TOKYO)
    assert status == PublishStatus.SCHEDULED


def test_unreadable_schedule_raises():
    with pytest.raises(ValueError):
        derive_publication(DeliveryType.SCHEDULED, "someday", "noon", NOW, TOKYO)
