from datetime import datetime, timezone

import pytest

from campusboard.services.record_mapper import (
    Mapped,
    Rejected,
    article_to_document,
    map_article,
    map_documents,
    map_notification,
    map_owner,
    notification_to_document,
)
from campusboard.shared.clock import fixed_clock
from campusboard.shared.store import RawDocument
from campusboard.specs.common.enums import DeliveryType, OwnerType, PublishStatus
from campusboard.specs.models.domain import PLACEHOLDER_IMAGE, UNKNOWN_OWNER_NAME
from tests.conftest import NOW, TOKYO

clock = fixed_clock(NOW)


def article_doc(doc_id="x", path=None, **data) -> RawDocument:
    return RawDocument(id=doc_id, path=path or f"companies/A/news/{doc_id}", data=data)


def notification_data(**overrides):
    data = {
        "title": "休講のお知らせ",
        "content": "本日の講義は休講です。",
        "department": "教務課",
        "isImportant": True,
        "targetFaculties": ["工学部"],
        "targetGrades": ["1年", "2年"],
        "links": ["https://example.com/a"],
        "utasPublishedDate": "2024-05-19",
        "utasPublishedTime": "10:00",
        "deliveryType": "scheduled",
        "scheduledDate": "2024-06-01",
        "scheduledTime": "09:00",
        "status": "scheduled",
        "publishedAt": "2024-06-01T00:00:00.000Z",
        "createdAt": "2024-05-19T01:00:00.000Z",
        "updatedAt": "2024-05-19T01:30:00.000Z",
    }
    data.update(overrides)
    return data


def test_article_with_explicit_owner():
    result = map_article(
        article_doc(
            title="Spring fair",
            url="https://example.com/fair",
            imageUrl="https://cdn.example.com/fair.png",
            date="2024-06-01T00:00:00.000Z",
            ownerType="companies",
            ownerId="A",
        ),
        now=clock,
    )
    assert isinstance(result, Mapped)
    article = result.entity
    assert article.id == "x"
    assert article.date == datetime(2024, 6, 1, tzinfo=timezone.utc)
    assert article.path == "companies/A/news/x"


def test_article_owner_derived_from_path():
    result = map_article(article_doc("y", "media-group/B/news/y", title="t"), now=clock)
    assert isinstance(result, Mapped)
    assert result.entity.ownerType == OwnerType.MEDIA_GROUP
    assert result.entity.ownerId == "B"
    assert result.entity.imageUrl == PLACEHOLDER_IMAGE
    assert result.entity.url == ""
    assert result.entity.date == NOW


def test_article_with_unknown_owner_type_is_rejected():
    result = map_article(article_doc(ownerType="universities", ownerId="A"), now=clock)
    assert isinstance(result, Rejected)
    assert not result.expected


def test_article_with_blank_owner_id_is_rejected():
    assert isinstance(map_article(article_doc(ownerType="companies", ownerId="   "), now=clock), Rejected)


@pytest.mark.parametrize(
    "fields",
    [{"ownerType": ["companies"]}, {"ownerType": {"k": "v"}}, {"ownerType": 3}, {"ownerId": 42}, {"ownerId": ["A"]}],
)
def test_article_with_non_string_owner_fields_is_rejected(fields):
    data = {"ownerType": "companies", "ownerId": "A", **fields}
    result = map_article(article_doc(title="t", **data), now=clock)
    assert isinstance(result, Rejected)
    assert not result.expected


def test_tombstoned_article_is_dropped_quietly():
    result = map_article(article_doc(title="gone", deleted=True), now=clock)
    assert isinstance(result, Rejected)
    assert result.expected


def test_map_documents_keeps_order_and_drops_rejects():
    docs = [
        article_doc("a", title="first"),
        article_doc("b", ownerType="universities"),
        article_doc("c", title="third"),
        article_doc("d", deleted=True),
    ]
    articles = map_documents(docs, lambda raw: map_article(raw, now=clock))
    assert [a.id for a in articles] == ["a", "c"]


def test_map_documents_drops_records_the_mapper_chokes_on():
    def mapper(raw):
        if raw.id == "b":
            raise KeyError("surprise")
        return map_article(raw, now=clock)

    docs = [article_doc("a", title="first"), article_doc("b"), article_doc("c", title="third")]
    assert [a.id for a in map_documents(docs, mapper)] == ["a", "c"]


def test_article_document_round_trip():
    data = {
        "title": "Spring fair",
        "url": "https://example.com/fair",
        "imageUrl": "https://cdn.example.com/fair.png",
        "date": "2024-06-01T00:00:00.000Z",
        "ownerType": "companies",
        "ownerId": "A",
    }
    result = map_article(article_doc(**data), now=clock)
    assert article_to_document(result.entity) == data


def test_notification_round_trip():
    data = notification_data()
    result = map_notification(RawDocument("n1", "tic-utas-notifications/n1", data), now=clock, tz=TOKYO)
    assert isinstance(result, Mapped)
    notification = result.entity
    assert notification.status == PublishStatus.SCHEDULED
    assert notification.deliveryType == DeliveryType.SCHEDULED
    assert notification_to_document(notification) == data


def test_notification_without_title_is_rejected():
    data = notification_data()
    del data["title"]
    result = map_notification(RawDocument("n1", "tic-utas-notifications/n1", data), now=clock)
    assert isinstance(result, Rejected)


def test_notification_optional_timestamps():
    data = notification_data(createdAt=None)
    del data["updatedAt"]
    result = map_notification(RawDocument("n1", "tic-utas-notifications/n1", data), now=clock)
    assert result.entity.createdAt is None
    assert result.entity.updatedAt is None


def test_notification_status_classified_when_missing():
    data = notification_data(status="draft", deliveryType=None, publishedAt="2030-01-01T00:00:00.000Z")
    result = map_notification(RawDocument("n1", "tic-utas-notifications/n1", data), now=clock)
    assert result.entity.status == PublishStatus.SCHEDULED
    # schedule fields are present so the delivery type is inferred
    assert result.entity.deliveryType == DeliveryType.SCHEDULED

    data = notification_data(status=None, publishedAt="2020-01-01T00:00:00.000Z")
    result = map_notification(RawDocument("n2", "tic-utas-notifications/n2", data), now=clock)
    assert result.entity.status == PublishStatus.PUBLISHED


def test_notification_drops_non_string_labels():
    data = notification_data(targetFaculties=["工学部", 3, None], links="https://example.com")
    result = map_notification(RawDocument("n1", "tic-utas-notifications/n1", data), now=clock)
    assert result.entity.targetFaculties == ["工学部"]
    assert result.entity.links == []


def test_map_owner_defaults_name():
    owner = map_owner(RawDocument("A", "companies/A", {}), OwnerType.COMPANIES)
    assert owner.name == UNKNOWN_OWNER_NAME
    assert owner.logo is None
    assert owner.key == "companies:A"
