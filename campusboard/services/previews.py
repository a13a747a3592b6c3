from datetime import datetime, tzinfo
from typing import List, Optional, Sequence

from pydantic import BaseModel

from campusboard.services.owners import OwnerDirectory
from campusboard.services.publish_status import classify
from campusboard.shared.clock import Clock, utc_now
from campusboard.shared.dates import safe_format
from campusboard.specs.common.enums import PublishStatus
from campusboard.specs.common.targets import (
    ALL_FACULTIES_LABEL,
    ALL_GRADES_LABEL,
    covers_all_faculties,
    covers_all_grades,
)
from campusboard.specs.models.domain import Article, Notification

LIST_DATE_PATTERN = "yyyy/MM/dd HH:mm"
LONG_DATE_PATTERN = "yyyy年MM月dd日 HH時mm分"
UNSET_TEXT = "未設定"


class ArticlePreview(BaseModel):
    id: str
    title: str
    url: str
    imageUrl: str
    ownerName: str
    ownerLogo: Optional[str] = None
    dateText: str
    dateLongText: str
    status: PublishStatus


class NotificationPreview(BaseModel):
    id: str
    title: str
    content: str
    department: str
    isImportant: bool
    facultyText: str
    gradeText: str
    audienceText: str
    utasText: str
    deliveryText: str
    status: PublishStatus
    links: List[str]


def _abbreviate(labels: Sequence[str]) -> str:
    text = ", ".join(labels[:2])
    return text + "..." if len(labels) > 2 else text


def faculty_text(faculties: Sequence[str]) -> str:
    return ALL_FACULTIES_LABEL if covers_all_faculties(faculties) else _abbreviate(faculties)


def grade_text(grades: Sequence[str]) -> str:
    return ALL_GRADES_LABEL if covers_all_grades(grades) else _abbreviate(grades)


def utas_text(date_text: Optional[str], time_text: Optional[str]) -> str:
    if not date_text or not time_text:
        return UNSET_TEXT
    return f"{date_text} {time_text}"


def build_article_preview(
    article: Article,
    owners: OwnerDirectory,
    reference: Optional[datetime] = None,
    *,
    clock: Clock = utc_now,
    tz: Optional[tzinfo] = None,
) -> ArticlePreview:
    owner = owners.get(article.ownerType, article.ownerId)
    return ArticlePreview(
        id=article.id,
        title=article.title,
        url=article.url,
        imageUrl=article.imageUrl,
        ownerName=owners.name_for(article),
        ownerLogo=owner.logo if owner else None,
        dateText=safe_format(article.date, LIST_DATE_PATTERN, tz=tz, now=clock),
        dateLongText=safe_format(article.date, LONG_DATE_PATTERN, tz=tz, now=clock),
        status=classify(article.date, reference or clock(), now=clock, tz=tz),
    )


def build_notification_preview(
    notification: Notification,
    *,
    clock: Clock = utc_now,
    tz: Optional[tzinfo] = None,
) -> NotificationPreview:
    faculties = faculty_text(notification.targetFaculties)
    grades = grade_text(notification.targetGrades)
    return NotificationPreview(
        id=notification.id,
        title=notification.title,
        content=notification.content,
        department=notification.department,
        isImportant=notification.isImportant,
        facultyText=faculties,
        gradeText=grades,
        audienceText=f"{faculties} / {grades}",
        utasText=utas_text(notification.utasPublishedDate, notification.utasPublishedTime),
        deliveryText=safe_format(notification.publishedAt, LIST_DATE_PATTERN, tz=tz, now=clock),
        status=notification.status,
        links=list(notification.links),
    )
