"""Validated form input for the mutation façade.

Every form is checked before any remote call. Failures surface as
:class:`FormValidationError` keyed by field name, carrying the messages the
console shows next to each input.
"""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, Field, HttpUrl, TypeAdapter, ValidationError, field_validator

from campusboard.shared.dates import combine_local
from campusboard.specs.common.enums import DeliveryType, OwnerType
from campusboard.specs.common.errors import FormValidationError
from campusboard.specs.common.targets import FACULTIES, FACULTY_SENTINELS, GRADES, GRADE_SENTINELS

_URL = TypeAdapter(HttpUrl)

F = TypeVar("F", bound=BaseModel)


def _require_text(value: str, message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(message)
    return value.strip()


def _require_url(value: str) -> str:
    value = (value or "").strip()
    try:
        _URL.validate_python(value)
    except ValidationError:
        raise ValueError("有効なURLを入力してください")
    return value


def split_owner(value: str) -> Tuple[OwnerType, str]:
    """Split an ``<ownerType>:<ownerId>`` selector."""
    owner_type, sep, owner_id = (value or "").partition(":")
    if not sep or not owner_id.strip():
        raise ValueError("配信元を選択してください")
    try:
        return OwnerType(owner_type), owner_id.strip()
    except ValueError:
        raise ValueError("配信元を選択してください")


class ThumbnailUpload(BaseModel):
    filename: str
    data: bytes

    @field_validator("filename")
    @classmethod
    def _filename(cls, v: str) -> str:
        return _require_text(v, "サムネイル画像を選択してください")


class _ArticleFields(BaseModel):
    owner: str
    title: str
    url: str

    @field_validator("owner")
    @classmethod
    def _owner(cls, v: str) -> str:
        owner_type, owner_id = split_owner(v)
        return f"{owner_type.value}:{owner_id}"

    @field_validator("title")
    @classmethod
    def _title(cls, v: str) -> str:
        v = (v or "").strip()
        if len(v) < 5:
            raise ValueError("タイトルは5文字以上で入力してください")
        return v

    @field_validator("url")
    @classmethod
    def _url(cls, v: str) -> str:
        return _require_url(v)

    @property
    def owner_type(self) -> OwnerType:
        return split_owner(self.owner)[0]

    @property
    def owner_id(self) -> str:
        return split_owner(self.owner)[1]

    def field_errors(self) -> Dict[str, List[str]]:
        return {}


class ArticleForm(_ArticleFields):
    """Input for creating an article. ``now`` publishes at submission time."""

    publishType: Literal["now", "scheduled"] = "now"
    date: Optional[datetime] = None

    def field_errors(self) -> Dict[str, List[str]]:
        if self.publishType == "scheduled" and self.date is None:
            return {"date": ["配信日を選択してください"]}
        return {}


class ArticleUpdateForm(_ArticleFields):
    date: datetime


class NotificationForm(BaseModel):
    title: str
    content: str
    department: str
    targetFaculties: List[str] = Field(default_factory=list)
    targetGrades: List[str] = Field(default_factory=list)
    isImportant: bool = False
    links: List[str] = Field(default_factory=list)
    utasPublishedDate: str
    utasPublishedTime: str
    deliveryType: DeliveryType = DeliveryType.IMMEDIATE
    scheduledDate: Optional[str] = None
    scheduledTime: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _title(cls, v: str) -> str:
        return _require_text(v, "タイトルを入力してください")

    @field_validator("content")
    @classmethod
    def _content(cls, v: str) -> str:
        return _require_text(v, "本文を入力してください")

    @field_validator("department")
    @classmethod
    def _department(cls, v: str) -> str:
        return _require_text(v, "配信元部署を入力してください")

    @field_validator("utasPublishedDate")
    @classmethod
    def _utas_date(cls, v: str) -> str:
        return _require_text(v, "UTAS掲載日を入力してください")

    @field_validator("utasPublishedTime")
    @classmethod
    def _utas_time(cls, v: str) -> str:
        return _require_text(v, "UTAS掲載時刻を入力してください")

    @field_validator("targetFaculties")
    @classmethod
    def _faculties(cls, v: List[str]) -> List[str]:
        unknown = [f for f in v if f not in FACULTIES and f not in FACULTY_SENTINELS]
        if unknown:
            raise ValueError(f"不明な学部です: {', '.join(unknown)}")
        return v

    @field_validator("targetGrades")
    @classmethod
    def _grades(cls, v: List[str]) -> List[str]:
        unknown = [g for g in v if g not in GRADES and g not in GRADE_SENTINELS]
        if unknown:
            raise ValueError(f"不明な学年です: {', '.join(unknown)}")
        return v

    @field_validator("links", mode="before")
    @classmethod
    def _drop_blank_links(cls, v):
        if v is None:
            return []
        return [link.strip() for link in v if isinstance(link, str) and link.strip()]

    @field_validator("links")
    @classmethod
    def _links(cls, v: List[str]) -> List[str]:
        return [_require_url(link) for link in v]

    def field_errors(self) -> Dict[str, List[str]]:
        if self.deliveryType != DeliveryType.SCHEDULED:
            return {}
        errors: Dict[str, List[str]] = {}
        if not (self.scheduledDate or "").strip():
            errors["scheduledDate"] = ["配信日を入力してください"]
        if not (self.scheduledTime or "").strip():
            errors["scheduledTime"] = ["配信時刻を入力してください"]
        if not errors and combine_local(self.scheduledDate, self.scheduledTime) is None:
            errors["scheduledDate"] = ["配信日時の形式が正しくありません"]
        return errors


def parse_form(model: Type[F], data) -> F:
    """Validate ``data`` into ``model`` or raise :class:`FormValidationError`."""
    if isinstance(data, model):
        data = data.model_dump()
    try:
        form = model.model_validate(data)
    except ValidationError as exc:
        raise FormValidationError(_collect(exc)) from exc

    check = getattr(form, "field_errors", None)
    errors = check() if check else {}
    if errors:
        raise FormValidationError(errors)
    return form


def _collect(exc: ValidationError) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}
    for item in exc.errors():
        field = str(item["loc"][0]) if item.get("loc") else "__form__"
        message = item.get("msg", "")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.setdefault(field, []).append(message)
    return errors


__all__ = [
    "ThumbnailUpload",
    "ArticleForm",
    "ArticleUpdateForm",
    "NotificationForm",
    "parse_form",
    "split_owner",
]
