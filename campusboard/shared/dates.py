"""Date normalisation for heterogeneous stored values.

Documents written over the console's lifetime carry dates as native
datetimes, ISO-8601 strings, locale-formatted strings, epoch milliseconds or
SDK timestamp objects. Everything read back goes through :func:`safe_date`,
which always answers an aware :class:`datetime` and never raises.
"""
from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timezone, tzinfo
from email.utils import parsedate_to_datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo

from campusboard.shared.clock import Clock, utc_now
from campusboard.shared.logging_utils import error as log_error, warning as log_warning

DEFAULT_TIMEZONE = ZoneInfo("Asia/Tokyo")

FORMAT_ERROR = "日付エラー"

# SDK timestamp types expose one of these; Firestore-style objects use
# ``to_datetime``, protobuf Timestamps ``ToDatetime``.
_CONVERSION_METHODS = ("to_datetime", "ToDatetime", "to_date", "toDate")

_STRING_FORMATS = (
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y年%m月%d日 %H時%M分",
    "%Y年%m月%d日 %H:%M",
    "%Y年%m月%d日",
)


def _localize(value: datetime, tz: Optional[tzinfo]) -> datetime:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=tz or DEFAULT_TIMEZONE)
    return value


def _coerce(value: Any, tz: Optional[tzinfo]) -> Optional[datetime]:
    if isinstance(value, datetime):
        return _localize(value, tz)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=tz or DEFAULT_TIMEZONE)
    return None


def parse_datetime_string(text: str, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Parse ISO-8601, slash/kanji local formats or RFC 2822 text.

    Naive results are read as wall-clock time in ``tz``. Returns ``None``
    when nothing matches.
    """
    text = (text or "").strip()
    if not text:
        return None

    iso = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        return _localize(datetime.fromisoformat(iso), tz)
    except ValueError:
        pass

    for fmt in _STRING_FORMATS:
        try:
            return _localize(datetime.strptime(text, fmt), tz)
        except ValueError:
            continue

    try:
        parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return None
    return _localize(parsed, tz) if parsed is not None else None


def combine_local(date_text: Optional[str], time_text: Optional[str], tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Build a datetime from separate date and time form fields."""
    if not date_text or not time_text:
        return None
    return parse_datetime_string(f"{date_text.strip()} {time_text.strip()}", tz)


def _from_epoch_millis(value: Any) -> Optional[datetime]:
    try:
        millis = float(value)
        if not math.isfinite(millis):
            return None
        return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _describe(value: Any) -> str:
    try:
        return repr(value)[:120]
    except Exception:
        return f"<unprintable {type(value).__name__}>"


def _convert_timestamp_object(value: Any, tz: Optional[tzinfo]) -> Optional[datetime]:
    for name in _CONVERSION_METHODS:
        try:
            method = getattr(value, name, None)
        except Exception:
            return None
        if not callable(method):
            continue
        try:
            converted = method()
        except Exception as exc:
            log_error(None, "dates:timestamp_conversion_failed", error=str(exc), valueType=type(value).__name__)
            return None
        return _coerce(converted, tz)
    return None


def safe_date(value: Any, *, now: Clock = utc_now, tz: Optional[tzinfo] = None) -> datetime:
    """Normalise ``value`` to an aware datetime, falling back to ``now()``.

    Order of attempts: native datetime/date, SDK timestamp conversion, string
    parsing, epoch milliseconds. Never raises.
    """
    result = _coerce(value, tz)
    if result is not None:
        return result

    result = _convert_timestamp_object(value, tz)
    if result is not None:
        return result

    if isinstance(value, str):
        result = parse_datetime_string(value, tz)
        if result is not None:
            return result
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        result = _from_epoch_millis(value)
        if result is not None:
            return result

    log_warning(None, "dates:invalid_value_using_now", value=_describe(value))
    return now()


_WEEKDAYS = {
    "ja": (("月", "火", "水", "木", "金", "土", "日"),
           ("月曜日", "火曜日", "水曜日", "木曜日", "金曜日", "土曜日", "日曜日")),
    "en": (("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"),
           ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")),
}

_TOKEN = re.compile(r"'[^']*'|yyyy|EEEE|EEE|MM|dd|HH|mm|ss|M|d|H|[A-Za-z]")


def _render(moment: datetime, pattern: str, locale: str) -> str:
    short_days, long_days = _WEEKDAYS.get(locale, _WEEKDAYS["en"])
    fields = {
        "yyyy": f"{moment.year:04d}",
        "MM": f"{moment.month:02d}",
        "M": str(moment.month),
        "dd": f"{moment.day:02d}",
        "d": str(moment.day),
        "HH": f"{moment.hour:02d}",
        "H": str(moment.hour),
        "mm": f"{moment.minute:02d}",
        "ss": f"{moment.second:02d}",
        "EEE": short_days[moment.weekday()],
        "EEEE": long_days[moment.weekday()],
    }

    def substitute(match: re.Match) -> str:
        token = match.group(0)
        if token.startswith("'"):
            return token[1:-1]
        if token not in fields:
            raise ValueError(f"unsupported pattern token {token!r}")
        return fields[token]

    return _TOKEN.sub(substitute, pattern)


def safe_format(
    value: Any,
    pattern: str,
    *,
    locale: str = "ja",
    tz: Optional[tzinfo] = None,
    now: Clock = utc_now,
) -> str:
    """Format ``value`` with a ``yyyy/MM/dd HH:mm`` style pattern.

    Latin letters outside the supported tokens must be quoted. Returns
    :data:`FORMAT_ERROR` instead of raising when the pattern cannot be applied.
    """
    moment = safe_date(value, now=now, tz=tz)
    try:
        return _render(moment.astimezone(tz or DEFAULT_TIMEZONE), pattern, locale)
    except Exception as exc:
        log_error(None, "dates:format_failed", pattern=repr(pattern), error=str(exc))
        return FORMAT_ERROR


def safe_compare(first: Any, second: Any, *, now: Clock = utc_now, tz: Optional[tzinfo] = None) -> bool:
    """True when ``first`` is at or before ``second`` after normalising both."""
    return safe_date(first, now=now, tz=tz) <= safe_date(second, now=now, tz=tz)


def to_iso(value: datetime) -> str:
    """Persisted representation: UTC ISO-8601 with millisecond precision."""
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def epoch_millis(value: datetime) -> float:
    return value.timestamp() * 1000.0
