"""Audience enumerations for notifications.

A target list that names every member of its enumeration, or carries one of
the sentinel labels, applies to everyone.
"""
from typing import Iterable, List, Tuple

FACULTIES: Tuple[str, ...] = (
    "法学部",
    "経済学部",
    "文学部",
    "教育学部",
    "理学部",
    "工学部",
    "農学部",
    "医学部",
    "薬学部",
)

GRADES: Tuple[str, ...] = (
    "1年",
    "2年",
    "3年",
    "4年",
    "修士",
    "博士",
)

ALL_SENTINEL = "all"
ALL_FACULTIES_LABEL = "全学部"
ALL_GRADES_LABEL = "全学年"

FACULTY_SENTINELS = frozenset({ALL_SENTINEL, ALL_FACULTIES_LABEL})
GRADE_SENTINELS = frozenset({ALL_SENTINEL, ALL_GRADES_LABEL})


def covers_all(values: Iterable[str], universe: Tuple[str, ...], sentinels: frozenset) -> bool:
    values = list(values)
    return len(values) == len(universe) or any(v in sentinels for v in values)


def covers_all_faculties(values: Iterable[str]) -> bool:
    return covers_all(values, FACULTIES, FACULTY_SENTINELS)


def covers_all_grades(values: Iterable[str]) -> bool:
    return covers_all(values, GRADES, GRADE_SENTINELS)


def expand_faculties(values: Iterable[str]) -> List[str]:
    """Return the explicit faculty list an edit form should preselect."""
    values = list(values or [])
    return list(FACULTIES) if covers_all_faculties(values) else values


def expand_grades(values: Iterable[str]) -> List[str]:
    values = list(values or [])
    return list(GRADES) if covers_all_grades(values) else values
