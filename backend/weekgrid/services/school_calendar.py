from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

DAYS = ("월", "화", "수", "목", "금")
PERIOD_COUNT = 6
DAY_COUNT = len(DAYS)

HOLIDAY_SUBJECT = "휴업일"

ALL_SUBJECTS = (
    "국어",
    "사회",
    "도덕",
    "수학",
    "과학",
    "실과",
    "체육",
    "음악",
    "미술",
    "영어",
    "자율자치",
    "동아리",
    "봉사",
    "진로",
    "학교자율",
    "창체",
    HOLIDAY_SUBJECT,
)

# Subjects that may be taught either by the homeroom teacher or a specialist.
FLEX_SUBJECTS = frozenset({"과학", "체육", "음악"})

DEFAULT_HOMEROOM_SUBJECTS = ("국어", "수학", "사회", "도덕", "미술", "창체")

# Wednesday period 6 is left free in the generated base week.
RESERVED_FREE_SLOT = (5, 2)

CLASS_SUFFIX = "반"

DEFAULT_TEACHERS = (
    {"id": "t1", "name": "하승호", "subject": "체육", "classes": list(range(1, 11))},
    {"id": "t2", "name": "이지훈", "subject": "체육", "classes": [11, 12]},
    {"id": "t3", "name": "윤지은", "subject": "영어", "classes": list(range(1, 7))},
    {"id": "t4", "name": "김수연", "subject": "영어", "classes": list(range(7, 13))},
    {"id": "t5", "name": "이소연", "subject": "과학", "classes": list(range(1, 11))},
    {"id": "t6", "name": "류동휘", "subject": "과학", "classes": [11, 12]},
    {"id": "t7", "name": "장지은", "subject": "음악", "classes": list(range(1, 13))},
)


@dataclass(frozen=True)
class WeekInfo:
    name: str
    term: int
    number: int
    start: date


def class_name(number: int) -> str:
    return f"{number}{CLASS_SUFFIX}"


def class_number(name: str) -> int | None:
    if not isinstance(name, str) or not name.endswith(CLASS_SUFFIX):
        return None
    digits = name[: -len(CLASS_SUFFIX)]
    if not digits.isdigit():
        return None
    return int(digits)


def class_names(count: int) -> list[str]:
    return [class_name(number) for number in range(1, count + 1)]


def cell_id(class_label: str, period: int, day: int) -> str:
    return f"{class_label}-{period}-{day}"


def in_grid(period: int, day: int) -> bool:
    return 0 <= period < PERIOD_COUNT and 0 <= day < DAY_COUNT


def default_location(subject: str, day: int, period: int) -> str:
    if subject == "과학":
        return "과학1실"
    if subject == "체육":
        if day in (0, 1):
            return "강당"
        if day == 2:
            if 1 <= period <= 3:
                return "체육실"
            if period == 4:
                return "강당"
        if day == 3:
            if period == 0:
                return "강당"
            if 2 <= period <= 4:
                return "체육실"
        if day == 4:
            if 1 <= period <= 3:
                return "체육실"
            if 4 <= period <= 5:
                return "강당"
    return ""


def fallback_homeroom_subject(period: int, day: int) -> str:
    return DEFAULT_HOMEROOM_SUBJECTS[(period + day) % len(DEFAULT_HOMEROOM_SUBJECTS)]


def _first_monday_on_or_after(value: date) -> date:
    return value + timedelta(days=(7 - value.weekday()) % 7)


def _term_weeks(term: int, start: date, end: date) -> list[WeekInfo]:
    weeks: list[WeekInfo] = []
    current = _first_monday_on_or_after(start)
    number = 1
    while current <= end:
        friday = current + timedelta(days=4)
        name = (
            f"{term}학기 {number}주차 "
            f"({current.month}.{current.day}~{friday.month}.{friday.day})"
        )
        weeks.append(WeekInfo(name=name, term=term, number=number, start=current))
        current += timedelta(days=7)
        number += 1
    return weeks


def generate_academic_weeks(year: int) -> list[WeekInfo]:
    first_term = _term_weeks(1, date(year, 3, 1), date(year, 7, 24))
    second_term = _term_weeks(2, date(year, 8, 17), date(year, 12, 31))
    return first_term + second_term


def day_labels(week: WeekInfo | None) -> list[str]:
    if week is None:
        return list(DAYS)
    labels = []
    for index, day in enumerate(DAYS):
        current = week.start + timedelta(days=index)
        labels.append(f"{day}({current.month}.{current.day})")
    return labels
