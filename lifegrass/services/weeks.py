# services/weeks.py
"""Week-key arithmetic for the life grid.

Weeks are counted from January 1st of each calendar year in whole 7-day
steps, capped at 51, so every year has exactly 52 slots. This is not
ISO-8601 numbering: the last days of December share week 51 and January 1st
always starts week 0.
"""
import re
from datetime import date

WEEKS_PER_YEAR = 52
LAST_WEEK = WEEKS_PER_YEAR - 1
WEEK_KEY_RE = re.compile(r"^(\d{4})-(\d|[1-4]\d|5[01])$")


def week_of_year(day: date) -> int:
    elapsed = (day - date(day.year, 1, 1)).days
    return min(elapsed // 7, LAST_WEEK)


def week_key(year: int, week: int) -> str:
    return f"{year}-{week}"


def parse_week_key(key: str) -> tuple[int, int]:
    m = WEEK_KEY_RE.match(key or "")
    if not m:
        raise ValueError(f"not a week key: {key!r}")
    return int(m.group(1)), int(m.group(2))


def is_week_key(key) -> bool:
    return isinstance(key, str) and WEEK_KEY_RE.match(key) is not None


def current_week_key(today: date | None = None) -> str:
    today = today or date.today()
    return week_key(today.year, week_of_year(today))


def grid_index(birth_year: int, day: date) -> int:
    return (day.year - birth_year) * WEEKS_PER_YEAR + week_of_year(day)


def key_for_index(birth_year: int, index: int) -> str:
    return week_key(birth_year + index // WEEKS_PER_YEAR, index % WEEKS_PER_YEAR)
