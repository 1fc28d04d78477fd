from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import ClassVar, Optional, Union

DateLike = Union[date, datetime]

# "<integer> (hours|days|months|years) old"
AGE_LABEL_PATTERN = re.compile(r"^(\d+)\s*(hours|days|months|years)\s*old$")

CHILD_MAX_YEARS = 18   # age < 18 -> child
SENIOR_MIN_YEARS = 60  # age >= 60 -> senior


class AgeUnit(str, Enum):
    HOURS = "hours"
    DAYS = "days"
    MONTHS = "months"
    YEARS = "years"


class AgeBucket(str, Enum):
    CHILD = "child"
    ADULT = "adult"
    SENIOR = "senior"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class AgeLabel:
    """
    Age scaled to its magnitude: hours for the first day, days for the first
    month, months for the first year, whole years after that.

    AgeLabel.UNKNOWN (no value/unit, empty text) stands for "no birth date".
    """

    value: Optional[int]
    unit: Optional[AgeUnit]

    UNKNOWN: ClassVar["AgeLabel"]

    @property
    def known(self) -> bool:
        return self.value is not None and self.unit is not None

    @property
    def text(self) -> str:
        if not self.known:
            return ""
        return f"{self.value} {self.unit.value} old"

    def __str__(self) -> str:
        return self.text


AgeLabel.UNKNOWN = AgeLabel(value=None, unit=None)


def _as_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _align(born: datetime, ref: datetime) -> tuple[datetime, datetime]:
    # naive vs aware: compare wall-clock values
    if (born.tzinfo is None) != (ref.tzinfo is None):
        return born.replace(tzinfo=None), ref.replace(tzinfo=None)
    return born, ref


def _full_months(born: date, ref: date) -> int:
    months = (ref.year - born.year) * 12 + (ref.month - born.month)
    if ref.day < born.day:
        months -= 1
    return months


def age_in_years(birth_date: Optional[DateLike], reference: Optional[DateLike] = None) -> Optional[int]:
    """Whole years completed at `reference` (today when omitted). None when unknown or in the future."""
    if birth_date is None:
        return None

    born = _as_datetime(birth_date)
    ref = _as_datetime(reference) if reference is not None else datetime.now()
    born, ref = _align(born, ref)
    if born > ref:
        return None

    b, r = born.date(), ref.date()
    years = r.year - b.year
    if (r.month, r.day) < (b.month, b.day):
        years -= 1
    return years


def compute_age(birth_date: Optional[DateLike], reference: Optional[DateLike] = None) -> AgeLabel:
    """
    Age label for a birth date.

    Rules:
    - < 24 hours  -> "<n> hours old"
    - < 30 days   -> "<n> days old"
    - < 12 months -> "<n> months old" (never 0 months)
    - otherwise   -> "<n> years old"
    Absent or future birth dates yield AgeLabel.UNKNOWN.
    """
    if birth_date is None:
        return AgeLabel.UNKNOWN

    born = _as_datetime(birth_date)
    ref = _as_datetime(reference) if reference is not None else datetime.now()
    born, ref = _align(born, ref)
    if born > ref:
        return AgeLabel.UNKNOWN

    delta = ref - born
    hours = int(delta.total_seconds() // 3600)
    if hours < 24:
        return AgeLabel(hours, AgeUnit.HOURS)

    if delta.days < 30:
        return AgeLabel(delta.days, AgeUnit.DAYS)

    months = _full_months(born.date(), ref.date())
    if months < 12:
        return AgeLabel(max(months, 1), AgeUnit.MONTHS)

    return AgeLabel(age_in_years(born, ref), AgeUnit.YEARS)


def classify_age_bucket(birth_date: Optional[DateLike], reference: Optional[DateLike] = None) -> AgeBucket:
    """Child / Adult / Senior on integer years, whatever unit the label would use."""
    years = age_in_years(birth_date, reference)
    if years is None:
        return AgeBucket.UNKNOWN
    if years < CHILD_MAX_YEARS:
        return AgeBucket.CHILD
    if years < SENIOR_MIN_YEARS:
        return AgeBucket.ADULT
    return AgeBucket.SENIOR


def is_valid_age_label(text: Optional[str]) -> bool:
    return bool(text) and AGE_LABEL_PATTERN.match(text.strip()) is not None
