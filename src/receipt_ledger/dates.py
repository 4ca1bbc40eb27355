"""Receipt date value type and JST calendar helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from receipt_ledger.config import (
    DEFAULT_MAX_RECEIPT_AGE_YEARS,
    JST_OFFSET_HOURS,
)
from receipt_ledger.errors import (
    FutureDateError,
    InvalidCalendarDateError,
    InvalidFormatError,
    TooOldError,
)

_DATE_PATTERN = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")


def today_in_japan(now: datetime | None = None) -> date:
    """Return the current calendar date at the fixed JST offset."""
    current = now if now is not None else datetime.now(tz=UTC)
    if current.tzinfo is None:
        current = current.replace(tzinfo=UTC)
    return (current.astimezone(UTC) + timedelta(hours=JST_OFFSET_HOURS)).date()


def subtract_years(day: date, years: int) -> date:
    """Move ``day`` back by whole years, clamping Feb 29 to Feb 28."""
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        return day.replace(year=day.year - years, day=28)


@dataclass(frozen=True, order=True)
class ReceiptDate:
    """A calendar date kept as a ``YYYY-MM-DD`` string.

    No time or timezone is stored, so the same receipt never drifts to a
    neighbouring day between the client, the server and storage. Ordering
    compares the strings, which sort chronologically.
    """

    value: str

    @classmethod
    def create(
        cls,
        value: str | date | datetime,
        *,
        today: date | None = None,
        max_age_years: int = DEFAULT_MAX_RECEIPT_AGE_YEARS,
    ) -> ReceiptDate:
        """Validate and build a ReceiptDate.

        ``value`` may be ``YYYY-MM-DD``, an ISO datetime string (only the
        date part is kept), a ``date`` or a ``datetime`` (converted to UTC;
        naive values are taken as UTC).

        Raises:
            InvalidFormatError: the string is not ``YYYY-MM-DD``.
            InvalidCalendarDateError: the day does not exist (e.g. Feb 30).
            FutureDateError: the day is after today in JST.
            TooOldError: the day is older than ``max_age_years``.
        """
        normalized = _normalize(value)
        parsed = _parse_strict(normalized)
        _check_business_rules(parsed, today or today_in_japan(), max_age_years)
        return cls(normalized)

    def as_date(self) -> date:
        return date.fromisoformat(self.value)

    def equals(self, other: object) -> bool:
        return self == other

    def is_before(self, other: ReceiptDate) -> bool:
        return self.value < other.value

    def is_after(self, other: ReceiptDate) -> bool:
        return self.value > other.value

    def to_persistence_string(self) -> str:
        """Return the ISO midnight string used in storage rows."""
        return f"{self.value}T00:00:00.000Z"

    def format_for_display(self) -> str:
        """Return the Japanese long form without zero padding, e.g. 2024年1月5日."""
        day = self.as_date()
        return f"{day.year}年{day.month}月{day.day}日"

    def format(self, pattern: str) -> str:
        """Format with a ``strftime`` pattern."""
        return self.as_date().strftime(pattern)

    def to_datetime(self) -> datetime:
        """Return UTC midnight of this date."""
        day = self.as_date()
        return datetime(day.year, day.month, day.day, tzinfo=UTC)

    def __str__(self) -> str:
        return self.value


def _normalize(value: str | date | datetime) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC).date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        date_part = value.strip().split("T", 1)[0]
        if not _DATE_PATTERN.match(date_part):
            msg = f"Date string must be in YYYY-MM-DD format, got {value!r}"
            raise InvalidFormatError(msg)
        return date_part
    msg = f"Input must be a date, datetime or YYYY-MM-DD string, got {type(value).__name__}"
    raise InvalidFormatError(msg)


def _parse_strict(value: str) -> date:
    try:
        parsed = date.fromisoformat(value)
    except ValueError:
        msg = f"Invalid date components (month or day out of range): {value}"
        raise InvalidCalendarDateError(msg) from None
    if parsed.isoformat() != value:
        msg = f"Invalid date components (month or day out of range): {value}"
        raise InvalidCalendarDateError(msg)
    return parsed


def _check_business_rules(day: date, today: date, max_age_years: int) -> None:
    if day > today:
        msg = f"Receipt date cannot be in the future: {day.isoformat()}"
        raise FutureDateError(msg)
    oldest = subtract_years(today, max_age_years)
    if day < oldest:
        msg = f"Receipt date cannot be older than {max_age_years} years: {day.isoformat()}"
        raise TooOldError(msg)
