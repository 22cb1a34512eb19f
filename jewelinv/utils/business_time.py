"""Calendar helpers pinned to the configured business timezone.

Ledger days and report ranges are always computed in ``BUSINESS_TIMEZONE``.
Stored timestamps are naive UTC, so range bounds are converted back to naive
UTC before they reach a query.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app, has_app_context

from jewelinv.errors import ValidationFailure

DEFAULT_TIMEZONE = "Asia/Kolkata"

RANGE_TODAY = "today"
RANGE_YESTERDAY = "yesterday"
RANGE_THIS_MONTH = "this-month"
RANGE_LAST_3_MONTHS = "last-3-months"
RANGE_THIS_YEAR = "this-year"
RANGE_CUSTOM = "custom"
RANGE_ALL = "all"

RANGE_SELECTORS = (
    RANGE_TODAY,
    RANGE_YESTERDAY,
    RANGE_THIS_MONTH,
    RANGE_LAST_3_MONTHS,
    RANGE_THIS_YEAR,
    RANGE_CUSTOM,
    RANGE_ALL,
)


@dataclass(frozen=True)
class DateRange:
    """Inclusive naive-UTC bounds; ``None`` bounds mean unbounded."""

    selector: str
    start: datetime | None = None
    end: datetime | None = None
    label: str = ""

    @property
    def is_unbounded(self) -> bool:
        return self.start is None and self.end is None


def business_tz() -> ZoneInfo:
    name = DEFAULT_TIMEZONE
    if has_app_context():
        name = current_app.config.get("BUSINESS_TIMEZONE") or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as exc:
        raise RuntimeError(f"Unknown BUSINESS_TIMEZONE {name!r}") from exc


def business_now(now: datetime | None = None) -> datetime:
    """Current (or given) instant as an aware datetime in the business zone.

    Naive ``now`` values are read as UTC, matching how timestamps are stored.
    """

    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(business_tz())


def business_today(now: datetime | None = None) -> date:
    return business_now(now).date()


def to_business_time(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return business_now(value)


def _to_naive_utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def day_bounds(first_day: date, last_day: date | None = None) -> tuple[datetime, datetime]:
    """UTC bounds covering ``first_day`` through the end of ``last_day``."""

    last_day = last_day or first_day
    tz = business_tz()
    start = datetime.combine(first_day, time.min, tzinfo=tz)
    end = datetime.combine(last_day, time.max, tzinfo=tz)
    return _to_naive_utc(start), _to_naive_utc(end)


def _months_back(day: date, months: int) -> date:
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    # Clamp to the last valid day of the target month.
    for candidate in (day.day, 30, 29, 28):
        try:
            return date(year, month, min(day.day, candidate))
        except ValueError:
            continue
    return date(year, month, 1)  # pragma: no cover - unreachable


def parse_iso_date(value: str | None, field_name: str) -> date:
    """Parse ``YYYY-MM-DD``; a full ISO timestamp is accepted and cut to its date."""

    text = (value or "").strip()
    if not text:
        raise ValidationFailure(f"{field_name} date is required for a custom range.")
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError as exc:
        raise ValidationFailure(
            f"{field_name} date must use the YYYY-MM-DD format."
        ) from exc


def resolve_date_range(
    selector: str | None,
    start: str | None = None,
    end: str | None = None,
    *,
    now: datetime | None = None,
) -> DateRange:
    """Translate a report range selector into UTC bounds.

    A bare ``start``/``end`` pair without a selector is read as ``custom``; no
    selector and no dates means ``all``.
    """

    selector = (selector or "").strip().lower()
    if not selector:
        selector = RANGE_CUSTOM if (start or end) else RANGE_ALL

    if selector not in RANGE_SELECTORS:
        raise ValidationFailure(
            f"Unknown range {selector!r}. Use one of: {', '.join(RANGE_SELECTORS)}."
        )

    if selector == RANGE_ALL:
        return DateRange(selector=selector, label="All time")

    today = business_today(now)

    if selector == RANGE_TODAY:
        first, last = today, today
    elif selector == RANGE_YESTERDAY:
        first = last = today - timedelta(days=1)
    elif selector == RANGE_THIS_MONTH:
        first, last = today.replace(day=1), today
    elif selector == RANGE_LAST_3_MONTHS:
        first, last = _months_back(today, 3), today
    elif selector == RANGE_THIS_YEAR:
        first, last = today.replace(month=1, day=1), today
    else:
        first = parse_iso_date(start, "Start")
        last = parse_iso_date(end, "End")
        if last < first:
            raise ValidationFailure("End date must not be before the start date.")

    start_utc, end_utc = day_bounds(first, last)
    label = first.isoformat() if first == last else f"{first.isoformat()} to {last.isoformat()}"
    return DateRange(selector=selector, start=start_utc, end=end_utc, label=label)
