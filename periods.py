from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterator, Optional, Union

DateLike = Union[date, str, None]


class InvalidDateRange(ValueError):
    pass


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def parse_date(value: DateLike, field: str = "date") -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise InvalidDateRange(f"Invalid {field}: {value!r}") from exc


def _check_year(year: int) -> None:
    if not date.min.year <= int(year) <= date.max.year:
        raise InvalidDateRange(
            f"Year must be between {date.min.year} and {date.max.year}, got {year}"
        )


def month_period(month: int, year: int) -> Period:
    if not 1 <= int(month) <= 12:
        raise InvalidDateRange(f"Month must be between 1 and 12, got {month}")
    _check_year(year)
    first = date(year, month, 1)
    if month == 12:
        return Period("month", first, date(year, 12, 31))
    return Period("month", first, date(year, month + 1, 1) - date.resolution)


def year_period(year: int) -> Period:
    _check_year(year)
    return Period("year", date(year, 1, 1), date(year, 12, 31))


def resolve_range(
    start: DateLike, end: DateLike, *, max_days: Optional[int] = None
) -> Period:
    start_date = parse_date(start, "start date")
    end_date = parse_date(end, "end date")
    if start_date is None or end_date is None:
        raise InvalidDateRange("Date range requires start and end dates")
    if start_date > end_date:
        raise InvalidDateRange("Start date must be before end date")
    period = Period("custom", start_date, end_date)
    if max_days is not None and period.days > max_days:
        raise InvalidDateRange(f"Date range exceeds {max_days} days")
    return period


def resolve_optional_range(
    start: DateLike, end: DateLike
) -> tuple[Optional[date], Optional[date]]:
    """Parse an open-ended window; either bound may be missing."""
    start_date = parse_date(start, "start date")
    end_date = parse_date(end, "end date")
    if start_date and end_date and start_date > end_date:
        raise InvalidDateRange("Start date must be before end date")
    return start_date, end_date


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
