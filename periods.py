from dataclasses import dataclass
from datetime import date
from typing import Optional

MIN_YEAR = 1970
MAX_YEAR = 9998


class PeriodValidationError(ValueError):
    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__(
            "Invalid period: "
            + ", ".join(f"{name} ({reason})" for name, reason in self.errors.items())
        )

    @property
    def fields(self) -> list[str]:
        return list(self.errors)


def month_start(year: int, month: int) -> date:
    return date(year, month, 1)


def month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - date.resolution
    return date(year, month + 1, 1) - date.resolution


@dataclass(frozen=True)
class StatsPeriod:
    year: int
    month: Optional[int]
    start: date
    end: date

    def full_year(self) -> "StatsPeriod":
        return StatsPeriod(self.year, None, date(self.year, 1, 1), date(self.year, 12, 31))


def _coerce_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    return int(text)


def resolve_stats_period(
    year=None,
    month=None,
    *,
    today: Optional[date] = None,
    strict: bool = False,
) -> StatsPeriod:
    """Resolve the narrowed stats window for ``year`` and optional ``month``.

    Missing, non-numeric or out-of-range years fall back to the current year;
    months outside 1..12 are treated as absent. With ``strict`` those inputs
    raise ``PeriodValidationError`` instead.
    """
    today = today or date.today()
    errors: dict[str, str] = {}

    try:
        resolved_year = _coerce_int(year)
    except ValueError:
        errors["year"] = "must be a whole number"
        resolved_year = None
    if resolved_year is not None and not MIN_YEAR <= resolved_year <= MAX_YEAR:
        errors["year"] = f"must be between {MIN_YEAR} and {MAX_YEAR}"
        resolved_year = None
    if resolved_year is None:
        resolved_year = today.year

    try:
        resolved_month = _coerce_int(month)
    except ValueError:
        errors["month"] = "must be a whole number"
        resolved_month = None
    if resolved_month is not None and not 1 <= resolved_month <= 12:
        errors["month"] = "must be between 1 and 12"
        resolved_month = None

    if errors and strict:
        raise PeriodValidationError(errors)

    if resolved_month is None:
        return StatsPeriod(
            resolved_year, None, date(resolved_year, 1, 1), date(resolved_year, 12, 31)
        )
    return StatsPeriod(
        resolved_year,
        resolved_month,
        month_start(resolved_year, resolved_month),
        month_end(resolved_year, resolved_month),
    )
