"""
Compile raw listing parameters into an owner-scoped predicate and a page window.

The predicate is a tuple of typed clauses. Storage backends render the clauses
(see ``storage.render_clause``); every clause can also be evaluated against a
record in memory with ``matches``, which is what a linear scan would do.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Optional, Union

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "all"
DEFAULT_PAGE_SIZE = 10
# Largest row offset a storage backend accepts (signed 64-bit).
MAX_OFFSET = 2**63 - 1
SEARCH_FIELDS = ("title", "description")


class DateRangePolicy(str, Enum):
    # A range is applied only when both bounds are supplied.
    require_both = "require_both"
    # A single bound is applied as a one-sided range.
    open_ended = "open_ended"


@dataclass(frozen=True)
class FilterPolicy:
    date_range: DateRangePolicy = DateRangePolicy.require_both
    strict: bool = False
    default_page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = 100


class FilterValidationError(ValueError):
    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__(
            "Invalid filter parameters: "
            + ", ".join(f"{name} ({reason})" for name, reason in self.errors.items())
        )

    @property
    def fields(self) -> list[str]:
        return list(self.errors)


@dataclass(frozen=True)
class OwnerEquals:
    user_id: int

    def matches(self, record) -> bool:
        return record.user_id == self.user_id


@dataclass(frozen=True)
class CategoryEquals:
    category: str

    def matches(self, record) -> bool:
        value = getattr(record.category, "value", record.category)
        return value == self.category


@dataclass(frozen=True)
class DateInRange:
    """Inclusive on both ends; a missing bound leaves that side open."""

    start: Optional[date] = None
    end: Optional[date] = None

    def matches(self, record) -> bool:
        if self.start is not None and record.date < self.start:
            return False
        if self.end is not None and record.date > self.end:
            return False
        return True


@dataclass(frozen=True)
class TextMatchAny:
    """Case-insensitive substring match against any of ``fields``."""

    text: str
    fields: tuple[str, ...] = SEARCH_FIELDS

    def matches(self, record) -> bool:
        needle = self.text.casefold()
        return any(
            needle in (getattr(record, name) or "").casefold() for name in self.fields
        )


Clause = Union[OwnerEquals, CategoryEquals, DateInRange, TextMatchAny]
Predicate = tuple[Clause, ...]


def matches_all(predicate: Predicate, record) -> bool:
    return all(clause.matches(record) for clause in predicate)


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False


# Newest first; ties resolved by insertion order.
DEFAULT_SORT: tuple[SortKey, ...] = (
    SortKey("date", descending=True),
    SortKey("id", descending=False),
)


@dataclass(frozen=True)
class PageWindow:
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def limit(self) -> int:
        return self.page_size

    def total_pages(self, total: int) -> int:
        if total <= 0:
            return 0
        return -(-total // self.page_size)


@dataclass(frozen=True)
class ExpenseQuery:
    predicate: Predicate
    window: PageWindow = field(default_factory=PageWindow)
    sort: tuple[SortKey, ...] = DEFAULT_SORT


def parse_date(value) -> Optional[date]:
    """Parse ``YYYY-MM-DD`` or an ISO datetime. Returns None for blank input.

    Raises ValueError when the value is present but not a calendar date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return datetime.fromisoformat(text).date()


def _parse_int(value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("not a number")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    return int(text)


def _resolve_page(value, page_size: int, errors: dict[str, str]) -> int:
    try:
        page = _parse_int(value)
    except ValueError:
        errors["page"] = "must be a whole number"
        return 1
    if page is None:
        return 1
    if page < 1:
        errors["page"] = "must be at least 1"
        return 1
    last_page = MAX_OFFSET // page_size + 1
    if page > last_page:
        errors["page"] = f"must be at most {last_page}"
        return last_page
    return page


def _resolve_page_size(value, policy: FilterPolicy, errors: dict[str, str]) -> int:
    try:
        size = _parse_int(value)
    except ValueError:
        errors["pageSize"] = "must be a whole number"
        return policy.default_page_size
    if size is None:
        return policy.default_page_size
    if size < 1:
        errors["pageSize"] = "must be at least 1"
        return policy.default_page_size
    if size > policy.max_page_size:
        errors["pageSize"] = f"must be at most {policy.max_page_size}"
        return policy.max_page_size
    return size


def _resolve_date(name: str, value, errors: dict[str, str]) -> Optional[date]:
    try:
        return parse_date(value)
    except ValueError:
        errors[name] = "must be a calendar date (YYYY-MM-DD)"
        logger.debug(f"compile_filters: dropping malformed {name}={value!r}")
        return None


def compile_filters(
    user_id: int,
    *,
    page=None,
    page_size=None,
    category: Optional[str] = None,
    start_date=None,
    end_date=None,
    search: Optional[str] = None,
    policy: FilterPolicy = FilterPolicy(),
    categories: Optional[Iterable[str]] = None,
) -> ExpenseQuery:
    """Build the owner-scoped query for one listing request.

    In lenient mode every invalid input falls back to its default (page 1,
    the default page size, no date bound). With ``policy.strict`` the same
    inputs raise ``FilterValidationError`` listing each offending field.
    ``categories`` is the closed set used to reject unknown labels in strict
    mode; leniently an unknown label is kept and simply matches nothing.
    """
    errors: dict[str, str] = {}
    clauses: list[Clause] = [OwnerEquals(user_id)]

    if category and category != ALL_CATEGORIES:
        if categories is not None and category not in set(categories):
            errors["category"] = "is not a known category"
        clauses.append(CategoryEquals(category))

    start = _resolve_date("startDate", start_date, errors)
    end = _resolve_date("endDate", end_date, errors)
    if start is not None and end is not None and start > end:
        errors["endDate"] = "must not be before startDate"
    if policy.date_range == DateRangePolicy.open_ended:
        if start is not None or end is not None:
            clauses.append(DateInRange(start, end))
    elif start is not None and end is not None:
        clauses.append(DateInRange(start, end))

    if search and search.strip():
        clauses.append(TextMatchAny(search.strip()))

    size = _resolve_page_size(page_size, policy, errors)
    window = PageWindow(page=_resolve_page(page, size, errors), page_size=size)

    if errors and policy.strict:
        raise FilterValidationError(errors)
    return ExpenseQuery(predicate=tuple(clauses), window=window)
