from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from config import get_settings
from filters import (
    DateInRange,
    ExpenseQuery,
    FilterPolicy,
    OwnerEquals,
    Predicate,
    compile_filters,
)
from models import Expense, ExpenseCategory, cents_to_decimal, decimal_to_cents
from periods import StatsPeriod, resolve_stats_period
from schemas import ExpenseIn
from storage import (
    GROUP_CATEGORY,
    GROUP_MONTH,
    ExpenseStore,
    SQLAlchemyExpenseStore,
)

logger = logging.getLogger(__name__)

CATEGORY_LABELS = tuple(member.value for member in ExpenseCategory)


def get_current_user_id() -> int:
    return get_settings().default_user_id


class ExpenseNotFound(ValueError):
    def __init__(self, expense_id: int) -> None:
        self.expense_id = expense_id
        super().__init__("Expense not found")


@dataclass
class ExpenseFilters:
    category: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    search: Optional[str] = None


@dataclass
class ExpensePage:
    records: list[Expense]
    total: int
    total_pages: int
    current_page: int


@dataclass(frozen=True)
class CategoryStat:
    category: str
    total: Decimal
    count: int


@dataclass(frozen=True)
class MonthlyStat:
    month: int
    total: Decimal
    count: int


@dataclass(frozen=True)
class TotalStat:
    total: Decimal = Decimal("0.00")
    count: int = 0


@dataclass(frozen=True)
class PeriodBounds:
    start_date: date
    end_date: date


@dataclass(frozen=True)
class ExpenseStats:
    category_stats: list[CategoryStat]
    monthly_stats: list[MonthlyStat]
    total_expenses: TotalStat
    period: PeriodBounds


class ExpenseService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        *,
        policy: Optional[FilterPolicy] = None,
        store: Optional[ExpenseStore] = None,
    ) -> None:
        self.session = session
        self.user_id = get_current_user_id() if user_id is None else user_id
        self.policy = policy or get_settings().filter_policy()
        self.store = store or SQLAlchemyExpenseStore(session)

    def compile(
        self,
        filters: Optional[ExpenseFilters] = None,
        page=None,
        page_size=None,
    ) -> ExpenseQuery:
        filters = filters or ExpenseFilters()
        return compile_filters(
            self.user_id,
            page=page,
            page_size=page_size,
            category=filters.category,
            start_date=filters.start_date,
            end_date=filters.end_date,
            search=filters.search,
            policy=self.policy,
            categories=CATEGORY_LABELS,
        )

    def list_expenses(
        self,
        filters: Optional[ExpenseFilters] = None,
        page=None,
        page_size=None,
    ) -> ExpensePage:
        query = self.compile(filters, page, page_size)
        window = query.window
        records = self.store.find(query.predicate, query.sort, window.skip, window.limit)
        total = self.store.count(query.predicate)
        logger.info(
            f"list_expenses: user={self.user_id} clauses={len(query.predicate)} "
            f"page={window.page} size={window.page_size} total={total}"
        )
        return ExpensePage(
            records=records,
            total=total,
            total_pages=window.total_pages(total),
            current_page=window.page,
        )

    def get(self, expense_id: int) -> Expense:
        expense = self.session.get(Expense, expense_id)
        if not expense or expense.user_id != self.user_id:
            raise ExpenseNotFound(expense_id)
        return expense

    def create(self, data: ExpenseIn) -> Expense:
        expense = Expense(user_id=self.user_id)
        self._apply(expense, data)
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        logger.info(f"expense_created: user={self.user_id} id={expense.id}")
        return expense

    def update(self, expense_id: int, data: ExpenseIn) -> Expense:
        expense = self.get(expense_id)
        self._apply(expense, data, data.model_fields_set)
        self.session.commit()
        self.session.refresh(expense)
        logger.info(f"expense_updated: user={self.user_id} id={expense.id}")
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        self.session.delete(expense)
        self.session.commit()
        logger.info(f"expense_deleted: user={self.user_id} id={expense_id}")

    @staticmethod
    def _apply(
        expense: Expense, data: ExpenseIn, fields: Optional[set[str]] = None
    ) -> None:
        """Copy ``fields`` of ``data`` onto ``expense`` (every field when None).

        A record that is not recurring never keeps a recurring type.
        """
        values = data.model_dump(include=fields)
        if "amount" in values:
            expense.amount_cents = decimal_to_cents(values.pop("amount"))
        for name, value in values.items():
            setattr(expense, name, value)
        if not expense.is_recurring:
            expense.recurring_type = None


class StatsService:
    """Category, monthly and total spending for one owner.

    Category and total stats cover the narrowed window (one month, or the
    whole year when no month is given). Monthly stats always cover the full
    year so the trend stays visible while drilled into a single month.
    """

    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        *,
        strict: Optional[bool] = None,
        store: Optional[ExpenseStore] = None,
    ) -> None:
        self.session = session
        self.user_id = get_current_user_id() if user_id is None else user_id
        self.strict = get_settings().strict_filters if strict is None else strict
        self.store = store or SQLAlchemyExpenseStore(session)

    def _scoped(self, period: StatsPeriod) -> Predicate:
        return (OwnerEquals(self.user_id), DateInRange(period.start, period.end))

    def category_stats(self, period: StatsPeriod) -> list[CategoryStat]:
        rows = self.store.aggregate_by_group(self._scoped(period), GROUP_CATEGORY)
        stats = [
            CategoryStat(
                category=getattr(row.key, "value", row.key),
                total=cents_to_decimal(row.sum),
                count=row.count,
            )
            for row in rows
        ]
        stats.sort(key=lambda s: (-s.total, s.category))
        return stats

    def monthly_stats(self, period: StatsPeriod) -> list[MonthlyStat]:
        rows = self.store.aggregate_by_group(
            self._scoped(period.full_year()), GROUP_MONTH
        )
        stats = [
            MonthlyStat(
                month=int(row.key), total=cents_to_decimal(row.sum), count=row.count
            )
            for row in rows
        ]
        stats.sort(key=lambda s: s.month)
        return stats

    def total_stats(self, period: StatsPeriod) -> TotalStat:
        rows = self.store.aggregate_by_group(self._scoped(period), None)
        if not rows:
            return TotalStat()
        return TotalStat(total=cents_to_decimal(rows[0].sum), count=rows[0].count)

    def compute_stats(
        self, year=None, month=None, *, today: Optional[date] = None
    ) -> ExpenseStats:
        period = resolve_stats_period(year, month, today=today, strict=self.strict)
        stats = ExpenseStats(
            category_stats=self.category_stats(period),
            monthly_stats=self.monthly_stats(period),
            total_expenses=self.total_stats(period),
            period=PeriodBounds(start_date=period.start, end_date=period.end),
        )
        logger.info(
            f"compute_stats: user={self.user_id} start={period.start} "
            f"end={period.end} count={stats.total_expenses.count}"
        )
        return stats
