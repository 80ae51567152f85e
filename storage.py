from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import extract, func, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from database import casefold
from filters import (
    CategoryEquals,
    Clause,
    DateInRange,
    OwnerEquals,
    Predicate,
    SortKey,
    TextMatchAny,
)
from models import Expense


GROUP_CATEGORY = "category"
GROUP_MONTH = "month"


@dataclass(frozen=True)
class GroupTotal:
    key: object
    sum: int
    count: int


class ExpenseStore(ABC):
    @abstractmethod
    def find(
        self,
        predicate: Predicate,
        sort: Sequence[SortKey],
        skip: int,
        limit: int,
    ) -> list[Expense]:
        ...

    @abstractmethod
    def count(self, predicate: Predicate) -> int:
        ...

    @abstractmethod
    def aggregate_by_group(
        self,
        predicate: Predicate,
        group_key: Optional[str],
        sum_field: str = "amount_cents",
    ) -> list[GroupTotal]:
        """Sum ``sum_field`` and count records per ``group_key``.

        ``group_key=None`` yields one row over every matching record, or no row
        when nothing matches.
        """


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def render_clause(clause: Clause) -> ColumnElement[bool]:
    if isinstance(clause, OwnerEquals):
        return Expense.user_id == clause.user_id
    if isinstance(clause, CategoryEquals):
        return Expense.category == clause.category
    if isinstance(clause, DateInRange):
        if clause.start is not None and clause.end is not None:
            return Expense.date.between(clause.start, clause.end)
        if clause.start is not None:
            return Expense.date >= clause.start
        return Expense.date <= clause.end
    if isinstance(clause, TextMatchAny):
        like = f"%{_escape_like(clause.text.casefold())}%"
        return or_(
            *(
                casefold(func.coalesce(getattr(Expense, name), "")).like(
                    like, escape="\\"
                )
                for name in clause.fields
            )
        )
    raise TypeError(f"Unsupported clause: {clause!r}")


def render_predicate(predicate: Predicate) -> list[ColumnElement[bool]]:
    if not predicate or not isinstance(predicate[0], OwnerEquals):
        raise ValueError("Predicate must be scoped to an owner")
    return [render_clause(clause) for clause in predicate]


class SQLAlchemyExpenseStore(ExpenseStore):
    def __init__(self, session: Session) -> None:
        self.session = session

    def find(
        self,
        predicate: Predicate,
        sort: Sequence[SortKey],
        skip: int,
        limit: int,
    ) -> list[Expense]:
        order_by = []
        for key in sort:
            column = getattr(Expense, key.field)
            order_by.append(column.desc() if key.descending else column.asc())
        stmt = (
            select(Expense)
            .where(*render_predicate(predicate))
            .order_by(*order_by)
            .offset(skip)
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def count(self, predicate: Predicate) -> int:
        stmt = select(func.count(Expense.id)).where(*render_predicate(predicate))
        return int(self.session.execute(stmt).scalar_one() or 0)

    def aggregate_by_group(
        self,
        predicate: Predicate,
        group_key: Optional[str],
        sum_field: str = "amount_cents",
    ) -> list[GroupTotal]:
        total = func.coalesce(func.sum(getattr(Expense, sum_field)), 0).label(
            "total_sum"
        )
        count = func.count(Expense.id).label("record_count")
        conditions = render_predicate(predicate)

        if group_key is None:
            row = self.session.execute(select(total, count).where(*conditions)).one()
            if not row.record_count:
                return []
            return [
                GroupTotal(key=None, sum=int(row.total_sum), count=int(row.record_count))
            ]

        if group_key == GROUP_MONTH:
            key = extract("month", Expense.date).label("group_key")
        elif group_key == GROUP_CATEGORY:
            key = Expense.category.label("group_key")
        else:
            raise ValueError(f"Unsupported group key: {group_key}")

        stmt = select(key, total, count).where(*conditions).group_by(key)
        return [
            GroupTotal(
                key=row.group_key,
                sum=int(row.total_sum or 0),
                count=int(row.record_count),
            )
            for row in self.session.execute(stmt)
        ]
