from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from filters import FilterPolicy
from models import ExpenseCategory, PaymentMethod, RecurringType
from schemas import ExpenseIn
from services import ExpenseNotFound, ExpenseService, StatsService


def _payload(**overrides) -> ExpenseIn:
    values = {
        "title": "Groceries",
        "amount": Decimal("42.50"),
        "category": ExpenseCategory.food_dining,
        "date": date(2025, 1, 5),
    }
    values.update(overrides)
    return ExpenseIn(**values)


def test_create_and_get_expense() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = ExpenseService(session, 1, policy=FilterPolicy())
        expense = service.create(
            _payload(description="Weekly shop", tags=["home", " food ", ""])
        )

        fetched = service.get(expense.id)
        assert fetched.user_id == 1
        assert fetched.amount == Decimal("42.50")
        assert fetched.amount_cents == 4250
        assert fetched.payment_method == PaymentMethod.cash
        assert fetched.tags == ["home", "food"]
        assert fetched.is_recurring is False
        assert fetched.recurring_type is None


def test_other_owner_cannot_see_update_or_delete() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        expense = ExpenseService(session, 1, policy=FilterPolicy()).create(_payload())
        intruder = ExpenseService(session, 2, policy=FilterPolicy())

        with pytest.raises(ExpenseNotFound):
            intruder.get(expense.id)
        with pytest.raises(ExpenseNotFound):
            intruder.update(expense.id, _payload(title="Hijacked"))
        with pytest.raises(ExpenseNotFound):
            intruder.delete(expense.id)

        owner = ExpenseService(session, 1, policy=FilterPolicy())
        assert owner.get(expense.id).title == "Groceries"


def test_update_keeps_owner_and_clears_recurring_type() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = ExpenseService(session, 3, policy=FilterPolicy())
        expense = service.create(
            _payload(is_recurring=True, recurring_type=RecurringType.monthly)
        )
        assert expense.recurring_type == RecurringType.monthly

        updated = service.update(
            expense.id,
            _payload(
                title="Rent",
                amount=Decimal("900"),
                category=ExpenseCategory.bills_utilities,
                is_recurring=False,
                recurring_type=RecurringType.monthly,
            ),
        )
        assert updated.id == expense.id
        assert updated.user_id == 3
        assert updated.title == "Rent"
        assert updated.amount == Decimal("900.00")
        assert updated.recurring_type is None


def test_update_changes_only_supplied_fields() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = ExpenseService(session, 1, policy=FilterPolicy())
        expense = service.create(
            _payload(
                description="Weekly shop",
                payment_method=PaymentMethod.debit_card,
                tags=["home"],
                is_recurring=True,
                recurring_type=RecurringType.weekly,
            )
        )

        updated = service.update(
            expense.id, _payload(title="Big shop", amount=Decimal("60"))
        )
        assert updated.title == "Big shop"
        assert updated.amount == Decimal("60.00")
        assert updated.description == "Weekly shop"
        assert updated.payment_method == PaymentMethod.debit_card
        assert updated.tags == ["home"]
        assert updated.is_recurring is True
        assert updated.recurring_type == RecurringType.weekly

        updated = service.update(
            expense.id, _payload(recurring_type=RecurringType.monthly)
        )
        assert updated.is_recurring is True
        assert updated.recurring_type == RecurringType.monthly


def test_owner_id_zero_is_kept() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = ExpenseService(session, 0, policy=FilterPolicy())
        assert service.user_id == 0
        assert service.create(_payload()).user_id == 0
        assert StatsService(session, 0, strict=False).user_id == 0

def test_delete_removes_expense() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = ExpenseService(session, 1, policy=FilterPolicy())
        expense = service.create(_payload())
        service.delete(expense.id)

        with pytest.raises(ExpenseNotFound):
            service.get(expense.id)
        assert service.list_expenses().total == 0


def test_expense_input_validation() -> None:
    with pytest.raises(ValidationError):
        _payload(amount=Decimal("0"))
    with pytest.raises(ValidationError):
        _payload(amount=Decimal("1.005"))
    with pytest.raises(ValidationError):
        _payload(title="   ")
    with pytest.raises(ValidationError):
        _payload(title="x" * 101)
    with pytest.raises(ValidationError):
        _payload(description="d" * 501)
    with pytest.raises(ValidationError):
        _payload(category="Groceries")
    with pytest.raises(ValidationError, match="recurringType"):
        _payload(is_recurring=True)


def test_expense_input_accepts_camel_case() -> None:
    data = ExpenseIn.model_validate(
        {
            "title": "  Taxi ",
            "amount": "18.40",
            "category": "Transportation",
            "date": "2025-01-05",
            "paymentMethod": "Credit Card",
            "isRecurring": True,
            "recurringType": "weekly",
        }
    )
    assert data.title == "Taxi"
    assert data.amount == Decimal("18.40")
    assert data.payment_method == PaymentMethod.credit_card
    assert data.recurring_type == RecurringType.weekly


def test_expense_input_rejects_owner_field() -> None:
    with pytest.raises(ValidationError):
        ExpenseIn.model_validate(
            {
                "title": "Taxi",
                "amount": "18.40",
                "category": "Transportation",
                "date": "2025-01-05",
                "user": 99,
            }
        )
