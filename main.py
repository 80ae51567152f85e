import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal
from filters import FilterValidationError
from periods import PeriodValidationError
from schemas import (
    ExpenseIn,
    ExpenseOut,
    ExpensePageOut,
    ExpenseSavedOut,
    ExpenseStatsOut,
)
from services import (
    ExpenseFilters,
    ExpenseNotFound,
    ExpenseService,
    StatsService,
    get_current_user_id,
)

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Expense Tracker")


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.exception_handler(FilterValidationError)
@app.exception_handler(PeriodValidationError)
async def validation_error_handler(request: Request, exc) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"message": str(exc), "fields": exc.errors},
    )


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        f"Storage error on {request.method} {request.url.path}", exc_info=exc
    )
    return JSONResponse(status_code=500, content={"message": "Server error"})


@app.get("/api/health")
def health():
    return {"message": "Server is running!", "version": APP_VERSION}


@app.get("/api/expenses", response_model=ExpensePageOut)
def list_expenses(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    category: Optional[str] = None,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    search: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    filters = ExpenseFilters(
        category=category, start_date=start_date, end_date=end_date, search=search
    )
    result = ExpenseService(db, user_id).list_expenses(filters, page, limit)
    return ExpensePageOut(
        expenses=[ExpenseOut.model_validate(e) for e in result.records],
        total=result.total,
        total_pages=result.total_pages,
        current_page=result.current_page,
    )


@app.get("/api/expenses/stats", response_model=ExpenseStatsOut)
def expense_stats(
    year: Optional[str] = None,
    month: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    stats = StatsService(db, user_id).compute_stats(year, month)
    return ExpenseStatsOut.model_validate(stats)


@app.get("/api/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense(
    expense_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        expense = ExpenseService(db, user_id).get(expense_id)
    except ExpenseNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ExpenseOut.model_validate(expense)


@app.post("/api/expenses", response_model=ExpenseSavedOut, status_code=201)
def create_expense(
    data: ExpenseIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    expense = ExpenseService(db, user_id).create(data)
    return ExpenseSavedOut(
        message="Expense created successfully",
        expense=ExpenseOut.model_validate(expense),
    )


@app.put("/api/expenses/{expense_id}", response_model=ExpenseSavedOut)
def update_expense(
    expense_id: int,
    data: ExpenseIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        expense = ExpenseService(db, user_id).update(expense_id, data)
    except ExpenseNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ExpenseSavedOut(
        message="Expense updated successfully",
        expense=ExpenseOut.model_validate(expense),
    )


@app.delete("/api/expenses/{expense_id}")
def delete_expense(
    expense_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        ExpenseService(db, user_id).delete(expense_id)
    except ExpenseNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"message": "Expense deleted successfully"}
