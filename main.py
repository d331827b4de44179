import logging
import time
import tomllib
from datetime import datetime, timezone
from typing import Optional, Union

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import Identity, authenticate
from config import Settings, get_settings
from database import get_session_factory, session_scope
from errors import AppError, AuthError, ValidationFailed
from models import Category, Expense, TransactionType, User
from periods import parse_bound
from reports import cents_to_amount
from schemas import CategoryIn, ExpenseIn, ExpenseUpdateIn, LoginIn, RegisterIn
from services import (
    CategoryService,
    ReportService,
    TransactionFilters,
    TransactionService,
    UserService,
)

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


def _load_app_version(path: str = "pyproject.toml") -> str:
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return "unknown"
    return str(data.get("project", {}).get("version", "unknown"))


APP_VERSION = _load_app_version()

app = FastAPI(title="ExpensePilot API", version=APP_VERSION)


def get_db():
    with session_scope(get_session_factory()) as session:
        yield session


def current_identity(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Identity:
    return authenticate(db, authorization, settings)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        _log_request(request, 500, started)
        raise
    _log_request(request, response.status_code, started)
    return response


def _log_request(request: Request, status: int, started: float) -> None:
    duration_ms = (time.perf_counter() - started) * 1000
    logger.info(
        f"request: method={request.method} path={request.url.path} "
        f"status={status} duration_ms={duration_ms:.1f}"
    )


def _active_settings() -> Settings:
    # Handlers sit outside dependency injection, so honor overrides by hand.
    provider = app.dependency_overrides.get(get_settings, get_settings)
    return provider()


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if isinstance(exc, AuthError):
        logger.info(f"auth_rejected: reason={exc.reason.value} path={request.url.path}")
    return JSONResponse(status_code=exc.status_code, content=exc.payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        details.append({"field": ".".join(loc) or "body", "message": error.get("msg", "")})
    return JSONResponse(
        status_code=400, content=ValidationFailed(details).payload()
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and request.url.path.startswith("/api"):
        return JSONResponse(status_code=404, content={"error": "API endpoint not found"})
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"unhandled_error: path={request.url.path}")
    message = str(exc) if _active_settings().is_development else "Internal server error"
    return JSONResponse(status_code=500, content={"error": message})


def _timestamp(value: datetime) -> str:
    return value.isoformat()


def _user_payload(user: Union[User, Identity]) -> dict[str, object]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "createdAt": _timestamp(user.created_at),
        "updatedAt": _timestamp(user.updated_at),
    }


def _category_payload(category: Category, usage: Optional[int] = None) -> dict[str, object]:
    payload = {
        "id": category.id,
        "name": category.name,
        "createdAt": _timestamp(category.created_at),
        "updatedAt": _timestamp(category.updated_at),
    }
    if usage is not None:
        payload["expenseCount"] = usage
    return payload


def _expense_payload(txn: Expense) -> dict[str, object]:
    return {
        "id": txn.id,
        "amount": float(cents_to_amount(txn.amount_cents)),
        "description": txn.description,
        "type": txn.type.value,
        "date": _timestamp(txn.date),
        "userId": txn.user_id,
        "categoryId": txn.category_id,
        "category": _category_payload(txn.category) if txn.category else None,
        "createdAt": _timestamp(txn.created_at),
        "updatedAt": _timestamp(txn.updated_at),
    }


def _date_param(field: str, value: Optional[str], settings: Settings, *, end_of_day: bool = False):
    try:
        return parse_bound(value, settings.timezone, end_of_day=end_of_day)
    except ValueError as exc:
        raise ValidationFailed([{"field": field, "message": str(exc)}]) from exc


@app.get("/")
def root():
    return {
        "message": "ExpensePilot API",
        "version": APP_VERSION,
        "endpoints": {
            "health": "/health",
            "auth": "/api/auth",
            "expenses": "/api/expenses",
            "categories": "/api/categories",
            "reports": "/api/reports",
            "docs": "/docs",
        },
    }


@app.get("/health")
def health(db: Session = Depends(get_db)):
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("health_check_failed")
        db.rollback()
        return JSONResponse(
            status_code=500,
            content={"status": "ERROR", "database": "disconnected", "timestamp": timestamp},
        )
    return {"status": "OK", "database": "connected", "timestamp": timestamp}


@app.post("/api/auth/register", status_code=201)
def register(
    data: RegisterIn,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    result = UserService(db, settings).register(data)
    return {
        "message": "User registered successfully",
        "user": _user_payload(result.user),
        "token": result.token,
    }


@app.post("/api/auth/login")
def login(
    data: LoginIn,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    result = UserService(db, settings).login(data)
    return {
        "message": "Login successful",
        "user": _user_payload(result.user),
        "token": result.token,
    }


@app.get("/api/auth/me")
def me(identity: Identity = Depends(current_identity)):
    return {"user": _user_payload(identity)}


@app.post("/api/expenses", status_code=201)
def create_expense(
    data: ExpenseIn,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    txn = TransactionService(db, identity, settings.timezone).create(data)
    return {"message": "Expense created successfully", "expense": _expense_payload(txn)}


@app.get("/api/expenses")
def list_expenses(
    type: Optional[TransactionType] = Query(None),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    category_id: Optional[int] = Query(None, alias="categoryId"),
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    filters = TransactionFilters(
        type=type,
        category_id=category_id,
        start=_date_param("startDate", start_date, settings),
        end=_date_param("endDate", end_date, settings, end_of_day=True),
    )
    items = TransactionService(db, identity, settings.timezone).list(filters)
    return {"count": len(items), "expenses": [_expense_payload(txn) for txn in items]}


@app.get("/api/expenses/{expense_id}")
def get_expense(
    expense_id: int,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    txn = TransactionService(db, identity, settings.timezone).get(expense_id)
    return {"expense": _expense_payload(txn)}


@app.put("/api/expenses/{expense_id}")
def update_expense(
    expense_id: int,
    data: ExpenseUpdateIn,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    txn = TransactionService(db, identity, settings.timezone).update(
        expense_id, data.to_changes()
    )
    return {"message": "Expense updated successfully", "expense": _expense_payload(txn)}


@app.delete("/api/expenses/{expense_id}")
def delete_expense(
    expense_id: int,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    TransactionService(db, identity, settings.timezone).delete(expense_id)
    return {"message": "Expense deleted successfully"}


@app.post("/api/categories", status_code=201)
def create_category(
    data: CategoryIn,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    category = CategoryService(db, settings.category_delete_policy).create(data)
    return {
        "message": "Category created successfully",
        "category": _category_payload(category, 0),
    }


@app.get("/api/categories")
def list_categories(
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    rows = CategoryService(db, settings.category_delete_policy).list_all()
    return {
        "count": len(rows),
        "categories": [_category_payload(category, usage) for category, usage in rows],
    }


@app.get("/api/categories/{category_id}")
def get_category(
    category_id: int,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    category, usage = CategoryService(
        db, settings.category_delete_policy
    ).get_with_usage(category_id)
    return {"category": _category_payload(category, usage)}


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: int,
    data: CategoryIn,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    category = CategoryService(db, settings.category_delete_policy).rename(
        category_id, data
    )
    return {
        "message": "Category updated successfully",
        "category": _category_payload(category),
    }


@app.delete("/api/categories/{category_id}")
def delete_category(
    category_id: int,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    CategoryService(db, settings.category_delete_policy).delete(category_id)
    return {"message": "Category deleted successfully"}


@app.get("/api/reports/monthly")
def monthly_report(
    year: Optional[int] = Query(None, ge=1970, le=3000),
    month: Optional[int] = Query(None, ge=1, le=12),
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return ReportService(db, identity, settings.timezone).monthly(year, month)


@app.get("/api/reports/category")
def category_report(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return ReportService(db, identity, settings.timezone).by_category(
        _date_param("startDate", start_date, settings),
        _date_param("endDate", end_date, settings, end_of_day=True),
        start_label=start_date,
        end_label=end_date,
    )


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
