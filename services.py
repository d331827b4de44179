from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from auth import Identity
from config import Settings
from errors import AuthError, AuthReason, Conflict, NotFound
from models import Category, Expense, TransactionType, User
from passwords import hash_password, verify_password
from periods import local_now, resolve_month, to_local
from reports import LedgerRow, category_report, monthly_report
from schemas import CategoryIn, ExpenseChanges, ExpenseIn, LoginIn, RegisterIn
from tokens import issue_token

logger = logging.getLogger(__name__)


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1")))


@dataclass(frozen=True)
class AuthResult:
    user: User
    token: str


class UserService:
    def __init__(self, session: Session, settings: Settings) -> None:
        self.session = session
        self.settings = settings

    def _find_by_email(self, email: str) -> Optional[User]:
        return self.session.scalar(select(User).where(User.email == email))

    def register(self, data: RegisterIn) -> AuthResult:
        email = str(data.email)
        if self._find_by_email(email):
            raise Conflict("User with this email already exists.")
        user = User(
            name=data.name,
            email=email,
            password_hash=hash_password(data.password),
        )
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise Conflict("User with this email already exists.") from exc
        self.session.refresh(user)
        logger.info(f"user_registered: user_id={user.id}")
        return AuthResult(user, issue_token(self.settings, user.id))

    def login(self, data: LoginIn) -> AuthResult:
        user = self._find_by_email(str(data.email))
        if not user or not verify_password(data.password, user.password_hash):
            logger.info("login_rejected: reason=invalid_credentials")
            raise AuthError(AuthReason.invalid_credentials)
        logger.info(f"user_logged_in: user_id={user.id}")
        return AuthResult(user, issue_token(self.settings, user.id))


class CategoryService:
    def __init__(self, session: Session, delete_policy: str = "nullify") -> None:
        self.session = session
        self.delete_policy = delete_policy

    def _usage_counts(self) -> dict[int, int]:
        stmt = select(Expense.category_id, func.count(Expense.id).label("usage")).where(
            Expense.category_id.is_not(None)
        ).group_by(Expense.category_id)
        return {row.category_id: row.usage for row in self.session.execute(stmt).all()}

    def _usage(self, category_id: int) -> int:
        return int(
            self.session.execute(
                select(func.count(Expense.id)).where(Expense.category_id == category_id)
            ).scalar_one()
            or 0
        )

    def list_all(self) -> list[tuple[Category, int]]:
        categories = self.session.scalars(select(Category).order_by(Category.name)).all()
        usage = self._usage_counts()
        return [(category, usage.get(category.id, 0)) for category in categories]

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise NotFound("Category not found.")
        return category

    def get_with_usage(self, category_id: int) -> tuple[Category, int]:
        category = self.get(category_id)
        return category, self._usage(category.id)

    def _name_taken(self, name: str, exclude_id: Optional[int] = None) -> bool:
        stmt = select(Category.id).where(Category.name == name)
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        return self.session.scalar(stmt) is not None

    def _commit_name(self) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise Conflict("Category with this name already exists.") from exc

    def create(self, data: CategoryIn) -> Category:
        if self._name_taken(data.name):
            raise Conflict("Category with this name already exists.")
        category = Category(name=data.name)
        self.session.add(category)
        self._commit_name()
        self.session.refresh(category)
        logger.info(f"category_created: category_id={category.id}")
        return category

    def rename(self, category_id: int, data: CategoryIn) -> Category:
        category = self.get(category_id)
        if self._name_taken(data.name, exclude_id=category.id):
            raise Conflict("Category with this name already exists.")
        category.name = data.name
        self._commit_name()
        self.session.refresh(category)
        logger.info(f"category_renamed: category_id={category.id}")
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        if self.delete_policy == "restrict":
            if self._usage(category.id):
                raise Conflict("Category is in use by existing transactions.")
        elif self.delete_policy == "cascade":
            self.session.execute(delete(Expense).where(Expense.category_id == category.id))
        else:
            self.session.execute(
                update(Expense)
                .where(Expense.category_id == category.id)
                .values(category_id=None)
            )
        self.session.delete(category)
        self.session.commit()
        logger.info(
            f"category_deleted: category_id={category_id} policy={self.delete_policy}"
        )


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class TransactionService:
    """Ledger operations for one owner. Every query is filtered by user id."""

    def __init__(self, session: Session, identity: Identity, timezone: str = "UTC") -> None:
        self.session = session
        self.user_id = identity.id
        self.timezone = timezone

    def create(self, data: ExpenseIn) -> Expense:
        txn_date = to_local(data.date, self.timezone) if data.date else local_now(self.timezone)
        txn = Expense(
            user_id=self.user_id,
            amount_cents=to_cents(data.amount),
            description=data.description,
            type=data.type,
            date=txn_date,
            category_id=data.category_id,
        )
        self.session.add(txn)
        self.session.commit()
        logger.info(f"transaction_created: user_id={self.user_id} transaction_id={txn.id}")
        return self.get(txn.id)

    def get(self, transaction_id: int) -> Expense:
        stmt = (
            select(Expense)
            .options(joinedload(Expense.category))
            .where(Expense.user_id == self.user_id, Expense.id == transaction_id)
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFound("Expense not found.")
        return txn

    def list(self, filters: Optional[TransactionFilters] = None) -> list[Expense]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Expense)
            .options(joinedload(Expense.category))
            .where(Expense.user_id == self.user_id)
            .order_by(Expense.date.desc(), Expense.id.desc())
        )
        if filters.type:
            stmt = stmt.where(Expense.type == filters.type)
        if filters.category_id:
            stmt = stmt.where(Expense.category_id == filters.category_id)
        if filters.start:
            stmt = stmt.where(Expense.date >= filters.start)
        if filters.end:
            stmt = stmt.where(Expense.date <= filters.end)
        return self.session.scalars(stmt).all()

    def update(self, transaction_id: int, changes: ExpenseChanges) -> Expense:
        txn = self.get(transaction_id)
        if not changes.amount.is_absent:
            txn.amount_cents = to_cents(changes.amount.value)
        if not changes.description.is_absent:
            txn.description = changes.description.value
        if not changes.type.is_absent:
            txn.type = changes.type.value
        if not changes.date.is_absent:
            txn.date = to_local(changes.date.value, self.timezone)
        if not changes.category_id.is_absent:
            txn.category_id = changes.category_id.value
        self.session.commit()
        # the category relationship is stale after a category_id change
        self.session.expire(txn, ["category"])
        logger.info(f"transaction_updated: user_id={self.user_id} transaction_id={txn.id}")
        return self.get(txn.id)

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()
        logger.info(
            f"transaction_deleted: user_id={self.user_id} transaction_id={transaction_id}"
        )


def _ledger_row(txn: Expense) -> LedgerRow:
    return LedgerRow(
        id=txn.id,
        amount_cents=txn.amount_cents,
        description=txn.description,
        type=txn.type,
        date=txn.date,
        category_id=txn.category_id,
        category_name=txn.category.name if txn.category else None,
    )


class ReportService:
    def __init__(self, session: Session, identity: Identity, timezone: str = "UTC") -> None:
        self.transactions = TransactionService(session, identity, timezone)
        self.timezone = timezone

    def monthly(
        self,
        year: Optional[int] = None,
        month: Optional[int] = None,
        *,
        today: Optional[date] = None,
    ) -> dict[str, object]:
        today = today or local_now(self.timezone).date()
        window = resolve_month(year, month, today=today)
        rows = self.transactions.list(
            TransactionFilters(start=window.start, end=window.end)
        )
        return monthly_report([_ledger_row(txn) for txn in rows], window)

    def by_category(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        *,
        start_label: Optional[str] = None,
        end_label: Optional[str] = None,
    ) -> dict[str, object]:
        rows = self.transactions.list(
            TransactionFilters(type=TransactionType.expense, start=start, end=end)
        )
        return category_report(
            [_ledger_row(txn) for txn in rows], start_label, end_label
        )
