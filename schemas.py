from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)

from models import TransactionType

T = TypeVar("T")


class RegisterIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)

    @field_validator("password")
    @classmethod
    def _fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > 72:
            raise ValueError("Password must not exceed 72 bytes")
        return value


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72)


class CategoryIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=50)


def _parse_date_only(value: object) -> object:
    # Bare ISO dates are accepted and mean midnight.
    if isinstance(value, str) and len(value) == 10:
        return f"{value}T00:00:00"
    return value


class ExpenseIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)
    type: TransactionType
    date: Optional[datetime] = None
    category_id: Optional[int] = Field(default=None, alias="categoryId", gt=0)

    @field_validator("date", mode="before")
    @classmethod
    def _date_only(cls, value: object) -> object:
        return _parse_date_only(value)


class ExpenseUpdateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Optional[Decimal] = Field(
        default=None, gt=0, max_digits=12, decimal_places=2
    )
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    type: Optional[TransactionType] = None
    date: Optional[datetime] = None
    category_id: Optional[int] = Field(default=None, alias="categoryId", gt=0)

    @field_validator("date", mode="before")
    @classmethod
    def _date_only(cls, value: object) -> object:
        return _parse_date_only(value)

    @model_validator(mode="after")
    def _check_fields(self) -> "ExpenseUpdateIn":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        for name in ("amount", "description", "type", "date"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def to_changes(self) -> "ExpenseChanges":
        def field(name: str) -> FieldUpdate:
            if name not in self.model_fields_set:
                return FieldUpdate.absent()
            value = getattr(self, name)
            if value is None:
                return FieldUpdate.null()
            return FieldUpdate.of(value)

        return ExpenseChanges(
            amount=field("amount"),
            description=field("description"),
            type=field("type"),
            date=field("date"),
            category_id=field("category_id"),
        )


class FieldState(str, Enum):
    absent = "absent"
    value = "value"
    null = "null"


@dataclass(frozen=True)
class FieldUpdate(Generic[T]):
    """One field of a partial update: left alone, set, or cleared."""

    state: FieldState
    value: Optional[T] = None

    @classmethod
    def absent(cls) -> "FieldUpdate[T]":
        return cls(FieldState.absent)

    @classmethod
    def of(cls, value: T) -> "FieldUpdate[T]":
        return cls(FieldState.value, value)

    @classmethod
    def null(cls) -> "FieldUpdate[T]":
        return cls(FieldState.null)

    @property
    def is_absent(self) -> bool:
        return self.state == FieldState.absent


@dataclass(frozen=True)
class ExpenseChanges:
    amount: FieldUpdate[Decimal] = FieldUpdate.absent()
    description: FieldUpdate[str] = FieldUpdate.absent()
    type: FieldUpdate[TransactionType] = FieldUpdate.absent()
    date: FieldUpdate[datetime] = FieldUpdate.absent()
    category_id: FieldUpdate[int] = FieldUpdate.absent()
