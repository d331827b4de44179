"""Monthly and per-category aggregation over a user's ledger rows.

Everything here is a pure function of the rows it is given. Callers are
responsible for fetching only the rows the requesting user owns.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from models import TransactionType
from periods import MonthWindow

UNCATEGORIZED = "Uncategorized"
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class LedgerRow:
    id: int
    amount_cents: int
    description: str
    type: TransactionType
    date: datetime
    category_id: Optional[int] = None
    category_name: Optional[str] = None


def round_money(value: Decimal) -> float:
    return float(value.quantize(CENT, rounding=ROUND_HALF_UP))


def cents_to_amount(cents: int) -> Decimal:
    return Decimal(cents) / HUNDRED


def monthly_report(rows: Iterable[LedgerRow], window: MonthWindow) -> dict[str, object]:
    rows = list(rows)
    income_cents = 0
    expense_cents = 0
    uncategorized_cents = 0
    groups: dict[str, dict[str, object]] = {}

    for row in rows:
        if row.type == TransactionType.income:
            income_cents += row.amount_cents
            continue
        expense_cents += row.amount_cents
        if row.category_name is None:
            uncategorized_cents += row.amount_cents
            continue
        group = groups.get(row.category_name)
        if group is None:
            group = {
                "category": row.category_name,
                "categoryId": row.category_id,
                "total_cents": 0,
                "count": 0,
            }
            groups[row.category_name] = group
        group["total_cents"] += row.amount_cents
        group["count"] += 1

    # sorted() is stable, so equal totals keep first-seen order
    breakdown = sorted(
        groups.values(), key=lambda g: int(g["total_cents"]), reverse=True
    )

    return {
        "period": {
            "year": window.year,
            "month": window.month,
            "monthName": window.month_name,
            "startDate": window.start.isoformat(timespec="seconds"),
            "endDate": window.end.isoformat(timespec="seconds"),
        },
        "summary": {
            "totalIncome": round_money(cents_to_amount(income_cents)),
            "totalExpenses": round_money(cents_to_amount(expense_cents)),
            "netSavings": round_money(cents_to_amount(income_cents - expense_cents)),
            "transactionCount": len(rows),
        },
        "expensesByCategory": [
            {
                "category": g["category"],
                "categoryId": g["categoryId"],
                "total": round_money(cents_to_amount(int(g["total_cents"]))),
                "count": g["count"],
            }
            for g in breakdown
        ],
        "uncategorized": round_money(cents_to_amount(uncategorized_cents)),
    }


def category_report(
    rows: Iterable[LedgerRow],
    start_label: Optional[str] = None,
    end_label: Optional[str] = None,
) -> dict[str, object]:
    """Group expense rows by category name with share of the grand total.

    Income rows are ignored. Rows without a category fall into the
    ``Uncategorized`` bucket, whose ``categoryId`` is ``None``.
    """
    expenses = [row for row in rows if row.type == TransactionType.expense]
    groups: dict[str, dict[str, object]] = {}
    total_cents = 0

    for row in expenses:
        name = row.category_name or UNCATEGORIZED
        group = groups.get(name)
        if group is None:
            group = {
                "category": name,
                "categoryId": row.category_id if row.category_name else None,
                "total_cents": 0,
                "count": 0,
                "expenses": [],
            }
            groups[name] = group
        group["total_cents"] += row.amount_cents
        group["count"] += 1
        group["expenses"].append(
            {
                "id": row.id,
                "amount": float(cents_to_amount(row.amount_cents)),
                "description": row.description,
                "date": row.date.isoformat(),
            }
        )
        total_cents += row.amount_cents

    categories = []
    for group in groups.values():
        group_cents = int(group["total_cents"])
        count = int(group["count"])
        if total_cents > 0:
            percentage = round_money(Decimal(group_cents) / Decimal(total_cents) * HUNDRED)
        else:
            percentage = 0
        categories.append(
            {
                "category": group["category"],
                "categoryId": group["categoryId"],
                "totalAmount": round_money(cents_to_amount(group_cents)),
                "count": count,
                "percentage": percentage,
                "averageAmount": round_money(cents_to_amount(group_cents) / count),
                "expenses": group["expenses"],
            }
        )
    categories.sort(key=lambda c: c["totalAmount"], reverse=True)

    return {
        "period": {
            "startDate": start_label or "All time",
            "endDate": end_label or "Present",
        },
        "summary": {
            "totalExpenses": round_money(cents_to_amount(total_cents)),
            "categoryCount": len(categories),
            "transactionCount": len(expenses),
        },
        "categories": categories,
    }
