from datetime import date, datetime
from decimal import Decimal

from models import TransactionType
from periods import resolve_month
from reports import LedgerRow, category_report, monthly_report


def _row(
    id: int,
    amount_cents: int,
    type: TransactionType = TransactionType.expense,
    category: str | None = None,
    category_id: int | None = None,
) -> LedgerRow:
    return LedgerRow(
        id=id,
        amount_cents=amount_cents,
        description=f"Row {id}",
        type=type,
        date=datetime(2025, 3, 10, 12, 0),
        category_id=category_id,
        category_name=category,
    )


def test_resolve_month_defaults_to_today_and_spans_whole_month() -> None:
    window = resolve_month(None, None, today=date(2024, 2, 14))
    assert (window.year, window.month) == (2024, 2)
    assert window.start == datetime(2024, 2, 1, 0, 0, 0)
    assert window.end == datetime(2024, 2, 29, 23, 59, 59, 999999)
    assert window.month_name == "February"


def test_monthly_report_totals_and_breakdown() -> None:
    window = resolve_month(2025, 3)
    rows = [
        _row(1, 250_000, TransactionType.income),
        _row(2, 4_550, category="Groceries", category_id=1),
        _row(3, 12_000, category="Rent", category_id=2),
        _row(4, 1_450, category="Groceries", category_id=1),
        _row(5, 999),
    ]

    report = monthly_report(rows, window)

    assert report["summary"] == {
        "totalIncome": 2500.0,
        "totalExpenses": 189.99,
        "netSavings": 2310.01,
        "transactionCount": 5,
    }
    assert report["expensesByCategory"] == [
        {"category": "Rent", "categoryId": 2, "total": 120.0, "count": 1},
        {"category": "Groceries", "categoryId": 1, "total": 60.0, "count": 2},
    ]
    assert report["uncategorized"] == 9.99
    assert report["period"]["month"] == 3
    assert report["period"]["monthName"] == "March"
    assert report["period"]["endDate"] == "2025-03-31T23:59:59"


def test_monthly_net_savings_matches_income_minus_expenses() -> None:
    window = resolve_month(2025, 3)
    rows = [
        _row(1, 30, TransactionType.income),
        _row(2, 10),
        _row(3, 7, category="Misc", category_id=9),
    ]
    summary = monthly_report(rows, window)["summary"]
    income = Decimal(str(summary["totalIncome"]))
    expenses = Decimal(str(summary["totalExpenses"]))
    assert Decimal(str(summary["netSavings"])) == income - expenses


def test_monthly_report_ties_keep_input_order() -> None:
    window = resolve_month(2025, 3)
    rows = [
        _row(1, 500, category="Books", category_id=1),
        _row(2, 500, category="Games", category_id=2),
        _row(3, 500, category="Art", category_id=3),
    ]
    names = [g["category"] for g in monthly_report(rows, window)["expensesByCategory"]]
    assert names == ["Books", "Games", "Art"]


def test_monthly_report_is_deterministic() -> None:
    window = resolve_month(2025, 3)
    rows = [_row(1, 100, category="A", category_id=1), _row(2, 300)]
    assert monthly_report(rows, window) == monthly_report(rows, window)


def test_monthly_report_empty_month() -> None:
    report = monthly_report([], resolve_month(2025, 1))
    assert report["summary"]["transactionCount"] == 0
    assert report["summary"]["netSavings"] == 0.0
    assert report["expensesByCategory"] == []
    assert report["uncategorized"] == 0.0


def test_category_report_single_category() -> None:
    rows = [
        _row(1, 5_000, category="Groceries", category_id=4),
        _row(2, 3_000, category="Groceries", category_id=4),
    ]

    report = category_report(rows)

    assert len(report["categories"]) == 1
    group = report["categories"][0]
    assert group["category"] == "Groceries"
    assert group["categoryId"] == 4
    assert group["totalAmount"] == 80.0
    assert group["count"] == 2
    assert group["percentage"] == 100.0
    assert group["averageAmount"] == 40.0
    assert [e["id"] for e in group["expenses"]] == [1, 2]
    assert report["period"] == {"startDate": "All time", "endDate": "Present"}
    assert report["summary"] == {
        "totalExpenses": 80.0,
        "categoryCount": 1,
        "transactionCount": 2,
    }


def test_category_report_buckets_uncategorized_and_ignores_income() -> None:
    rows = [
        _row(1, 1_000, TransactionType.income, category="Salary", category_id=7),
        _row(2, 2_000),
        _row(3, 1_000, category="Fuel", category_id=3),
        _row(4, 1_000),
    ]

    report = category_report(rows, "2025-01-01", "2025-12-31")

    assert [c["category"] for c in report["categories"]] == ["Uncategorized", "Fuel"]
    uncategorized = report["categories"][0]
    assert uncategorized["categoryId"] is None
    assert uncategorized["totalAmount"] == 30.0
    assert uncategorized["averageAmount"] == 15.0
    assert report["summary"]["transactionCount"] == 3
    assert report["period"] == {"startDate": "2025-01-01", "endDate": "2025-12-31"}


def test_category_report_percentages_sum_to_hundred() -> None:
    rows = [
        _row(1, 100, category="A", category_id=1),
        _row(2, 100, category="B", category_id=2),
        _row(3, 100, category="C", category_id=3),
    ]

    report = category_report(rows)

    total = sum(c["totalAmount"] for c in report["categories"])
    assert round(total, 2) == report["summary"]["totalExpenses"]
    percentages = [c["percentage"] for c in report["categories"]]
    assert percentages == [33.33, 33.33, 33.33]
    assert abs(sum(percentages) - 100) < 0.05


def test_category_report_rounds_half_up() -> None:
    rows = [
        _row(1, 1, category="Small", category_id=1),
        _row(2, 7, category="Large", category_id=2),
    ]
    report = category_report(rows)
    by_name = {c["category"]: c for c in report["categories"]}
    assert by_name["Small"]["percentage"] == 12.5
    assert by_name["Large"]["percentage"] == 87.5

    # 5 cents over 2 rows is 0.025, which rounds up
    averages = category_report(
        [
            _row(1, 2, category="X", category_id=1),
            _row(2, 3, category="X", category_id=1),
        ]
    )
    assert averages["categories"][0]["averageAmount"] == 0.03


def test_category_report_empty_input() -> None:
    report = category_report([])
    assert report["categories"] == []
    assert report["summary"] == {
        "totalExpenses": 0.0,
        "categoryCount": 0,
        "transactionCount": 0,
    }
