from dataclasses import replace

import pytest

from bookkeeping.domain import Branch, Market, TransactionType
from bookkeeping.filters import LedgerFilter
from bookkeeping.ledger import compute_account_branch_breakdown
from bookkeeping.locks import PeriodLockGuard
from bookkeeping.reports import (
    ALL,
    CLOSED,
    GOOD,
    HIGH_EFFICIENCY,
    NEEDS_OPTIMIZATION,
    NORMAL,
    OPEN,
    branch_report,
    market_report,
    cash_flow_report,
    margin,
    margin_note,
    product_report,
    products,
)

REV, EXP = TransactionType.REVENUE, TransactionType.EXPENSE


@pytest.fixture
def december(tx):
    return [
        tx("p1", "2025-11-15", REV, 450, code="1.1US"),
        tx("r1", "2025-12-01", REV, 120, code="1.1US"),
        tx("r2", "2025-12-01", REV, 85, code="1.1CA", market=Market.CAN),
        tx("c1", "2025-12-01", EXP, 100, code="2.1US"),
        tx("r3", "2025-12-02", REV, 98, code="1.2US", branch=Branch.HCM),
        tx("c3", "2025-12-02", EXP, 68, code="6", branch=Branch.OTHER, market=Market.NONE),
    ]


def test_margin_is_zero_without_revenue():
    assert margin(0, -10) == 0.0
    assert margin(200, 50) == 25.0


@pytest.mark.parametrize("value, note", [
    (25.0, HIGH_EFFICIENCY),
    (20.0, GOOD),
    (10.0, GOOD),
    (0.0, NORMAL),
    (-0.1, NEEDS_OPTIMIZATION),
])
def test_margin_note(value, note):
    assert margin_note(value) == note


def test_branch_report(december):
    report = branch_report(december, "2025-12")
    names = [r.name for r in report.rows]
    assert names == ["Hà Nội", "HCM", "Khác"]
    hn = report.rows[0]
    assert (hn.revenue, hn.expense, hn.profit) == (205, 100, 105)
    assert report.total.revenue == 303
    assert report.total.expense == 168
    assert report.total.margin == pytest.approx(135 / 303 * 100)


def test_branch_report_market_filter(december):
    report = branch_report(december, "2025-12", market="CAN")
    assert [(r.name, r.revenue) for r in report.rows] == [("Hà Nội", 85)]
    assert branch_report(december, "2025-12", market=ALL).total.revenue == 303


def test_market_report_skips_no_market_and_adds_notes(december):
    report = market_report(december, "2025-12")
    assert [r.name for r in report.rows] == ["US", "CAN"]
    us = report.rows[0]
    assert us.profit == 118
    assert us.note == HIGH_EFFICIENCY


def test_cash_flow_window(december):
    rows = cash_flow_report(december, "2025-12")
    assert [r.month for r in rows] == ["2025-10", "2025-11", "2025-12"]
    assert rows[0].opening == 0 and rows[0].closing == 0
    assert rows[1].closing == 450
    assert rows[2].opening == 450
    assert rows[2].closing == 450 + 303 - 168
    assert [r.status for r in rows] == [CLOSED, CLOSED, OPEN]


def test_cash_flow_first_month_carries_older_history(tx):
    trans = [tx("old", "2025-01-10", REV, 40), tx("new", "2025-12-10", EXP, 15)]
    rows = cash_flow_report(trans, "2025-12")
    assert rows[0].opening == 40
    assert rows[-1].closing == 25


def test_product_report(december):
    rows = product_report(december, "2025-12")
    codes = {r.product for r in rows}
    # expense-only accounts have no revenue and are left out
    assert codes == {"1.1US", "1.1CA", "1.2US"}
    us = next(r for r in rows if r.product == "1.1US")
    assert us.revenue == 120
    assert us.quantity == 0
    assert sum(r.revenue_weight for r in rows) == pytest.approx(100.0)


def test_product_report_splits_expense(tx):
    trans = [
        tx("r", "2025-12-01", REV, 1_000_000, code="P"),
        tx("c", "2025-12-02", EXP, 500_000, code="P"),
    ]
    (row,) = product_report(trans, "2025-12", product="P")
    assert row.quantity == 4
    assert (row.cogs, row.opex) == (300_000, 200_000)
    assert row.profit == 500_000


def test_products_lists_codes(december):
    assert products(december) == ["1.1CA", "1.1US", "1.2US", "2.1US", "6"]


def test_plain_string_branch_and_market(tx):
    trans = [
        replace(tx("r", "2025-12-01", REV, 300, code="P"), branch="HCM", market="US"),
        replace(tx("c", "2025-12-02", EXP, 100, code="P"), branch="HCM", market="US"),
    ]
    report = branch_report(trans, "2025-12", market="US")
    assert [(r.name, r.profit) for r in report.rows] == [("HCM", 200)]
    assert market_report(trans, "2025-12", branch="HCM").total.revenue == 300
    assert product_report(trans, "2025-12", branch="HCM", market="US")[0].revenue == 300
    (row,) = compute_account_branch_breakdown(trans, "2025-12", PeriodLockGuard([("2025-12", "P", "HCM")]))
    assert row.branch == "HCM" and row.is_locked
    assert all(LedgerFilter(branch=Branch.HCM)(t) for t in trans)
