"""Management reports built on the balance calculator.

All reports are read-only and take an already-taken snapshot of transactions.
Margins are percentages of revenue and are 0 when there is no revenue.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from bookkeeping.domain import Branch, Market, Transaction, TransactionType, enum_value
from bookkeeping.ledger import compute_monthly_history, in_month, previous_month, totals

ALL = "ALL"

HIGH_EFFICIENCY = "high efficiency"
GOOD = "good"
NORMAL = "normal"
NEEDS_OPTIMIZATION = "needs optimization or discontinue"

CLOSED = "closed"
OPEN = "open"

COGS_SHARE_PCT = 60          # rest of an expense is treated as OPEX
UNIT_PRICE_ESTIMATE = 250_000


@dataclass(frozen=True)
class ProfitRow:
    name: str
    revenue: int
    expense: int
    profit: int
    margin: float
    note: str = ""


@dataclass(frozen=True)
class ProfitReport:
    rows: Tuple[ProfitRow, ...]
    total: ProfitRow


@dataclass(frozen=True)
class CashFlowRow:
    month: str
    opening: int
    revenue: int
    expense: int
    closing: int
    status: str


@dataclass(frozen=True)
class ProductRow:
    product: str             # account code stands in for the product
    market: str
    branch: str
    quantity: int
    revenue: int
    revenue_weight: float
    cogs: int
    opex: int
    profit: int


def margin(revenue: int, profit: int) -> float:
    return (profit / revenue) * 100 if revenue > 0 else 0.0


def margin_note(m: float) -> str:
    if m > 20:
        return HIGH_EFFICIENCY
    if m >= 10:
        return GOOD
    if m >= 0:
        return NORMAL
    return NEEDS_OPTIMIZATION


def _selected(value: Optional[str]) -> Optional[str]:
    if value is None or value == ALL:
        return None
    return enum_value(value)


def _profit_row(name: str, trans: Iterable[Transaction], with_note: bool = False) -> ProfitRow:
    rev, exp = totals(trans)
    m = margin(rev, rev - exp)
    return ProfitRow(name, rev, exp, rev - exp, m, margin_note(m) if with_note else "")


def _with_total(rows: List[ProfitRow]) -> ProfitReport:
    rev = sum(r.revenue for r in rows)
    exp = sum(r.expense for r in rows)
    # margin of the totals, never the mean of row margins
    total = ProfitRow("Total", rev, exp, rev - exp, margin(rev, rev - exp))
    return ProfitReport(tuple(rows), total)


def branch_report(trans: Sequence[Transaction], month: str, market: Optional[str] = None) -> ProfitReport:
    market = _selected(market)
    monthly = [t for t in in_month(trans, month) if market is None or enum_value(t.market) == market]
    rows = []
    for branch in Branch:
        row = _profit_row(branch.value, (t for t in monthly if t.branch == branch))
        if row.revenue > 0 or row.expense > 0:
            rows.append(row)
    return _with_total(rows)


def market_report(trans: Sequence[Transaction], month: str, branch: Optional[str] = None) -> ProfitReport:
    branch = _selected(branch)
    monthly = [t for t in in_month(trans, month) if branch is None or enum_value(t.branch) == branch]
    rows = []
    for market in Market:
        if market == Market.NONE:
            continue
        row = _profit_row(market.value, (t for t in monthly if t.market == market), with_note=True)
        if row.revenue > 0 or row.expense > 0:
            rows.append(row)
    return _with_total(rows)


def cash_flow_report(
    trans: Sequence[Transaction],
    month: str,
    branch: Optional[str] = None,
    market: Optional[str] = None,
    window: int = 3,
) -> List[CashFlowRow]:
    """``window`` months ending at ``month``; the first one opens with all prior history."""
    branch, market = _selected(branch), _selected(market)
    scoped = [
        t for t in trans
        if (branch is None or enum_value(t.branch) == branch) and (market is None or enum_value(t.market) == market)
    ]
    months = [month]
    while len(months) < window:
        months.insert(0, previous_month(months[0]))

    history = {s.month: s for s in compute_monthly_history(scoped, month)}
    opening = 0
    for s in history.values():
        if s.month < months[0]:
            opening = s.closing

    rows = []
    for m in months:
        s = history.get(m)
        rev, exp = (s.revenue_sum, s.expense_sum) if s else (0, 0)
        closing = opening + rev - exp
        rows.append(CashFlowRow(m, opening, rev, exp, closing, CLOSED if m < month else OPEN))
        opening = closing
    return rows


def product_report(
    trans: Sequence[Transaction],
    month: str,
    branch: Optional[str] = None,
    market: Optional[str] = None,
    product: Optional[str] = None,
) -> List[ProductRow]:
    branch, market, product = _selected(branch), _selected(market), _selected(product)
    grouped: Dict[Tuple[str, str, str], List[int]] = {}
    for t in in_month(trans, month):
        if branch is not None and enum_value(t.branch) != branch:
            continue
        if market is not None and enum_value(t.market) != market:
            continue
        if product is not None and t.account_code != product:
            continue
        bucket = grouped.setdefault((t.account_code, enum_value(t.market), enum_value(t.branch)), [0, 0])
        if t.type == TransactionType.REVENUE:
            bucket[0] += t.amount
        else:
            bucket[1] += t.amount

    total_revenue = sum(rev for rev, _ in grouped.values())
    rows = []
    for (code, mkt, br), (rev, exp) in grouped.items():
        if rev <= 0:
            continue
        cogs = exp * COGS_SHARE_PCT // 100
        opex = exp - cogs
        rows.append(ProductRow(
            product=code,
            market=mkt,
            branch=br,
            quantity=rev // UNIT_PRICE_ESTIMATE,
            revenue=rev,
            revenue_weight=(rev / total_revenue) * 100 if total_revenue else 0.0,
            cogs=cogs,
            opex=opex,
            profit=rev - cogs - opex,
        ))
    return rows


def products(trans: Iterable[Transaction]) -> List[str]:
    return sorted({t.account_code for t in trans if t.account_code})