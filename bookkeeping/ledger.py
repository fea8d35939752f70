"""Balance calculator: pure functions from a transaction snapshot to ledger figures.

Nothing here mutates its inputs or keeps state between calls; the same
snapshot always yields the same output.
"""
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from bookkeeping.domain import (
    BreakdownRow,
    LedgerRow,
    MonthStats,
    Transaction,
    TransactionType,
    enum_value,
)
from bookkeeping.filters import LedgerFilter
from bookkeeping.locks import PeriodLockGuard, month_of


def previous_month(month: str) -> str:
    year, mon = int(month[:4]), int(month[5:7])
    if mon == 1:
        return f"{year - 1}-12"
    return f"{year}-{mon - 1:02d}"


def chronological(trans: Iterable[Transaction]) -> List[Transaction]:
    # sorted() is stable, so same-day rows keep insertion order
    return sorted(trans, key=lambda t: t.date)


def compute_daily_ledger(
    trans: Sequence[Transaction], filters: Optional[LedgerFilter] = None
) -> List[LedgerRow]:
    """Running balance over the whole book, then the display filter.

    The balance is defined over every transaction, so filtering must happen
    only after the pass; a filtered row keeps the balance it has in the full
    ledger.
    """
    rows: List[LedgerRow] = []
    balance = 0
    for t in chronological(trans):
        balance += t.signed_amount
        rows.append(LedgerRow(transaction=t, running_balance=balance))

    if filters is None:
        return rows
    return [r for r in rows if filters(r.transaction)]


def _month_sums(trans: Iterable[Transaction]) -> Dict[str, Tuple[int, int]]:
    sums: Dict[str, List[int]] = defaultdict(lambda: [0, 0])
    for t in trans:
        bucket = sums[month_of(t.date)]
        if t.type == TransactionType.REVENUE:
            bucket[0] += t.amount
        else:
            bucket[1] += t.amount
    return {m: (rev, exp) for m, (rev, exp) in sums.items()}


def compute_monthly_history(
    trans: Sequence[Transaction], through_month: Optional[str] = None
) -> List[MonthStats]:
    """Fold every month present (plus ``through_month``) in chronological order.

    Each month opens with the previous month's closing; the earliest month
    opens at zero. ``YYYY-MM`` keys sort lexically in chronological order.
    """
    sums = _month_sums(trans)
    months = set(sums)
    if through_month:
        months.add(through_month)

    history: List[MonthStats] = []
    opening = 0
    for month in sorted(months):
        rev, exp = sums.get(month, (0, 0))
        closing = opening + rev - exp
        history.append(MonthStats(month, opening, rev, exp, closing))
        opening = closing
    return history


def compute_monthly_summary(trans: Sequence[Transaction], target_month: str) -> MonthStats:
    history = compute_monthly_history(trans, target_month)
    return next(s for s in history if s.month == target_month)


def compute_account_branch_breakdown(
    trans: Sequence[Transaction], target_month: str, lock_guard: PeriodLockGuard
) -> List[BreakdownRow]:
    """Per (account, branch) figures for one month.

    ``opening`` here is the pair's own historical total before the month. It
    is a different figure from the global opening of ``compute_monthly_summary``.
    Rows come out in order of first appearance in the date-sorted stream.
    """
    pairs: Dict[Tuple[str, str], List[int]] = {}
    for t in chronological(trans):
        month = month_of(t.date)
        if month > target_month:
            continue
        key = (t.account_code, enum_value(t.branch))
        bucket = pairs.setdefault(key, [0, 0, 0])
        if month < target_month:
            bucket[0] += t.signed_amount
        elif t.type == TransactionType.REVENUE:
            bucket[1] += t.amount
        else:
            bucket[2] += t.amount

    rows: List[BreakdownRow] = []
    for (code, branch), (opening, rev, exp) in pairs.items():
        if opening == 0 and rev == 0 and exp == 0:
            continue
        rows.append(BreakdownRow(
            account_code=code,
            branch=branch,
            opening=opening,
            revenue_sum=rev,
            expense_sum=exp,
            closing=opening + rev - exp,
            is_locked=lock_guard.is_locked(target_month, code, branch),
        ))
    return rows


def totals(trans: Iterable[Transaction]) -> Tuple[int, int]:
    rev = exp = 0
    for t in trans:
        if t.type == TransactionType.REVENUE:
            rev += t.amount
        else:
            exp += t.amount
    return rev, exp


def in_month(trans: Iterable[Transaction], month: str) -> List[Transaction]:
    return [t for t in trans if month_of(t.date) == month]


def month_keys(trans: Iterable[Transaction]) -> List[str]:
    return sorted({month_of(t.date) for t in trans})


def today_month(today: Optional[date] = None) -> str:
    return month_of(today or date.today())
