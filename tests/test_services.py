from pathlib import Path

import pytest

from bookkeeping.domain import LockKey, TransactionType
from bookkeeping.errors import LockedError
from bookkeeping.filters import LedgerFilter
from bookkeeping.services import LedgerService

SEED = Path(__file__).resolve().parent.parent / "data" / "seed.json"


@pytest.fixture
def service():
    return LedgerService.from_seed(SEED)


def test_seeded_monthly_figures(service):
    nov = service.monthly_summary("2025-11")
    assert (nov.revenue_sum, nov.expense_sum, nov.closing) == (450_000_000, 270_000_000, 180_000_000)
    dec = service.monthly_summary("2025-12")
    assert dec.opening == nov.closing
    assert dec.revenue_sum == 568_000_000
    assert dec.expense_sum == 403_000_000


def test_ads_breakdown_row(service):
    row = next(r for r in service.breakdown("2025-12") if r.account_code == "6")
    assert row.branch == "Khác"
    assert row.opening == -120_000_000
    assert row.expense_sum == 68_000_000
    assert row.closing == -188_000_000


def test_lock_blocks_write_and_unlock_allows_it(service, tx):
    service.lock("2025-12", "1.1US", "Hà Nội")
    assert any(r.is_locked for r in service.breakdown("2025-12") if r.account_code == "1.1US")
    with pytest.raises(LockedError):
        service.add_transaction(tx(id="", when="2025-12-15"))
    service.unlock("2025-12", "1.1US", "Hà Nội")
    service.add_transaction(tx(id="", when="2025-12-15"))


def test_seed_locks_november(service):
    nov = next(t for t in service.transactions() if t.id == "prev1")
    assert service.is_locked(nov)
    with pytest.raises(LockedError):
        service.remove_transaction("prev1")


def test_ledger_ends_at_total_balance(service):
    rows = service.daily_ledger()
    assert rows[-1].running_balance == 180_000_000 + 568_000_000 - 403_000_000
    hcm = service.daily_ledger(LedgerFilter(branch="HCM"))
    assert {r.transaction.branch.value for r in hcm} == {"HCM"}


def test_reports_through_service(service):
    assert service.branch_report("2025-12").total.revenue == 568_000_000
    assert [r.month for r in service.cash_flow("2025-12")] == ["2025-10", "2025-11", "2025-12"]
    assert service.months() == ["2025-11", "2025-12"]
    assert service.product_report("2025-12", product="1.1US")[0].revenue == 320_000_000


def test_transactions_by_type(service):
    revenue = service.transactions(TransactionType.REVENUE)
    expense = service.transactions(TransactionType.EXPENSE)
    assert {t.type for t in revenue} == {TransactionType.REVENUE}
    assert {t.type for t in expense} == {TransactionType.EXPENSE}
    assert len(revenue) + len(expense) == len(service.transactions())


def test_account_balance(service):
    assert service.account_balance("1.1US") == 770_000_000
    assert service.account_balance("6") == -188_000_000
    assert service.account_balance("nope") == 0


def test_locked_keys_follow_lock_and_unlock(service):
    assert LockKey("2025-11", "6", "Khác") in service.locked_keys()
    service.lock("2025-12", "7.2", "HCM")
    assert LockKey("2025-12", "7.2", "HCM") in service.locked_keys()
    service.unlock("2025-12", "7.2", "HCM")
    assert LockKey("2025-12", "7.2", "HCM") not in service.locked_keys()


def test_edit_transaction(service):
    service.update_transaction("r5", {"amount": 210_000_000, "description": "Bill MGT đợt 2 (sửa)"})
    edited = service.get_transaction("r5")
    assert edited.amount == 210_000_000
    assert service.monthly_summary("2025-12").revenue_sum == 578_000_000
    with pytest.raises(LockedError):
        service.update_transaction("prev1", {"amount": 1})
