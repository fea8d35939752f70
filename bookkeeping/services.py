import logging
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from bookkeeping import ledger, reports
from bookkeeping.domain import (
    Account,
    BreakdownRow,
    LedgerRow,
    LockKey,
    MonthStats,
    Transaction,
    TransactionType,
)
from bookkeeping.filters import LedgerFilter
from bookkeeping.locks import PeriodLockGuard, key_for
from bookkeeping.store import ImportResult, TransactionStore
from bookkeeping.transforms import account_balance, expense_transactions, load_seed, revenue_transactions

logger = logging.getLogger(__name__)


class LedgerService:
    """Facade over one transaction store and its lock guard.

    Writes go straight to the store, which guards them. Reads take a snapshot
    of transactions and lock keys under the store lock and run the pure
    calculators on it, so a view never sees half of a concurrent write.
    """

    def __init__(self, store: TransactionStore):
        self.store = store
        self.guard = store.guard

    @classmethod
    def from_records(
        cls,
        accounts: Iterable[Account] = (),
        transactions: Iterable[Transaction] = (),
        locked: Iterable[LockKey] = (),
    ) -> "LedgerService":
        guard = PeriodLockGuard(locked)
        return cls(TransactionStore(guard, transactions, accounts))

    @classmethod
    def from_seed(cls, path: Union[str, Path]) -> "LedgerService":
        accounts, transactions, locked = load_seed(path)
        return cls.from_records(accounts, transactions, locked)

    def snapshot(self) -> Tuple[Tuple[Transaction, ...], PeriodLockGuard]:
        with self.store.lock:
            return self.store.transactions(), self.guard.snapshot()

    # -- writes ---------------------------------------------------------

    def add_transaction(self, draft: Transaction) -> Transaction:
        return self.store.add_transaction(draft)

    def update_transaction(self, tx_id: str, patch: Mapping[str, Any]) -> Transaction:
        return self.store.update_transaction(tx_id, patch)

    def remove_transaction(self, tx_id: str) -> Transaction:
        return self.store.remove_transaction(tx_id)

    def import_transactions(self, rows: Iterable[Mapping[str, Any]], tx_type: TransactionType) -> ImportResult:
        return self.store.import_transactions(rows, tx_type)

    def add_account(self, draft: Account) -> Account:
        return self.store.add_account(draft)

    def update_account(self, account_id: str, patch: Mapping[str, Any]) -> Account:
        return self.store.update_account(account_id, patch)

    def remove_account(self, account_id: str) -> Account:
        return self.store.remove_account(account_id)

    def import_accounts(self, rows: Iterable[Mapping[str, Any]]) -> ImportResult:
        return self.store.import_accounts(rows)

    def lock(self, month: str, account_code: str, branch: str) -> LockKey:
        with self.store.lock:
            return self.guard.lock(month, account_code, branch)

    def unlock(self, month: str, account_code: str, branch: str) -> LockKey:
        with self.store.lock:
            return self.guard.unlock(month, account_code, branch)

    # -- reads ----------------------------------------------------------

    def transactions(self, tx_type: Optional[TransactionType] = None) -> Tuple[Transaction, ...]:
        trans, _ = self.snapshot()
        if tx_type == TransactionType.REVENUE:
            return revenue_transactions(trans)
        if tx_type == TransactionType.EXPENSE:
            return expense_transactions(trans)
        return trans

    def get_transaction(self, tx_id: str) -> Transaction:
        return self.store.get_transaction(tx_id)

    def account_balance(self, code: str) -> int:
        trans, _ = self.snapshot()
        return account_balance(trans, code)

    def locked_keys(self) -> List[LockKey]:
        with self.store.lock:
            return self.guard.locked_keys()

    def accounts(self) -> Tuple[Account, ...]:
        return self.store.accounts()

    def is_locked(self, t: Transaction) -> bool:
        return key_for(t) in self.guard

    def daily_ledger(self, filters: Optional[LedgerFilter] = None) -> List[LedgerRow]:
        trans, _ = self.snapshot()
        return ledger.compute_daily_ledger(trans, filters)

    def monthly_summary(self, month: str) -> MonthStats:
        trans, _ = self.snapshot()
        return ledger.compute_monthly_summary(trans, month)

    def monthly_history(self, through_month: Optional[str] = None) -> List[MonthStats]:
        trans, _ = self.snapshot()
        return ledger.compute_monthly_history(trans, through_month)

    def breakdown(self, month: str) -> List[BreakdownRow]:
        trans, guard = self.snapshot()
        return ledger.compute_account_branch_breakdown(trans, month, guard)

    def months(self) -> List[str]:
        trans, _ = self.snapshot()
        return ledger.month_keys(trans)

    def branch_report(self, month: str, market: Optional[str] = None) -> reports.ProfitReport:
        trans, _ = self.snapshot()
        return reports.branch_report(trans, month, market)

    def market_report(self, month: str, branch: Optional[str] = None) -> reports.ProfitReport:
        trans, _ = self.snapshot()
        return reports.market_report(trans, month, branch)

    def cash_flow(self, month: str, branch: Optional[str] = None, market: Optional[str] = None) -> List[reports.CashFlowRow]:
        trans, _ = self.snapshot()
        return reports.cash_flow_report(trans, month, branch, market)

    def product_report(
        self,
        month: str,
        branch: Optional[str] = None,
        market: Optional[str] = None,
        product: Optional[str] = None,
    ) -> List[reports.ProductRow]:
        trans, _ = self.snapshot()
        return reports.product_report(trans, month, branch, market, product)
