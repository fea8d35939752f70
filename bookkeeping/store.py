import logging
import threading
from dataclasses import fields, replace
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple
from uuid import uuid4

from bookkeeping.domain import (
    Account,
    AccountStatus,
    Branch,
    Market,
    Transaction,
    TransactionType,
)
from bookkeeping.errors import LockedError, NotFoundError, ValidationError
from bookkeeping.functional import (
    Maybe,
    account_from_row,
    coerce_enum,
    safe_account,
    transaction_from_row,
    validate_account,
    validate_transaction,
)
from bookkeeping.locks import PeriodLockGuard

logger = logging.getLogger(__name__)

_TX_FIELDS = {f.name for f in fields(Transaction)} - {"id"}
_ACCOUNT_FIELDS = {f.name for f in fields(Account)} - {"id"}
_ENUMS = {
    "type": TransactionType,
    "branch": Branch,
    "market": Market,
    "status": AccountStatus,
}


class ImportResult(NamedTuple):
    imported: int
    skipped: int                    # rows that failed conversion or validation
    locked: int = 0                 # valid rows aimed at closed books
    errors: Tuple[Tuple[int, str], ...] = ()

    @property
    def total(self) -> int:
        return self.imported + self.skipped + self.locked


class TransactionStore:
    """Canonical in-memory collection of transactions and accounts.

    Every transaction write is checked against the lock guard before it
    touches the collection, and the check and the write happen under one
    lock so a concurrent ``lock`` cannot slip between them.
    """

    def __init__(
        self,
        guard: PeriodLockGuard,
        transactions: Iterable[Transaction] = (),
        accounts: Iterable[Account] = (),
    ):
        self.guard = guard
        self.lock = threading.RLock()
        self._transactions: List[Transaction] = [_checked_transaction(t) for t in transactions]
        self._accounts: List[Account] = [_checked_account(a) for a in accounts]

    # -- transactions ---------------------------------------------------

    def transactions(self) -> Tuple[Transaction, ...]:
        with self.lock:
            return tuple(self._transactions)

    def get_transaction(self, tx_id: str) -> Transaction:
        with self.lock:
            return self._transactions[self._tx_index(tx_id)]

    def add_transaction(self, draft: Transaction) -> Transaction:
        t = _checked_transaction(replace(draft, id=uuid4().hex))
        with self.lock:
            self.guard.guard(t)
            self._transactions.append(t)
        logger.info("Added %s %s %s on %s", t.type.value, t.account_code, t.amount, t.date)
        return t

    def update_transaction(self, tx_id: str, patch: Mapping[str, Any]) -> Transaction:
        with self.lock:
            idx = self._tx_index(tx_id)
            current = self._transactions[idx]
            # the stored record decides first: a locked record cannot be
            # moved out of its triple by editing account or branch
            self.guard.guard(current)
            updated = _checked_transaction(_merge(current, patch, _TX_FIELDS))
            self.guard.guard(updated)
            self._transactions[idx] = updated
        logger.info("Updated transaction %s (%s)", tx_id, ", ".join(sorted(patch)))
        return updated

    def remove_transaction(self, tx_id: str) -> Transaction:
        with self.lock:
            idx = self._tx_index(tx_id)
            self.guard.guard(self._transactions[idx])
            removed = self._transactions.pop(idx)
        logger.info("Removed transaction %s", tx_id)
        return removed

    def import_transactions(
        self, rows: Iterable[Mapping[str, Any]], tx_type: TransactionType, today: Optional[date] = None
    ) -> ImportResult:
        """Bulk add from spreadsheet rows; bad rows are counted, never raised."""
        imported, skipped, locked = 0, 0, 0
        errors: List[Tuple[int, str]] = []
        with self.lock:
            for row_no, row in enumerate(rows, start=1):
                result = transaction_from_row(row, tx_type, today)
                if result.is_left():
                    skipped += 1
                    errors.append((row_no, result.get_error()))
                    continue
                t = replace(result.get_or_else(None), id=uuid4().hex)
                try:
                    self.guard.guard(t)
                except LockedError as e:
                    locked += 1
                    errors.append((row_no, str(e)))
                    continue
                self._transactions.append(t)
                imported += 1
        logger.info(
            "Imported %d %s rows (%d skipped, %d locked)", imported, tx_type.value, skipped, locked
        )
        return ImportResult(imported, skipped, locked, tuple(errors))

    def _tx_index(self, tx_id: str) -> int:
        for i, t in enumerate(self._transactions):
            if t.id == tx_id:
                return i
        raise NotFoundError("Transaction", tx_id)

    # -- accounts -------------------------------------------------------

    def accounts(self) -> Tuple[Account, ...]:
        with self.lock:
            return tuple(self._accounts)

    def get_account(self, account_id: str) -> Account:
        with self.lock:
            return self._accounts[self._account_index(account_id)]

    def find_account(self, code: str) -> Maybe[Account]:
        return safe_account(self.accounts(), code)

    def references(self, code: str) -> int:
        with self.lock:
            return sum(1 for t in self._transactions if t.account_code == code)

    def add_account(self, draft: Account) -> Account:
        a = _checked_account(replace(draft, id=uuid4().hex))
        with self.lock:
            self._accounts.append(a)
        logger.info("Added account %s (%s)", a.code, a.name)
        return a

    def update_account(self, account_id: str, patch: Mapping[str, Any]) -> Account:
        with self.lock:
            idx = self._account_index(account_id)
            updated = _checked_account(_merge(self._accounts[idx], patch, _ACCOUNT_FIELDS))
            self._accounts[idx] = updated
        logger.info("Updated account %s", updated.code)
        return updated

    def remove_account(self, account_id: str) -> Account:
        with self.lock:
            removed = self._accounts.pop(self._account_index(account_id))
            in_use = sum(1 for t in self._transactions if t.account_code == removed.code)
        if in_use:
            logger.warning("Removed account %s still referenced by %d transactions", removed.code, in_use)
        else:
            logger.info("Removed account %s", removed.code)
        return removed

    def import_accounts(self, rows: Iterable[Mapping[str, Any]]) -> ImportResult:
        imported, skipped = 0, 0
        errors: List[Tuple[int, str]] = []
        with self.lock:
            for row_no, row in enumerate(rows, start=1):
                result = account_from_row(row)
                if result.is_left():
                    skipped += 1
                    errors.append((row_no, result.get_error()))
                    continue
                self._accounts.append(replace(result.get_or_else(None), id=uuid4().hex))
                imported += 1
        logger.info("Imported %d accounts (%d skipped)", imported, skipped)
        return ImportResult(imported, skipped, 0, tuple(errors))

    def _account_index(self, account_id: str) -> int:
        for i, a in enumerate(self._accounts):
            if a.id == account_id:
                return i
        raise NotFoundError("Account", account_id)


def canonical_date(value: Any) -> date:
    """Dates enter the store as date objects or canonical ``YYYY-MM-DD`` text."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.strptime(value.strip(), "%Y-%m-%d").date()
        except ValueError:
            pass
    raise ValidationError(f"date must be YYYY-MM-DD, got {value!r}", field="date")


def _merge(record, patch: Mapping[str, Any], allowed: set):
    unknown = set(patch) - allowed
    if unknown:
        raise ValidationError(f"unknown fields: {', '.join(sorted(unknown))}", field=sorted(unknown)[0])
    return replace(record, **patch)


def _coerce_fields(record, names: Iterable[str]) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}
    for name in names:
        enum_cls = _ENUMS.get(name)
        if enum_cls is None:
            continue
        value = getattr(record, name)
        result = coerce_enum(enum_cls, value)
        if result.is_left():
            raise ValidationError(result.get_error(), field=name)
        changes[name] = result.get_or_else(None)
    return changes


def _checked_transaction(t: Transaction) -> Transaction:
    changes = _coerce_fields(t, ("type", "branch", "market"))
    changes["date"] = canonical_date(t.date)
    if isinstance(t.amount, bool) or not isinstance(t.amount, int):
        raise ValidationError(f"amount must be a whole number of VND, got {t.amount!r}", field="amount")
    t = replace(t, **changes)
    result = validate_transaction(t)
    if result.is_left():
        field = "amount" if "amount" in result.get_error() else "account_code"
        raise ValidationError(result.get_error(), field=field)
    return t


def _checked_account(a: Account) -> Account:
    a = replace(a, **_coerce_fields(a, ("type", "branch", "market", "status")))
    result = validate_account(a)
    if result.is_left():
        field = "code" if "code" in result.get_error() else "name"
        raise ValidationError(result.get_error(), field=field)
    return a
