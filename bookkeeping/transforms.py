import json
import logging
from functools import reduce
from pathlib import Path
from typing import Any, Dict, Tuple, Union

from bookkeeping.domain import (
    Account,
    AccountStatus,
    Branch,
    LockKey,
    Market,
    Transaction,
    TransactionType,
)
from bookkeeping.errors import SettingsLoadError
from bookkeeping.store import canonical_date

logger = logging.getLogger(__name__)


def _account(raw: Dict[str, Any]) -> Account:
    return Account(
        id=str(raw["id"]),
        code=raw["code"],
        name=raw["name"],
        category=raw.get("category", ""),
        type=TransactionType(raw["type"]),
        branch=Branch(raw["branch"]),
        market=Market(raw["market"]),
        status=AccountStatus(raw.get("status", AccountStatus.ACTIVE.value)),
        note=raw.get("note", ""),
    )


def _transaction(raw: Dict[str, Any]) -> Transaction:
    return Transaction(
        id=str(raw["id"]),
        date=canonical_date(raw["date"]),
        type=TransactionType(raw["type"]),
        source=raw.get("source", ""),
        branch=Branch(raw["branch"]),
        market=Market(raw["market"]),
        account_code=raw["account_code"],
        description=raw.get("description", ""),
        amount=int(raw["amount"]),
        method=raw.get("method", "CK"),
        proof_url=raw.get("proof_url"),
    )


def load_seed(
    path: Union[str, Path],
) -> Tuple[Tuple[Account, ...], Tuple[Transaction, ...], Tuple[LockKey, ...]]:
    """Read the starting books: accounts, transactions and closed periods."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        accounts = tuple(_account(a) for a in data.get("accounts", []))
        transactions = tuple(_transaction(t) for t in data.get("transactions", []))
        locked = tuple(LockKey(*k) for k in data.get("locked", []))
    except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise SettingsLoadError(f"cannot load seed data from {path}: {e}") from e

    logger.info(
        "Loaded seed %s: %d accounts, %d transactions, %d locked periods",
        path, len(accounts), len(transactions), len(locked),
    )
    return accounts, transactions, locked


def revenue_transactions(trans: Tuple[Transaction, ...]) -> Tuple[Transaction, ...]:
    return tuple(filter(lambda t: t.type == TransactionType.REVENUE, trans))


def expense_transactions(trans: Tuple[Transaction, ...]) -> Tuple[Transaction, ...]:
    return tuple(filter(lambda t: t.type == TransactionType.EXPENSE, trans))


def account_balance(trans: Tuple[Transaction, ...], code: str) -> int:
    return reduce(
        lambda acc, t: acc + t.signed_amount if t.account_code == code else acc, trans, 0
    )
