import json
from pathlib import Path

import pytest

from bookkeeping.domain import LockKey, Market, TransactionType
from bookkeeping.errors import SettingsLoadError, ValidationError
from bookkeeping.services import LedgerService
from bookkeeping.transforms import account_balance, expense_transactions, load_seed, revenue_transactions

SEED = Path(__file__).resolve().parent.parent / "data" / "seed.json"


def test_load_seed():
    accounts, transactions, locked = load_seed(SEED)
    assert len(accounts) == 12
    assert len(transactions) == 13
    assert LockKey("2025-11", "6", "Khác") in locked
    ads = next(t for t in transactions if t.id == "c3")
    assert ads.market == Market.NONE
    assert ads.amount == 68_000_000


def test_seed_helpers():
    _, transactions, _ = load_seed(SEED)
    assert all(t.type == TransactionType.REVENUE for t in revenue_transactions(transactions))
    assert len(revenue_transactions(transactions)) + len(expense_transactions(transactions)) == 13
    assert account_balance(transactions, "1.1US") == 450_000_000 + 120_000_000 + 200_000_000
    assert account_balance(transactions, "6") == -(120_000_000 + 68_000_000)


def test_bad_seed_raises(tmp_path):
    path = tmp_path / "seed.json"
    path.write_text(json.dumps({"transactions": [{"id": "x"}]}), encoding="utf-8")
    with pytest.raises(SettingsLoadError):
        load_seed(path)
    with pytest.raises(SettingsLoadError):
        load_seed(tmp_path / "missing.json")


def test_seed_records_are_validated(tmp_path):
    seed = json.loads(SEED.read_text(encoding="utf-8"))
    seed["transactions"][0]["amount"] = 0
    path = tmp_path / "seed.json"
    path.write_text(json.dumps(seed, ensure_ascii=False), encoding="utf-8")
    with pytest.raises(ValidationError):
        LedgerService.from_seed(path)
