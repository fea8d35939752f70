import threading
from dataclasses import replace
from datetime import date

import pytest

from bookkeeping.domain import Account, Branch, Market, TransactionType
from bookkeeping.errors import LockedError, NotFoundError, ValidationError
from bookkeeping.locks import PeriodLockGuard
from bookkeeping.store import TransactionStore, canonical_date


@pytest.fixture
def store(accounts):
    return TransactionStore(PeriodLockGuard(), accounts=accounts)


def test_add_assigns_id(store, tx):
    t = store.add_transaction(tx(id=""))
    assert t.id
    assert store.get_transaction(t.id) == t


def test_add_rejects_non_positive_amount(store, tx):
    with pytest.raises(ValidationError) as exc:
        store.add_transaction(tx(amount=0))
    assert exc.value.field == "amount"
    assert store.transactions() == ()


def test_add_rejects_missing_account_code(store, tx):
    with pytest.raises(ValidationError):
        store.add_transaction(tx(code="  "))


def test_add_rejects_non_canonical_date(store, tx):
    with pytest.raises(ValidationError) as exc:
        store.add_transaction(replace(tx(), date="15/12/2025"))
    assert exc.value.field == "date"


def test_canonical_date_accepts_iso_text():
    assert canonical_date("2025-12-15") == date(2025, 12, 15)


def test_locked_period_blocks_add(store, tx):
    store.guard.lock("2025-12", "1.1US", "Hà Nội")
    with pytest.raises(LockedError) as exc:
        store.add_transaction(tx(id="", when="2025-12-15"))
    assert exc.value.key.account_code == "1.1US"
    assert store.transactions() == ()
    store.add_transaction(tx(id="", when="2025-11-15"))
    assert len(store.transactions()) == 1


def test_lock_gates_update_and_remove_until_unlocked(store, tx):
    t = store.add_transaction(tx(id="", when="2025-12-15"))
    store.guard.lock("2025-12", "1.1US", "Hà Nội")
    with pytest.raises(LockedError):
        store.update_transaction(t.id, {"amount": 5})
    with pytest.raises(LockedError):
        store.remove_transaction(t.id)
    assert store.get_transaction(t.id).amount == 100

    store.guard.unlock("2025-12", "1.1US", "Hà Nội")
    assert store.update_transaction(t.id, {"amount": 5}).amount == 5
    store.remove_transaction(t.id)
    assert store.transactions() == ()


def test_update_cannot_move_into_locked_period(store, tx):
    t = store.add_transaction(tx(id="", when="2025-11-15"))
    store.guard.lock("2025-12", "1.1US", "Hà Nội")
    with pytest.raises(LockedError):
        store.update_transaction(t.id, {"date": date(2025, 12, 1)})
    assert store.get_transaction(t.id).date == date(2025, 11, 15)


def test_update_rejects_unknown_field(store, tx):
    t = store.add_transaction(tx(id=""))
    with pytest.raises(ValidationError):
        store.update_transaction(t.id, {"colour": "red"})


def test_update_coerces_enum_values(store, tx):
    t = store.add_transaction(tx(id=""))
    updated = store.update_transaction(t.id, {"branch": "HCM"})
    assert updated.branch == Branch.HCM


def test_unknown_ids_raise_not_found(store):
    with pytest.raises(NotFoundError):
        store.remove_transaction("missing")
    with pytest.raises(NotFoundError):
        store.update_account("missing", {"name": "x"})


def test_account_crud(store):
    a = store.add_account(Account(id="", code="9.9", name="Misc", category="Other",
                                  type=TransactionType.EXPENSE, branch=Branch.HCM, market=Market.NONE))
    assert store.find_account("9.9").is_some()
    store.update_account(a.id, {"name": "Miscellaneous"})
    assert store.get_account(a.id).name == "Miscellaneous"
    store.remove_account(a.id)
    assert store.find_account("9.9").is_none()


def test_removing_referenced_account_only_warns(store, tx, caplog):
    store.add_transaction(tx(id=""))
    with caplog.at_level("WARNING"):
        store.remove_account("1")
    assert "still referenced" in caplog.text
    assert len(store.transactions()) == 1


def test_account_requires_name(store):
    with pytest.raises(ValidationError):
        store.add_account(Account(id="", code="X", name="", category="",
                                  type=TransactionType.REVENUE, branch=Branch.HN, market=Market.US))


def test_adding_the_same_draft_twice_keeps_both(store, tx):
    first = store.add_transaction(tx(id="t1", amount=100))
    second = store.add_transaction(tx(id="t1", amount=200))
    assert first.id != second.id
    assert "t1" not in (first.id, second.id)
    store.update_transaction(second.id, {"amount": 250})
    assert store.get_transaction(first.id).amount == 100
    store.remove_transaction(first.id)
    assert [t.amount for t in store.transactions()] == [250]


def test_adding_an_account_twice_keeps_both(store, accounts):
    a = store.add_account(accounts[0])
    b = store.add_account(accounts[0])
    assert len({a.id, b.id, accounts[0].id}) == 3
    store.update_account(b.id, {"name": "Renamed"})
    assert store.get_account(a.id).name == accounts[0].name


def test_initial_records_are_validated(tx, accounts):
    with pytest.raises(ValidationError):
        TransactionStore(PeriodLockGuard(), [tx(amount=0)])
    with pytest.raises(ValidationError):
        TransactionStore(PeriodLockGuard(), accounts=[replace(accounts[0], name="")])
    store = TransactionStore(PeriodLockGuard(), [replace(tx(), branch="HCM")])
    assert store.transactions()[0].branch is Branch.HCM


def test_concurrent_adds_are_all_kept(store, tx):
    def worker():
        for _ in range(50):
            store.add_transaction(tx())

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for th in threads:
        th.start()
    for th in threads:
        th.join()
    assert len(store.transactions()) == 200
    assert len({t.id for t in store.transactions()}) == 200
