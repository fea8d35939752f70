import pytest

from bookkeeping.domain import Branch, LockKey
from bookkeeping.errors import LockedError
from bookkeeping.locks import PeriodLockGuard, key_for, month_of


def test_key_for_uses_month_code_and_branch(tx):
    assert key_for(tx(when="2025-12-15")) == LockKey("2025-12", "1.1US", "Hà Nội")


def test_month_of(tx):
    assert month_of(tx(when="2025-01-31").date) == "2025-01"


def test_lock_and_unlock_are_idempotent():
    guard = PeriodLockGuard()
    guard.lock("2025-12", "1.1US", "Hà Nội")
    guard.lock("2025-12", "1.1US", Branch.HN)
    assert len(guard) == 1
    assert guard.is_locked("2025-12", "1.1US", "Hà Nội")
    guard.unlock("2025-12", "1.1US", "Hà Nội")
    guard.unlock("2025-12", "1.1US", "Hà Nội")
    assert len(guard) == 0


def test_guard_raises_with_key(tx):
    guard = PeriodLockGuard([("2025-12", "1.1US", "Hà Nội")])
    with pytest.raises(LockedError) as exc:
        guard.guard(tx(when="2025-12-15"))
    assert exc.value.key == LockKey("2025-12", "1.1US", "Hà Nội")
    assert "1.1US" in str(exc.value) and "2025-12" in str(exc.value)
    guard.guard(tx(when="2025-11-15"))
    guard.guard(tx(when="2025-12-15", branch=Branch.HCM))


def test_keys_with_separator_characters_do_not_collide():
    guard = PeriodLockGuard()
    guard.lock("2025-12", "A_B", "C")
    assert not guard.is_locked("2025-12", "A", "B_C")


def test_snapshot_is_independent():
    guard = PeriodLockGuard()
    snap = guard.snapshot()
    guard.lock("2025-12", "6", "Khác")
    assert len(snap) == 0
    assert guard.locked_keys() == [LockKey("2025-12", "6", "Khác")]
