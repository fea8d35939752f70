import logging
from datetime import date
from typing import FrozenSet, Iterable, List, Set

from bookkeeping.domain import LockKey, Transaction, enum_value
from bookkeeping.errors import LockedError

logger = logging.getLogger(__name__)


def month_of(d: date) -> str:
    return d.strftime("%Y-%m")


def key_for(t: Transaction) -> LockKey:
    return LockKey(month_of(t.date), t.account_code, enum_value(t.branch))


class PeriodLockGuard:
    """Owns the set of closed (month, account, branch) keys.

    Every mutation of the transaction store goes through ``guard`` first.
    ``lock`` and ``unlock`` are idempotent; confirming with the user is the
    caller's job.
    """

    def __init__(self, keys: Iterable[LockKey] = ()):
        self._keys: Set[LockKey] = {LockKey(*k) for k in keys}

    def is_locked(self, month: str, account_code: str, branch: str) -> bool:
        return LockKey(month, account_code, enum_value(branch)) in self._keys

    def lock(self, month: str, account_code: str, branch: str) -> LockKey:
        key = LockKey(month, account_code, enum_value(branch))
        if key not in self._keys:
            self._keys.add(key)
            logger.info("Locked books for %s / %s / %s", key.month, key.account_code, key.branch)
        return key

    def unlock(self, month: str, account_code: str, branch: str) -> LockKey:
        key = LockKey(month, account_code, enum_value(branch))
        if key in self._keys:
            self._keys.discard(key)
            logger.info("Unlocked books for %s / %s / %s", key.month, key.account_code, key.branch)
        return key

    def guard(self, t: Transaction) -> None:
        key = key_for(t)
        if key in self._keys:
            logger.warning("Rejected write to locked books %s", key)
            raise LockedError(key)

    def locked_keys(self) -> List[LockKey]:
        return sorted(self._keys)

    def snapshot(self) -> "PeriodLockGuard":
        return PeriodLockGuard(self.frozen())

    def frozen(self) -> FrozenSet[LockKey]:
        return frozenset(self._keys)

    def __contains__(self, key: LockKey) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)
