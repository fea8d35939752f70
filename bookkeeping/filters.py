import unicodedata
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, Optional

from bookkeeping.domain import Account, Transaction, enum_value

Predicate = Callable[[Transaction], bool]


def normalize_text(s: str) -> str:
    """Lower-case and strip Vietnamese diacritics so "Hà Nội" matches "ha noi"."""
    if not s:
        return ""
    decomposed = unicodedata.normalize("NFD", s)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return stripped.replace("đ", "d").replace("Đ", "D").lower()


def by_branch(branch: str) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return enum_value(t.branch) == enum_value(branch)

    return _filter


def by_account_code(code: str) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return t.account_code == code

    return _filter


def by_date_range(start: Optional[date], end: Optional[date]) -> Predicate:
    def _filter(t: Transaction) -> bool:
        if start and t.date < start:
            return False
        if end and t.date > end:
            return False
        return True

    return _filter


def by_search(term: str) -> Predicate:
    needle = normalize_text(term)

    def _filter(t: Transaction) -> bool:
        return needle in normalize_text(t.description) or needle in normalize_text(t.account_code)

    return _filter


def account_matches(a: Account, term: str) -> bool:
    needle = normalize_text(term)
    return any(needle in normalize_text(field) for field in (a.code, a.name, a.category, a.note))


@dataclass(frozen=True)
class LedgerFilter:
    """Display filters for the daily ledger. ``None`` means no restriction."""

    branch: Optional[str] = None
    account_code: Optional[str] = None
    start: Optional[date] = None
    end: Optional[date] = None
    search: str = ""

    def predicates(self) -> Iterable[Predicate]:
        if self.branch:
            yield by_branch(self.branch)
        if self.account_code:
            yield by_account_code(self.account_code)
        if self.start or self.end:
            yield by_date_range(self.start, self.end)
        if self.search.strip():
            yield by_search(self.search)

    def __call__(self, t: Transaction) -> bool:
        return all(p(t) for p in self.predicates())
