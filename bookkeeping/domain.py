from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import NamedTuple, Optional


class TransactionType(str, Enum):
    REVENUE = "THU"
    EXPENSE = "CHI"


class Branch(str, Enum):
    HN = "Hà Nội"
    HCM = "HCM"
    COMPANY = "Toàn Công Ty"
    OTHER = "Khác"


class Market(str, Enum):
    US = "US"
    CAN = "CAN"
    AUS = "ÚC"
    KR = "KR"
    JP = "JP"
    NONE = "-"


class AccountStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


@dataclass(frozen=True)
class Account:
    id: str
    code: str            # business key, e.g. "1.1US"
    name: str
    category: str
    type: TransactionType
    branch: Branch
    market: Market
    status: AccountStatus = AccountStatus.ACTIVE
    note: str = ""


@dataclass(frozen=True)
class Transaction:
    id: str
    date: date
    type: TransactionType
    source: str
    branch: Branch
    market: Market
    account_code: str    # refers to Account.code
    description: str
    amount: int          # VND, always >= 0; sign comes from type
    method: str
    proof_url: Optional[str] = None

    @property
    def signed_amount(self) -> int:
        return self.amount if self.type == TransactionType.REVENUE else -self.amount


class LockKey(NamedTuple):
    month: str           # "YYYY-MM"
    account_code: str
    branch: str


@dataclass(frozen=True)
class LedgerRow:
    transaction: Transaction
    running_balance: int


@dataclass(frozen=True)
class MonthStats:
    month: str
    opening: int
    revenue_sum: int
    expense_sum: int
    closing: int


@dataclass(frozen=True)
class BreakdownRow:
    account_code: str
    branch: str
    opening: int
    revenue_sum: int
    expense_sum: int
    closing: int
    is_locked: bool


def enum_value(value) -> str:
    """Business string of an enum member; plain strings pass through."""
    return getattr(value, "value", value)
