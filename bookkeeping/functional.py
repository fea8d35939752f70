import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Generic, Iterable, Mapping, Optional, Type, TypeVar

from bookkeeping.domain import (
    Account,
    AccountStatus,
    Branch,
    Market,
    Transaction,
    TransactionType,
)

T = TypeVar('T')
U = TypeVar('U')
E = TypeVar('E')


class Maybe(Generic[T]):
    """Optional value; ``Some`` holds one, ``Nothing`` does not."""

    def map(self, f: Callable[[T], U]) -> 'Maybe[U]':
        return Some(f(self._value)) if self.is_some() else Nothing()

    def bind(self, f: Callable[[T], 'Maybe[U]']) -> 'Maybe[U]':
        return f(self._value) if self.is_some() else Nothing()

    def get_or_else(self, default: T) -> T:
        return self._value if self.is_some() else default

    def is_some(self) -> bool:
        return isinstance(self, Some)

    def is_none(self) -> bool:
        return not self.is_some()


class Some(Maybe[T]):
    def __init__(self, value: T):
        self._value = value

    def __repr__(self) -> str:
        return f"Some({self._value!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Some) and self._value == other._value


class Nothing(Maybe[T]):
    def __repr__(self) -> str:
        return "Nothing()"

    def __eq__(self, other) -> bool:
        return isinstance(other, Nothing)


class Either(Generic[E, T]):
    """Tagged result: ``Right`` carries a value, ``Left`` carries the reason it failed."""

    def map(self, f: Callable[[T], U]) -> 'Either[E, U]':
        return Right(f(self._value)) if self.is_right() else self

    def bind(self, f: Callable[[T], 'Either[E, U]']) -> 'Either[E, U]':
        return f(self._value) if self.is_right() else self

    def get_or_else(self, default: T) -> T:
        return self._value if self.is_right() else default

    def is_right(self) -> bool:
        return isinstance(self, Right)

    def is_left(self) -> bool:
        return not self.is_right()

    def get_error(self) -> E:
        if self.is_right():
            raise ValueError("Cannot get error from Right")
        return self._error


class Right(Either[E, T]):
    def __init__(self, value: T):
        self._value = value

    def __repr__(self) -> str:
        return f"Right({self._value!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Right) and self._value == other._value


class Left(Either[E, T]):
    def __init__(self, error: E):
        self._error = error

    def __repr__(self) -> str:
        return f"Left({self._error!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Left) and self._error == other._error


EnumT = TypeVar('EnumT')


def safe_account(accounts: Iterable[Account], code: str) -> Maybe[Account]:
    for acc in accounts:
        if acc.code == code:
            return Some(acc)
    return Nothing()


def coerce_enum(enum_cls: Type[EnumT], value: Any, default: Optional[EnumT] = None) -> Either[str, EnumT]:
    """Match an enum member by value or by name; blank input gives ``default``."""
    if isinstance(value, enum_cls):
        return Right(value)
    text = _text(value)
    if not text:
        if default is None:
            return Left(f"missing {enum_cls.__name__}")
        return Right(default)
    for member in enum_cls:
        if text == member.value or text.upper() == member.name:
            return Right(member)
    return Left(f"unknown {enum_cls.__name__} {text!r}")


def parse_date(value: Any) -> Either[str, date]:
    """Accept date objects, ISO ``YYYY-MM-DD`` text or ``DD/MM/YYYY`` text."""
    if is_blank(value):
        return Left("missing date")
    if isinstance(value, datetime):
        # also covers pandas.Timestamp
        return Right(value.date())
    if isinstance(value, date):
        return Right(value)
    text = _text(value)
    for fmt in ("%Y-%m-%d", "%Y-%m-%d %H:%M:%S", "%d/%m/%Y"):
        try:
            return Right(datetime.strptime(text, fmt).date())
        except ValueError:
            continue
    try:
        return Right(datetime.fromisoformat(text).date())
    except ValueError:
        return Left(f"invalid date {text!r}")


_DOT_THOUSANDS = re.compile(r"^-?\d{1,3}(\.\d{3})+$")


def parse_amount(value: Any) -> Either[str, int]:
    if isinstance(value, bool):
        return Left(f"invalid amount {value!r}")
    if isinstance(value, int):
        return Right(value)
    if isinstance(value, float):
        if value != value:  # NaN from an empty spreadsheet cell
            return Left("missing amount")
        return Right(int(round(value)))
    text = _text(value)
    for ch in (" ", "\u00a0", "₫", "đ", "VND", ","):
        text = text.replace(ch, "")
    # VND has no minor unit: "150.000" groups thousands, "1500000.00" does not
    if _DOT_THOUSANDS.match(text):
        text = text.replace(".", "")
    if not text:
        return Left("missing amount")
    try:
        return Right(int(Decimal(text).to_integral_value()))
    except InvalidOperation:
        return Left(f"invalid amount {value!r}")


def validate_transaction(t: Transaction) -> Either[str, Transaction]:
    if t.amount <= 0:
        return Left("amount must be greater than zero")
    if not t.account_code.strip():
        return Left("account code is required")
    return Right(t)


def validate_account(a: Account) -> Either[str, Account]:
    if not a.code.strip():
        return Left("account code is required")
    if not a.name.strip():
        return Left("account name is required")
    return Right(a)


def transaction_from_row(
    row: Mapping[str, Any], tx_type: TransactionType, today: Optional[date] = None
) -> Either[str, Transaction]:
    """Convert one spreadsheet row (import template headers) into a draft.

    The draft has an empty id; the store assigns one on insert.
    """
    source_key = "Nguon_Thu" if tx_type == TransactionType.REVENUE else "Nguon_Chi"
    raw_date = row.get("Ngay")
    tx_date = Right(today or date.today()) if is_blank(raw_date) else parse_date(raw_date)
    branch = coerce_enum(Branch, row.get("Chi_Nhanh"), Branch.HN)
    market = coerce_enum(Market, row.get("Thi_Truong"), Market.US)
    amount = parse_amount(row.get("So_Tien"))
    for part in (tx_date, branch, market, amount):
        if part.is_left():
            return part

    draft = Transaction(
        id="",
        date=tx_date.get_or_else(None),
        type=tx_type,
        source=_text(row.get(source_key) or row.get("Nguon")),
        branch=branch.get_or_else(None),
        market=market.get_or_else(None),
        account_code=_text(row.get("Ma_TK")),
        description=_text(row.get("Noi_Dung")),
        amount=amount.get_or_else(0),
        method=_text(row.get("Hinh_Thuc")) or "CK",
    )
    return validate_transaction(draft)


def account_from_row(row: Mapping[str, Any]) -> Either[str, Account]:
    branch = coerce_enum(Branch, row.get("Chi_Nhanh"), Branch.HN)
    market = coerce_enum(Market, row.get("Thi_Truong"), Market.US)
    for part in (branch, market):
        if part.is_left():
            return part
    kind = _text(row.get("Loai_Thu_Chi")).upper()
    account = Account(
        id="",
        code=_text(row.get("Ma_TK")),
        name=_text(row.get("Ten_Khoan_Muc")),
        category=_text(row.get("Loai_Danh_Muc")),
        type=TransactionType.REVENUE if kind == TransactionType.REVENUE.value else TransactionType.EXPENSE,
        branch=branch.get_or_else(None),
        market=market.get_or_else(None),
        status=AccountStatus.ACTIVE,
        note=_text(row.get("Ghi_Chu")),
    )
    return validate_account(account)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value != value:
        return ""
    if isinstance(value, float) and value.is_integer():
        # spreadsheet readers turn codes like "6" into 6.0
        return str(int(value))
    return str(value).strip()


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(value != value)  # NaN, NaT
    except (TypeError, ValueError):
        return False
