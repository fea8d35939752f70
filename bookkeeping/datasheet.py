"""Order datasheet: records synchronised from the document store.

Orders are keyed by their order id (``Mã_đơn_hàng``). Importing a spreadsheet
merges by that key, so re-importing the same file updates orders in place
instead of duplicating them.
"""
import asyncio
import logging
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from bookkeeping.config import DEFAULT_EXCHANGE_RATES
from bookkeeping.docstore import DocumentStore
from bookkeeping.filters import normalize_text
from bookkeeping.functional import Either, Left, Right, is_blank

logger = logging.getLogger(__name__)

ExchangeRates = Dict[str, float]

ORDERS_PATH = "datasheet/F3"
RATES_PATH = "settings/exchange_rates"

# attribute -> key used in the stored documents
DOCUMENT_KEYS: Dict[str, str] = {
    "order_id": "Mã_đơn_hàng",
    "order_date": "Ngày_lên_đơn",
    "product": "Mặt_hàng",
    "name": "Name",
    "region": "Khu_vực",
    "city": "City",
    "state": "State",
    "zipcode": "Zipcode",
    "team": "Team",
    "goods": "Tiền_Hàng",
    "ffm_fee": "Phí_FFM",
    "shared_cost": "Phí_Chung",
    "flight_fee": "Phí_bay",
    "account_rent": "Thuê_TK",
    "shipping": "Phí_ship",
    "reconciled_vnd": "Tiền_Việt_đã_đối_soát",
    "accountant_confirmed": "Kế_toán_xác_nhận_thu_tiền_về",
    "total_vnd": "Tổng_tiền_VNĐ",
    "delivery_status": "Trạng_thái_giao_hàng_NB",
    "note": "Ghi_chú",
    "payment_method": "Hình_thức_thanh_toán",
    "check_result": "Kết_quả_Check",
    "reason": "Lý_do",
    "tracking_code": "Mã_Tracking",
    "shipping_clerk": "NV_Vận_đơn",
    "marketer": "Nhân_viên_Marketing",
    "cutoff_time": "Thời_gian_cutoff",
    "collection_status": "Trạng_thái_thu_tiền",
    "carrier": "Đơn_vị_vận_chuyển",
}

# spreadsheet headers accepted besides the document key and its spaced form
HEADER_ALIASES: Dict[str, Tuple[str, ...]] = {
    "name": ("Tên",),
    "city": ("Thành phố",),
    "state": ("Bang",),
    "team": ("Chi nhánh",),
    "shared_cost": ("Chi phí chung",),
    "flight_fee": ("Phí Bay",),
    "account_rent": ("Phí thuê TK", "Thuê TK"),
    "shipping": ("Ship",),
    "reconciled_vnd": ("Tiền đã đối soát",),
    "accountant_confirmed": ("KT xác nhận",),
    "delivery_status": ("Trạng thái cuối cùng",),
}

MONEY_FIELDS = (
    "goods", "ffm_fee", "shared_cost", "flight_fee",
    "account_rent", "shipping", "reconciled_vnd", "total_vnd",
)

# normalised region label -> exchange rate key
REGION_CURRENCY: Dict[str, str] = {
    "us": "US", "usa": "US", "my": "US",
    "can": "CAD", "canada": "CAD",
    "uc": "AUD", "aus": "AUD", "australia": "AUD",
    "jp": "JPY", "japan": "JPY", "nhat": "JPY",
    "kr": "KRW", "korea": "KRW", "han": "KRW",
}


@dataclass(frozen=True)
class OrderRecord:
    order_id: str
    order_date: str = ""
    product: str = ""
    name: str = ""
    region: str = ""
    city: str = ""
    state: str = ""
    zipcode: str = ""
    team: str = ""
    goods: float = 0.0
    ffm_fee: float = 0.0
    shared_cost: float = 0.0
    flight_fee: float = 0.0
    account_rent: float = 0.0
    shipping: float = 0.0
    reconciled_vnd: float = 0.0
    accountant_confirmed: str = ""
    total_vnd: float = 0.0
    delivery_status: str = ""
    note: str = ""
    payment_method: str = ""
    check_result: str = ""
    reason: str = ""
    tracking_code: str = ""
    shipping_clerk: str = ""
    marketer: str = ""
    cutoff_time: str = ""
    collection_status: str = ""
    carrier: str = ""
    # local only: document key once stored, and document keys we do not model
    id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def day(self) -> Optional[date]:
        return parse_smart_date(self.order_date)

    @property
    def search_text(self) -> str:
        return normalize_text(" ".join((self.order_id, self.city, self.state, self.product)))

    def to_document(self) -> Dict[str, Any]:
        doc = dict(self.extra)
        for attr, key in DOCUMENT_KEYS.items():
            doc[key] = getattr(self, attr)
        return doc


class MergeResult(NamedTuple):
    orders: List[OrderRecord]
    added: int
    updated: int


@dataclass(frozen=True)
class DatasheetTotals:
    count: int
    total_vnd: float
    reconciled_vnd: float
    goods_vnd: float          # goods value converted with the region's rate
    unconverted: int          # orders with goods but no known rate


def parse_smart_date(text: Any) -> Optional[date]:
    """Parse the mixed date formats found in the order data.

    ISO first, then ``M/D/YYYY`` (the system export format), falling back to
    ``D/M/YYYY`` when the first part cannot be a month.
    """
    if is_blank(text):
        return None
    if isinstance(text, datetime):
        return text.date()
    if isinstance(text, date):
        return text
    s = str(text).strip()
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    parts = s.split(" ")[0].split("/")
    if len(parts) == 3:
        try:
            first, second, year = (int(p) for p in parts)
        except ValueError:
            return None
        month, day = (first, second) if first <= 12 else (second, first)
        try:
            return date(year, month, day)
        except ValueError:
            return None
    return None


def _money(value: Any) -> float:
    if is_blank(value):
        return 0.0
    try:
        return float(str(value).replace(",", "").strip())
    except ValueError:
        return 0.0


def _text(value: Any) -> str:
    if is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _coerce(attr: str, value: Any) -> Any:
    return _money(value) if attr in MONEY_FIELDS else _text(value)


def order_from_document(key: Optional[str], doc: Mapping[str, Any]) -> OrderRecord:
    known = set(DOCUMENT_KEYS.values())
    values = {attr: _coerce(attr, doc.get(k)) for attr, k in DOCUMENT_KEYS.items()}
    extra = {k: v for k, v in doc.items() if k not in known}
    return OrderRecord(id=key, extra=extra, **values)


def order_from_row(row: Mapping[str, Any]) -> Either[str, OrderRecord]:
    """Map a spreadsheet row to an order; rows without an order id are rejected."""
    values = {}
    for attr, key in DOCUMENT_KEYS.items():
        candidates = (key.replace("_", " "), key) + HEADER_ALIASES.get(attr, ())
        raw = next((row[c] for c in candidates if c in row and not is_blank(row[c])), None)
        values[attr] = _coerce(attr, raw)
    if not values["order_id"]:
        return Left("missing order id")
    return Right(OrderRecord(**values))


def merge_orders(existing: Sequence[OrderRecord], incoming: Iterable[OrderRecord]) -> MergeResult:
    """Upsert ``incoming`` into ``existing`` by order id.

    A known order takes every modelled field from the incoming record while
    keeping its document key and unmodelled fields.
    """
    merged: Dict[str, OrderRecord] = {}
    for order in existing:
        merged[order.order_id] = order
    added = updated = 0
    model_fields = [f.name for f in fields(OrderRecord) if f.name not in ("id", "extra")]
    for new in incoming:
        current = merged.get(new.order_id)
        if current is None:
            merged[new.order_id] = new
            added += 1
        else:
            changes = {name: getattr(new, name) for name in model_fields}
            merged[new.order_id] = replace(current, extra={**current.extra, **new.extra}, **changes)
            updated += 1
    logger.info("Merged orders: %d added, %d updated", added, updated)
    return MergeResult(list(merged.values()), added, updated)


def newest_first(orders: Iterable[OrderRecord]) -> List[OrderRecord]:
    return sorted(orders, key=lambda o: o.day or date.min, reverse=True)


def filter_orders(
    orders: Iterable[OrderRecord],
    start: Optional[date] = None,
    end: Optional[date] = None,
    market: str = "",
    product: str = "",
    team: str = "",
    search: str = "",
) -> List[OrderRecord]:
    tokens = normalize_text(search).split()
    result = []
    for o in orders:
        if start or end:
            d = o.day
            if d is None or (start and d < start) or (end and d > end):
                continue
        if market and o.region != market:
            continue
        if product and o.product != product:
            continue
        if team and o.team != team:
            continue
        if tokens and not all(tok in o.search_text for tok in tokens):
            continue
        result.append(o)
    return newest_first(result)


def paginate(items: Sequence[Any], page: int, per_page: int = 50) -> Tuple[List[Any], int]:
    pages = max(1, -(-len(items) // per_page))
    page = min(max(page, 1), pages)
    start = (page - 1) * per_page
    return list(items[start:start + per_page]), pages


def rate_for(region: str, rates: ExchangeRates) -> Optional[float]:
    currency = REGION_CURRENCY.get(normalize_text(region).strip())
    if currency is None:
        return None
    return rates.get(currency)


def datasheet_totals(orders: Iterable[OrderRecord], rates: ExchangeRates) -> DatasheetTotals:
    count = 0
    total_vnd = reconciled = goods_vnd = 0.0
    unconverted = 0
    for o in orders:
        count += 1
        total_vnd += o.total_vnd
        reconciled += o.reconciled_vnd
        if o.goods:
            rate = rate_for(o.region, rates)
            if rate is None:
                unconverted += 1
            else:
                goods_vnd += o.goods * rate
    return DatasheetTotals(count, total_vnd, reconciled, goods_vnd, unconverted)


def rates_from_document(doc: Any) -> ExchangeRates:
    rates = dict(DEFAULT_EXCHANGE_RATES)
    if isinstance(doc, Mapping):
        for currency, value in doc.items():
            rates[str(currency)] = _money(value)
    return rates


class DatasheetSync:
    """Loads and saves orders and exchange rates through the document store."""

    def __init__(self, store: DocumentStore, fetch_limit: int = 2000):
        self.store = store
        self.fetch_limit = fetch_limit

    async def load(self) -> Tuple[List[OrderRecord], ExchangeRates]:
        # orders and rates are independent, fetch them together
        orders_doc, rates_doc = await asyncio.gather(
            self.store.get(ORDERS_PATH, limit_to_last=self.fetch_limit),
            self.store.get(RATES_PATH),
        )
        orders = [
            order_from_document(key, doc)
            for key, doc in (orders_doc or {}).items()
            if isinstance(doc, Mapping)
        ]
        logger.info("Loaded %d orders", len(orders))
        return newest_first(orders), rates_from_document(rates_doc)

    async def save(self, order: OrderRecord) -> OrderRecord:
        if order.id:
            await self.store.put(f"{ORDERS_PATH}/{order.id}", order.to_document())
            return order
        key = await self.store.post(ORDERS_PATH, order.to_document())
        return replace(order, id=key)

    async def save_new(self, orders: Sequence[OrderRecord]) -> Tuple[List[OrderRecord], int]:
        """POST every order that has no document key yet; returns the updated list."""
        saved = 0
        result = []
        for order in orders:
            if order.id:
                result.append(order)
                continue
            result.append(await self.save(order))
            saved += 1
        logger.info("Saved %d new orders", saved)
        return result, saved

    async def save_rates(self, rates: ExchangeRates) -> None:
        await self.store.put(RATES_PATH, dict(rates))
        logger.info("Saved exchange rates for %s", ", ".join(sorted(rates)))
