"""Spreadsheet import/export helpers (pandas, openpyxl engine for .xlsx)."""
import io
import logging
import zipfile
from typing import Any, BinaryIO, Dict, Iterable, List, Union

import pandas as pd

from bookkeeping.domain import Account, Transaction, TransactionType, enum_value
from bookkeeping.errors import ValidationError

logger = logging.getLogger(__name__)

TRANSACTION_HEADERS = {
    TransactionType.REVENUE: ["Ngay", "Nguon_Thu", "Chi_Nhanh", "Thi_Truong", "Ma_TK", "Noi_Dung", "So_Tien", "Hinh_Thuc"],
    TransactionType.EXPENSE: ["Ngay", "Nguon_Chi", "Chi_Nhanh", "Thi_Truong", "Ma_TK", "Noi_Dung", "So_Tien", "Hinh_Thuc"],
}
ACCOUNT_HEADERS = ["STT", "Loai_Danh_Muc", "Chi_Nhanh", "Thi_Truong", "Ma_TK", "Ten_Khoan_Muc", "Loai_Thu_Chi", "Ghi_Chu"]

FileLike = Union[str, bytes, BinaryIO]


def read_rows(file: FileLike, filename: str = "") -> List[Dict[str, Any]]:
    """Read the first sheet of an .xlsx/.xls/.csv upload into row dicts.

    Header whitespace is stripped; fully empty rows are dropped.
    """
    if isinstance(file, bytes):
        file = io.BytesIO(file)
    name = (filename or (file if isinstance(file, str) else "")).lower()
    try:
        if name.endswith(".csv"):
            df = pd.read_csv(file)
        else:
            df = pd.read_excel(file, engine="openpyxl" if name.endswith(".xlsx") else None)
    except (ValueError, OSError, zipfile.BadZipFile) as e:
        raise ValidationError(f"cannot read spreadsheet {filename or ''}: {e}".strip()) from e
    df = df.rename(columns=lambda c: str(c).strip()).dropna(how="all")
    logger.info("Read %d rows from %s", len(df), filename or "upload")
    return df.to_dict(orient="records")


def transactions_frame(trans: Iterable[Transaction]) -> pd.DataFrame:
    rows = [
        {
            "date": t.date,
            "type": enum_value(t.type),
            "source": t.source,
            "branch": enum_value(t.branch),
            "market": enum_value(t.market),
            "account_code": t.account_code,
            "description": t.description,
            "amount": t.amount,
            "method": t.method,
        }
        for t in trans
    ]
    columns = ["date", "type", "source", "branch", "market", "account_code", "description", "amount", "method"]
    return pd.DataFrame(rows, columns=columns)


def accounts_frame(accounts: Iterable[Account]) -> pd.DataFrame:
    rows = [
        {
            "code": a.code,
            "name": a.name,
            "category": a.category,
            "type": enum_value(a.type),
            "branch": enum_value(a.branch),
            "market": enum_value(a.market),
            "status": enum_value(a.status),
            "note": a.note,
        }
        for a in accounts
    ]
    return pd.DataFrame(rows, columns=["code", "name", "category", "type", "branch", "market", "status", "note"])


def to_excel_bytes(df: pd.DataFrame, sheet_name: str = "Sheet1") -> bytes:
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name=sheet_name)
    return buf.getvalue()


def transaction_template(tx_type: TransactionType) -> bytes:
    """Downloadable import template with one example row."""
    headers = TRANSACTION_HEADERS[tx_type]
    example = ["2025-12-01", "Khách lẻ" if tx_type == TransactionType.REVENUE else "Nhà cung cấp",
               "Hà Nội", "US", "1.1US" if tx_type == TransactionType.REVENUE else "2.1US",
               "Ví dụ", 1000000, "CK"]
    return to_excel_bytes(pd.DataFrame([example], columns=headers), sheet_name=tx_type.value)


def account_template() -> bytes:
    example = [1, "Doanh thu", "Hà Nội", "US", "1.1US", "Doanh thu bán hàng US", "THU", ""]
    return to_excel_bytes(pd.DataFrame([example], columns=ACCOUNT_HEADERS), sheet_name="Accounts")
