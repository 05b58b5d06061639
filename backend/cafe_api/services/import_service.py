# Overview: Service-layer parsing for bulk uploads; turns CSV / spreadsheet rows into typed records.

"""
Tabular Importers

Every importer takes the raw rows of one sheet (row 1 is the header and is
always skipped) and maps each following row positionally onto a fixed column
layout. Importers never touch the database: they return plain dicts that the
owning domain service persists for the resolved outlet.

LENIENCY RULES:
- A row missing a required cell is skipped silently (partial files are normal)
- A row whose required cell is present but unparseable is skipped and noted
  in ImportResult.errors
- Cash reconciliation is the exception: only the date is hard-required and
  unparseable amounts are zero-filled
"""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..errors import ValidationError
from ..models.sales import PAYMENT_METHODS
from ..validation import INT64_MAX, MAX_AMOUNT_CENTS
from cafe_api.time_utils import try_parse_date, try_parse_datetime


SPREADSHEET_EXTENSIONS = {"xlsx", "xlsm"}
TEXT_EXTENSIONS = {"csv", "txt", "tsv"}

EXPENSE_COLUMNS = ("Date", "ExpenseType", "Description", "Amount", "Vendor", "PaymentMethod", "InvoiceNumber", "Notes")
SALES_COLUMNS = ("Date", "ItemName", "Quantity", "Price", "TotalSale", "PaymentMethod")
CASH_RECONCILIATION_COLUMNS = (
    "Date", "CountedCash", "CountedCoins", "ActualOnline", "Notes", "ExpectedCash", "ExpectedCoins",
)
ONLINE_SALES_COLUMNS = (
    "OrderId", "CustomerName", "OrderDate", "DistanceKm", "OrderedItems", "BillSubtotal", "Packaging",
    "Discount", "PlatformDeduction", "Payout", "Rating", "Review", "KPT", "RWT",
)
CATEGORY_COLUMNS = ("CategoryName", "SubCategoryName")

_CURRENCY_PREFIXES = ("INR", "Rs.", "Rs", "₹", "$")
_ORDERED_ITEM = re.compile(r"^\s*(\d+)\s*[xX×*]\s*(.+?)\s*$")


@dataclass
class ImportResult:
    records: list[dict] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    total_cents: int = 0
    skipped: int = 0

    @property
    def processed(self) -> int:
        return len(self.records)

    def summary(self) -> dict:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "errors": list(self.errors),
            "total_cents": self.total_cents,
        }


# ---------------------------------------------------------------------------
# File reading
# ---------------------------------------------------------------------------

def _extension(filename: str | None) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def _decode_text(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def read_rows(data: bytes, filename: str | None) -> list[list[Any]]:
    """
    Rows of the first sheet (or the whole CSV), header included.

    Spreadsheets are read with data_only=True so formula cells yield their
    cached values; dates come back as datetime objects.
    """
    ext = _extension(filename)

    if ext in TEXT_EXTENSIONS:
        delimiter = "\t" if ext == "tsv" else ","
        reader = csv.reader(io.StringIO(_decode_text(data)), delimiter=delimiter)
        return [list(row) for row in reader]

    if ext in SPREADSHEET_EXTENSIONS:
        try:
            wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except (BadZipFile, InvalidFileException, KeyError, ValueError, OSError):
            raise ValidationError("Could not read spreadsheet; upload a valid .xlsx file")
        try:
            sheet = wb.active
            return [list(row) for row in sheet.iter_rows(values_only=True)]
        finally:
            wb.close()

    raise ValidationError("Unsupported file type; upload .csv, .tsv, .txt or .xlsx")


# ---------------------------------------------------------------------------
# Cell coercion
# ---------------------------------------------------------------------------

def _cell(row: list[Any], index: int) -> Any:
    return row[index] if index < len(row) else None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text if text else None


def _to_decimal(value: Any) -> Decimal | None:
    if _is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    text = str(value).strip()
    for prefix in _CURRENCY_PREFIXES:
        if text.startswith(prefix):
            text = text[len(prefix):].strip()
            break
    text = text.replace(",", "").replace(" ", "")
    if not text:
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    if not number.is_finite():
        return None
    return number


def _to_cents(value: Any) -> int | None:
    """Currency cell (rupees, possibly '₹1,250.50') to integer cents."""
    number = _to_decimal(value)
    if number is None or abs(number * 100) > MAX_AMOUNT_CENTS:
        return None
    return int((number * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _to_int(value: Any) -> int | None:
    number = _to_decimal(value)
    if number is None or number != number.to_integral_value() or abs(number) > INT64_MAX:
        return None
    return int(number)


def _to_float(value: Any) -> float | None:
    number = _to_decimal(value)
    return float(number) if number is not None else None


def _payment_method(value: Any) -> str:
    text = _to_text(value)
    if not text:
        return "Cash"
    for method in PAYMENT_METHODS:
        if method.lower() == text.lower():
            return method
    return text


def _data_rows(rows: list[list[Any]]):
    """(spreadsheet row number, row) for every non-empty row after the header."""
    for offset, row in enumerate(rows[1:], start=2):
        if row is None or all(_is_blank(cell) for cell in row):
            continue
        yield offset, row


# ---------------------------------------------------------------------------
# Importers
# ---------------------------------------------------------------------------

def import_expenses(rows: list[list[Any]], recorded_by: str, expense_types: dict[str, str] | None = None) -> ImportResult:
    """
    Date, ExpenseType, Description, Amount, Vendor, PaymentMethod, InvoiceNumber, Notes.

    expense_types maps lower-cased names to their catalogue spelling; when
    given, a row whose type is not in it is an error.
    """
    result = ImportResult()
    for line_no, row in _data_rows(rows):
        raw_date, raw_type, raw_desc, raw_amount = (_cell(row, i) for i in range(4))
        if any(_is_blank(v) for v in (raw_date, raw_type, raw_desc, raw_amount)):
            result.skipped += 1
            continue

        expense_date = try_parse_date(raw_date)
        if expense_date is None:
            result.errors.append(f"Row {line_no}: invalid date '{raw_date}'")
            continue
        amount_cents = _to_cents(raw_amount)
        if amount_cents is None or amount_cents < 0:
            result.errors.append(f"Row {line_no}: invalid amount '{raw_amount}'")
            continue
        expense_type = _to_text(raw_type)
        if expense_types is not None:
            if expense_type.lower() not in expense_types:
                result.errors.append(f"Row {line_no}: unknown expense type '{expense_type}'")
                continue
            expense_type = expense_types[expense_type.lower()]

        result.records.append({
            "expense_date": expense_date,
            "expense_type": expense_type,
            "description": _to_text(raw_desc),
            "amount_cents": amount_cents,
            "vendor": _to_text(_cell(row, 4)),
            "payment_method": _payment_method(_cell(row, 5)),
            "invoice_number": _to_text(_cell(row, 6)),
            "notes": _to_text(_cell(row, 7)),
            "recorded_by": recorded_by,
        })
        result.total_cents += amount_cents
    return result


def import_sales(rows: list[list[Any]], recorded_by: str) -> ImportResult:
    """
    Date, ItemName, Quantity, Price, TotalSale, PaymentMethod.

    One transaction per dated row; the undated rows beneath it are further
    line items of that transaction. A non-empty but unparseable date does not
    start a new transaction: the row's item joins the transaction above and
    the error says so.
    """
    result = ImportResult()
    current: dict | None = None

    def flush():
        if current is not None and current["items"]:
            result.records.append(current)
            result.total_cents += current["total_cents"]

    for line_no, row in _data_rows(rows):
        raw_date = _cell(row, 0)
        bad_date = None
        if not _is_blank(raw_date):
            sale_date = try_parse_date(raw_date)
            if sale_date is None:
                bad_date = f"Row {line_no}: invalid date '{raw_date}'"
            else:
                flush()
                current = {
                    "sale_date": sale_date,
                    "items": [],
                    "total_cents": 0,
                    "payment_method": _payment_method(_cell(row, 5)),
                    "recorded_by": recorded_by,
                }

        name = _to_text(_cell(row, 1))
        raw_qty, raw_price = _cell(row, 2), _cell(row, 3)
        if not name or _is_blank(raw_qty) or _is_blank(raw_price):
            if bad_date:
                result.errors.append(bad_date)
            result.skipped += 1
            continue
        if current is None:
            result.errors.append(bad_date or f"Row {line_no}: item '{name}' has no sale date above it")
            continue

        quantity = _to_int(raw_qty)
        if quantity is None or quantity <= 0:
            result.errors.append(f"Row {line_no}: invalid quantity '{raw_qty}'")
            continue
        price_cents = _to_cents(raw_price)
        if price_cents is None or price_cents < 0:
            result.errors.append(f"Row {line_no}: invalid price '{raw_price}'")
            continue

        line_total = _to_cents(_cell(row, 4))
        if line_total is None or line_total < 0:
            line_total = quantity * price_cents

        current["items"].append({
            "item_name": name,
            "quantity": quantity,
            "unit_price_cents": price_cents,
            "total_cents": line_total,
        })
        current["total_cents"] += line_total
        if bad_date:
            result.errors.append(f"{bad_date}; item added to the sale above")

    flush()
    return result


def import_cash_reconciliations(rows: list[list[Any]], recorded_by: str) -> ImportResult:
    """
    Date, CountedCash, CountedCoins, ActualOnline, Notes, ExpectedCash, ExpectedCoins.

    Lines whose first cell starts with '#' are comments.
    """
    result = ImportResult()
    for line_no, row in _data_rows(rows):
        raw_date = _cell(row, 0)
        if isinstance(raw_date, str) and raw_date.strip().startswith("#"):
            continue
        if _is_blank(raw_date):
            result.skipped += 1
            continue
        reconciliation_date = try_parse_date(raw_date)
        if reconciliation_date is None:
            result.errors.append(f"Row {line_no}: invalid date '{raw_date}'")
            continue

        counted_cash = _to_cents(_cell(row, 1)) or 0
        counted_coins = _to_cents(_cell(row, 2)) or 0
        actual_online = _to_cents(_cell(row, 3)) or 0

        result.records.append({
            "reconciliation_date": reconciliation_date,
            "counted_cash_cents": counted_cash,
            "counted_coins_cents": counted_coins,
            "actual_online_cents": actual_online,
            "notes": _to_text(_cell(row, 4)),
            "expected_cash_cents": _to_cents(_cell(row, 5)) or 0,
            "expected_coins_cents": _to_cents(_cell(row, 6)) or 0,
            "reconciled_by": recorded_by,
        })
        result.total_cents += counted_cash + counted_coins + actual_online
    return result


def parse_ordered_items(value: Any) -> list[dict]:
    """'2 x Cold Coffee, 1 x Brownie' -> [{"name": ..., "quantity": ...}]; a bare name counts once."""
    text = _to_text(value)
    if not text:
        return []
    items = []
    for chunk in re.split(r"[,;\n]", text):
        chunk = chunk.strip()
        if not chunk:
            continue
        match = _ORDERED_ITEM.match(chunk)
        if match:
            quantity = int(match.group(1))
            if 0 < quantity <= INT64_MAX:
                items.append({"name": match.group(2), "quantity": quantity})
        else:
            items.append({"name": chunk, "quantity": 1})
    return items


def import_online_sales(rows: list[list[Any]], recorded_by: str, platform: str) -> ImportResult:
    """
    OrderId, CustomerName, OrderDate, DistanceKm, OrderedItems, BillSubtotal,
    Packaging, Discount, PlatformDeduction, Payout, Rating, Review, KPT, RWT.

    The platform is not a column; every row belongs to the uploaded platform.
    """
    result = ImportResult()
    seen: set[str] = set()
    for line_no, row in _data_rows(rows):
        order_id = _to_text(_cell(row, 0))
        raw_date, raw_payout = _cell(row, 2), _cell(row, 9)
        if not order_id or _is_blank(raw_date) or _is_blank(raw_payout):
            result.skipped += 1
            continue

        order_at = try_parse_datetime(raw_date)
        if order_at is None:
            result.errors.append(f"Row {line_no}: invalid order date '{raw_date}'")
            continue
        payout_cents = _to_cents(raw_payout)
        if payout_cents is None:
            result.errors.append(f"Row {line_no}: invalid payout '{raw_payout}'")
            continue
        if order_id in seen:
            result.errors.append(f"Row {line_no}: duplicate order id '{order_id}' in file")
            continue
        seen.add(order_id)

        result.records.append({
            "platform": platform,
            "order_id": order_id,
            "customer_name": _to_text(_cell(row, 1)),
            "order_at": order_at,
            "distance_km": _to_float(_cell(row, 3)),
            "ordered_items": parse_ordered_items(_cell(row, 4)),
            "bill_subtotal_cents": _to_cents(_cell(row, 5)) or 0,
            "packaging_cents": _to_cents(_cell(row, 6)) or 0,
            "discount_cents": _to_cents(_cell(row, 7)) or 0,
            "platform_deduction_cents": _to_cents(_cell(row, 8)) or 0,
            "payout_cents": payout_cents,
            "rating": _to_float(_cell(row, 10)),
            "review": _to_text(_cell(row, 11)),
            "kpt_minutes": _to_float(_cell(row, 12)),
            "rwt_minutes": _to_float(_cell(row, 13)),
            "recorded_by": recorded_by,
        })
        result.total_cents += payout_cents
    return result


def import_categories(rows: list[list[Any]], recorded_by: str) -> ImportResult:
    """
    CategoryName, SubCategoryName.

    Rows are grouped by category (case-insensitive, first spelling wins);
    a blank subcategory cell registers the category alone.
    """
    result = ImportResult()
    by_key: dict[str, dict] = {}
    for _line_no, row in _data_rows(rows):
        category = _to_text(_cell(row, 0))
        if not category:
            result.skipped += 1
            continue
        entry = by_key.get(category.lower())
        if entry is None:
            entry = {"name": category, "subcategories": [], "created_by": recorded_by}
            by_key[category.lower()] = entry
            result.records.append(entry)
        sub = _to_text(_cell(row, 1))
        if sub and sub.lower() not in {s.lower() for s in entry["subcategories"]}:
            entry["subcategories"].append(sub)
    return result


def category_template_rows() -> list[list[str]]:
    return [
        list(CATEGORY_COLUMNS),
        ["Beverages", "Hot Coffee"],
        ["Beverages", "Cold Coffee"],
        ["Snacks", "Sandwiches"],
    ]
