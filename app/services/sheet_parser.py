"""
ShipLedger - Sheet Parser

Turns the raw rows of an uploaded spreadsheet into canonical sheet records.

Two stages:
- Header resolution: find the header row and the column of each logical
  field using multilingual keyword sets.
- Record normalization: read code and amount from every data row,
  rejecting rows that cannot be used and keeping the rest keyed by code.

Spreadsheet file decoding happens upstream; this module only sees rows of
raw cell values.
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence

from app.config.sheet_config import (
    FIELD_ADDRESS,
    FIELD_AMOUNT,
    FIELD_CODE,
    FIELD_GOVERNORATE,
    FIELD_RECIPIENT_NAME,
    FIELD_RECIPIENT_PHONE,
    HEADER_KEYWORDS,
    HEADER_ROW_MIN_FIELDS,
    RECONCILIATION_REQUIRED_FIELDS,
    normalize_keywords,
)
from app.utils.error_handling import HeaderNotFoundError, RowValidationError

logger = logging.getLogger(__name__)

Row = Sequence[Any]

_NON_NUMERIC = re.compile(r"[^0-9.]")


# ===========================================
# DATA CLASSES
# ===========================================

@dataclass(frozen=True)
class HeaderMap:
    """Location of the header row and the column index of each resolved field."""
    header_row: int
    columns: Dict[str, int]

    def has(self, field_name: str) -> bool:
        return field_name in self.columns


@dataclass
class SheetRecord:
    """One usable sheet row. Never persisted."""
    code: str
    amount: Decimal
    row_number: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def recipient_name(self) -> Optional[str]:
        return _optional_text(self.metadata.get(FIELD_RECIPIENT_NAME))

    @property
    def recipient_phone(self) -> Optional[str]:
        return _optional_text(self.metadata.get(FIELD_RECIPIENT_PHONE))

    @property
    def address(self) -> Optional[str]:
        return _optional_text(self.metadata.get(FIELD_ADDRESS))

    @property
    def governorate(self) -> Optional[str]:
        return _optional_text(self.metadata.get(FIELD_GOVERNORATE))


@dataclass(frozen=True)
class RowRejection:
    """A data row that was skipped, with the reason."""
    row_number: int
    reason: str

    @classmethod
    def from_error(cls, error: RowValidationError) -> "RowRejection":
        return cls(row_number=error.row_number, reason=error.reason)


@dataclass
class NormalizedSheet:
    """Records keyed by code in first-seen order, plus the rejection report."""
    records: Dict[str, SheetRecord] = field(default_factory=dict)
    rejections: List[RowRejection] = field(default_factory=list)

    @property
    def record_list(self) -> List[SheetRecord]:
        return list(self.records.values())


# ===========================================
# CELL HELPERS
# ===========================================

def cell_text(value: Any) -> str:
    """
    Render a cell as trimmed text.

    Integral floats (spreadsheet readers often return 1234.0 for a numeric
    code cell) are rendered without the trailing ".0".
    """
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _optional_text(value: Any) -> Optional[str]:
    text = cell_text(value)
    return text or None


def _cell(row: Row, index: int) -> Any:
    if index < len(row):
        return row[index]
    return None


def _is_blank(row: Optional[Row]) -> bool:
    if not row:
        return True
    return all(cell_text(cell) == "" for cell in row)


def parse_amount(value: Any) -> Decimal:
    """
    Parse a sheet amount cell.

    Numeric cells are used as-is. Text cells are stripped of every character
    other than digits and the decimal point before parsing, so currency
    symbols and thousands separators are tolerated.

    Raises:
        ValueError: If the cell does not yield a finite number
    """
    if value is None or isinstance(value, bool):
        raise ValueError("amount is missing")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, float):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        cleaned = _NON_NUMERIC.sub("", value)
        if not cleaned:
            raise ValueError(f"amount '{value}' has no digits")
        try:
            amount = Decimal(cleaned)
        except InvalidOperation:
            raise ValueError(f"amount '{value}' is not a number")
    else:
        raise ValueError(f"unsupported amount cell type {type(value).__name__}")

    if not amount.is_finite():
        raise ValueError(f"amount '{value}' is not finite")
    return amount


# ===========================================
# HEADER RESOLUTION
# ===========================================

def resolve_headers(
    rows: Sequence[Optional[Row]],
    keywords: Optional[Dict[str, List[str]]] = None,
    required: Sequence[str] = RECONCILIATION_REQUIRED_FIELDS,
    min_fields: int = HEADER_ROW_MIN_FIELDS,
) -> HeaderMap:
    """
    Locate the header row of a sheet.

    Each row's cells are tested against each unresolved field's keywords
    (case-insensitive substring). The first cell in column order that matches
    claims the field; a field resolved on an earlier row is never re-resolved.
    Scanning stops at the first row that newly resolves ``min_fields`` fields
    (capped at the number of configured fields).

    Args:
        rows: Raw sheet rows
        keywords: Field -> keyword list; defaults to the settlement sheet set
        required: Fields that must resolve for the sheet to be usable
        min_fields: Fields a single row must resolve to be the header row

    Returns:
        HeaderMap with the header row index and resolved columns

    Raises:
        HeaderNotFoundError: If a required field is unresolved after all rows
    """
    lowered = normalize_keywords(keywords or HEADER_KEYWORDS)
    threshold = max(1, min(min_fields, len(lowered)))

    columns: Dict[str, int] = {}
    header_row: Optional[int] = None
    last_resolving_row: Optional[int] = None

    for row_index, row in enumerate(rows):
        if not row:
            continue
        texts = [cell_text(cell).lower() for cell in row]
        resolved_here = 0

        for field_name, field_keywords in lowered.items():
            if field_name in columns:
                continue
            for col_index, text in enumerate(texts):
                if text and any(kw in text for kw in field_keywords):
                    columns[field_name] = col_index
                    resolved_here += 1
                    break

        if resolved_here:
            last_resolving_row = row_index
        if resolved_here >= threshold:
            header_row = row_index
            break

    missing = [name for name in required if name not in columns]
    if missing:
        logger.warning(f"Header resolution failed, missing fields: {missing}")
        raise HeaderNotFoundError(missing)

    if header_row is None:
        # Fields resolved across several rows; data starts after the last of them
        header_row = last_resolving_row

    return HeaderMap(header_row=header_row, columns=columns)


# ===========================================
# RECORD NORMALIZATION
# ===========================================

def _normalize_row(row: Row, row_number: int, header: HeaderMap) -> SheetRecord:
    code = cell_text(_cell(row, header.columns[FIELD_CODE]))
    if not code:
        raise RowValidationError(row_number, "missing shipment code")

    try:
        amount = parse_amount(_cell(row, header.columns[FIELD_AMOUNT]))
    except ValueError as e:
        raise RowValidationError(row_number, str(e))

    metadata = {
        name: _cell(row, index)
        for name, index in header.columns.items()
        if name not in (FIELD_CODE, FIELD_AMOUNT)
    }
    return SheetRecord(code=code, amount=amount, row_number=row_number, metadata=metadata)


def normalize_rows(rows: Sequence[Optional[Row]], header: HeaderMap) -> NormalizedSheet:
    """
    Convert the data rows below the header into sheet records.

    Rows with an empty code or an unusable amount are rejected and reported;
    processing always continues with the next row. Entirely blank rows are
    skipped silently. A later row with an already seen code replaces the
    earlier record.
    """
    result = NormalizedSheet()

    for row_index in range(header.header_row + 1, len(rows)):
        row = rows[row_index]
        if _is_blank(row):
            continue
        row_number = row_index + 1
        try:
            record = _normalize_row(row, row_number, header)
        except RowValidationError as e:
            logger.warning(f"Rejected sheet row {row_number}: {e.reason}")
            result.rejections.append(RowRejection.from_error(e))
            continue
        result.records[record.code] = record

    return result


def parse_sheet(
    rows: Sequence[Optional[Row]],
    keywords: Optional[Dict[str, List[str]]] = None,
) -> NormalizedSheet:
    """Resolve headers and normalize a settlement sheet in one call."""
    header = resolve_headers(rows, keywords=keywords)
    return normalize_rows(rows, header)


def extract_codes(rows: Sequence[Optional[Row]], header: HeaderMap) -> List[str]:
    """Distinct non-empty codes below the header row, in sheet order."""
    seen: Dict[str, None] = {}
    code_col = header.columns[FIELD_CODE]
    for row in rows[header.header_row + 1:]:
        if not row:
            continue
        code = cell_text(_cell(row, code_col))
        if code:
            seen.setdefault(code, None)
    return list(seen)
