"""
ShipLedger - Spreadsheet Configuration

Header keyword sets used to locate columns in uploaded sheets.
Matching is a case-insensitive substring test, so keywords are stored lowercase.
"""

from typing import Dict, List, Tuple


# =============================================================================
# LOGICAL FIELDS
# =============================================================================

FIELD_CODE = "code"
FIELD_AMOUNT = "amount"
FIELD_RECIPIENT_NAME = "recipient_name"
FIELD_RECIPIENT_PHONE = "recipient_phone"
FIELD_ADDRESS = "address"
FIELD_GOVERNORATE = "governorate"


# =============================================================================
# SETTLEMENT SHEET (reconciliation upload)
# =============================================================================

# Field order matters: it is the order in which a row's cells are tested.
HEADER_KEYWORDS: Dict[str, List[str]] = {
    FIELD_CODE: ["رقم الشحنة", "كود الشحنة", "shipment code", "order number"],
    FIELD_AMOUNT: ["المبلغ", "الاجمالي", "المحصل", "amount", "total"],
    FIELD_RECIPIENT_NAME: ["المرسل اليه", "العميل", "recipient name"],
    FIELD_RECIPIENT_PHONE: ["تليفون", "هاتف", "phone"],
    FIELD_ADDRESS: ["عنوان", "address"],
    FIELD_GOVERNORATE: ["محافظة", "governorate"],
}

RECONCILIATION_REQUIRED_FIELDS: Tuple[str, ...] = (FIELD_CODE, FIELD_AMOUNT)

# A row becomes the header row once this many fields resolve in it
HEADER_ROW_MIN_FIELDS = 2


# =============================================================================
# COMPANY SETTLEMENT SHEET (code list only)
# =============================================================================

SETTLEMENT_SHEET_KEYWORDS: Dict[str, List[str]] = {
    FIELD_CODE: ["رقم الشحنة", "كود الشحنة", "shipment code"],
}

SETTLEMENT_SHEET_REQUIRED_FIELDS: Tuple[str, ...] = (FIELD_CODE,)


# =============================================================================
# SHIPMENT INTAKE MANIFEST
# =============================================================================

INTAKE_KEYWORDS: Dict[str, List[str]] = {
    FIELD_CODE: ["كود الشحنة", "رقم الشحنة", "shipment code"],
    FIELD_AMOUNT: ["الاجمالي", "الاجمالى", "total"],
    FIELD_RECIPIENT_NAME: ["المرسل اليه", "recipient name"],
    FIELD_RECIPIENT_PHONE: ["التليفون", "تليفون", "phone"],
    FIELD_ADDRESS: ["العنوان", "address"],
    FIELD_GOVERNORATE: ["المحافظة", "governorate"],
}

INTAKE_REQUIRED_FIELDS: Tuple[str, ...] = (FIELD_CODE, FIELD_GOVERNORATE)

DEFAULT_RECIPIENT_NAME = "بدون اسم"
DEFAULT_ADDRESS = "N/A"


def normalize_keywords(keywords: Dict[str, List[str]]) -> Dict[str, List[str]]:
    """Lowercase every keyword so lookups can compare against lowercased cells."""
    return {field: [kw.lower() for kw in kws] for field, kws in keywords.items()}
