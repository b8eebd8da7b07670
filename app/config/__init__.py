"""
ShipLedger - Configuration Package

Application settings and spreadsheet keyword configuration.
"""

from app.config.settings import Settings, get_settings, settings
from app.config.sheet_config import (
    HEADER_KEYWORDS,
    SETTLEMENT_SHEET_KEYWORDS,
    INTAKE_KEYWORDS,
    RECONCILIATION_REQUIRED_FIELDS,
    SETTLEMENT_SHEET_REQUIRED_FIELDS,
    INTAKE_REQUIRED_FIELDS,
)

__all__ = [
    # Settings
    "settings",
    "Settings",
    "get_settings",
    # Sheet keywords
    "HEADER_KEYWORDS",
    "SETTLEMENT_SHEET_KEYWORDS",
    "INTAKE_KEYWORDS",
    "RECONCILIATION_REQUIRED_FIELDS",
    "SETTLEMENT_SHEET_REQUIRED_FIELDS",
    "INTAKE_REQUIRED_FIELDS",
]
