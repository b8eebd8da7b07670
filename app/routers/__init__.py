"""
ShipLedger - Routers Package

FastAPI route handlers.

Routers:
- reconciliation: Settlement sheet reconciliation and follow-up actions
- ledger: Courier and company ledgers, payments and settlement
- shipments: Status transitions, assignment, history and manifest import
"""

from app.routers import (
    reconciliation,
    ledger,
    shipments,
)

__all__ = [
    "reconciliation",
    "ledger",
    "shipments",
]
