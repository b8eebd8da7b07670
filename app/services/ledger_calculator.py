"""
ShipLedger - Ledger Calculator

Derives a courier's or company's financial position from its active
shipments and payments. Nothing here is cached or persisted; every ledger
is recomputed from source records.

Courier and company ledgers share one shape. A RoleProjection selects the
role-specific columns (owner, commission, archive flag) so ledger totals
and settlement writes never branch on the role.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional, Sequence
import uuid

from app.models.payment import LedgerPayment, PartyRole
from app.models.shipment import Shipment
from app.models.shipment_status import StatusConfig
from app.services.status_transition import ZERO, to_money


# ===========================================
# ROLE PROJECTIONS
# ===========================================

@dataclass(frozen=True)
class RoleProjection:
    """Column names a role reads and writes on shipments and status configs."""
    role: PartyRole
    owner_column: str
    commission_column: str
    archived_column: str
    archived_at_column: str
    balance_flag: str

    def owner_id(self, shipment: Shipment) -> Optional[uuid.UUID]:
        return getattr(shipment, self.owner_column)

    def commission(self, shipment: Shipment) -> Decimal:
        return to_money(getattr(shipment, self.commission_column))

    def is_archived(self, shipment: Shipment) -> bool:
        return bool(getattr(shipment, self.archived_column))

    def carries_balance(self, shipment: Shipment) -> bool:
        """Whether the shipment moves this role's net due at all."""
        return to_money(shipment.paid_amount) != ZERO or self.commission(shipment) != ZERO

    def is_finished(self, config: StatusConfig) -> bool:
        """Statuses that count toward this role's balance are settleable."""
        return bool(getattr(config, self.balance_flag))

    def finished_statuses(self, configs: Mapping[str, StatusConfig]) -> List[str]:
        return [status_id for status_id, config in configs.items() if self.is_finished(config)]

    def owner_attribute(self):
        return getattr(Shipment, self.owner_column)

    def archived_attribute(self):
        return getattr(Shipment, self.archived_column)


COURIER_PROJECTION = RoleProjection(
    role=PartyRole.COURIER,
    owner_column="courier_id",
    commission_column="courier_commission",
    archived_column="is_archived_for_courier",
    archived_at_column="courier_archived_at",
    balance_flag="affects_courier_balance",
)

COMPANY_PROJECTION = RoleProjection(
    role=PartyRole.COMPANY,
    owner_column="company_id",
    commission_column="company_commission",
    archived_column="is_archived_for_company",
    archived_at_column="company_archived_at",
    balance_flag="affects_company_balance",
)

PROJECTIONS = {
    PartyRole.COURIER: COURIER_PROJECTION,
    PartyRole.COMPANY: COMPANY_PROJECTION,
}


def projection_for(role: PartyRole) -> RoleProjection:
    return PROJECTIONS[PartyRole(role)]


# ===========================================
# LEDGER
# ===========================================

@dataclass(frozen=True)
class EntityLedger:
    """Computed snapshot of an entity's balance. Never persisted."""
    entity_id: uuid.UUID
    role: PartyRole
    total_collected: Decimal = ZERO
    total_commission: Decimal = ZERO
    total_paid: Decimal = ZERO
    shipment_ids: tuple = ()
    payment_ids: tuple = ()

    @property
    def net_due(self) -> Decimal:
        return (self.total_collected - self.total_commission) - self.total_paid


def active_shipments(
    entity_id: uuid.UUID,
    role: PartyRole,
    shipments: Iterable[Shipment],
) -> List[Shipment]:
    projection = projection_for(role)
    return [
        s for s in shipments
        if projection.owner_id(s) == entity_id and not projection.is_archived(s)
    ]


def active_payments(
    entity_id: uuid.UUID,
    role: PartyRole,
    payments: Iterable[LedgerPayment],
) -> List[LedgerPayment]:
    role = PartyRole(role)
    return [
        p for p in payments
        if p.entity_id == entity_id and PartyRole(p.role) == role and not p.is_archived
    ]


def calculate_ledger(
    entity_id: uuid.UUID,
    role: PartyRole,
    shipments: Iterable[Shipment],
    payments: Iterable[LedgerPayment],
) -> EntityLedger:
    """
    Compute the ledger of one entity.

    Only shipments owned by the entity and not archived for the role, and
    payments to the entity that are not archived, contribute.
    """
    role = PartyRole(role)
    projection = projection_for(role)
    shipments = active_shipments(entity_id, role, shipments)
    payments = active_payments(entity_id, role, payments)

    return EntityLedger(
        entity_id=entity_id,
        role=role,
        total_collected=sum((to_money(s.paid_amount) for s in shipments), ZERO),
        total_commission=sum((projection.commission(s) for s in shipments), ZERO),
        total_paid=sum((to_money(p.amount) for p in payments), ZERO),
        shipment_ids=tuple(s.id for s in shipments),
        payment_ids=tuple(p.id for p in payments),
    )


# ===========================================
# ACCOUNT STATEMENT
# ===========================================

@dataclass(frozen=True)
class StatementEntry:
    """One line of an account statement."""
    occurred_at: datetime
    kind: str  # "shipment" or "payment"
    reference: str
    description: str
    credit: Decimal
    debit: Decimal
    balance: Decimal


@dataclass
class AccountStatement:
    entity_id: uuid.UUID
    role: PartyRole
    entries: List[StatementEntry] = field(default_factory=list)
    total_credit: Decimal = ZERO
    total_debit: Decimal = ZERO

    @property
    def closing_balance(self) -> Decimal:
        return self.entries[-1].balance if self.entries else ZERO


def _sort_key(moment: Optional[datetime]) -> datetime:
    if moment is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def build_statement(
    entity_id: uuid.UUID,
    role: PartyRole,
    shipments: Sequence[Shipment],
    payments: Sequence[LedgerPayment],
    configs: Mapping[str, StatusConfig],
) -> AccountStatement:
    """
    Chronological statement with a running balance.

    Courier: a shipment credits what was collected and debits the courier's
    commission; a payment debits. Company: a shipment debits what is owed
    to the company (collected less commission); a payment credits. The
    running balance moves in the direction of net due for both roles, so
    the closing balance over active records equals the ledger's net due.

    Shipments in a status without configuration and rows with no
    financial effect are left out.
    """
    role = PartyRole(role)
    projection = projection_for(role)
    is_courier = role == PartyRole.COURIER

    events = []
    for shipment in shipments:
        config = configs.get(shipment.status)
        if config is None:
            continue
        paid = to_money(shipment.paid_amount)
        commission = projection.commission(shipment)
        if is_courier:
            credit, debit = paid, commission
        else:
            credit, debit = ZERO, paid - commission
        description = (
            f"Shipment {shipment.order_number or shipment.shipment_code}"
            f" - {shipment.recipient_name or ''} - {config.label}"
        )
        events.append((shipment.updated_at, "shipment", shipment.shipment_code, description, credit, debit))

    for payment in payments:
        amount = to_money(payment.amount)
        credit, debit = (ZERO, amount) if is_courier else (amount, ZERO)
        description = f"Payment ({payment.notes})" if payment.notes else "Payment"
        events.append((payment.payment_date, "payment", str(payment.id), description, credit, debit))

    events.sort(key=lambda event: _sort_key(event[0]))

    statement = AccountStatement(entity_id=entity_id, role=role)
    balance = ZERO
    for occurred_at, kind, reference, description, credit, debit in events:
        if credit == ZERO and debit == ZERO:
            continue
        balance += (credit - debit) if is_courier else (debit - credit)
        statement.total_credit += credit
        statement.total_debit += debit
        statement.entries.append(
            StatementEntry(occurred_at, kind, reference, description, credit, debit, balance)
        )
    return statement
