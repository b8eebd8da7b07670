"""
ShipLedger - Permissions System

Role-based access rules for back-office staff, couriers and companies.

Permission Matrix:
==================

| Permission            | Admin | Customer Service | Courier | Company |
|-----------------------|-------|------------------|---------|---------|
| modify_any_shipment   | X     | X                |         |         |
| modify_own_shipment   | X     | X                | X       | X       |
| assign_couriers       | X     | X                |         |         |
| import_shipments      | X     | X                |         |         |
| delete_shipments      | X     | X                |         |         |
| reconcile             | X     | X                |         |         |
| view_any_ledger       | X     | X                |         |         |
| view_own_ledger       | X     | X                | X       | X       |
| record_payments       | X     | X                |         |         |
| settle_accounts       | X     | X                |         |         |

"Own" means the shipment is assigned to the courier, or belongs to the
company; for ledgers, the ledger is the actor's own party.
"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Set

from app.models.payment import PartyRole
from app.models.shipment import Shipment
from app.utils.error_handling import PermissionDeniedError


# ===========================================
# ENUMS
# ===========================================

class ActorRole(str, Enum):
    """Role of the user performing an operation."""
    ADMIN = "admin"
    CUSTOMER_SERVICE = "customer_service"
    COURIER = "courier"
    COMPANY = "company"


class Permission(str, Enum):
    """Operations guarded by role."""
    MODIFY_ANY_SHIPMENT = "modify_any_shipment"
    MODIFY_OWN_SHIPMENT = "modify_own_shipment"
    ASSIGN_COURIERS = "assign_couriers"
    IMPORT_SHIPMENTS = "import_shipments"
    DELETE_SHIPMENTS = "delete_shipments"
    RECONCILE = "reconcile"
    VIEW_ANY_LEDGER = "view_any_ledger"
    VIEW_OWN_LEDGER = "view_own_ledger"
    RECORD_PAYMENTS = "record_payments"
    SETTLE_ACCOUNTS = "settle_accounts"


_BACK_OFFICE: Set[Permission] = set(Permission)

ROLE_PERMISSIONS: Dict[ActorRole, Set[Permission]] = {
    ActorRole.ADMIN: _BACK_OFFICE,
    ActorRole.CUSTOMER_SERVICE: _BACK_OFFICE,
    ActorRole.COURIER: {
        Permission.MODIFY_OWN_SHIPMENT,
        Permission.VIEW_OWN_LEDGER,
    },
    ActorRole.COMPANY: {
        Permission.MODIFY_OWN_SHIPMENT,
        Permission.VIEW_OWN_LEDGER,
    },
}


@dataclass(frozen=True)
class Actor:
    """
    The user performing an operation.

    ``party_id`` is the courier or company id for party users and is
    unused for back-office staff.
    """
    id: uuid.UUID
    role: ActorRole
    party_id: Optional[uuid.UUID] = None

    @property
    def is_back_office(self) -> bool:
        return self.role in (ActorRole.ADMIN, ActorRole.CUSTOMER_SERVICE)


# ===========================================
# PERMISSION HELPER FUNCTIONS
# ===========================================

def has_permission(role: ActorRole, permission: Permission) -> bool:
    """Check if a role has a specific permission."""
    return permission in ROLE_PERMISSIONS.get(role, set())


def require_permission(actor: Actor, permission: Permission) -> None:
    """Raise PermissionDeniedError unless the actor's role grants the permission."""
    if not has_permission(actor.role, permission):
        raise PermissionDeniedError(
            message=f"Role '{actor.role.value}' may not {permission.value.replace('_', ' ')}",
            required_permission=permission.value,
        )


def can_modify_shipment(actor: Actor, shipment: Shipment) -> bool:
    """Whether the actor may change the given shipment."""
    if has_permission(actor.role, Permission.MODIFY_ANY_SHIPMENT):
        return True
    if actor.party_id is None:
        return False
    if actor.role == ActorRole.COURIER:
        return shipment.courier_id == actor.party_id
    if actor.role == ActorRole.COMPANY:
        return shipment.company_id == actor.party_id
    return False


def ensure_can_modify_shipment(actor: Actor, shipment: Shipment) -> None:
    if not can_modify_shipment(actor, shipment):
        raise PermissionDeniedError(
            message=f"Not allowed to modify shipment '{shipment.shipment_code}'",
            required_permission=Permission.MODIFY_OWN_SHIPMENT.value,
        )


def ensure_can_view_ledger(actor: Actor, role: PartyRole, entity_id: uuid.UUID) -> None:
    """Back office sees every ledger; a courier or company only its own."""
    if has_permission(actor.role, Permission.VIEW_ANY_LEDGER):
        return
    own_role = actor.role.value == role.value
    if own_role and actor.party_id == entity_id:
        return
    raise PermissionDeniedError(
        message="Not allowed to view this ledger",
        required_permission=Permission.VIEW_ANY_LEDGER.value,
    )
