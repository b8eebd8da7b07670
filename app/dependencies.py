"""
ShipLedger - FastAPI Dependencies

Shared dependencies for the acting user and notification delivery.

The acting user is established by the gateway in front of this service and
forwarded in request headers:
- X-Actor-Id: user id
- X-Actor-Role: admin, customer_service, courier or company
- X-Actor-Party: courier or company id the user acts for (couriers and companies)
"""

import uuid
from typing import Optional

from fastapi import Header, HTTPException, status

from app.services.notification_service import NotificationDispatcher, get_notification_dispatcher
from app.utils.permissions import Actor, ActorRole


async def get_current_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
    x_actor_party: Optional[str] = Header(None),
) -> Actor:
    """
    Build the acting user from forwarded identity headers.

    Raises:
        HTTPException: 401 if the identity is missing or malformed
    """
    if not x_actor_id or not x_actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    try:
        actor_id = uuid.UUID(x_actor_id)
        role = ActorRole(x_actor_role.strip().lower())
        party_id = uuid.UUID(x_actor_party) if x_actor_party else None
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid actor identity",
        )

    if role in (ActorRole.COURIER, ActorRole.COMPANY) and party_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"X-Actor-Party is required for role '{role.value}'",
        )

    return Actor(id=actor_id, role=role, party_id=party_id)


def get_notifier() -> NotificationDispatcher:
    """Notification dispatcher shared by the process."""
    return get_notification_dispatcher()
