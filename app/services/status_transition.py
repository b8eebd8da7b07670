"""
ShipLedger - Status Transition Engine

Pure computation of the financial fields a shipment takes on when it moves
to a new status. The status configuration snapshot is passed in by the
caller; nothing here reads ambient state.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping

from app.models.shipment_status import StatusConfig

ZERO = Decimal("0")


def to_money(value: Any) -> Decimal:
    """Coerce a possibly missing numeric input to Decimal; missing means zero."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


@dataclass(frozen=True)
class TransitionResult:
    """Financial fields to persist on the shipment."""
    paid_amount: Decimal = ZERO
    collected_amount: Decimal = ZERO
    courier_commission: Decimal = ZERO
    company_commission: Decimal = ZERO


def transition(
    status: str,
    total_amount: Any,
    collected_amount_input: Any,
    commission_rate: Any,
    configs: Mapping[str, StatusConfig],
    company_commission_rate: Any = None,
    is_custom_return: bool = False,
) -> TransitionResult:
    """
    Compute the financial effect of moving a shipment to ``status``.

    Rules:
    - unknown status: all zeros
    - paid = total on full collection, the collected input on partial
      collection, else zero; collected always mirrors paid
    - a shipment flagged as a custom return refunds when it reaches a
      delivered status: paid = -abs(total)
    - courier commission = the courier's rate when the status affects the
      courier balance; company commission likewise for the company balance

    Args:
        status: Target status id
        total_amount: Shipment total
        collected_amount_input: Amount the courier reports collecting
        commission_rate: Courier's per-shipment commission
        configs: Status snapshot keyed by status id
        company_commission_rate: Company's commission for the shipment's governorate
        is_custom_return: Whether the shipment itself is marked as a custom return

    Returns:
        TransitionResult with the values to persist
    """
    config = configs.get(status)
    if config is None:
        return TransitionResult()

    total = to_money(total_amount)

    if config.requires_full_collection:
        paid = total
    elif config.requires_partial_collection:
        paid = to_money(collected_amount_input)
    else:
        paid = ZERO

    if is_custom_return and config.is_delivered_status:
        paid = -abs(total)

    return TransitionResult(
        paid_amount=paid,
        collected_amount=paid,
        courier_commission=to_money(commission_rate) if config.affects_courier_balance else ZERO,
        company_commission=to_money(company_commission_rate) if config.affects_company_balance else ZERO,
    )
