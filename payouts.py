from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from models import (
    Event,
    EventRegistration,
    PaymentMethodEnum,
    PaymentStatusEnum,
    RegistrationStatusEnum,
)

ZERO = Decimal("0.00")


def _empty_breakdown() -> Dict[str, Decimal]:
    return {"gross": ZERO, "net": ZERO, "fee": ZERO}


def _quantize(breakdown: Dict[str, Decimal]) -> Dict[str, Decimal]:
    return {
        key: value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        for key, value in breakdown.items()
    }


def _registration_amounts(reg: EventRegistration):
    amount = reg.price
    fee = reg.fee_amount
    net = reg.net_price
    tier = reg.tier
    if (amount is None or amount == 0) and tier is not None:
        amount = tier.price
        if fee is None:
            fee = tier.fee
        if net is None:
            net = tier.net_price
    amount = Decimal(amount or 0)
    fee = Decimal(fee or 0)
    net = Decimal(net) if net is not None else amount - fee
    return amount, net, fee


def get_event_financial_summary(db: Session, event_id: int) -> Dict[str, Any]:
    """Aggregate paid, confirmed registrations of an event.

    Args:
        db: Database session.
        event_id: Event whose registrations are aggregated.

    Returns:
        A dict with ``total``, ``platform`` and ``manual`` breakdowns
        (``gross``, ``net``, ``fee``) and ``balance_to_disperse``: what the
        platform collected minus its fees, less the fees owed on payments
        the organizer collected by hand.
    """
    summary = {
        "total": _empty_breakdown(),
        "platform": _empty_breakdown(),
        "manual": _empty_breakdown(),
    }
    registrations = (
        db.query(EventRegistration)
        .filter(
            EventRegistration.event_id == event_id,
            EventRegistration.status == RegistrationStatusEnum.CONFIRMED,
            EventRegistration.payment_status == PaymentStatusEnum.PAID,
        )
        .all()
    )
    for reg in registrations:
        amount, net, fee = _registration_amounts(reg)
        channel = "manual" if reg.payment_method == PaymentMethodEnum.MANUAL else "platform"
        for bucket in (summary["total"], summary[channel]):
            bucket["gross"] += amount
            bucket["net"] += net
            bucket["fee"] += fee

    result: Dict[str, Any] = {key: _quantize(value) for key, value in summary.items()}
    platform = result["platform"]
    result["balance_to_disperse"] = (platform["gross"] - platform["fee"]) - result["manual"]["fee"]
    return result


def list_event_financials(db: Session, limit: int = 100) -> List[Dict[str, Any]]:
    """Most recent events with collected and pending-disbursement totals.

    Only paid events are aggregated; free events report zeros.
    """
    events = db.query(Event).order_by(Event.date.desc()).limit(limit).all()
    rows = []
    for event in events:
        total_collected = ZERO
        pending = ZERO
        if event.is_paid:
            summary = get_event_financial_summary(db, event.id)
            total_collected = summary["total"]["gross"]
            pending = summary["balance_to_disperse"]
        rows.append(
            {
                "id": event.id,
                "name": event.name,
                "date": event.date,
                "organizer_id": event.organizer_id,
                "organizer_name": event.organizer_name or str(event.organizer_id),
                "total_collected": total_collected,
                # Disbursements are not tracked yet
                "amount_dispersed": ZERO,
                "pending_disbursement": pending,
            }
        )
    return rows
