import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from models import (
    CostTier,
    Event,
    EventRegistration,
    PaymentMethodEnum,
    PaymentStatusEnum,
    RegistrationStatusEnum,
)

logger = logging.getLogger(__name__)


class RegistrationError(ValueError):
    """Raised when a registration cannot be created or updated."""

    code = "registration_error"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class TierSoldOutError(RegistrationError):
    code = "tier_sold_out"


class EventClosedError(RegistrationError):
    code = "event_closed"


def _amount(value) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


def start_checkout(
    db: Session, event: Event, tier: Optional[CostTier], user_id: str
) -> Dict[str, Any]:
    """Create a pending registration and build the charge for the payment collaborator.

    The charged amount is the tier's stored ``price``. Fees are never
    recomputed at this point, so a settings change after the tier was saved
    does not alter what the attendee pays.

    Returns:
        ``{"registration": EventRegistration, "charge": dict | None}``. The
        charge is ``None`` for free events.

    Raises:
        EventClosedError: If the event is inactive.
        TierSoldOutError: If the tier has reached its seat limit.
        RegistrationError: If a paid event is booked without a tier of that event.
    """
    if not event.active:
        raise EventClosedError("Event is not accepting registrations")

    registration = EventRegistration(
        event_id=event.id,
        user_id=user_id,
        status=RegistrationStatusEnum.CONFIRMED,
        registration_date=datetime.utcnow(),
    )

    if not event.is_paid:
        registration.payment_status = PaymentStatusEnum.PAID
        registration.price = Decimal("0.00")
        db.add(registration)
        db.commit()
        db.refresh(registration)
        return {"registration": registration, "charge": None}

    if tier is None or tier.event_id != event.id:
        raise RegistrationError("A cost tier of this event is required")
    if tier.sold_out:
        raise TierSoldOutError(f"Tier '{tier.name}' is sold out")

    now = datetime.utcnow()
    price = Decimal(tier.price)
    fee = _amount(tier.fee)
    net = _amount(tier.net_price)
    if fee is None:
        fee = price - net if net is not None else Decimal("0.00")
    if net is None:
        net = price - fee

    registration.tier_id = tier.id
    registration.tier_name = tier.name
    registration.payment_status = PaymentStatusEnum.PENDING
    registration.price = price
    registration.fee_amount = fee
    registration.net_price = net
    registration.snapshot_amount_paid = price
    registration.snapshot_platform_fee = fee
    registration.snapshot_organizer_net = net
    registration.snapshot_is_fee_absorbed = bool(tier.absorb_fee)
    registration.snapshot_calculated_at = now
    db.add(registration)
    db.commit()
    db.refresh(registration)

    charge = {
        "title": f"{event.name} - {tier.name}",
        "quantity": 1,
        "unit_price": price,
        "currency": event.currency,
        "metadata": {
            "event_id": event.id,
            "user_id": user_id,
            "registration_id": registration.id,
        },
    }
    logger.info(
        "Checkout started for registration %s (event %s, tier %s): %s %s",
        registration.id,
        event.id,
        tier.id,
        price,
        event.currency,
    )
    return {"registration": registration, "charge": charge}


def _take_seat(registration: EventRegistration) -> None:
    """Count a seat on the registration's tier as the registration becomes paid.

    Raises:
        TierSoldOutError: If the tier's seats are already taken.
    """
    tier = registration.tier
    if tier is None:
        return
    if tier.sold_out:
        raise TierSoldOutError(f"Tier '{tier.name}' is sold out")
    tier.sold_count = (tier.sold_count or 0) + 1


def _release_seat(registration: EventRegistration) -> None:
    tier = registration.tier
    if tier is not None and tier.sold_count:
        tier.sold_count -= 1


def confirm_platform_payment(db: Session, registration: EventRegistration) -> EventRegistration:
    """Mark a registration paid through the platform and take a seat from its tier.

    Two pending checkouts may race for the last seat; the later confirmation
    raises ``TierSoldOutError`` and the registration stays pending.
    """
    if registration.payment_status == PaymentStatusEnum.PAID:
        return registration
    if registration.status != RegistrationStatusEnum.CONFIRMED:
        raise RegistrationError("Cancelled registrations cannot be paid")
    _take_seat(registration)
    registration.payment_status = PaymentStatusEnum.PAID
    registration.payment_method = PaymentMethodEnum.PLATFORM
    db.add(registration)
    db.commit()
    db.refresh(registration)
    logger.info("Registration %s paid via platform", registration.id)
    return registration


def record_manual_payment(
    db: Session,
    registration: EventRegistration,
    fee_amount: Decimal,
    price: Optional[Decimal] = None,
) -> EventRegistration:
    """Record a payment collected by the organizer outside the platform."""
    if registration.payment_status != PaymentStatusEnum.PAID:
        _take_seat(registration)
    registration.payment_status = PaymentStatusEnum.PAID
    registration.payment_method = PaymentMethodEnum.MANUAL
    registration.fee_amount = fee_amount
    registration.manual_payment_at = datetime.utcnow()
    if price is not None:
        registration.price = price
    db.add(registration)
    db.commit()
    db.refresh(registration)
    logger.info(
        "Manual payment recorded for registration %s (fee %s)", registration.id, fee_amount
    )
    return registration


def update_registration_status(
    db: Session,
    registration: EventRegistration,
    *,
    payment_status: Optional[PaymentStatusEnum] = None,
    checked_in: Optional[bool] = None,
    payment_method: Optional[PaymentMethodEnum] = None,
) -> EventRegistration:
    """Apply the given fields only; checking in stamps ``checked_in_at``.

    Moving into or out of ``paid`` takes or releases the tier seat.
    """
    if payment_status is not None:
        was_paid = registration.payment_status == PaymentStatusEnum.PAID
        if payment_status == PaymentStatusEnum.PAID and not was_paid:
            _take_seat(registration)
        elif payment_status != PaymentStatusEnum.PAID and was_paid:
            _release_seat(registration)
        registration.payment_status = payment_status
    if payment_method is not None:
        registration.payment_method = payment_method
    if checked_in is not None:
        registration.checked_in = checked_in
        if checked_in:
            registration.checked_in_at = datetime.utcnow()
    db.add(registration)
    db.commit()
    db.refresh(registration)
    return registration
