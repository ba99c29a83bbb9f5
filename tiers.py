import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from finance import (
    FeeSchedule,
    present_tier_pricing,
    quantize_amount,
)
from models import CostTier, Event

logger = logging.getLogger(__name__)


def save_cost_tier(
    db: Session,
    event: Event,
    form: Any,
    schedule: FeeSchedule,
    tier: Optional[CostTier] = None,
) -> CostTier:
    """Price an organizer's tier entry and persist it.

    ``form.price`` is what the organizer typed: the attendee price when
    ``form.absorb_fee`` is set, the target net otherwise. The stored
    ``price`` is always the attendee price.

    Raises:
        PricingError: If the entry cannot be priced with ``schedule``.
            The tier is left untouched.
    """
    pricing = present_tier_pricing(form, schedule)

    if tier is None:
        tier = CostTier(event_id=event.id, sold_count=0)
    tier.name = form.name
    tier.includes = getattr(form, "includes", None)
    tier.limit = getattr(form, "limit", None)
    tier.absorb_fee = bool(form.absorb_fee)
    tier.price = pricing.total
    tier.net_price = pricing.net
    tier.fee = pricing.fee
    db.add(tier)
    db.commit()
    db.refresh(tier)
    logger.info(
        "Saved tier %s for event %s: total=%s net=%s fee=%s absorbed=%s",
        tier.id,
        event.id,
        pricing.total,
        pricing.net,
        pricing.fee,
        tier.absorb_fee,
    )
    return tier


def public_tier_view(tier: CostTier) -> Dict[str, Any]:
    """Attendee-facing price display for a stored tier.

    The "registration + digital handling" split is shown only when the
    attendee pays a positive fee on top of the organizer's price.
    """
    price = Decimal(tier.price)
    if tier.fee:
        fee = Decimal(tier.fee)
    elif tier.net_price:
        fee = price - Decimal(tier.net_price)
    else:
        fee = Decimal("0")
    event_price = Decimal(tier.net_price) if tier.net_price else price
    shows_fee = fee > 0 and not tier.absorb_fee
    return {
        "id": tier.id,
        "name": tier.name,
        "includes": tier.includes,
        "price": quantize_amount(price),
        "event_price": quantize_amount(event_price) if shows_fee else quantize_amount(price),
        "handling_fee": quantize_amount(fee) if shows_fee else None,
        "shows_fee_breakdown": shows_fee,
        "sold_out": tier.sold_out,
    }
