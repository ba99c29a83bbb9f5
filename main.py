"""
Event pricing and registration finance service.

Organizers configure cost tiers for their events; the platform works out how
much of every ticket goes to commissions, gateway fees and tax, either by
grossing up the organizer's target net or by splitting a fixed public price.
The same figures drive checkout charges and the per-event financial summary.

To run the app locally:

```
DATABASE_URL=sqlite:///./pricing.db uvicorn main:app --reload
```
"""

import logging
import os
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, constr
from sqlalchemy.orm import Session

from app.i18n import translator_for_request
from audit import log_action
from database import get_db, init_db
from finance import InvalidScheduleError, PricingError, present_tier_pricing
from financial_settings import (
    get_fee_schedule,
    get_financial_settings,
    save_financial_settings,
)
from models import (
    CostTier,
    CostTypeEnum,
    Event,
    EventRegistration,
    Organizer,
    PaymentMethodEnum,
    PaymentStatusEnum,
    RegistrationStatusEnum,
)
from payouts import get_event_financial_summary, list_event_financials
from registrations import (
    RegistrationError,
    TierSoldOutError,
    confirm_platform_payment,
    record_manual_payment,
    start_checkout,
    update_registration_status,
)
from tiers import public_tier_view, save_cost_tier

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

CURRENCY = os.getenv("CURRENCY", "MXN")

# -----------------------------------------------------------------------------
# Application initialisation
# -----------------------------------------------------------------------------

app = FastAPI(title="Event pricing")

origins_env = os.getenv("FRONTEND_ORIGINS", "http://localhost:3000")
origins = [o.strip() for o in origins_env.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    init_db()


@app.exception_handler(PricingError)
async def pricing_error_handler(request: Request, exc: PricingError):
    """Pricing failures are shown inline next to the price field, never retried."""
    _ = translator_for_request(request)
    logger.info("Pricing rejected on %s: %s", request.url.path, exc.detail)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": _(f"pricing.errors.{exc.code}", exc.detail),
            "code": exc.code,
            "field": None if isinstance(exc, InvalidScheduleError) else "price",
        },
    )


@app.exception_handler(RegistrationError)
async def registration_error_handler(request: Request, exc: RegistrationError):
    _ = translator_for_request(request)
    status_code = (
        status.HTTP_409_CONFLICT
        if isinstance(exc, TierSoldOutError)
        else status.HTTP_400_BAD_REQUEST
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": _(f"registration.errors.{exc.code}", exc.detail), "code": exc.code},
    )


def _not_found(request: Request, key: str) -> HTTPException:
    _ = translator_for_request(request)
    return HTTPException(status_code=404, detail=_(f"errors.{key}"))


def _get_or_404(db: Session, model, obj_id: int, request: Request, key: str):
    obj = db.get(model, obj_id)
    if not obj:
        raise _not_found(request, key)
    return obj


# -----------------------------------------------------------------------------
# Schemas
# -----------------------------------------------------------------------------


class FinancialSettingsIn(BaseModel):
    commission_rate: Decimal = Field(ge=0, lt=100)
    gateway_rate: Decimal = Field(ge=0, lt=100)
    gateway_fixed_fee: Decimal = Field(ge=0)
    tax_rate: Decimal = Field(ge=0, lt=100)
    actor_user_id: Optional[str] = None


class FinancialSettingsRead(BaseModel):
    organizer_id: Optional[int] = None
    commission_rate: Decimal
    gateway_rate: Decimal
    gateway_fixed_fee: Decimal
    tax_rate: Decimal


class OrganizerCreate(BaseModel):
    name: constr(strip_whitespace=True, min_length=1, max_length=150)
    contact_email: Optional[str] = None


class OrganizerFinancialData(BaseModel):
    bank_name: constr(strip_whitespace=True, min_length=1, max_length=100)
    account_holder: constr(strip_whitespace=True, min_length=1, max_length=150)
    clabe: constr(strip_whitespace=True, pattern=r"^\d{18}$")


class OrganizerRead(BaseModel):
    id: int
    name: str
    contact_email: Optional[str] = None
    bank_name: Optional[str] = None
    account_holder: Optional[str] = None
    clabe: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PricingPreviewIn(BaseModel):
    price: Decimal
    absorb_fee: bool = False
    organizer_id: Optional[int] = None


class PricingRead(BaseModel):
    net: Decimal
    fee: Decimal
    total: Decimal


class EventCreate(BaseModel):
    organizer_id: int
    name: constr(strip_whitespace=True, min_length=1, max_length=150)
    description: Optional[str] = None
    date: Optional[datetime] = None
    cost_type: CostTypeEnum = CostTypeEnum.FREE


class CostTierIn(BaseModel):
    name: constr(strip_whitespace=True, min_length=1, max_length=100)
    includes: Optional[str] = None
    # Attendee price when absorb_fee is set, organizer's target net otherwise.
    price: Decimal
    absorb_fee: bool = False
    limit: Optional[int] = Field(default=None, ge=1)
    actor_user_id: Optional[str] = None


class CostTierRead(BaseModel):
    id: int
    event_id: int
    name: str
    includes: Optional[str] = None
    price: Decimal
    absorb_fee: bool
    net_price: Optional[Decimal] = None
    fee: Optional[Decimal] = None
    limit: Optional[int] = None
    sold_count: int

    model_config = ConfigDict(from_attributes=True)


class PublicTierRead(BaseModel):
    id: int
    name: str
    includes: Optional[str] = None
    price: Decimal
    event_price: Decimal
    handling_fee: Optional[Decimal] = None
    shows_fee_breakdown: bool
    sold_out: bool


class EventRead(BaseModel):
    id: int
    organizer_id: int
    name: str
    description: Optional[str] = None
    date: Optional[datetime] = None
    cost_type: CostTypeEnum
    currency: str
    active: bool
    cost_tiers: List[CostTierRead] = []

    model_config = ConfigDict(from_attributes=True)


class CheckoutIn(BaseModel):
    user_id: constr(strip_whitespace=True, min_length=1, max_length=128)
    tier_id: Optional[int] = None


class ChargeRead(BaseModel):
    title: str
    quantity: int
    unit_price: Decimal
    currency: str
    metadata: dict


class RegistrationRead(BaseModel):
    id: int
    event_id: int
    user_id: str
    tier_id: Optional[int] = None
    tier_name: Optional[str] = None
    status: RegistrationStatusEnum
    payment_status: Optional[PaymentStatusEnum] = None
    payment_method: Optional[PaymentMethodEnum] = None
    price: Optional[Decimal] = None
    fee_amount: Optional[Decimal] = None
    net_price: Optional[Decimal] = None
    checked_in: bool = False
    checked_in_at: Optional[datetime] = None
    manual_payment_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CheckoutRead(BaseModel):
    registration: RegistrationRead
    charge: Optional[ChargeRead] = None


class ManualPaymentIn(BaseModel):
    fee_amount: Decimal = Field(ge=0)
    price: Optional[Decimal] = Field(default=None, ge=0)
    actor_user_id: Optional[str] = None


class RegistrationStatusIn(BaseModel):
    payment_status: Optional[PaymentStatusEnum] = None
    payment_method: Optional[PaymentMethodEnum] = None
    checked_in: Optional[bool] = None
    actor_user_id: Optional[str] = None


class BreakdownRead(BaseModel):
    gross: Decimal
    net: Decimal
    fee: Decimal


class FinancialSummaryRead(BaseModel):
    total: BreakdownRead
    platform: BreakdownRead
    manual: BreakdownRead
    balance_to_disperse: Decimal


class EventFinancialRead(BaseModel):
    id: int
    name: str
    date: Optional[datetime] = None
    organizer_id: int
    organizer_name: str
    total_collected: Decimal
    amount_dispersed: Decimal
    pending_disbursement: Decimal


# -----------------------------------------------------------------------------
# Financial settings
# -----------------------------------------------------------------------------


def _store_settings(
    db: Session, request: Request, data: FinancialSettingsIn, organizer_id: Optional[int]
):
    values = data.model_dump(exclude={"actor_user_id"})
    save_financial_settings(db, values, organizer_id)
    log_action(
        db,
        request,
        actor_user_id=data.actor_user_id,
        action="financial_settings_update",
        entity_type="financial_settings",
        entity_id=organizer_id,
        payload=values,
    )
    return FinancialSettingsRead(organizer_id=organizer_id, **get_financial_settings(db, organizer_id))


@app.get("/api/financial-settings", response_model=FinancialSettingsRead)
def read_platform_settings(db: Session = Depends(get_db)):
    return FinancialSettingsRead(**get_financial_settings(db))


@app.put("/api/financial-settings", response_model=FinancialSettingsRead)
def update_platform_settings(
    data: FinancialSettingsIn, request: Request, db: Session = Depends(get_db)
):
    return _store_settings(db, request, data, None)


@app.get(
    "/api/organizers/{organizer_id}/financial-settings",
    response_model=FinancialSettingsRead,
)
def read_organizer_settings(organizer_id: int, request: Request, db: Session = Depends(get_db)):
    _get_or_404(db, Organizer, organizer_id, request, "organizer_not_found")
    return FinancialSettingsRead(
        organizer_id=organizer_id, **get_financial_settings(db, organizer_id)
    )


@app.put(
    "/api/organizers/{organizer_id}/financial-settings",
    response_model=FinancialSettingsRead,
)
def update_organizer_settings(
    organizer_id: int,
    data: FinancialSettingsIn,
    request: Request,
    db: Session = Depends(get_db),
):
    _get_or_404(db, Organizer, organizer_id, request, "organizer_not_found")
    return _store_settings(db, request, data, organizer_id)


# -----------------------------------------------------------------------------
# Organizers
# -----------------------------------------------------------------------------


@app.post("/api/organizers", response_model=OrganizerRead, status_code=status.HTTP_201_CREATED)
def create_organizer(data: OrganizerCreate, db: Session = Depends(get_db)):
    organizer = Organizer(**data.model_dump())
    db.add(organizer)
    db.commit()
    db.refresh(organizer)
    return organizer


@app.put("/api/organizers/{organizer_id}/financial-data", response_model=OrganizerRead)
def update_organizer_financial_data(
    organizer_id: int,
    data: OrganizerFinancialData,
    request: Request,
    db: Session = Depends(get_db),
):
    organizer = _get_or_404(db, Organizer, organizer_id, request, "organizer_not_found")
    for key, value in data.model_dump().items():
        setattr(organizer, key, value)
    db.add(organizer)
    db.commit()
    db.refresh(organizer)
    return organizer


# -----------------------------------------------------------------------------
# Pricing
# -----------------------------------------------------------------------------


@app.post("/api/pricing/preview", response_model=PricingRead)
def preview_pricing(data: PricingPreviewIn, db: Session = Depends(get_db)):
    """Net/fee/total for a price being typed into the event form. Nothing is stored."""
    schedule = get_fee_schedule(db, data.organizer_id)
    pricing = present_tier_pricing(data, schedule)
    return PricingRead(net=pricing.net, fee=pricing.fee, total=pricing.total)


# -----------------------------------------------------------------------------
# Events and tiers
# -----------------------------------------------------------------------------


@app.post("/api/events", response_model=EventRead, status_code=status.HTTP_201_CREATED)
def create_event(data: EventCreate, request: Request, db: Session = Depends(get_db)):
    _get_or_404(db, Organizer, data.organizer_id, request, "organizer_not_found")
    event = Event(**data.model_dump(), currency=CURRENCY)
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


@app.get("/api/events/{event_id}", response_model=EventRead)
def read_event(event_id: int, request: Request, db: Session = Depends(get_db)):
    return _get_or_404(db, Event, event_id, request, "event_not_found")


def _store_tier(
    db: Session,
    request: Request,
    event: Event,
    data: CostTierIn,
    tier: Optional[CostTier] = None,
) -> CostTier:
    schedule = get_fee_schedule(db, event.organizer_id)
    tier = save_cost_tier(db, event, data, schedule, tier)
    log_action(
        db,
        request,
        actor_user_id=data.actor_user_id,
        action="cost_tier_save",
        entity_type="cost_tier",
        entity_id=tier.id,
        payload={
            "event_id": event.id,
            "entered_price": data.price,
            "absorb_fee": tier.absorb_fee,
            "price": tier.price,
            "net_price": tier.net_price,
            "fee": tier.fee,
        },
    )
    return tier


@app.post(
    "/api/events/{event_id}/tiers",
    response_model=CostTierRead,
    status_code=status.HTTP_201_CREATED,
)
def create_cost_tier(
    event_id: int, data: CostTierIn, request: Request, db: Session = Depends(get_db)
):
    event = _get_or_404(db, Event, event_id, request, "event_not_found")
    return _store_tier(db, request, event, data)


@app.put("/api/events/{event_id}/tiers/{tier_id}", response_model=CostTierRead)
def update_cost_tier(
    event_id: int,
    tier_id: int,
    data: CostTierIn,
    request: Request,
    db: Session = Depends(get_db),
):
    event = _get_or_404(db, Event, event_id, request, "event_not_found")
    tier = db.get(CostTier, tier_id)
    if not tier or tier.event_id != event.id:
        raise _not_found(request, "tier_not_found")
    return _store_tier(db, request, event, data, tier)


@app.get("/api/events/{event_id}/tiers", response_model=List[PublicTierRead])
def list_public_tiers(event_id: int, request: Request, db: Session = Depends(get_db)):
    event = _get_or_404(db, Event, event_id, request, "event_not_found")
    return [public_tier_view(tier) for tier in event.cost_tiers]


# -----------------------------------------------------------------------------
# Registrations
# -----------------------------------------------------------------------------


@app.post(
    "/api/events/{event_id}/checkout",
    response_model=CheckoutRead,
    status_code=status.HTTP_201_CREATED,
)
def checkout(event_id: int, data: CheckoutIn, request: Request, db: Session = Depends(get_db)):
    event = _get_or_404(db, Event, event_id, request, "event_not_found")
    tier = None
    if data.tier_id is not None:
        tier = db.get(CostTier, data.tier_id)
        if not tier or tier.event_id != event.id:
            raise _not_found(request, "tier_not_found")
    result = start_checkout(db, event, tier, data.user_id)
    return CheckoutRead(
        registration=RegistrationRead.model_validate(result["registration"]),
        charge=result["charge"],
    )


@app.post("/api/registrations/{registration_id}/confirm-payment", response_model=RegistrationRead)
def confirm_payment(registration_id: int, request: Request, db: Session = Depends(get_db)):
    registration = _get_or_404(
        db, EventRegistration, registration_id, request, "registration_not_found"
    )
    return confirm_platform_payment(db, registration)


@app.post("/api/registrations/{registration_id}/manual-payment", response_model=RegistrationRead)
def manual_payment(
    registration_id: int,
    data: ManualPaymentIn,
    request: Request,
    db: Session = Depends(get_db),
):
    registration = _get_or_404(
        db, EventRegistration, registration_id, request, "registration_not_found"
    )
    registration = record_manual_payment(db, registration, data.fee_amount, data.price)
    log_action(
        db,
        request,
        actor_user_id=data.actor_user_id,
        action="manual_payment",
        entity_type="event_registration",
        entity_id=registration.id,
        payload={"fee_amount": data.fee_amount, "price": data.price},
    )
    return registration


@app.patch("/api/registrations/{registration_id}/status", response_model=RegistrationRead)
def patch_registration_status(
    registration_id: int,
    data: RegistrationStatusIn,
    request: Request,
    db: Session = Depends(get_db),
):
    registration = _get_or_404(
        db, EventRegistration, registration_id, request, "registration_not_found"
    )
    registration = update_registration_status(
        db,
        registration,
        payment_status=data.payment_status,
        checked_in=data.checked_in,
        payment_method=data.payment_method,
    )
    if data.checked_in:
        log_action(
            db,
            request,
            actor_user_id=data.actor_user_id,
            action="check_in",
            entity_type="event_registration",
            entity_id=registration.id,
        )
    return registration


# -----------------------------------------------------------------------------
# Reporting
# -----------------------------------------------------------------------------


@app.get("/api/events/{event_id}/financial-summary", response_model=FinancialSummaryRead)
def event_financial_summary(event_id: int, request: Request, db: Session = Depends(get_db)):
    _get_or_404(db, Event, event_id, request, "event_not_found")
    return get_event_financial_summary(db, event_id)


@app.get("/api/admin/events/financials", response_model=List[EventFinancialRead])
def admin_event_financials(db: Session = Depends(get_db)):
    return list_event_financials(db)
