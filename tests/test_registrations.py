import os
from decimal import Decimal
from types import SimpleNamespace
import pathlib
import sys

import pytest

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from database import Base, SessionLocal, engine  # noqa: E402
from financial_settings import get_fee_schedule, save_financial_settings  # noqa: E402
from models import (  # noqa: E402
    CostTypeEnum,
    Event,
    EventRegistration,
    Organizer,
    PaymentMethodEnum,
    PaymentStatusEnum,
    RegistrationStatusEnum,
)
from payouts import get_event_financial_summary, list_event_financials  # noqa: E402
from registrations import (  # noqa: E402
    EventClosedError,
    RegistrationError,
    TierSoldOutError,
    confirm_platform_payment,
    record_manual_payment,
    start_checkout,
    update_registration_status,
)
from tiers import save_cost_tier  # noqa: E402


def setup_function(function):
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def _paid_event(db, limit=None):
    organizer = Organizer(name="Pedal MX")
    db.add(organizer)
    db.commit()
    event = Event(organizer_id=organizer.id, name="Ruta Nocturna", cost_type=CostTypeEnum.PAID)
    db.add(event)
    db.commit()
    form = SimpleNamespace(
        name="General", includes=None, price=Decimal("100"), absorb_fee=False, limit=limit
    )
    tier = save_cost_tier(db, event, form, get_fee_schedule(db, organizer.id))
    return event, tier


def test_checkout_charges_stored_price_after_settings_change():
    db = SessionLocal()
    event, tier = _paid_event(db)
    save_financial_settings(
        db,
        {
            "commission_rate": Decimal("10"),
            "gateway_rate": Decimal("3.5"),
            "gateway_fixed_fee": Decimal("4.50"),
            "tax_rate": Decimal("16"),
        },
    )

    result = start_checkout(db, event, tier, "user-1")

    charge = result["charge"]
    registration = result["registration"]
    assert charge["unit_price"] == Decimal("114.52")
    assert charge["quantity"] == 1
    assert charge["currency"] == "MXN"
    assert charge["metadata"]["registration_id"] == registration.id
    assert registration.payment_status == PaymentStatusEnum.PENDING
    assert registration.snapshot_platform_fee == Decimal("14.52")
    assert registration.snapshot_organizer_net == Decimal("100.00")
    assert registration.snapshot_is_fee_absorbed is False
    db.close()


def test_free_event_has_no_charge():
    db = SessionLocal()
    organizer = Organizer(name="Paseo Libre")
    db.add(organizer)
    db.commit()
    event = Event(organizer_id=organizer.id, name="Paseo Dominical")
    db.add(event)
    db.commit()

    result = start_checkout(db, event, None, "user-2")

    assert result["charge"] is None
    assert result["registration"].payment_status == PaymentStatusEnum.PAID
    db.close()


def test_paid_event_requires_tier_and_open_event():
    db = SessionLocal()
    event, tier = _paid_event(db)
    with pytest.raises(RegistrationError):
        start_checkout(db, event, None, "user-3")

    event.active = False
    db.commit()
    with pytest.raises(EventClosedError):
        start_checkout(db, event, tier, "user-3")
    db.close()


def test_sold_out_tier_rejects_checkout():
    db = SessionLocal()
    event, tier = _paid_event(db, limit=1)
    registration = start_checkout(db, event, tier, "user-4")["registration"]
    confirm_platform_payment(db, registration)

    db.refresh(tier)
    assert tier.sold_count == 1
    with pytest.raises(TierSoldOutError):
        start_checkout(db, event, tier, "user-5")
    db.close()


def test_confirming_twice_takes_one_seat():
    db = SessionLocal()
    event, tier = _paid_event(db)
    registration = start_checkout(db, event, tier, "user-6")["registration"]
    confirm_platform_payment(db, registration)
    confirm_platform_payment(db, registration)

    db.refresh(tier)
    assert tier.sold_count == 1
    assert registration.payment_method == PaymentMethodEnum.PLATFORM
    db.close()


def test_manual_payment_and_check_in():
    db = SessionLocal()
    event, tier = _paid_event(db)
    registration = start_checkout(db, event, tier, "user-7")["registration"]

    record_manual_payment(db, registration, Decimal("14.52"), Decimal("110.00"))
    assert registration.payment_status == PaymentStatusEnum.PAID
    assert registration.payment_method == PaymentMethodEnum.MANUAL
    assert registration.price == Decimal("110.00")
    assert registration.manual_payment_at is not None

    update_registration_status(db, registration, checked_in=True)
    assert registration.checked_in is True
    assert registration.checked_in_at is not None
    db.close()


def test_event_financial_summary_splits_platform_and_manual():
    db = SessionLocal()
    event, tier = _paid_event(db)

    for user in ("a", "b"):
        registration = start_checkout(db, event, tier, user)["registration"]
        confirm_platform_payment(db, registration)
    manual = start_checkout(db, event, tier, "c")["registration"]
    record_manual_payment(db, manual, Decimal("14.52"))
    # Pending and cancelled registrations are ignored
    start_checkout(db, event, tier, "d")
    cancelled = start_checkout(db, event, tier, "e")["registration"]
    confirm_platform_payment(db, cancelled)
    cancelled.status = RegistrationStatusEnum.CANCELLED
    db.commit()

    summary = get_event_financial_summary(db, event.id)

    assert summary["total"] == {
        "gross": Decimal("343.56"),
        "net": Decimal("300.00"),
        "fee": Decimal("43.56"),
    }
    assert summary["platform"]["gross"] == Decimal("229.04")
    assert summary["platform"]["fee"] == Decimal("29.04")
    assert summary["manual"]["fee"] == Decimal("14.52")
    assert summary["balance_to_disperse"] == Decimal("185.48")
    db.close()


def test_summary_falls_back_to_tier_values():
    db = SessionLocal()
    event, tier = _paid_event(db)
    db.add(
        EventRegistration(
            event_id=event.id,
            user_id="legacy",
            tier_id=tier.id,
            status=RegistrationStatusEnum.CONFIRMED,
            payment_status=PaymentStatusEnum.PAID,
            payment_method=PaymentMethodEnum.PLATFORM,
        )
    )
    db.commit()

    summary = get_event_financial_summary(db, event.id)

    assert summary["platform"] == {
        "gross": Decimal("114.52"),
        "net": Decimal("100.00"),
        "fee": Decimal("14.52"),
    }
    db.close()


def test_list_event_financials_skips_free_events():
    db = SessionLocal()
    event, tier = _paid_event(db)
    registration = start_checkout(db, event, tier, "user-8")["registration"]
    confirm_platform_payment(db, registration)
    free = Event(organizer_id=event.organizer_id, name="Rodada Libre")
    db.add(free)
    db.commit()

    rows = {row["name"]: row for row in list_event_financials(db)}

    assert rows["Ruta Nocturna"]["total_collected"] == Decimal("114.52")
    assert rows["Ruta Nocturna"]["pending_disbursement"] == Decimal("100.00")
    assert rows["Ruta Nocturna"]["organizer_name"] == "Pedal MX"
    assert rows["Rodada Libre"]["total_collected"] == Decimal("0.00")
    db.close()


def test_second_confirmation_for_last_seat_is_rejected():
    db = SessionLocal()
    event, tier = _paid_event(db, limit=1)
    first = start_checkout(db, event, tier, "user-9")["registration"]
    second = start_checkout(db, event, tier, "user-10")["registration"]

    confirm_platform_payment(db, first)
    with pytest.raises(TierSoldOutError):
        confirm_platform_payment(db, second)

    db.refresh(tier)
    db.refresh(second)
    assert tier.sold_count == 1
    assert second.payment_status == PaymentStatusEnum.PENDING
    db.close()


def test_manual_payment_takes_a_seat_once():
    db = SessionLocal()
    event, tier = _paid_event(db, limit=1)
    first = start_checkout(db, event, tier, "user-11")["registration"]
    second = start_checkout(db, event, tier, "user-12")["registration"]

    record_manual_payment(db, first, Decimal("14.52"))
    record_manual_payment(db, first, Decimal("14.52"))
    db.refresh(tier)
    assert tier.sold_count == 1

    with pytest.raises(TierSoldOutError):
        record_manual_payment(db, second, Decimal("14.52"))
    db.close()


def test_status_update_takes_and_releases_seats():
    db = SessionLocal()
    event, tier = _paid_event(db, limit=1)
    first = start_checkout(db, event, tier, "user-13")["registration"]
    second = start_checkout(db, event, tier, "user-14")["registration"]

    update_registration_status(db, first, payment_status=PaymentStatusEnum.PAID)
    db.refresh(tier)
    assert tier.sold_count == 1
    with pytest.raises(TierSoldOutError):
        update_registration_status(db, second, payment_status=PaymentStatusEnum.PAID)

    update_registration_status(db, first, payment_status=PaymentStatusEnum.REFUNDED)
    db.refresh(tier)
    assert tier.sold_count == 0
    update_registration_status(db, second, payment_status=PaymentStatusEnum.PAID)
    db.refresh(tier)
    assert tier.sold_count == 1
    db.close()
