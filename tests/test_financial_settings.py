import os
from decimal import Decimal
import pathlib
import sys

import pytest

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from database import Base, SessionLocal, engine  # noqa: E402
from finance import FeeSchedule, InvalidScheduleError  # noqa: E402
from financial_settings import (  # noqa: E402
    DEFAULT_FINANCIAL_SETTINGS,
    get_fee_schedule,
    get_financial_settings,
    save_financial_settings,
)
from models import FinancialSettings, Organizer  # noqa: E402


def setup_function(function):
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def _settings(commission, gateway, fixed, tax):
    return {
        "commission_rate": Decimal(commission),
        "gateway_rate": Decimal(gateway),
        "gateway_fixed_fee": Decimal(fixed),
        "tax_rate": Decimal(tax),
    }


def test_defaults_apply_without_rows():
    db = SessionLocal()
    assert get_financial_settings(db) == DEFAULT_FINANCIAL_SETTINGS
    assert get_fee_schedule(db) == FeeSchedule(
        Decimal("0.035"), Decimal("0.035"), Decimal("4.50"), Decimal("0.16")
    )
    db.close()


def test_global_row_overrides_defaults_and_organizer_row_overrides_global():
    db = SessionLocal()
    organizer = Organizer(name="Rodada Norte")
    other = Organizer(name="Club Ciclista Sur")
    db.add_all([organizer, other])
    db.commit()

    save_financial_settings(db, _settings("5", "3.5", "3.00", "16"))
    save_financial_settings(db, _settings("2", "3.5", "3.00", "16"), organizer.id)

    assert get_fee_schedule(db).platform_rate == Decimal("0.05")
    assert get_fee_schedule(db, organizer.id).platform_rate == Decimal("0.02")
    # Organizers without their own row use the global one
    assert get_fee_schedule(db, other.id).platform_rate == Decimal("0.05")
    db.close()


def test_saving_twice_updates_the_same_row():
    db = SessionLocal()
    save_financial_settings(db, _settings("5", "3.5", "3.00", "16"))
    save_financial_settings(db, _settings("6", "3.5", "3.00", "16"))

    rows = db.query(FinancialSettings).all()
    assert len(rows) == 1
    assert Decimal(rows[0].commission_rate) == Decimal("6")
    db.close()


def test_degenerate_settings_are_not_written():
    db = SessionLocal()
    with pytest.raises(InvalidScheduleError):
        save_financial_settings(db, _settings("50", "50", "3.00", "16"))
    assert db.query(FinancialSettings).count() == 0
    assert get_financial_settings(db) == DEFAULT_FINANCIAL_SETTINGS
    db.close()
