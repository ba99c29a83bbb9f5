import logging
import os
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from finance import FeeSchedule, validate_schedule
from models import FinancialSettings

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = ("commission_rate", "gateway_rate", "gateway_fixed_fee", "tax_rate")

DEFAULT_FINANCIAL_SETTINGS: Dict[str, Decimal] = {
    "commission_rate": Decimal(os.getenv("DEFAULT_COMMISSION_RATE", "3.5")),
    "gateway_rate": Decimal(os.getenv("DEFAULT_GATEWAY_RATE", "3.5")),
    "gateway_fixed_fee": Decimal(os.getenv("DEFAULT_GATEWAY_FIXED_FEE", "4.50")),
    "tax_rate": Decimal(os.getenv("DEFAULT_TAX_RATE", "16.0")),
}


def _settings_row(db: Session, organizer_id: Optional[int]) -> Optional[FinancialSettings]:
    query = db.query(FinancialSettings)
    if organizer_id is None:
        return query.filter(FinancialSettings.organizer_id.is_(None)).one_or_none()
    return query.filter(FinancialSettings.organizer_id == organizer_id).one_or_none()


def _row_values(row: FinancialSettings) -> Dict[str, Decimal]:
    return {name: Decimal(getattr(row, name)) for name in SETTINGS_FIELDS}


def get_financial_settings(db: Session, organizer_id: Optional[int] = None) -> Dict[str, Decimal]:
    """Return the effective fee settings for an organizer in percentage form.

    An organizer-specific row wins over the global row; without either the
    platform defaults apply. Every call reads the store again so a caller
    always prices against one consistent snapshot.
    """
    values = dict(DEFAULT_FINANCIAL_SETTINGS)
    global_row = _settings_row(db, None)
    if global_row:
        values.update(_row_values(global_row))
    if organizer_id is not None:
        organizer_row = _settings_row(db, organizer_id)
        if organizer_row:
            values.update(_row_values(organizer_row))
    return values


def schedule_from_settings(values: Mapping[str, Any]) -> FeeSchedule:
    return FeeSchedule.from_percentages(
        commission_rate=values["commission_rate"],
        gateway_rate=values["gateway_rate"],
        gateway_fixed_fee=values["gateway_fixed_fee"],
        tax_rate=values["tax_rate"],
    )


def get_fee_schedule(db: Session, organizer_id: Optional[int] = None) -> FeeSchedule:
    return schedule_from_settings(get_financial_settings(db, organizer_id))


def save_financial_settings(
    db: Session, values: Mapping[str, Any], organizer_id: Optional[int] = None
) -> FinancialSettings:
    """Create or update the settings row for ``organizer_id`` (global when ``None``).

    Raises:
        InvalidScheduleError: If the values describe a schedule with no
            finite gross-up. Nothing is written in that case.
    """
    validate_schedule(schedule_from_settings(values))

    row = _settings_row(db, organizer_id)
    if row is None:
        row = FinancialSettings(organizer_id=organizer_id)
    for name in SETTINGS_FIELDS:
        setattr(row, name, Decimal(str(values[name])))
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info(
        "Saved financial settings for %s",
        f"organizer {organizer_id}" if organizer_id is not None else "platform",
    )
    return row
