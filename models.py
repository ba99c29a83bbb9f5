from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from database import Base


class CostTypeEnum(str, PyEnum):
    FREE = "free"
    PAID = "paid"


class RegistrationStatusEnum(str, PyEnum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentStatusEnum(str, PyEnum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class PaymentMethodEnum(str, PyEnum):
    PLATFORM = "platform"
    MANUAL = "manual"


class Organizer(Base):
    __tablename__ = "organizers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    contact_email = Column(String(120))
    # Payout bank details
    bank_name = Column(String(100))
    account_holder = Column(String(150))
    clabe = Column(String(18))
    created_at = Column(DateTime, default=datetime.utcnow)

    events = relationship("Event", back_populates="organizer")
    financial_settings = relationship("FinancialSettings", back_populates="organizer", uselist=False)


class FinancialSettings(Base):
    """Fee parameters in percentage form. ``organizer_id`` NULL is the global row."""

    __tablename__ = "financial_settings"

    id = Column(Integer, primary_key=True)
    organizer_id = Column(Integer, ForeignKey("organizers.id"), unique=True, nullable=True)
    commission_rate = Column(Numeric(6, 3), nullable=False)
    gateway_rate = Column(Numeric(6, 3), nullable=False)
    gateway_fixed_fee = Column(Numeric(10, 2), nullable=False)
    tax_rate = Column(Numeric(6, 3), nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organizer = relationship("Organizer", back_populates="financial_settings")


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True)
    organizer_id = Column(Integer, ForeignKey("organizers.id"), nullable=False)
    name = Column(String(150), nullable=False)
    description = Column(Text)
    date = Column(DateTime)
    cost_type = Column(Enum(CostTypeEnum), default=CostTypeEnum.FREE, nullable=False)
    currency = Column(String(3), default="MXN", nullable=False)
    active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    organizer = relationship("Organizer", back_populates="events")
    cost_tiers = relationship(
        "CostTier", back_populates="event", order_by="CostTier.id"
    )
    registrations = relationship("EventRegistration", back_populates="event")

    @property
    def organizer_name(self):
        return self.organizer.name if self.organizer else None

    @property
    def is_paid(self) -> bool:
        return self.cost_type == CostTypeEnum.PAID


class CostTier(Base):
    __tablename__ = "cost_tiers"

    id = Column(Integer, primary_key=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    name = Column(String(100), nullable=False)
    includes = Column(Text)
    # Amount charged to the attendee, whichever way the fee is handled.
    price = Column(Numeric(10, 2), nullable=False)
    absorb_fee = Column(Boolean, default=False, nullable=False)
    net_price = Column(Numeric(10, 2))
    fee = Column(Numeric(10, 2))
    limit = Column(Integer)
    sold_count = Column(Integer, default=0, nullable=False)

    event = relationship("Event", back_populates="cost_tiers")

    @property
    def sold_out(self) -> bool:
        return self.limit is not None and (self.sold_count or 0) >= self.limit


class EventRegistration(Base):
    __tablename__ = "event_registrations"

    id = Column(Integer, primary_key=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(String(128), nullable=False)
    tier_id = Column(Integer, ForeignKey("cost_tiers.id"))
    tier_name = Column(String(100))
    registration_date = Column(DateTime, default=datetime.utcnow)
    status = Column(
        Enum(RegistrationStatusEnum),
        default=RegistrationStatusEnum.CONFIRMED,
        nullable=False,
    )
    payment_status = Column(Enum(PaymentStatusEnum), default=PaymentStatusEnum.PENDING)
    payment_method = Column(Enum(PaymentMethodEnum))
    price = Column(Numeric(10, 2))
    fee_amount = Column(Numeric(10, 2))
    net_price = Column(Numeric(10, 2))
    manual_payment_at = Column(DateTime)
    checked_in = Column(Boolean, default=False)
    checked_in_at = Column(DateTime)

    # Financial snapshot taken when the registration was priced
    snapshot_amount_paid = Column(Numeric(10, 2))
    snapshot_platform_fee = Column(Numeric(10, 2))
    snapshot_organizer_net = Column(Numeric(10, 2))
    snapshot_is_fee_absorbed = Column(Boolean)
    snapshot_calculated_at = Column(DateTime)

    event = relationship("Event", back_populates="registrations")
    tier = relationship("CostTier")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True)
    actor_user_id = Column(String(128))
    action = Column(String(100), nullable=False)
    entity_type = Column(String(100), nullable=False)
    entity_id = Column(Integer)
    payload_json = Column(Text)
    ip = Column(String(50))
    user_agent = Column(String(255))
    created_at = Column(DateTime, default=datetime.utcnow)
