from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Protocol

CENTS = Decimal('0.01')
ONE = Decimal('1')
ZERO = Decimal('0')


class PricingError(ValueError):
    """Base class for fee computation failures.

    ``code`` is a stable identifier used to look up a translated message;
    ``detail`` is the English fallback.
    """

    code = "pricing_error"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class InvalidScheduleError(PricingError):
    code = "invalid_schedule"


class NegativeNetAmountError(PricingError):
    code = "price_too_low"


class InvalidInputError(PricingError):
    code = "invalid_amount"


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """Coerce ``value`` to ``Decimal`` going through ``str`` so floats keep their printed value."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidInputError(f"{field} must be a number")
    if not result.is_finite():
        raise InvalidInputError(f"{field} must be a finite number")
    return result


def quantize_amount(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def _non_negative(value: Any, field: str) -> Decimal:
    amount = to_decimal(value, field)
    if amount < 0:
        raise InvalidInputError(f"{field} cannot be negative")
    return amount


@dataclass(frozen=True)
class FeeSchedule:
    """Commission, gateway and tax rates applied to one transaction.

    Rates are decimal fractions (``Decimal('0.035')`` for 3.5%). The fixed
    gateway fee is a currency amount charged per transaction.
    """

    platform_rate: Decimal
    gateway_rate: Decimal
    gateway_fixed_fee: Decimal
    tax_rate: Decimal

    def __post_init__(self) -> None:
        for name in ("platform_rate", "gateway_rate", "gateway_fixed_fee", "tax_rate"):
            try:
                value = to_decimal(getattr(self, name), name)
            except InvalidInputError as exc:
                raise InvalidScheduleError(exc.detail)
            object.__setattr__(self, name, value)

    @classmethod
    def from_percentages(
        cls,
        commission_rate: Any,
        gateway_rate: Any,
        gateway_fixed_fee: Any,
        tax_rate: Any,
    ) -> "FeeSchedule":
        """Build a schedule from the percentage form kept in financial settings."""
        hundred = Decimal('100')
        return cls(
            platform_rate=to_decimal(commission_rate, "commission_rate") / hundred,
            gateway_rate=to_decimal(gateway_rate, "gateway_rate") / hundred,
            gateway_fixed_fee=to_decimal(gateway_fixed_fee, "gateway_fixed_fee"),
            tax_rate=to_decimal(tax_rate, "tax_rate") / hundred,
        )

    @property
    def combined_rate(self) -> Decimal:
        """Share of the gross price taken by percentage fees, tax included."""
        return (self.platform_rate + self.gateway_rate) * (ONE + self.tax_rate)

    @property
    def fixed_fee_with_tax(self) -> Decimal:
        return self.gateway_fixed_fee * (ONE + self.tax_rate)


@dataclass(frozen=True)
class FeeBreakdown:
    net_amount: Decimal
    fee_amount: Decimal

    @property
    def total_amount(self) -> Decimal:
        return self.net_amount + self.fee_amount


@dataclass(frozen=True)
class TierPricing:
    """What the organizer receives, what the fees take and what the attendee pays."""

    net: Decimal
    fee: Decimal
    total: Decimal


class PricedTier(Protocol):
    price: Any
    absorb_fee: Any


def validate_schedule(schedule: FeeSchedule) -> None:
    """Raise ``InvalidScheduleError`` unless the schedule has a finite gross-up."""
    rates = {
        "platform_rate": schedule.platform_rate,
        "gateway_rate": schedule.gateway_rate,
        "tax_rate": schedule.tax_rate,
    }
    for name, rate in rates.items():
        if rate < 0 or rate >= 1:
            raise InvalidScheduleError(f"{name} must be within [0, 1), got {rate}")
    if schedule.gateway_fixed_fee < 0:
        raise InvalidScheduleError("gateway_fixed_fee cannot be negative")
    if schedule.combined_rate >= 1:
        raise InvalidScheduleError(
            f"combined fee rate {schedule.combined_rate} leaves nothing for the organizer"
        )


def calculate_fee_breakdown(total_amount: Any, net_amount: Any) -> FeeBreakdown:
    """Split ``total_amount`` into the organizer's net and the fee portion.

    ``net_amount`` is returned as given and the fee is the exact difference,
    so the breakdown always adds back up to ``total_amount``. A ``net_amount``
    larger than ``total_amount`` produces a negative fee; callers treat that
    as a configuration error.
    """
    total = _non_negative(total_amount, "total_amount")
    net = _non_negative(net_amount, "net_amount")
    return FeeBreakdown(net_amount=net, fee_amount=total - net)


def calculate_gross_up(net_amount: Any, schedule: FeeSchedule) -> Decimal:
    """Return the public price that leaves ``net_amount`` after all fees.

    Solves ``T - (T * r + F * (1 + tax)) = net`` for ``T`` where ``r`` is the
    combined rate and ``F`` the fixed gateway fee.
    """
    net = _non_negative(net_amount, "net_amount")
    validate_schedule(schedule)
    total = (net + schedule.fixed_fee_with_tax) / (ONE - schedule.combined_rate)
    return quantize_amount(total)


def calculate_absorbed_fee(total_amount: Any, schedule: FeeSchedule) -> FeeBreakdown:
    """Split a fixed public price into fees and what is left for the organizer.

    The price is rounded to cents before the split.
    """
    total = quantize_amount(_non_negative(total_amount, "total_amount"))
    validate_schedule(schedule)
    fee = quantize_amount(total * schedule.combined_rate + schedule.fixed_fee_with_tax)
    net = total - fee
    if net < 0:
        raise NegativeNetAmountError(
            f"price {total} does not cover fees of {fee}"
        )
    return FeeBreakdown(net_amount=net, fee_amount=fee)


def present_tier_pricing(tier: PricedTier, schedule: FeeSchedule) -> TierPricing:
    """Derive the net/fee/total triple shown next to a tier's price field.

    With ``absorb_fee`` the entered price is what the attendee pays; otherwise
    it is the organizer's target net and the public price is grossed up.
    Either way the entered price is rounded to cents first.
    """
    price = quantize_amount(_non_negative(tier.price, "price"))
    if tier.absorb_fee:
        total = price
        breakdown = calculate_absorbed_fee(total, schedule)
    else:
        net = price
        total = calculate_gross_up(net, schedule)
        breakdown = calculate_fee_breakdown(total, net)
    return TierPricing(net=breakdown.net_amount, fee=breakdown.fee_amount, total=total)
