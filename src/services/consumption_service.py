"""Per-unit consumption and individual cost calculation."""

from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple

from src.services.rate_service import WaterRates

CENT = Decimal("0.01")
ZERO = Decimal("0")


def round2(value: Decimal) -> Decimal:
    """Round half-up to 2 decimal places."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class UnitConsumption(NamedTuple):
    """Consumption figures for one unit in one period."""

    consumption: Decimal
    individual_cost: Decimal
    meter_replaced: bool


def calculate_consumption(current_value: Decimal, previous_value: Decimal | None) -> tuple[Decimal, bool]:
    """Calculate consumption from two meter readings.

    A negative delta is treated as a meter replacement or rollover: the
    current value itself becomes the consumption.

    Args:
        current_value: Reading for the period being billed
        previous_value: Reading from the previous closed period (None = 0)

    Returns:
        Tuple of (consumption, meter_replaced)
    """
    current = Decimal(str(current_value))
    previous = Decimal(str(previous_value)) if previous_value is not None else ZERO

    consumption = current - previous
    if consumption < 0:
        return current, True
    return consumption, False


def apply_minimum_consumption(consumption: Decimal, rates: WaterRates) -> Decimal:
    """Clamp consumption up to the configured minimum, if any."""
    minimum = rates.minimum_consumption
    if minimum and consumption < minimum:
        return minimum
    return consumption


def calculate_individual_cost(consumption: Decimal, rates: WaterRates) -> Decimal:
    """Individual cost = consumption * basic_rate + fixed_charge, rounded once."""
    cost = consumption * rates.basic_rate
    if rates.fixed_charge:
        cost += rates.fixed_charge
    return round2(cost)


def calculate_unit_consumption(
    current_value: Decimal,
    previous_value: Decimal | None,
    rates: WaterRates,
) -> UnitConsumption:
    """Run the full per-unit policy: rollover, minimum floor, individual cost.

    Args:
        current_value: Reading for the period being billed
        previous_value: Reading from the previous closed period (None = 0)
        rates: Rates resolved for this calculation pass

    Returns:
        UnitConsumption with billed consumption and individual cost
    """
    consumption, meter_replaced = calculate_consumption(current_value, previous_value)
    consumption = apply_minimum_consumption(consumption, rates)

    return UnitConsumption(
        consumption=consumption,
        individual_cost=calculate_individual_cost(consumption, rates),
        meter_replaced=meter_replaced,
    )


__all__ = [
    "UnitConsumption",
    "round2",
    "calculate_consumption",
    "apply_minimum_consumption",
    "calculate_individual_cost",
    "calculate_unit_consumption",
]
