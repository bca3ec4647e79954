"""Unit tests for per-unit consumption and individual cost."""

from decimal import Decimal

from src.services.consumption_service import (
    apply_minimum_consumption,
    calculate_consumption,
    calculate_individual_cost,
    calculate_unit_consumption,
    round2,
)
from src.services.rate_service import WaterRates


class TestRound2:
    """Tests for half-up rounding."""

    def test_rounds_half_up(self):
        assert round2(Decimal("2.345")) == Decimal("2.35")
        assert round2(Decimal("2.344")) == Decimal("2.34")

    def test_keeps_two_places(self):
        assert str(round2(Decimal("11"))) == "11.00"


class TestCalculateConsumption:
    """Tests for the raw delta and rollover policy."""

    def test_positive_delta(self):
        consumption, replaced = calculate_consumption(Decimal("115"), Decimal("100"))

        assert consumption == Decimal("15")
        assert replaced is False

    def test_missing_previous_counts_from_zero(self):
        consumption, replaced = calculate_consumption(Decimal("42.5"), None)

        assert consumption == Decimal("42.5")
        assert replaced is False

    def test_negative_delta_uses_current_value(self):
        """previous=500, current=10 bills 10, not -490."""
        consumption, replaced = calculate_consumption(Decimal("10"), Decimal("500"))

        assert consumption == Decimal("10")
        assert replaced is True

    def test_zero_delta(self):
        consumption, replaced = calculate_consumption(Decimal("300"), Decimal("300"))

        assert consumption == Decimal("0")
        assert replaced is False


class TestMinimumConsumption:
    """Tests for the minimum consumption floor."""

    def test_clamps_up_to_minimum(self):
        rates = WaterRates(basic_rate=Decimal("1.5"), minimum_consumption=Decimal("2.0"))

        assert apply_minimum_consumption(Decimal("0.5"), rates) == Decimal("2.0")

    def test_above_minimum_unchanged(self):
        rates = WaterRates(basic_rate=Decimal("1.5"), minimum_consumption=Decimal("2.0"))

        assert apply_minimum_consumption(Decimal("7"), rates) == Decimal("7")

    def test_no_minimum_configured(self):
        rates = WaterRates(basic_rate=Decimal("1.5"))

        assert apply_minimum_consumption(Decimal("0.5"), rates) == Decimal("0.5")


class TestIndividualCost:
    """Tests for consumption * rate + fixed charge."""

    def test_with_fixed_charge(self):
        rates = WaterRates(basic_rate=Decimal("1.5"), fixed_charge=Decimal("5.0"))

        assert calculate_individual_cost(Decimal("15"), rates) == Decimal("27.50")
        assert calculate_individual_cost(Decimal("4"), rates) == Decimal("11.00")

    def test_without_fixed_charge(self):
        rates = WaterRates(basic_rate=Decimal("2.25"))

        assert calculate_individual_cost(Decimal("3"), rates) == Decimal("6.75")

    def test_rounded_once_half_up(self):
        rates = WaterRates(basic_rate=Decimal("0.333"))

        # 1.5 * 0.333 = 0.4995
        assert calculate_individual_cost(Decimal("1.5"), rates) == Decimal("0.50")


class TestCalculateUnitConsumption:
    """Tests for the combined per-unit policy."""

    def test_minimum_floor_applies_to_cost(self):
        rates = WaterRates(basic_rate=Decimal("1.5"), minimum_consumption=Decimal("2.0"))

        result = calculate_unit_consumption(Decimal("100.5"), Decimal("100"), rates)

        assert result.consumption == Decimal("2.0")
        assert result.individual_cost == Decimal("3.00")
        assert result.meter_replaced is False

    def test_rollover_flagged(self):
        rates = WaterRates(basic_rate=Decimal("1.5"))

        result = calculate_unit_consumption(Decimal("10"), Decimal("500"), rates)

        assert result.consumption == Decimal("10")
        assert result.individual_cost == Decimal("15.00")
        assert result.meter_replaced is True
