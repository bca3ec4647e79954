"""Integration tests for complete billing cycles across services."""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest

from src.api.errors import PeriodNotFoundError, PeriodNotReadyError
from src.models import (
    Bill,
    BillStatus,
    ExtraChargeRule,
    PeriodCalculation,
    PeriodStatus,
    UnitCalculation,
)
from src.services.audit_service import AuditService
from src.services.calculation_service import CalculationService
from src.services.period_service import BillingPeriodService
from src.services.permissions import UserRole
from src.services.reading_service import ReadingService

JANUARY = datetime(2025, 1, 1, tzinfo=timezone.utc)
FEBRUARY = datetime(2025, 2, 1, tzinfo=timezone.utc)


def run_period(db_session, condominium, start, values, total_volume, total_amount):
    """Open a period, record readings, close readings, record the receipt.

    Returns the period, ready for calculation (CALCULATING).
    """
    periods = BillingPeriodService(db_session)
    readings = ReadingService(db_session)

    period = periods.create_period(condominium.id, start, actor_id=1)
    for meter, value in values:
        readings.record_reading(period.id, meter.id, Decimal(str(value)), actor_id=2)
    periods.close_readings(period.id, actor_id=1)
    periods.record_receipt(period.id, Decimal(str(total_volume)), Decimal(str(total_amount)), actor_id=1)
    return period


@pytest.fixture
def january_closed(db_session, condominium, two_units, water_rates):
    """January closed with readings 100 and 50."""
    (_, meter_a), (_, meter_b) = two_units
    period = run_period(db_session, condominium, JANUARY, [(meter_a, 100), (meter_b, 50)], 150, 500)
    CalculationService(db_session).calculate_and_save(period.id, actor_id=1)
    return period


class TestBillingCycle:
    """Test the full OPEN → CLOSED cycle against one database."""

    def test_end_to_end_bills(self, db_session, condominium, two_units, january_closed):
        (unit_a, meter_a), (unit_b, meter_b) = two_units
        february = run_period(db_session, condominium, FEBRUARY, [(meter_a, 115), (meter_b, 54)], 25, 50)

        result = CalculationService(db_session).calculate_and_save(february.id, actor_id=1)

        assert result.anomalies == []
        assert result.common_area_consumption == Decimal("6")
        assert result.common_area_cost_per_unit == Decimal("5.75")

        bills = {bill.unit_id: bill for bill in BillingPeriodService(db_session).get_bills(february.id)}
        assert bills[unit_a.id].previous_reading == Decimal("100")
        assert bills[unit_a.id].consumption == Decimal("15")
        assert bills[unit_a.id].individual_cost == Decimal("27.50")
        assert bills[unit_a.id].total_cost == Decimal("33.25")
        assert bills[unit_b.id].individual_cost == Decimal("11.00")
        assert bills[unit_b.id].total_cost == Decimal("16.75")
        assert all(bill.status == BillStatus.PENDING for bill in bills.values())
        assert sum(bill.total_cost for bill in bills.values()) == Decimal("50.00")

        db_session.refresh(february)
        assert february.status == PeriodStatus.CLOSED
        assert february.end_date is not None

    def test_stored_calculation_snapshot(self, db_session, condominium, two_units, january_closed):
        (_, meter_a), (_, meter_b) = two_units
        february = run_period(db_session, condominium, FEBRUARY, [(meter_a, 115), (meter_b, 54)], 25, 50)
        CalculationService(db_session).calculate_and_save(february.id)

        period_calc, unit_calcs = CalculationService(db_session).get_stored_calculation(february.id)

        assert period_calc.cost_per_cubic_meter == Decimal("1.5")
        assert period_calc.total_individual_consumption == Decimal("19")
        assert period_calc.total_common_area_amount == Decimal("11.50")
        assert period_calc.anomalies == []
        assert [calc.resident_name for calc in unit_calcs] == ["Ana Souza", "Bruno Lima"]
        assert [calc.total_amount for calc in unit_calcs] == [Decimal("33.25"), Decimal("16.75")]

    def test_calculation_requires_calculating_status(self, db_session, condominium, two_units):
        period = BillingPeriodService(db_session).create_period(condominium.id, JANUARY)

        with pytest.raises(PeriodNotReadyError) as exc_info:
            CalculationService(db_session).calculate_period_bills(period.id)

        assert "Period status must be CALCULATING, current: OPEN" in exc_info.value.errors
        assert "Total volume from receipt is required and must be positive" in exc_info.value.errors

    def test_unknown_period(self, db_session):
        with pytest.raises(PeriodNotFoundError):
            CalculationService(db_session).calculate_and_save(404)

    def test_second_calculation_rejected_after_close(
        self, db_session, condominium, two_units, january_closed
    ):
        with pytest.raises(PeriodNotReadyError, match="current: CLOSED"):
            CalculationService(db_session).calculate_and_save(january_closed.id)

        assert db_session.query(Bill).filter(Bill.period_id == january_closed.id).count() == 2

    def test_failed_pre_flight_check_blocks_save(
        self, db_session, condominium, block, two_units, make_unit, january_closed
    ):
        (_, meter_a), (_, meter_b) = two_units
        february = run_period(db_session, condominium, FEBRUARY, [(meter_a, 90), (meter_b, 54)], 25, 50)
        reading_a = ReadingService(db_session).get_period_readings(february.id)[meter_a.id]
        reading_a.is_anomalous = True
        reading_a.is_validated = False
        db_session.commit()
        # Unit joins after readings were closed
        make_unit(block, "103", resident_name="Carla Dias")

        with pytest.raises(PeriodNotReadyError) as exc_info:
            CalculationService(db_session).calculate_and_save(february.id, actor_id=1)

        assert exc_info.value.errors == [
            "Missing readings for 1 units: A-103",
            "1 anomalous readings need validation",
        ]
        db_session.refresh(february)
        assert february.status == PeriodStatus.CALCULATING
        assert february.end_date is None
        assert db_session.query(Bill).filter(Bill.period_id == february.id).count() == 0
        assert db_session.query(PeriodCalculation).filter(PeriodCalculation.period_id == february.id).count() == 0

    def test_extra_charge_rules_applied(self, db_session, condominium, two_units, january_closed):
        (unit_a, meter_a), (unit_b, meter_b) = two_units
        db_session.add_all(
            [
                ExtraChargeRule(
                    condominium_id=condominium.id,
                    description="Reserve fund",
                    amount=Decimal("10"),
                    charge_type="percentage",
                ),
                ExtraChargeRule(
                    condominium_id=condominium.id,
                    unit_id=unit_b.id,
                    description="Late fee",
                    amount=Decimal("2"),
                    charge_type="fixed",
                ),
                ExtraChargeRule(
                    condominium_id=condominium.id,
                    description="Retired",
                    amount=Decimal("99"),
                    charge_type="fixed",
                    is_active=False,
                ),
            ]
        )
        db_session.commit()
        february = run_period(db_session, condominium, FEBRUARY, [(meter_a, 115), (meter_b, 54)], 25, 50)

        result = CalculationService(db_session).calculate_and_save(february.id)

        a, b = result.bills
        # 33.25 * 1.10
        assert a.total_cost == Decimal("36.575")
        # 16.75 * 1.10 + 2
        assert b.total_cost == Decimal("20.425")
        assert any(anomaly.startswith("Total calculation mismatch") for anomaly in result.anomalies)
        stored = {bill.unit_id: bill for bill in BillingPeriodService(db_session).get_bills(february.id)}
        assert [c["description"] for c in stored[unit_b.id].extra_charges] == ["Reserve fund", "Late fee"]

    def test_failed_persistence_leaves_period_calculating(
        self, db_session, condominium, two_units, january_closed
    ):
        (_, meter_a), (_, meter_b) = two_units
        february = run_period(db_session, condominium, FEBRUARY, [(meter_a, 115), (meter_b, 54)], 25, 50)

        with patch(
            "src.services.period_service.AuditService.log",
            side_effect=RuntimeError("database is locked"),
        ):
            with pytest.raises(RuntimeError, match="database is locked"):
                CalculationService(db_session).calculate_and_save(february.id)

        db_session.refresh(february)
        assert february.status == PeriodStatus.CALCULATING
        assert db_session.query(Bill).filter(Bill.period_id == february.id).count() == 0

        # Retrying converges on one bill per unit
        CalculationService(db_session).calculate_and_save(february.id)
        assert db_session.query(Bill).filter(Bill.period_id == february.id).count() == 2


class TestReopenAndRecalculate:
    """Test correction of a closed period."""

    def test_reopen_then_recalculate_replaces_bills(
        self, db_session, condominium, two_units, january_closed
    ):
        (unit_a, meter_a), (_, meter_b) = two_units
        february = run_period(db_session, condominium, FEBRUARY, [(meter_a, 115), (meter_b, 54)], 25, 50)
        calculations = CalculationService(db_session)
        periods = BillingPeriodService(db_session)
        calculations.calculate_and_save(february.id)

        periods.reopen_period(february.id, UserRole.SUPER_ADMIN, actor_id=1)
        assert db_session.query(Bill).filter(Bill.period_id == february.id).count() == 0
        assert db_session.query(UnitCalculation).filter(UnitCalculation.period_id == february.id).count() == 0

        periods.record_receipt(february.id, Decimal("25"), Decimal("60"), actor_id=1)
        result = calculations.calculate_and_save(february.id)

        bills = periods.get_bills(february.id)
        assert len(bills) == 2
        assert len({bill.unit_id for bill in bills}) == 2
        assert result.common_area_cost_per_unit == Decimal("10.75")
        assert sum(bill.total_cost for bill in bills) == Decimal("60.00")
        assert db_session.query(PeriodCalculation).filter(PeriodCalculation.period_id == february.id).count() == 1

    def test_recalculating_older_period_ignores_later_history(
        self, db_session, condominium, two_units, january_closed
    ):
        """A reopened January keeps measuring from zero, not from February's readings."""
        (_, meter_a), (_, meter_b) = two_units
        february = run_period(db_session, condominium, FEBRUARY, [(meter_a, 115), (meter_b, 54)], 25, 50)
        CalculationService(db_session).calculate_and_save(february.id)
        periods = BillingPeriodService(db_session)

        periods.reopen_period(january_closed.id, UserRole.SUPER_ADMIN)
        periods.record_receipt(january_closed.id, Decimal("150"), Decimal("500"))
        result = CalculationService(db_session).calculate_period_bills(january_closed.id)

        assert [bill.previous_reading for bill in result.bills] == [Decimal("0"), Decimal("0")]
        assert [bill.consumption for bill in result.bills] == [Decimal("100"), Decimal("50")]


class TestMissingReadings:
    """Test billing when a unit's reading is absent at calculation time."""

    def test_unit_without_reading_is_skipped(self, db_session, condominium, block, two_units, make_unit, water_rates):
        (_, meter_a), (_, meter_b) = two_units
        period = run_period(db_session, condominium, JANUARY, [(meter_a, 15), (meter_b, 4)], 25, 50)
        # Unit joins after readings were closed
        make_unit(block, "103", resident_name="Carla Dias")

        result = CalculationService(db_session).calculate_period_bills(period.id)

        assert [bill.unit_name for bill in result.bills] == ["101", "102"]
        assert result.anomalies == ["Missing reading for unit 103 in block A"]
        assert [bill.total_cost for bill in result.bills] == [Decimal("33.25"), Decimal("16.75")]


class TestAuditTrail:
    """Test audit entries written across a cycle."""

    def test_period_actions_recorded_in_order(self, db_session, condominium, two_units, january_closed):
        periods = BillingPeriodService(db_session)
        periods.reopen_period(january_closed.id, UserRole.SUPER_ADMIN, actor_id=99)

        entries = AuditService.get_entries(db_session, "period", january_closed.id)

        assert [entry.action for entry in entries] == [
            "create",
            "close_readings",
            "record_receipt",
            "calculate",
            "reopen",
        ]
        assert entries[-1].actor_id == 99
        assert entries[3].changes["bill_count"] == 2
