"""Period billing calculation engine.

Splits one master water receipt into per-unit bills:

1. Resolve rates once for the period
2. Per billable unit: consumption and individual cost (rollover and minimum policy)
3. Common-area consumption and cost are the non-negative remainders of the receipt
4. Common-area cost is split evenly across billed units
5. Extra charges are applied cumulatively on top of each unit's running total
6. The billed total is reconciled against the receipt amount

Missing readings, meter rollovers and reconciliation mismatches are reported
as anomalies; they never abort the pass.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping, NamedTuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.api.errors import AppError, PeriodNotFoundError, PeriodNotReadyError
from src.models.billing_period import BillingPeriod, PeriodStatus
from src.models.calculation import PeriodCalculation, UnitCalculation
from src.models.extra_charge import ChargeType, ExtraChargeRule
from src.models.reading import Reading
from src.services.config import get_settings
from src.services.consumption_service import ZERO, calculate_unit_consumption, round2
from src.services.period_service import BillingPeriodService
from src.services.rate_service import RateService, WaterRates
from src.services.reading_service import BillableUnit, ReadingService

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def _display(value: Decimal) -> str:
    """Render a quantity without trailing zeros (500.000 -> 500)."""
    value = Decimal(value)
    if value == value.to_integral_value():
        return str(value.quantize(Decimal("1")))
    return format(value.normalize(), "f")


class ExtraCharge(NamedTuple):
    """Surcharge applied to one bill after the common-area cost."""

    description: str
    amount: Decimal
    type: str

    def to_dict(self) -> dict[str, Any]:
        return {"description": self.description, "amount": float(self.amount), "type": self.type}


class UnitInput(NamedTuple):
    """Data the engine needs for one billable unit."""

    unit: BillableUnit
    current_value: Decimal | None
    previous_value: Decimal | None


@dataclass
class BillData:
    """Calculated bill for one unit (not yet persisted)."""

    unit_id: int
    unit_name: str
    block_name: str
    meter_id: int
    current_reading: Decimal
    previous_reading: Decimal
    consumption: Decimal
    individual_cost: Decimal
    resident_name: str | None = None
    common_area_cost: Decimal = ZERO
    total_cost: Decimal = ZERO
    extra_charges: list[ExtraCharge] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "unitId": self.unit_id,
            "unitName": self.unit_name,
            "blockName": self.block_name,
            "residentName": self.resident_name,
            "currentReading": float(self.current_reading),
            "previousReading": float(self.previous_reading),
            "consumption": float(self.consumption),
            "individualCost": float(self.individual_cost),
            "commonAreaCost": float(self.common_area_cost),
            "totalCost": float(self.total_cost),
        }
        if self.extra_charges:
            data["extraCharges"] = [charge.to_dict() for charge in self.extra_charges]
        return data


@dataclass
class CalculationResult:
    """Outcome of one calculation pass. anomalies is always present."""

    total_individual_consumption: Decimal
    common_area_consumption: Decimal
    common_area_cost_per_unit: Decimal
    bills: list[BillData]
    anomalies: list[str]
    basic_rate: Decimal | None = None

    @property
    def total_individual_cost(self) -> Decimal:
        return sum((bill.individual_cost for bill in self.bills), ZERO)

    @property
    def common_area_total_cost(self) -> Decimal:
        return self.common_area_cost_per_unit * len(self.bills)

    @property
    def total_billed(self) -> Decimal:
        return sum((bill.total_cost for bill in self.bills), ZERO)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalIndividualConsumption": float(self.total_individual_consumption),
            "commonAreaConsumption": float(self.common_area_consumption),
            "commonAreaCostPerUnit": float(self.common_area_cost_per_unit),
            "bills": [bill.to_dict() for bill in self.bills],
            "anomalies": list(self.anomalies),
        }


@dataclass
class ValidationResult:
    """Outcome of the pre-flight check."""

    is_valid: bool
    errors: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {"isValid": self.is_valid, "errors": list(self.errors)}


@dataclass
class CalculationSummary:
    """Period overview with readings progress and an optional bill preview."""

    period_info: dict[str, Any]
    readings_summary: dict[str, int]
    calculation_preview: CalculationResult | None = None


def apply_extra_charges(base_total: Decimal, charges: list[ExtraCharge]) -> Decimal:
    """Add extra charges in order; percentages apply to the running total."""
    total = base_total
    for charge in charges:
        if charge.type == ChargeType.PERCENTAGE.value:
            total += total * charge.amount / HUNDRED
        else:
            total += charge.amount
    return total


def allocate_bills(
    units: list[UnitInput],
    total_volume: Decimal,
    total_amount: Decimal,
    rates: WaterRates,
    extra_charges: Mapping[int, list[ExtraCharge]] | None = None,
    tolerance: Decimal = Decimal("0.01"),
) -> CalculationResult:
    """Split a master receipt into per-unit bills.

    Pure function: no storage access, inputs are never mutated.

    Args:
        units: Billable units with their current and previous reading values
        total_volume: Declared receipt volume (m³)
        total_amount: Declared receipt amount
        rates: Rates for this pass
        extra_charges: Ordered extra charges per unit id
        tolerance: Allowed |billed total - receipt amount| before flagging

    Returns:
        CalculationResult with bills and anomalies
    """
    total_volume = Decimal(str(total_volume))
    total_amount = Decimal(str(total_amount))
    extra_charges = extra_charges or {}

    anomalies: list[str] = []
    bills: list[BillData] = []
    total_individual_consumption = ZERO

    for item in units:
        unit = item.unit
        if item.current_value is None:
            anomalies.append(f"Missing reading for unit {unit.unit_name} in block {unit.block_name}")
            continue

        current = Decimal(str(item.current_value))
        previous = Decimal(str(item.previous_value)) if item.previous_value is not None else ZERO
        figures = calculate_unit_consumption(current, previous, rates)
        if figures.meter_replaced:
            anomalies.append(
                f"Meter replacement detected for unit {unit.unit_name}: "
                f"previous={_display(previous)}, current={_display(current)}"
            )

        total_individual_consumption += figures.consumption
        bills.append(
            BillData(
                unit_id=unit.unit_id,
                unit_name=unit.unit_name,
                block_name=unit.block_name,
                resident_name=unit.resident_name,
                meter_id=unit.meter_id,
                current_reading=current,
                previous_reading=previous,
                consumption=figures.consumption,
                individual_cost=figures.individual_cost,
            )
        )

    common_area_consumption = max(ZERO, total_volume - total_individual_consumption)
    total_individual_cost = sum((bill.individual_cost for bill in bills), ZERO)
    common_area_total_cost = max(ZERO, total_amount - total_individual_cost)
    common_area_cost_per_unit = common_area_total_cost / len(bills) if bills else ZERO

    for bill in bills:
        bill.common_area_cost = common_area_cost_per_unit
        charges = list(extra_charges.get(bill.unit_id, []))
        bill.extra_charges = charges
        bill.total_cost = apply_extra_charges(bill.individual_cost + bill.common_area_cost, charges)

    calculated_total = sum((bill.total_cost for bill in bills), ZERO)
    difference = abs(calculated_total - total_amount)
    if difference > tolerance:
        anomalies.append(
            f"Total calculation mismatch: calculated={round2(calculated_total)}, "
            f"receipt={round2(total_amount)}, difference={round2(difference)}"
        )

    return CalculationResult(
        total_individual_consumption=total_individual_consumption,
        common_area_consumption=common_area_consumption,
        common_area_cost_per_unit=common_area_cost_per_unit,
        bills=bills,
        anomalies=anomalies,
        basic_rate=rates.basic_rate,
    )


class CalculationService:
    """Runs calculation passes, pre-flight checks and summaries for billing periods.

    Reads through ReadingService and RateService; persistence of a result is
    delegated to BillingPeriodService.replace_bills.
    """

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session
        self.readings = ReadingService(db_session)

    def _get_period(self, period_id: int) -> BillingPeriod:
        period = self.db.get(BillingPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(period_id)
        return period

    @staticmethod
    def _readiness_errors(period: BillingPeriod) -> list[str]:
        errors = []
        if period.status != PeriodStatus.CALCULATING:
            errors.append(f"Period status must be CALCULATING, current: {period.status.value}")
        if not period.total_volume or period.total_volume <= 0:
            errors.append("Total volume from receipt is required and must be positive")
        if not period.total_amount or period.total_amount <= 0:
            errors.append("Total amount from receipt is required and must be positive")
        return errors

    def get_extra_charges(self, condominium_id: int, unit_ids: list[int]) -> dict[int, list[ExtraCharge]]:
        """Active extra charges per unit, in rule id order.

        A rule without unit_id applies to every unit of the condominium.
        """
        rules = (
            self.db.query(ExtraChargeRule)
            .filter(
                ExtraChargeRule.condominium_id == condominium_id,
                ExtraChargeRule.is_active == True,  # noqa: E712
            )
            .order_by(ExtraChargeRule.id.asc())
            .all()
        )
        charges: dict[int, list[ExtraCharge]] = {unit_id: [] for unit_id in unit_ids}
        for rule in rules:
            charge = ExtraCharge(
                description=rule.description,
                amount=Decimal(str(rule.amount)),
                type=ChargeType(rule.charge_type).value,
            )
            targets = unit_ids if rule.unit_id is None else [rule.unit_id]
            for unit_id in targets:
                if unit_id in charges:
                    charges[unit_id].append(charge)
        return charges

    def calculate_period_bills(self, period_id: int, rates: WaterRates | None = None) -> CalculationResult:
        """Calculate bills for a period without persisting them.

        Args:
            period_id: Period in CALCULATING status with receipt totals recorded
            rates: Rates to apply; resolved from system config when omitted

        Returns:
            CalculationResult

        Raises:
            PeriodNotFoundError: If the period does not exist
            PeriodNotReadyError: If status or receipt totals fail the preconditions
        """
        period = self._get_period(period_id)
        errors = self._readiness_errors(period)
        if errors:
            raise PeriodNotReadyError(errors)

        if rates is None:
            rates = RateService(self.db).get_water_rates()

        units = self.readings.get_billable_units(period.condominium_id)
        current = self.readings.get_period_readings(period.id)
        previous = self.readings.get_previous_readings(
            period.condominium_id,
            [unit.meter_id for unit in units],
            exclude_period_id=period.id,
            started_before=period.start_date,
        )

        inputs = [
            UnitInput(
                unit=unit,
                current_value=current[unit.meter_id].value if unit.meter_id in current else None,
                previous_value=previous[unit.meter_id].value if unit.meter_id in previous else None,
            )
            for unit in units
        ]

        logger.info(
            "Calculating period %d: %d billable units, receipt volume=%s amount=%s",
            period.id,
            len(units),
            period.total_volume,
            period.total_amount,
        )

        result = allocate_bills(
            inputs,
            total_volume=period.total_volume,
            total_amount=period.total_amount,
            rates=rates,
            extra_charges=self.get_extra_charges(period.condominium_id, [u.unit_id for u in units]),
            tolerance=get_settings().reconciliation_tolerance,
        )

        for anomaly in result.anomalies:
            logger.warning("Period %d: %s", period.id, anomaly)
        logger.info(
            "Calculated period %d: %d bills, common area %s m³, %s per unit",
            period.id,
            len(result.bills),
            result.common_area_consumption,
            round2(result.common_area_cost_per_unit),
        )
        return result

    def calculate_and_save(
        self,
        period_id: int,
        rates: WaterRates | None = None,
        actor_id: int | None = None,
    ) -> CalculationResult:
        """Validate, calculate and atomically replace the period's bills, closing it.

        Raises:
            PeriodNotFoundError: If the period does not exist
            PeriodNotReadyError: If the pre-flight check fails; nothing is written
        """
        self._get_period(period_id)
        validation = self.validate_period_for_calculation(period_id)
        if not validation.is_valid:
            logger.warning("Period %d not ready for calculation: %s", period_id, validation.errors)
            raise PeriodNotReadyError(validation.errors)

        result = self.calculate_period_bills(period_id, rates=rates)
        BillingPeriodService(self.db).replace_bills(period_id, result, actor_id=actor_id)
        return result

    def validate_period_for_calculation(self, period_id: int) -> ValidationResult:
        """Pre-flight check before a real calculation. Never mutates anything.

        Checks status, receipt totals, reading completeness for every billable
        unit and unvalidated anomalous readings.
        """
        period = self.db.get(BillingPeriod, period_id)
        if period is None:
            return ValidationResult(is_valid=False, errors=["Period not found"])

        errors = self._readiness_errors(period)

        missing = self.readings.get_missing_units(period)
        if missing:
            errors.append(
                f"Missing readings for {len(missing)} units: "
                + ", ".join(unit.label for unit in missing)
            )

        anomalous = (
            self.db.query(Reading)
            .filter(
                Reading.period_id == period.id,
                Reading.is_anomalous == True,  # noqa: E712
                Reading.is_validated == False,  # noqa: E712
            )
            .count()
        )
        if anomalous:
            errors.append(f"{anomalous} anomalous readings need validation")

        return ValidationResult(is_valid=not errors, errors=errors)

    def get_calculation_summary(self, period_id: int) -> CalculationSummary:
        """Period info, readings progress and (when possible) a calculation preview.

        Raises:
            PeriodNotFoundError: If the period does not exist
        """
        period = self._get_period(period_id)
        readings = list(self.readings.get_period_readings(period.id).values())
        total_units = self.readings.count_active_units(period.condominium_id)

        readings_summary = {
            "total": len(readings),
            "total_units": total_units,
            "completed": len(readings),
            "pending": total_units - len(readings),
            "validated": sum(1 for r in readings if r.is_validated),
            "anomalous": sum(1 for r in readings if r.is_anomalous),
        }

        preview = None
        if period.status == PeriodStatus.CALCULATING and period.total_volume and period.total_amount:
            try:
                preview = self.calculate_period_bills(period.id)
            except (AppError, SQLAlchemyError):
                logger.exception("Calculation preview failed for period %d", period.id)

        condominium = period.condominium
        return CalculationSummary(
            period_info={
                "id": period.id,
                "status": period.status.value,
                "start_date": period.start_date,
                "end_date": period.end_date,
                "total_volume": period.total_volume,
                "total_amount": period.total_amount,
                "condominium": {
                    "id": condominium.id,
                    "name": condominium.name,
                    "address": condominium.address,
                },
            },
            readings_summary=readings_summary,
            calculation_preview=preview,
        )

    def get_stored_calculation(self, period_id: int) -> tuple[PeriodCalculation | None, list[UnitCalculation]]:
        """Stored calculation rows written when the period was closed."""
        self._get_period(period_id)
        period_calculation = (
            self.db.query(PeriodCalculation).filter(PeriodCalculation.period_id == period_id).first()
        )
        unit_calculations = (
            self.db.query(UnitCalculation)
            .filter(UnitCalculation.period_id == period_id)
            .order_by(UnitCalculation.id.asc())
            .all()
        )
        return period_calculation, unit_calculations


__all__ = [
    "CalculationService",
    "CalculationResult",
    "CalculationSummary",
    "ValidationResult",
    "BillData",
    "ExtraCharge",
    "UnitInput",
    "allocate_bills",
    "apply_extra_charges",
]
