"""Service for meter readings and the unit/meter data a calculation pass reads."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import NamedTuple

from sqlalchemy.orm import Session

from src.api.errors import InvalidTransitionError, PeriodNotFoundError, ReadingValidationError
from src.models.billing_period import BillingPeriod, PeriodStatus
from src.models.condominium import Block
from src.models.meter import Meter, MeterType
from src.models.reading import Reading
from src.models.unit import Resident, Unit
from src.services.audit_service import AuditService

logger = logging.getLogger(__name__)


class BillableUnit(NamedTuple):
    """Active unit together with its primary active water meter."""

    unit_id: int
    unit_name: str
    block_name: str
    resident_name: str | None
    meter_id: int

    @property
    def label(self) -> str:
        """Block-unit label used in validation messages."""
        return f"{self.block_name}-{self.unit_name}"


class ReadingService:
    """Reads unit, meter and reading data for a condominium and manages reading entry.

    Query methods are read-only. Mutating methods commit their own transaction.
    """

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session

    def get_billable_units(self, condominium_id: int) -> list[BillableUnit]:
        """Get active units that have an active water meter.

        The primary meter is the unit's active WATER meter with the lowest id.
        Units without one are not billable and are left out.

        Args:
            condominium_id: Condominium to read

        Returns:
            BillableUnit list ordered by block name, unit name
        """
        rows = (
            self.db.query(Unit.id, Unit.name, Block.name, Resident.name)
            .join(Block, Block.id == Unit.block_id)
            .outerjoin(Resident, Resident.id == Unit.resident_id)
            .filter(Block.condominium_id == condominium_id, Unit.is_active == True)  # noqa: E712
            .order_by(Block.name.asc(), Unit.name.asc(), Unit.id.asc())
            .all()
        )
        unit_ids = [row[0] for row in rows]
        if not unit_ids:
            return []

        meters = (
            self.db.query(Meter.unit_id, Meter.id)
            .filter(
                Meter.unit_id.in_(unit_ids),
                Meter.is_active == True,  # noqa: E712
                Meter.type == MeterType.WATER,
            )
            .order_by(Meter.id.asc())
            .all()
        )
        primary_meter: dict[int, int] = {}
        for unit_id, meter_id in meters:
            primary_meter.setdefault(unit_id, meter_id)

        return [
            BillableUnit(
                unit_id=unit_id,
                unit_name=unit_name,
                block_name=block_name,
                resident_name=resident_name,
                meter_id=primary_meter[unit_id],
            )
            for unit_id, unit_name, block_name, resident_name in rows
            if unit_id in primary_meter
        ]

    def count_active_units(self, condominium_id: int) -> int:
        """Count active units of a condominium (with or without meters)."""
        return (
            self.db.query(Unit)
            .join(Block, Block.id == Unit.block_id)
            .filter(Block.condominium_id == condominium_id, Unit.is_active == True)  # noqa: E712
            .count()
        )

    def get_period_readings(self, period_id: int) -> dict[int, Reading]:
        """Get readings of a period keyed by meter id."""
        readings = self.db.query(Reading).filter(Reading.period_id == period_id).all()
        return {reading.meter_id: reading for reading in readings}

    def get_previous_readings(
        self,
        condominium_id: int,
        meter_ids: list[int],
        exclude_period_id: int | None = None,
        started_before: datetime | None = None,
    ) -> dict[int, Reading]:
        """Get the most recent reading per meter from CLOSED periods of a condominium.

        Args:
            condominium_id: Condominium whose periods are searched
            meter_ids: Meters to look up
            exclude_period_id: Period to ignore (the one being calculated)
            started_before: Only consider periods that started before this moment

        Returns a dict mapping meter_id -> Reading; meters without history are absent.
        """
        if not meter_ids:
            return {}

        query = (
            self.db.query(Reading)
            .join(BillingPeriod, BillingPeriod.id == Reading.period_id)
            .filter(
                Reading.meter_id.in_(meter_ids),
                BillingPeriod.condominium_id == condominium_id,
                BillingPeriod.status == PeriodStatus.CLOSED,
            )
        )
        if exclude_period_id is not None:
            query = query.filter(BillingPeriod.id != exclude_period_id)
        if started_before is not None:
            query = query.filter(BillingPeriod.start_date < started_before)

        rows = query.order_by(
            BillingPeriod.start_date.desc(),
            Reading.created_at.desc(),
            Reading.id.desc(),
        ).all()

        latest_by_meter: dict[int, Reading] = {}
        for reading in rows:
            latest_by_meter.setdefault(reading.meter_id, reading)
        return latest_by_meter

    def get_missing_units(self, period: BillingPeriod) -> list[BillableUnit]:
        """Billable units of the period's condominium without a reading in the period."""
        readings = self.get_period_readings(period.id)
        return [
            unit
            for unit in self.get_billable_units(period.condominium_id)
            if unit.meter_id not in readings
        ]

    def _get_open_period(self, period_id: int) -> BillingPeriod:
        period = self.db.get(BillingPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(period_id)
        if period.status != PeriodStatus.OPEN:
            raise InvalidTransitionError("Period is not open for readings")
        return period

    def record_reading(
        self,
        period_id: int,
        meter_id: int,
        value: Decimal,
        notes: str | None = None,
        is_anomalous: bool | None = None,
        is_validated: bool = True,
        actor_id: int | None = None,
    ) -> Reading:
        """Create the reading of a meter for an OPEN period.

        When is_anomalous is not given, a value lower than the meter's last
        closed-period reading (possible meter replacement) is flagged anomalous.

        Args:
            period_id: Period receiving the reading
            meter_id: Meter that was read
            value: Cumulative meter value (m³)
            notes: Optional remarks
            is_anomalous: Explicit anomaly flag (None = auto-detect)
            is_validated: Validation flag (readings are validated by default)
            actor_id: User who entered the reading (for audit logging)

        Returns:
            Created Reading

        Raises:
            PeriodNotFoundError: If the period does not exist
            InvalidTransitionError: If the period is not OPEN
            ReadingValidationError: If the value is negative, the meter is unusable,
                or the meter already has a reading in this period
        """
        period = self._get_open_period(period_id)

        value = Decimal(str(value))
        if value < 0:
            raise ReadingValidationError("Reading value must not be negative")

        meter = self.db.get(Meter, meter_id)
        if meter is None or not meter.is_active:
            raise ReadingValidationError(f"Meter {meter_id} not found or inactive")
        if meter.unit.block.condominium_id != period.condominium_id:
            raise ReadingValidationError("Meter not found in this condominium")

        existing = (
            self.db.query(Reading)
            .filter(Reading.meter_id == meter_id, Reading.period_id == period_id)
            .first()
        )
        if existing:
            raise ReadingValidationError("Reading already exists for this meter in this period")

        previous = self.get_previous_readings(
            period.condominium_id, [meter_id], exclude_period_id=period_id
        ).get(meter_id)
        if is_anomalous is None:
            is_anomalous = previous is not None and value < previous.value

        reading = Reading(
            meter_id=meter_id,
            period_id=period_id,
            value=value,
            notes=notes,
            is_anomalous=is_anomalous,
            is_validated=is_validated,
        )
        self.db.add(reading)
        self.db.flush()

        AuditService.log(
            self.db,
            "reading",
            reading.id,
            "create",
            actor_id,
            {
                "period_id": period_id,
                "meter_id": meter_id,
                "value": str(value),
                "previous_value": str(previous.value) if previous else None,
            },
        )
        self.db.commit()

        if is_anomalous:
            logger.warning(
                "Anomalous reading recorded: period=%d, meter=%d, value=%s, previous=%s",
                period_id,
                meter_id,
                value,
                previous.value if previous else None,
            )
        else:
            logger.info("Recorded reading: period=%d, meter=%d, value=%s", period_id, meter_id, value)
        return reading

    def update_reading(
        self,
        reading_id: int,
        value: Decimal | None = None,
        notes: str | None = None,
        actor_id: int | None = None,
    ) -> Reading:
        """Correct a reading while its period is still OPEN.

        Raises:
            ReadingValidationError: If the reading does not exist or value is negative
            InvalidTransitionError: If the owning period is not OPEN
        """
        reading = self.db.get(Reading, reading_id)
        if reading is None:
            raise ReadingValidationError(f"Reading {reading_id} not found")
        self._get_open_period(reading.period_id)

        changes = {}
        if value is not None:
            value = Decimal(str(value))
            if value < 0:
                raise ReadingValidationError("Reading value must not be negative")
            changes["value"] = {"old": str(reading.value), "new": str(value)}
            reading.value = value
        if notes is not None:
            reading.notes = notes

        if changes:
            AuditService.log(self.db, "reading", reading.id, "update", actor_id, changes)
        self.db.commit()
        return reading

    def validate_reading(self, reading_id: int, actor_id: int | None = None) -> Reading:
        """Mark one reading as validated.

        Raises:
            ReadingValidationError: If the reading does not exist
            InvalidTransitionError: If the owning period is CLOSED
        """
        reading = self.db.get(Reading, reading_id)
        if reading is None:
            raise ReadingValidationError(f"Reading {reading_id} not found")
        if reading.period.status == PeriodStatus.CLOSED:
            raise InvalidTransitionError("Readings of a closed period are immutable")

        reading.is_validated = True
        AuditService.log(self.db, "reading", reading.id, "validate", actor_id)
        self.db.commit()
        return reading

    def validate_all_readings(self, period_id: int, actor_id: int | None = None) -> int:
        """Validate every unvalidated reading of a period.

        Returns:
            Number of readings validated
        """
        period = self.db.get(BillingPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(period_id)
        if period.status == PeriodStatus.CLOSED:
            raise InvalidTransitionError("Readings of a closed period are immutable")

        count = (
            self.db.query(Reading)
            .filter(Reading.period_id == period_id, Reading.is_validated == False)  # noqa: E712
            .update({Reading.is_validated: True}, synchronize_session="fetch")
        )
        if count:
            AuditService.log(self.db, "period", period_id, "validate_readings", actor_id, {"count": count})
        self.db.commit()

        logger.info("Validated %d readings in period %d", count, period_id)
        return count


__all__ = ["ReadingService", "BillableUnit"]
