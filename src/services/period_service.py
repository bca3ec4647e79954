"""Billing period lifecycle service: status transitions, bill replacement and reopen."""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from src.api.errors import (
    InvalidTransitionError,
    PeriodNotFoundError,
    PeriodNotReadyError,
    ReopenError,
)
from src.models.bill import Bill, BillStatus
from src.models.billing_period import BillingPeriod, PeriodStatus
from src.models.calculation import PeriodCalculation, UnitCalculation
from src.models.condominium import Condominium
from src.models.reading import Reading
from src.services.audit_service import AuditService
from src.services.permissions import UserRole, ensure_can_reopen
from src.services.reading_service import ReadingService

logger = logging.getLogger(__name__)


class BillingPeriodService:
    """Service for billing period database operations.

    Every mutating method runs in a single transaction: it either commits all
    of its changes (including the audit entry) or rolls back and re-raises.
    """

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session

    def get_by_id(self, period_id: int) -> BillingPeriod | None:
        """Get billing period by ID.

        Args:
            period_id: Period ID to fetch

        Returns:
            BillingPeriod if found, None otherwise
        """
        return self.db.query(BillingPeriod).filter(BillingPeriod.id == period_id).first()

    def list_periods(self, condominium_id: int, limit: int = 10) -> list[BillingPeriod]:
        """List periods of a condominium, newest first.

        Args:
            condominium_id: Condominium to list
            limit: Maximum number of periods to return

        Returns:
            List of BillingPeriod objects
        """
        return (
            self.db.query(BillingPeriod)
            .filter(BillingPeriod.condominium_id == condominium_id)
            .order_by(BillingPeriod.start_date.desc(), BillingPeriod.id.desc())
            .limit(limit)
            .all()
        )

    def get_bills(self, period_id: int) -> list[Bill]:
        """Bills of a period ordered by unit id."""
        return self.db.query(Bill).filter(Bill.period_id == period_id).order_by(Bill.unit_id.asc()).all()

    def _lock_period(self, period_id: int) -> BillingPeriod:
        """Load a period with a row lock for the current transaction."""
        period = (
            self.db.query(BillingPeriod)
            .filter(BillingPeriod.id == period_id)
            .with_for_update()
            .first()
        )
        if period is None:
            raise PeriodNotFoundError(period_id)
        return period

    def _delete_outputs(self, period_id: int) -> int:
        """Delete bills and stored calculations of a period. Returns deleted bill count."""
        self.db.query(UnitCalculation).filter(UnitCalculation.period_id == period_id).delete()
        self.db.query(PeriodCalculation).filter(PeriodCalculation.period_id == period_id).delete()
        return self.db.query(Bill).filter(Bill.period_id == period_id).delete()

    def create_period(
        self,
        condominium_id: int,
        start_date: datetime | None = None,
        actor_id: int | None = None,
    ) -> BillingPeriod:
        """Start a new OPEN period for a condominium.

        Raises:
            InvalidTransitionError: If the condominium is missing, inactive,
                or already has an OPEN period
        """
        condominium = self.db.get(Condominium, condominium_id)
        if condominium is None or not condominium.is_active:
            raise InvalidTransitionError("Condominium not found or inactive")

        open_period = (
            self.db.query(BillingPeriod)
            .filter(
                BillingPeriod.condominium_id == condominium_id,
                BillingPeriod.status == PeriodStatus.OPEN,
            )
            .first()
        )
        if open_period:
            raise InvalidTransitionError("Condominium already has an open period")

        period = BillingPeriod(
            condominium_id=condominium_id,
            start_date=start_date or datetime.now(timezone.utc),
            status=PeriodStatus.OPEN,
        )
        self.db.add(period)
        self.db.flush()

        AuditService.log(self.db, "period", period.id, "create", actor_id)
        self.db.commit()

        logger.info("Created billing period %d for condominium %d", period.id, condominium_id)
        return period

    def close_readings(self, period_id: int, actor_id: int | None = None) -> BillingPeriod:
        """Close reading collection: OPEN → PENDING_RECEIPT.

        Every billable unit must have a reading and every reading must be validated.

        Raises:
            PeriodNotFoundError: If the period does not exist
            InvalidTransitionError: If the period is not OPEN or readings are incomplete
        """
        try:
            period = self._lock_period(period_id)
            if period.status != PeriodStatus.OPEN:
                raise InvalidTransitionError(
                    f"Cannot close readings: period status is {period.status.value}"
                )

            missing = ReadingService(self.db).get_missing_units(period)
            if missing:
                raise InvalidTransitionError(
                    f"Cannot close period: missing readings for {len(missing)} units: "
                    + ", ".join(unit.label for unit in missing)
                )

            unvalidated = (
                self.db.query(Reading)
                .filter(Reading.period_id == period_id, Reading.is_validated == False)  # noqa: E712
                .count()
            )
            if unvalidated:
                raise InvalidTransitionError(
                    f"Cannot close period: {unvalidated} readings are not validated"
                )

            period.status = PeriodStatus.PENDING_RECEIPT
            AuditService.log(
                self.db, "period", period_id, "close_readings", actor_id,
                {"status": PeriodStatus.PENDING_RECEIPT.value},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Period %d readings closed, waiting for receipt", period_id)
        return period

    def record_receipt(
        self,
        period_id: int,
        total_volume: Decimal,
        total_amount: Decimal,
        actor_id: int | None = None,
    ) -> BillingPeriod:
        """Record the master receipt: PENDING_RECEIPT → CALCULATING.

        Raises:
            PeriodNotFoundError: If the period does not exist
            InvalidTransitionError: If the period is not PENDING_RECEIPT
            PeriodNotReadyError: If a total is not positive
        """
        total_volume = Decimal(str(total_volume))
        total_amount = Decimal(str(total_amount))

        errors = []
        if total_volume <= 0:
            errors.append("Total volume from receipt is required and must be positive")
        if total_amount <= 0:
            errors.append("Total amount from receipt is required and must be positive")
        if errors:
            raise PeriodNotReadyError(errors)

        try:
            period = self._lock_period(period_id)
            if period.status != PeriodStatus.PENDING_RECEIPT:
                raise InvalidTransitionError("Period is not ready for receipt data")

            period.total_volume = total_volume
            period.total_amount = total_amount
            period.status = PeriodStatus.CALCULATING
            AuditService.log(
                self.db, "period", period_id, "record_receipt", actor_id,
                {"total_volume": str(total_volume), "total_amount": str(total_amount)},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Recorded receipt for period %d: volume=%s, amount=%s",
            period_id,
            total_volume,
            total_amount,
        )
        return period

    def replace_bills(self, period_id: int, result, actor_id: int | None = None) -> list[Bill]:
        """Atomically replace all bills of a period and close it.

        Deletes prior bills and stored calculations, inserts the new bills and
        calculation snapshot, sets status CLOSED and end_date = now. The period
        row is locked and its status re-checked inside the transaction, so a
        concurrent request for the same period fails instead of interleaving.

        Args:
            period_id: Period in CALCULATING status
            result: CalculationResult from CalculationService
            actor_id: User who triggered the calculation (optional)

        Returns:
            Created Bill objects

        Raises:
            PeriodNotFoundError: If the period does not exist
            PeriodNotReadyError: If the period is no longer CALCULATING
        """
        try:
            period = self._lock_period(period_id)
            if period.status != PeriodStatus.CALCULATING:
                raise PeriodNotReadyError(
                    [f"Period status must be CALCULATING, current: {period.status.value}"]
                )

            replaced = self._delete_outputs(period_id)

            now = datetime.now(timezone.utc)
            bills = [
                Bill(
                    period_id=period_id,
                    unit_id=data.unit_id,
                    current_reading=data.current_reading,
                    previous_reading=data.previous_reading,
                    consumption=data.consumption,
                    individual_cost=data.individual_cost,
                    common_area_cost=data.common_area_cost,
                    total_cost=data.total_cost,
                    extra_charges=[charge.to_dict() for charge in data.extra_charges],
                    status=BillStatus.PENDING,
                )
                for data in result.bills
            ]
            self.db.add_all(bills)

            self.db.add(
                PeriodCalculation(
                    period_id=period_id,
                    cost_per_cubic_meter=result.basic_rate or Decimal("0"),
                    total_individual_consumption=result.total_individual_consumption,
                    total_common_area_consumption=result.common_area_consumption,
                    total_individual_amount=result.total_individual_cost,
                    total_common_area_amount=result.common_area_total_cost,
                    anomalies=list(result.anomalies),
                    calculated_at=now,
                )
            )
            self.db.add_all(
                UnitCalculation(
                    period_id=period_id,
                    unit_id=data.unit_id,
                    meter_id=data.meter_id,
                    previous_reading=data.previous_reading,
                    current_reading=data.current_reading,
                    consumption=data.consumption,
                    individual_amount=data.individual_cost,
                    common_areas_amount=data.common_area_cost,
                    total_amount=data.total_cost,
                    resident_name=data.resident_name,
                    extra_charges=[charge.to_dict() for charge in data.extra_charges],
                    calculated_at=now,
                )
                for data in result.bills
            )

            period.status = PeriodStatus.CLOSED
            period.end_date = now
            AuditService.log(
                self.db,
                "period",
                period_id,
                "calculate",
                actor_id,
                {
                    "status": PeriodStatus.CLOSED.value,
                    "bill_count": len(bills),
                    "replaced_bill_count": replaced,
                    "anomaly_count": len(result.anomalies),
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Saved %d bills for period %d (replaced %d), period closed",
            len(bills),
            period_id,
            replaced,
        )
        return bills

    def reopen_period(
        self,
        period_id: int,
        actor_role: UserRole,
        actor_id: int | None = None,
    ) -> BillingPeriod:
        """Reopen a closed period for correction: CLOSED → PENDING_RECEIPT.

        Deletes the period's bills and stored calculations. Readings are kept.

        Raises:
            InsufficientPrivilegeError: If actor_role is not SUPER_ADMIN
            PeriodNotFoundError: If the period does not exist
            ReopenError: If the period is not CLOSED
        """
        ensure_can_reopen(actor_role)

        try:
            period = self._lock_period(period_id)
            if period.status != PeriodStatus.CLOSED:
                raise ReopenError(
                    f"Can only reopen closed periods, current: {period.status.value}"
                )

            deleted = self._delete_outputs(period_id)
            period.status = PeriodStatus.PENDING_RECEIPT
            AuditService.log(
                self.db,
                "period",
                period_id,
                "reopen",
                actor_id,
                {"status": PeriodStatus.PENDING_RECEIPT.value, "deleted_bill_count": deleted},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.warning("Period %d reopened, %d bills deleted", period_id, deleted)
        return period


__all__ = ["BillingPeriodService"]
