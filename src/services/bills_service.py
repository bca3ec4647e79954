"""Bill payment lifecycle and per-unit bill history."""

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from src.api.errors import BillNotFoundError, UnitNotFoundError
from src.models.bill import Bill, BillStatus
from src.models.billing_period import BillingPeriod
from src.models.unit import Unit
from src.services.audit_service import AuditService

logger = logging.getLogger(__name__)


class BillsService:
    """Service for bill operations after a period has been calculated.

    The calculation engine only ever writes PENDING bills; this service moves
    them through SENT, PAID and OVERDUE.
    """

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session

    def get_unit_bills(self, unit_id: int, limit: int = 20) -> list[Bill]:
        """Bill history of one unit, most recent period first.

        Raises:
            UnitNotFoundError: If the unit does not exist
        """
        if self.db.get(Unit, unit_id) is None:
            raise UnitNotFoundError(unit_id)

        return (
            self.db.query(Bill)
            .join(BillingPeriod, Bill.period_id == BillingPeriod.id)
            .filter(Bill.unit_id == unit_id)
            .order_by(BillingPeriod.start_date.desc(), Bill.id.desc())
            .limit(limit)
            .all()
        )

    def update_bill_status(
        self,
        bill_id: int,
        status: BillStatus,
        paid_at: datetime | None = None,
        actor_id: int | None = None,
    ) -> Bill:
        """Set a bill's payment status.

        PAID stamps paid_at with the given date, or now when none is given.
        Any other status clears paid_at.

        Args:
            bill_id: Bill to update
            status: New status
            paid_at: Payment date, only used with PAID
            actor_id: User making the change (optional)

        Returns:
            Updated Bill

        Raises:
            BillNotFoundError: If the bill does not exist
        """
        bill = self.db.get(Bill, bill_id)
        if bill is None:
            raise BillNotFoundError(bill_id)

        status = BillStatus(status)
        previous_status = bill.status
        if status == BillStatus.PAID:
            bill.paid_at = paid_at or datetime.now(timezone.utc)
        else:
            bill.paid_at = None
        bill.status = status

        try:
            AuditService.log(
                self.db,
                "bill",
                bill.id,
                "update_status",
                actor_id,
                {
                    "from": previous_status.value,
                    "to": status.value,
                    "paid_at": bill.paid_at.isoformat() if bill.paid_at else None,
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Bill %d status %s -> %s", bill.id, previous_status.value, status.value)
        return bill


__all__ = ["BillsService"]
