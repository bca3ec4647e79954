"""Bill ORM model: the per-unit output of a period calculation."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Numeric, UniqueConstraint
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class BillStatus(str, Enum):
    """Payment lifecycle of a bill."""

    PENDING = "PENDING"
    SENT = "SENT"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class Bill(Base, BaseModel):
    """
    Water bill for one unit in one billing period.

    Bills are never edited piecewise by the calculation engine: a calculation
    replaces the whole set for its period in a single transaction.
    """

    __tablename__ = "bills"

    # Foreign keys
    period_id: Mapped[int] = mapped_column(
        ForeignKey("periods.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    unit_id: Mapped[int] = mapped_column(
        ForeignKey("units.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Readings and consumption
    current_reading: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    previous_reading: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    consumption: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)

    # Amounts
    individual_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    common_area_cost: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    extra_charges: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Applied extra charges: [{description, amount, type}]",
    )

    status: Mapped[BillStatus] = mapped_column(
        SQLEnum(BillStatus),
        nullable=False,
        default=BillStatus.PENDING,
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    period: Mapped["BillingPeriod"] = relationship(  # noqa: F821
        "BillingPeriod",
        back_populates="bills",
    )
    unit: Mapped["Unit"] = relationship("Unit")  # noqa: F821

    __table_args__ = (
        UniqueConstraint("period_id", "unit_id", name="uq_bill_period_unit"),
        Index("idx_bill_period_status", "period_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Bill(id={self.id}, period_id={self.period_id}, unit_id={self.unit_id}, "
            f"consumption={self.consumption}, total_cost={self.total_cost}, "
            f"status={self.status})>"
        )


__all__ = ["Bill", "BillStatus"]
