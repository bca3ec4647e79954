"""Meter reading ORM model."""

from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class Reading(Base, BaseModel):
    """One declared meter value for one (meter, period) pair.

    Attributes:
        meter_id: Meter the value was read from
        period_id: Billing period the reading belongs to
        value: Cumulative meter value (m³), never negative
        is_validated: Confirmed by a reviewer
        is_anomalous: Flagged for review (blocks calculation until validated)
        notes: Free-text remarks from data entry
    """

    __tablename__ = "readings"

    meter_id: Mapped[int] = mapped_column(
        ForeignKey("meters.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    period_id: Mapped[int] = mapped_column(
        ForeignKey("periods.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    value: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    is_validated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_anomalous: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text(), nullable=True)

    # Relationships
    meter: Mapped["Meter"] = relationship("Meter", back_populates="readings")  # noqa: F821
    period: Mapped["BillingPeriod"] = relationship(  # noqa: F821
        "BillingPeriod",
        back_populates="readings",
    )

    __table_args__ = (
        UniqueConstraint("meter_id", "period_id", name="uq_reading_meter_period"),
        Index("idx_reading_period_validated", "period_id", "is_validated"),
    )

    def __repr__(self) -> str:
        return (
            f"<Reading(id={self.id}, meter_id={self.meter_id}, period_id={self.period_id}, "
            f"value={self.value}, is_validated={self.is_validated}, "
            f"is_anomalous={self.is_anomalous})>"
        )


__all__ = ["Reading"]
