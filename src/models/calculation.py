"""Stored calculation snapshots written when a period is closed."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel


class PeriodCalculation(Base, BaseModel):
    """Period-level totals of the calculation that closed a period (one per period)."""

    __tablename__ = "period_calculations"

    period_id: Mapped[int] = mapped_column(
        ForeignKey("periods.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    cost_per_cubic_meter: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    total_individual_consumption: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    total_common_area_consumption: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    total_individual_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_common_area_amount: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    anomalies: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<PeriodCalculation(period_id={self.period_id}, "
            f"total_individual_consumption={self.total_individual_consumption}, "
            f"total_common_area_amount={self.total_common_area_amount})>"
        )


class UnitCalculation(Base, BaseModel):
    """Per-unit row of a stored calculation."""

    __tablename__ = "unit_calculations"

    period_id: Mapped[int] = mapped_column(
        ForeignKey("periods.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    unit_id: Mapped[int] = mapped_column(
        ForeignKey("units.id", ondelete="CASCADE"),
        nullable=False,
    )
    meter_id: Mapped[int | None] = mapped_column(ForeignKey("meters.id"), nullable=True)
    previous_reading: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    current_reading: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    consumption: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    individual_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    common_areas_amount: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    resident_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    extra_charges: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<UnitCalculation(period_id={self.period_id}, unit_id={self.unit_id}, "
            f"total_amount={self.total_amount})>"
        )


__all__ = ["PeriodCalculation", "UnitCalculation"]
