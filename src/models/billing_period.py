"""Billing period ORM model (OPEN → PENDING_RECEIPT → CALCULATING → CLOSED)."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, Numeric
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class PeriodStatus(str, Enum):
    """Lifecycle status of a billing period."""

    OPEN = "OPEN"
    """Readings may be entered and edited"""

    PENDING_RECEIPT = "PENDING_RECEIPT"
    """Readings closed, waiting for the master utility receipt"""

    CALCULATING = "CALCULATING"
    """Receipt recorded, bills may be calculated"""

    CLOSED = "CLOSED"
    """Bills persisted, readings immutable"""


class BillingPeriod(Base, BaseModel):
    """Model representing one reconciliation cycle for one condominium.

    total_volume and total_amount come from the master receipt and are required
    (and positive) before a calculation pass may run.
    """

    __tablename__ = "periods"

    condominium_id: Mapped[int] = mapped_column(
        ForeignKey("condominiums.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Start of reading collection",
    )
    end_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Set when the period is closed",
    )
    status: Mapped[PeriodStatus] = mapped_column(
        SQLEnum(PeriodStatus),
        nullable=False,
        default=PeriodStatus.OPEN,
    )
    total_volume: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 3),
        nullable=True,
        comment="Declared volume from the master receipt (m³)",
    )
    total_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Declared amount from the master receipt",
    )

    # Relationships
    condominium: Mapped["Condominium"] = relationship(  # noqa: F821
        "Condominium",
        back_populates="periods",
    )
    readings: Mapped[list["Reading"]] = relationship(  # noqa: F821
        "Reading",
        back_populates="period",
        cascade="all, delete-orphan",
    )
    bills: Mapped[list["Bill"]] = relationship(  # noqa: F821
        "Bill",
        back_populates="period",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("idx_period_condominium_status", "condominium_id", "status"),)

    def __repr__(self) -> str:
        return (
            f"<BillingPeriod(id={self.id}, condominium_id={self.condominium_id}, "
            f"status={self.status}, total_volume={self.total_volume}, "
            f"total_amount={self.total_amount})>"
        )


__all__ = ["BillingPeriod", "PeriodStatus"]
