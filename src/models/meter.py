"""Meter ORM model."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class MeterType(str, Enum):
    """Kind of utility measured by a meter."""

    WATER = "WATER"
    ELECTRICITY = "ELECTRICITY"
    GAS = "GAS"


class Meter(Base, BaseModel):
    """Physical meter installed in a unit.

    Replacing a meter marks the old record inactive and creates a new one,
    so reading history is always scoped to a single meter record.
    """

    __tablename__ = "meters"

    unit_id: Mapped[int] = mapped_column(
        ForeignKey("units.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[MeterType] = mapped_column(
        SQLEnum(MeterType),
        nullable=False,
        default=MeterType.WATER,
    )
    serial_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    installed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    replaced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    unit: Mapped["Unit"] = relationship("Unit", back_populates="meters")  # noqa: F821
    readings: Mapped[list["Reading"]] = relationship(  # noqa: F821
        "Reading",
        back_populates="meter",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("idx_meter_unit_type_active", "unit_id", "type", "is_active"),)

    def __repr__(self) -> str:
        return (
            f"<Meter(id={self.id}, unit_id={self.unit_id}, type={self.type}, "
            f"serial_number={self.serial_number!r}, is_active={self.is_active})>"
        )


__all__ = ["Meter", "MeterType"]
