"""Extra charge rule ORM model (per-unit surcharges applied after common-area cost)."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel


class ChargeType(str, Enum):
    """How an extra charge amount is interpreted."""

    FIXED = "fixed"
    """Flat amount added to the bill"""

    PERCENTAGE = "percentage"
    """Percent of the bill total accumulated so far"""


class ExtraChargeRule(Base, BaseModel):
    """Configured surcharge for a condominium, optionally narrowed to one unit.

    Rules are applied in ascending id order. With several percentage rules the
    order changes the result, so it is never re-sorted.
    """

    __tablename__ = "extra_charge_rules"

    condominium_id: Mapped[int] = mapped_column(
        ForeignKey("condominiums.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    unit_id: Mapped[int | None] = mapped_column(
        ForeignKey("units.id", ondelete="CASCADE"),
        nullable=True,
        comment="Null applies the rule to every unit of the condominium",
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    charge_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ChargeType.FIXED.value,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (Index("idx_extra_charge_condominium_active", "condominium_id", "is_active"),)

    def __repr__(self) -> str:
        return (
            f"<ExtraChargeRule(id={self.id}, condominium_id={self.condominium_id}, "
            f"unit_id={self.unit_id}, description={self.description!r}, "
            f"amount={self.amount}, charge_type={self.charge_type})>"
        )


__all__ = ["ExtraChargeRule", "ChargeType"]
