"""Unit and resident ORM models."""

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class Resident(Base, BaseModel):
    """Person living in (and usually paying for) a unit."""

    __tablename__ = "residents"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<Resident(id={self.id}, name={self.name!r})>"


class Unit(Base, BaseModel):
    """Model representing a billable dwelling.

    Only active units with an active WATER meter take part in a calculation
    pass. Inactive units keep their history but receive no new bills.
    """

    __tablename__ = "units"

    block_id: Mapped[int] = mapped_column(
        ForeignKey("blocks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    resident_id: Mapped[int | None] = mapped_column(
        ForeignKey("residents.id"),
        nullable=True,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
    )

    # Relationships
    block: Mapped["Block"] = relationship("Block", back_populates="units")  # noqa: F821
    resident: Mapped[Resident | None] = relationship("Resident")
    meters: Mapped[list["Meter"]] = relationship(  # noqa: F821
        "Meter",
        back_populates="unit",
        cascade="all, delete-orphan",
        order_by="Meter.id",
    )

    __table_args__ = (Index("idx_unit_block_active", "block_id", "is_active"),)

    def __repr__(self) -> str:
        return (
            f"<Unit(id={self.id}, block_id={self.block_id}, name={self.name!r}, "
            f"resident_id={self.resident_id}, is_active={self.is_active})>"
        )


__all__ = ["Unit", "Resident"]
