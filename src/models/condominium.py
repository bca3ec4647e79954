"""Condominium and block ORM models."""

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class Condominium(Base, BaseModel):
    """Model representing a condominium (one tenant of the billing system).

    A condominium owns blocks of units and runs its own sequence of billing
    periods against a single master water receipt per period.
    """

    __tablename__ = "condominiums"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    blocks: Mapped[list["Block"]] = relationship(
        "Block",
        back_populates="condominium",
        cascade="all, delete-orphan",
    )
    periods: Mapped[list["BillingPeriod"]] = relationship(  # noqa: F821
        "BillingPeriod",
        back_populates="condominium",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Condominium(id={self.id}, name={self.name!r}, is_active={self.is_active})>"


class Block(Base, BaseModel):
    """Building block (tower, wing) grouping units inside a condominium."""

    __tablename__ = "blocks"

    condominium_id: Mapped[int] = mapped_column(
        ForeignKey("condominiums.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Relationships
    condominium: Mapped["Condominium"] = relationship("Condominium", back_populates="blocks")
    units: Mapped[list["Unit"]] = relationship(  # noqa: F821
        "Unit",
        back_populates="block",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("idx_block_condominium_name", "condominium_id", "name"),)

    def __repr__(self) -> str:
        return f"<Block(id={self.id}, condominium_id={self.condominium_id}, name={self.name!r})>"


__all__ = ["Condominium", "Block"]
