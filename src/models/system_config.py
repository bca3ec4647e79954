"""Key/value system configuration ORM model."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel


class SystemConfig(Base, BaseModel):
    """Global setting stored as a string value (e.g. water_basic_rate = "1.5")."""

    __tablename__ = "system_configs"

    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    value: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<SystemConfig(key={self.key!r}, value={self.value!r})>"


__all__ = ["SystemConfig"]
