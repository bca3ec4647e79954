"""Water rate resolution from the key/value system configuration."""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from src.models.system_config import SystemConfig
from src.services.config import get_settings

logger = logging.getLogger(__name__)

BASIC_RATE_KEY = "water_basic_rate"
FIXED_CHARGE_KEY = "water_fixed_charge"
MINIMUM_CONSUMPTION_KEY = "water_minimum_consumption"

WATER_RATE_KEYS = (BASIC_RATE_KEY, FIXED_CHARGE_KEY, MINIMUM_CONSUMPTION_KEY)


@dataclass(frozen=True)
class WaterRates:
    """Rates applied to every unit in one calculation pass."""

    basic_rate: Decimal
    """Cost per m³ of individual consumption"""

    fixed_charge: Decimal | None = None
    """Flat amount added to each unit's individual cost"""

    minimum_consumption: Decimal | None = None
    """Floor applied to measured consumption (m³)"""


def _parse_decimal(key: str, raw: str | None) -> Decimal | None:
    if raw is None:
        return None
    try:
        value = Decimal(raw.strip())
    except (InvalidOperation, AttributeError):
        logger.warning("Ignoring non-numeric value for %s: %r", key, raw)
        return None
    if not value.is_finite():
        logger.warning("Ignoring non-finite value for %s: %r", key, raw)
        return None
    return value


class RateService:
    """Reads and writes water rate settings.

    Rates are resolved once per calculation pass and handed to the engine as a
    WaterRates value, never re-queried per unit.
    """

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session

    def get_water_rates(self) -> WaterRates:
        """Resolve the current water rates.

        An unset, unparseable or zero basic rate falls back to the configured
        default (1.5 per m³). Optional values that are unset or unparseable
        resolve to None; a zero optional value has no effect on the bill.

        Returns:
            WaterRates for the calculation pass
        """
        rows = self.db.query(SystemConfig).filter(SystemConfig.key.in_(WATER_RATE_KEYS)).all()
        config_map = {row.key: row.value for row in rows}

        basic_rate = _parse_decimal(BASIC_RATE_KEY, config_map.get(BASIC_RATE_KEY))
        if not basic_rate:
            basic_rate = get_settings().default_basic_rate

        rates = WaterRates(
            basic_rate=basic_rate,
            fixed_charge=_parse_decimal(FIXED_CHARGE_KEY, config_map.get(FIXED_CHARGE_KEY)),
            minimum_consumption=_parse_decimal(
                MINIMUM_CONSUMPTION_KEY, config_map.get(MINIMUM_CONSUMPTION_KEY)
            ),
        )
        logger.debug("Resolved water rates: %s", rates)
        return rates

    def set_rate(self, key: str, value: Decimal | str) -> SystemConfig:
        """Insert or update one rate setting and commit.

        Raises:
            ValueError: If key is not a water rate key
        """
        if key not in WATER_RATE_KEYS:
            raise ValueError(f"Unknown water rate key: {key}")

        row = self.db.query(SystemConfig).filter(SystemConfig.key == key).first()
        if row is None:
            row = SystemConfig(key=key, value=str(value))
            self.db.add(row)
        else:
            row.value = str(value)
        self.db.commit()

        logger.info("Set %s=%s", key, value)
        return row


__all__ = [
    "RateService",
    "WaterRates",
    "BASIC_RATE_KEY",
    "FIXED_CHARGE_KEY",
    "MINIMUM_CONSUMPTION_KEY",
]
