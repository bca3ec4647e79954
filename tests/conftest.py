"""Pytest configuration and shared fixtures for the billing engine tests."""

import os

# Set test database URL BEFORE any imports from src
# This ensures the SessionLocal and engine use an in-memory database
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from src.models import (  # noqa: E402
    Base,
    Block,
    Condominium,
    Meter,
    MeterType,
    Resident,
    Unit,
)
from src.services.config import reset_settings  # noqa: E402
from src.services.rate_service import (  # noqa: E402
    BASIC_RATE_KEY,
    FIXED_CHARGE_KEY,
    RateService,
)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Drop cached settings around every test so env overrides are honoured."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def db_session():
    """Create test database session."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    engine.dispose()


def _add_unit(db_session, block, name, resident_name=None, with_meter=True, is_active=True):
    resident = None
    if resident_name:
        resident = Resident(name=resident_name)
        db_session.add(resident)
        db_session.flush()

    unit = Unit(
        block_id=block.id,
        name=name,
        resident_id=resident.id if resident else None,
        is_active=is_active,
    )
    db_session.add(unit)
    db_session.flush()

    meter = None
    if with_meter:
        meter = Meter(unit_id=unit.id, type=MeterType.WATER, serial_number=f"W-{block.name}{name}")
        db_session.add(meter)
        db_session.flush()

    db_session.commit()
    return unit, meter


@pytest.fixture
def condominium(db_session):
    """Create an active condominium with block "A"."""
    condo = Condominium(name="Residencial Jardim", address="Rua das Flores, 100")
    db_session.add(condo)
    db_session.flush()
    block = Block(condominium_id=condo.id, name="A")
    db_session.add(block)
    db_session.commit()
    return condo


@pytest.fixture
def block(db_session, condominium):
    """Block "A" of the sample condominium."""
    return db_session.query(Block).filter(Block.condominium_id == condominium.id).one()


@pytest.fixture
def two_units(db_session, block):
    """Units 101 and 102 with residents and active water meters.

    Returns:
        List of (unit, meter) tuples
    """
    return [
        _add_unit(db_session, block, "101", resident_name="Ana Souza"),
        _add_unit(db_session, block, "102", resident_name="Bruno Lima"),
    ]


@pytest.fixture
def water_rates(db_session):
    """Configure basic rate 1.5 and fixed charge 5.0."""
    service = RateService(db_session)
    service.set_rate(BASIC_RATE_KEY, "1.5")
    service.set_rate(FIXED_CHARGE_KEY, "5.0")
    return service.get_water_rates()


@pytest.fixture
def make_unit(db_session):
    """Factory creating a unit (optionally with a resident and an active water meter).

    Returns (unit, meter); meter is None when with_meter=False.
    """

    def _make(block, name, resident_name=None, with_meter=True, is_active=True):
        return _add_unit(db_session, block, name, resident_name, with_meter, is_active)

    return _make
