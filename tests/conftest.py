"""
Shared fixtures: an in-memory SQLite database and a fixed calendar day.
"""

from datetime import date

import pytest
from sqlalchemy.orm import Session

from core.clock import FixedClock
from db.database import init_db, make_engine

TODAY = date(2024, 3, 15)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def clock():
    return FixedClock(TODAY)


@pytest.fixture
def session():
    """Create a fresh in-memory SQLite database for each test."""
    engine = make_engine("sqlite:///:memory:")
    init_db(engine)
    with Session(engine) as s:
        yield s
    engine.dispose()
