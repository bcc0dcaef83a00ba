"""
Shared fixtures: a fixed clock and an engine seeded with one customer,
a 100/hour room, a seat with a daily cap and a few inventory items.
"""

from datetime import datetime, timezone

import pytest

from clock import FixedClock
from engine import CoworkingEngine

START = datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> FixedClock:
  return FixedClock(START)


@pytest.fixture
def engine(clock) -> CoworkingEngine:
  return CoworkingEngine(clock=clock)


@pytest.fixture
def seeded(engine) -> CoworkingEngine:
  engine.add_customer("Ahmed Hassan", phone="01000000001", customer_id="CUST-1")
  engine.add_customer("Mona Ali", phone="01000000002", customer_id="CUST-2")
  engine.add_resource("Meeting Room", "room", "100.00", resource_id="ROOM")
  engine.add_resource("Seat A", "seat", "15.00", max_price="100.00", resource_id="SEAT")
  engine.add_item("Coffee", "20.00", quantity=10, category="beverage", min_stock=2, item_id="COFFEE")
  engine.add_item("Water", "10.00", quantity=5, category="beverage", min_stock=5, item_id="WATER")
  return engine
