from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

import errors


def assert_resources_consistent(engine):
  held = [s.resource_id for s in engine.active_sessions()]
  for resource in engine.resources.all():
    assert resource.is_available != (held.count(resource.id) == 1)
    assert held.count(resource.id) <= 1


def test_unsubscribed_ninety_minutes_bills_150(seeded, clock):
  session = seeded.start_session("CUST-1", "ROOM")
  clock.advance(minutes=90)
  invoice = seeded.end_session(session.id)

  assert invoice.total == Decimal("150.00")
  assert invoice.amount == Decimal("150.00")
  assert invoice.status == "unpaid"
  assert invoice.session_id == session.id
  assert [li.description for li in invoice.line_items] == ["Session at Meeting Room"]
  assert seeded.get_customer_balance("CUST-1") == Decimal("150.00")


def test_subscribed_session_only_bills_consumptions(seeded, clock):
  seeded.subscribe("CUST-1", "monthly", "500")
  session = seeded.start_session("CUST-1", "ROOM")
  assert session.is_subscribed
  seeded.add_consumption(session.id, "COFFEE", 2)
  clock.advance(minutes=90)
  invoice = seeded.end_session(session.id)

  closed = seeded.get_session(session.id)
  assert closed.session_cost == Decimal("0.00")
  assert invoice.total == Decimal("40.00")
  assert [(li.description, li.quantity, li.rate) for li in invoice.line_items] == [("Coffee", 2, Decimal("20.00"))]


def test_consumption_beyond_stock_fails_and_keeps_stock(seeded):
  session = seeded.start_session("CUST-1", "ROOM")
  with pytest.raises(errors.InsufficientStock):
    seeded.add_consumption(session.id, "WATER", 6)
  assert seeded.inventory.current_stock("WATER") == 5
  assert seeded.get_session(session.id).consumptions == []
  assert seeded.get_session(session.id).inventory_total == Decimal("0.00")


def test_subscription_is_frozen_at_start(seeded, clock):
  sub = seeded.subscribe("CUST-1", "weekly", "100")
  clock.advance(days=6, hours=23)
  session = seeded.start_session("CUST-1", "ROOM")
  clock.advance(hours=3)  # subscription window closes mid-session
  assert seeded.subscriptions.active_subscription_for("CUST-1", clock.now()) is None

  invoice = seeded.end_session(session.id)
  assert session.is_subscribed
  assert invoice.total == Decimal("0.00")
  assert sub.end_date < clock.now()


def test_subscription_started_mid_session_does_not_apply(seeded, clock):
  session = seeded.start_session("CUST-1", "ROOM")
  seeded.subscribe("CUST-1", "monthly", "500")
  clock.advance(hours=1)
  invoice = seeded.end_session(session.id)
  assert invoice.total == Decimal("100.00")


def test_unit_price_is_snapshotted(seeded, clock):
  session = seeded.start_session("CUST-1", "ROOM")
  seeded.add_consumption(session.id, "COFFEE", 1)
  seeded.set_item_price("COFFEE", "99")
  seeded.add_consumption(session.id, "COFFEE", 1)
  clock.advance(minutes=30)
  invoice = seeded.end_session(session.id)

  rates = [li.rate for li in invoice.line_items if li.description == "Coffee"]
  assert rates == [Decimal("20.00"), Decimal("99.00")]
  assert invoice.total == Decimal("50.00") + Decimal("119.00")


def test_inventory_total_tracks_consumptions(seeded):
  session = seeded.start_session("CUST-1", "ROOM")
  seeded.add_consumption(session.id, "COFFEE", 3)
  seeded.add_consumption(session.id, "WATER", 2)
  assert session.inventory_total == Decimal("80.00")
  assert seeded.inventory.current_stock("COFFEE") == 7
  assert seeded.inventory.current_stock("WATER") == 3


def test_unknown_customer_leaves_resource_free(seeded):
  with pytest.raises(errors.CustomerNotFound):
    seeded.start_session("CUST-404", "ROOM")
  assert seeded.resources.get("ROOM").is_available
  assert seeded.active_sessions() == []


def test_occupied_resource_is_rejected(seeded):
  seeded.start_session("CUST-1", "ROOM")
  with pytest.raises(errors.ResourceUnavailable):
    seeded.start_session("CUST-2", "ROOM")
  assert len(seeded.active_sessions()) == 1
  assert_resources_consistent(seeded)


def test_unknown_resource(seeded):
  with pytest.raises(errors.ResourceNotFound):
    seeded.start_session("CUST-1", "ROOF")


def test_end_releases_resource_and_closes_session(seeded, clock):
  session = seeded.start_session("CUST-1", "ROOM")
  assert_resources_consistent(seeded)
  clock.advance(minutes=45)
  seeded.end_session(session.id)

  assert seeded.resources.get("ROOM").is_available
  assert seeded.active_sessions() == []
  closed = seeded.get_session(session.id)
  assert closed.status == "completed"
  assert closed.ended_at == clock.now()
  assert closed.duration_minutes == 45
  assert seeded.get_customer("CUST-1").total_sessions == 1
  assert_resources_consistent(seeded)


def test_closed_session_rejects_everything(seeded, clock):
  session = seeded.start_session("CUST-1", "ROOM")
  clock.advance(minutes=10)
  seeded.end_session(session.id)

  with pytest.raises(errors.SessionNotActive):
    seeded.end_session(session.id)
  with pytest.raises(errors.SessionNotActive):
    seeded.add_consumption(session.id, "COFFEE", 1)
  assert seeded.inventory.current_stock("COFFEE") == 10


def test_unknown_session(seeded):
  with pytest.raises(errors.SessionNotFound):
    seeded.end_session("SES-404")


def test_daily_cap_from_resource(seeded, clock):
  session = seeded.start_session("CUST-1", "SEAT")
  clock.advance(hours=10)
  invoice = seeded.end_session(session.id)
  assert invoice.total == Decimal("100.00")


def test_remove_consumption_restores_stock(seeded):
  session = seeded.start_session("CUST-1", "ROOM")
  seeded.add_consumption(session.id, "COFFEE", 3)
  seeded.add_consumption(session.id, "WATER", 1)
  coffee = session.consumptions[0]

  seeded.remove_consumption(session.id, coffee.id)
  assert [c.item_id for c in session.consumptions] == ["WATER"]
  assert session.inventory_total == Decimal("10.00")
  assert seeded.inventory.current_stock("COFFEE") == 10

  with pytest.raises(errors.ConsumptionNotFound):
    seeded.remove_consumption(session.id, coffee.id)


def test_update_consumption_moves_only_the_difference(seeded):
  session = seeded.start_session("CUST-1", "ROOM")
  seeded.add_consumption(session.id, "COFFEE", 2)
  line = session.consumptions[0]

  seeded.update_consumption(session.id, line.id, 5)
  assert seeded.inventory.current_stock("COFFEE") == 5
  assert session.inventory_total == Decimal("100.00")

  seeded.update_consumption(session.id, line.id, 1)
  assert seeded.inventory.current_stock("COFFEE") == 9
  assert session.inventory_total == Decimal("20.00")

  with pytest.raises(errors.InsufficientStock):
    seeded.update_consumption(session.id, line.id, 11)
  assert line.quantity == 1
  assert seeded.inventory.current_stock("COFFEE") == 9

  seeded.update_consumption(session.id, line.id, 0)
  assert session.consumptions == []
  assert seeded.inventory.current_stock("COFFEE") == 10


def test_concurrent_starts_allocate_once(seeded):
  customers = [seeded.add_customer(f"Guest {n}").id for n in range(12)]

  def start(customer_id):
    try:
      return seeded.start_session(customer_id, "ROOM")
    except errors.ResourceUnavailable:
      return None

  with ThreadPoolExecutor(max_workers=6) as pool:
    started = [s for s in pool.map(start, customers) if s is not None]

  assert len(started) == 1
  assert_resources_consistent(seeded)


def test_concurrent_consumptions_never_oversell(seeded):
  session = seeded.start_session("CUST-1", "ROOM")

  def add(_):
    try:
      seeded.add_consumption(session.id, "WATER", 1)
      return True
    except errors.InsufficientStock:
      return False

  with ThreadPoolExecutor(max_workers=6) as pool:
    results = list(pool.map(add, range(20)))

  assert results.count(True) == 5
  assert seeded.inventory.current_stock("WATER") == 0
  assert len(session.consumptions) == 5
  assert session.inventory_total == Decimal("50.00")


def test_end_before_start_is_rejected_without_side_effects(seeded, clock):
  session = seeded.start_session("CUST-1", "ROOM")
  clock.advance(minutes=-5)
  with pytest.raises(errors.ValidationError):
    seeded.end_session(session.id)
  assert session.is_active
  assert not seeded.resources.get("ROOM").is_available
  assert seeded.list_invoices() == []


def test_store_receives_changed_records(seeded, clock):
  session = seeded.start_session("CUST-1", "ROOM")
  clock.advance(minutes=30)
  invoice = seeded.end_session(session.id)

  store = seeded.store
  assert store.get("Session", session.id).status == "completed"
  assert store.get("Invoice", invoice.id) is invoice
  assert store.get("Resource", "ROOM").is_available
  assert ("Invoice", invoice.id) in store.writes
