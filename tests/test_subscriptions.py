from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

import errors


def test_subscribe_sets_window_invoice_and_type(seeded, clock):
  sub = seeded.subscribe("CUST-1", "weekly", "120")

  assert sub.is_active and sub.status == "active"
  assert sub.start_date == clock.now()
  assert sub.end_date == clock.now() + timedelta(days=7)
  assert sub.price == Decimal("120.00")
  assert seeded.get_customer("CUST-1").customer_type == "weekly"
  assert seeded.get_customer_balance("CUST-1") == Decimal("120.00")


@pytest.mark.parametrize("plan,days", [("weekly", 7), ("half-monthly", 15), ("monthly", 30)])
def test_plan_lengths(seeded, clock, plan, days):
  sub = seeded.subscribe("CUST-1", plan, "10")
  assert sub.end_date - sub.start_date == timedelta(days=days)


def test_window_bounds(seeded, clock):
  sub = seeded.subscribe("CUST-1", "weekly", "10", start=clock.now() + timedelta(days=1))
  directory = seeded.subscriptions
  assert directory.active_subscription_for("CUST-1", clock.now()) is None
  assert directory.active_subscription_for("CUST-1", sub.start_date) is sub
  assert directory.active_subscription_for("CUST-1", sub.end_date - timedelta(seconds=1)) is sub
  assert directory.active_subscription_for("CUST-1", sub.end_date) is None


def test_new_subscription_replaces_active_one(seeded):
  old = seeded.subscribe("CUST-1", "weekly", "10")
  new = seeded.subscribe("CUST-1", "monthly", "40")
  assert not old.is_active and old.status == "inactive"
  assert new.is_active
  assert seeded.get_customer("CUST-1").customer_type == "monthly"


def test_cancel_and_reactivate(seeded, clock):
  sub = seeded.subscribe("CUST-1", "monthly", "40")
  seeded.cancel_subscription(sub.id)
  assert not sub.is_active
  assert seeded.get_customer("CUST-1").customer_type == "visitor"

  session = seeded.start_session("CUST-1", "ROOM")
  assert not session.is_subscribed
  clock.advance(hours=1)
  seeded.end_session(session.id)

  seeded.reactivate_subscription(sub.id)
  assert sub.is_active
  assert seeded.get_customer("CUST-1").customer_type == "monthly"
  assert seeded.start_session("CUST-1", "ROOM").is_subscribed


def test_expire_subscriptions(seeded, clock):
  sub = seeded.subscribe("CUST-1", "weekly", "10")
  assert seeded.expire_subscriptions() == []
  clock.advance(days=7)
  assert seeded.expire_subscriptions() == [sub]
  assert sub.status == "expired"


def test_subscribe_rejects_bad_input_without_changes(seeded):
  with pytest.raises(errors.CustomerNotFound):
    seeded.subscribe("CUST-404", "weekly", "10")
  with pytest.raises(errors.ValidationError):
    seeded.subscribe("CUST-1", "yearly", "10")
  with pytest.raises(errors.InvalidAmount):
    seeded.subscribe("CUST-1", "weekly", "-10")
  assert seeded.subscriptions.for_customer("CUST-1") == []
  assert seeded.list_invoices() == []
  assert seeded.get_customer("CUST-1").customer_type == "visitor"


def test_unknown_subscription(seeded):
  with pytest.raises(errors.SubscriptionNotFound):
    seeded.cancel_subscription("SUB-404")


def test_change_plan_recomputes_end(seeded, clock):
  sub = seeded.subscribe("CUST-1", "weekly", "120")
  seeded.change_plan(sub.id, "half-monthly")
  assert sub.plan_type == "half-monthly"
  assert sub.end_date == sub.start_date + timedelta(days=15)
  assert seeded.get_customer("CUST-1").customer_type == "half-monthly"

  with pytest.raises(errors.ValidationError):
    seeded.change_plan(sub.id, "yearly")
  assert sub.plan_type == "half-monthly"


def test_offset_start_is_converted_to_utc(seeded, clock):
  cairo = timezone(timedelta(hours=2))
  sub = seeded.subscribe("CUST-1", "weekly", "120", start=datetime(2026, 1, 5, 11, 0, tzinfo=cairo))
  assert sub.start_date == clock.now()
  assert seeded.start_session("CUST-1", "ROOM").is_subscribed
