from decimal import Decimal

import pytest

import errors


def test_balance_of_customer_without_invoices(seeded):
  assert seeded.get_customer_balance("CUST-2") == Decimal("0.00")


def test_unknown_customer_balance(seeded):
  with pytest.raises(errors.CustomerNotFound):
    seeded.get_customer_balance("CUST-404")


def test_balance_is_idempotent(seeded, clock):
  session = seeded.start_session("CUST-1", "ROOM")
  clock.advance(minutes=90)
  seeded.end_session(session.id)

  first = seeded.get_customer_balance("CUST-1")
  second = seeded.get_customer_balance("CUST-1")
  assert first == second == Decimal("150.00")


def test_cache_follows_new_invoices_and_payments(seeded, clock):
  assert seeded.get_customer_balance("CUST-1") == Decimal("0.00")

  invoice = seeded.create_invoice("CUST-1", [{"description": "Desk", "rate": "80"}])
  assert seeded.get_customer_balance("CUST-1") == Decimal("80.00")

  seeded.record_payment(invoice.id, "30")
  assert seeded.get_customer_balance("CUST-1") == Decimal("50.00")

  seeded.record_bulk_payment([invoice.id], "50")
  assert seeded.get_customer_balance("CUST-1") == Decimal("0.00")

  session = seeded.start_session("CUST-1", "ROOM")
  clock.advance(hours=1)
  seeded.end_session(session.id)
  assert seeded.get_customer_balance("CUST-1") == Decimal("100.00")


def test_outstanding_invoices_oldest_due_first(seeded, clock):
  later = seeded.create_invoice("CUST-1", [{"description": "later", "rate": "10"}],
                                due_date=clock.now().replace(day=20))
  sooner = seeded.create_invoice("CUST-1", [{"description": "sooner", "rate": "10"}],
                                 due_date=clock.now().replace(day=10))
  settled = seeded.create_invoice("CUST-1", [{"description": "settled", "rate": "10"}])
  seeded.record_payment(settled.id, "10")

  assert [i.id for i in seeded.outstanding_invoices("CUST-1")] == [sooner.id, later.id]
