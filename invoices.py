# invoices.py
import itertools
import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

import errors
from config import INVOICE_DUE_DAYS
from inventory import check_quantity
from models import Invoice, LineItem, Session, invoice_status
from money import non_negative_money, total

logger = logging.getLogger(__name__)


class InvoiceFactory:
  """
  Turns closed sessions and manual charges into invoices and keeps every
  invoice it ever issued. Line items, amount, discount and total are fixed
  at creation; only payments touch an invoice afterwards.
  """

  def __init__(self, due_days: int = INVOICE_DUE_DAYS):
    self.due_days = due_days
    self.issued: Dict[str, Invoice] = {}
    self._numbers = itertools.count(10001)
    self._line_ids = itertools.count(1)

  def get(self, invoice_id: str) -> Invoice:
    invoice = self.issued.get(invoice_id)
    if invoice is None:
      raise errors.InvoiceNotFound(f"invoice not found: {invoice_id}")
    return invoice

  def for_customer(self, customer_id: str) -> List[Invoice]:
    return [i for i in self.issued.values() if i.customer_id == customer_id]

  def all(self) -> List[Invoice]:
    return list(self.issued.values())

  def _line(self, description: str, quantity: int, rate) -> LineItem:
    if not description or not str(description).strip():
      raise errors.ValidationError("line item description is required")
    check_quantity(quantity)
    rate = non_negative_money(rate)
    return LineItem(
      id=f"LI-{next(self._line_ids)}",
      invoice_id="",
      description=str(description).strip(),
      quantity=quantity,
      rate=rate,
      amount=total(rate * quantity),
    )

  def _issue(self, customer_id: str, lines: List[LineItem], discount, due_date: datetime, now: datetime,
             session_id: Optional[str] = None, prefix: str = "INV") -> Invoice:
    amount = total(*[line.amount for line in lines])
    discount = non_negative_money(discount)
    if discount > amount:
      raise errors.InvalidAmount(f"discount {discount} exceeds invoice amount {amount}")

    n = next(self._numbers)
    invoice = Invoice(
      id=f"INV-{n}",
      invoice_number=f"{prefix}-{n}",
      customer_id=customer_id,
      session_id=session_id,
      amount=amount,
      discount=discount,
      total=total(amount - discount),
      due_date=due_date,
      created_at=now,
    )
    for line in lines:
      line.invoice_id = invoice.id
      invoice.line_items.append(line)

    invoice.status = invoice_status(invoice.paid_amount, invoice.total)
    if invoice.status == "paid":
      invoice.paid_date = now

    self.issued[invoice.id] = invoice
    logger.info("invoice %s issued to %s: amount=%s discount=%s total=%s due=%s",
                invoice.invoice_number, customer_id, amount, discount, invoice.total, due_date.date())
    return invoice

  def create_from_session(self, session: Session, now: datetime) -> Invoice:
    if session.is_active:
      raise errors.SessionNotActive(f"session is still running: {session.id}")

    lines = []
    if session.session_cost > 0:
      lines.append(self._line(f"Session at {session.resource_name or session.resource_id}", 1, session.session_cost))
    for consumption in session.consumptions:
      lines.append(self._line(consumption.item_name, consumption.quantity, consumption.unit_price))

    return self._issue(
      session.customer_id, lines, 0, now + timedelta(days=self.due_days), now, session_id=session.id,
    )

  def create_manual(self, customer_id: str, line_items: Iterable[dict], now: datetime, discount=0,
                    due_date: Optional[datetime] = None, prefix: str = "INV") -> Invoice:
    lines = [self._line(li.get("description"), li.get("quantity", 1), li.get("rate", 0)) for li in line_items]
    if not lines:
      raise errors.ValidationError("a manual invoice needs at least one line item")
    if due_date is None:
      due_date = now + timedelta(days=self.due_days)
    return self._issue(customer_id, lines, discount, due_date, now, prefix=prefix)
