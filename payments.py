# payments.py
import itertools
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Sequence

import errors
from config import ALLOW_OVERPAYMENT, PAYMENT_METHODS
from directory import CustomerDirectory
from invoices import InvoiceFactory
from models import Invoice, Payment, invoice_status
from money import ZERO, positive_money, total

logger = logging.getLogger(__name__)


def check_method(method: str) -> str:
  if method not in PAYMENT_METHODS:
    raise errors.InvalidPaymentMethod(f"payment method must be one of {', '.join(PAYMENT_METHODS)}")
  return method


class PaymentReconciler:
  """
  Applies payments to invoices. For every invoice the sum of its payments
  equals paid_amount, and status is derived from paid_amount vs total.
  """

  def __init__(self, invoices: InvoiceFactory, customers: CustomerDirectory,
               allow_overpayment: bool = ALLOW_OVERPAYMENT):
    self.invoices = invoices
    self.customers = customers
    self.allow_overpayment = allow_overpayment
    self.payments: List[Payment] = []
    self._ids = itertools.count(1)

  def _apply(self, invoice: Invoice, amount: Decimal, method: str, date: datetime, notes: str) -> Payment:
    payment = Payment(
      id=f"PAY-{next(self._ids)}",
      invoice_id=invoice.id,
      amount=amount,
      method=method,
      date=date,
      notes=notes or "",
    )
    invoice.payments.append(payment)
    self.payments.append(payment)

    was_paid = invoice.status == "paid"
    invoice.paid_amount = total(invoice.paid_amount, amount)
    invoice.status = invoice_status(invoice.paid_amount, invoice.total)
    if invoice.status == "paid" and not was_paid:
      invoice.paid_date = date

    customer = self.customers.customers.get(invoice.customer_id)
    if customer is not None:
      customer.total_spent = total(customer.total_spent, amount)

    logger.info("payment %s: %s %s on %s, invoice now %s (%s/%s)",
                payment.id, amount, method, invoice.invoice_number, invoice.status, invoice.paid_amount, invoice.total)
    return payment

  def record_payment(self, invoice_id: str, amount, method: str, date: datetime, notes: str = "") -> Invoice:
    amount = positive_money(amount)
    check_method(method)
    invoice = self.invoices.get(invoice_id)

    remaining = invoice.remaining
    if not self.allow_overpayment:
      if remaining <= 0:
        raise errors.InvoiceAlreadyPaid(f"invoice is already fully paid: {invoice.invoice_number}")
      if amount > remaining:
        raise errors.OverpaymentNotAllowed(
          f"payment amount ({amount}) exceeds remaining balance ({remaining})"
        )

    self._apply(invoice, amount, method, date, notes)
    return invoice

  def record_bulk_payment(self, invoice_ids: Sequence[str], total_amount, method: str, date: datetime,
                          notes: str = "") -> List[Invoice]:
    """
    Spread one payment over several invoices, oldest due date first,
    settling each in full before moving on. Nothing is applied unless the
    whole amount fits in the combined outstanding debt.
    """
    if not invoice_ids:
      raise errors.ValidationError("bulk payment needs at least one invoice")
    amount = positive_money(total_amount)
    check_method(method)

    targets = [self.invoices.get(i) for i in dict.fromkeys(invoice_ids)]
    debt = total(*[max(inv.remaining, ZERO) for inv in targets])
    if amount > debt:
      raise errors.TotalExceedsDebt(f"payment amount ({amount}) exceeds outstanding debt ({debt})")

    touched = []
    left = amount
    for invoice in sorted(targets, key=lambda inv: inv.due_date):
      if left <= 0:
        break
      remaining = invoice.remaining
      if remaining <= 0:
        continue
      share = min(remaining, left)
      self._apply(invoice, share, method, date, notes)
      touched.append(invoice)
      left -= share

    logger.info("bulk payment of %s spread over %d invoice(s)", amount, len(touched))
    return touched

  def payments_for(self, invoice_id: str) -> List[Payment]:
    return list(self.invoices.get(invoice_id).payments)
