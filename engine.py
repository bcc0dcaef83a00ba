# engine.py
"""
engine.py
The coworking session and billing engine: one object owning customers,
resources, inventory, sessions, invoices and payments.

All mutations and balance reads run under a single re-entrant lock, so
they are applied one at a time and a reader never sees an invoice halfway
through a payment. Each mutation validates before it changes anything and
hands the changed records to the persistence store before releasing the
lock. If the store (or anything else) fails, the records the mutation
could touch are put back the way they were.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

import errors
from balances import CustomerBalanceView
from clock import SystemClock, as_utc
from config import ALLOW_OVERPAYMENT, INVOICE_DUE_DAYS
from db import MemoryStore
from directory import CustomerDirectory, SubscriptionDirectory
from inventory import InventoryCatalog
from invoices import InvoiceFactory
from models import Customer, InventoryItem, Invoice, Payment, Resource, Session, Subscription
from money import non_negative_money
from payments import PaymentReconciler
from resources import ResourceRegistry
from sessions import SessionLedger

logger = logging.getLogger(__name__)

# relationship lists that hold a record's children
CHILDREN = {
  Session: ("consumptions",),
  Invoice: ("line_items", "payments"),
}


class Rollback:
  """
  Field values of existing records and the contents of registries, taken
  before a mutation so they can be put back if it fails part way.
  """

  def __init__(self):
    self._records = []
    self._containers = []

  def keep(self, *records) -> None:
    for record in records:
      if record is None:
        continue
      fields = {name: getattr(record, name) for name in type(record).model_fields}
      children = {name: list(getattr(record, name)) for name in CHILDREN.get(type(record), ())}
      self._records.append((record, fields, children))

  def keep_all(self, *containers) -> None:
    for container in containers:
      self._containers.append((container, container.copy()))

  def restore(self) -> None:
    for container, saved in reversed(self._containers):
      container.clear()
      if isinstance(container, dict):
        container.update(saved)
      else:
        container.extend(saved)
    for record, fields, children in reversed(self._records):
      for name, value in fields.items():
        setattr(record, name, value)
      for name, items in children.items():
        getattr(record, name)[:] = items


class CoworkingEngine:
  def __init__(self, store=None, clock=None, due_days: int = INVOICE_DUE_DAYS,
               allow_overpayment: bool = ALLOW_OVERPAYMENT):
    self.store = store if store is not None else MemoryStore()
    self.clock = clock if clock is not None else SystemClock()

    self.customers = CustomerDirectory()
    self.subscriptions = SubscriptionDirectory()
    self.resources = ResourceRegistry()
    self.inventory = InventoryCatalog()
    self.sessions = SessionLedger(self.customers, self.subscriptions, self.resources, self.inventory)
    self.invoices = InvoiceFactory(due_days=due_days)
    self.payments = PaymentReconciler(self.invoices, self.customers, allow_overpayment=allow_overpayment)
    self.balances = CustomerBalanceView(self.invoices)

    self._lock = threading.RLock()

  @contextmanager
  def _mutation(self, op: str):
    with self._lock:
      undo = Rollback()
      try:
        yield undo
      except Exception as exc:
        undo.restore()
        self.balances.clear()
        if isinstance(exc, errors.EngineError):
          logger.warning("%s rejected: %s: %s", op, type(exc).__name__, exc)
        else:
          logger.exception("%s failed, in-memory state rolled back", op)
        raise

  def _keep_session(self, undo: Rollback, session_id: str) -> None:
    session = self.sessions.active.get(session_id)
    if session is None:
      return
    undo.keep(
      session,
      *session.consumptions,
      *[self.inventory.items.get(c.item_id) for c in session.consumptions],
      self.resources.resources.get(session.resource_id),
      self.customers.customers.get(session.customer_id),
    )

  # --- customers, resources, inventory ---

  def add_customer(self, name: str, phone: str = "", email: Optional[str] = None,
                   customer_id: Optional[str] = None) -> Customer:
    with self._mutation("add_customer") as undo:
      undo.keep_all(self.customers.customers)
      customer = self.customers.add(name, phone=phone, email=email, customer_id=customer_id)
      self.store.save(customer)
      return customer

  def get_customer(self, customer_id: str) -> Customer:
    with self._lock:
      return self.customers.lookup(customer_id)

  def list_customers(self) -> List[Customer]:
    with self._lock:
      return self.customers.all()

  def add_resource(self, name: str, resource_type: str, rate_per_hour, max_price=0,
                   resource_id: Optional[str] = None) -> Resource:
    with self._mutation("add_resource") as undo:
      undo.keep_all(self.resources.resources)
      resource = self.resources.add(name, resource_type, rate_per_hour, max_price=max_price, resource_id=resource_id)
      self.store.save(resource)
      return resource

  def list_resources(self) -> List[Resource]:
    with self._lock:
      return self.resources.all()

  def available_resources(self) -> List[Resource]:
    with self._lock:
      return self.resources.available()

  def add_item(self, name: str, price, quantity: int = 0, category: str = "other", min_stock: int = 0,
               item_id: Optional[str] = None) -> InventoryItem:
    with self._mutation("add_item") as undo:
      undo.keep_all(self.inventory.items)
      item = self.inventory.add(name, price, quantity=quantity, category=category, min_stock=min_stock,
                                item_id=item_id)
      self.store.save(item)
      return item

  def list_items(self) -> List[InventoryItem]:
    with self._lock:
      return self.inventory.all()

  def adjust_stock(self, item_id: str, delta: int) -> InventoryItem:
    with self._mutation("adjust_stock") as undo:
      undo.keep(self.inventory.items.get(item_id))
      item = self.inventory.adjust(item_id, delta)
      self.store.save(item)
      logger.info("stock of %s adjusted by %+d to %d", item_id, delta, item.quantity)
      return item

  def set_item_price(self, item_id: str, price) -> InventoryItem:
    with self._mutation("set_item_price") as undo:
      undo.keep(self.inventory.items.get(item_id))
      item = self.inventory.set_price(item_id, price)
      self.store.save(item)
      return item

  def low_stock(self) -> List[InventoryItem]:
    with self._lock:
      return self.inventory.low_stock()

  # --- subscriptions ---

  def subscribe(self, customer_id: str, plan_type: str, price, start: Optional[datetime] = None) -> Subscription:
    with self._mutation("subscribe") as undo:
      now = self.clock.now()
      start = as_utc(start) or now
      customer = self.customers.lookup(customer_id)
      self.subscriptions.plan_end(plan_type, start)
      price = non_negative_money(price)

      undo.keep(customer, *self.subscriptions.for_customer(customer_id))
      undo.keep_all(self.subscriptions.subscriptions, self.invoices.issued)
      invoice = self.invoices.create_manual(
        customer_id,
        [{"description": f"Subscription: {plan_type} Plan", "quantity": 1, "rate": price}],
        now,
        due_date=now,
        prefix="SUB",
      )
      sub = self.subscriptions.create(customer_id, plan_type, price, start)
      sub.invoice_id = invoice.id
      customer.customer_type = plan_type
      self.balances.invalidate(customer_id)

      self.store.save(invoice, customer, *self.subscriptions.for_customer(customer_id))
      logger.info("subscription %s (%s) for %s until %s", sub.id, plan_type, customer_id, sub.end_date.date())
      return sub

  def list_subscriptions(self) -> List[Subscription]:
    with self._lock:
      return self.subscriptions.all()

  def cancel_subscription(self, subscription_id: str) -> Subscription:
    with self._mutation("cancel_subscription") as undo:
      sub = self.subscriptions.get(subscription_id)
      customer = self.customers.customers.get(sub.customer_id)
      undo.keep(sub, customer)
      self.subscriptions.cancel(subscription_id)
      still_active = [s for s in self.subscriptions.for_customer(sub.customer_id) if s.is_active]
      if customer is not None and not still_active:
        customer.customer_type = "visitor"
        self.store.save(customer)
      self.store.save(sub)
      logger.info("subscription %s cancelled", subscription_id)
      return sub

  def reactivate_subscription(self, subscription_id: str) -> Subscription:
    with self._mutation("reactivate_subscription") as undo:
      sub = self.subscriptions.get(subscription_id)
      customer = self.customers.customers.get(sub.customer_id)
      undo.keep(customer, *self.subscriptions.for_customer(sub.customer_id))
      self.subscriptions.reactivate(subscription_id)
      if customer is not None:
        customer.customer_type = sub.plan_type
        self.store.save(customer)
      self.store.save(*self.subscriptions.for_customer(sub.customer_id))
      logger.info("subscription %s reactivated", subscription_id)
      return sub

  def change_plan(self, subscription_id: str, plan_type: str) -> Subscription:
    with self._mutation("change_plan") as undo:
      sub = self.subscriptions.get(subscription_id)
      customer = self.customers.customers.get(sub.customer_id)
      undo.keep(sub, customer)
      self.subscriptions.change_plan(subscription_id, plan_type)
      records = [sub]
      if customer is not None and sub.is_active:
        customer.customer_type = plan_type
        records.append(customer)
      self.store.save(*records)
      logger.info("subscription %s moved to %s plan, ends %s", subscription_id, plan_type, sub.end_date.date())
      return sub

  def expire_subscriptions(self) -> List[Subscription]:
    with self._mutation("expire_subscriptions") as undo:
      undo.keep(*self.subscriptions.all())
      expired = self.subscriptions.expire(self.clock.now())
      if expired:
        self.store.save(*expired)
        logger.info("%d subscription(s) expired", len(expired))
      return expired

  # --- sessions ---

  def start_session(self, customer_id: str, resource_id: str) -> Session:
    with self._mutation("start_session") as undo:
      undo.keep(self.resources.resources.get(resource_id))
      undo.keep_all(self.sessions.active)
      session = self.sessions.start(customer_id, resource_id, self.clock.now())
      self.store.save(self.resources.get(resource_id), session)
      return session

  def add_consumption(self, session_id: str, item_id: str, quantity: int) -> Session:
    with self._mutation("add_consumption") as undo:
      self._keep_session(undo, session_id)
      undo.keep(self.inventory.items.get(item_id))
      session = self.sessions.add_consumption(session_id, item_id, quantity, self.clock.now())
      self.store.save(self.inventory.get(item_id), session)
      return session

  def remove_consumption(self, session_id: str, consumption_id: str) -> Session:
    with self._mutation("remove_consumption") as undo:
      session = self.sessions.get_active(session_id)
      self._keep_session(undo, session_id)
      item_ids = {c.item_id for c in session.consumptions}
      session = self.sessions.remove_consumption(session_id, consumption_id)
      self.store.save(*[self.inventory.get(i) for i in item_ids], session)
      return session

  def update_consumption(self, session_id: str, consumption_id: str, quantity: int) -> Session:
    with self._mutation("update_consumption") as undo:
      session = self.sessions.get_active(session_id)
      self._keep_session(undo, session_id)
      item_ids = {c.item_id for c in session.consumptions}
      session = self.sessions.update_consumption(session_id, consumption_id, quantity)
      self.store.save(*[self.inventory.get(i) for i in item_ids], session)
      return session

  def end_session(self, session_id: str) -> Invoice:
    with self._mutation("end_session") as undo:
      self._keep_session(undo, session_id)
      undo.keep_all(self.sessions.active, self.sessions.closed, self.invoices.issued)
      now = self.clock.now()
      closed = self.sessions.end(session_id, now)
      invoice = self.invoices.create_from_session(closed, now)
      self.balances.invalidate(closed.customer_id)
      self.store.save(
        self.resources.get(closed.resource_id), closed, invoice, self.customers.lookup(closed.customer_id),
      )
      return invoice

  def get_session(self, session_id: str) -> Session:
    with self._lock:
      return self.sessions.get(session_id)

  def active_sessions(self) -> List[Session]:
    with self._lock:
      return self.sessions.active_sessions()

  # --- invoices and payments ---

  def create_invoice(self, customer_id: str, line_items: Iterable[dict], discount=0,
                     due_date: Optional[datetime] = None) -> Invoice:
    with self._mutation("create_invoice") as undo:
      self.customers.lookup(customer_id)
      undo.keep_all(self.invoices.issued)
      invoice = self.invoices.create_manual(customer_id, list(line_items), self.clock.now(), discount=discount,
                                            due_date=as_utc(due_date))
      self.balances.invalidate(customer_id)
      self.store.save(invoice)
      return invoice

  def _keep_invoices(self, undo: Rollback, invoice_ids: Iterable[str]) -> None:
    invoices = [self.invoices.issued.get(i) for i in invoice_ids]
    undo.keep(*invoices, *[self.customers.customers.get(inv.customer_id) for inv in invoices if inv is not None])
    undo.keep_all(self.payments.payments)

  def record_payment(self, invoice_id: str, amount, method: str = "cash", date: Optional[datetime] = None,
                     notes: str = "") -> Invoice:
    with self._mutation("record_payment") as undo:
      self._keep_invoices(undo, [invoice_id])
      date = as_utc(date) or self.clock.now()
      invoice = self.payments.record_payment(invoice_id, amount, method, date, notes)
      self.balances.invalidate(invoice.customer_id)
      self.store.save(invoice, self.customers.lookup(invoice.customer_id))
      return invoice

  def record_bulk_payment(self, invoice_ids: Sequence[str], total_amount, method: str = "cash",
                          date: Optional[datetime] = None, notes: str = "") -> List[Invoice]:
    with self._mutation("record_bulk_payment") as undo:
      self._keep_invoices(undo, dict.fromkeys(invoice_ids))
      date = as_utc(date) or self.clock.now()
      touched = self.payments.record_bulk_payment(invoice_ids, total_amount, method, date, notes)
      customer_ids = dict.fromkeys(inv.customer_id for inv in touched)
      for customer_id in customer_ids:
        self.balances.invalidate(customer_id)
      self.store.save(*touched, *[self.customers.lookup(c) for c in customer_ids])
      return touched

  def get_invoice(self, invoice_id: str) -> Invoice:
    with self._lock:
      return self.invoices.get(invoice_id)

  def payments_for(self, invoice_id: str) -> List[Payment]:
    with self._lock:
      return self.payments.payments_for(invoice_id)

  def list_invoices(self, customer_id: Optional[str] = None, status: Optional[str] = None) -> List[Invoice]:
    with self._lock:
      rows = self.invoices.for_customer(customer_id) if customer_id else self.invoices.all()
      if status:
        rows = [r for r in rows if r.status == status]
      return sorted(rows, key=lambda inv: inv.created_at, reverse=True)

  def outstanding_invoices(self, customer_id: str) -> List[Invoice]:
    with self._lock:
      self.customers.lookup(customer_id)
      rows = [inv for inv in self.invoices.for_customer(customer_id) if inv.remaining > 0]
      return sorted(rows, key=lambda inv: inv.due_date)

  def get_customer_balance(self, customer_id: str) -> Decimal:
    with self._lock:
      self.customers.lookup(customer_id)
      return self.balances.balance(customer_id)
