# sessions.py
import itertools
import logging
from datetime import datetime
from typing import Dict, List

import errors
from directory import CustomerDirectory, SubscriptionDirectory
from inventory import InventoryCatalog, check_quantity
from models import Consumption, Session
from money import compute_session_cost, duration_minutes, total
from resources import ResourceRegistry

logger = logging.getLogger(__name__)


class SessionLedger:
  """
  Owns the active sessions.

  Every method validates everything it can before touching state, so a
  failure leaves resources, stock and sessions as they were. Closed
  sessions move to `closed` and are never changed again.
  """

  def __init__(self, customers: CustomerDirectory, subscriptions: SubscriptionDirectory,
               resources: ResourceRegistry, inventory: InventoryCatalog):
    self.customers = customers
    self.subscriptions = subscriptions
    self.resources = resources
    self.inventory = inventory
    self.active: Dict[str, Session] = {}
    self.closed: Dict[str, Session] = {}
    self._ids = itertools.count(1)
    self._consumption_ids = itertools.count(1)

  def get(self, session_id: str) -> Session:
    session = self.active.get(session_id) or self.closed.get(session_id)
    if session is None:
      raise errors.SessionNotFound(f"session not found: {session_id}")
    return session

  def get_active(self, session_id: str) -> Session:
    session = self.get(session_id)
    if not session.is_active:
      raise errors.SessionNotActive(f"session is already closed: {session_id}")
    return session

  def active_sessions(self) -> List[Session]:
    return list(self.active.values())

  def start(self, customer_id: str, resource_id: str, now: datetime) -> Session:
    self.customers.lookup(customer_id)
    resource = self.resources.check_available(resource_id)

    # frozen for the life of the session
    is_subscribed = self.subscriptions.active_subscription_for(customer_id, now) is not None

    self.resources.allocate(resource_id)
    session = Session(
      id=f"SES-{next(self._ids)}",
      customer_id=customer_id,
      resource_id=resource_id,
      resource_name=resource.name,
      resource_rate=resource.rate_per_hour,
      resource_max_price=resource.max_price,
      started_at=now,
      is_subscribed=is_subscribed,
    )
    self.active[session.id] = session
    logger.info("session %s started: customer=%s resource=%s subscribed=%s",
                session.id, customer_id, resource_id, is_subscribed)
    return session

  def add_consumption(self, session_id: str, item_id: str, quantity: int, now: datetime) -> Session:
    session = self.get_active(session_id)
    item = self.inventory.deduct(item_id, quantity)

    consumption = Consumption(
      id=f"CON-{next(self._consumption_ids)}",
      session_id=session.id,
      item_id=item.id,
      item_name=item.name,
      quantity=quantity,
      unit_price=item.price,
      added_at=now,
    )
    session.consumptions.append(consumption)
    session.inventory_total = total(session.inventory_total, consumption.amount)
    logger.info("session %s: %d x %s at %s", session.id, quantity, item.id, item.price)
    return session

  def _find_consumption(self, session: Session, consumption_id: str) -> Consumption:
    for consumption in session.consumptions:
      if consumption.id == consumption_id:
        return consumption
    raise errors.ConsumptionNotFound(f"consumption {consumption_id} not found in session {session.id}")

  def remove_consumption(self, session_id: str, consumption_id: str) -> Session:
    session = self.get_active(session_id)
    consumption = self._find_consumption(session, consumption_id)

    self.inventory.restore(consumption.item_id, consumption.quantity)
    session.consumptions.remove(consumption)
    session.inventory_total = total(*[c.amount for c in session.consumptions])
    logger.info("session %s: removed %s, %d x %s back in stock",
                session.id, consumption.id, consumption.quantity, consumption.item_id)
    return session

  def update_consumption(self, session_id: str, consumption_id: str, quantity: int) -> Session:
    if isinstance(quantity, int) and not isinstance(quantity, bool) and quantity <= 0:
      return self.remove_consumption(session_id, consumption_id)

    check_quantity(quantity)
    session = self.get_active(session_id)
    consumption = self._find_consumption(session, consumption_id)

    diff = quantity - consumption.quantity
    if diff > 0:
      self.inventory.deduct(consumption.item_id, diff)
    elif diff < 0:
      self.inventory.restore(consumption.item_id, -diff)

    consumption.quantity = quantity
    session.inventory_total = total(*[c.amount for c in session.consumptions])
    return session

  def end(self, session_id: str, now: datetime) -> Session:
    session = self.get_active(session_id)
    customer = self.customers.lookup(session.customer_id)
    cost = compute_session_cost(
      session.started_at, now, session.resource_rate, session.is_subscribed, session.resource_max_price,
    )

    self.resources.release(session.resource_id)
    session.ended_at = now
    session.duration_minutes = duration_minutes(session.started_at, now)
    session.session_cost = cost
    session.total_amount = total(cost, session.inventory_total)
    session.status = "completed"

    del self.active[session.id]
    self.closed[session.id] = session
    customer.total_sessions += 1
    logger.info("session %s ended after %d min: time=%s inventory=%s total=%s",
                session.id, session.duration_minutes, cost, session.inventory_total, session.total_amount)
    return session
