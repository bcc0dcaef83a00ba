# directory.py
import itertools
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import errors
from config import PLAN_DAYS
from models import Customer, Subscription

logger = logging.getLogger(__name__)


class CustomerDirectory:
  def __init__(self):
    self.customers: Dict[str, Customer] = {}
    self._ids = itertools.count(901)

  def add(self, name: str, phone: str = "", email: Optional[str] = None, customer_id: Optional[str] = None) -> Customer:
    if not name or not name.strip():
      raise errors.ValidationError("customer name is required")
    customer_id = customer_id or f"CUST-{next(self._ids)}"
    if customer_id in self.customers:
      raise errors.DuplicateId(f"customer id already exists: {customer_id}")
    customer = Customer(id=customer_id, name=name.strip(), phone=phone.strip(), email=email)
    self.customers[customer_id] = customer
    return customer

  def lookup(self, customer_id: str) -> Customer:
    customer = self.customers.get(customer_id)
    if customer is None:
      raise errors.CustomerNotFound(f"customer not found: {customer_id}")
    return customer

  def all(self) -> List[Customer]:
    return list(self.customers.values())


class SubscriptionDirectory:
  """
  Subscriptions per customer. At most one is active at a time; creating a
  new one deactivates the old. Session billing asks active_subscription_for
  exactly once, when the session starts.
  """

  def __init__(self):
    self.subscriptions: Dict[str, Subscription] = {}
    self._ids = itertools.count(2201)

  def get(self, subscription_id: str) -> Subscription:
    sub = self.subscriptions.get(subscription_id)
    if sub is None:
      raise errors.SubscriptionNotFound(f"subscription not found: {subscription_id}")
    return sub

  def for_customer(self, customer_id: str) -> List[Subscription]:
    return [s for s in self.subscriptions.values() if s.customer_id == customer_id]

  def active_subscription_for(self, customer_id: str, as_of: datetime) -> Optional[Subscription]:
    for sub in self.for_customer(customer_id):
      if sub.covers(as_of):
        return sub
    return None

  def plan_end(self, plan_type: str, start: datetime) -> datetime:
    days = PLAN_DAYS.get(plan_type)
    if days is None:
      raise errors.ValidationError(f"unknown plan type: {plan_type}")
    return start + timedelta(days=days)

  def create(self, customer_id: str, plan_type: str, price, start: datetime) -> Subscription:
    end = self.plan_end(plan_type, start)
    for sub in self.for_customer(customer_id):
      if sub.is_active:
        sub.is_active = False
        sub.status = "inactive"

    sub = Subscription(
      id=f"SUB-{next(self._ids)}",
      customer_id=customer_id,
      plan_type=plan_type,
      price=price,
      start_date=start,
      end_date=end,
      is_active=True,
      status="active",
    )
    self.subscriptions[sub.id] = sub
    return sub

  def cancel(self, subscription_id: str) -> Subscription:
    sub = self.get(subscription_id)
    sub.is_active = False
    sub.status = "inactive"
    return sub

  def reactivate(self, subscription_id: str) -> Subscription:
    sub = self.get(subscription_id)
    for other in self.for_customer(sub.customer_id):
      if other.is_active and other.id != sub.id:
        other.is_active = False
        other.status = "inactive"
    sub.is_active = True
    sub.status = "active"
    return sub

  def change_plan(self, subscription_id: str, plan_type: str) -> Subscription:
    sub = self.get(subscription_id)
    end = self.plan_end(plan_type, sub.start_date)
    sub.plan_type = plan_type
    sub.end_date = end
    return sub

  def all(self) -> List[Subscription]:
    return list(self.subscriptions.values())

  def expire(self, as_of: datetime) -> List[Subscription]:
    expired = []
    for sub in self.subscriptions.values():
      if sub.is_active and sub.end_date <= as_of:
        sub.is_active = False
        sub.status = "expired"
        expired.append(sub)
    return expired
