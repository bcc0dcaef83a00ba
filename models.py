# models.py
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field, Relationship

from clock import utc_now
from money import ZERO, total


def money_field(**kwargs):
  return Field(default=ZERO, max_digits=12, decimal_places=2, **kwargs)


def utc_field(**kwargs):
  return Field(sa_type=DateTime(timezone=True), **kwargs)


class Customer(SQLModel, table=True):
  id: str = Field(primary_key=True, index=True)  # CUST-901
  name: str
  phone: str = ""
  email: Optional[str] = None
  customer_type: str = "visitor"  # visitor|weekly|half-monthly|monthly
  total_sessions: int = 0
  total_spent: Decimal = money_field()
  created_at: datetime = utc_field(default_factory=utc_now)


class Resource(SQLModel, table=True):
  id: str = Field(primary_key=True, index=True)  # RES-1
  name: str
  resource_type: str = "seat"  # seat|desk|room
  rate_per_hour: Decimal = money_field()
  max_price: Decimal = money_field()  # daily cap, 0 = none
  is_available: bool = True


class Subscription(SQLModel, table=True):
  id: str = Field(primary_key=True, index=True)  # SUB-2201
  customer_id: str = Field(index=True)
  plan_type: str  # weekly|half-monthly|monthly
  price: Decimal = money_field()
  start_date: datetime = utc_field()
  end_date: datetime = utc_field()
  is_active: bool = False
  status: str = "inactive"  # active|expired|inactive
  invoice_id: Optional[str] = None

  def covers(self, as_of: datetime) -> bool:
    return self.is_active and self.start_date <= as_of < self.end_date


class InventoryItem(SQLModel, table=True):
  id: str = Field(primary_key=True, index=True)
  name: str
  category: str = "other"  # beverage|snack|other
  price: Decimal = money_field()
  quantity: int = 0
  min_stock: int = 0

  @property
  def is_low(self) -> bool:
    return self.quantity <= self.min_stock


class Session(SQLModel, table=True):
  id: str = Field(primary_key=True, index=True)  # SES-1
  customer_id: str = Field(index=True)
  resource_id: str = Field(index=True)
  resource_name: str = ""
  resource_rate: Decimal = money_field()
  resource_max_price: Decimal = money_field()
  started_at: datetime = utc_field()
  ended_at: Optional[datetime] = utc_field(default=None)
  is_subscribed: bool = False
  inventory_total: Decimal = money_field()
  session_cost: Decimal = money_field()
  total_amount: Decimal = money_field()
  duration_minutes: int = 0
  status: str = "active"  # active|completed

  consumptions: List["Consumption"] = Relationship(
    back_populates="session",
    sa_relationship_kwargs={"cascade": "all, delete-orphan"},
  )

  @property
  def is_active(self) -> bool:
    return self.status == "active"


class Consumption(SQLModel, table=True):
  id: str = Field(primary_key=True, index=True)
  session_id: str = Field(foreign_key="session.id", index=True)
  item_id: str = Field(index=True)
  item_name: str
  quantity: int
  unit_price: Decimal = money_field()  # price at the time of consumption
  added_at: datetime = utc_field()

  session: Optional[Session] = Relationship(back_populates="consumptions")

  @property
  def amount(self) -> Decimal:
    return total(self.unit_price * self.quantity)


class Invoice(SQLModel, table=True):
  id: str = Field(primary_key=True, index=True)
  invoice_number: str = Field(index=True)  # INV-10428
  customer_id: str = Field(index=True)
  session_id: Optional[str] = None
  amount: Decimal = money_field()
  discount: Decimal = money_field()
  total: Decimal = money_field()
  paid_amount: Decimal = money_field()
  status: str = "unpaid"  # unpaid|partial|paid
  due_date: datetime = utc_field()
  paid_date: Optional[datetime] = utc_field(default=None)
  created_at: datetime = utc_field(default_factory=utc_now)

  line_items: List["LineItem"] = Relationship(back_populates="invoice")
  payments: List["Payment"] = Relationship(back_populates="invoice")

  @property
  def remaining(self) -> Decimal:
    return self.total - self.paid_amount


class LineItem(SQLModel, table=True):
  id: str = Field(primary_key=True, index=True)
  invoice_id: str = Field(foreign_key="invoice.id", index=True)
  description: str
  quantity: int = 1
  rate: Decimal = money_field()
  amount: Decimal = money_field()

  invoice: Optional[Invoice] = Relationship(back_populates="line_items")


class Payment(SQLModel, table=True):
  id: str = Field(primary_key=True, index=True)
  invoice_id: str = Field(foreign_key="invoice.id", index=True)
  amount: Decimal = Field(max_digits=12, decimal_places=2)
  method: str  # cash|card|transfer
  date: datetime = utc_field()
  notes: str = ""

  invoice: Optional[Invoice] = Relationship(back_populates="payments")


def invoice_status(paid_amount: Decimal, invoice_total: Decimal) -> str:
  if paid_amount >= invoice_total:
    return "paid"
  if paid_amount > 0:
    return "partial"
  return "unpaid"
