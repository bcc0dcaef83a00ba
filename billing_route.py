# billing_route.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from engine import CoworkingEngine

router = APIRouter(prefix="/api", tags=["billing"])


def get_engine(request: Request) -> CoworkingEngine:
  return request.app.state.engine


def _match(q: str, *values: str) -> bool:
  ql = q.strip().lower()
  return any(ql in (v or "").lower() for v in values)


# --- response shapes ---

class Out(BaseModel):
  model_config = ConfigDict(from_attributes=True)


class CustomerOut(Out):
  id: str
  name: str
  phone: str
  email: Optional[str] = None
  customer_type: str
  total_sessions: int
  total_spent: Decimal


class ResourceOut(Out):
  id: str
  name: str
  resource_type: str
  rate_per_hour: Decimal
  max_price: Decimal
  is_available: bool


class ItemOut(Out):
  id: str
  name: str
  category: str
  price: Decimal
  quantity: int
  min_stock: int


class SubscriptionOut(Out):
  id: str
  customer_id: str
  plan_type: str
  price: Decimal
  start_date: datetime
  end_date: datetime
  is_active: bool
  status: str
  invoice_id: Optional[str] = None


class ConsumptionOut(Out):
  id: str
  item_id: str
  item_name: str
  quantity: int
  unit_price: Decimal
  added_at: datetime


class SessionOut(Out):
  id: str
  customer_id: str
  resource_id: str
  resource_name: str
  started_at: datetime
  ended_at: Optional[datetime] = None
  is_subscribed: bool
  inventory_total: Decimal
  session_cost: Decimal
  total_amount: Decimal
  duration_minutes: int
  status: str
  consumptions: List[ConsumptionOut] = []


class LineItemOut(Out):
  description: str
  quantity: int
  rate: Decimal
  amount: Decimal


class PaymentOut(Out):
  id: str
  amount: Decimal
  method: str
  date: datetime
  notes: str


class InvoiceOut(Out):
  id: str
  invoice_number: str
  customer_id: str
  session_id: Optional[str] = None
  amount: Decimal
  discount: Decimal
  total: Decimal
  paid_amount: Decimal
  status: str
  due_date: datetime
  paid_date: Optional[datetime] = None
  created_at: datetime
  line_items: List[LineItemOut] = []
  payments: List[PaymentOut] = []


class BalanceOut(BaseModel):
  customer_id: str
  balance: Decimal


# --- request bodies ---

class CustomerIn(BaseModel):
  name: str
  phone: str = ""
  email: Optional[str] = None


class ResourceIn(BaseModel):
  name: str
  resource_type: str = "seat"
  rate_per_hour: Decimal
  max_price: Decimal = Decimal("0")


class ItemIn(BaseModel):
  name: str
  price: Decimal
  quantity: int = 0
  category: str = "other"
  min_stock: int = 0


class StockAdjustIn(BaseModel):
  delta: int


class PriceIn(BaseModel):
  price: Decimal


class SubscriptionIn(BaseModel):
  customer_id: str
  plan_type: str
  price: Decimal
  start_date: Optional[datetime] = None


class PlanChangeIn(BaseModel):
  plan_type: str


class SessionIn(BaseModel):
  customer_id: str
  resource_id: str


class ConsumptionIn(BaseModel):
  item_id: str
  quantity: int


class ConsumptionUpdateIn(BaseModel):
  quantity: int


class LineItemIn(BaseModel):
  description: str
  quantity: int = 1
  rate: Decimal


class InvoiceIn(BaseModel):
  customer_id: str
  line_items: List[LineItemIn]
  discount: Decimal = Decimal("0")
  due_date: Optional[datetime] = None


class PaymentIn(BaseModel):
  amount: Decimal
  method: str = "cash"
  date: Optional[datetime] = None
  notes: str = ""


class BulkPaymentIn(BaseModel):
  invoice_ids: List[str] = Field(default_factory=list)
  amount: Decimal
  method: str = "cash"
  date: Optional[datetime] = None
  notes: str = ""


# --- customers ---

@router.get("/customers", response_model=List[CustomerOut])
def list_customers(q: Optional[str] = None, engine: CoworkingEngine = Depends(get_engine)):
  rows = engine.list_customers()
  if not q:
    return [CustomerOut.model_validate(r) for r in rows]
  return [CustomerOut.model_validate(r) for r in rows if _match(q, r.id, r.name, r.phone, r.customer_type)]


@router.post("/customers", response_model=CustomerOut)
def create_customer(c: CustomerIn, engine: CoworkingEngine = Depends(get_engine)):
  return CustomerOut.model_validate(engine.add_customer(c.name, phone=c.phone, email=c.email))


@router.get("/customers/{customer_id}/balance", response_model=BalanceOut)
def customer_balance(customer_id: str, engine: CoworkingEngine = Depends(get_engine)):
  return BalanceOut(customer_id=customer_id, balance=engine.get_customer_balance(customer_id))


@router.get("/customers/{customer_id}/outstanding", response_model=List[InvoiceOut])
def customer_outstanding(customer_id: str, engine: CoworkingEngine = Depends(get_engine)):
  return [InvoiceOut.model_validate(r) for r in engine.outstanding_invoices(customer_id)]


# --- resources and inventory ---

@router.get("/resources", response_model=List[ResourceOut])
def list_resources(available: bool = False, engine: CoworkingEngine = Depends(get_engine)):
  if available:
    return [ResourceOut.model_validate(r) for r in engine.available_resources()]
  return [ResourceOut.model_validate(r) for r in engine.list_resources()]


@router.post("/resources", response_model=ResourceOut)
def create_resource(r: ResourceIn, engine: CoworkingEngine = Depends(get_engine)):
  resource = engine.add_resource(r.name, r.resource_type, r.rate_per_hour, max_price=r.max_price)
  return ResourceOut.model_validate(resource)


@router.get("/inventory", response_model=List[ItemOut])
def list_inventory(low: bool = False, engine: CoworkingEngine = Depends(get_engine)):
  if low:
    return [ItemOut.model_validate(r) for r in engine.low_stock()]
  return [ItemOut.model_validate(r) for r in engine.list_items()]


@router.post("/inventory", response_model=ItemOut)
def create_item(i: ItemIn, engine: CoworkingEngine = Depends(get_engine)):
  item = engine.add_item(i.name, i.price, quantity=i.quantity, category=i.category, min_stock=i.min_stock)
  return ItemOut.model_validate(item)


@router.post("/inventory/{item_id}/adjust", response_model=ItemOut)
def adjust_item(item_id: str, body: StockAdjustIn, engine: CoworkingEngine = Depends(get_engine)):
  return ItemOut.model_validate(engine.adjust_stock(item_id, body.delta))


@router.put("/inventory/{item_id}/price", response_model=ItemOut)
def set_item_price(item_id: str, body: PriceIn, engine: CoworkingEngine = Depends(get_engine)):
  return ItemOut.model_validate(engine.set_item_price(item_id, body.price))


# --- subscriptions ---

@router.get("/subscriptions", response_model=List[SubscriptionOut])
def list_subscriptions(q: Optional[str] = None, engine: CoworkingEngine = Depends(get_engine)):
  rows = engine.list_subscriptions()
  if not q:
    return [SubscriptionOut.model_validate(r) for r in rows]
  return [SubscriptionOut.model_validate(r) for r in rows if _match(q, r.id, r.plan_type, r.customer_id, r.status)]


@router.post("/subscriptions", response_model=SubscriptionOut)
def create_subscription(s: SubscriptionIn, engine: CoworkingEngine = Depends(get_engine)):
  return SubscriptionOut.model_validate(engine.subscribe(s.customer_id, s.plan_type, s.price, start=s.start_date))


@router.post("/subscriptions/{subscription_id}/cancel", response_model=SubscriptionOut)
def cancel_subscription(subscription_id: str, engine: CoworkingEngine = Depends(get_engine)):
  return SubscriptionOut.model_validate(engine.cancel_subscription(subscription_id))


@router.post("/subscriptions/{subscription_id}/reactivate", response_model=SubscriptionOut)
def reactivate_subscription(subscription_id: str, engine: CoworkingEngine = Depends(get_engine)):
  return SubscriptionOut.model_validate(engine.reactivate_subscription(subscription_id))


@router.put("/subscriptions/{subscription_id}/plan", response_model=SubscriptionOut)
def change_plan(subscription_id: str, body: PlanChangeIn, engine: CoworkingEngine = Depends(get_engine)):
  return SubscriptionOut.model_validate(engine.change_plan(subscription_id, body.plan_type))


@router.post("/subscriptions/expire", response_model=List[SubscriptionOut])
def expire_subscriptions(engine: CoworkingEngine = Depends(get_engine)):
  return [SubscriptionOut.model_validate(r) for r in engine.expire_subscriptions()]


# --- sessions ---

@router.get("/sessions", response_model=List[SessionOut])
def list_sessions(engine: CoworkingEngine = Depends(get_engine)):
  return [SessionOut.model_validate(r) for r in engine.active_sessions()]


@router.post("/sessions", response_model=SessionOut)
def start_session(s: SessionIn, engine: CoworkingEngine = Depends(get_engine)):
  return SessionOut.model_validate(engine.start_session(s.customer_id, s.resource_id))


@router.get("/sessions/{session_id}", response_model=SessionOut)
def get_session(session_id: str, engine: CoworkingEngine = Depends(get_engine)):
  return SessionOut.model_validate(engine.get_session(session_id))


@router.post("/sessions/{session_id}/consumptions", response_model=SessionOut)
def add_consumption(session_id: str, c: ConsumptionIn, engine: CoworkingEngine = Depends(get_engine)):
  return SessionOut.model_validate(engine.add_consumption(session_id, c.item_id, c.quantity))


@router.patch("/sessions/{session_id}/consumptions/{consumption_id}", response_model=SessionOut)
def update_consumption(session_id: str, consumption_id: str, c: ConsumptionUpdateIn,
                       engine: CoworkingEngine = Depends(get_engine)):
  return SessionOut.model_validate(engine.update_consumption(session_id, consumption_id, c.quantity))


@router.delete("/sessions/{session_id}/consumptions/{consumption_id}", response_model=SessionOut)
def remove_consumption(session_id: str, consumption_id: str, engine: CoworkingEngine = Depends(get_engine)):
  return SessionOut.model_validate(engine.remove_consumption(session_id, consumption_id))


@router.post("/sessions/{session_id}/end", response_model=InvoiceOut)
def end_session(session_id: str, engine: CoworkingEngine = Depends(get_engine)):
  return InvoiceOut.model_validate(engine.end_session(session_id))


# --- invoices ---

@router.get("/invoices", response_model=List[InvoiceOut])
def list_invoices(q: Optional[str] = None, customer_id: Optional[str] = None, status: Optional[str] = None,
                  engine: CoworkingEngine = Depends(get_engine)):
  rows = engine.list_invoices(customer_id=customer_id, status=status)
  if not q:
    return [InvoiceOut.model_validate(r) for r in rows]
  return [InvoiceOut.model_validate(r) for r in rows if _match(q, r.id, r.invoice_number, r.customer_id, r.status)]


@router.post("/invoices", response_model=InvoiceOut)
def create_invoice(inv: InvoiceIn, engine: CoworkingEngine = Depends(get_engine)):
  lines = [li.model_dump() for li in inv.line_items]
  invoice = engine.create_invoice(inv.customer_id, lines, discount=inv.discount, due_date=inv.due_date)
  return InvoiceOut.model_validate(invoice)


@router.get("/invoices/{invoice_id}", response_model=InvoiceOut)
def get_invoice(invoice_id: str, engine: CoworkingEngine = Depends(get_engine)):
  return InvoiceOut.model_validate(engine.get_invoice(invoice_id))


@router.get("/invoices/{invoice_id}/payments", response_model=List[PaymentOut])
def invoice_payments(invoice_id: str, engine: CoworkingEngine = Depends(get_engine)):
  return [PaymentOut.model_validate(r) for r in engine.payments_for(invoice_id)]


@router.post("/invoices/bulk-pay", response_model=List[InvoiceOut])
def bulk_pay(p: BulkPaymentIn, engine: CoworkingEngine = Depends(get_engine)):
  touched = engine.record_bulk_payment(p.invoice_ids, p.amount, method=p.method, date=p.date, notes=p.notes)
  return [InvoiceOut.model_validate(r) for r in touched]


@router.post("/invoices/{invoice_id}/pay", response_model=InvoiceOut)
def pay_invoice(invoice_id: str, p: PaymentIn, engine: CoworkingEngine = Depends(get_engine)):
  invoice = engine.record_payment(invoice_id, p.amount, method=p.method, date=p.date, notes=p.notes)
  return InvoiceOut.model_validate(invoice)


@router.post("/seed")
def seed_if_empty(engine: CoworkingEngine = Depends(get_engine)):
  # Seed only if nothing is registered yet
  if engine.list_customers():
    return {"ok": True, "seeded": False}

  engine.add_customer("Ahmed Hassan", phone="01000000001")
  engine.add_customer("Mona Ali", phone="01000000002", email="mona@example.com")

  engine.add_resource("Hot Desk 1", "desk", "25.00")
  engine.add_resource("Seat A", "seat", "15.00", max_price="100.00")
  engine.add_resource("Meeting Room", "room", "100.00")

  engine.add_item("Coffee", "20.00", quantity=50, category="beverage", min_stock=10)
  engine.add_item("Water", "10.00", quantity=100, category="beverage", min_stock=20)
  engine.add_item("Croissant", "35.00", quantity=15, category="snack", min_stock=5)

  return {"ok": True, "seeded": True}
