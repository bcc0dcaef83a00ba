# inventory.py
import itertools
import logging
import threading
from decimal import Decimal
from typing import Dict, List, Optional

import errors
from models import InventoryItem
from money import non_negative_money

logger = logging.getLogger(__name__)


def check_quantity(quantity) -> int:
  if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
    raise errors.InvalidQuantity("quantity must be a positive integer")
  return quantity


class InventoryCatalog:
  """
  Item stock and price. deduct() is the only way stock goes down for a
  session and it checks and deducts under one lock, so concurrent callers
  can never oversell.
  """

  def __init__(self):
    self.items: Dict[str, InventoryItem] = {}
    self._ids = itertools.count(1)
    self._lock = threading.Lock()

  def add(self, name: str, price, quantity: int = 0, category: str = "other", min_stock: int = 0,
          item_id: Optional[str] = None) -> InventoryItem:
    if not name or not name.strip():
      raise errors.ValidationError("item name is required")
    if quantity < 0 or min_stock < 0:
      raise errors.InvalidQuantity("stock figures must not be negative")
    price = non_negative_money(price)
    item_id = item_id or f"ITEM-{next(self._ids)}"
    with self._lock:
      if item_id in self.items:
        raise errors.DuplicateId(f"inventory item id already exists: {item_id}")
      item = InventoryItem(id=item_id, name=name.strip(), category=category, price=price,
                           quantity=quantity, min_stock=min_stock)
      self.items[item_id] = item
    return item

  def get(self, item_id: str) -> InventoryItem:
    item = self.items.get(item_id)
    if item is None:
      raise errors.ItemNotFound(f"inventory item not found: {item_id}")
    return item

  def current_price(self, item_id: str) -> Decimal:
    return self.get(item_id).price

  def current_stock(self, item_id: str) -> int:
    return self.get(item_id).quantity

  def set_price(self, item_id: str, price) -> InventoryItem:
    item = self.get(item_id)
    item.price = non_negative_money(price)
    return item

  def deduct(self, item_id: str, quantity: int) -> InventoryItem:
    check_quantity(quantity)
    with self._lock:
      item = self.get(item_id)
      if item.quantity < quantity:
        raise errors.InsufficientStock(f"insufficient stock: only {item.quantity} available")
      item.quantity -= quantity
      return item

  def restore(self, item_id: str, quantity: int) -> InventoryItem:
    check_quantity(quantity)
    with self._lock:
      item = self.get(item_id)
      item.quantity += quantity
      return item

  def adjust(self, item_id: str, delta: int) -> InventoryItem:
    with self._lock:
      item = self.get(item_id)
      if item.quantity + delta < 0:
        raise errors.InsufficientStock(f"cannot adjust below zero: only {item.quantity} in stock")
      item.quantity += delta
      return item

  def low_stock(self) -> List[InventoryItem]:
    return [i for i in self.items.values() if i.is_low]

  def all(self) -> List[InventoryItem]:
    return list(self.items.values())
