# balances.py
import logging
from decimal import Decimal
from typing import Dict

from invoices import InvoiceFactory
from money import total

logger = logging.getLogger(__name__)


class CustomerBalanceView:
  """Outstanding balance per customer: sum of (total - paid) over their invoices."""

  def __init__(self, invoices: InvoiceFactory):
    self.invoices = invoices
    self._cache: Dict[str, Decimal] = {}

  def balance(self, customer_id: str) -> Decimal:
    cached = self._cache.get(customer_id)
    if cached is not None:
      logger.debug("balance cache hit for %s", customer_id)
      return cached
    value = total(*[inv.total - inv.paid_amount for inv in self.invoices.for_customer(customer_id)])
    self._cache[customer_id] = value
    return value

  def invalidate(self, customer_id: str) -> None:
    self._cache.pop(customer_id, None)

  def clear(self) -> None:
    self._cache.clear()
