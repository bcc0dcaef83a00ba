# money.py
"""
Money helpers and the session time cost.

Rounding policy: every amount is a Decimal with 2 places, ROUND_HALF_UP.
The session cost is computed from exact elapsed microseconds and rounded
once, so the result never depends on float accumulation.
"""

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

import errors

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")
_MICROS_PER_HOUR = Decimal(3_600_000_000)
_ONE_MICRO = timedelta(microseconds=1)


def to_money(value) -> Decimal:
  if isinstance(value, float):
    value = repr(value)
  try:
    amount = Decimal(value)
  except (InvalidOperation, TypeError, ValueError):
    raise errors.InvalidAmount(f"not a money amount: {value!r}")
  if not amount.is_finite():
    raise errors.InvalidAmount(f"not a money amount: {value!r}")
  return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def positive_money(value) -> Decimal:
  amount = to_money(value)
  if amount <= 0:
    raise errors.InvalidAmount("amount must be positive")
  return amount


def non_negative_money(value) -> Decimal:
  amount = to_money(value)
  if amount < 0:
    raise errors.InvalidAmount("amount must not be negative")
  return amount


def duration_minutes(started_at: datetime, ended_at: datetime) -> int:
  minutes = Decimal((ended_at - started_at) // _ONE_MICRO) / Decimal(60_000_000)
  return int(minutes.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def compute_session_cost(
  started_at: datetime,
  ended_at: datetime,
  rate_per_hour: Decimal,
  is_subscribed: bool,
  daily_cap: Optional[Decimal] = None,
) -> Decimal:
  if ended_at < started_at:
    raise errors.ValidationError("session cannot end before it started")
  if is_subscribed:
    return ZERO

  micros = (ended_at - started_at) // _ONE_MICRO
  cost = (Decimal(micros) * Decimal(rate_per_hour) / _MICROS_PER_HOUR).quantize(CENTS, rounding=ROUND_HALF_UP)

  # daily cap, 0 means no cap
  if daily_cap and cost > daily_cap:
    return to_money(daily_cap)
  return cost


def total(*amounts: Decimal) -> Decimal:
  return sum(amounts, ZERO).quantize(CENTS, rounding=ROUND_HALF_UP)
