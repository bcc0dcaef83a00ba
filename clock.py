# clock.py
from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
  return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
  """Aware UTC copy of value; naive values are taken to be UTC already."""
  if value is None:
    return None
  if value.tzinfo is None:
    return value.replace(tzinfo=timezone.utc)
  return value.astimezone(timezone.utc)


class SystemClock:
  def now(self) -> datetime:
    return utc_now()


class FixedClock:
  """Clock for tests: stays put until advanced."""

  def __init__(self, start: datetime):
    self.current = as_utc(start)

  def now(self) -> datetime:
    return self.current

  def advance(self, **kwargs) -> datetime:
    self.current = self.current + timedelta(**kwargs)
    return self.current
