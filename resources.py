# resources.py
import itertools
import logging
from typing import Dict, List, Optional

import errors
from config import RESOURCE_TYPES
from models import Resource
from money import non_negative_money

logger = logging.getLogger(__name__)


class ResourceRegistry:
  """
  Allocation state of bookable resources. A resource is unavailable
  exactly while one active session holds it.
  """

  def __init__(self):
    self.resources: Dict[str, Resource] = {}
    self._ids = itertools.count(1)

  def add(self, name: str, resource_type: str, rate_per_hour, max_price=0,
          resource_id: Optional[str] = None) -> Resource:
    if not name or not name.strip():
      raise errors.ValidationError("resource name is required")
    if resource_type not in RESOURCE_TYPES:
      raise errors.ValidationError(f"unknown resource type: {resource_type}")
    rate = non_negative_money(rate_per_hour)
    cap = non_negative_money(max_price)
    resource_id = resource_id or f"RES-{next(self._ids)}"
    if resource_id in self.resources:
      raise errors.DuplicateId(f"resource id already exists: {resource_id}")

    resource = Resource(
      id=resource_id, name=name.strip(), resource_type=resource_type, rate_per_hour=rate, max_price=cap,
    )
    self.resources[resource_id] = resource
    return resource

  def get(self, resource_id: str) -> Resource:
    resource = self.resources.get(resource_id)
    if resource is None:
      raise errors.ResourceNotFound(f"resource not found: {resource_id}")
    return resource

  def check_available(self, resource_id: str) -> Resource:
    resource = self.get(resource_id)
    if not resource.is_available:
      raise errors.ResourceUnavailable(f"resource is already occupied: {resource_id}")
    return resource

  def allocate(self, resource_id: str) -> Resource:
    resource = self.check_available(resource_id)
    resource.is_available = False
    return resource

  def release(self, resource_id: str) -> Resource:
    resource = self.get(resource_id)
    if resource.is_available:
      raise errors.InvalidState(f"resource is not allocated: {resource_id}")
    resource.is_available = True
    return resource

  def available(self) -> List[Resource]:
    return [r for r in self.resources.values() if r.is_available]

  def all(self) -> List[Resource]:
    return list(self.resources.values())
