# errors.py
"""
Engine error taxonomy. Every class carries the HTTP status the adapter
answers with; the engine itself never looks at it.
"""


class EngineError(Exception):
  status_code = 500


class ValidationError(EngineError):
  status_code = 400


class InvalidAmount(ValidationError):
  pass


class InvalidQuantity(ValidationError):
  pass


class InvalidPaymentMethod(ValidationError):
  pass


class NotFoundError(EngineError):
  status_code = 404


class CustomerNotFound(NotFoundError):
  pass


class ResourceNotFound(NotFoundError):
  pass


class SessionNotFound(NotFoundError):
  pass


class ItemNotFound(NotFoundError):
  pass


class InvoiceNotFound(NotFoundError):
  pass


class SubscriptionNotFound(NotFoundError):
  pass


class ConsumptionNotFound(NotFoundError):
  pass


class ConflictError(EngineError):
  status_code = 409


class ResourceUnavailable(ConflictError):
  pass


class InvalidState(ConflictError):
  pass


class SessionNotActive(ConflictError):
  pass


class InsufficientStock(ConflictError):
  pass


class DuplicateId(ConflictError):
  pass


class BusinessRuleError(EngineError):
  status_code = 422


class TotalExceedsDebt(BusinessRuleError):
  pass


class OverpaymentNotAllowed(BusinessRuleError):
  pass


class InvoiceAlreadyPaid(BusinessRuleError):
  pass
