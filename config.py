# config.py
import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
  return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
INVOICE_DUE_DAYS = int(os.getenv("INVOICE_DUE_DAYS", "7"))
ALLOW_OVERPAYMENT = _flag("ALLOW_OVERPAYMENT")
CURRENCY = os.getenv("CURRENCY", "EGP").strip()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()
CORS_ORIGINS = [
  x.strip()
  for x in os.getenv("CORS_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173").split(",")
  if x.strip()
]

# Plan durations in days (used for subscription end date)
PLAN_DAYS = {
  "weekly": 7,
  "half-monthly": 15,
  "monthly": 30,
}

PAYMENT_METHODS = ("cash", "card", "transfer")
RESOURCE_TYPES = ("seat", "desk", "room")
