# db.py
import logging
from typing import Dict, List, Tuple

from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from config import DATABASE_URL
import models  # noqa: F401  registers the tables on SQLModel.metadata

logger = logging.getLogger(__name__)


def create_db_engine(url: str = DATABASE_URL):
  if not url:
    raise RuntimeError("DATABASE_URL is not set in backend .env")
  kwargs = {"echo": False, "pool_pre_ping": True}
  if url.startswith("sqlite"):
    kwargs["connect_args"] = {"check_same_thread": False}
    if url in ("sqlite://", "sqlite:///:memory:"):
      kwargs["poolclass"] = StaticPool
  return create_engine(url, **kwargs)


def init_db(engine) -> None:
  SQLModel.metadata.create_all(engine)


def get_session(engine):
  with Session(engine) as session:
    yield session


class MemoryStore:
  """
  Keeps the latest copy of every saved record, keyed by (type, id),
  plus the ordered write log. Nothing is ever removed.
  """

  def __init__(self):
    self.records: Dict[Tuple[str, str], object] = {}
    self.writes: List[Tuple[str, str]] = []

  def save(self, *records) -> None:
    for record in records:
      key = (type(record).__name__, record.id)
      self.records[key] = record
      self.writes.append(key)

  def get(self, kind: str, record_id: str):
    return self.records.get((kind, record_id))


class SqlStore:
  """
  Synchronous sink over a SQLModel engine. One save() is one database
  transaction; related rows (consumptions, line items, payments) follow
  their parent through merge.
  """

  def __init__(self, engine=None):
    self.engine = engine if engine is not None else create_db_engine()
    init_db(self.engine)

  def save(self, *records) -> None:
    with Session(self.engine) as session:
      for record in records:
        session.merge(record)
      session.commit()
    logger.debug("persisted %d record(s)", len(records))

  def get(self, model, record_id: str):
    with Session(self.engine) as session:
      return session.get(model, record_id)
