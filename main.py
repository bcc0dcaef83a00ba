import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import errors
from billing_route import router as billing_router
from config import CORS_ORIGINS, CURRENCY, DATABASE_URL, LOG_LEVEL
from db import SqlStore
from engine import CoworkingEngine

logging.basicConfig(
  level=LOG_LEVEL,
  format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_engine() -> CoworkingEngine:
  if DATABASE_URL:
    logger.info("persisting to %s", DATABASE_URL.split("@")[-1])
    return CoworkingEngine(store=SqlStore())
  logger.info("DATABASE_URL not set, keeping state in memory only")
  return CoworkingEngine()


def create_app(engine: Optional[CoworkingEngine] = None) -> FastAPI:
  app = FastAPI(title="Coworking Billing Backend", version="1.0.0")
  app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
  )
  app.state.engine = engine if engine is not None else build_engine()

  @app.exception_handler(errors.EngineError)
  async def engine_error(request: Request, exc: errors.EngineError):
    return JSONResponse(
      status_code=exc.status_code,
      content={"error": type(exc).__name__, "detail": str(exc)},
    )

  @app.get("/health")
  def health():
    eng = app.state.engine
    return {
      "ok": True,
      "currency": CURRENCY,
      "store": type(eng.store).__name__,
      "active_sessions": len(eng.active_sessions()),
    }

  app.include_router(billing_router)
  return app


app = create_app()
