import importlib
import os
import sys

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from app.config import settings
from app.utils.logging import get_logger

log = get_logger("db", prefix="DB")

DATABASE_URL = settings.DATABASE_URL
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, future=True, echo=False, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# model modules that must be imported before create_all (add new modules here)
MODEL_MODULES = [
    "app.models.cart",
    "app.models.cart_item",
    "app.models.payment_gateway",
    "app.models.fulfillment_settings",
    "app.models.buyer_contact",
    "app.models.order",
    "app.models.idempotency",
]


def _running_under_pytest() -> bool:
    if any("pytest" in os.path.basename(a).lower() for a in sys.argv):
        return True
    return any(k.upper().startswith("PYTEST") for k in os.environ.keys())


def init_db(reset: bool = False):
    """
    Initialize DB schema.

    Behavior:
      - If `reset` is passed or RESET_DB env var is set to 1/true/yes, drop & recreate tables.
      - If we detect pytest running, drop & recreate tables so tests run against a clean DB.
      - Otherwise, leave existing tables in place.

    Model modules are imported first so metadata is populated; an import
    failure is a programming error and propagates.
    """
    env_reset = os.environ.get("RESET_DB", "false").lower() in ("1", "true", "yes")

    for mod in MODEL_MODULES:
        importlib.import_module(mod)

    if reset or env_reset or _running_under_pytest():
        log.info("Resetting database (reset requested or pytest detected)...")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    log.info(f"Database initialized: tables={sorted(Base.metadata.tables.keys())}")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
