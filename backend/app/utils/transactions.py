from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.orm import Session

from app.utils.logging import get_logger

log = get_logger("transactions", prefix="DB")


@contextmanager
def smart_transaction(session: Session, label: Optional[str] = None) -> Iterator[Session]:
    """
    Unit of work on `session`.

    With no transaction open, a real one is started and committed on exit.
    Inside an open transaction a SAVEPOINT is used instead, and the outer
    owner still decides whether to commit. Either way a failure rolls back
    and is logged under `label` before it propagates.

        with smart_transaction(db, "record order") as s:
            s.add(order)
    """
    nested = session.in_transaction()
    cm = session.begin_nested() if nested else session.begin()
    try:
        with cm:
            yield session
    except Exception:
        log.warning(f"{label or 'transaction'} rolled back (nested={nested})")
        raise
