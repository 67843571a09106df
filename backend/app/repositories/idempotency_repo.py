import os
import socket
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db import SessionLocal  # new short-lived sessions for atomic begin
from app.models.idempotency import IdempotencyRecord, IdempotencyStatus
from app.utils.logging import get_logger

log = get_logger("idempotency", prefix="IDEMPOTENCY")

_OWNER = f"{socket.gethostname()}:{os.getpid()}"


class IdempotencyRepository:
    """
    Durable once-only markers keyed by an idempotency key.

    Every call runs in its own short-lived session and commits, so a marker
    written by one worker is visible to all others immediately.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def get(self, key: str) -> Optional[IdempotencyRecord]:
        with self.session_factory() as s:
            rec = s.query(IdempotencyRecord).filter(IdempotencyRecord.key == key).first()
            if rec is not None:
                s.expunge(rec)
            return rec

    def begin(self, key: str, operation: str, tenant_id: Optional[str] = None) -> Tuple[Optional[IdempotencyRecord], bool]:
        """
        Atomically claim `key`.
        Returns (record, created_flag)
          - created_flag == True  -> this call created the IN_PROGRESS row (owner)
          - created_flag == False -> row already existed (concurrent / previous request)
        """
        created = False
        log.debug(f"begin(): trying insert key={key!r}")
        try:
            with self.session_factory() as s:
                s.add(
                    IdempotencyRecord(
                        key=key,
                        operation=operation,
                        tenant_id=tenant_id,
                        owner=_OWNER,
                        status=IdempotencyStatus.IN_PROGRESS,
                    )
                )
                s.commit()
                created = True
        except IntegrityError:
            log.debug(f"begin(): key={key!r} already claimed")
        return self.get(key), created

    def mark_completed(self, key: str, response_body: dict) -> IdempotencyRecord:
        with self.session_factory() as s:
            rec = s.query(IdempotencyRecord).filter(IdempotencyRecord.key == key).first()
            if not rec:
                raise RuntimeError("Idempotency record missing for key: " + str(key))
            rec.status = IdempotencyStatus.COMPLETED
            rec.response_body = response_body
            rec.completed_at = datetime.now(timezone.utc)
            s.commit()
            log.debug(f"mark_completed(): key={key!r} response_keys={list(response_body.keys())}")
        return self.get(key)
