import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from uuid import uuid4

from app.schemas.checkout_schema import (
    CheckoutStep,
    CustomerInfo,
    FulfillmentMethod,
    GatewayType,
    ShippingAddress,
)


@dataclass
class CheckoutSession:
    """
    Transient state of one checkout visit. Lives only in process memory and
    is discarded on success, on leaving the machine, or after going idle.
    """

    tenant_id: str
    gateway_type: GatewayType  # cart identity, together with tenant_id
    payment_method: GatewayType
    payment_method_explicit: bool = False
    session_id: str = field(default_factory=lambda: uuid4().hex)
    step: CheckoutStep = CheckoutStep.REVIEW
    customer_info: Optional[CustomerInfo] = None
    fulfillment_method: Optional[FulfillmentMethod] = None
    fulfillment_fee_cents: int = 0
    shipping_address: Optional[ShippingAddress] = None
    active_gateway_types: List[GatewayType] = field(default_factory=list)
    gateways_loaded: bool = False
    is_initialized: bool = False
    finalized: bool = False
    completion: Optional[Dict] = None
    last_touched: float = field(default_factory=time.monotonic)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def touch(self) -> None:
        self.last_touched = time.monotonic()


class SessionRegistry:
    """Thread-safe map of live checkout sessions."""

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[str, CheckoutSession] = {}

    def add(self, session: CheckoutSession) -> CheckoutSession:
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> Optional[CheckoutSession]:
        with self._lock:
            s = self._sessions.get(session_id)
        if s is not None:
            s.touch()
        return s

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def expire_idle(self, ttl_seconds: float, now: Optional[float] = None) -> List[str]:
        now = time.monotonic() if now is None else now
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if now - s.last_touched > ttl_seconds]
            for sid in expired:
                del self._sessions[sid]
        return expired

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions
