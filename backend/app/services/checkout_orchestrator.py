import os
import tempfile
import time
from typing import Callable, Dict, List, Mapping, Optional, Union

from filelock import FileLock, Timeout
from pydantic import BaseModel, ValidationError

from app.adapters.mock_payment import PaymentCollaborator
from app.config import settings
from app.models.idempotency import IdempotencyStatus
from app.repositories.idempotency_repo import IdempotencyRepository
from app.schemas.checkout_schema import (
    CartSnapshot,
    CheckoutStep,
    CustomerInfo,
    FulfillmentMethod,
    GatewayType,
    OrderTotals,
    PaymentContext,
    ShippingAddress,
)
from app.services.cart_store import CartStore
from app.services.checkout_session import CheckoutSession, SessionRegistry
from app.services.events import CartEvents, cart_events
from app.services.fulfillment_service import FulfillmentPolicy
from app.services.gateway_directory import (
    GatewayDirectory,
    GatewayDirectoryError,
    active_types,
    default_type,
)
from app.services.order_service import OrderHistoryStore
from app.services.pricing import compute_totals, to_payment_items
from app.utils.logging import get_logger

logger = get_logger(__name__)

NO_PAYMENT_METHOD_MESSAGE = (
    "No payment methods are configured. Please contact the store to set up payment options."
)


class CheckoutException(Exception):
    pass


class CheckoutRedirect(CheckoutException):
    """The session cannot continue; the client should navigate to `location`."""

    def __init__(self, location: str, reason: str):
        super().__init__(reason)
        self.location = location
        self.reason = reason


class CheckoutStepError(CheckoutException):
    """Operation not allowed at the session's current step."""
    pass


class CheckoutValidationError(CheckoutException):
    """Submitted data failed a transition guard; the session stays where it is."""
    pass


class SessionNotFound(CheckoutException):
    pass


def _describe(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "value"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def _coerce(model, data: Union[BaseModel, Mapping, None]):
    if isinstance(data, model):
        return data
    if data is None:
        raise CheckoutValidationError(f"{model.__name__} is required")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise CheckoutValidationError(_describe(e))


class CheckoutOrchestrator:
    """
    Drives checkout sessions through review -> fulfillment -> [shipping] -> payment.

    All collaborators are injected: the cart store (read + terminal clear),
    the gateway directory, one payment collaborator per gateway type, the
    cart-changed event bus and the order-history store. The orchestrator
    owns only the transient CheckoutSession objects kept in its registry.
    """

    def __init__(
        self,
        cart_store: CartStore,
        gateway_directory: GatewayDirectory,
        collaborators: Mapping[GatewayType, PaymentCollaborator],
        events: CartEvents = cart_events,
        history: Optional[OrderHistoryStore] = None,
        fulfillment_policy: Optional[FulfillmentPolicy] = None,
        idempotency: Optional[IdempotencyRepository] = None,
        registry: Optional[SessionRegistry] = None,
        grace_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        lock_dir: Optional[str] = None,
    ):
        self.cart_store = cart_store
        self.gateway_directory = gateway_directory
        self.collaborators = dict(collaborators)
        self.events = events
        self.history = history
        self.fulfillment_policy = fulfillment_policy
        self.idempotency = idempotency
        self.registry = registry or SessionRegistry()
        self.grace_seconds = (
            settings.CART_HYDRATION_GRACE_MS / 1000.0 if grace_seconds is None else grace_seconds
        )
        self._sleep = sleep
        self.lock_dir = lock_dir or settings.FINALIZE_LOCK_DIR or os.path.join(
            tempfile.gettempdir(), "checkout_locks"
        )

    # --- session lifecycle ---

    def start(self, tenant_id: Optional[str], gateway_type: Optional[str] = None) -> CheckoutSession:
        """
        Open a checkout for the (tenant, gateway) cart named by the entry parameters.
        Raises CheckoutRedirect when the identity is missing or no usable cart exists.
        """
        listing = settings.CART_LISTING_ROUTE
        if not tenant_id:
            logger.info("No tenant id, redirecting to cart listing")
            raise CheckoutRedirect(listing, "missing tenant id")

        explicit = gateway_type is not None
        try:
            gt = GatewayType(gateway_type if explicit else settings.DEFAULT_GATEWAY_TYPE)
        except ValueError:
            logger.info(f"Unknown gateway type {gateway_type!r}, redirecting to cart listing")
            raise CheckoutRedirect(listing, "unknown gateway type")

        session = CheckoutSession(
            tenant_id=tenant_id,
            gateway_type=gt,
            payment_method=gt,
            payment_method_explicit=explicit,
        )
        self.bootstrap(session)
        self.load_gateways(session)
        self.registry.add(session)
        logger.info(f"Checkout {session.session_id} started tenant={tenant_id} gateway={gt.value}")
        return session

    def get(self, session_id: str) -> CheckoutSession:
        session = self.registry.get(session_id)
        if session is None:
            raise SessionNotFound("Checkout session not found or expired")
        return session

    def _await_hydration(self) -> None:
        wait = getattr(self.cart_store, "wait_until_ready", None)
        if wait is not None:
            wait(self.grace_seconds)
        else:
            self._sleep(self.grace_seconds)

    def bootstrap(self, session: CheckoutSession) -> None:
        """
        Single-shot entry guard: find a non-empty active cart for the session,
        giving storage one grace interval to hydrate. Once initialized this is a no-op.
        """
        if session.is_initialized:
            return
        listing = settings.CART_LISTING_ROUTE

        cart = self.cart_store.get_cart(session.tenant_id, session.gateway_type.value)
        if cart is None or not cart.items:
            logger.info(f"No cart yet for tenant={session.tenant_id}, waiting {self.grace_seconds}s for load")
            self._await_hydration()
            cart = self.cart_store.get_cart(session.tenant_id, session.gateway_type.value)
            if cart is None or not cart.items:
                logger.info("Cart still not found after delay, redirecting")
                raise CheckoutRedirect(listing, "cart not found")

        if cart.status != "active":
            logger.info(f"Cart for tenant={session.tenant_id} already {cart.status}, redirecting")
            raise CheckoutRedirect(listing, f"cart already {cart.status}")

        session.is_initialized = True

    def load_gateways(self, session: CheckoutSession) -> List[GatewayType]:
        """
        Fetch the tenant's active gateways and apply the fallback rule. A failed
        lookup counts as "no gateways"; there is no retry.
        """
        try:
            gateways = self.gateway_directory.list_gateways(session.tenant_id)
        except GatewayDirectoryError as e:
            logger.warning(f"Failed to fetch payment gateways for tenant={session.tenant_id}: {e}")
            gateways = []

        active = active_types(gateways)
        with session.lock:
            session.active_gateway_types = active
            session.gateways_loaded = True
            if not session.payment_method_explicit:
                preferred = default_type(gateways)
                if preferred is not None:
                    session.payment_method = preferred
            if active and session.payment_method not in active:
                logger.info(
                    f"Payment method {session.payment_method.value} unavailable for "
                    f"tenant={session.tenant_id}, falling back to {active[0].value}"
                )
                session.payment_method = active[0]
        return active

    def expire_idle_sessions(self, ttl_seconds: Optional[float] = None) -> List[str]:
        ttl = settings.CHECKOUT_SESSION_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        expired = self.registry.expire_idle(ttl)
        if expired:
            logger.info(f"Expired {len(expired)} idle checkout sessions")
        return expired

    # --- derived state ---

    def cart(self, session: CheckoutSession) -> CartSnapshot:
        snap = self.cart_store.get_cart(session.tenant_id, session.gateway_type.value)
        if snap is None:
            return CartSnapshot(tenant_id=session.tenant_id, gateway_type=session.gateway_type)
        return snap

    def totals(self, session: CheckoutSession, cart: Optional[CartSnapshot] = None) -> OrderTotals:
        if cart is None:
            cart = self.cart(session)
        return compute_totals(cart.items, session.fulfillment_fee_cents)

    def payment_context(self, session: CheckoutSession, payment_token: Optional[str] = None) -> PaymentContext:
        cart = self.cart(session)
        return PaymentContext(
            tenant_id=session.tenant_id,
            amount_cents=self.totals(session, cart).total_cents,
            customer_info=session.customer_info,
            shipping_address=session.shipping_address,
            fulfillment_method=session.fulfillment_method,
            cart_items=to_payment_items(cart.items),
            payment_token=payment_token,
        )

    def _payment_ready(self, session: CheckoutSession) -> bool:
        if session.finalized or session.step != CheckoutStep.PAYMENT:
            return False
        if session.customer_info is None or session.fulfillment_method is None:
            return False
        return session.fulfillment_method == FulfillmentMethod.PICKUP or session.shipping_address is not None

    def payment_view(self, session: CheckoutSession) -> Optional[Dict]:
        """
        What the payment step shows: either the blocking "not configured"
        message, or exactly one collaborator together with its input contract.
        """
        if not self._payment_ready(session):
            return None
        if not session.active_gateway_types:
            return {
                "blocked": True,
                "message": NO_PAYMENT_METHOD_MESSAGE,
                "collaborator": None,
                "available": [],
            }
        return {
            "blocked": False,
            "message": None,
            "collaborator": session.payment_method.value,
            "available": [g.value for g in session.active_gateway_types],
            "context": self.payment_context(session).model_dump(mode="json"),
        }

    # --- transitions ---

    def _require_step(self, session: CheckoutSession, *steps: CheckoutStep) -> None:
        if session.finalized:
            raise CheckoutStepError("Checkout already completed")
        if session.step not in steps:
            expected = "/".join(s.value for s in steps)
            raise CheckoutStepError(f"Expected step {expected}, session is at {session.step.value}")

    def _move(self, session: CheckoutSession, to: CheckoutStep) -> None:
        logger.info(f"Checkout {session.session_id}: {session.step.value} -> {to.value}")
        session.step = to

    def submit_customer_info(self, session: CheckoutSession, info) -> CheckoutSession:
        with session.lock:
            self._require_step(session, CheckoutStep.REVIEW)
            session.customer_info = _coerce(CustomerInfo, info)
            self._move(session, CheckoutStep.FULFILLMENT)
        return session

    def submit_fulfillment(self, session: CheckoutSession, method, fee_cents: Optional[int] = None) -> CheckoutSession:
        with session.lock:
            self._require_step(session, CheckoutStep.FULFILLMENT)
            try:
                fm = FulfillmentMethod(method)
            except ValueError:
                raise CheckoutValidationError(f"Unknown fulfillment method: {method!r}")

            if self.fulfillment_policy is not None:
                allowed = self.fulfillment_policy.allowed_methods(session.tenant_id)
                if fm not in allowed:
                    raise CheckoutValidationError(f"Fulfillment method {fm.value} is not offered by this store")

            if fee_cents is None:
                fee = 0
                if self.fulfillment_policy is not None:
                    subtotal = self.totals(session).subtotal_cents
                    fee = self.fulfillment_policy.quote(session.tenant_id, fm, subtotal)
            else:
                if isinstance(fee_cents, bool) or not isinstance(fee_cents, int) or fee_cents < 0:
                    raise CheckoutValidationError("Fulfillment fee must be a non-negative integer (cents)")
                fee = fee_cents

            session.fulfillment_method = fm
            session.fulfillment_fee_cents = fee
            if fm == FulfillmentMethod.PICKUP:
                session.shipping_address = None
                self._move(session, CheckoutStep.PAYMENT)
            else:
                self._move(session, CheckoutStep.SHIPPING)
        return session

    def submit_shipping_address(self, session: CheckoutSession, address) -> CheckoutSession:
        with session.lock:
            self._require_step(session, CheckoutStep.SHIPPING)
            session.shipping_address = _coerce(ShippingAddress, address)
            self._move(session, CheckoutStep.PAYMENT)
        return session

    def back(self, session: CheckoutSession) -> Optional[str]:
        """
        Step back one screen. From review the client leaves checkout: the
        session is discarded and the tenant's cart route is returned.
        """
        with session.lock:
            if session.finalized:
                raise CheckoutStepError("Checkout already completed")
            if session.step == CheckoutStep.PAYMENT:
                if session.fulfillment_method == FulfillmentMethod.PICKUP:
                    self._move(session, CheckoutStep.FULFILLMENT)
                else:
                    self._move(session, CheckoutStep.SHIPPING)
            elif session.step == CheckoutStep.SHIPPING:
                self._move(session, CheckoutStep.FULFILLMENT)
            elif session.step == CheckoutStep.FULFILLMENT:
                self._move(session, CheckoutStep.REVIEW)
            else:
                self.registry.discard(session.session_id)
                logger.info(f"Checkout {session.session_id} left from review")
                return settings.CART_ROUTE_TEMPLATE.format(tenant_id=session.tenant_id)
        return None

    def select_payment_method(self, session: CheckoutSession, gateway_type) -> CheckoutSession:
        with session.lock:
            if session.finalized:
                raise CheckoutStepError("Checkout already completed")
            try:
                gt = GatewayType(gateway_type)
            except ValueError:
                raise CheckoutValidationError(f"Unknown payment method: {gateway_type!r}")
            if not session.active_gateway_types:
                raise CheckoutValidationError(NO_PAYMENT_METHOD_MESSAGE)
            if gt not in session.active_gateway_types:
                raise CheckoutValidationError(f"Payment method {gt.value} is not available for this store")
            session.payment_method = gt
        return session

    # --- payment + finalization ---

    def _require_payable(self, session: CheckoutSession) -> PaymentCollaborator:
        """Guards shared by every path into finalization. Returns the selected collaborator."""
        self._require_step(session, CheckoutStep.PAYMENT)
        if not self._payment_ready(session):
            raise CheckoutValidationError("Checkout details are incomplete")
        if not session.active_gateway_types:
            raise CheckoutValidationError(NO_PAYMENT_METHOD_MESSAGE)
        collaborator = self.collaborators.get(session.payment_method)
        if collaborator is None:
            raise CheckoutValidationError(f"No payment handler for {session.payment_method.value}")
        return collaborator

    def submit_payment(self, session: CheckoutSession, payment_token: Optional[str]) -> str:
        """
        Hand the order to the selected collaborator. Declines and processor
        errors propagate and leave the session on the payment step; success
        finalizes and returns the order-history route.
        """
        with session.lock:
            if session.finalized:
                return session.completion["redirect_to"]
            collaborator = self._require_payable(session)

            context = self.payment_context(session, payment_token)
            if not context.cart_items:
                raise CheckoutValidationError("Cart is empty")

            logger.info(
                f"Checkout {session.session_id}: submitting {context.amount_cents} cents "
                f"via {session.payment_method.value}"
            )
            confirmation = collaborator.submit(context)
            return self.complete(
                session, confirmation.order_number, confirmation.gateway_transaction_id
            )

    def _finalize_lock(self, session: CheckoutSession) -> FileLock:
        os.makedirs(self.lock_dir, exist_ok=True)
        return FileLock(os.path.join(self.lock_dir, f"finalize_{session.session_id}.lock"))

    def complete(
        self,
        session: CheckoutSession,
        order_number: str,
        gateway_transaction_id: Optional[str] = None,
    ) -> str:
        """
        Payment confirmed. Runs at most once per session, however often it is
        called: clear the cart, broadcast cart-changed, keep the buyer's
        contact details and receipt, then send the client to order history.
        """
        with session.lock:
            if session.finalized:
                logger.info(f"Checkout {session.session_id} already finalized, ignoring repeat confirmation")
                return session.completion["redirect_to"]
            self._require_payable(session)
            if not order_number:
                raise CheckoutValidationError("Order number is required")

            try:
                with self._finalize_lock(session).acquire(timeout=10):
                    completion = self._finalize(session, order_number, gateway_transaction_id)
            except Timeout:
                raise CheckoutException("Could not acquire finalize lock; try again")

            # stays registered until idle expiry; repeat confirmations read `completion`
            session.finalized = True
            session.completion = completion
        return completion["redirect_to"]

    def _finalize(self, session: CheckoutSession, order_number: str, gateway_transaction_id: Optional[str]) -> Dict:
        key = f"checkout-finalize:{session.session_id}"
        if self.idempotency is not None:
            rec, created = self.idempotency.begin(key, "finalize_checkout", tenant_id=session.tenant_id)
            if not created and rec is not None:
                if rec.status == IdempotencyStatus.COMPLETED:
                    logger.info(f"Finalization for {session.session_id} already recorded")
                    return rec.response_body
                # claimed by an earlier attempt that never stored its answer; its side effects already ran
                logger.warning(f"Finalization for {session.session_id} was left in progress, not repeating it")
                completion = self._completion(order_number, gateway_transaction_id, None)
                self._mark_completed(key, completion)
                return completion

        # snapshot before the cart is cleared, for the receipt
        cart = self.cart(session)
        totals = self.totals(session, cart)
        completion = self._completion(order_number, gateway_transaction_id, totals.total_cents)
        # side effects below run at most once per session
        session.finalized = True
        session.completion = completion

        try:
            self.cart_store.clear_cart(session.tenant_id, session.gateway_type.value)
        except Exception:
            logger.warning(f"Clearing cart for tenant={session.tenant_id} failed", exc_info=True)

        self.events.publish()

        if self.history is not None:
            info = session.customer_info
            try:
                self.history.save_contact(session.session_id, info.email, info.phone)
            except Exception:
                logger.warning("Saving buyer contact failed", exc_info=True)
            try:
                self.history.record_order(
                    order_number,
                    cart,
                    totals,
                    info,
                    session.fulfillment_method,
                    session.payment_method,
                    shipping_address=session.shipping_address,
                    gateway_transaction_id=gateway_transaction_id,
                )
            except Exception:
                logger.warning(f"Recording order {order_number} failed", exc_info=True)

        self._mark_completed(key, completion)
        logger.info(
            f"Checkout {session.session_id} finalized order={order_number} txn={gateway_transaction_id}"
        )
        return completion

    @staticmethod
    def _completion(order_number: str, gateway_transaction_id: Optional[str], total_cents: Optional[int]) -> Dict:
        return {
            "orderNumber": order_number,
            "gatewayTransactionId": gateway_transaction_id,
            "totalCents": total_cents,
            "redirect_to": settings.ORDER_HISTORY_ROUTE,
        }

    def _mark_completed(self, key: str, completion: Dict) -> None:
        if self.idempotency is None:
            return
        try:
            self.idempotency.mark_completed(key, completion)
        except Exception:
            logger.warning(f"Storing finalization result for {key} failed", exc_info=True)

    # --- serialization ---

    def view(self, session: CheckoutSession) -> Dict:
        cart = self.cart(session)
        totals = self.totals(session, cart)
        return {
            "session_id": session.session_id,
            "tenant_id": session.tenant_id,
            "tenant_name": cart.tenant_name,
            "gateway_type": session.gateway_type.value,
            "step": session.step.value,
            "customer_info": session.customer_info.model_dump() if session.customer_info else None,
            "fulfillment_method": session.fulfillment_method.value if session.fulfillment_method else None,
            "fulfillment_fee_cents": session.fulfillment_fee_cents,
            "shipping_address": session.shipping_address.model_dump() if session.shipping_address else None,
            "payment_method": session.payment_method.value,
            "available_payment_methods": [g.value for g in session.active_gateway_types],
            "gateways_loaded": session.gateways_loaded,
            "items": [it.model_dump() for it in cart.items],
            "totals": totals.model_dump(),
            "payment": self.payment_view(session),
            "finalized": session.finalized,
            "redirect_to": session.completion["redirect_to"] if session.completion else None,
        }
