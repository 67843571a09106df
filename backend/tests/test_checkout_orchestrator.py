import threading
from types import SimpleNamespace

import pytest

from app.adapters.mock_payment import PaymentCollaborator, PaymentDeclined
from app.models.idempotency import IdempotencyStatus
from app.schemas.checkout_schema import (
    CartLineItem,
    CartSnapshot,
    CheckoutStep,
    FulfillmentMethod,
    GatewayType,
    PaymentConfirmation,
)
from app.services.checkout_orchestrator import (
    NO_PAYMENT_METHOD_MESSAGE,
    CheckoutOrchestrator,
    CheckoutRedirect,
    CheckoutStepError,
    CheckoutValidationError,
)
from app.services.events import CartEvents
from app.services.gateway_directory import GatewayDirectory, GatewayDirectoryError

CUSTOMER = {"email": "ada@example.com", "first_name": "Ada", "last_name": "Lovelace", "phone": "555-0100"}
ADDRESS = {"line1": "1 Main St", "city": "Springfield", "state": "IL", "postal_code": "62701", "country": "US"}


def _items():
    return [
        CartLineItem(product_id="p1", name="Tea", sku="TEA", quantity=2, unit_price_cents=2500),
        CartLineItem(product_id="p2", name="Mug", sku="MUG", quantity=1, unit_price_cents=5000, list_price_cents=6000),
    ]


class FakeCartStore:
    def __init__(self):
        self.carts = {}
        self.get_calls = 0
        self.cleared = []

    def put(self, tenant_id, gateway_type, items, status="active"):
        self.carts[(tenant_id, gateway_type)] = CartSnapshot(
            tenant_id=tenant_id, gateway_type=gateway_type, items=items, status=status
        )

    def get_cart(self, tenant_id, gateway_type):
        self.get_calls += 1
        return self.carts.get((tenant_id, gateway_type))

    def clear_cart(self, tenant_id, gateway_type):
        self.cleared.append((tenant_id, gateway_type))
        self.carts.pop((tenant_id, gateway_type), None)


class FakeDirectory(GatewayDirectory):
    def __init__(self, gateways=None, fail=False):
        self.gateways = gateways if gateways is not None else [
            {"gateway_type": "square", "is_active": True, "is_default": False}
        ]
        self.fail = fail

    def list_gateways(self, tenant_id):
        if self.fail:
            raise GatewayDirectoryError("directory down")
        return self.gateways


class FakeCollaborator(PaymentCollaborator):
    def __init__(self, gateway_type, decline=False):
        self.gateway_type = gateway_type
        self.decline = decline
        self.contexts = []

    def submit(self, context):
        self.contexts.append(context)
        if self.decline:
            raise PaymentDeclined("card declined")
        return PaymentConfirmation(order_number=f"ORD-{len(self.contexts)}", gateway_transaction_id="txn-1")


class RecordingHistory:
    def __init__(self):
        self.contacts = []
        self.orders = []

    def save_contact(self, session_id, email, phone):
        self.contacts.append((session_id, email, phone))

    def record_order(self, order_number, cart, totals, customer_info, *args, **kwargs):
        self.orders.append((order_number, totals.total_cents, [it.product_id for it in cart.items]))


@pytest.fixture
def store():
    s = FakeCartStore()
    s.put("t1", "square", _items())
    return s


@pytest.fixture
def events():
    bus = CartEvents()
    bus.calls = 0

    def _count():
        bus.calls += 1

    bus.subscribe(_count)
    return bus


def _orchestrator(store, tmp_path, directory=None, collaborators=None, events=None, history=None, sleep=None,
                  idempotency=None):
    sleeps = []
    orch = CheckoutOrchestrator(
        cart_store=store,
        gateway_directory=directory or FakeDirectory(),
        collaborators=collaborators or {
            GatewayType.SQUARE: FakeCollaborator(GatewayType.SQUARE),
            GatewayType.PAYPAL: FakeCollaborator(GatewayType.PAYPAL),
        },
        events=events or CartEvents(),
        history=history,
        idempotency=idempotency,
        grace_seconds=0.3,
        sleep=sleep or sleeps.append,
        lock_dir=str(tmp_path / "locks"),
    )
    orch.sleeps = sleeps
    return orch


def _to_payment(orch, session, method="pickup"):
    orch.submit_customer_info(session, CUSTOMER)
    orch.submit_fulfillment(session, method, 0)
    if method != "pickup":
        orch.submit_shipping_address(session, ADDRESS)
    assert session.step == CheckoutStep.PAYMENT
    return session


# --- bootstrap ---

def test_missing_tenant_redirects_to_cart_listing(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    with pytest.raises(CheckoutRedirect) as exc:
        orch.start(None, "square")
    assert exc.value.location == "/carts"
    assert store.get_calls == 0


def test_unknown_gateway_redirects(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    with pytest.raises(CheckoutRedirect):
        orch.start("t1", "bitcoin")


def test_cart_appearing_during_grace_wait_is_used(tmp_path):
    store = FakeCartStore()
    waited = []

    def hydrate(seconds):
        waited.append(seconds)
        store.put("t1", "square", _items())

    orch = _orchestrator(store, tmp_path, sleep=hydrate)
    s = orch.start("t1", "square")
    assert waited == [0.3]
    assert s.is_initialized
    assert s.step == CheckoutStep.REVIEW


def test_missing_cart_waits_once_then_redirects(tmp_path):
    store = FakeCartStore()
    orch = _orchestrator(store, tmp_path)
    with pytest.raises(CheckoutRedirect) as exc:
        orch.start("t1", "square")
    assert exc.value.location == "/carts"
    assert orch.sleeps == [0.3]
    assert store.get_calls == 2


def test_empty_cart_redirects(tmp_path):
    store = FakeCartStore()
    store.put("t1", "square", [])
    orch = _orchestrator(store, tmp_path)
    with pytest.raises(CheckoutRedirect):
        orch.start("t1", "square")


def test_paid_cart_redirects(tmp_path):
    store = FakeCartStore()
    store.put("t1", "square", _items(), status="paid")
    orch = _orchestrator(store, tmp_path)
    with pytest.raises(CheckoutRedirect) as exc:
        orch.start("t1", "square")
    assert "paid" in exc.value.reason


def test_bootstrap_runs_once(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    s = orch.start("t1", "square")
    calls = store.get_calls
    store.carts.clear()
    orch.bootstrap(s)
    assert store.get_calls == calls
    assert orch.sleeps == []


# --- gateways ---

def test_unavailable_method_falls_back_to_first_active(tmp_path):
    store = FakeCartStore()
    store.put("t1", "paypal", _items())
    orch = _orchestrator(store, tmp_path)
    s = orch.start("t1", "paypal")
    assert s.gateway_type == GatewayType.PAYPAL
    assert s.payment_method == GatewayType.SQUARE
    assert s.active_gateway_types == [GatewayType.SQUARE]


def test_inactive_and_unknown_gateways_are_ignored(store, tmp_path):
    directory = FakeDirectory([
        {"gateway_type": "stripe", "is_active": True},
        {"gateway_type": "paypal", "is_active": False},
        {"gateway_type": "square", "is_active": True},
        {"gateway_type": "square", "is_active": True},
    ])
    orch = _orchestrator(store, tmp_path, directory=directory)
    s = orch.start("t1", "square")
    assert s.active_gateway_types == [GatewayType.SQUARE]


def test_default_gateway_seeds_method_when_not_given(store, tmp_path):
    directory = FakeDirectory([
        {"gateway_type": "square", "is_active": True, "is_default": False},
        {"gateway_type": "paypal", "is_active": True, "is_default": True},
    ])
    orch = _orchestrator(store, tmp_path, directory=directory)
    s = orch.start("t1")
    assert s.gateway_type == GatewayType.SQUARE
    assert s.payment_method == GatewayType.PAYPAL


def test_explicit_method_wins_over_default(store, tmp_path):
    directory = FakeDirectory([
        {"gateway_type": "square", "is_active": True, "is_default": False},
        {"gateway_type": "paypal", "is_active": True, "is_default": True},
    ])
    orch = _orchestrator(store, tmp_path, directory=directory)
    s = orch.start("t1", "square")
    assert s.payment_method == GatewayType.SQUARE


def test_directory_failure_blocks_payment(store, tmp_path):
    orch = _orchestrator(store, tmp_path, directory=FakeDirectory(fail=True))
    s = orch.start("t1", "square")
    assert s.active_gateway_types == []
    assert s.payment_method == GatewayType.SQUARE
    _to_payment(orch, s)
    view = orch.payment_view(s)
    assert view["blocked"] is True
    assert view["collaborator"] is None
    assert view["message"] == NO_PAYMENT_METHOD_MESSAGE
    with pytest.raises(CheckoutValidationError):
        orch.submit_payment(s, "tok")
    with pytest.raises(CheckoutValidationError):
        orch.select_payment_method(s, "square")


def test_empty_directory_blocks_payment_and_completion(store, tmp_path, events):
    orch = _orchestrator(store, tmp_path, directory=FakeDirectory(gateways=[]), events=events)
    s = _to_payment(orch, orch.start("t1", "square"))
    assert s.gateways_loaded
    view = orch.payment_view(s)
    assert view["blocked"] is True
    assert view["message"] == NO_PAYMENT_METHOD_MESSAGE
    assert view["collaborator"] is None
    with pytest.raises(CheckoutValidationError):
        orch.complete(s, "ORD-X", "txn-x")
    assert not s.finalized
    assert store.cleared == []
    assert events.calls == 0


def test_select_payment_method_keeps_collected_info(store, tmp_path):
    directory = FakeDirectory([
        {"gateway_type": "square", "is_active": True},
        {"gateway_type": "paypal", "is_active": True},
    ])
    orch = _orchestrator(store, tmp_path, directory=directory)
    s = _to_payment(orch, orch.start("t1", "square"), "delivery")
    orch.select_payment_method(s, "paypal")
    assert s.payment_method == GatewayType.PAYPAL
    assert s.customer_info.email == "ada@example.com"
    assert s.shipping_address.city == "Springfield"
    assert orch.payment_view(s)["collaborator"] == "paypal"


def test_select_inactive_method_rejected(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    s = orch.start("t1", "square")
    with pytest.raises(CheckoutValidationError):
        orch.select_payment_method(s, "paypal")
    assert s.payment_method == GatewayType.SQUARE


# --- transitions ---

def test_pickup_skips_shipping(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    s = orch.start("t1", "square")
    orch.submit_customer_info(s, CUSTOMER)
    assert s.step == CheckoutStep.FULFILLMENT
    orch.submit_fulfillment(s, "pickup")
    assert s.step == CheckoutStep.PAYMENT
    assert s.shipping_address is None
    assert orch.back(s) is None
    assert s.step == CheckoutStep.FULFILLMENT


def test_delivery_goes_through_shipping_and_back_out(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    s = orch.start("t1", "square")
    orch.submit_customer_info(s, CUSTOMER)
    orch.submit_fulfillment(s, "delivery", 500)
    assert s.step == CheckoutStep.SHIPPING
    orch.submit_shipping_address(s, ADDRESS)
    assert s.step == CheckoutStep.PAYMENT

    orch.back(s)
    assert s.step == CheckoutStep.SHIPPING
    orch.back(s)
    assert s.step == CheckoutStep.FULFILLMENT
    orch.back(s)
    assert s.step == CheckoutStep.REVIEW
    assert orch.back(s) == "/cart/t1"
    assert s.session_id not in orch.registry


def test_switching_to_pickup_clears_address(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    s = _to_payment(orch, orch.start("t1", "square"), "shipping")
    orch.back(s)
    orch.back(s)
    orch.submit_fulfillment(s, FulfillmentMethod.PICKUP, 0)
    assert s.shipping_address is None
    assert s.step == CheckoutStep.PAYMENT


def test_wrong_step_leaves_session_unchanged(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    s = orch.start("t1", "square")
    with pytest.raises(CheckoutStepError):
        orch.submit_shipping_address(s, ADDRESS)
    with pytest.raises(CheckoutStepError):
        orch.complete(s, "ORD-1")
    assert s.step == CheckoutStep.REVIEW
    assert s.shipping_address is None


def test_blank_customer_field_rejected(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    s = orch.start("t1", "square")
    with pytest.raises(CheckoutValidationError) as exc:
        orch.submit_customer_info(s, dict(CUSTOMER, email="   "))
    assert "email" in str(exc.value)
    assert s.step == CheckoutStep.REVIEW
    assert s.customer_info is None


def test_bad_fulfillment_input_rejected(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    s = orch.start("t1", "square")
    orch.submit_customer_info(s, CUSTOMER)
    with pytest.raises(CheckoutValidationError):
        orch.submit_fulfillment(s, "teleport")
    with pytest.raises(CheckoutValidationError):
        orch.submit_fulfillment(s, "delivery", -100)
    assert s.step == CheckoutStep.FULFILLMENT


# --- totals and payment context ---

def test_totals_follow_cart_changes(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    s = orch.start("t1", "square")
    orch.submit_customer_info(s, CUSTOMER)
    orch.submit_fulfillment(s, "delivery", 500)
    t = orch.totals(s)
    assert (t.subtotal_cents, t.platform_fee_cents, t.total_cents) == (10000, 300, 10800)

    store.put("t1", "square", _items()[:1])
    t = orch.totals(s)
    assert (t.subtotal_cents, t.platform_fee_cents, t.total_cents) == (5000, 150, 5650)


def test_payment_view_exposes_context(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    s = orch.start("t1", "square")
    assert orch.payment_view(s) is None
    _to_payment(orch, s)
    view = orch.payment_view(s)
    assert view["blocked"] is False
    assert view["collaborator"] == "square"
    ctx = view["context"]
    assert ctx["amount_cents"] == 10300
    assert [i["inventory_item_id"] for i in ctx["cart_items"]] == ["p1", "p2"]
    assert ctx["cart_items"][1]["list_price"] == 6000
    assert ctx["shipping_address"] is None


# --- payment and finalization ---

def test_successful_payment_finalizes_once(store, tmp_path, events):
    history = RecordingHistory()
    square = FakeCollaborator(GatewayType.SQUARE)
    orch = _orchestrator(
        store, tmp_path, events=events, history=history, collaborators={GatewayType.SQUARE: square}
    )
    s = _to_payment(orch, orch.start("t1", "square"), "delivery")

    assert orch.submit_payment(s, "tok-ok") == "/my-orders"
    assert square.contexts[0].amount_cents == 10300
    assert square.contexts[0].payment_token == "tok-ok"
    assert store.cleared == [("t1", "square")]
    assert events.calls == 1
    assert history.contacts == [(s.session_id, "ada@example.com", "555-0100")]
    assert history.orders == [("ORD-1", 10300, ["p1", "p2"])]

    # a repeated confirmation changes nothing
    assert orch.complete(s, "ORD-1", "txn-1") == "/my-orders"
    assert orch.submit_payment(s, "tok-ok") == "/my-orders"
    assert len(square.contexts) == 1
    assert store.cleared == [("t1", "square")]
    assert events.calls == 1
    assert len(history.contacts) == 1
    assert s.finalized


def test_concurrent_confirmations_clear_once(store, tmp_path, events):
    orch = _orchestrator(store, tmp_path, events=events)
    s = _to_payment(orch, orch.start("t1", "square"))
    results = []

    def confirm():
        results.append(orch.complete(s, "ORD-77", "txn-77"))

    threads = [threading.Thread(target=confirm) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results == ["/my-orders"] * 5
    assert len(store.cleared) == 1
    assert events.calls == 1


def test_decline_stays_on_payment(store, tmp_path, events):
    declining = FakeCollaborator(GatewayType.SQUARE, decline=True)
    orch = _orchestrator(store, tmp_path, events=events, collaborators={GatewayType.SQUARE: declining})
    s = _to_payment(orch, orch.start("t1", "square"))
    with pytest.raises(PaymentDeclined):
        orch.submit_payment(s, "force_decline")
    assert s.step == CheckoutStep.PAYMENT
    assert not s.finalized
    assert store.cleared == []
    assert events.calls == 0


def test_contact_failure_does_not_block_redirect(store, tmp_path, events):
    class BrokenHistory(RecordingHistory):
        def save_contact(self, *args):
            raise RuntimeError("db down")

    history = BrokenHistory()
    orch = _orchestrator(store, tmp_path, events=events, history=history)
    s = _to_payment(orch, orch.start("t1", "square"))
    assert orch.complete(s, "ORD-9") == "/my-orders"
    assert events.calls == 1
    assert history.orders and history.orders[0][0] == "ORD-9"


def test_complete_rejects_unready_session(store, tmp_path, events):
    paypal_only = {GatewayType.PAYPAL: FakeCollaborator(GatewayType.PAYPAL)}
    orch = _orchestrator(store, tmp_path, events=events, collaborators=paypal_only)
    s = _to_payment(orch, orch.start("t1", "square"))
    # no handler registered for the selected method
    with pytest.raises(CheckoutValidationError):
        orch.complete(s, "ORD-5")

    s.customer_info = None
    with pytest.raises(CheckoutValidationError):
        orch.complete(s, "ORD-5")
    assert not s.finalized
    assert store.cleared == []
    assert events.calls == 0


class MemoryIdempotency:
    def __init__(self, fail_marks=0):
        self.records = {}
        self.fail_marks = fail_marks
        self.marks = 0

    def begin(self, key, operation, tenant_id=None):
        if key in self.records:
            return self.records[key], False
        self.records[key] = SimpleNamespace(status=IdempotencyStatus.IN_PROGRESS, response_body=None)
        return self.records[key], True

    def mark_completed(self, key, response_body):
        self.marks += 1
        if self.marks <= self.fail_marks:
            raise RuntimeError("db locked")
        rec = self.records[key]
        rec.status = IdempotencyStatus.COMPLETED
        rec.response_body = response_body
        return rec


def test_failed_marker_write_does_not_repeat_side_effects(store, tmp_path, events):
    markers = MemoryIdempotency(fail_marks=1)
    history = RecordingHistory()
    orch = _orchestrator(store, tmp_path, events=events, history=history, idempotency=markers)
    s = _to_payment(orch, orch.start("t1", "square"))

    assert orch.complete(s, "ORD-3", "txn-3") == "/my-orders"
    assert orch.complete(s, "ORD-3", "txn-3") == "/my-orders"
    assert store.cleared == [("t1", "square")]
    assert events.calls == 1
    assert len(history.orders) == 1
    assert s.finalized
    assert s.completion["orderNumber"] == "ORD-3"


def test_marker_left_in_progress_skips_side_effects(store, tmp_path, events):
    markers = MemoryIdempotency()
    orch = _orchestrator(store, tmp_path, events=events, idempotency=markers)
    s = _to_payment(orch, orch.start("t1", "square"))
    # another worker claimed finalization and stopped before recording the result
    markers.begin(f"checkout-finalize:{s.session_id}", "finalize_checkout")

    assert orch.complete(s, "ORD-4", "txn-4") == "/my-orders"
    assert store.cleared == []
    assert events.calls == 0
    rec = markers.records[f"checkout-finalize:{s.session_id}"]
    assert rec.status == IdempotencyStatus.COMPLETED
    assert rec.response_body["orderNumber"] == "ORD-4"


def test_idle_sessions_expire(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    s = orch.start("t1", "square")
    s.last_touched -= 100
    assert orch.expire_idle_sessions(ttl_seconds=10) == [s.session_id]
    assert len(orch.registry) == 0
