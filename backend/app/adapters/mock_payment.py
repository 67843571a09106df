import time
from typing import Dict, Optional
from uuid import uuid4

from app.config import settings
from app.schemas.checkout_schema import GatewayType, PaymentConfirmation, PaymentContext


class PaymentError(Exception):
    """Raised when the processor could not complete the payment."""
    pass


class PaymentDeclined(PaymentError):
    """Raised for a non-retryable decline (e.g., insufficient funds)."""
    pass


class PaymentCollaborator:
    """
    One payment processor as checkout sees it: a single `submit` capability.
    Implementations either return a PaymentConfirmation or raise
    PaymentDeclined / PaymentError; checkout never inspects processor details.
    """

    gateway_type: GatewayType

    def submit(self, context: PaymentContext) -> PaymentConfirmation:
        raise NotImplementedError

    def health_check(self) -> bool:
        return True


class MockProcessorAdapter(PaymentCollaborator):
    """
    Simulated processor. Sleeps to mimic gateway latency, declines when the
    client token is "force_decline", otherwise captures the full amount.
    """

    txn_prefix = "mock"

    def __init__(self, delay_ms: Optional[int] = None):
        delay_ms = settings.PAYMENT_MOCK_DELAY_MS if delay_ms is None else delay_ms
        # Convert delay from milliseconds to seconds for time.sleep
        self.delay_seconds = delay_ms / 1000.0

    def _gen_order_number(self) -> str:
        return f"ORD-{uuid4().hex[:10].upper()}"

    def submit(self, context: PaymentContext) -> PaymentConfirmation:
        if not context.payment_token:
            raise PaymentError("Payment token is required")
        if context.amount_cents <= 0:
            raise PaymentError("Amount must be positive")

        # Simulate network latency / gateway processing
        time.sleep(self.delay_seconds)

        if context.payment_token == "force_decline":
            raise PaymentDeclined(f"{self.gateway_type.value}: simulated decline")

        return PaymentConfirmation(
            order_number=self._gen_order_number(),
            gateway_transaction_id=f"{self.txn_prefix}-{uuid4().hex}",
        )


class SquarePaymentAdapter(MockProcessorAdapter):
    gateway_type = GatewayType.SQUARE
    txn_prefix = "sq"


class PayPalPaymentAdapter(MockProcessorAdapter):
    gateway_type = GatewayType.PAYPAL
    txn_prefix = "pp"


def default_collaborators(delay_ms: Optional[int] = None) -> Dict[GatewayType, PaymentCollaborator]:
    return {
        GatewayType.SQUARE: SquarePaymentAdapter(delay_ms=delay_ms),
        GatewayType.PAYPAL: PayPalPaymentAdapter(delay_ms=delay_ms),
    }
