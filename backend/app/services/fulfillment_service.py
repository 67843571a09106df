from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.models.fulfillment_settings import TenantFulfillmentSettings
from app.repositories.fulfillment_settings_repo import FulfillmentSettingsRepository
from app.schemas.checkout_schema import FulfillmentMethod


class FulfillmentException(Exception):
    pass


def enabled_methods(settings: Optional[TenantFulfillmentSettings]) -> list:
    """Methods a tenant offers, in display order. No settings row means all of them."""
    if settings is None:
        return list(FulfillmentMethod)
    out = []
    if settings.pickup_enabled:
        out.append(FulfillmentMethod.PICKUP)
    if settings.delivery_enabled:
        out.append(FulfillmentMethod.DELIVERY)
    if settings.shipping_enabled:
        out.append(FulfillmentMethod.SHIPPING)
    return out


def quote_fee(
    settings: Optional[TenantFulfillmentSettings],
    method: FulfillmentMethod,
    subtotal_cents: int,
) -> int:
    """
    Fee for a fulfillment method:
      - pickup is free
      - delivery costs delivery_fee_cents, waived at or above delivery_min_free_cents
      - shipping costs the flat rate (0 when none is configured)
    """
    if settings is None or method == FulfillmentMethod.PICKUP:
        return 0
    if method == FulfillmentMethod.DELIVERY:
        if settings.delivery_min_free_cents and subtotal_cents >= settings.delivery_min_free_cents:
            return 0
        return settings.delivery_fee_cents or 0
    return settings.shipping_flat_rate_cents or 0


class FulfillmentService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = FulfillmentSettingsRepository(db)

    def get_settings(self, tenant_id: str) -> Optional[TenantFulfillmentSettings]:
        return self.repo.get(tenant_id)

    def save_settings(self, tenant_id: str, fields: Dict) -> TenantFulfillmentSettings:
        if not any(fields.get(k) for k in ("pickup_enabled", "delivery_enabled", "shipping_enabled")):
            raise FulfillmentException("At least one fulfillment method must be enabled")
        s = self.repo.save(tenant_id, **fields)
        self.db.commit()
        return s

    def options(self, tenant_id: str, subtotal_cents: int) -> list:
        s = self.repo.get(tenant_id)
        return [
            {"method": m.value, "fee_cents": quote_fee(s, m, subtotal_cents)}
            for m in enabled_methods(s)
        ]


class FulfillmentPolicy:
    """Read-only view of tenant fulfillment settings used by checkout."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def _load(self, tenant_id: str) -> Optional[TenantFulfillmentSettings]:
        with self.session_factory() as s:
            row = FulfillmentSettingsRepository(s).get(tenant_id)
            if row is not None:
                s.expunge(row)
            return row

    def allowed_methods(self, tenant_id: str) -> list:
        return enabled_methods(self._load(tenant_id))

    def quote(self, tenant_id: str, method: FulfillmentMethod, subtotal_cents: int) -> int:
        return quote_fee(self._load(tenant_id), method, subtotal_cents)
