from typing import Optional

from sqlalchemy.orm import Session

from app.models.fulfillment_settings import TenantFulfillmentSettings


class FulfillmentSettingsRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, tenant_id: str) -> Optional[TenantFulfillmentSettings]:
        return (
            self.db.query(TenantFulfillmentSettings)
            .filter(TenantFulfillmentSettings.tenant_id == tenant_id)
            .first()
        )

    def save(self, tenant_id: str, **fields) -> TenantFulfillmentSettings:
        s = self.get(tenant_id)
        if s is None:
            s = TenantFulfillmentSettings(tenant_id=tenant_id)
            self.db.add(s)
        for k, v in fields.items():
            setattr(s, k, v)
        self.db.flush()
        return s
