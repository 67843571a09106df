#!/usr/bin/env python3
"""
Seed demo tenants from a JSON file: payment gateways, fulfillment settings
and a populated cart per tenant, so a checkout can be started right away.

Usage:
    python scripts/seed_demo.py --file demo_tenants.json

File shape (a list, or an object with a "tenants" list):
    [{"tenant_id": "demo-shop", "tenant_name": "Demo Shop",
      "gateways": [{"gateway_type": "square", "is_default": true}],
      "fulfillment": {"pickup_enabled": true, "delivery_enabled": true, "delivery_fee_cents": 500},
      "cart": {"gateway_type": "square", "items": [{"product_id": "p1", "name": "Tea", "sku": "TEA",
                                                   "quantity": 1, "unit_price_cents": 450}]}}]
"""
import argparse
import json
import os
import sys

# allow running from repo/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.db import SessionLocal, init_db
from app.repositories.fulfillment_settings_repo import FulfillmentSettingsRepository
from app.repositories.gateway_repo import PaymentGatewayRepository
from app.schemas.checkout_schema import CartItemIn, FulfillmentSettingsIn, GatewayConfigIn
from app.services.cart_service import CartService

DEMO_TENANT = {
    "tenant_id": "demo-shop",
    "tenant_name": "Demo Shop",
    "gateways": [{"gateway_type": "square", "is_default": True}],
    "fulfillment": {"pickup_enabled": True, "delivery_enabled": True, "delivery_fee_cents": 500,
                    "delivery_min_free_cents": 5000},
    "cart": {
        "gateway_type": "square",
        "items": [
            {"product_id": "demo-tea", "name": "Tea 100g", "sku": "TEA-100", "quantity": 2, "unit_price_cents": 450},
            {"product_id": "demo-mug", "name": "Mug", "sku": "MUG-1", "quantity": 1,
             "unit_price_cents": 1200, "list_price_cents": 1500},
        ],
    },
}


def _load(path):
    if not path:
        return [DEMO_TENANT]
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        return data.get("tenants", [])
    return data if isinstance(data, list) else []


def seed(tenants):
    db = SessionLocal()
    try:
        gateways = PaymentGatewayRepository(db)
        fulfillment = FulfillmentSettingsRepository(db)
        for t in tenants:
            tenant_id = t["tenant_id"]
            for g in t.get("gateways", []):
                cfg = GatewayConfigIn.model_validate(g)
                gateways.upsert(tenant_id, cfg.gateway_type.value, is_active=cfg.is_active,
                                is_default=cfg.is_default, display_name=cfg.display_name)
            if t.get("fulfillment"):
                fulfillment.save(tenant_id, **FulfillmentSettingsIn.model_validate(t["fulfillment"]).model_dump())
            db.commit()

            cart = t.get("cart") or {}
            svc = CartService(db)
            for item in cart.get("items", []):
                payload = CartItemIn.model_validate(dict(item, tenant_name=t.get("tenant_name")))
                svc.add_item(tenant_id, cart.get("gateway_type", "square"), payload)
            print(f"Seeded tenant {tenant_id}: {len(cart.get('items', []))} cart items")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--file", "-f", default=None, help="Path to tenant json; a single demo tenant when omitted")
    args = parser.parse_args()
    if args.file and not os.path.exists(args.file):
        print("File not found:", args.file)
        sys.exit(1)
    init_db()
    seed(_load(args.file))
