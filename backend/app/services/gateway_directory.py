from typing import Callable, Dict, List, Optional

import requests
from requests import RequestException
from sqlalchemy.orm import Session

from app.config import settings
from app.db import SessionLocal
from app.repositories.gateway_repo import PaymentGatewayRepository
from app.schemas.checkout_schema import GatewayType
from app.utils.logging import get_logger

logger = get_logger(__name__)


class GatewayDirectoryError(Exception):
    pass


class GatewayDirectory:
    """Lists a tenant's payment gateway configurations (public read)."""

    def list_gateways(self, tenant_id: str) -> List[Dict]:
        raise NotImplementedError

    def active_gateway_types(self, tenant_id: str) -> List[GatewayType]:
        return active_types(self.list_gateways(tenant_id))


def active_types(gateways: List[Dict]) -> List[GatewayType]:
    """Active, known gateway types in directory order, without duplicates."""
    out: List[GatewayType] = []
    for g in gateways:
        if not g.get("is_active"):
            continue
        try:
            gt = GatewayType(g.get("gateway_type"))
        except ValueError:
            logger.info(f"Ignoring unsupported gateway type {g.get('gateway_type')!r}")
            continue
        if gt not in out:
            out.append(gt)
    return out


def default_type(gateways: List[Dict]) -> Optional[GatewayType]:
    for gt in active_types([g for g in gateways if g.get("is_default")]):
        return gt
    return None


def gateway_to_dict(g) -> Dict:
    return {
        "gateway_type": g.gateway_type,
        "is_active": bool(g.is_active),
        "is_default": bool(g.is_default),
        "display_name": g.display_name,
    }


class LocalGatewayDirectory(GatewayDirectory):
    """Directory served from this service's own tenant_payment_gateways table."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def list_gateways(self, tenant_id: str) -> List[Dict]:
        try:
            with self.session_factory() as s:
                return [gateway_to_dict(g) for g in PaymentGatewayRepository(s).list_for_tenant(tenant_id)]
        except Exception as e:
            raise GatewayDirectoryError(f"Gateway lookup failed: {e}") from e


class HttpGatewayDirectory(GatewayDirectory):
    """
    Directory read over HTTP from an external API. Single attempt per call:
    the checkout treats a failed lookup as "no gateways" rather than retrying.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[int] = None, http=None):
        self.base_url = (base_url or settings.GATEWAY_DIRECTORY_URL).rstrip("/")
        self.timeout = timeout or settings.GATEWAY_DIRECTORY_TIMEOUT_SECONDS
        self.http = http or requests.Session()

    def list_gateways(self, tenant_id: str) -> List[Dict]:
        url = f"{self.base_url}/api/tenants/{tenant_id}/payment-gateways/public"
        logger.info(f"GatewayDirectory GET {url}")
        try:
            resp = self.http.get(url, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (RequestException, ValueError) as e:
            raise GatewayDirectoryError(f"Gateway directory unavailable: {e}") from e
        gateways = data.get("gateways") if isinstance(data, dict) else None
        if not isinstance(gateways, list):
            raise GatewayDirectoryError("Gateway directory returned no 'gateways' list")
        return gateways


def build_gateway_directory() -> GatewayDirectory:
    if settings.GATEWAY_DIRECTORY_URL:
        return HttpGatewayDirectory()
    return LocalGatewayDirectory()
