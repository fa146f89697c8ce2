"""OrderService backed by the WooCommerce REST API (wc/v3)."""

from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

from ..errors import MalformedUpstreamPayload
from ..logger import get_logger
from ..models import OrderRecord
from ..normalize import clean_identifier, normalize_country, normalize_email
from .common import ApiClient, basic_auth_header

logger = get_logger()

SERVICE = "woocommerce"
ORDERS_PATH = "/wp-json/wc/v3/orders"


def pick_order_number(order: Dict[str, Any]) -> Optional[str]:
    """Woo exposes a display ``number`` (string) next to the numeric ``id``; prefer the former."""
    if order.get("number") is not None:
        return str(order["number"])
    if order.get("id") is not None:
        return str(order["id"])
    return None


def extract_tracking_from_meta(order: Dict[str, Any], meta_keys: Iterable[str]) -> Optional[str]:
    """Tracking number stored by a shipping plugin in order meta.

    Only the explicitly configured keys are read, in order; nothing is guessed.
    """
    meta = order.get("meta_data")
    if not isinstance(meta, list):
        return None
    for key in meta_keys:
        for entry in meta:
            if not isinstance(entry, dict) or entry.get("key") != key:
                continue
            value = clean_identifier(entry.get("value"))
            if value:
                return value
    return None


def parse_order(payload: Any, meta_keys: Iterable[str] = ()) -> Optional[OrderRecord]:
    """Map a Woo order object to an OrderRecord; None if it has no id."""
    if not isinstance(payload, dict) or payload.get("id") is None:
        return None
    billing = payload.get("billing") if isinstance(payload.get("billing"), dict) else {}
    shipping = payload.get("shipping") if isinstance(payload.get("shipping"), dict) else {}
    return OrderRecord(
        id=str(payload["id"]),
        number=pick_order_number(payload),
        country=normalize_country(shipping.get("country")) or normalize_country(billing.get("country")),
        tracking_meta=extract_tracking_from_meta(payload, meta_keys),
        first_name=clean_identifier(billing.get("first_name")) or clean_identifier(shipping.get("first_name")),
        email=clean_identifier(billing.get("email")),
    )


class WooCommerceOrderService:
    """Looks orders up by id or by a free-text term (email, phone...)."""

    def __init__(self, client: ApiClient, meta_keys: Iterable[str] = (), per_page: int = 50):
        self.client = client
        self.meta_keys = tuple(meta_keys)
        self.per_page = per_page

    @classmethod
    def from_settings(cls, settings, session=None) -> "WooCommerceOrderService":
        client = ApiClient(
            SERVICE,
            settings.wc_base_url,
            headers={"Authorization": basic_auth_header(settings.wc_consumer_key, settings.wc_consumer_secret)},
            timeout=settings.http_timeout_seconds,
            max_retries=settings.http_max_retries,
            retry_base_delay=settings.http_retry_base_delay,
            pool_maxsize=settings.phone_probe_workers,
            session=session,
        )
        return cls(client, meta_keys=settings.tracking_meta_keys, per_page=settings.order_lookback_per_page)

    def fetch_order_by_id(self, order_id: str) -> Optional[OrderRecord]:
        """Fetch one order. None when Woo does not know it.

        Raises:
            TransientUpstreamError: On transport failure or a non-404 error status
        """
        try:
            payload = self.client.get_json(f"{ORDERS_PATH}/{quote(str(order_id), safe='')}")
        except MalformedUpstreamPayload:
            return None
        if payload is None:
            return None
        order = parse_order(payload, self.meta_keys)
        if order is None:
            logger.warning("Woo order payload has no id", order_id=order_id)
        return order

    def search_orders_by_term(self, term: str) -> List[OrderRecord]:
        """Orders matching ``term``, newest first, at most one page.

        Email terms are matched exactly against the billing email, since
        Woo's ``search`` parameter is a loose substring search.
        """
        if not term or not term.strip():
            raise ValueError("search term must not be empty")
        term = term.strip()

        params = {
            "search": term,
            "per_page": self.per_page,
            "orderby": "date",
            "order": "desc",
        }
        try:
            payload = self.client.get_json(ORDERS_PATH, params=params)
        except MalformedUpstreamPayload:
            return []
        if not isinstance(payload, list):
            if payload is not None:
                logger.warning("Woo order search returned a non-list payload", term=term)
            return []

        orders = [o for o in (parse_order(p, self.meta_keys) for p in payload) if o is not None]
        if "@" in term:
            wanted = normalize_email(term)
            orders = [o for o in orders if normalize_email(o.email or "") == wanted]
        logger.debug("Woo order search", term=term, matches=len(orders))
        return orders
