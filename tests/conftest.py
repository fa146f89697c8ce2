"""
Pytest configuration and shared fixtures.
"""

import threading
from typing import Any, Dict, List, Optional

import pytest

from parcelfinder.errors import TransientUpstreamError
from parcelfinder.models import OrderRecord

_NO_JSON = object()


class FakeResponse:
    """Just enough of requests.Response for ApiClient."""

    def __init__(self, status_code: int = 200, data: Any = _NO_JSON, text: str = ""):
        self.status_code = status_code
        self._data = data
        self.text = text

    def json(self):
        if self._data is _NO_JSON:
            raise ValueError("No JSON object could be decoded")
        return self._data


class FakeSession:
    """Replays queued responses (or raises queued exceptions) in order."""

    def __init__(self, *responses):
        self.headers: Dict[str, str] = {}
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append({"method": method, "url": url, "timeout": timeout, **kwargs})
        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


class FakeOrderService:
    """In-memory OrderService keyed by order id and by search term."""

    def __init__(
        self,
        orders: Optional[Dict[str, OrderRecord]] = None,
        searches: Optional[Dict[str, List[OrderRecord]]] = None,
        failing_terms=(),
        fail_fetch: bool = False,
    ):
        self.orders = orders or {}
        self.searches = searches or {}
        self.failing_terms = set(failing_terms)
        self.fail_fetch = fail_fetch
        self.fetched: List[str] = []
        self.searched: List[str] = []
        self._lock = threading.Lock()

    def fetch_order_by_id(self, order_id):
        with self._lock:
            self.fetched.append(order_id)
        if self.fail_fetch:
            raise TransientUpstreamError("woocommerce request timed out", service="woocommerce")
        return self.orders.get(order_id)

    def search_orders_by_term(self, term):
        with self._lock:
            self.searched.append(term)
        if term in self.failing_terms:
            raise TransientUpstreamError("woocommerce request failed (503)", service="woocommerce", status_code=503)
        return list(self.searches.get(term, []))


class FakeShipmentService:
    def __init__(self, parcels: Optional[Dict[str, Any]] = None, fail: bool = False):
        self.parcels = parcels or {}
        self.fail = fail
        self.calls: List[str] = []

    def find_parcel_by_order_number(self, order_number):
        self.calls.append(order_number)
        if self.fail:
            raise TransientUpstreamError("sendcloud request failed (500)", service="sendcloud", status_code=500)
        return self.parcels.get(order_number)


class FakeTrackingService:
    def __init__(self, payloads: Optional[Dict[str, Any]] = None, fail: bool = False):
        self.payloads = payloads or {}
        self.fail = fail
        self.calls: List[str] = []

    def track_by_tracking_number(self, tracking_number):
        self.calls.append(tracking_number)
        if self.fail:
            raise TransientUpstreamError("sendcloud request timed out", service="sendcloud")
        return self.payloads.get(tracking_number)


@pytest.fixture
def base_env() -> Dict[str, str]:
    """Minimal environment accepted by Settings.from_env."""
    return {
        "WC_BASE_URL": "https://shop.example.com/",
        "WC_CONSUMER_KEY": "ck_test",
        "WC_CONSUMER_SECRET": "cs_test",
        "SENDCLOUD_PUBLIC_KEY": "sc_pub",
        "SENDCLOUD_SECRET_KEY": "sc_sec",
    }


@pytest.fixture
def woo_order_payload() -> Dict[str, Any]:
    """A WooCommerce wc/v3 order as returned by GET /orders/{id}."""
    return {
        "id": 1234,
        "number": "1234",
        "status": "processing",
        "billing": {
            "first_name": "Camille",
            "last_name": "Martin",
            "email": "Camille.Martin@example.com",
            "phone": "06 12 34 56 78",
            "country": "FR",
        },
        "shipping": {
            "first_name": "Camille",
            "country": "FR",
        },
        "meta_data": [
            {"id": 1, "key": "_wc_order_attribution_source_type", "value": "typein"},
            {"id": 2, "key": "_tracking_number", "value": " LE123456789FR "},
        ],
    }


@pytest.fixture
def sendcloud_parcels_payload() -> Dict[str, Any]:
    """Sendcloud GET /api/v2/parcels?order_number=... response."""
    return {
        "parcels": [
            {
                "id": 99,
                "order_number": "1234",
                "tracking_number": "LE123456789FR",
                "country": {"iso_2": "FR", "name": "France"},
            }
        ]
    }


@pytest.fixture
def sendcloud_tracking_payload() -> Dict[str, Any]:
    """Sendcloud GET /api/v2/tracking/{tracking_number} response, oldest status first."""
    return {
        "parcel_id": 99,
        "carrier_code": "colissimo",
        "carrier_tracking_url": "https://www.laposte.fr/outils/suivre-vos-envois?code=LE123456789FR",
        "to_country": "FR",
        "statuses": [
            {"carrier_update_timestamp": "2024-03-01T08:00:00+01:00", "carrier_message": "Label created", "parent_status": "announced"},
            {"carrier_update_timestamp": "2024-03-01T18:30:00+01:00", "carrier_message": "Picked up", "parent_status": "en-route-to-sorting-center"},
            {"carrier_update_timestamp": "2024-03-02T06:10:00+01:00", "carrier_message": "At sorting center", "parent_status": "at-sorting-centre"},
            {"carrier_update_timestamp": "2024-03-03T09:45:00+01:00", "carrier_message": "Out for delivery", "parent_status": "out-for-delivery"},
        ],
    }


@pytest.fixture
def fr_order() -> OrderRecord:
    return OrderRecord(id="1234", number="1234", country="FR", first_name="Camille", email="a@b.com")
