"""
Tests for the HTTP client and the upstream adapters (no network).
"""

import pytest
import requests

from conftest import FakeResponse, FakeSession
from parcelfinder.config import Settings
from parcelfinder.errors import MalformedUpstreamPayload, TransientUpstreamError
from parcelfinder.services.common import ApiClient, basic_auth_header
from parcelfinder.services.sendcloud import SendcloudShipmentService, SendcloudTrackingService
from parcelfinder.services.sendcloud import build_client as build_sendcloud_client
from parcelfinder.services.seventeentrack import ALREADY_REGISTERED, SeventeenTrackTrackingService
from parcelfinder.services.woocommerce import (
    WooCommerceOrderService,
    extract_tracking_from_meta,
    parse_order,
    pick_order_number,
)


def make_client(session, service="test", max_retries=2):
    return ApiClient(service, "https://api.example.com/", timeout=5, max_retries=max_retries,
                     retry_base_delay=0.001, session=session)


class TestApiClient:
    """Test the shared error policy."""

    def test_success(self):
        session = FakeSession(FakeResponse(200, {"ok": True}))
        client = make_client(session)
        assert client.get_json("/things", params={"a": 1}) == {"ok": True}
        call = session.calls[0]
        assert call["url"] == "https://api.example.com/things"
        assert call["params"] == {"a": 1}
        assert call["timeout"] == 5
        assert session.headers["Accept"] == "application/json"

    def test_not_found_returns_none(self):
        client = make_client(FakeSession(FakeResponse(404, {"message": "nope"})))
        assert client.get_json("/missing") is None

    def test_retries_timeouts_then_succeeds(self):
        session = FakeSession(
            requests.exceptions.Timeout("read timed out"),
            requests.exceptions.ConnectionError("reset"),
            FakeResponse(200, [1]),
        )
        assert make_client(session).get_json("/x") == [1]
        assert len(session.calls) == 3

    def test_timeouts_exhausted(self):
        session = FakeSession(*[requests.exceptions.Timeout("read timed out")] * 3)
        with pytest.raises(TransientUpstreamError) as exc_info:
            make_client(session, service="woocommerce").get_json("/x")
        assert exc_info.value.service == "woocommerce"
        assert len(session.calls) == 3

    def test_retryable_status_retried(self):
        session = FakeSession(FakeResponse(503), FakeResponse(200, {"ok": 1}))
        assert make_client(session).get_json("/x") == {"ok": 1}

    def test_retryable_status_exhausted_keeps_status(self):
        session = FakeSession(FakeResponse(502), FakeResponse(502))
        with pytest.raises(TransientUpstreamError) as exc_info:
            make_client(session, max_retries=1).get_json("/x")
        assert exc_info.value.status_code == 502

    def test_client_error_not_retried(self):
        session = FakeSession(FakeResponse(401, {"code": "unauthorized"}))
        with pytest.raises(TransientUpstreamError) as exc_info:
            make_client(session).get_json("/x")
        assert exc_info.value.status_code == 401
        assert len(session.calls) == 1

    def test_non_json_body(self):
        session = FakeSession(FakeResponse(200, text="<html>maintenance</html>"))
        with pytest.raises(MalformedUpstreamPayload):
            make_client(session).get_json("/x")

    def test_post_json(self):
        session = FakeSession(FakeResponse(200, {"code": 0}))
        make_client(session).post_json("/register", [{"number": "X"}])
        assert session.calls[0]["method"] == "POST"
        assert session.calls[0]["json"] == [{"number": "X"}]

    def test_own_session_pool_sized_for_probe_threads(self):
        client = ApiClient("test", "https://api.example.com", pool_maxsize=12)
        assert client.session.get_adapter("https://api.example.com/x")._pool_maxsize == 12
        assert client.session.get_adapter("http://api.example.com/x")._pool_maxsize == 12

    def test_build_client_uses_probe_worker_count(self, base_env):
        base_env["PHONE_PROBE_WORKERS"] = "16"
        client = build_sendcloud_client(Settings.from_env(base_env))
        assert client.session.get_adapter("https://panel.sendcloud.sc/api")._pool_maxsize == 16

    def test_basic_auth_header(self):
        assert basic_auth_header("user", "pass") == "Basic dXNlcjpwYXNz"


class TestWooHelpers:
    """Test WooCommerce order parsing."""

    def test_pick_order_number(self):
        assert pick_order_number({"id": 7, "number": "WEB-7"}) == "WEB-7"
        assert pick_order_number({"id": 7}) == "7"
        assert pick_order_number({}) is None

    def test_extract_tracking_from_meta_uses_allow_list(self, woo_order_payload):
        assert extract_tracking_from_meta(woo_order_payload, ["_tracking_number"]) == "LE123456789FR"
        assert extract_tracking_from_meta(woo_order_payload, []) is None
        assert extract_tracking_from_meta(woo_order_payload, ["_other"]) is None

    def test_extract_tracking_from_meta_key_order(self):
        order = {"meta_data": [
            {"key": "b", "value": "FROM-B"},
            {"key": "a", "value": "  "},
            {"key": "c", "value": "FROM-C"},
        ]}
        assert extract_tracking_from_meta(order, ["a", "c", "b"]) == "FROM-C"

    def test_parse_order(self, woo_order_payload):
        order = parse_order(woo_order_payload, ["_tracking_number"])
        assert order.id == "1234"
        assert order.order_number == "1234"
        assert order.country == "FR"
        assert order.first_name == "Camille"
        assert order.email == "Camille.Martin@example.com"
        assert order.tracking_meta == "LE123456789FR"

    def test_parse_order_billing_country_fallback(self):
        order = parse_order({"id": 1, "billing": {"country": "de"}, "shipping": {"country": ""}})
        assert order.country == "DE"

    def test_parse_order_without_country(self):
        assert parse_order({"id": 1}).country is None

    def test_parse_order_rejects_garbage(self):
        assert parse_order({"number": "1"}) is None
        assert parse_order("1234") is None


class TestWooCommerceOrderService:

    def test_fetch_order_by_id(self, woo_order_payload):
        session = FakeSession(FakeResponse(200, woo_order_payload))
        service = WooCommerceOrderService(make_client(session), meta_keys=["_tracking_number"])
        order = service.fetch_order_by_id("1234")
        assert order.tracking_meta == "LE123456789FR"
        assert session.calls[0]["url"].endswith("/wp-json/wc/v3/orders/1234")

    def test_fetch_missing_order(self):
        service = WooCommerceOrderService(make_client(FakeSession(FakeResponse(404, {}))))
        assert service.fetch_order_by_id("999") is None

    def test_fetch_order_transport_failure_propagates(self):
        session = FakeSession(*[requests.exceptions.ConnectionError("down")] * 3)
        service = WooCommerceOrderService(make_client(session))
        with pytest.raises(TransientUpstreamError):
            service.fetch_order_by_id("1234")

    def test_search_by_email_is_strict(self, woo_order_payload):
        other = dict(woo_order_payload, id=1200, number="1200", billing={"email": "camille.martin@example.com.evil"})
        session = FakeSession(FakeResponse(200, [woo_order_payload, other]))
        service = WooCommerceOrderService(make_client(session), per_page=20)
        orders = service.search_orders_by_term(" camille.martin@EXAMPLE.com ")
        assert [o.id for o in orders] == ["1234"]
        params = session.calls[0]["params"]
        assert params == {"search": "camille.martin@EXAMPLE.com", "per_page": 20, "orderby": "date", "order": "desc"}

    def test_search_by_phone_keeps_upstream_order(self, woo_order_payload):
        newer = dict(woo_order_payload, id=1300, number="1300")
        session = FakeSession(FakeResponse(200, [newer, woo_order_payload]))
        orders = WooCommerceOrderService(make_client(session)).search_orders_by_term("0612345678")
        assert [o.id for o in orders] == ["1300", "1234"]

    def test_search_no_results(self):
        service = WooCommerceOrderService(make_client(FakeSession(FakeResponse(200, []))))
        assert service.search_orders_by_term("a@b.com") == []

    def test_search_malformed_payload(self):
        service = WooCommerceOrderService(make_client(FakeSession(FakeResponse(200, {"code": "weird"}))))
        assert service.search_orders_by_term("a@b.com") == []

    def test_search_rejects_empty_term(self):
        service = WooCommerceOrderService(make_client(FakeSession()))
        with pytest.raises(ValueError):
            service.search_orders_by_term("  ")


class TestSendcloud:

    def test_find_parcel_by_order_number(self, sendcloud_parcels_payload):
        session = FakeSession(FakeResponse(200, sendcloud_parcels_payload))
        payload = SendcloudShipmentService(make_client(session)).find_parcel_by_order_number("1234")
        assert payload == sendcloud_parcels_payload
        assert session.calls[0]["url"].endswith("/api/v2/parcels")
        assert session.calls[0]["params"] == {"order_number": "1234"}

    def test_find_parcel_non_json(self):
        session = FakeSession(FakeResponse(200, text="oops"))
        assert SendcloudShipmentService(make_client(session)).find_parcel_by_order_number("1234") is None

    def test_track_by_tracking_number(self, sendcloud_tracking_payload):
        session = FakeSession(FakeResponse(200, sendcloud_tracking_payload))
        payload = SendcloudTrackingService(make_client(session)).track_by_tracking_number("LE123456789FR")
        assert payload["parcel_id"] == 99
        assert session.calls[0]["url"].endswith("/api/v2/tracking/LE123456789FR")

    def test_track_unknown_number(self):
        session = FakeSession(FakeResponse(404, {"error": "not found"}))
        assert SendcloudTrackingService(make_client(session)).track_by_tracking_number("NOPE") is None

    def test_track_server_error_raises(self):
        session = FakeSession(FakeResponse(500), FakeResponse(500), FakeResponse(500))
        with pytest.raises(TransientUpstreamError):
            SendcloudTrackingService(make_client(session)).track_by_tracking_number("LE1")


class TestSeventeenTrack:
    """Test register-then-gettrackinfo flow."""

    def test_new_number_accepted_on_register(self):
        package = {"number": "LE1", "track": {"z0": [], "z1": []}}
        session = FakeSession(FakeResponse(200, {"code": 0, "data": {"accepted": [package], "rejected": []}}))
        assert SeventeenTrackTrackingService(make_client(session)).track_by_tracking_number("LE1") == package
        assert session.calls[0]["url"].endswith("/register")
        assert session.calls[0]["json"] == [{"number": "LE1"}]

    def test_already_registered_falls_back_to_gettrackinfo(self):
        package = {"number": "LE1", "recipientCountry": "FR"}
        session = FakeSession(
            FakeResponse(200, {"data": {"accepted": [], "rejected": [
                {"number": "LE1", "error": {"code": ALREADY_REGISTERED, "message": "already registered"}}
            ]}}),
            FakeResponse(200, {"data": {"accepted": [package], "rejected": []}}),
        )
        assert SeventeenTrackTrackingService(make_client(session)).track_by_tracking_number("LE1") == package
        assert session.calls[1]["url"].endswith("/gettrackinfo")

    def test_invalid_number_rejected(self):
        session = FakeSession(FakeResponse(200, {"data": {"accepted": [], "rejected": [
            {"number": "??", "error": {"code": -18010012, "message": "invalid"}}
        ]}}))
        assert SeventeenTrackTrackingService(make_client(session)).track_by_tracking_number("??") is None
        assert len(session.calls) == 1

    def test_gettrackinfo_empty(self):
        session = FakeSession(
            FakeResponse(200, {"data": {"rejected": [{"error": {"code": str(ALREADY_REGISTERED)}}]}}),
            FakeResponse(200, {"data": {"accepted": []}}),
        )
        assert SeventeenTrackTrackingService(make_client(session)).track_by_tracking_number("LE1") is None
