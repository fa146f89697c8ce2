"""Sendcloud adapters: parcel lookup by order number and tracking by number."""

from typing import Any, Optional
from urllib.parse import quote

from ..errors import MalformedUpstreamPayload
from .common import ApiClient, basic_auth_header


SERVICE = "sendcloud"


def build_client(settings, session=None) -> ApiClient:
    return ApiClient(
        SERVICE,
        settings.sendcloud_base_url,
        headers={"Authorization": basic_auth_header(settings.sendcloud_public_key, settings.sendcloud_secret_key)},
        timeout=settings.http_timeout_seconds,
        max_retries=settings.http_max_retries,
        retry_base_delay=settings.http_retry_base_delay,
        pool_maxsize=settings.phone_probe_workers,
        session=session,
    )


class SendcloudShipmentService:
    def __init__(self, client: ApiClient):
        self.client = client

    def find_parcel_by_order_number(self, order_number: str) -> Optional[Any]:
        """Raw parcel-search payload for an order number, None if absent or unreadable.

        Raises:
            TransientUpstreamError: On transport failure or an error status
        """
        try:
            return self.client.get_json("/api/v2/parcels", params={"order_number": str(order_number)})
        except MalformedUpstreamPayload:
            return None


class SendcloudTrackingService:
    def __init__(self, client: ApiClient):
        self.client = client

    def track_by_tracking_number(self, tracking_number: str) -> Optional[Any]:
        """Raw tracking payload, None when Sendcloud does not know the number.

        Raises:
            TransientUpstreamError: On transport failure or an error status
        """
        try:
            return self.client.get_json(f"/api/v2/tracking/{quote(str(tracking_number), safe='')}")
        except MalformedUpstreamPayload:
            return None
