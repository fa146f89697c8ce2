"""Adapters to the order, shipment and carrier-tracking upstreams."""

from .common import ApiClient
from .sendcloud import SendcloudShipmentService, SendcloudTrackingService
from .seventeentrack import SeventeenTrackTrackingService
from .woocommerce import WooCommerceOrderService

__all__ = [
    "ApiClient",
    "SendcloudShipmentService",
    "SendcloudTrackingService",
    "SeventeenTrackTrackingService",
    "WooCommerceOrderService",
]
