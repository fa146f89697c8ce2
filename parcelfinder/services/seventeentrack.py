"""
CarrierTrackingService backed by the 17TRACK API.

17TRACK only reports numbers it has been asked to watch: a number is
registered first, and a number that is already registered is read back
with ``gettrackinfo`` instead.
"""

from typing import Any, Dict, Optional

from ..errors import MalformedUpstreamPayload
from ..logger import get_logger
from .common import ApiClient

logger = get_logger()

SERVICE = "17track"

ALREADY_REGISTERED = -18019901


def build_client(settings, session=None) -> ApiClient:
    return ApiClient(
        SERVICE,
        settings.seventeentrack_base_url,
        headers={"17token": settings.seventeentrack_api_key or "", "Content-Type": "application/json"},
        timeout=settings.http_timeout_seconds,
        max_retries=settings.http_max_retries,
        retry_base_delay=settings.http_retry_base_delay,
        pool_maxsize=settings.phone_probe_workers,
        session=session,
    )


def _accepted(payload: Any) -> Optional[Dict[str, Any]]:
    data = payload.get("data") if isinstance(payload, dict) else None
    accepted = data.get("accepted") if isinstance(data, dict) else None
    if isinstance(accepted, list) and accepted and isinstance(accepted[0], dict):
        return accepted[0]
    return None


def _rejection_code(payload: Any) -> Optional[int]:
    data = payload.get("data") if isinstance(payload, dict) else None
    rejected = data.get("rejected") if isinstance(data, dict) else None
    if not isinstance(rejected, list) or not rejected or not isinstance(rejected[0], dict):
        return None
    error = rejected[0].get("error")
    if not isinstance(error, dict):
        return None
    try:
        return int(error.get("code"))
    except (TypeError, ValueError):
        return None


class SeventeenTrackTrackingService:
    def __init__(self, client: ApiClient):
        self.client = client

    def track_by_tracking_number(self, tracking_number: str) -> Optional[Dict[str, Any]]:
        """The accepted package entry for ``tracking_number``, or None.

        Raises:
            TransientUpstreamError: On transport failure or an error status
        """
        body = [{"number": str(tracking_number)}]
        try:
            registered = self.client.post_json("/register", body)
        except MalformedUpstreamPayload:
            return None

        package = _accepted(registered)
        if package is not None:
            logger.debug("17track registered tracking number", tracking_number=tracking_number)
            return package

        code = _rejection_code(registered)
        if code != ALREADY_REGISTERED:
            logger.warning("17track rejected tracking number", tracking_number=tracking_number, code=code)
            return None

        try:
            info = self.client.post_json("/gettrackinfo", body)
        except MalformedUpstreamPayload:
            return None
        package = _accepted(info)
        if package is None:
            logger.warning("17track has no info for registered number", tracking_number=tracking_number)
        return package
