"""
Readers for upstream shipment and tracking payloads.

Upstream shapes drift between providers and API versions, so every
lookup here is an ordered list of accessors tried in priority order.
Anything that cannot be read is treated as absent; nothing here raises
on a strange payload.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

from .config import DEFAULT_TRACKING_LINK_TEMPLATE
from .logger import get_logger
from .models import TrackingEvent, TrackingRecord
from .normalize import clean_identifier, normalize_country

logger = get_logger()

Accessor = Callable[[Dict[str, Any]], Any]


def _singular(key: str) -> Accessor:
    def access(payload: Dict[str, Any]) -> Any:
        value = payload.get(key)
        return [value] if isinstance(value, dict) else None
    return access


def _seventeentrack_events(payload: Dict[str, Any]) -> Any:
    # z0 holds origin-country events, z1 destination-country events
    track = payload.get("track")
    if not isinstance(track, dict):
        return None
    events = []
    for key in ("z0", "z1"):
        if isinstance(track.get(key), list):
            events.extend(track[key])
    return events


PARCEL_LIST_ACCESSORS: Tuple[Accessor, ...] = (
    lambda p: p.get("parcels"),
    lambda p: p.get("results"),
    lambda p: p.get("data"),
    _singular("parcel"),
)

HISTORY_LIST_ACCESSORS: Tuple[Accessor, ...] = (
    lambda p: p.get("statuses"),
    lambda p: p.get("events"),
    lambda p: p.get("history"),
    lambda p: p.get("tracking_events"),
    lambda p: p.get("checkpoints"),
    _seventeentrack_events,
)

STATUS_MESSAGE_KEYS = ("status_message", "status", "current_status")
CARRIER_STATUS_KEYS = ("carrier_status", "carrier_status_code", "parent_status")
EVENT_TIMESTAMP_KEYS = ("carrier_update_timestamp", "timestamp", "date", "time", "a")
# Carrier wording beats the generic status label
EVENT_MESSAGE_KEYS = ("carrier_message", "message", "description", "z", "status_message", "parent_status", "status")
DESTINATION_KEYS = ("destination_country", "to_country", "recipientCountry", "recipient_country", "country")
CARRIER_LINK_KEYS = ("carrier_tracking_url", "tracking_url")
PROVIDER_LINK_KEYS = ("sendcloud_tracking_url", "tracking_page_url")


def first_plausible_list(payload: Any, accessors: Sequence[Accessor]) -> List[Any]:
    """Return the first non-empty list any accessor yields, else []."""
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []
    for access in accessors:
        value = access(payload)
        if isinstance(value, list) and value:
            return value
    return []


def pick_tracking_number_from_parcels(payload: Any) -> Optional[str]:
    """Tracking number of the first parcel in a parcel-search payload.

    Reads ``tracking_number`` on the parcel, then ``tracking.tracking_number``.
    """
    parcels = first_plausible_list(payload, PARCEL_LIST_ACCESSORS)
    if not parcels or not isinstance(parcels[0], dict):
        return None
    first = parcels[0]

    direct = clean_identifier(first.get("tracking_number"))
    if direct:
        return direct
    nested = first.get("tracking")
    if isinstance(nested, dict):
        return clean_identifier(nested.get("tracking_number"))
    return None


def _first_text(source: Dict[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = source.get(key)
        if isinstance(value, dict):
            value = value.get("message") or value.get("name")
        text = clean_identifier(value)
        if text:
            return text
    return None


def _first_country(source: Dict[str, Any]) -> Optional[str]:
    for key in DESTINATION_KEYS:
        value = source.get(key)
        if isinstance(value, dict):
            value = value.get("iso_2") or value.get("code")
        country = normalize_country(value)
        if country:
            return country
    return None


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-ish timestamp; naive values are taken as UTC."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TrackingRecordNormalizer:
    """Maps a raw tracking payload onto a TrackingRecord."""

    def __init__(
        self,
        history_limit: int = 3,
        fallback_status: str = "pending",
        link_template: str = DEFAULT_TRACKING_LINK_TEMPLATE,
    ):
        self.history_limit = history_limit
        self.fallback_status = fallback_status
        self.link_template = link_template

    @classmethod
    def from_settings(cls, settings) -> "TrackingRecordNormalizer":
        return cls(
            history_limit=settings.history_limit,
            fallback_status=settings.fallback_status,
            link_template=settings.tracking_link_template,
        )

    def normalize(self, payload: Any, tracking_number: Optional[str]) -> TrackingRecord:
        """
        Build the canonical record.

        Status: explicit status message, then carrier status code, then the
        newest history message, then the fallback status. ``payload`` may be
        None (tracking number unknown to the carrier yet).
        """
        root = payload if isinstance(payload, dict) else {}
        if payload is not None and not isinstance(payload, dict):
            logger.warning("Tracking payload is not an object", tracking_number=tracking_number)

        history = self.normalize_history(root)
        status = (
            _first_text(root, STATUS_MESSAGE_KEYS)
            or _first_text(root, CARRIER_STATUS_KEYS)
            or (history[0].message if history else None)
            or self.fallback_status
        )
        return TrackingRecord(
            status=status,
            history=history,
            destination_country=_first_country(root),
            tracking_link=self.tracking_link(root, tracking_number),
        )

    def normalize_history(self, root: Dict[str, Any]) -> Tuple[TrackingEvent, ...]:
        """Newest-first events, capped at ``history_limit``."""
        raw_events = first_plausible_list(root, HISTORY_LIST_ACCESSORS)
        events = []
        for entry in raw_events:
            if not isinstance(entry, dict):
                continue
            message = _first_text(entry, EVENT_MESSAGE_KEYS)
            if not message:
                continue
            events.append(TrackingEvent(timestamp=_first_text(entry, EVENT_TIMESTAMP_KEYS), message=message))

        parsed = [parse_timestamp(e.timestamp) for e in events]
        dated = [p for p in parsed if p is not None]
        if events and len(dated) == len(events):
            order = sorted(range(len(events)), key=lambda i: parsed[i], reverse=True)
            events = [events[i] for i in order]
        elif len(dated) < 2 or dated[0] <= dated[-1]:
            # Oldest first, or no dates to tell: undated lists are taken to be chronological
            events.reverse()
        return tuple(events[:self.history_limit])

    def tracking_link(self, root: Dict[str, Any], tracking_number: Optional[str]) -> Optional[str]:
        if not tracking_number:
            return None
        link = _first_text(root, CARRIER_LINK_KEYS) or _first_text(root, PROVIDER_LINK_KEYS)
        if link:
            return link
        return self.link_template.format(tracking_number=quote(tracking_number, safe=""))
