"""
Value types passed between the engine, its adapters and the caller.

All of them are immutable: a ResolutionResult is built once per request
and handed over as-is.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .normalize import clean_identifier
from .schema import flatten_identifier_payload


@dataclass(frozen=True)
class IdentifierSet:
    """Untrusted identifiers extracted from a screenshot or a message.

    Every field may be missing or wrong.
    """

    email: Optional[str] = None
    phone: Optional[str] = None
    order_number: Optional[str] = None
    tracking_number: Optional[str] = None
    customer_first_name: Optional[str] = None

    def __post_init__(self):
        # Blank or non-string fields count as absent
        for name in ("email", "phone", "order_number", "tracking_number", "customer_first_name"):
            object.__setattr__(self, name, clean_identifier(getattr(self, name)))

    @classmethod
    def from_payload(cls, data: Any) -> "IdentifierSet":
        """Build from a flat or nested extractor payload, dropping unusable values."""
        flat = flatten_identifier_payload(data)
        return cls(**{name: clean_identifier(value) for name, value in flat.items()})

    def is_empty(self) -> bool:
        return not any(asdict(self).values())


@dataclass(frozen=True)
class OrderRecord:
    id: str
    number: Optional[str] = None
    country: Optional[str] = None
    tracking_meta: Optional[str] = None
    first_name: Optional[str] = None
    email: Optional[str] = None

    @property
    def order_number(self) -> str:
        """Public order number; shops without custom numbering expose only the id."""
        return self.number or self.id


@dataclass(frozen=True)
class TrackingEvent:
    timestamp: Optional[str]
    message: str


@dataclass(frozen=True)
class TrackingRecord:
    """Canonical tracking state. ``history`` is newest-first."""

    status: str
    history: Tuple[TrackingEvent, ...] = ()
    destination_country: Optional[str] = None
    tracking_link: Optional[str] = None


class ResolutionStatus(str, Enum):
    RESOLVED = "resolved"
    RESOLVED_NO_TRACKING = "resolved_no_tracking"
    INTERNATIONAL = "international"
    NOT_FOUND = "not_found"
    ERROR = "error"


class ResolutionPath(str, Enum):
    """Which identifier produced the outcome."""

    ORDER_NUMBER = "order_number"
    EMAIL = "email"
    PHONE = "phone"
    TRACKING_NUMBER = "tracking_number"
    NOT_FOUND = "not_found"


TERMINAL_STATUSES = frozenset({
    ResolutionStatus.RESOLVED,
    ResolutionStatus.INTERNATIONAL,
    ResolutionStatus.ERROR,
})


@dataclass(frozen=True)
class ResolutionResult:
    status: ResolutionStatus
    path: ResolutionPath
    tracking_number: Optional[str] = None
    order: Optional[OrderRecord] = None
    tracking: Optional[TrackingRecord] = None
    is_international: bool = False
    trace: Tuple[str, ...] = field(default_factory=tuple)
    error: Optional[str] = None
    matched_term: Optional[str] = None
    customer_first_name: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def found(self) -> bool:
        return self.status not in (ResolutionStatus.NOT_FOUND, ResolutionStatus.ERROR)

    @property
    def first_name(self) -> Optional[str]:
        if self.order is not None and self.order.first_name:
            return self.order.first_name
        return self.customer_first_name

    @property
    def tracking_link(self) -> Optional[str]:
        return self.tracking.tracking_link if self.tracking else None

    @property
    def current_status(self) -> Optional[str]:
        return self.tracking.status if self.tracking else None

    @property
    def history_text(self) -> str:
        """One ``- [timestamp] message`` line per history entry, newest first."""
        if not self.tracking:
            return ""
        return "\n".join(
            f"- [{event.timestamp or 'unknown date'}] {event.message}"
            for event in self.tracking.history
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready view, including the fields the response composer reads."""
        data = asdict(self)
        data["status"] = self.status.value
        data["path"] = self.path.value
        data["trace"] = list(self.trace)
        if self.tracking is not None:
            data["tracking"]["history"] = [asdict(e) for e in self.tracking.history]
        data.update({
            "found": self.found,
            "first_name": self.first_name,
            "tracking_link": self.tracking_link,
            "current_status": self.current_status,
            "history_text": self.history_text,
        })
        return data
