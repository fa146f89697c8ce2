"""
Identifier resolution engine.

Walks the resolution chain (order number -> email -> phone -> tracking
number) until one step reaches a terminal outcome:

    resolved       a tracking number was found and its status fetched
    international  the order or parcel leaves the home country
    error          a required upstream call failed

An order found without any tracking number is not terminal: the chain
keeps going, and that partial result is returned only if nothing later
does better. Phone numbers fan out into several candidate forms that are
probed concurrently; the winner is always the earliest candidate in
generation order, whatever order the answers arrive in.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Optional, Tuple

from .config import Settings
from .country import is_international
from .errors import TransientUpstreamError
from .logger import get_logger
from .models import (
    IdentifierSet,
    OrderRecord,
    ResolutionPath,
    ResolutionResult,
    ResolutionStatus,
)
from .normalize import normalize_tracking_number, phone_candidates
from .services.sendcloud import SendcloudShipmentService, SendcloudTrackingService
from .services.sendcloud import build_client as build_sendcloud_client
from .services.seventeentrack import SeventeenTrackTrackingService
from .services.seventeentrack import build_client as build_seventeentrack_client
from .services.woocommerce import WooCommerceOrderService
from .trace import ResolutionTrace
from .tracking import TrackingRecordNormalizer, pick_tracking_number_from_parcels

logger = get_logger()


class ResolutionEngine:
    """
    Resolves an IdentifierSet to a single shipment.

    Adapters are duck-typed:
        orders     fetch_order_by_id(id), search_orders_by_term(term)
        shipments  find_parcel_by_order_number(order_number)
        tracking   track_by_tracking_number(tracking_number)

    The engine keeps no state between calls; ``resolve`` may run from
    many threads at once.
    """

    def __init__(
        self,
        orders,
        shipments,
        tracking,
        normalizer: Optional[TrackingRecordNormalizer] = None,
        home_country: str = "FR",
        max_workers: int = 8,
    ):
        self.orders = orders
        self.shipments = shipments
        self.tracking = tracking
        self.normalizer = normalizer or TrackingRecordNormalizer()
        self.home_country = home_country
        self.max_workers = max(1, max_workers)

    def resolve(self, identifiers: Optional[IdentifierSet]) -> ResolutionResult:
        """Run the resolution chain. Never raises for per-request conditions."""
        identifiers = identifiers or IdentifierSet()
        trace = ResolutionTrace()
        if identifiers.is_empty():
            trace.record("no identifiers provided")

        steps = (
            (ResolutionPath.ORDER_NUMBER, identifiers.order_number, self._resolve_order_number),
            (ResolutionPath.EMAIL, identifiers.email, self._resolve_email),
            (ResolutionPath.PHONE, identifiers.phone, self._resolve_phone),
            (ResolutionPath.TRACKING_NUMBER, identifiers.tracking_number, self._resolve_tracking_number),
        )

        partial: Optional[ResolutionResult] = None
        outcome: Optional[ResolutionResult] = None
        for path, value, step in steps:
            if not value:
                continue
            trace.record(f"{path.value}: trying {value!r}")
            try:
                result = step(value, trace)
            except TransientUpstreamError as e:
                trace.record(f"{path.value}: upstream failure, giving up: {e}")
                result = ResolutionResult(status=ResolutionStatus.ERROR, path=path, error=str(e))

            if result is None:
                trace.record(f"{path.value}: no match")
                continue
            if result.is_terminal:
                outcome = result
                break
            trace.record(f"{path.value}: order found without tracking number, continuing")
            if partial is None:
                partial = result

        if outcome is None:
            outcome = partial or ResolutionResult(
                status=ResolutionStatus.NOT_FOUND,
                path=ResolutionPath.NOT_FOUND,
            )
        trace.record(f"outcome: {outcome.status.value} via {outcome.path.value}")

        outcome = replace(
            outcome,
            trace=trace.lines,
            customer_first_name=identifiers.customer_first_name,
        )
        logger.record_resolution(outcome.status.value)
        logger.info(
            "Resolution finished",
            status=outcome.status.value,
            path=outcome.path.value,
            tracking_number=outcome.tracking_number,
        )
        return outcome

    # Chain steps. Each returns None (no match) or a ResolutionResult, and
    # lets TransientUpstreamError propagate to resolve().

    def _resolve_order_number(self, order_number: str, trace: ResolutionTrace) -> Optional[ResolutionResult]:
        path = ResolutionPath.ORDER_NUMBER
        order = self.orders.fetch_order_by_id(order_number)
        if order is None:
            trace.record(f"order {order_number} not found in order service")
        else:
            trace.record(f"order {order.order_number} found (country={order.country or 'unknown'})")
            if self._is_international(order.country):
                trace.record(f"order country {order.country} is outside {self.home_country}, stopping")
                return self._international(path, order=order)

        if order is not None:
            tracking_number = self._tracking_number_for_order(order, trace)
        else:
            tracking_number = self._tracking_number_from_parcels(order_number, trace)

        if tracking_number:
            return self._with_tracking(path, tracking_number, order, trace)
        if order is not None:
            trace.record(f"order {order.order_number} has no tracking number yet")
            return ResolutionResult(status=ResolutionStatus.RESOLVED_NO_TRACKING, path=path, order=order)
        return None

    def _resolve_email(self, email: str, trace: ResolutionTrace) -> Optional[ResolutionResult]:
        return self._search_resolve(email, ResolutionPath.EMAIL, trace)

    def _resolve_phone(self, phone: str, trace: ResolutionTrace) -> Optional[ResolutionResult]:
        candidates = phone_candidates(phone)
        if not candidates:
            trace.record("phone: no digits, nothing to probe")
            return None
        trace.record(f"phone: probing {len(candidates)} candidates: {', '.join(candidates)}")

        workers = min(len(candidates), self.max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="phone-probe") as executor:
            futures = [executor.submit(self._probe_phone_candidate, c) for c in candidates]
            # wait for every probe; precedence is generation order, not arrival order
            probes = [f.result() for f in futures]

        selected = None
        for candidate, (result, probe_trace) in zip(candidates, probes):
            trace.extend(probe_trace)
            if selected is None and result is not None:
                selected = result
                trace.record(f"phone: selected candidate {candidate}")
        return selected

    def _probe_phone_candidate(self, candidate: str) -> Tuple[Optional[ResolutionResult], ResolutionTrace]:
        probe_trace = ResolutionTrace(prefix=f"[{candidate}] ")
        try:
            result = self._search_resolve(candidate, ResolutionPath.PHONE, probe_trace)
        except TransientUpstreamError as e:
            probe_trace.record(f"upstream failure, treated as no match: {e}")
            result = None
        return result, probe_trace

    def _resolve_tracking_number(self, tracking_number: str, trace: ResolutionTrace) -> Optional[ResolutionResult]:
        cleaned = normalize_tracking_number(tracking_number)
        if not cleaned:
            return None
        # Extracted numbers are unverified: the carrier must know them
        return self._with_tracking(ResolutionPath.TRACKING_NUMBER, cleaned, None, trace, require_known=True)

    # Shared sub-routines

    def _search_resolve(
        self, term: str, path: ResolutionPath, trace: ResolutionTrace
    ) -> Optional[ResolutionResult]:
        """Search orders by ``term`` and resolve the newest match."""
        orders = self.orders.search_orders_by_term(term)
        if not orders:
            trace.record(f"no order matches {term!r}")
            return None

        top = orders[0]
        trace.record(
            f"{len(orders)} order(s) match {term!r}, newest is {top.order_number} "
            f"(country={top.country or 'unknown'})"
        )
        if self._is_international(top.country):
            trace.record(f"order country {top.country} is outside {self.home_country}, stopping")
            return self._international(path, order=top, matched_term=term)

        order = self.orders.fetch_order_by_id(top.id)
        if order is None:
            trace.record(f"full order {top.id} unavailable, using search record")
            order = top
        elif self._is_international(order.country):
            trace.record(f"order country {order.country} is outside {self.home_country}, stopping")
            return self._international(path, order=order, matched_term=term)

        tracking_number = self._tracking_number_for_order(order, trace)
        if not tracking_number:
            trace.record(f"order {order.order_number} has no tracking number yet")
            return ResolutionResult(
                status=ResolutionStatus.RESOLVED_NO_TRACKING,
                path=path,
                order=order,
                matched_term=term,
            )
        return self._with_tracking(path, tracking_number, order, trace, matched_term=term)

    def _tracking_number_for_order(self, order: OrderRecord, trace: ResolutionTrace) -> Optional[str]:
        if order.tracking_meta:
            trace.record(f"tracking number {order.tracking_meta} found in order meta")
            return order.tracking_meta
        return self._tracking_number_from_parcels(order.order_number, trace)

    def _tracking_number_from_parcels(self, order_number: str, trace: ResolutionTrace) -> Optional[str]:
        payload = self.shipments.find_parcel_by_order_number(order_number)
        tracking_number = pick_tracking_number_from_parcels(payload)
        if tracking_number:
            trace.record(f"parcel for order {order_number} has tracking number {tracking_number}")
        else:
            trace.record(f"no parcel with a tracking number for order {order_number}")
        return tracking_number

    def _with_tracking(
        self,
        path: ResolutionPath,
        tracking_number: str,
        order: Optional[OrderRecord],
        trace: ResolutionTrace,
        matched_term: Optional[str] = None,
        require_known: bool = False,
    ) -> Optional[ResolutionResult]:
        payload = self.tracking.track_by_tracking_number(tracking_number)
        if payload is None:
            if require_known:
                trace.record(f"carrier does not know {tracking_number}")
                return None
            trace.record(f"carrier has no data for {tracking_number} yet")

        record = self.normalizer.normalize(payload, tracking_number)
        if self._is_international(record.destination_country):
            trace.record(
                f"parcel {tracking_number} ships to {record.destination_country}, "
                f"outside {self.home_country}, stopping"
            )
            return self._international(
                path, order=order, matched_term=matched_term,
                tracking_number=tracking_number, tracking=record,
            )

        trace.record(f"tracking {tracking_number}: {record.status}")
        return ResolutionResult(
            status=ResolutionStatus.RESOLVED,
            path=path,
            tracking_number=tracking_number,
            order=order,
            tracking=record,
            matched_term=matched_term,
        )

    def _is_international(self, country: Optional[str]) -> bool:
        return is_international(country, self.home_country)

    def _international(self, path: ResolutionPath, **fields) -> ResolutionResult:
        return ResolutionResult(
            status=ResolutionStatus.INTERNATIONAL,
            path=path,
            is_international=True,
            **fields,
        )


def build_engine(settings: Settings) -> ResolutionEngine:
    """Wire the configured adapters into an engine."""
    orders = WooCommerceOrderService.from_settings(settings)
    sendcloud = build_sendcloud_client(settings)
    shipments = SendcloudShipmentService(sendcloud)
    if settings.tracking_provider == "17track":
        tracking = SeventeenTrackTrackingService(build_seventeentrack_client(settings))
    else:
        tracking = SendcloudTrackingService(sendcloud)
    return ResolutionEngine(
        orders,
        shipments,
        tracking,
        normalizer=TrackingRecordNormalizer.from_settings(settings),
        home_country=settings.home_country,
        max_workers=settings.phone_probe_workers,
    )
