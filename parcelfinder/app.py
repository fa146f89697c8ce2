import argparse
import json
from pathlib import Path

from . import __version__
from .config import Settings
from .engine import build_engine
from .env import load_env
from .errors import ConfigurationError, TransientUpstreamError
from .logger import get_logger
from .models import IdentifierSet, ResolutionResult
from .normalize import phone_candidates
from .schema import validate_identifier_payload
from .services.sendcloud import SendcloudShipmentService, SendcloudTrackingService
from .services.sendcloud import build_client as build_sendcloud_client
from .services.seventeentrack import SeventeenTrackTrackingService
from .services.seventeentrack import build_client as build_seventeentrack_client
from .services.woocommerce import WooCommerceOrderService
from .tracking import TrackingRecordNormalizer, pick_tracking_number_from_parcels


def load_settings() -> Settings:
    try:
        return Settings.from_env()
    except ConfigurationError as e:
        raise SystemExit(f"Configuration error: {e}")


def read_identifiers(args: argparse.Namespace) -> IdentifierSet:
    """Identifiers from --input (flat or nested JSON), overridden by explicit flags."""
    payload = {}
    if args.input:
        input_path = Path(args.input)
        if not input_path.exists():
            raise SystemExit(f"Input file not found: {input_path}")
        with input_path.open("r", encoding="utf-8") as f:
            try:
                payload = json.load(f)
            except json.JSONDecodeError as e:
                raise SystemExit(f"Input is not valid JSON: {e}")
        for problem in validate_identifier_payload(payload):
            get_logger().warning("Ignoring malformed identifier field", problem=problem)

    identifiers = IdentifierSet.from_payload(payload)
    overrides = {
        "email": args.email,
        "phone": args.phone,
        "order_number": args.order_number,
        "tracking_number": args.tracking_number,
        "customer_first_name": args.first_name,
    }
    merged = {k: v for k, v in vars(identifiers).items()}
    merged.update({k: v for k, v in overrides.items() if v})
    return IdentifierSet.from_payload(merged)


def print_result(result: ResolutionResult) -> None:
    print(f"Status: {result.status.value}")
    print(f"Path: {result.path.value}")
    if result.error:
        print(f"Error: {result.error}")
    if result.first_name:
        print(f"First name: {result.first_name}")
    if result.order:
        print(f"Order: {result.order.order_number} (country: {result.order.country or 'unknown'})")
    print(f"International: {'yes' if result.is_international else 'no'}")
    if result.tracking_number:
        print(f"Tracking number: {result.tracking_number}")
    if result.tracking:
        print(f"Current status: {result.current_status}")
        if result.tracking_link:
            print(f"Link: {result.tracking_link}")
        if result.history_text:
            print("History:")
            print(result.history_text)
    print("Trace:")
    for line in result.trace:
        print(f" - {line}")


def cmd_resolve(args: argparse.Namespace) -> None:
    identifiers = read_identifiers(args)
    engine = build_engine(load_settings())
    result = engine.resolve(identifiers)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        print_result(result)
    if args.metrics:
        get_logger().log_metrics_summary()


def cmd_candidates(args: argparse.Namespace) -> None:
    candidates = phone_candidates(args.phone)
    if not candidates:
        print("No digits in phone number.")
        return
    for c in candidates:
        print(c)


def cmd_order(args: argparse.Namespace) -> None:
    orders = WooCommerceOrderService.from_settings(load_settings())
    try:
        order = orders.fetch_order_by_id(args.id)
    except TransientUpstreamError as e:
        raise SystemExit(str(e))
    if order is None:
        print("Order not found.")
        return
    print(json.dumps(vars(order), indent=2, ensure_ascii=False))


def cmd_search(args: argparse.Namespace) -> None:
    if not args.term.strip():
        raise SystemExit("Search term must not be empty")
    orders = WooCommerceOrderService.from_settings(load_settings())
    try:
        matches = orders.search_orders_by_term(args.term)
    except TransientUpstreamError as e:
        raise SystemExit(str(e))
    if not matches:
        print("No orders found.")
        return
    print(f"Found {len(matches)} orders (newest first):\n")
    for order in matches:
        print(f"Order: {order.order_number} (id {order.id})")
        print(f"  Email: {order.email}")
        print(f"  First name: {order.first_name}")
        print(f"  Country: {order.country}")
        print(f"  Tracking (meta): {order.tracking_meta}")
        print()


def cmd_parcel(args: argparse.Namespace) -> None:
    shipments = SendcloudShipmentService(build_sendcloud_client(load_settings()))
    try:
        payload = shipments.find_parcel_by_order_number(args.order_number)
    except TransientUpstreamError as e:
        raise SystemExit(str(e))
    print(f"Tracking number: {pick_tracking_number_from_parcels(payload)}")
    if args.raw:
        print(json.dumps(payload, indent=2, ensure_ascii=False))


def cmd_track(args: argparse.Namespace) -> None:
    settings = load_settings()
    if settings.tracking_provider == "17track":
        tracking = SeventeenTrackTrackingService(build_seventeentrack_client(settings))
    else:
        tracking = SendcloudTrackingService(build_sendcloud_client(settings))
    try:
        payload = tracking.track_by_tracking_number(args.tracking_number)
    except TransientUpstreamError as e:
        raise SystemExit(str(e))
    if payload is None:
        print("Carrier does not know this tracking number.")
        return
    record = TrackingRecordNormalizer.from_settings(settings).normalize(payload, args.tracking_number)
    print(f"Status: {record.status}")
    print(f"Destination: {record.destination_country or 'unknown'}")
    print(f"Link: {record.tracking_link}")
    for event in record.history:
        print(f" - [{event.timestamp or 'unknown date'}] {event.message}")
    if args.raw:
        print(json.dumps(payload, indent=2, ensure_ascii=False))


def main():
    # Load .env if present (WC_*, SENDCLOUD_*, ...)
    load_env()
    parser = argparse.ArgumentParser(prog="parcelfinder", description="Find a customer's shipment from partial identifiers")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--log-level", default="WARNING", type=str.upper,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Console log level (default: WARNING)")

    subparsers = parser.add_subparsers(dest="command")
    res = subparsers.add_parser("resolve", help="Resolve identifiers to a shipment and print its status")
    res.add_argument("--input", help="JSON file with identifiers (flat, or the extractor's nested shape)")
    res.add_argument("--email", help="Customer email")
    res.add_argument("--phone", help="Customer phone, any format")
    res.add_argument("--order-number", help="Order number")
    res.add_argument("--tracking-number", help="Carrier tracking number")
    res.add_argument("--first-name", help="Customer first name")
    res.add_argument("--json", action="store_true", help="Print the full result as JSON")
    res.add_argument("--metrics", action="store_true", help="Log upstream call metrics after resolving")
    res.set_defaults(func=cmd_resolve)

    cand = subparsers.add_parser("candidates", help="Show the phone forms probed for a number")
    cand.add_argument("--phone", required=True, help="Phone number, any format")
    cand.set_defaults(func=cmd_candidates)

    ordr = subparsers.add_parser("order", help="Fetch one order from WooCommerce")
    ordr.add_argument("--id", required=True, help="Order id")
    ordr.set_defaults(func=cmd_order)

    srch = subparsers.add_parser("search", help="Search WooCommerce orders by email, phone or name")
    srch.add_argument("--term", required=True, help="Search term")
    srch.set_defaults(func=cmd_search)

    prc = subparsers.add_parser("parcel", help="Look up the Sendcloud parcel for an order number")
    prc.add_argument("--order-number", required=True, help="Order number")
    prc.add_argument("--raw", action="store_true", help="Also print the raw payload")
    prc.set_defaults(func=cmd_parcel)

    trk = subparsers.add_parser("track", help="Fetch and normalize tracking for a tracking number")
    trk.add_argument("--tracking-number", required=True, help="Carrier tracking number")
    trk.add_argument("--raw", action="store_true", help="Also print the raw payload")
    trk.set_defaults(func=cmd_track)

    args = parser.parse_args()
    get_logger().set_level(args.log_level)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
