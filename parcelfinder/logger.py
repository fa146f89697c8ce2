"""
Structured logging for parcelfinder.

Wraps the standard logging module with console/file outputs and keeps
counters on upstream lookups and resolution outcomes, so an operator can
see which external system is failing without reading every line.
"""

import json
import logging
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks lookup and resolution metrics.
    """

    def __init__(
        self,
        name: str = "parcelfinder",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = False,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()

        # Phone probes record metrics from worker threads
        self._lock = threading.Lock()
        self.metrics = {
            "api_calls": 0,
            "lookups_attempted": 0,
            "lookups_successful": 0,
            "lookups_failed": 0,
            "errors_by_type": {},
            "service_success_rate": {},
            "resolutions_by_status": {},
        }

        if enable_console:
            # stderr keeps stdout clean for `resolve --json`
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"parcelfinder_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(threadName)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def set_level(self, level: str):
        """Change the level of the logger and its console handler."""
        self.logger.setLevel(getattr(logging, level.upper()))
        for handler in self.logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(getattr(logging, level.upper()))

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_api_call(self):
        """Increment API call counter."""
        with self._lock:
            self.metrics["api_calls"] += 1

    def record_lookup_attempt(self, service: str):
        """Record a lookup attempt against an upstream service."""
        with self._lock:
            self.metrics["lookups_attempted"] += 1
            stats = self.metrics["service_success_rate"].setdefault(
                service, {"attempts": 0, "successes": 0}
            )
            stats["attempts"] += 1

    def record_lookup_success(self, service: str):
        with self._lock:
            self.metrics["lookups_successful"] += 1
            if service in self.metrics["service_success_rate"]:
                self.metrics["service_success_rate"][service]["successes"] += 1

    def record_lookup_failure(self, service: str, error_type: str):
        """Record a failed lookup, keyed by error type."""
        with self._lock:
            self.metrics["lookups_failed"] += 1
            errors = self.metrics["errors_by_type"]
            errors[error_type] = errors.get(error_type, 0) + 1

    def record_resolution(self, status: str):
        """Count a finished resolution by its final status."""
        with self._lock:
            counts = self.metrics["resolutions_by_status"]
            counts[status] = counts.get(status, 0) + 1

    def get_metrics(self) -> dict:
        """Return current metrics with per-service success rates filled in."""
        with self._lock:
            metrics_copy = json.loads(json.dumps(self.metrics))
        for stats in metrics_copy["service_success_rate"].values():
            if stats["attempts"] > 0:
                stats["success_rate"] = round(stats["successes"] / stats["attempts"], 3)
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        total_attempts = metrics["lookups_attempted"]
        total_successes = metrics["lookups_successful"]
        overall_rate = 0
        if total_attempts > 0:
            overall_rate = round(total_successes / total_attempts * 100, 1)

        self.info("=== Resolution Session Metrics ===")
        self.info(f"API Calls: {metrics['api_calls']}")
        self.info(f"Lookups: {total_successes}/{total_attempts} ({overall_rate}% success)")

        if metrics["service_success_rate"]:
            self.info("Service Success Rates:")
            for service, stats in metrics["service_success_rate"].items():
                rate = stats.get("success_rate", 0) * 100
                self.info(f"  {service}: {stats['successes']}/{stats['attempts']} ({rate:.1f}%)")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")

        if metrics["resolutions_by_status"]:
            self.info("Resolutions:")
            for status, count in metrics["resolutions_by_status"].items():
                self.info(f"  {status}: {count}")


_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "parcelfinder",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
