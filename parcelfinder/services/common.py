"""Shared HTTP plumbing for the upstream adapters."""

import base64
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter

from ..errors import MalformedUpstreamPayload, TransientUpstreamError
from ..logger import get_logger
from ..retry import exponential_backoff, should_retry_http_status

logger = get_logger()


class RetryableStatusError(TransientUpstreamError):
    """Raised inside a retry loop for statuses worth another attempt."""
    pass


def basic_auth_header(user: str, password: str) -> str:
    token = base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


class ApiClient:
    """
    Thin JSON client bound to one upstream service.

    Error policy:
        404                     -> None (not found is a normal outcome)
        408/429/5xx, timeouts   -> retried, then TransientUpstreamError
        other non-2xx           -> TransientUpstreamError, no retry
        2xx with a non-JSON body -> MalformedUpstreamPayload
    """

    def __init__(
        self,
        service: str,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 15.0,
        max_retries: int = 2,
        retry_base_delay: float = 0.5,
        session: Optional[requests.Session] = None,
        pool_maxsize: int = 10,
    ):
        self.service = service
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        if session is None:
            # Shared by the phone probe threads; requests only reads session state per call
            session = requests.Session()
            adapter = HTTPAdapter(pool_maxsize=max(1, pool_maxsize))
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self.session = session
        self.session.headers.update({"Accept": "application/json"})
        if headers:
            self.session.headers.update(headers)

        self._send_with_retry = exponential_backoff(
            max_retries=max_retries,
            base_delay=retry_base_delay,
            exceptions=(
                requests.exceptions.Timeout,
                requests.exceptions.ConnectionError,
                RetryableStatusError,
            ),
            on_retry=self._log_retry,
        )(self._send)

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request_json("GET", path, params=params)

    def post_json(self, path: str, payload: Any) -> Any:
        return self.request_json("POST", path, json=payload)

    def request_json(self, method: str, path: str, **kwargs) -> Any:
        """Send a request and decode its JSON body.

        Returns:
            Decoded JSON, or None when the upstream answered 404

        Raises:
            TransientUpstreamError: On timeouts, connection errors and non-2xx statuses
            MalformedUpstreamPayload: When a 2xx body is not JSON
        """
        url = f"{self.base_url}{path}"
        logger.record_lookup_attempt(self.service)
        logger.debug(f"{self.service} {method} request", url=url, params=kwargs.get("params"))
        try:
            resp = self._send_with_retry(method, url, **kwargs)
        except TransientUpstreamError as e:
            cause = e.__cause__ or e
            error_type = type(cause).__name__
            if isinstance(cause, TransientUpstreamError) and cause.status_code:
                error_type = f"HTTPError_{cause.status_code}"
            logger.record_lookup_failure(self.service, error_type)
            logger.error(f"{self.service} request failed", url=url, error=str(e))
            raise TransientUpstreamError(
                f"{self.service} request failed: {e}",
                service=self.service,
                status_code=e.status_code,
            ) from e
        except requests.exceptions.RequestException as e:
            logger.record_lookup_failure(self.service, "RequestException")
            logger.error(f"{self.service} request error", url=url, error=str(e))
            raise TransientUpstreamError(f"{self.service} request error: {e}", service=self.service) from e

        if resp.status_code == 404:
            logger.record_lookup_success(self.service)
            logger.warning(f"{self.service} resource not found", url=url, status=404)
            return None

        if not 200 <= resp.status_code < 300:
            logger.record_lookup_failure(self.service, f"HTTPError_{resp.status_code}")
            logger.error(f"{self.service} request failed", url=url, status=resp.status_code, body=_snippet(resp))
            raise TransientUpstreamError(
                f"{self.service} request failed ({resp.status_code}): {url}",
                service=self.service,
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as e:
            logger.record_lookup_failure(self.service, "MalformedPayload")
            logger.warning(f"{self.service} returned a non-JSON body", url=url, body=_snippet(resp))
            raise MalformedUpstreamPayload(f"{self.service} returned a non-JSON body: {url}", service=self.service) from e

        logger.record_lookup_success(self.service)
        return data

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        logger.record_api_call()
        resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        if should_retry_http_status(resp.status_code):
            raise RetryableStatusError(
                f"{self.service} answered {resp.status_code}",
                service=self.service,
                status_code=resp.status_code,
            )
        return resp

    def _log_retry(self, attempt: int, exc: Exception, delay: float) -> None:
        logger.warning(
            f"{self.service} call failed, retrying",
            attempt=attempt,
            delay=delay,
            error=str(exc),
        )


def _snippet(resp: requests.Response, limit: int = 200) -> str:
    try:
        return (resp.text or "")[:limit]
    except Exception:
        return ""
