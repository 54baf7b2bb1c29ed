"""HTTP adapter for the notifications service.

``HttpNotificationClient`` implements ``NotificationPort`` on top of
``httpx`` and adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
  by the gateway middleware.
- A circuit breaker shared by all clients, so an unhealthy notifications
  service is skipped quickly instead of slowing down every transition.
- Retries with exponential backoff on transport errors and 5xx.

Callers treat notifications as fire-and-forget; this client still raises on
final failure so the caller can log it.
"""

import logging
import threading
import time
from typing import Optional

import httpx
from django.conf import settings

from gateway.middleware import REQUEST_ID_CTX

from .domain import NotificationPort

logger = logging.getLogger(__name__)


class CircuitOpenError(RuntimeError):
    pass


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when consecutive failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe, back to OPEN on failure.
      Only one probe is allowed in flight.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Return the state at call time, or raise when calls are not allowed.

        Raises:
            CircuitOpenError: If the circuit is OPEN or a HALF_OPEN probe is
                already running.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise CircuitOpenError(f"{self.name}: CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                if self._probe_in_flight:
                    raise CircuitOpenError(f"{self.name}: CIRCUIT_HALF_OPEN_BUSY")
                self._probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (
                self._failures >= self.fail_threshold and self._state != "OPEN"
            ):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._probe_in_flight = False
                logger.warning("circuit opened", extra={"circuit": self.name})

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._probe_in_flight = False


notifications_cb = CircuitBreaker(
    "notifications",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy() -> tuple[int, float, float]:
    """Return (max_attempts, backoff_base_seconds, max_sleep_seconds)."""
    return (
        max(1, getattr(settings, "HTTP_RETRY_MAX", 3)),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
        getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    if exc is not None:
        return True
    return resp is not None and 500 <= resp.status_code < 600


# ---------------- Notifications Adapter ---------------- #

class HttpNotificationClient(NotificationPort):
    """HTTP client for the notifications service with retry and circuit breaker."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.NOTIFICATIONS_BASE_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def notify(self, user_id, title, message, type, order_id=None) -> None:
        """Store a notification for ``user_id`` in the notifications service.

        Raises:
            CircuitOpenError: When the circuit is open.
            httpx.RequestError: For transport errors after retries.
            httpx.HTTPStatusError: For non-2xx responses after retries.
        """
        payload = {
            "user_id": str(user_id),
            "title": title,
            "message": message,
            "type": type,
            "order_id": str(order_id) if order_id else None,
        }
        max_attempts, backoff, cap = _retry_policy()
        tries = 0

        state = notifications_cb.before_call()
        headers = _request_headers({"X-Circuit-State": state, "X-Retry-Count": "0"})

        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.post(f"{self.base_url}/notifications", json=payload, headers=headers)
                        if 200 <= resp.status_code < 300:
                            notifications_cb.on_success()
                            return
                        if not _should_retry(resp, None):
                            # 4xx is a bad payload, not an unhealthy service
                            notifications_cb.on_success()
                            resp.raise_for_status()
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)

                    if tries >= max_attempts:
                        notifications_cb.on_failure()
                        if exc:
                            raise exc
                        resp.raise_for_status()

                    time.sleep(min(backoff * (2 ** (tries - 1)), cap))
        finally:
            notifications_cb.on_finish()
