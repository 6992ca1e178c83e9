"""
thin HTTP wrapper that throttles requests to a minimum interval, applies a bounded timeout,
classifies failures (404/403/429/other) into provider errors, and trips a circuit breaker after
repeated hard failures. it never retries: retry/skip decisions belong to the ingest loop.
"""
import threading
import time
from typing import Callable, Optional

import requests

from logger import get_logger, log_event, log_warning
from providers import (
    AccessDenied,
    ProviderError,
    ProviderUnavailable,
    RateLimited,
    SymbolNotFound,
)

log = get_logger("http")


def _body_status(resp) -> str:
    try:
        body = resp.json()
    except ValueError:
        return ""
    if isinstance(body, dict):
        return str(body.get("status") or "")
    return ""


def _body_message(resp) -> str:
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or "")[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body.get("status") or "")
    return ""


def classify_response(resp) -> Optional[ProviderError]:
    """map a response onto the provider error taxonomy; None means it's usable."""
    status = resp.status_code
    body_status = _body_status(resp).upper()

    if status == 404 or body_status == "NOT_FOUND":
        return SymbolNotFound(f"HTTP {status} not found", status=status)
    if status == 403 or body_status == "NOT_AUTHORIZED":
        return AccessDenied(f"HTTP {status} NOT_AUTHORIZED: {_body_message(resp)}", status=status)
    if status == 429 or "too many requests" in _body_message(resp).lower():
        return RateLimited("HTTP 429 Too Many Requests", status=status)
    if status < 200 or status >= 300:
        return ProviderError(f"HTTP {status}: {_body_message(resp)}", status=status)
    return None


class ThrottledSession:
    def __init__(
        self,
        *,
        min_interval_s: float = 12.0,
        timeout_s: float = 15.0,
        breaker_threshold: int = 5,
        breaker_reset_s: float = 60.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval_s = min_interval_s
        self.timeout_s = timeout_s
        self.breaker_threshold = breaker_threshold
        self.breaker_reset_s = breaker_reset_s
        self.session = session or requests.Session()
        self._sleep = sleep
        self._clock = clock
        self._last_ts: Optional[float] = None
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None
        # one lock for pacing and breaker state; held across the throttle sleep so callers queue up
        self._lock = threading.Lock()

    @property
    def circuit_open(self) -> bool:
        if self._opened_at is None:
            return False
        return self._clock() - self._opened_at < self.breaker_reset_s

    def _throttle(self):
        if self._last_ts is not None:
            wait = self.min_interval_s - (self._clock() - self._last_ts)
            if wait > 0:
                self._sleep(wait)
        self._last_ts = self._clock()

    def _record_failure(self, url: str):
        self._consecutive_failures += 1
        if self._consecutive_failures >= self.breaker_threshold and self._opened_at is None:
            self._opened_at = self._clock()
            log_warning(
                log,
                "http_circuit_open",
                url=url,
                failures=self._consecutive_failures,
                reset_s=self.breaker_reset_s,
            )
        elif self._opened_at is not None:
            # half-open probe failed, stay open for another window
            self._opened_at = self._clock()

    def _record_success(self):
        if self._opened_at is not None:
            log_event(log, "http_circuit_closed")
        self._consecutive_failures = 0
        self._opened_at = None

    def get_json(self, url: str, *, params: Optional[dict] = None, headers: Optional[dict] = None) -> dict:
        with self._lock:
            if self.circuit_open:
                raise ProviderUnavailable(f"circuit open, skipping {url}")
            self._throttle()

        try:
            resp = self.session.get(url, params=params, headers=headers, timeout=self.timeout_s)
        except requests.RequestException as e:
            with self._lock:
                self._record_failure(url)
            raise ProviderError(f"request failed: {e}") from e

        err = classify_response(resp)
        with self._lock:
            if err is None:
                self._record_success()
            elif type(err) is ProviderError:
                self._record_failure(url)
            else:
                # 404/403/429 are answers from a healthy upstream
                self._record_success()

        if err is not None:
            raise err
        return resp.json()
