"""Background loop for order expiry and upstream authorization cancellations.

Every ``worker_poll_seconds`` it cancels PENDING orders past their TTL
(``CancellationService.expire_stale``) and then runs ``retry_due``, inside
its own domain context. A failing tick is logged and the loop carries on;
the records themselves carry the retry state, so nothing is lost.
"""

import threading

import structlog

from checkout.cancellation.service import CancellationService, cancellation_service
from checkout.config import get_settings
from checkout.domain import checkout

logger = structlog.get_logger(__name__)


class CancellationRetryWorker(threading.Thread):
    def __init__(self, service: CancellationService | None = None, poll_seconds: float | None = None, domain=None):
        super().__init__(name="cancellation-retry-worker", daemon=True)
        self.service = service or cancellation_service
        self.poll_seconds = poll_seconds if poll_seconds is not None else get_settings().worker_poll_seconds
        self.domain = domain or checkout
        self._stop_event = threading.Event()

    def run_once(self) -> dict:
        with self.domain.domain_context():
            expired = self.service.expire_stale()
            # Upstream records opened by expiry are due immediately
            results = self.service.retry_due()
        return {**results, "expired": len(expired)}

    def run(self) -> None:
        logger.info("cancellation_worker_started", poll_seconds=self.poll_seconds)
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("cancellation_worker_tick_failed")
            self._stop_event.wait(self.poll_seconds)
        logger.info("cancellation_worker_stopped")

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout)
