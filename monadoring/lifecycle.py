from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Sequence

from .events import LifecyclePayload
from .log import Logger
from .notifiers import Notifier

SHUTDOWN_DEADLINE = 5.0


class LifecycleNotifier:
    """One-shot startup and shutdown messages to the chat backends."""

    def __init__(
        self,
        backends: Sequence[Notifier],
        alert_status: Dict[str, bool] | None = None,
        validator_name: str | None = None,
        dashboard_url: str | None = None,
        logger: Logger | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.backends = [b for b in backends if b.enabled]
        self.alert_status = dict(alert_status or {})
        self.validator_name = validator_name
        self.dashboard_url = dashboard_url
        self.logger = logger
        self._clock = clock
        self._sent: set = set()
        self._lock = threading.Lock()

    def _log(self, msg: str) -> None:
        if self.logger:
            self.logger.log(msg)

    def _claim(self, event: str) -> bool:
        with self._lock:
            if event in self._sent:
                return False
            self._sent.add(event)
            return True

    def _send(self, event: str) -> Dict[str, bool]:
        payload = LifecyclePayload(
            event=event,
            timestamp=self._clock(),
            validator_name=self.validator_name,
            dashboard_url=self.dashboard_url,
            alert_status=self.alert_status if event == "startup" else {},
        )
        results = {}
        for backend in self.backends:
            try:
                results[backend.name] = backend.notify_lifecycle(payload)
            except Exception as e:
                self._log(f"WARN: {backend.name} {event} notification raised: {e}")
                results[backend.name] = False
            self._log(f"{backend.name} {event} notification: {'sent' if results[backend.name] else 'FAILED'}")
        return results

    def startup(self) -> Dict[str, bool]:
        if not self.backends:
            self._log("No alert services configured, skipping startup notification")
            return {}
        if not self._claim("startup"):
            return {}
        self._log("Sending startup notifications...")
        return self._send("startup")

    def shutdown(self, deadline: float = SHUTDOWN_DEADLINE) -> Optional[Dict[str, bool]]:
        """Send the shutdown message, giving up after ``deadline`` seconds. Returns None on timeout."""
        if not self.backends or not self._claim("shutdown"):
            return {}
        self._log("Sending shutdown notifications...")
        results: Dict[str, bool] = {}
        worker = threading.Thread(target=lambda: results.update(self._send("shutdown")), daemon=True)
        worker.start()
        worker.join(timeout=deadline)
        if worker.is_alive():
            self._log(f"WARN: Shutdown notification still pending after {deadline}s, giving up")
            return None
        return results
