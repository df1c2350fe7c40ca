from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional, Sequence

from .events import AllOffline, Network
from .log import Logger

STALE_LIMIT = 2
ALL_OFFLINE_GRACE = 180


@dataclass
class RpcHeightRecord:
    last_height: int
    stale_count: int = 0


class RpcHealthTracker:
    """
    Classifies endpoints from height progression.

    A zero height (no response) is unhealthy right away. A height that does
    not increase bumps the stale counter; two stale readings in a row make the
    endpoint unhealthy until its height moves again.
    """

    def __init__(self, probe: Callable[[str], int]):
        self._probe = probe
        self._records: Dict[str, RpcHeightRecord] = {}
        self._lock = threading.Lock()

    def probe(self, endpoint: str) -> int:
        return self._probe(endpoint)

    def classify(self, endpoint: str, height: int) -> bool:
        if height <= 0:
            return False
        with self._lock:
            record = self._records.get(endpoint)
            if record is None:
                self._records[endpoint] = RpcHeightRecord(last_height=height)
                return True
            if height > record.last_height:
                record.last_height = height
                record.stale_count = 0
                return True
            record.last_height = height
            record.stale_count += 1
            return record.stale_count < STALE_LIMIT

    def record(self, endpoint: str) -> Optional[RpcHeightRecord]:
        with self._lock:
            record = self._records.get(endpoint)
            return replace(record) if record else None


@dataclass
class AllOfflineState:
    is_offline: bool = False
    since: Optional[float] = None
    alert_sent: bool = False


class AllOfflineDetector:
    """Raises ``AllOffline`` once every endpoint of a network stays unhealthy past the grace period."""

    def __init__(
        self,
        network: Network,
        chain_progress: Callable[[], bool],
        grace: float = ALL_OFFLINE_GRACE,
        clock: Callable[[], float] = time.time,
        logger: Logger | None = None,
    ):
        self.network = network
        self.grace = grace
        self._chain_progress = chain_progress
        self._clock = clock
        self._logger = logger
        self.state = AllOfflineState()

    def _log(self, msg: str) -> None:
        if self._logger:
            self._logger.log(msg)

    def update(self, endpoints: Sequence[str], healthy_count: int) -> Optional[AllOffline]:
        if not endpoints:
            return None

        if healthy_count > 0:
            if self.state.is_offline:
                self._log(f"{healthy_count}/{len(endpoints)} {self.network.label} RPCs back online")
            self.state = AllOfflineState()
            return None

        now = self._clock()
        if not self.state.is_offline:
            self.state = AllOfflineState(is_offline=True, since=now)
            self._log(f"WARN: All {len(endpoints)} {self.network.label} RPCs unhealthy")

        elapsed = now - self.state.since
        if elapsed < self.grace or self.state.alert_sent:
            return None

        try:
            progressing = bool(self._chain_progress())
        except Exception as e:
            self._log(f"WARN: Chain progress check failed: {e}")
            progressing = False
        self.state.alert_sent = True
        downtime = int(elapsed // 60)
        self._log(
            f"ERROR: All {self.network.label} RPCs offline for {downtime} minutes (chain progressing: {progressing})"
        )
        return AllOffline(
            network=self.network,
            endpoints=tuple(endpoints),
            since=self.state.since,
            downtime_minutes=downtime,
            chain_progressing=progressing,
        )
