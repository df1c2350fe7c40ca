"""
Active RPC selection for one network.

``poll`` is called on the fast timer (every couple of seconds) against the
active endpoint only. After ``threshold`` consecutive polls with a zero or
unchanged height it scans the other endpoints in rank order and moves to the
first one with a usable height. Switching back to the primary only happens
from ``check_primary_recovery``, which runs on its own slower timer.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Callable, Optional, Sequence

from .config import RpcEndpoint
from .events import Network, RpcFailover, RpcRecovered
from .log import Logger

FAILOVER_THRESHOLD = 30


@dataclass
class FailoverState:
    active_index: int = 0
    issue_streak: int = 0
    failover_alert_sent: bool = False
    last_observed_height: int = 0


@dataclass(frozen=True)
class PollResult:
    height: int
    event: Optional[RpcFailover] = None
    rearmed: bool = False  # primary serving again after an alerted outage


class FailoverController:
    def __init__(
        self,
        network: Network,
        endpoints: Sequence[RpcEndpoint],
        probe: Callable[[str], int],
        threshold: int = FAILOVER_THRESHOLD,
        logger: Logger | None = None,
    ):
        self.network = network
        self.endpoints = tuple(endpoints)
        self.threshold = threshold
        self._probe = probe
        self._logger = logger
        self._state = FailoverState()
        self._lock = threading.Lock()

    def _log(self, msg: str) -> None:
        if self._logger:
            self._logger.log(msg)

    @property
    def state(self) -> FailoverState:
        with self._lock:
            return replace(self._state)

    @property
    def active_endpoint(self) -> Optional[RpcEndpoint]:
        if not self.endpoints:
            return None
        return self.endpoints[self.state.active_index]

    def poll(self) -> PollResult:
        with self._lock:
            if not self.endpoints:
                return PollResult(height=0)

            state = self._state
            active = state.active_index
            height = self._probe(self.endpoints[active].url)
            last = state.last_observed_height

            if height != 0 and height != last:
                state.issue_streak = 0
                state.last_observed_height = height
                rearmed = active == 0 and state.failover_alert_sent
                if rearmed:
                    state.failover_alert_sent = False
                    self._log(f"Primary {self.endpoints[0].name} serving again, failover alert re-armed")
                return PollResult(height=height, rearmed=rearmed)

            state.issue_streak += 1
            if state.issue_streak < self.threshold:
                return PollResult(height=last or height)

            reason = "offline" if height == 0 else f"stale (stuck at {height})"
            self._log(f"{self.endpoints[active].name} {reason} for {state.issue_streak} polls, trying failover...")

            for i in range(1, len(self.endpoints)):
                candidate_index = (active + i) % len(self.endpoints)
                candidate = self.endpoints[candidate_index]
                candidate_height = self._probe(candidate.url)
                if height == 0:
                    valid = candidate_height > 0
                else:
                    valid = candidate_height > 0 and candidate_height > height
                if not valid:
                    continue

                self._log(f"Switched to {candidate.name} (height: {candidate_height})")
                event = None
                if not state.failover_alert_sent:
                    event = RpcFailover(
                        network=self.network,
                        from_rpc=self.endpoints[active].name,
                        to_rpc=candidate.name,
                        reason=reason,
                    )
                    state.failover_alert_sent = True
                state.active_index = candidate_index
                state.last_observed_height = candidate_height
                state.issue_streak = 0
                return PollResult(height=candidate_height, event=event)

            self._log(f"WARN: No healthy fallback RPC, staying on {self.endpoints[active].name}")
            return PollResult(height=last if height == 0 else height)

    def check_primary_recovery(self) -> Optional[RpcRecovered]:
        with self._lock:
            state = self._state
            if not self.endpoints or state.active_index == 0:
                return None

            primary = self.endpoints[0]
            primary_height = self._probe(primary.url)
            if primary_height <= 0 or primary_height <= state.last_observed_height:
                return None

            self._log(f"Primary {primary.name} recovered (height: {primary_height}), switching back")
            event = RpcRecovered(
                network=self.network,
                from_rpc=self.endpoints[state.active_index].name,
                to_rpc=primary.name,
            )
            self._state = FailoverState(active_index=0, last_observed_height=primary_height)
            return event
