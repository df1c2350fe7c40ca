"""
Routes domain events to the notification backends.

Policy:
  * telegram / discord get every validator and RPC event they are configured for.
  * pagerduty is triggered once per miss streak when the streak reaches the
    threshold, and resolved on the next recovery if it had been triggered.
  * an RPC failover alerts once per network until an RPC recovery for that
    network; an all-offline episode alerts once (keyed by its start time).

Backends are called in parallel and independently. Failures are logged and
counted, never retried.
"""

from __future__ import annotations

import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from functools import partial
from typing import Callable, Dict, List, Optional, Set

import requests

from .config import AlertConfig
from .events import (
    AlertEvent,
    AllOffline,
    MissedBlock,
    Network,
    Recovered,
    RpcFailover,
    RpcRecovered,
    ValidatorKey,
)
from .log import Logger
from .notifiers import DiscordNotifier, Notifier, PagerDutyNotifier, TelegramNotifier

DEFAULT_THRESHOLD = 5


@dataclass
class AlertManagerState:
    consecutive_misses: Dict[ValidatorKey, int] = field(default_factory=dict)
    pagerduty_triggered: Dict[ValidatorKey, bool] = field(default_factory=dict)


@dataclass(frozen=True)
class DispatchResult:
    deliveries: Dict[str, bool] = field(default_factory=dict)
    suppressed: bool = False
    consecutive_misses: Optional[int] = None

    @property
    def delivered(self) -> bool:
        return any(self.deliveries.values())


class AlertDispatcher:
    def __init__(
        self,
        telegram: Optional[Notifier] = None,
        discord: Optional[Notifier] = None,
        pagerduty: Optional[Notifier] = None,
        threshold: int = DEFAULT_THRESHOLD,
        logger: Logger | None = None,
    ):
        self.telegram = telegram
        self.discord = discord
        self.pagerduty = pagerduty
        self.threshold = threshold
        self.logger = logger
        self.state = AlertManagerState()
        self.failure_counts: Counter = Counter()
        self._failover_alerted: Set[Network] = set()
        self._offline_episodes: Dict[Network, float] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        alerts: AlertConfig,
        logger: Logger | None = None,
        session: requests.Session | None = None,
    ) -> AlertDispatcher:
        session = session or requests.Session()
        return cls(
            telegram=TelegramNotifier(alerts.telegram_token, alerts.telegram_chat_id, session=session, logger=logger),
            discord=DiscordNotifier(alerts.discord_webhook_url, session=session, logger=logger),
            pagerduty=PagerDutyNotifier(alerts.pagerduty_routing_key, session=session, logger=logger),
            threshold=alerts.pagerduty_threshold,
            logger=logger,
        )

    def _log(self, msg: str) -> None:
        if self.logger:
            self.logger.log(msg)

    @property
    def chat_backends(self) -> List[Notifier]:
        return [n for n in (self.telegram, self.discord) if n is not None and n.enabled]

    @property
    def pagerduty_enabled(self) -> bool:
        return self.pagerduty is not None and self.pagerduty.enabled

    @property
    def alert_status(self) -> Dict[str, bool]:
        return {
            "telegram": bool(self.telegram and self.telegram.enabled),
            "discord": bool(self.discord and self.discord.enabled),
            "pagerduty": self.pagerduty_enabled,
        }

    def consecutive_misses(self, key: ValidatorKey) -> int:
        with self._lock:
            return self.state.consecutive_misses.get(key, 0)

    def rearm_failover(self, network: Network) -> None:
        """Let the next ``RpcFailover`` for ``network`` through, e.g. once the primary serves again."""
        with self._lock:
            self._failover_alerted.discard(network)

    def dispatch(self, event: AlertEvent) -> DispatchResult:
        if isinstance(event, MissedBlock):
            return self._dispatch_missed(event)
        if isinstance(event, Recovered):
            return self._dispatch_recovered(event)
        if isinstance(event, (RpcFailover, RpcRecovered, AllOffline)):
            return self._dispatch_rpc(event)
        raise TypeError(f"Unsupported event: {event!r}")

    def _dispatch_missed(self, event: MissedBlock) -> DispatchResult:
        key = event.key
        # Paging counts misses dispatched here, not the tracker streak: a streak
        # seeded from a first-seen timeout pages one round later than its #n shows.
        with self._lock:
            misses = self.state.consecutive_misses.get(key, 0) + 1
            self.state.consecutive_misses[key] = misses
            page = (
                self.pagerduty_enabled
                and misses >= self.threshold
                and not self.state.pagerduty_triggered.get(key, False)
            )
            if page:
                self.state.pagerduty_triggered[key] = True

        if event.consecutive_misses is None:
            event = replace(event, consecutive_misses=misses)
        calls = self._chat_calls(event)
        if page:
            self._log(f"Paging: {event.display_name} {event.network.label} missed {misses} rounds in a row")
            calls["pagerduty"] = partial(self.pagerduty.notify, event)
        return DispatchResult(deliveries=self._deliver(calls), consecutive_misses=misses)

    def _dispatch_recovered(self, event: Recovered) -> DispatchResult:
        key = event.key
        with self._lock:
            previous = self.state.consecutive_misses.get(key, 0)
            self.state.consecutive_misses[key] = 0
            resolve = self.pagerduty_enabled and self.state.pagerduty_triggered.get(key, False)
            if resolve:
                self.state.pagerduty_triggered[key] = False

        if event.previous_streak is None and previous:
            event = replace(event, previous_streak=previous)
        calls = self._chat_calls(event)
        if resolve:
            self._log(f"Resolving page: {event.display_name} {event.network.label}")
            calls["pagerduty"] = partial(self.pagerduty.notify, event)
        return DispatchResult(deliveries=self._deliver(calls), consecutive_misses=0)

    def _dispatch_rpc(self, event: RpcFailover | RpcRecovered | AllOffline) -> DispatchResult:
        network = event.network
        with self._lock:
            suppressed = False
            if isinstance(event, RpcFailover):
                suppressed = network in self._failover_alerted
                self._failover_alerted.add(network)
            elif isinstance(event, RpcRecovered):
                self._failover_alerted.discard(network)
            else:
                suppressed = self._offline_episodes.get(network) == event.since
                self._offline_episodes[network] = event.since

        if suppressed:
            self._log(f"Suppressed duplicate {type(event).__name__} alert for {network.label}")
            return DispatchResult(suppressed=True)
        return DispatchResult(deliveries=self._deliver(self._chat_calls(event)))

    def _chat_calls(self, event: AlertEvent) -> Dict[str, Callable[[], bool]]:
        return {n.name: partial(n.notify, event) for n in self.chat_backends}

    def _deliver(self, calls: Dict[str, Callable[[], bool]]) -> Dict[str, bool]:
        if not calls:
            return {}
        results: Dict[str, bool] = {}
        with ThreadPoolExecutor(max_workers=len(calls)) as pool:
            futures = {name: pool.submit(call) for name, call in calls.items()}
            for name, future in futures.items():
                try:
                    ok = bool(future.result())
                except Exception as e:
                    self._log(f"WARN: {name} delivery raised: {e}")
                    ok = False
                results[name] = ok
                if not ok:
                    with self._lock:
                        self.failure_counts[name] += 1
                    self._log(f"WARN: {name} delivery failed")
        return results
