from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from .config import NetworkConfig
from .dispatcher import AlertDispatcher
from .events import AlertEvent, ValidatorKey
from .failover import FailoverController
from .health import AllOfflineDetector, RpcHealthTracker
from .log import Logger
from .missed import MissedBlockTracker
from .rpc import RpcProbe
from .scheduler import Scheduler
from .uptime import ChainProgressChecker, UptimeClient

RPC_HEALTH_FIRST_DELAY = 30
MISSED_BLOCK_FIRST_DELAY = 10


class NetworkMonitor:
    """Wires the detectors of one network to the shared tracker and dispatcher."""

    def __init__(
        self,
        config: NetworkConfig,
        dispatcher: AlertDispatcher,
        missed_tracker: MissedBlockTracker,
        logger: Logger,
        probe: Optional[RpcProbe] = None,
        uptime: Optional[UptimeClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.network = config.network
        self.dispatcher = dispatcher
        self.missed_tracker = missed_tracker
        self.logger = logger
        self.probe = probe or RpcProbe(timeout=config.rpc_timeout)
        self.uptime = uptime or UptimeClient(config.uptime_api, timeout=config.uptime_timeout, logger=logger)
        self.health = RpcHealthTracker(self.probe.block_height)
        self.failover = FailoverController(
            self.network,
            config.rpcs,
            self.probe.block_height,
            threshold=config.failover_threshold,
            logger=logger,
        )
        first_validator = config.validators[0] if config.validators else None
        self.all_offline = AllOfflineDetector(
            self.network,
            ChainProgressChecker(self.uptime, first_validator),
            grace=config.all_offline_grace,
            clock=clock,
            logger=logger,
        )
        self.current_height = 0

    def _dispatch(self, event: Optional[AlertEvent]) -> None:
        if event is None:
            return
        result = self.dispatcher.dispatch(event)
        if result.deliveries:
            sent = ", ".join(f"{name}={'ok' if ok else 'FAILED'}" for name, ok in result.deliveries.items())
            self.logger.log(f"{type(event).__name__} alert: {sent}")

    def poll_active_rpc(self) -> int:
        result = self.failover.poll()
        self.current_height = result.height
        if result.rearmed:
            self.dispatcher.rearm_failover(self.network)
        self._dispatch(result.event)
        return result.height

    def check_primary_recovery(self) -> None:
        self._dispatch(self.failover.check_primary_recovery())

    def check_rpc_health(self) -> None:
        urls = self.config.rpc_urls
        if not urls:
            return
        heights = self.probe.probe_many(urls)
        healthy = sum(1 for url in urls if self.health.classify(url, heights.get(url, 0)))
        self._dispatch(self.all_offline.update(urls, healthy))

    def check_missed_blocks(self) -> None:
        validators = self.config.validators
        if not validators:
            return
        limit = self.config.history_limit
        with ThreadPoolExecutor(max_workers=len(validators)) as pool:
            histories = list(pool.map(lambda v: self.uptime.fetch_history(v, limit=limit), validators))

        for validator_id, history in zip(validators, histories):
            if history is None or history.latest is None:
                continue
            key = ValidatorKey(validator_id, self.network)
            try:
                event = self.missed_tracker.observe(key, history.latest, history.validator_name or None)
                self._dispatch(event)
            except Exception as e:
                self.logger.log(f"ERROR: Missed block check failed for {validator_id}: {e}")

    def schedule(self, scheduler: Scheduler) -> None:
        cfg = self.config
        name = self.network.value
        if cfg.rpcs:
            scheduler.add(f"{name}-active-rpc", cfg.active_poll_interval, self.poll_active_rpc)
            if len(cfg.rpcs) > 1:
                scheduler.add(
                    f"{name}-primary-recovery",
                    cfg.primary_recovery_interval,
                    self.check_primary_recovery,
                    initial_delay=cfg.primary_recovery_interval,
                )
            if cfg.rpc_alerts:
                scheduler.add(
                    f"{name}-rpc-health",
                    cfg.rpc_health_interval,
                    self.check_rpc_health,
                    initial_delay=RPC_HEALTH_FIRST_DELAY,
                )
            else:
                self.logger.log("RPC alerts disabled (set RPC_ALERTS=on to enable)")
        else:
            self.logger.log("No RPCs configured, skipping RPC monitoring")

        if cfg.validators:
            scheduler.add(
                f"{name}-missed-blocks",
                cfg.missed_block_interval,
                self.check_missed_blocks,
                initial_delay=MISSED_BLOCK_FIRST_DELAY,
            )
        else:
            self.logger.log("No validators configured, skipping missed block monitoring")
