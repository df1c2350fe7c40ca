from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import List

from .config import AppConfig, apply_env_overrides, build_config, load_config
from .dispatcher import AlertDispatcher
from .errors import ConfigError
from .ingress import AlertIngressServer
from .lifecycle import LifecycleNotifier
from .log import Logger
from .missed import MissedBlockTracker
from .monitor import NetworkMonitor
from .scheduler import Scheduler
from .uptime import UptimeClient


def resolve_validator_name(config: AppConfig, logger: Logger) -> str | None:
    """Display name of the first configured validator, looked up on the uptime service."""
    for net in config.networks:
        if not net.validators:
            continue
        client = UptimeClient(net.uptime_api, timeout=net.uptime_timeout, logger=logger)
        name = client.validator_name(net.validators[0])
        if name:
            return name
    return None


def print_plan(config: AppConfig) -> None:
    for net in config.networks:
        rpcs = ", ".join(f"{r.name} ({r.url})" for r in net.rpcs) or "none"
        validators = ", ".join(net.validators) or "none"
        print(f"[dry-run] {net.network.value}: validators={validators} rpcs={rpcs} rpc_alerts={net.rpc_alerts}")
    alerts = config.alerts
    print(
        f"[dry-run] alerts: telegram={alerts.telegram_enabled} discord={alerts.discord_enabled} "
        f"pagerduty={alerts.pagerduty_enabled} (threshold {alerts.pagerduty_threshold})"
    )


def main(argv: List[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Monad validator uptime and RPC health monitor")
    parser.add_argument("-c", "--config", type=Path, default=Path("config.yaml"), help="Path to YAML config")
    parser.add_argument("-n", "--dry-run", action="store_true", help="Print what would be monitored and exit")
    parser.add_argument("--network", help="Run only this network by name")
    args = parser.parse_args(argv)

    config_path = args.config.resolve()
    if not config_path.exists():
        print(f"ERROR: Config not found at {config_path}", file=sys.stderr)
        sys.exit(1)

    try:
        config = build_config(apply_env_overrides(load_config(config_path)))
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    if args.network:
        selected = config.network(args.network)
        if selected is None:
            print(f"ERROR: Network '{args.network}' not found", file=sys.stderr)
            sys.exit(1)
        config = AppConfig(
            networks=(selected,),
            alerts=config.alerts,
            ingress=config.ingress,
            log_file=config.log_file,
            dashboard_url=config.dashboard_url,
        )

    if not config.networks:
        print("ERROR: No networks defined in config", file=sys.stderr)
        sys.exit(1)

    if args.dry_run:
        print_plan(config)
        return

    root_logger = Logger("Monadoring", config.log_file)
    dispatcher = AlertDispatcher.from_config(config.alerts, logger=root_logger.child("Dispatcher"))
    tracker = MissedBlockTracker(logger=root_logger.child("Blocks"))

    shutdown = threading.Event()
    scheduler = Scheduler(shutdown, root_logger.child("Scheduler"))
    for net in config.networks:
        monitor = NetworkMonitor(net, dispatcher, tracker, root_logger.child(f"Network: {net.network.value}"))
        monitor.schedule(scheduler)

    lifecycle = LifecycleNotifier(
        [dispatcher.telegram, dispatcher.discord],
        alert_status=dispatcher.alert_status,
        validator_name=resolve_validator_name(config, root_logger),
        dashboard_url=config.dashboard_url or None,
        logger=root_logger.child("Lifecycle"),
    )
    lifecycle.startup()

    ingress = None
    if config.ingress.enabled:
        ingress = AlertIngressServer(
            dispatcher, config.ingress.host, config.ingress.port, logger=root_logger.child("Ingress")
        )
        ingress.start()

    def on_signal(signum: int, frame: object) -> None:
        if not shutdown.is_set():
            root_logger.log(f"Received {signal.Signals(signum).name}, shutting down...")
        shutdown.set()

    signal.signal(signal.SIGINT, on_signal)
    signal.signal(signal.SIGTERM, on_signal)

    scheduler.start()
    print(f"Running {len(scheduler.tasks)} task(s). Ctrl+C to stop all.\n")
    while not shutdown.wait(timeout=1):
        pass

    try:
        lifecycle.shutdown()
    except Exception as e:
        root_logger.log(f"ERROR: Shutdown notification error: {e}")
    finally:
        if ingress is not None:
            ingress.stop()
        root_logger.log("Monitoring stopped")
        sys.exit(0)
