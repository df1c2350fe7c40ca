"""
Configuration for monadoring. Read from a YAML file (global defaults merged
under each network), overlaid with the MAINNET_*/TESTNET_*/alert environment
variables, and frozen into an ``AppConfig`` that is built once at startup and
passed down.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Tuple
from urllib.parse import urlparse

import yaml

from .errors import ConfigError
from .events import Network

DEFAULTS = {
    "log_file": "./log/monadoring.log",
    "rpc_alerts": False,
    "rpc_health_interval": 60,
    "all_offline_grace": 180,
    "missed_block_interval": 30,
    "primary_recovery_interval": 300,
    "active_poll_interval": 2,
    "failover_threshold": 30,
    "rpc_timeout": 5,
    "uptime_timeout": 10,
    "history_limit": 5,
}

DEFAULT_UPTIME_APIS = {
    Network.MAINNET: "https://validator-api.huginn.tech/monad-api",
    Network.TESTNET: "https://validator-api-testnet.huginn.tech/monad-api",
}

DEFAULT_PAGERDUTY_THRESHOLD = 5
DEFAULT_INGRESS_PORT = 3030

INTERVAL_KEYS = (
    "rpc_health_interval",
    "all_offline_grace",
    "missed_block_interval",
    "primary_recovery_interval",
    "active_poll_interval",
    "rpc_timeout",
    "uptime_timeout",
)

# env var -> (section, network or None, key)
ENV_OVERRIDES = {
    "MAINNET_VALIDATORS": ("networks", "mainnet", "validators"),
    "TESTNET_VALIDATORS": ("networks", "testnet", "validators"),
    "MAINNET_RPCS": ("networks", "mainnet", "rpcs"),
    "TESTNET_RPCS": ("networks", "testnet", "rpcs"),
    "TELEGRAM_BOT_TOKEN": ("alerts", None, "telegram_token"),
    "TELEGRAM_CHAT_ID": ("alerts", None, "telegram_chat_id"),
    "DISCORD_WEBHOOK_URL": ("alerts", None, "discord_webhook_url"),
    "PAGERDUTY_ROUTING_KEY": ("alerts", None, "pagerduty_routing_key"),
    "PAGERDUTY_THRESHOLD": ("alerts", None, "pagerduty_threshold"),
    "HOST": ("ingress", None, "host"),
    "PORT": ("ingress", None, "port"),
}


@dataclass(frozen=True)
class RpcEndpoint:
    url: str
    name: str


@dataclass(frozen=True)
class NetworkConfig:
    network: Network
    validators: Tuple[str, ...]
    rpcs: Tuple[RpcEndpoint, ...]
    uptime_api: str
    rpc_alerts: bool = False
    rpc_health_interval: float = 60
    all_offline_grace: float = 180
    missed_block_interval: float = 30
    primary_recovery_interval: float = 300
    active_poll_interval: float = 2
    failover_threshold: int = 30
    rpc_timeout: float = 5
    uptime_timeout: float = 10
    history_limit: int = 5

    @property
    def rpc_urls(self) -> Tuple[str, ...]:
        return tuple(rpc.url for rpc in self.rpcs)


@dataclass(frozen=True)
class AlertConfig:
    telegram_token: str = ""
    telegram_chat_id: str = ""
    discord_webhook_url: str = ""
    pagerduty_routing_key: str = ""
    pagerduty_threshold: int = DEFAULT_PAGERDUTY_THRESHOLD

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_token and self.telegram_chat_id)

    @property
    def discord_enabled(self) -> bool:
        return bool(self.discord_webhook_url)

    @property
    def pagerduty_enabled(self) -> bool:
        return bool(self.pagerduty_routing_key)


@dataclass(frozen=True)
class IngressConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = DEFAULT_INGRESS_PORT


@dataclass(frozen=True)
class AppConfig:
    networks: Tuple[NetworkConfig, ...]
    alerts: AlertConfig
    ingress: IngressConfig
    log_file: str | None = None
    dashboard_url: str = ""

    def network(self, name: str) -> NetworkConfig | None:
        for cfg in self.networks:
            if cfg.network.value == name:
                return cfg
        return None


def load_config(path: Path) -> dict:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not data:
        raise SystemExit("Config file is empty")
    if not isinstance(data, dict):
        raise SystemExit(f"Config file {path} must contain a mapping")
    return data


def apply_env_overrides(data: dict, environ: Mapping[str, str] | None = None) -> dict:
    """Return a copy of ``data`` with non-empty environment values layered on top."""
    environ = os.environ if environ is None else environ
    merged = {key: (dict(value) if isinstance(value, dict) else value) for key, value in data.items()}
    networks = merged.setdefault("networks", {}) or {}
    merged["networks"] = {name: dict(cfg or {}) for name, cfg in networks.items()}

    for env_name, (section, network, key) in ENV_OVERRIDES.items():
        value = (environ.get(env_name) or "").strip()
        if not value:
            continue
        if network:
            merged["networks"].setdefault(network, {})[key] = value
        else:
            target = merged.get(section) or {}
            target[key] = value
            merged[section] = target

    rpc_alerts = (environ.get("RPC_ALERTS") or "").strip().lower()
    if rpc_alerts:
        glob = merged.get("global") or {}
        glob["rpc_alerts"] = rpc_alerts == "on"
        merged["global"] = glob
    return merged


def parse_list(value: Any) -> Tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        items = str(value).split(",")
    return tuple(item.strip() for item in items if item and item.strip())


def extract_name_from_url(url: str) -> str:
    hostname = urlparse(url).hostname
    if not hostname:
        return url
    parts = hostname.split(".")
    domain = parts[-2] if len(parts) >= 2 else parts[0]
    return domain[:1].upper() + domain[1:]


def parse_rpcs(value: Any) -> Tuple[RpcEndpoint, ...]:
    """Parse ``"Name:https://a,https://b"`` style lists. Order defines rank."""
    endpoints = []
    for entry in parse_list(value):
        idx = entry.find(":http")
        if idx > 0:
            name, url = entry[:idx].strip(), entry[idx + 1:].strip()
        else:
            name, url = extract_name_from_url(entry), entry
        if url:
            endpoints.append(RpcEndpoint(url=url, name=name))
    return tuple(endpoints)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _as_int(value: Any, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{field}' must be an integer, got {value!r}") from None


def _as_float(value: Any, field: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{field}' must be a number, got {value!r}") from None


def merge_network_config(global_cfg: dict, name: str, network_cfg: dict) -> NetworkConfig:
    """Merge global defaults with per-network overrides."""
    try:
        network = Network(name)
    except ValueError:
        raise ConfigError(f"Unknown network '{name}' (expected one of: {', '.join(n.value for n in Network)})") from None

    merged = dict(DEFAULTS)
    merged.update(global_cfg or {})
    merged.update(network_cfg or {})

    return NetworkConfig(
        network=network,
        validators=parse_list(merged.get("validators")),
        rpcs=parse_rpcs(merged.get("rpcs")),
        uptime_api=(merged.get("uptime_api") or DEFAULT_UPTIME_APIS[network]).rstrip("/"),
        rpc_alerts=_as_bool(merged.get("rpc_alerts")),
        rpc_health_interval=_as_float(merged["rpc_health_interval"], "rpc_health_interval"),
        all_offline_grace=_as_float(merged["all_offline_grace"], "all_offline_grace"),
        missed_block_interval=_as_float(merged["missed_block_interval"], "missed_block_interval"),
        primary_recovery_interval=_as_float(merged["primary_recovery_interval"], "primary_recovery_interval"),
        active_poll_interval=_as_float(merged["active_poll_interval"], "active_poll_interval"),
        failover_threshold=_as_int(merged["failover_threshold"], "failover_threshold"),
        rpc_timeout=_as_float(merged["rpc_timeout"], "rpc_timeout"),
        uptime_timeout=_as_float(merged["uptime_timeout"], "uptime_timeout"),
        history_limit=_as_int(merged["history_limit"], "history_limit"),
    )


def validate_network(cfg: NetworkConfig) -> None:
    for key in INTERVAL_KEYS:
        if getattr(cfg, key) <= 0:
            raise ConfigError(f"Network '{cfg.network.value}': '{key}' must be positive")
    if cfg.failover_threshold < 1:
        raise ConfigError(f"Network '{cfg.network.value}': 'failover_threshold' must be at least 1")
    if cfg.history_limit < 1:
        raise ConfigError(f"Network '{cfg.network.value}': 'history_limit' must be at least 1")


def build_config(data: dict) -> AppConfig:
    global_cfg = data.get("global") or {}
    networks = data.get("networks") or {}
    if not isinstance(networks, dict):
        raise ConfigError("'networks' must be a mapping of network name to settings")

    network_cfgs = []
    for name, network_cfg in networks.items():
        cfg = merge_network_config(global_cfg, str(name), network_cfg or {})
        validate_network(cfg)
        network_cfgs.append(cfg)

    alerts = data.get("alerts") or {}
    alert_cfg = AlertConfig(
        telegram_token=str(alerts.get("telegram_token") or ""),
        telegram_chat_id=str(alerts.get("telegram_chat_id") or ""),
        discord_webhook_url=str(alerts.get("discord_webhook_url") or ""),
        pagerduty_routing_key=str(alerts.get("pagerduty_routing_key") or ""),
        pagerduty_threshold=_as_int(alerts.get("pagerduty_threshold", DEFAULT_PAGERDUTY_THRESHOLD), "pagerduty_threshold"),
    )
    if alert_cfg.pagerduty_threshold < 1:
        raise ConfigError("'pagerduty_threshold' must be at least 1")

    ingress = data.get("ingress") or {}
    ingress_cfg = IngressConfig(
        enabled=_as_bool(ingress.get("enabled", False)),
        host=str(ingress.get("host") or "127.0.0.1"),
        port=_as_int(ingress.get("port", DEFAULT_INGRESS_PORT), "port"),
    )

    log_file = global_cfg.get("log_file", DEFAULTS["log_file"]) or None
    return AppConfig(
        networks=tuple(network_cfgs),
        alerts=alert_cfg,
        ingress=ingress_cfg,
        log_file=log_file,
        dashboard_url=str(data.get("dashboard_url") or ""),
    )
