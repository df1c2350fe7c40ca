"""
Notification backends. Each one POSTs JSON with ``requests`` and reports
success as a plain bool; nothing is retried.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import requests

from .events import (
    AlertEvent,
    AllOffline,
    LifecyclePayload,
    MissedBlock,
    Recovered,
    RpcFailover,
    RpcRecovered,
)
from .log import Logger

NOTIFY_TIMEOUT = 10
PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"

COLOR_RED = 0xEF4444
COLOR_GREEN = 0x22C55E
COLOR_AMBER = 0xF59E0B
COLOR_DARK_RED = 0xDC2626

BACKEND_LABELS = {"telegram": "Telegram", "discord": "Discord", "pagerduty": "PagerDuty"}


def _causes(chain_progressing: bool, bullet: str = "•") -> str:
    causes = [f"{bullet} Rate limiting on RPC endpoints", f"{bullet} Incorrect RPC URLs in config"]
    if not chain_progressing:
        causes.append(f"{bullet} Network/chain may be halted")
    return "\n".join(causes)


class Notifier:
    name = ""

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = NOTIFY_TIMEOUT,
        logger: Logger | None = None,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.logger = logger

    @property
    def enabled(self) -> bool:
        raise NotImplementedError

    def notify(self, event: AlertEvent) -> bool:
        raise NotImplementedError

    def notify_lifecycle(self, payload: LifecyclePayload) -> bool:
        return False

    def _log(self, msg: str) -> None:
        if self.logger:
            self.logger.log(msg)

    def _post(self, url: str, body: dict) -> bool:
        try:
            r = self.session.post(url, json=body, headers={"Content-Type": "application/json"}, timeout=self.timeout)
        except requests.RequestException as e:
            self._log(f"WARN: Failed to send {self.name} notification: {e}")
            return False
        if not r.ok:
            self._log(f"WARN: {self.name} API error: {r.status_code} {r.text[:200]}")
        return r.ok


class TelegramNotifier(Notifier):
    name = "telegram"

    def __init__(self, token: str, chat_id: str, **kwargs):
        super().__init__(**kwargs)
        self.token = token
        self.chat_id = chat_id

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.chat_id)

    def send_message(self, text: str) -> bool:
        if not self.enabled:
            return False
        url = f"https://api.telegram.org/bot{self.token}/sendMessage"
        return self._post(url, {"chat_id": self.chat_id, "text": text, "parse_mode": "Markdown"})

    def notify(self, event: AlertEvent) -> bool:
        return self.send_message(format_telegram(event))

    def notify_lifecycle(self, payload: LifecyclePayload) -> bool:
        return self.send_message(format_telegram_lifecycle(payload))


class DiscordNotifier(Notifier):
    name = "discord"

    def __init__(self, webhook_url: str, **kwargs):
        super().__init__(**kwargs)
        self.webhook_url = webhook_url

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def send_embed(self, embed: dict) -> bool:
        if not self.enabled:
            return False
        return self._post(self.webhook_url, {"embeds": [embed]})

    def notify(self, event: AlertEvent) -> bool:
        return self.send_embed(format_discord(event))

    def notify_lifecycle(self, payload: LifecyclePayload) -> bool:
        return self.send_embed(format_discord_lifecycle(payload))


class PagerDutyNotifier(Notifier):
    """Events API v2. Missed blocks trigger, recoveries resolve the same dedup key."""

    name = "pagerduty"

    def __init__(self, routing_key: str, url: str = PAGERDUTY_EVENTS_URL, **kwargs):
        super().__init__(**kwargs)
        self.routing_key = routing_key
        self.url = url

    @property
    def enabled(self) -> bool:
        return bool(self.routing_key)

    def notify(self, event: AlertEvent) -> bool:
        if not self.enabled:
            return False
        if not isinstance(event, (MissedBlock, Recovered)):
            raise TypeError(f"PagerDuty only handles validator events, got {type(event).__name__}")
        return self._post(self.url, build_pagerduty_event(self.routing_key, event))


def dedup_key(event: MissedBlock | Recovered) -> str:
    return f"monadoring-{event.validator}-{event.network.value}"


def build_pagerduty_event(routing_key: str, event: MissedBlock | Recovered) -> dict:
    missed = isinstance(event, MissedBlock)
    summary = "Missed block" if missed else "Recovered"
    return {
        "routing_key": routing_key,
        "event_action": "trigger" if missed else "resolve",
        "dedup_key": dedup_key(event),
        "payload": {
            "summary": f"{summary}: {event.display_name} on {event.network.value}",
            "severity": "error" if missed else "info",
            "source": "Monadoring",
            "custom_details": {
                "validator": event.display_name,
                "network": event.network.value,
                "height": event.height,
                "round": event.round,
                "consecutive_misses": event.consecutive_misses if missed else None,
            },
        },
    }


def format_telegram(event: AlertEvent) -> str:
    if isinstance(event, MissedBlock):
        return (
            f"⛔ *Timeout detected* (#{event.consecutive_misses or 1})\n"
            f"• Round: `{event.round:,}`\n"
            f"• Validator: {event.display_name}\n"
            f"• Network: {event.network.label}"
        )
    if isinstance(event, Recovered):
        streak = f"\n• Previous timeout streak: {event.previous_streak}" if event.previous_streak else ""
        return (
            f"✅ *Recovered*\n"
            f"• Finalized on round `{event.round:,}`\n"
            f"• Validator: {event.display_name}\n"
            f"• Network: {event.network.label}{streak}"
        )
    if isinstance(event, RpcFailover):
        reason = f"\n*Reason:* {event.reason}" if event.reason else ""
        return (
            f"⚠️ *RPC Failover*\n\n"
            f"*Network:* {event.network.value.upper()}\n"
            f"*From:* `{event.from_rpc}`\n"
            f"*To:* `{event.to_rpc}`{reason}\n\n"
            f"_Active RPC is offline, switched to the next one_"
        )
    if isinstance(event, RpcRecovered):
        return (
            f"✅ *RPC Recovered*\n\n"
            f"*Network:* {event.network.value.upper()}\n"
            f"*Primary:* `{event.to_rpc}`\n\n"
            f"_Switched back to primary RPC_"
        )
    if isinstance(event, AllOffline):
        return (
            f"🚨 *ALL RPCs OFFLINE*\n\n"
            f"*Network:* {event.network.value.upper()}\n"
            f"*Downtime:* {event.downtime}\n\n"
            f"⚠️ *Possible causes:*\n{_causes(event.chain_progressing)}\n\n"
            f"_Check your RPC configuration or network status_"
        )
    raise TypeError(f"Unsupported event: {event!r}")


def format_discord(event: AlertEvent, now: Optional[datetime] = None) -> dict:
    timestamp = (now or datetime.now(timezone.utc)).isoformat()

    if isinstance(event, (MissedBlock, Recovered)):
        missed = isinstance(event, MissedBlock)
        fields = [
            {"name": "Round", "value": f"`{event.round:,}`", "inline": True},
            {"name": "Validator", "value": event.display_name, "inline": True},
            {"name": "Network", "value": event.network.label, "inline": True},
        ]
        if not missed and event.previous_streak:
            fields.append({"name": "Previous Streak", "value": str(event.previous_streak), "inline": True})
        return {
            "title": f"⛔ Timeout detected (#{event.consecutive_misses or 1})" if missed else "✅ Recovered",
            "color": COLOR_RED if missed else COLOR_GREEN,
            "fields": fields,
            "footer": {"text": "Monadoring"},
            "timestamp": timestamp,
        }

    network = event.network.value.upper()
    if isinstance(event, RpcFailover):
        reason = f"\n**Reason:** {event.reason}" if event.reason else ""
        color = COLOR_AMBER
        description = (
            f"⚠️ **RPC Failover**\n\n**Network:** {network}\n"
            f"**From:** `{event.from_rpc}`\n**To:** `{event.to_rpc}`{reason}"
        )
    elif isinstance(event, RpcRecovered):
        color = COLOR_GREEN
        description = (
            f"✅ **RPC Recovered**\n\n**Network:** {network}\n"
            f"**Primary:** `{event.to_rpc}`\n\n_Switched back to primary RPC_"
        )
    elif isinstance(event, AllOffline):
        color = COLOR_DARK_RED
        description = (
            f"🚨 **ALL RPCs OFFLINE**\n\n**Network:** {network}\n**Downtime:** {event.downtime}\n\n"
            f"⚠️ **Possible causes:**\n{_causes(event.chain_progressing)}\n\n"
            f"_Check your RPC configuration or network status_"
        )
    else:
        raise TypeError(f"Unsupported event: {event!r}")
    return {
        "description": description,
        "color": color,
        "footer": {"text": "Monadoring RPC Alert"},
        "timestamp": timestamp,
    }


def format_telegram_lifecycle(payload: LifecyclePayload) -> str:
    validator = f" ({payload.validator_name})" if payload.validator_name else ""
    if not payload.is_startup:
        return f"🔴 *Monadoring* is now *offline*{validator}"

    dashboard = f"\n📊 Dashboard: {payload.dashboard_url}" if payload.dashboard_url else ""
    status = ""
    if payload.alert_status:
        marks = " | ".join(
            f"{BACKEND_LABELS.get(name, name)}: {'✅' if on else '❌'}"
            for name, on in payload.alert_status.items()
        )
        status = f"\n\n*Alerts:*\n{marks}"
    return f"🟢 *Monadoring* is now *online*{validator}{dashboard}\n_Observing validator uptime_{status}"


def format_discord_lifecycle(payload: LifecyclePayload) -> dict:
    validator = f" ({payload.validator_name})" if payload.validator_name else ""
    if payload.is_startup:
        dashboard = f"📊 [Dashboard]({payload.dashboard_url})\n" if payload.dashboard_url else ""
        description = f"🟢 Monadoring is now **online**{validator}\n{dashboard}_Observing validator uptime_"
    else:
        description = f"🔴 Monadoring is now **offline**{validator}"
    return {
        "description": description,
        "color": COLOR_GREEN if payload.is_startup else COLOR_RED,
        "footer": {"text": "Monadoring"},
        "timestamp": payload.timestamp.isoformat(),
    }
