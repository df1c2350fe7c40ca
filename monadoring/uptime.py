"""Client for the validator uptime service (``/validator/uptime/...``)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple

import requests

from .events import RoundStatus
from .log import Logger


@dataclass(frozen=True)
class UptimeStats:
    validator_id: int
    validator_name: str
    finalized_count: int
    timeout_count: int
    total_events: int
    uptime_percent: float
    last_round: int
    last_block_height: Optional[int]

    @classmethod
    def from_json(cls, data: dict) -> UptimeStats:
        return cls(
            validator_id=int(data.get("validator_id", 0)),
            validator_name=str(data.get("validator_name") or ""),
            finalized_count=int(data.get("finalized_count", 0)),
            timeout_count=int(data.get("timeout_count", 0)),
            total_events=int(data.get("total_events", 0)),
            uptime_percent=float(data.get("uptime_percent", 0.0)),
            last_round=int(data.get("last_round", 0)),
            last_block_height=_optional_int(data.get("last_block_height")),
        )


@dataclass(frozen=True)
class HistoryEntry:
    round: int
    height: Optional[int]
    status: RoundStatus

    @classmethod
    def from_json(cls, data: dict) -> HistoryEntry:
        return cls(
            round=int(data["round"]),
            height=_optional_int(data.get("height")),
            status=RoundStatus(data["status"]),
        )


@dataclass(frozen=True)
class ValidatorHistory:
    validator_name: str
    entries: Tuple[HistoryEntry, ...]  # newest first

    @property
    def latest(self) -> HistoryEntry | None:
        return self.entries[0] if self.entries else None


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)


class UptimeClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10,
        session: requests.Session | None = None,
        logger: Logger | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logger

    def _log(self, msg: str) -> None:
        if self.logger:
            self.logger.log(msg)

    def _get_json(self, path: str, params: dict | None = None) -> dict | None:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.get(url, params=params, timeout=self.timeout)
            r.raise_for_status()
            data = r.json()
        except requests.exceptions.Timeout:
            self._log(f"Error fetching {url}: connection timed out")
            return None
        except (requests.RequestException, ValueError) as e:
            self._log(f"Error fetching {url}: {e}")
            return None
        if not isinstance(data, dict) or not data.get("success"):
            return None
        return data

    def fetch_uptime(self, validator_id: str) -> UptimeStats | None:
        data = self._get_json(f"/validator/uptime/{validator_id}")
        if not data or not isinstance(data.get("uptime"), dict):
            return None
        try:
            return UptimeStats.from_json(data["uptime"])
        except (TypeError, ValueError) as e:
            self._log(f"Malformed uptime response for validator {validator_id}: {e}")
            return None

    def fetch_history(self, validator_id: str, limit: int = 50) -> ValidatorHistory | None:
        data = self._get_json(f"/validator/uptime/{validator_id}/history", params={"limit": limit})
        if not data or not isinstance(data.get("history"), list):
            return None
        try:
            entries = tuple(HistoryEntry.from_json(item) for item in data["history"])
        except (KeyError, TypeError, ValueError) as e:
            self._log(f"Malformed history response for validator {validator_id}: {e}")
            return None
        return ValidatorHistory(validator_name=str(data.get("validator_name") or ""), entries=entries)

    def validator_name(self, validator_id: str) -> str | None:
        history = self.fetch_history(validator_id, limit=1)
        if history and history.validator_name:
            return history.validator_name
        return None


class ChainProgressChecker:
    """Tells whether the chain height reported by the uptime service is still moving."""

    def __init__(self, client: UptimeClient, validator_id: str | None):
        self.client = client
        self.validator_id = validator_id
        self.last_height = 0

    def __call__(self) -> bool:
        if not self.validator_id:
            return False
        stats = self.client.fetch_uptime(self.validator_id)
        if stats is None or not stats.last_block_height:
            return False
        previous = self.last_height
        self.last_height = stats.last_block_height
        return previous > 0 and stats.last_block_height > previous
