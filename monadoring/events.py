"""
Domain values passed between the trackers, the failover logic and the
dispatcher. Every alert kind is its own frozen dataclass; ``AlertEvent`` is
the union the dispatcher accepts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, NamedTuple, Optional, Tuple, Union


class Network(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class RoundStatus(str, Enum):
    FINALIZED = "finalized"
    TIMEOUT = "timeout"


class ValidatorKey(NamedTuple):
    validator: str
    network: Network


@dataclass(frozen=True)
class MissedBlock:
    validator: str
    network: Network
    round: int
    height: Optional[int]
    consecutive_misses: Optional[int] = None
    validator_name: Optional[str] = None

    @property
    def key(self) -> ValidatorKey:
        return ValidatorKey(self.validator, self.network)

    @property
    def display_name(self) -> str:
        return self.validator_name or self.validator


@dataclass(frozen=True)
class Recovered:
    validator: str
    network: Network
    round: int
    height: Optional[int]
    previous_streak: Optional[int] = None
    validator_name: Optional[str] = None

    @property
    def key(self) -> ValidatorKey:
        return ValidatorKey(self.validator, self.network)

    @property
    def display_name(self) -> str:
        return self.validator_name or self.validator


@dataclass(frozen=True)
class RpcFailover:
    network: Network
    from_rpc: str
    to_rpc: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class RpcRecovered:
    network: Network
    from_rpc: str
    to_rpc: str


@dataclass(frozen=True)
class AllOffline:
    network: Network
    endpoints: Tuple[str, ...]
    since: float
    downtime_minutes: int
    chain_progressing: bool

    @property
    def downtime(self) -> str:
        return f"{self.downtime_minutes} minutes"


AlertEvent = Union[MissedBlock, Recovered, RpcFailover, RpcRecovered, AllOffline]
ValidatorEvent = Union[MissedBlock, Recovered]
RpcEvent = Union[RpcFailover, RpcRecovered, AllOffline]


@dataclass(frozen=True)
class LifecyclePayload:
    event: str  # "startup" or "shutdown"
    timestamp: datetime
    validator_name: Optional[str] = None
    dashboard_url: Optional[str] = None
    alert_status: Dict[str, bool] = field(default_factory=dict)

    @property
    def is_startup(self) -> bool:
        return self.event == "startup"
