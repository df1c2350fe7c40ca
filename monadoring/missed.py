from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Dict, Optional, Union

from .events import MissedBlock, Recovered, RoundStatus, ValidatorKey
from .log import Logger
from .uptime import HistoryEntry


@dataclass
class ValidatorBlockState:
    last_round: int
    last_status: RoundStatus
    consecutive_misses: int = 0
    alerted_for_current_streak: bool = False


class MissedBlockTracker:
    """
    Turns the newest history entry of each validator into missed/recovered events.

    The first entry seen for a key only seeds state. Re-reading the same round
    is a no-op. A timeout round extends the streak and emits ``MissedBlock``;
    a finalized round closes the streak and emits ``Recovered`` when the
    streak had been alerted.
    """

    def __init__(self, logger: Logger | None = None):
        self._states: Dict[ValidatorKey, ValidatorBlockState] = {}
        self._lock = threading.Lock()
        self._logger = logger

    def _log(self, msg: str) -> None:
        if self._logger:
            self._logger.log(msg)

    def state(self, key: ValidatorKey) -> Optional[ValidatorBlockState]:
        with self._lock:
            state = self._states.get(key)
            return replace(state) if state else None

    def observe(
        self,
        key: ValidatorKey,
        entry: HistoryEntry,
        validator_name: str | None = None,
    ) -> Optional[Union[MissedBlock, Recovered]]:
        name = validator_name or key.validator
        label = f"{name} {key.network.label}"
        missed = entry.status == RoundStatus.TIMEOUT

        with self._lock:
            prev = self._states.get(key)

            if prev is None:
                self._states[key] = ValidatorBlockState(
                    last_round=entry.round,
                    last_status=entry.status,
                    consecutive_misses=1 if missed else 0,
                )
                self._log(f"{label} ~ {'Missed' if missed else 'Finalized'} round {entry.round}")
                return None

            if entry.round == prev.last_round:
                return None

            if missed:
                streak = prev.consecutive_misses + 1
                self._states[key] = ValidatorBlockState(
                    last_round=entry.round,
                    last_status=RoundStatus.TIMEOUT,
                    consecutive_misses=streak,
                    alerted_for_current_streak=True,
                )
                self._log(f"{label} ~ Missed round {entry.round} (streak: {streak})")
                return MissedBlock(
                    validator=key.validator,
                    network=key.network,
                    round=entry.round,
                    height=entry.height,
                    consecutive_misses=streak,
                    validator_name=validator_name,
                )

            self._states[key] = ValidatorBlockState(last_round=entry.round, last_status=RoundStatus.FINALIZED)
            if prev.consecutive_misses > 0 and prev.alerted_for_current_streak:
                self._log(f"{label} ~ Recovered round {entry.round} (streak was: {prev.consecutive_misses})")
                return Recovered(
                    validator=key.validator,
                    network=key.network,
                    round=entry.round,
                    height=entry.height,
                    previous_streak=prev.consecutive_misses,
                    validator_name=validator_name,
                )
            self._log(f"{label} ~ Finalized round {entry.round}")
            return None
