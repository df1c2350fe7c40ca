from __future__ import annotations

import threading
from typing import Callable, List

from .log import Logger


class PeriodicTask:
    """
    Runs ``handler`` every ``interval`` seconds on its own thread.

    The next tick is armed only after the handler returns, so ticks of the
    same task never overlap. Exceptions from the handler are logged and the
    loop keeps going.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        handler: Callable[[], None],
        shutdown: threading.Event,
        logger: Logger,
        initial_delay: float = 0.0,
    ):
        self.name = name
        self.interval = interval
        self.handler = handler
        self.shutdown = shutdown
        self.logger = logger
        self.initial_delay = initial_delay
        self._busy = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def is_busy(self) -> bool:
        return self._busy.locked()

    def run_once(self) -> bool:
        if not self._busy.acquire(blocking=False):
            self.logger.log(f"WARN: {self.name} still running, skipping tick")
            return False
        try:
            self.handler()
        except Exception as e:
            self.logger.log(f"ERROR: {self.name} tick failed: {e}")
        finally:
            self._busy.release()
        return True

    def _loop(self) -> None:
        if self.shutdown.wait(timeout=self.initial_delay):
            return
        while not self.shutdown.is_set():
            self.run_once()
            self.shutdown.wait(timeout=self.interval)

    def start(self) -> None:
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)


class Scheduler:
    def __init__(self, shutdown: threading.Event, logger: Logger):
        self.shutdown = shutdown
        self.logger = logger
        self.tasks: List[PeriodicTask] = []

    def add(self, name: str, interval: float, handler: Callable[[], None], initial_delay: float = 0.0) -> PeriodicTask:
        task = PeriodicTask(name, interval, handler, self.shutdown, self.logger, initial_delay=initial_delay)
        self.tasks.append(task)
        return task

    def start(self) -> None:
        for task in self.tasks:
            self.logger.log(f"Starting {task.name} (interval: {task.interval}s, first run in {task.initial_delay}s)")
            task.start()

    def join(self, timeout: float | None = None) -> None:
        for task in self.tasks:
            task.join(timeout=timeout)
