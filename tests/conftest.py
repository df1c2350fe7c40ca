from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional

import pytest
import requests


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def raise_for_status(self) -> None:
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """Stands in for ``requests.Session``; records calls and replays canned responses."""

    def __init__(self, responses: Optional[Dict[str, object]] = None, default=None):
        self.responses = dict(responses or {})
        self.default = default if default is not None else FakeResponse(200, {"ok": True})
        self.calls: List[dict] = []
        self._lock = threading.Lock()

    def _respond(self, method: str, url: str, **kwargs):
        with self._lock:
            self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.get(url, self.default)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(url, **kwargs)
        return response

    def post(self, url, **kwargs):
        return self._respond("POST", url, **kwargs)

    def get(self, url, **kwargs):
        return self._respond("GET", url, **kwargs)

    def posted(self, url_fragment: str = "") -> List[dict]:
        return [c for c in self.calls if c["method"] == "POST" and url_fragment in c["url"]]


class ScriptedProbe:
    """Height source: each URL returns its scripted heights in order, then repeats the last one."""

    def __init__(self, scripts: Optional[Dict[str, Iterable[int]]] = None):
        self.scripts = {url: list(heights) for url, heights in (scripts or {}).items()}
        self.calls: List[str] = []

    def set(self, url: str, *heights: int) -> None:
        self.scripts[url] = list(heights)

    def __call__(self, url: str) -> int:
        self.calls.append(url)
        heights = self.scripts.get(url)
        if not heights:
            return 0
        if len(heights) > 1:
            return heights.pop(0)
        return heights[0]


class ManualClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier:
    """Minimal notifier double used to observe dispatcher routing."""

    def __init__(self, name: str, enabled: bool = True, result: bool = True, error: Exception | None = None):
        self.name = name
        self.enabled = enabled
        self.result = result
        self.error = error
        self.events: list = []
        self.lifecycle: list = []

    def notify(self, event) -> bool:
        self.events.append(event)
        if self.error is not None:
            raise self.error
        return self.result

    def notify_lifecycle(self, payload) -> bool:
        self.lifecycle.append(payload)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def probe() -> ScriptedProbe:
    return ScriptedProbe()
