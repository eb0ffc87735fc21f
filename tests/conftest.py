"""Shared test fixtures for the revenium_runway test suite.

WHY: Most tests need the same validated Config, fake Runway and Revenium
HTTP endpoints, and a controllable clock so polling behaviour can be
checked without real waiting.

HOW: HTTP is faked with httpx.MockTransport handlers that record every
request. FakeClock replaces the poller's module-level _monotonic/_sleep
helpers; each fake sleep advances the clock by the requested amount.

RULES:
- No test touches the network
- Async code is driven with asyncio.run() from synchronous tests
- Fake handlers keep a list of received requests for call-count asserts
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from revenium_runway.api import client as runway_client_module
from revenium_runway.config import Config
from revenium_runway.metering.client import MeteringClient

RUNWAY_BASE = "https://runway.test"
REVENIUM_BASE = "https://revenium.test"


def make_config(**overrides) -> Config:
    values = dict(
        runway_api_key="rw_test_key",
        runway_base_url=RUNWAY_BASE,
        revenium_api_key="hak_test_key",
        revenium_base_url=REVENIUM_BASE,
    )
    values.update(overrides)
    return Config(**values)


@pytest.fixture
def config() -> Config:
    return make_config()


# ---------------------------------------------------------------------------
# Fake Runway task API
# ---------------------------------------------------------------------------


class FakeRunway:
    """Scripted Runway API.

    Task creation always succeeds with ``task_id`` unless ``create_status``
    says otherwise. Each status lookup pops the next entry of ``statuses``;
    the last entry repeats. An entry may be a status string, a full status
    dict, or an int HTTP status code to answer with an error.
    """

    def __init__(
        self,
        statuses: list[Any],
        task_id: str = "task-123",
        create_status: int = 200,
    ) -> None:
        self.statuses = list(statuses)
        self.task_id = task_id
        self.create_status = create_status
        self.requests: list[httpx.Request] = []
        self.lookups = 0

    def _next_status(self) -> Any:
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            if self.create_status != 200:
                return httpx.Response(
                    self.create_status,
                    json={"error": {"type": "invalid_request", "message": "bad prompt", "code": "E1"}},
                )
            return httpx.Response(200, json={"id": self.task_id, "status": "PENDING"})

        self.lookups += 1
        entry = self._next_status()
        if isinstance(entry, int):
            return httpx.Response(entry, text="upstream trouble")
        if isinstance(entry, str):
            entry = {"id": self.task_id, "status": entry}
        return httpx.Response(200, json=entry)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


# ---------------------------------------------------------------------------
# Fake Revenium metering API
# ---------------------------------------------------------------------------


class FakeRevenium:
    """Scripted metering endpoint answering with ``codes`` in order (last repeats)."""

    def __init__(self, codes: list[int] | None = None) -> None:
        self.codes = list(codes or [200])
        self.requests: list[httpx.Request] = []

    @property
    def payloads(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        code = self.codes.pop(0) if len(self.codes) > 1 else self.codes[0]
        return httpx.Response(code, json={"ok": code < 300})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


# ---------------------------------------------------------------------------
# Fake clock
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds: float, cancel_event=None) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock(monkeypatch) -> FakeClock:
    clock = FakeClock()
    monkeypatch.setattr(runway_client_module, "_monotonic", clock.monotonic)
    monkeypatch.setattr(runway_client_module, "_sleep", clock.sleep)
    return clock


@pytest.fixture
def no_backoff(monkeypatch) -> list[float]:
    """Replace the sleep of the metering retry policy with a recorder."""
    sleeps: list[float] = []

    async def _record(seconds: float) -> None:
        sleeps.append(seconds)

    monkeypatch.setattr(MeteringClient._post_record.retry, "sleep", _record)
    return sleeps
