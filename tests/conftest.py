"""
tests/conftest.py

Shared fakes for the audit pipeline: a scripted audit backend, an uptime
probe that never touches the network, and record builders.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import pytest

from maintenance_os.audit.base import AuditBackend, AuditSession, Screenshot
from maintenance_os.audit.record import ResultStore
from maintenance_os.schemas import AuditResult, CategoryScores, Target, UptimeResult


DEFAULT_NATIVE = {"performance": 0.85, "accessibility": 0.95, "bestPractices": 0.9, "seo": 0.95}


class FakeSession(AuditSession):
    def __init__(self, backend: "FakeBackend") -> None:
        self.backend = backend

    async def navigate(self) -> None:
        if self.backend.navigation_errors:
            raise self.backend.navigation_errors.pop(0)

    async def capture_screenshot(self) -> Optional[Screenshot]:
        return self.backend.screenshot

    async def run_audit(self) -> Dict[str, Optional[float]]:
        return dict(self.backend.native)


class FakeBackend(AuditBackend):
    """
    Scripted backend. `acquire_errors` / `navigation_errors` are raised in
    order, one per attempt, before the session succeeds.
    """

    name = "fake"

    def __init__(
        self,
        native: Optional[Dict[str, Optional[float]]] = None,
        acquire_errors: Optional[List[Exception]] = None,
        navigation_errors: Optional[List[Exception]] = None,
        screenshot: Optional[Screenshot] = Screenshot(data=b"\x89PNG fake", ext="png"),
    ) -> None:
        self.native = DEFAULT_NATIVE if native is None else native
        self.acquire_errors = list(acquire_errors or [])
        self.navigation_errors = list(navigation_errors or [])
        self.screenshot = screenshot
        self.acquired = 0
        self.released = 0

    @asynccontextmanager
    async def session(self, target: Target):
        self.acquired += 1
        if self.acquire_errors:
            raise self.acquire_errors.pop(0)
        try:
            yield FakeSession(self)
        finally:
            self.released += 1


class FakeProbe:
    def __init__(self, *results: UptimeResult) -> None:
        self.results = list(results) or [UptimeResult(status="UP", status_code=200, latency=12)]
        self.calls: List[str] = []

    async def __call__(self, url: str, *, timeout: float = 5.0) -> UptimeResult:
        self.calls.append(url)
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_target(target_id: str = "complyflow", **overrides) -> Target:
    fields = dict(
        id=target_id,
        name=target_id.title(),
        url=f"https://{target_id}.example.com",
        client_id="novum_care",
        type="Website",
    )
    fields.update(overrides)
    return Target(**fields)


def make_result(
    target_id: str = "complyflow",
    timestamp: int = 1_700_000_000_000,
    performance: Optional[float] = 80.0,
    accessibility: Optional[float] = 90.0,
    best_practices: Optional[float] = 85.0,
    seo: Optional[float] = 92.0,
    status: str = "UP",
    opportunities: Optional[List[str]] = None,
) -> AuditResult:
    return AuditResult(
        target_id=target_id,
        client_id="novum_care",
        timestamp=timestamp,
        scores=CategoryScores(
            performance=performance, accessibility=accessibility, best_practices=best_practices, seo=seo
        ),
        uptime=UptimeResult(status=status, status_code=200 if status == "UP" else 503, latency=40),
        opportunities=opportunities or [],
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def target() -> Target:
    return make_target()


@pytest.fixture()
def store(tmp_path) -> ResultStore:
    return ResultStore(tmp_path / "reports")


@pytest.fixture()
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def probe() -> FakeProbe:
    return FakeProbe()
