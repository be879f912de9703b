# maintenance_os/audit/runner.py
import asyncio
import enum
import logging
import time
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Optional

from ..errors import AuditBackendError, PersistenceFailure
from ..schemas import (
    OPPORTUNITY_LABELS,
    AuditFailure,
    AuditOptions,
    AuditOutcome,
    AuditResult,
    AuditSuccess,
    AuditThresholds,
    CategoryScores,
    Target,
    UptimeResult,
)
from .base import AuditBackend
from .record import ResultStore
from .uptime import check_uptime

logger = logging.getLogger(__name__)

Probe = Callable[..., Awaitable[UptimeResult]]
Sleep = Callable[[float], Awaitable[None]]


# ============================================================
# Pure helpers
# ============================================================

def to_percent(native: Optional[float]) -> float:
    """Native 0..1 score -> 0..100, clamped. Missing categories count as 0."""
    if native is None:
        return 0.0
    return round(min(max(float(native), 0.0), 1.0) * 100, 2)


def derive_opportunities(scores: CategoryScores, thresholds: AuditThresholds) -> List[str]:
    """One sales label per metric that fell strictly below its threshold."""
    present = scores.present()
    opportunities = []
    for metric, label in OPPORTUNITY_LABELS.items():
        value = present.get(metric)
        if value is not None and value < thresholds.for_metric(metric):
            opportunities.append(label)
    return opportunities


def _describe(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class AuditState(str, enum.Enum):
    IDLE = "IDLE"
    PROBING = "PROBING"
    ACQUIRING = "ACQUIRING"
    NAVIGATING = "NAVIGATING"
    AUDITING = "AUDITING"
    PERSISTING = "PERSISTING"
    DONE = "DONE"
    FAILED = "FAILED"


# ============================================================
# Runner
# ============================================================

class AuditRunner:
    """
    Probe -> acquire -> navigate -> screenshot -> audit -> persist, for one
    target at a time. Backend failures are retried (max_attempts in total,
    retry_delay seconds between attempts). Runs for the same target are
    serialized; different targets may run concurrently.
    """

    def __init__(
        self,
        backend: AuditBackend,
        store: ResultStore,
        options: Optional[AuditOptions] = None,
        *,
        probe: Probe = check_uptime,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.time,
        max_attempts: int = 2,
        retry_delay: float = 2.0,
        uptime_timeout: float = 5.0,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.backend = backend
        self.store = store
        self.options = options or AuditOptions()
        self._probe = probe
        self._sleep = sleep
        self._clock = clock
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.uptime_timeout = uptime_timeout
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._states: Dict[str, AuditState] = {}
        self._last_ts = 0

    def state(self, target_id: str) -> AuditState:
        return self._states.get(target_id, AuditState.IDLE)

    def _set_state(self, target: Target, state: AuditState) -> None:
        self._states[target.id] = state
        logger.debug("[RUNNER] %s -> %s", target.id, state.value)

    def _next_timestamp(self) -> int:
        # Epoch ms, strictly increasing within this process.
        now = int(self._clock() * 1000)
        self._last_ts = max(now, self._last_ts + 1)
        return self._last_ts

    async def run(self, target: Target) -> AuditOutcome:
        async with self._locks[target.id]:
            outcome = await self._run_locked(target)
        self._set_state(target, AuditState.DONE if outcome.success else AuditState.FAILED)
        return outcome

    async def run_many(self, targets: List[Target]) -> List[AuditOutcome]:
        """Sequential full audit; one failure never stops the batch."""
        outcomes = []
        for target in targets:
            outcomes.append(await self.run(target))
        return outcomes

    async def _run_locked(self, target: Target) -> AuditOutcome:
        logger.info("[RUNNER] Auditing %s (%s) via %s", target.name, target.url, self.backend.name)

        self._set_state(target, AuditState.PROBING)
        uptime = await self._probe(target.url, timeout=self.uptime_timeout)
        timestamp = self._next_timestamp()

        last_error = "audit did not run"
        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                await self._sleep(self.retry_delay)
            try:
                result = await self._attempt(target, uptime, timestamp)
            except AuditBackendError as e:
                last_error = _describe(e)
                logger.warning(
                    "[RUNNER] Attempt %d/%d failed for %s: %s", attempt, self.max_attempts, target.id, last_error
                )
                continue
            except Exception as e:
                last_error = _describe(e)
                logger.exception("[RUNNER] Attempt %d/%d crashed for %s", attempt, self.max_attempts, target.id)
                continue

            self._set_state(target, AuditState.PERSISTING)
            try:
                self.store.append(result, self.options.output_format)
            except PersistenceFailure as e:
                logger.error("[RUNNER] %s", e)
                return AuditFailure(target=target.name, target_id=target.id, error=_describe(e), uptime=uptime)
            logger.info("[RUNNER] Completed %s: %s", target.id, result.scores.present())
            return AuditSuccess(target=target.name, result=result)

        logger.error("[RUNNER] All %d attempts failed for %s: %s", self.max_attempts, target.id, last_error)
        return AuditFailure(target=target.name, target_id=target.id, error=last_error, uptime=uptime)

    async def _attempt(self, target: Target, uptime: UptimeResult, timestamp: int) -> AuditResult:
        self._set_state(target, AuditState.ACQUIRING)
        async with self.backend.session(target) as session:
            self._set_state(target, AuditState.NAVIGATING)
            await session.navigate()

            screenshot = ""
            if self.options.save_screenshots:
                shot = await session.capture_screenshot()
                if shot is not None:
                    screenshot = self.store.save_screenshot(target.id, timestamp, shot)

            self._set_state(target, AuditState.AUDITING)
            native = await session.run_audit()

        scores = CategoryScores(
            performance=to_percent(native.get("performance")),
            accessibility=to_percent(native.get("accessibility")),
            best_practices=to_percent(native.get("bestPractices")),
            seo=to_percent(native.get("seo")),
        )
        return AuditResult(
            target_id=target.id,
            client_id=target.client_id,
            timestamp=timestamp,
            scores=scores,
            uptime=uptime,
            opportunities=derive_opportunities(scores, self.options.thresholds),
            screenshot=screenshot,
        )


def build_backend(settings) -> AuditBackend:
    """Pick the audit backend named by settings (PSI on read-only hosts)."""
    if settings.effective_backend == "psi":
        from .psi import PageSpeedBackend

        return PageSpeedBackend(
            api_key=settings.PSI_API_KEY, strategy=settings.PSI_STRATEGY, timeout=settings.PSI_TIMEOUT
        )
    from .browser import BrowserBackend

    return BrowserBackend(
        navigation_timeout=settings.NAVIGATION_TIMEOUT,
        lighthouse_bin=settings.LIGHTHOUSE_BIN,
        lighthouse_timeout=settings.LIGHTHOUSE_TIMEOUT,
    )
