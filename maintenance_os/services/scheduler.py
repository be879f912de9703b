# maintenance_os/services/scheduler.py
import logging
import math
import time
from typing import Any, Callable, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ..audit.runner import AuditRunner
from ..audit.uptime import check_uptime
from ..schemas import Alert, AuditOutcome, Target
from ..targets import TargetRegistry
from .history import AuditHistory
from .notifier import Notifier

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


class AuditScheduler:
    """
    Four independent cron jobs (uptime check, weekly full audit, monthly deep
    scan, daily digest) in the configured timezone. Targets are processed
    one after another inside a firing.
    """

    def __init__(
        self,
        registry: TargetRegistry,
        runner: AuditRunner,
        notifier: Notifier,
        history: AuditHistory,
        settings,
        *,
        probe: Callable = check_uptime,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.runner = runner
        self.notifier = notifier
        self.history = history
        self.settings = settings
        self._probe = probe
        self._clock = clock
        self.scheduler = AsyncIOScheduler(timezone=settings.SCHEDULER_TIMEZONE)

    # ------------------------------
    # Wiring
    # ------------------------------
    def job_specs(self) -> Dict[str, tuple]:
        s = self.settings
        return {
            "uptime_check": (self.run_uptime_check, s.UPTIME_CHECK_CRON),
            "full_audit": (self.run_full_audit, s.FULL_AUDIT_CRON),
            "monthly_deep_scan": (self.run_monthly_deep_scan, s.MONTHLY_DEEP_SCAN_CRON),
            "daily_digest": (self.send_daily_digest, s.DAILY_DIGEST_CRON),
        }

    def configure(self) -> None:
        tz = self.settings.SCHEDULER_TIMEZONE
        for job_id, (func, expr) in self.job_specs().items():
            self.scheduler.add_job(
                func,
                CronTrigger.from_crontab(expr, timezone=tz),
                id=job_id,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            logger.info("[SCHEDULER] %s: %s (%s)", job_id, expr, tz)

    def start(self) -> None:
        self.configure()
        self.scheduler.start()
        logger.info("[SCHEDULER] All tasks scheduled")

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    async def _alert(self, kind: str, target: Optional[Target] = None, details: Any = None) -> None:
        await self.notifier.send(Alert(type=kind, target=target, details=details))

    # ------------------------------
    # Jobs
    # ------------------------------
    async def run_uptime_check(self) -> List[Dict[str, Any]]:
        logger.info("[SCHEDULER] Running uptime check")
        results = []
        for target in self.registry.list():
            uptime = await self._probe(target.url, timeout=self.settings.SCHEDULER_UPTIME_TIMEOUT)
            previous = self.history.last_uptime(target.id)
            self.history.record_uptime(target.id, uptime)
            results.append({"targetId": target.id, "name": target.name, **uptime.to_wire()})
            logger.info("[SCHEDULER] %s: %s (%sms)", target.name, uptime.status, uptime.latency)

            flipped_down = not uptime.is_up and (previous is None or previous.is_up)
            if flipped_down and self.settings.ALERT_ON_DOWNTIME:
                details = {"statusCode": uptime.status_code, "latency": uptime.latency, "error": uptime.error}
                await self._alert("downtime", target, {k: v for k, v in details.items() if v is not None})
        return results

    async def run_full_audit(self) -> List[AuditOutcome]:
        logger.info("[SCHEDULER] Running full audit")
        outcomes = []
        pain_points = []
        for target in self.registry.list():
            outcome = await self.runner.run(target)
            outcomes.append(outcome)
            if not outcome.success:
                logger.error("[SCHEDULER] Audit failed for %s: %s", target.name, outcome.error)
                continue

            result = outcome.result
            previous = self.history.previous(target.id)
            self.history.record(result)
            if result.opportunities:
                pain_points.append({"target": target.name, "opportunities": list(result.opportunities)})
            await self._check_score_drop(target, previous, result)

        if pain_points and self.settings.ALERT_ON_PAINPOINTS:
            await self._alert("painpoints", details=pain_points)
        logger.info("[SCHEDULER] Full audit complete (%d targets)", len(outcomes))
        return outcomes

    async def _check_score_drop(self, target: Target, previous, current) -> None:
        if previous is None or not self.settings.ALERT_ON_SCORE_DROP:
            return
        before = previous.scores.performance
        after = current.scores.performance
        if before is None or after is None:
            return
        drop = before - after
        if drop >= self.settings.SCORE_DROP_THRESHOLD:
            await self._alert(
                "scoreDrop", target, {"previous": before, "current": after, "drop": round(drop, 1)}
            )

    def digest(self) -> Dict[str, Any]:
        recent = self.history.since(int(self._clock() * 1000) - DAY_MS)
        audits = len(recent)
        avg = sum(r.scores.performance or 0 for r in recent) / audits if audits else 0
        return {
            "sitesMonitored": len(self.registry.list()),
            "auditsPerformed": audits,
            "avgPerformance": int(math.floor(avg + 0.5)),
            "issuesDetected": sum(1 for r in recent if not r.uptime.is_up),
        }

    async def send_daily_digest(self) -> Dict[str, Any]:
        summary = self.digest()
        if self.settings.ALERT_DAILY_DIGEST:
            await self._alert("digest", details=summary)
            logger.info("[SCHEDULER] Daily digest sent")
        return summary

    async def run_monthly_deep_scan(self) -> List[AuditOutcome]:
        logger.info("[SCHEDULER] Running monthly deep scan")
        outcomes = await self.run_full_audit()
        await self.send_daily_digest()
        return outcomes
