# maintenance_os/main.py
"""
Composition root.

Builds the registry, store, backend, runner, history, notifier and scheduler
once at startup and keeps them on `app.state` for the lifetime of the
process.
"""
import contextlib
import logging
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .api.router import router
from .audit.base import AuditBackend
from .audit.record import ResultStore
from .audit.runner import AuditRunner, build_backend
from .audit.uptime import check_uptime
from .services.history import AuditHistory
from .services.logger import configure_logging
from .services.notifier import build_notifier
from .services.scheduler import AuditScheduler
from .settings import Settings, get_settings
from .targets import TargetRegistry

logger = logging.getLogger(__name__)


def build_runner(
    settings: Settings,
    store: ResultStore,
    backend: Optional[AuditBackend] = None,
    probe: Callable = check_uptime,
) -> AuditRunner:
    return AuditRunner(
        backend or build_backend(settings),
        store,
        settings.audit_options(),
        probe=probe,
        max_attempts=settings.AUDIT_MAX_ATTEMPTS,
        retry_delay=settings.AUDIT_RETRY_DELAY,
        uptime_timeout=settings.UPTIME_TIMEOUT,
    )


def create_app(
    settings: Optional[Settings] = None,
    backend: Optional[AuditBackend] = None,
    probe: Callable = check_uptime,
) -> FastAPI:
    settings = settings or get_settings()
    report_dir = Path(settings.REPORT_DIR)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings.LOG_LEVEL)
        store = ResultStore(report_dir)
        registry = TargetRegistry(settings.TARGETS, settings.CLIENTS, settings.DATA_FILE)
        audit_runner = build_runner(settings, store, backend, probe)
        history = AuditHistory(limit=settings.HISTORY_LIMIT)
        scheduler = AuditScheduler(
            registry, audit_runner, build_notifier(settings), history, settings, probe=probe
        )

        app.state.settings = settings
        app.state.store = store
        app.state.registry = registry
        app.state.runner = audit_runner
        app.state.history = history
        app.state.scheduler = scheduler

        logger.info("%s starting (backend=%s)", settings.APP_NAME, audit_runner.backend.name)
        if settings.SCHEDULER_ENABLED:
            scheduler.start()
        else:
            logger.warning("[SCHEDULER] Scheduler is disabled in settings")
        try:
            yield
        finally:
            scheduler.shutdown()

    app = FastAPI(title=settings.APP_NAME, version="1.0.0", lifespan=lifespan)
    app.include_router(router)
    app.mount("/reports", StaticFiles(directory=str(report_dir), check_dir=False), name="reports")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("maintenance_os.main:app", host="0.0.0.0", port=3030)
