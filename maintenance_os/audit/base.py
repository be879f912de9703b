# maintenance_os/audit/base.py
"""
Audit backend contract.

A backend hands out one session per attempt through an async context
manager, so the browser process / HTTP session is released on every exit
path. The runner drives the session through navigate -> screenshot -> audit.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncContextManager, Dict, Mapping, Optional

from ..schemas import Target

# Lighthouse category ids (wire names) -> record metric keys.
LIGHTHOUSE_CATEGORIES = {
    "performance": "performance",
    "accessibility": "accessibility",
    "best-practices": "bestPractices",
    "seo": "seo",
}


@dataclass(frozen=True)
class Screenshot:
    data: bytes
    ext: str = "png"


class AuditSession(ABC):
    """One acquired audit engine, bound to a single target URL."""

    @abstractmethod
    async def navigate(self) -> None:
        """Load the page and wait for it to settle."""

    @abstractmethod
    async def capture_screenshot(self) -> Optional[Screenshot]:
        ...

    @abstractmethod
    async def run_audit(self) -> Dict[str, Optional[float]]:
        """Native 0..1 category scores keyed by record metric name."""


class AuditBackend(ABC):
    name: str = "backend"

    @abstractmethod
    def session(self, target: Target) -> AsyncContextManager[AuditSession]:
        ...


def extract_category_scores(lighthouse_result: Mapping[str, Any]) -> Dict[str, Optional[float]]:
    """Pull the four category scores (0..1, None when missing) out of a Lighthouse result."""
    categories = lighthouse_result.get("categories") or {}
    scores: Dict[str, Optional[float]] = {}
    for lh_name, metric in LIGHTHOUSE_CATEGORIES.items():
        raw = (categories.get(lh_name) or {}).get("score")
        try:
            scores[metric] = float(raw) if raw is not None else None
        except (TypeError, ValueError):
            scores[metric] = None
    return scores
