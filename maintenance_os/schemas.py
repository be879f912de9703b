from __future__ import annotations

import re
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Metric keys as they appear in persisted records.
METRICS = ("performance", "accessibility", "bestPractices", "seo")

OPPORTUNITY_LABELS = {
    "performance": "Speed Optimization Service",
    "accessibility": "Accessibility Remediation",
    "seo": "SEO Audit & Fix",
}


class WireModel(BaseModel):
    """Frozen model serialized with the camelCase aliases used on disk."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Client(WireModel):
    id: str
    name: str
    tier: str = "Standard"
    email: str = ""


class Target(WireModel):
    id: str
    name: str
    url: str
    client_id: str = Field(alias="clientId")
    type: str = "Website"
    added_at: Optional[int] = Field(default=None, alias="addedAt")

    @field_validator("url")
    @classmethod
    def ensure_scheme(cls, v: str) -> str:
        u = (v or "").strip()
        if not u:
            raise ValueError("url must not be empty")
        return u if u.startswith(("http://", "https://")) else f"https://{u}"


class CategoryScores(WireModel):
    performance: Optional[float] = Field(default=None, ge=0, le=100)
    accessibility: Optional[float] = Field(default=None, ge=0, le=100)
    best_practices: Optional[float] = Field(default=None, ge=0, le=100, alias="bestPractices")
    seo: Optional[float] = Field(default=None, ge=0, le=100)

    def present(self) -> Dict[str, float]:
        """Metric key -> score for every metric that was measured."""
        values = {
            "performance": self.performance,
            "accessibility": self.accessibility,
            "bestPractices": self.best_practices,
            "seo": self.seo,
        }
        return {k: v for k, v in values.items() if v is not None}


class AuditThresholds(WireModel):
    performance: float = 90
    accessibility: float = 90
    best_practices: float = Field(default=80, alias="bestPractices")
    seo: float = 90

    def for_metric(self, metric: str) -> float:
        return self.best_practices if metric == "bestPractices" else getattr(self, metric)


class AuditOptions(WireModel):
    output_format: str = Field(default="html", alias="outputFormat")
    report_dir: str = Field(default="./reports", alias="reportDir")
    thresholds: AuditThresholds = Field(default_factory=AuditThresholds)
    save_screenshots: bool = Field(default=True, alias="saveScreenshots")


_LATENCY_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*ms\s*$")


class UptimeResult(WireModel):
    status: Literal["UP", "DOWN"]
    status_code: Optional[int] = Field(default=None, alias="statusCode")
    latency: Optional[int] = None
    error: Optional[str] = None

    @field_validator("latency", mode="before")
    @classmethod
    def parse_latency(cls, v: Any) -> Any:
        # Older artifacts store latency as "123ms".
        if isinstance(v, str):
            m = _LATENCY_RE.match(v)
            if not m:
                raise ValueError(f"unrecognised latency {v!r}")
            return int(float(m.group(1)))
        return v

    @property
    def is_up(self) -> bool:
        return self.status == "UP"


class AuditResult(WireModel):
    target_id: str = Field(alias="targetId")
    client_id: str = Field(alias="clientId")
    timestamp: int
    scores: CategoryScores
    uptime: UptimeResult
    opportunities: List[str] = Field(default_factory=list)
    screenshot: str = ""


class AuditSuccess(WireModel):
    success: Literal[True] = True
    target: str
    result: AuditResult


class AuditFailure(WireModel):
    success: Literal[False] = False
    target: str
    target_id: Optional[str] = Field(default=None, alias="targetId")
    error: str
    uptime: Optional[UptimeResult] = None


AuditOutcome = Union[AuditSuccess, AuditFailure]


class PainPointValue(WireModel):
    min: float
    max: float
    priority: Literal["critical", "high", "medium", "low"] = "medium"


class TierValue(WireModel):
    monthly: float
    annual: float


class Alert(WireModel):
    type: Literal["downtime", "painpoints", "scoreDrop", "digest"]
    target: Optional[Target] = None
    details: Any = None
