# maintenance_os/settings.py
import os
import logging
from functools import lru_cache
from typing import Dict, List

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .schemas import AuditOptions, AuditThresholds, Client, PainPointValue, Target, TierValue

logger = logging.getLogger(__name__)


def _default_clients() -> List[Client]:
    return [
        Client(id="novum_care", name="Novum Care Group", tier="Premium", email="admin@novumcare.example.com"),
        Client(id="abner_health", name="Abner Health Services", tier="Standard", email="contact@abnerhealth.example.com"),
    ]


def _default_targets() -> List[Target]:
    return [
        Target(id="complyflow", name="ComplyFlow", url="https://comply-flow.vercel.app",
               client_id="novum_care", type="Compliance Portal"),
        Target(id="novumflow", name="NovumFlow", url="https://hr-recruitment-platform.vercel.app/login",
               client_id="novum_care", type="HR Recruitment"),
        Target(id="careflow", name="CareFlow AI", url="https://careflow-ai.vercel.app",
               client_id="novum_care", type="Operation Dashboard"),
        Target(id="abnercare", name="Abner Care", url="https://abnercare.co.uk/",
               client_id="abner_health", type="Public Website"),
    ]


def _default_pain_points() -> Dict[str, PainPointValue]:
    return {
        "Speed Optimization Service": PainPointValue(min=500, max=1500, priority="high"),
        "Accessibility Remediation": PainPointValue(min=800, max=2500, priority="critical"),
        "SEO Audit & Fix": PainPointValue(min=400, max=1200, priority="medium"),
        "Hosting Migration/Stability Upgrade": PainPointValue(min=1000, max=3000, priority="high"),
        "Security Hardening": PainPointValue(min=1500, max=5000, priority="critical"),
        "Mobile Optimization": PainPointValue(min=600, max=1800, priority="medium"),
    }


def _default_tiers() -> Dict[str, TierValue]:
    return {
        "Standard": TierValue(monthly=199, annual=1990),
        "Premium": TierValue(monthly=699, annual=6990),
        "Enterprise": TierValue(monthly=1500, annual=15000),
    }


class Settings(BaseSettings):
    """
    Maintenance OS settings.
    Automatically loaded from environment variables (and `.env`); list and
    mapping fields accept JSON.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "Maintenance OS"
    LOG_LEVEL: str = "INFO"

    # ── STORAGE ──────────────────────────────────────────────────────────────
    REPORT_DIR: str = "./reports"
    DATA_FILE: str = "./data.json"
    READ_ONLY_FS: bool = False

    # ── AUDIT ENGINE ─────────────────────────────────────────────────────────
    AUDIT_BACKEND: str = Field(default="browser", description="'browser' (Playwright + Lighthouse) or 'psi'")
    AUDIT_OUTPUT_FORMAT: str = "html"
    AUDIT_THRESHOLDS: AuditThresholds = Field(default_factory=AuditThresholds)
    AUDIT_MAX_ATTEMPTS: int = 2
    AUDIT_RETRY_DELAY: float = 2.0
    UPTIME_TIMEOUT: float = 5.0
    NAVIGATION_TIMEOUT: float = 30.0
    LIGHTHOUSE_BIN: str = "lighthouse"
    LIGHTHOUSE_TIMEOUT: float = 120.0
    PSI_API_KEY: str = Field(default="", validation_alias=AliasChoices("PSI_API_KEY", "GOOGLE_API_KEY"))
    PSI_STRATEGY: str = "desktop"
    PSI_TIMEOUT: float = 60.0

    # ── SCHEDULER ────────────────────────────────────────────────────────────
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "Europe/London"
    UPTIME_CHECK_CRON: str = "0 */4 * * *"
    FULL_AUDIT_CRON: str = "0 3 * * 1"
    MONTHLY_DEEP_SCAN_CRON: str = "0 2 1 * *"
    DAILY_DIGEST_CRON: str = "0 9 * * *"
    SCHEDULER_UPTIME_TIMEOUT: float = 10.0
    HISTORY_LIMIT: int = 100
    SCORE_DROP_THRESHOLD: float = 10.0

    # ── ALERTS / EMAIL ───────────────────────────────────────────────────────
    EMAIL_ENABLED: bool = False
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = Field(default="", validation_alias=AliasChoices("SMTP_USERNAME", "SMTP_USER"))
    SMTP_PASSWORD: str = Field(default="", validation_alias=AliasChoices("SMTP_PASSWORD", "SMTP_PASS"))
    EMAIL_FROM: str = "maintenance@yourdomain.com"
    ADMIN_EMAIL: str = "admin@yourdomain.com"
    ALERT_ON_DOWNTIME: bool = True
    ALERT_ON_SCORE_DROP: bool = True
    ALERT_ON_PAINPOINTS: bool = True
    ALERT_DAILY_DIGEST: bool = True

    # ── CLIENTS, TARGETS & REVENUE ───────────────────────────────────────────
    CLIENTS: List[Client] = Field(default_factory=_default_clients)
    TARGETS: List[Target] = Field(default_factory=_default_targets)
    PAIN_POINT_VALUES: Dict[str, PainPointValue] = Field(default_factory=_default_pain_points)
    TIER_VALUES: Dict[str, TierValue] = Field(default_factory=_default_tiers)

    @field_validator("AUDIT_BACKEND")
    @classmethod
    def normalize_backend(cls, v: str) -> str:
        backend = (v or "").strip().lower()
        if backend not in ("browser", "psi"):
            raise ValueError(f"AUDIT_BACKEND must be 'browser' or 'psi', got {v!r}")
        return backend

    @field_validator("AUDIT_MAX_ATTEMPTS")
    @classmethod
    def at_least_one_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError("AUDIT_MAX_ATTEMPTS must be >= 1")
        return v

    @property
    def read_only(self) -> bool:
        """
        True on read-only deployments (e.g. Vercel) where neither a local
        browser nor screenshot files are available.
        """
        return self.READ_ONLY_FS or bool(os.getenv("VERCEL"))

    @property
    def effective_backend(self) -> str:
        if self.AUDIT_BACKEND == "browser" and self.read_only:
            logger.warning("Read-only environment detected; using the hosted PSI backend.")
            return "psi"
        return self.AUDIT_BACKEND

    def audit_options(self) -> AuditOptions:
        return AuditOptions(
            output_format=self.AUDIT_OUTPUT_FORMAT,
            report_dir=self.REPORT_DIR,
            thresholds=self.AUDIT_THRESHOLDS,
            save_screenshots=not self.read_only,
        )


# Cached singleton to avoid repeated instantiation
@lru_cache()
def get_settings() -> Settings:
    return Settings()
