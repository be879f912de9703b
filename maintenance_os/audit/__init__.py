"""Maintenance OS audit package

Modules:
- uptime: HEAD-request uptime probe.
- runner: retrying audit orchestration for one target (probe, backend session, persist).
- base: backend/session contract shared by the audit engines.
- browser, psi: local Playwright + Lighthouse engine and the hosted PageSpeed Insights engine.
- record: the HTML artifact result store (MAINTENANCE_METADATA markers).
- grader: scoring, grading, benchmarking and trend analysis.
- recommendations: prioritized remediation items, packages and revenue estimates.
"""
__all__ = ['AuditRunner', 'ResultStore', 'analyze_metrics', 'generate_recommendations']

from .grader import analyze_metrics
from .recommendations import generate_recommendations
from .record import ResultStore
from .runner import AuditRunner
