# maintenance_os/audit/grader.py
"""
Scoring & trend analysis.

`analyze_metrics` turns one set of category scores (0..100) plus prior
records into a graded, benchmarked, trend-annotated Analysis:

- per-metric status (critical / warning / good) and letter grade from the
  metric's own bands, percentile against industry benchmarks, and a trend
  against the mean of the five most recent historical values;
- an overall weighted score and grade, where metrics absent from the input
  drop out of both numerator and denominator;
- risk and opportunity scores plus plain-text insights for the report.

The function is pure: identical inputs always give identical output.
"""

from __future__ import annotations

import math
from typing import Dict, List, Literal, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from ..schemas import METRICS, AuditResult, CategoryScores, WireModel

Status = Literal["good", "warning", "critical"]
Grade = Literal["A+", "A", "B", "C", "D", "F"]
Trend = Literal["improving", "stable", "declining"]

TREND_WINDOW = 5
TREND_MIN_VALUES = 2
TREND_DEADBAND = 2.0


# ------------------------------
# Threshold table
# ------------------------------
class Benchmark(WireModel):
    average: float
    top25: float
    top10: float


class MetricThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    critical: float
    warning: float
    good: float
    weight: float
    industry: Benchmark


# A score equal to `critical` is critical (see metric_status).
THRESHOLDS: Dict[str, MetricThresholds] = {
    "performance": MetricThresholds(
        critical=50, warning=75, good=90, weight=0.35, industry=Benchmark(average=65, top25=85, top10=95)
    ),
    "accessibility": MetricThresholds(
        critical=60, warning=80, good=90, weight=0.25, industry=Benchmark(average=72, top25=88, top10=96)
    ),
    "seo": MetricThresholds(
        critical=50, warning=75, good=90, weight=0.25, industry=Benchmark(average=68, top25=82, top10=92)
    ),
    "bestPractices": MetricThresholds(
        critical=50, warning=70, good=85, weight=0.15, industry=Benchmark(average=70, top25=85, top10=92)
    ),
}

METRIC_LABELS = {
    "performance": "Performance",
    "accessibility": "Accessibility",
    "seo": "SEO",
    "bestPractices": "Best Practices",
}

METRIC_DESCRIPTIONS = {
    "performance": "Page load speed, interactivity, and visual stability",
    "accessibility": "Usability for people with disabilities and assistive technologies",
    "seo": "Search engine visibility and organic traffic potential",
    "bestPractices": "Modern web standards, security, and reliability",
}

METRIC_IMPACTS = {
    "performance": {
        "business": "Every 1-second delay reduces conversions by 7%",
        "user": "Users expect pages to load in under 3 seconds",
        "seo": "Core Web Vitals directly affect Google rankings",
    },
    "accessibility": {
        "business": "15-20% of users have some form of disability",
        "user": "Improves usability for all users, not just those with disabilities",
        "legal": "Accessibility lawsuits increased 200%+ in recent years",
    },
    "seo": {
        "business": "Organic search drives 53% of all website traffic",
        "user": "Better SEO means users can find your services",
        "revenue": "Top 3 Google results get 75% of all clicks",
    },
    "bestPractices": {
        "business": "Reduces maintenance costs and security risks",
        "user": "Modern features and consistent experience",
        "security": "Protects against common vulnerabilities",
    },
}


# ------------------------------
# Output models
# ------------------------------
class MetricAnalysis(WireModel):
    score: float
    status: Status
    grade: Grade
    label: str
    description: str
    impact: Dict[str, str]
    percentile: int
    vs_industry: str = Field(alias="vsIndustry")
    benchmark: Benchmark
    trend: Trend
    trend_value: float = Field(alias="trendValue")
    improvement_potential: float = Field(alias="improvementPotential")


class Finding(WireModel):
    metric: str
    score: float
    message: str
    impact: Optional[Dict[str, str]] = None
    urgency: Optional[str] = None
    competitive: Optional[str] = None


class Insight(WireModel):
    type: Literal["opportunity", "risk", "strength"]
    title: str
    message: str


class IndustryComparison(WireModel):
    current: int
    average: float
    top25: float
    top10: float
    gap: int


class Analysis(WireModel):
    overall: Status = "good"
    overall_score: float = Field(default=0.0, alias="overallScore")
    overall_grade: Grade = Field(default="F", alias="overallGrade")
    metrics: Dict[str, MetricAnalysis] = Field(default_factory=dict)
    critical_issues: List[Finding] = Field(default_factory=list, alias="criticalIssues")
    warnings: List[Finding] = Field(default_factory=list)
    strengths: List[Finding] = Field(default_factory=list)
    insights: List[Insight] = Field(default_factory=list)
    industry_benchmarks: Dict[str, IndustryComparison] = Field(default_factory=dict, alias="industryBenchmarks")
    executive_summary: str = Field(default="", alias="executiveSummary")
    risk_score: int = Field(default=0, alias="riskScore")
    opportunity_score: float = Field(default=0.0, alias="opportunityScore")

    def status_of(self, metric: str) -> Optional[str]:
        m = self.metrics.get(metric)
        return m.status if m else None


# ------------------------------
# Scoring primitives
# ------------------------------
def round_half_up(value: float, digits: int = 0) -> float:
    """Round .5 away from the floor (Python's round() is banker's rounding)."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def metric_status(metric: str, score: float) -> Status:
    # A score sitting exactly on the critical bound is critical.
    t = THRESHOLDS[metric]
    if score <= t.critical:
        return "critical"
    if score < t.warning:
        return "warning"
    return "good"


def metric_grade(metric: str, score: float) -> Grade:
    t = THRESHOLDS[metric]
    status = metric_status(metric, score)
    if status == "critical":
        return "F"
    if status == "warning":
        return "D" if score < 60 else "C"
    if score >= t.good:
        return "A+" if score >= 95 else "A"
    return "B"


def overall_grade(score: float) -> Grade:
    if score >= 95:
        return "A+"
    if score >= 90:
        return "A"
    if score >= 80:
        return "B"
    if score >= 70:
        return "C"
    if score >= 60:
        return "D"
    return "F"


def percentile_for(metric: str, score: float) -> tuple:
    bench = THRESHOLDS[metric].industry
    if score >= bench.top10:
        return 90, "Top 10% of industry"
    if score >= bench.top25:
        return 75, "Top 25% of industry"
    if score >= bench.average:
        return 50, "At industry average"
    return int(round_half_up(score / bench.average * 50)), "Below industry average"


def weighted_overall(scores: Mapping[str, float]) -> float:
    """Σ(score×w) / Σ(w) over the metrics actually present; 0.0 when none are."""
    total_weight = sum(THRESHOLDS[k].weight for k in scores if k in THRESHOLDS)
    if not total_weight:
        return 0.0
    weighted = sum(v * THRESHOLDS[k].weight for k, v in scores.items() if k in THRESHOLDS)
    return round_half_up(weighted / total_weight, 1)


ScoresLike = Union[CategoryScores, Mapping[str, Optional[float]]]
HistoryLike = Sequence[Union[AuditResult, CategoryScores, Mapping[str, Optional[float]]]]


def _as_mapping(scores: ScoresLike) -> Dict[str, float]:
    if isinstance(scores, AuditResult):
        scores = scores.scores
    if isinstance(scores, CategoryScores):
        return scores.present()
    return {k: float(v) for k, v in scores.items() if k in THRESHOLDS and v is not None}


def compute_trend(metric: str, value: float, history: HistoryLike) -> tuple:
    """
    Compare `value` with the mean of the most recent TREND_WINDOW historical
    values for `metric`. History is newest first.
    """
    recent = [
        s[metric] for s in (_as_mapping(h) for h in history[:TREND_WINDOW]) if metric in s
    ]
    if len(recent) < TREND_MIN_VALUES:
        return "stable", 0.0
    delta = value - sum(recent) / len(recent)
    if delta > TREND_DEADBAND:
        trend = "improving"
    elif delta < -TREND_DEADBAND:
        trend = "declining"
    else:
        trend = "stable"
    return trend, round_half_up(delta, 1)


# ------------------------------
# Analysis
# ------------------------------
def analyze_metrics(scores: ScoresLike, history: HistoryLike = ()) -> Analysis:
    current = _as_mapping(scores)
    history = list(history)

    metrics: Dict[str, MetricAnalysis] = {}
    critical: List[Finding] = []
    warnings: List[Finding] = []
    strengths: List[Finding] = []
    benchmarks: Dict[str, IndustryComparison] = {}

    for key in METRICS:
        if key not in current:
            continue
        value = current[key]
        t = THRESHOLDS[key]
        label = METRIC_LABELS[key]
        status = metric_status(key, value)
        grade = metric_grade(key, value)
        percentile, vs_industry = percentile_for(key, value)
        shown = int(round_half_up(value))

        if status == "critical":
            critical.append(Finding(
                metric=label, score=value, impact=METRIC_IMPACTS[key],
                message=f"{label} is critically low at {shown}%",
                urgency="Immediate action required",
            ))
        elif status == "warning":
            warnings.append(Finding(
                metric=label, score=value, impact=METRIC_IMPACTS[key],
                message=f"{label} needs improvement ({shown}%)",
                urgency="Should be addressed within 2-4 weeks",
            ))
        elif value >= t.good:
            strengths.append(Finding(
                metric=label, score=value, competitive=vs_industry,
                message=f"{label} is excellent ({shown}%)",
            ))

        trend, trend_value = compute_trend(key, value, history)
        metrics[key] = MetricAnalysis(
            score=round_half_up(value, 1),
            status=status,
            grade=grade,
            label=label,
            description=METRIC_DESCRIPTIONS[key],
            impact=METRIC_IMPACTS[key],
            percentile=percentile,
            vs_industry=vs_industry,
            benchmark=t.industry,
            trend=trend,
            trend_value=trend_value,
            improvement_potential=max(0.0, 100 - value),
        )
        benchmarks[key] = IndustryComparison(
            current=shown,
            average=t.industry.average,
            top25=t.industry.top25,
            top10=t.industry.top10,
            gap=int(round_half_up(t.industry.top25 - value)),
        )

    if critical:
        overall = "critical"
    elif warnings:
        overall = "warning"
    else:
        overall = "good"

    overall_score = weighted_overall(current)
    opportunity_score = round_half_up(
        sum((100 - v) * THRESHOLDS[k].weight for k, v in current.items()), 2
    )

    return Analysis(
        overall=overall,
        overall_score=overall_score,
        overall_grade=overall_grade(overall_score),
        metrics=metrics,
        critical_issues=critical,
        warnings=warnings,
        strengths=strengths,
        insights=build_insights(current),
        industry_benchmarks=benchmarks,
        executive_summary=executive_summary(overall, critical, warnings, strengths),
        risk_score=30 * len(critical) + 15 * len(warnings),
        opportunity_score=opportunity_score,
    )


def build_insights(scores: Mapping[str, float]) -> List[Insight]:
    perf = scores.get("performance")
    a11y = scores.get("accessibility")
    seo = scores.get("seo")
    insights = []
    if perf is not None and seo is not None and perf < 70 and seo > 80:
        insights.append(Insight(
            type="opportunity",
            title="SEO investment at risk",
            message="Good SEO is being undermined by poor performance. Users finding your site "
                    "through search may leave due to slow loading.",
        ))
    if a11y is not None and a11y < 80:
        insights.append(Insight(
            type="risk",
            title="Accessibility compliance gap",
            message="Low accessibility scores may expose the business to legal risk and exclude "
                    "15-20% of potential users.",
        ))
    if None not in (perf, a11y, seo) and perf > 90 and a11y > 90 and seo > 90:
        insights.append(Insight(
            type="strength",
            title="Competitive advantage",
            message="Scores across all metrics are in the top percentile. This provides a "
                    "significant competitive advantage.",
        ))
    return insights


def executive_summary(
    overall: str, critical: Sequence[Finding], warnings: Sequence[Finding], strengths: Sequence[Finding]
) -> str:
    if overall == "critical":
        parts = [
            f"Urgent attention required: {len(critical)} critical issue(s) detected that may be "
            f"impacting user experience and business outcomes."
        ]
    elif overall == "warning":
        parts = [f"Room for improvement: {len(warnings)} area(s) identified that could benefit from optimization."]
    else:
        parts = ["Healthy status: the website is performing well across all key metrics."]
    if strengths:
        parts.append(f"Strengths: {', '.join(s.metric for s in strengths)}.")
    return " ".join(parts)
