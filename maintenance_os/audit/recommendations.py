# maintenance_os/audit/recommendations.py
"""
Recommendation generator.

Maps scored deficiencies to prioritized remediation items with cost and ROI
estimates, then groups them into cumulative packages
(Emergency Fix ⊆ Foundation Package ⊆ Complete Optimization).
Tier boundaries are the analyzer's per-metric thresholds.
"""
from __future__ import annotations

import math
import re
from typing import Dict, Iterable, List, Literal, Mapping, Optional, Sequence

from pydantic import Field

from ..schemas import AuditResult, CategoryScores, PainPointValue, WireModel
from .grader import THRESHOLDS, Analysis, analyze_metrics, metric_status

Priority = Literal["critical", "high", "medium", "low"]

PRIORITY_RANK = {"critical": 0, "high": 1, "medium": 2, "low": 3}

IMPACT_MULTIPLIERS = {
    "conversion": 0.07,
    "traffic": 0.25,
    "retention": 0.15,
    "seo": 0.20,
}

DEFAULT_PAIN_POINT = PainPointValue(min=400, max=1000, priority="medium")
DEFAULT_REVENUE_VALUE = PainPointValue(min=500, max=1000, priority="medium")


# ------------------------------
# Models
# ------------------------------
class CostRange(WireModel):
    min: float = 0
    max: float = 0

    def __add__(self, other: "CostRange") -> "CostRange":
        return CostRange(min=self.min + other.min, max=self.max + other.max)


class Action(WireModel):
    task: str
    effort: str
    time: str


class ROI(WireModel):
    estimated: int
    payback_period: str = Field(alias="paybackPeriod")
    confidence: Literal["High", "Medium", "Low"]


class Recommendation(WireModel):
    id: str
    priority: Priority
    category: str
    title: str
    subtitle: str = ""
    description: str = ""
    actions: List[Action] = Field(default_factory=list)
    current_score: Optional[int] = Field(default=None, alias="currentScore")
    target_score: Optional[int] = Field(default=None, alias="targetScore")
    estimated_impact: str = Field(default="", alias="estimatedImpact")
    timeline: str = ""
    cost: CostRange
    roi: Optional[ROI] = None


class QuickWin(WireModel):
    title: str
    impact: str
    time: str
    actions: List[str] = Field(default_factory=list)


class Package(WireModel):
    name: str
    description: str
    recommendations: List[str]
    cost: CostRange
    timeline: str
    priority: str


class RecommendationSummary(WireModel):
    total_recommendations: int = Field(alias="totalRecommendations")
    critical_count: int = Field(alias="criticalCount")
    high_count: int = Field(alias="highCount")
    medium_count: int = Field(alias="mediumCount")
    total_cost: CostRange = Field(alias="totalCost")
    estimated_timeline: str = Field(alias="estimatedTimeline")


class RecommendationSet(WireModel):
    recommendations: List[Recommendation]
    quick_wins: List[QuickWin] = Field(alias="quickWins")
    packages: List[Package]
    summary: RecommendationSummary


# ------------------------------
# ROI
# ------------------------------
def calculate_roi(cost: CostRange, impact_type: str, score: float) -> ROI:
    gain = (100 - score) * IMPACT_MULTIPLIERS[impact_type] * 100
    if cost.max > 0 and gain > 0:
        payback = f"{math.ceil(cost.max / (gain * 10))} months"
    else:
        payback = "Immediate"
    if score < 50:
        confidence = "High"
    elif score < 75:
        confidence = "Medium"
    else:
        confidence = "Low"
    return ROI(estimated=int(math.floor(gain + 0.5)), payback_period=payback, confidence=confidence)


def _slug(label: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", label.lower()).strip("-")


def _whole(score: float) -> int:
    return int(math.floor(score + 0.5))


# ------------------------------
# Per-metric tiers
# ------------------------------
def _performance(score: float, status: str, recs: List[Recommendation], wins: List[QuickWin]) -> None:
    if status == "critical":
        cost = CostRange(min=1200, max=3500)
        recs.append(Recommendation(
            id="perf-critical",
            priority="critical",
            category="Performance",
            title="Critical Speed Optimization Required",
            subtitle="Severe impact on user experience and conversions",
            description="Your site loads very slowly, causing users to leave before content appears. "
                        "A 1-second delay in page load time reduces conversions by 7% and page views by 11%.",
            actions=[
                Action(task="Enable GZIP compression on server", effort="Low", time="1 hour"),
                Action(task="Convert images to WebP format with fallbacks", effort="Medium", time="2-4 hours"),
                Action(task="Implement lazy loading for below-fold images", effort="Low", time="1-2 hours"),
                Action(task="Minimize and defer render-blocking JavaScript", effort="High", time="4-8 hours"),
                Action(task="Implement CDN for static assets", effort="Medium", time="2-4 hours"),
                Action(task="Enable browser caching headers", effort="Low", time="1 hour"),
                Action(task="Consider Server-Side Rendering or Static Generation", effort="High", time="1-2 weeks"),
            ],
            current_score=_whole(score),
            target_score=85,
            estimated_impact="Could improve load time by 50-70% and increase conversions by 15-25%",
            timeline="2-4 weeks for full implementation",
            cost=cost,
            roi=calculate_roi(cost, "conversion", score),
        ))
        wins.append(QuickWin(title="Enable compression", impact="+10-15 points", time="1 hour"))
    elif status == "warning":
        cost = CostRange(min=600, max=1800)
        recs.append(Recommendation(
            id="perf-warning",
            priority="high",
            category="Performance",
            title="Performance Optimization Needed",
            subtitle="Impacting user experience and SEO rankings",
            description="Page speed is below optimal, affecting user experience and search engine rankings. "
                        "Google uses Core Web Vitals as a ranking factor.",
            actions=[
                Action(task="Optimize and compress images", effort="Medium", time="2-3 hours"),
                Action(task="Remove unused JavaScript and CSS", effort="Medium", time="3-5 hours"),
                Action(task="Implement browser caching", effort="Low", time="1 hour"),
                Action(task="Optimize web fonts loading", effort="Low", time="1-2 hours"),
            ],
            current_score=_whole(score),
            target_score=90,
            estimated_impact="Could improve load time by 30-50%",
            timeline="1-2 weeks",
            cost=cost,
            roi=calculate_roi(cost, "conversion", score),
        ))
    elif score < THRESHOLDS["performance"].good:
        wins.append(QuickWin(
            title="Fine-tune performance",
            impact="+5-10 points",
            time="2-4 hours",
            actions=["Optimize third-party scripts", "Preload critical resources"],
        ))


def _accessibility(score: float, recs: List[Recommendation]) -> None:
    t = THRESHOLDS["accessibility"]
    if score < t.warning:
        cost = CostRange(min=800, max=2500)
        recs.append(Recommendation(
            id="a11y-critical",
            priority="high",
            category="Accessibility",
            title="Accessibility Compliance Required",
            subtitle="Legal risk and excluding 15-20% of users",
            description="Your site has significant accessibility barriers that may exclude users with "
                        "disabilities. This creates legal risk under the Equality Act 2010 and WCAG guidelines.",
            actions=[
                Action(task="Add descriptive alt text to all images", effort="Medium", time="2-4 hours"),
                Action(task="Ensure proper heading hierarchy (H1 > H2 > H3)", effort="Low", time="1-2 hours"),
                Action(task="Fix color contrast ratios to 4.5:1 minimum", effort="Medium", time="2-3 hours"),
                Action(task="Add ARIA labels to interactive elements", effort="Medium", time="3-5 hours"),
                Action(task="Ensure full keyboard navigation support", effort="High", time="4-8 hours"),
                Action(task="Add skip navigation links", effort="Low", time="30 mins"),
                Action(task="Ensure form labels are properly associated", effort="Low", time="1-2 hours"),
            ],
            current_score=_whole(score),
            target_score=95,
            estimated_impact="Opens site to 15-20% more users and reduces legal risk",
            timeline="1-2 weeks",
            cost=cost,
            roi=calculate_roi(cost, "retention", score),
        ))
    elif score < t.good:
        recs.append(Recommendation(
            id="a11y-warning",
            priority="medium",
            category="Accessibility",
            title="Accessibility Enhancement Recommended",
            subtitle="Minor improvements for full compliance",
            description="Your site has good accessibility foundations but could be improved for full "
                        "WCAG 2.1 AA compliance.",
            actions=[
                Action(task="Audit and fix remaining contrast issues", effort="Low", time="1-2 hours"),
                Action(task="Improve screen reader experience", effort="Medium", time="2-4 hours"),
                Action(task="Test with actual assistive technologies", effort="Medium", time="2-3 hours"),
            ],
            current_score=_whole(score),
            target_score=98,
            estimated_impact="Achieves full compliance and best-in-class accessibility",
            timeline="1 week",
            cost=CostRange(min=400, max=1000),
        ))


def _seo(score: float, recs: List[Recommendation], wins: List[QuickWin]) -> None:
    t = THRESHOLDS["seo"]
    if score < t.warning:
        cost = CostRange(min=600, max=1500)
        recs.append(Recommendation(
            id="seo-high",
            priority="high",
            category="SEO",
            title="Search Engine Optimization Required",
            subtitle="Missing significant organic traffic opportunities",
            description="Your site is not fully optimized for search engines. Organic search typically "
                        "drives 53% of all website traffic, and top 3 results get 75% of clicks.",
            actions=[
                Action(task="Add unique meta descriptions to all pages", effort="Medium", time="2-4 hours"),
                Action(task="Optimize title tags with target keywords", effort="Medium", time="2-3 hours"),
                Action(task="Implement structured data (Schema.org)", effort="Medium", time="3-5 hours"),
                Action(task="Fix broken links and redirects", effort="Low", time="1-2 hours"),
                Action(task="Create and submit XML sitemap", effort="Low", time="1 hour"),
                Action(task="Optimize page URLs and internal linking", effort="Medium", time="2-4 hours"),
            ],
            current_score=_whole(score),
            target_score=95,
            estimated_impact="Could increase organic traffic by 20-40% within 3-6 months",
            timeline="1-2 weeks implementation, 2-3 months for ranking impact",
            cost=cost,
            roi=calculate_roi(cost, "traffic", score),
        ))
    elif score < t.good:
        wins.append(QuickWin(
            title="SEO fine-tuning",
            impact="+5-15% traffic",
            time="4-6 hours",
            actions=["Add structured data", "Optimize meta descriptions"],
        ))


def _best_practices(score: float, recs: List[Recommendation]) -> None:
    if score < THRESHOLDS["bestPractices"].good:
        recs.append(Recommendation(
            id="bp-medium",
            priority="medium",
            category="Best Practices",
            title="Web Standards & Security Improvements",
            subtitle="Technical hygiene for reliability and security",
            description="Your site does not follow all modern web best practices, which can impact "
                        "security, reliability, and maintenance costs.",
            actions=[
                Action(task="Ensure HTTPS is enforced on all pages", effort="Low", time="1 hour"),
                Action(task="Fix console errors and warnings", effort="Medium", time="2-4 hours"),
                Action(task="Update deprecated APIs and libraries", effort="Medium", time="3-5 hours"),
                Action(task="Implement security headers (CSP, HSTS)", effort="Medium", time="2-3 hours"),
                Action(task="Ensure no sensitive data in client-side code", effort="Low", time="1-2 hours"),
            ],
            current_score=_whole(score),
            target_score=90,
            estimated_impact="Improves security, reduces maintenance burden",
            timeline="1-2 weeks",
            cost=CostRange(min=400, max=1000),
        ))


def _opportunity(label: str, catalog: Mapping[str, PainPointValue]) -> Recommendation:
    value = catalog.get(label, DEFAULT_PAIN_POINT)
    return Recommendation(
        id=f"opp-{_slug(label)}",
        priority=value.priority,
        category="Identified Opportunity",
        title=label,
        subtitle="Opportunity identified during audit",
        description="This issue was identified during the automated audit process and represents a "
                    "potential improvement area.",
        actions=[
            Action(task="Schedule detailed technical assessment", effort="Low", time="1-2 hours"),
            Action(task="Develop implementation roadmap", effort="Medium", time="2-4 hours"),
        ],
        estimated_impact="Impact assessment available upon detailed review",
        cost=CostRange(min=value.min, max=value.max),
    )


def _total(recs: Iterable[Recommendation]) -> CostRange:
    total = CostRange()
    for r in recs:
        total = total + r.cost
    return total


# ------------------------------
# Public API
# ------------------------------
def generate_recommendations(
    scores: CategoryScores,
    opportunities: Sequence[str] = (),
    analysis: Optional[Analysis] = None,
    catalog: Optional[Mapping[str, PainPointValue]] = None,
) -> RecommendationSet:
    """
    Ranked recommendations, quick wins, packages and a summary for one set
    of scores. The performance tier follows the analysis status; one is
    computed when the caller does not pass it in.
    """
    catalog = catalog or {}
    if analysis is None:
        analysis = analyze_metrics(scores)
    present = scores.present()

    recs: List[Recommendation] = []
    wins: List[QuickWin] = []
    if "performance" in present:
        perf = present["performance"]
        _performance(perf, analysis.status_of("performance") or metric_status("performance", perf), recs, wins)
    if "accessibility" in present:
        _accessibility(present["accessibility"], recs)
    if "seo" in present:
        _seo(present["seo"], recs, wins)
    if "bestPractices" in present:
        _best_practices(present["bestPractices"], recs)

    seen = {r.id for r in recs}
    for label in opportunities:
        first_word = label.lower().split(" ")[0]
        if any(first_word in r.title.lower() for r in recs):
            continue
        rec = _opportunity(label, catalog)
        if rec.id not in seen:
            seen.add(rec.id)
            recs.append(rec)

    # sorted() is stable, so equal priorities keep insertion order.
    recs = sorted(recs, key=lambda r: PRIORITY_RANK[r.priority])

    critical = [r for r in recs if r.priority == "critical"]
    high = [r for r in recs if r.priority == "high"]
    medium = [r for r in recs if r.priority == "medium"]

    packages = []
    if critical:
        packages.append(Package(
            name="Emergency Fix",
            description="Address critical issues immediately",
            recommendations=[r.id for r in critical],
            cost=_total(critical),
            timeline="1-2 weeks",
            priority="Immediate",
        ))
    if critical or high:
        packages.append(Package(
            name="Foundation Package",
            description="Fix critical and high priority issues",
            recommendations=[r.id for r in critical + high],
            cost=_total(critical + high),
            timeline="2-4 weeks",
            priority="High",
        ))
    packages.append(Package(
        name="Complete Optimization",
        description="Full implementation of all recommendations",
        recommendations=[r.id for r in recs],
        cost=_total(recs),
        timeline="4-8 weeks",
        priority="Comprehensive",
    ))

    if critical:
        timeline = "2-4 weeks"
    elif high:
        timeline = "1-3 weeks"
    else:
        timeline = "1-2 weeks"

    return RecommendationSet(
        recommendations=recs,
        quick_wins=wins,
        packages=packages,
        summary=RecommendationSummary(
            total_recommendations=len(recs),
            critical_count=len(critical),
            high_count=len(high),
            medium_count=len(medium),
            total_cost=_total(recs),
            estimated_timeline=timeline,
        ),
    )


# ------------------------------
# Revenue
# ------------------------------
def calculate_revenue(opportunities: Iterable[str], catalog: Mapping[str, PainPointValue]) -> CostRange:
    total = CostRange()
    for label in opportunities:
        value = catalog.get(label)
        if value is not None:
            total = total + CostRange(min=value.min, max=value.max)
    return total


def revenue_breakdown(
    latest: Iterable[AuditResult],
    catalog: Mapping[str, PainPointValue],
    site_names: Optional[Mapping[str, str]] = None,
) -> Dict[str, object]:
    """
    Pipeline value across the latest record of every target. Labels missing
    from the catalog are priced at a flat default.
    """
    site_names = site_names or {}
    total = CostRange()
    breakdown = []
    for record in latest:
        for label in record.opportunities:
            value = catalog.get(label, DEFAULT_REVENUE_VALUE)
            total = total + CostRange(min=value.min, max=value.max)
            breakdown.append({
                "site": site_names.get(record.target_id, record.target_id),
                "type": label,
                "min": value.min,
                "max": value.max,
                "priority": value.priority,
            })
    return {"totalMin": total.min, "totalMax": total.max, "breakdown": breakdown, "count": len(breakdown)}
