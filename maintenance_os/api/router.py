# maintenance_os/api/router.py
from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field

from ..audit.grader import analyze_metrics
from ..audit.recommendations import calculate_revenue, generate_recommendations, revenue_breakdown
from ..audit.record import ResultStore
from ..audit.runner import AuditRunner
from ..errors import DuplicateTargetError, PersistenceFailure, StaticTargetError, TargetNotFoundError, TargetRegistryError
from ..targets import TargetRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


class AddSiteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    client_name: Optional[str] = Field(default=None, alias="clientName")
    run_audit: bool = Field(default=False, alias="runAudit")


# ---------------------------
# State accessors
# ---------------------------
def _registry(request: Request) -> TargetRegistry:
    return request.app.state.registry


def _store(request: Request) -> ResultStore:
    return request.app.state.store


def _runner(request: Request) -> AuditRunner:
    return request.app.state.runner


def _catalog(request: Request):
    return request.app.state.settings.PAIN_POINT_VALUES


# ---------------------------
# Health & sites
# ---------------------------
@router.get("/healthz")
async def healthz(request: Request) -> Dict[str, Any]:
    return {"ok": True, "backend": _runner(request).backend.name}


@router.get("/api/sites")
async def list_sites(request: Request) -> Dict[str, Any]:
    registry = _registry(request)
    return {
        "static": [t.to_wire() for t in registry.static()],
        "dynamic": [t.to_wire() for t in registry.dynamic()],
        "all": [t.to_wire() for t in registry.list()],
        "clients": [c.to_wire() for c in registry.clients()],
    }


@router.post("/api/sites")
async def add_site(body: AddSiteRequest, request: Request) -> Dict[str, Any]:
    try:
        target = _registry(request).add(body.url, body.client_name)
    except DuplicateTargetError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid URL: {e}")
    except (TargetRegistryError, PersistenceFailure) as e:
        raise HTTPException(status_code=500, detail=str(e))

    audit = None
    if body.run_audit:
        audit = (await _runner(request).run(target)).to_wire()
    return {"success": True, "site": target.to_wire(), "audit": audit}


@router.delete("/api/sites/{site_id}")
async def delete_site(site_id: str, request: Request) -> Dict[str, Any]:
    try:
        _registry(request).remove(site_id)
    except StaticTargetError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TargetNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (TargetRegistryError, PersistenceFailure) as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"success": True}


# ---------------------------
# Audits
# ---------------------------
@router.post("/api/audit")
async def audit_all(request: Request) -> Dict[str, Any]:
    outcomes = await _runner(request).run_many(_registry(request).list())
    return {"success": True, "results": [o.to_wire() for o in outcomes]}


@router.post("/api/audit/{target_id}")
async def audit_one(target_id: str, request: Request) -> Dict[str, Any]:
    target = _registry(request).get(target_id)
    if target is None:
        raise HTTPException(status_code=404, detail="Target not found")
    return (await _runner(request).run(target)).to_wire()


# ---------------------------
# Data, trends, revenue, analysis
# ---------------------------
def _csv_export(request: Request, records) -> Response:
    registry = _registry(request)
    catalog = _catalog(request)
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(["Site", "URL", "Timestamp", "Performance", "Accessibility", "SEO", "Uptime", "PainPoints", "EstValue"])
    for r in records:
        target = registry.get(r.target_id)
        rev = calculate_revenue(r.opportunities, catalog)
        writer.writerow([
            target.name if target else r.target_id,
            target.url if target else "",
            datetime.fromtimestamp(r.timestamp / 1000, tz=timezone.utc).isoformat(),
            r.scores.performance,
            r.scores.accessibility,
            r.scores.seo,
            r.uptime.status,
            "; ".join(r.opportunities),
            f"£{rev.min:g}-{rev.max:g}",
        ])
    return Response(
        content=buf.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=maintenance_data.csv"},
    )


@router.get("/api/data")
async def all_data(request: Request, format: str = Query(default="json")):
    records = _store(request).list_all()
    if format == "csv":
        return _csv_export(request, records)
    return [r.to_wire() for r in records]


@router.get("/api/trends/{target_id}")
async def trends(target_id: str, request: Request) -> List[Dict[str, Any]]:
    return [r.to_wire() for r in _store(request).trend_series(target_id)]


@router.get("/api/revenue")
async def revenue(request: Request) -> Dict[str, Any]:
    names = {t.id: t.name for t in _registry(request).list()}
    latest = _store(request).latest_per_target().values()
    return revenue_breakdown(latest, _catalog(request), names)


@router.get("/api/analysis/{target_id}")
async def analysis(target_id: str, request: Request) -> Dict[str, Any]:
    target = _registry(request).get(target_id)
    if target is None:
        raise HTTPException(status_code=404, detail="Site not found")

    records = _store(request).history(target_id)
    if not records:
        raise HTTPException(status_code=404, detail="No audit data available")

    latest, previous = records[0], records[1:]
    result = analyze_metrics(latest.scores, previous)
    recs = generate_recommendations(latest.scores, latest.opportunities, result, _catalog(request))
    return {
        "target": target.to_wire(),
        "audit": latest.to_wire(),
        "analysis": result.to_wire(),
        "recommendations": recs.to_wire(),
        "generatedAt": datetime.now(timezone.utc).isoformat(),
    }
