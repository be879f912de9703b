# maintenance_os/audit/record.py
"""
Result Store.

Every audit is persisted as one HTML artifact in the report directory. The
artifact carries a single trailing marker line

    <!-- MAINTENANCE_METADATA:<json> -->

whose JSON is the AuditResult. That marker is the source of truth: reads
scan the directory and parse markers, there is no separate index. This is
the only module that knows about the marker format.
"""
from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from jinja2 import Environment, select_autoescape
from pydantic import ValidationError

from ..errors import PersistenceFailure
from ..schemas import AuditResult
from .base import Screenshot

logger = logging.getLogger(__name__)

MARKER_PREFIX = "<!-- MAINTENANCE_METADATA:"
MARKER_SUFFIX = " -->"
_MARKER_RE = re.compile(r"^<!-- MAINTENANCE_METADATA:(.*) -->\s*$", re.MULTILINE)
_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_.-]")

_env = Environment(autoescape=select_autoescape(default=True, default_for_string=True))

REPORT_TEMPLATE = _env.from_string(
    """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>{{ target_id }} audit {{ when }}</title></head>
<body>
<h1>Maintenance audit: {{ target_id }}</h1>
<p>Audited {{ when }} (client {{ client_id }})</p>
{% if detailed %}<table>
<tr><th>Category</th><th>Score</th></tr>
{% for label, score in scores %}<tr><td>{{ label }}</td><td>{{ score }}</td></tr>
{% endfor %}</table>
<p>Uptime: {{ uptime.status }}{% if uptime.status_code %} (HTTP {{ uptime.status_code }}){% endif %}{% if uptime.latency is not none %}, {{ uptime.latency }}ms{% endif %}</p>
{% if opportunities %}<h2>Opportunities</h2>
<ul>{% for opp in opportunities %}<li>{{ opp }}</li>{% endfor %}</ul>{% endif %}
{% if screenshot %}<img src="{{ screenshot }}" alt="Screenshot of {{ target_id }}">{% endif %}
{% endif %}</body>
</html>
"""
)

_SCORE_LABELS = (
    ("Performance", "performance"),
    ("Accessibility", "accessibility"),
    ("Best Practices", "best_practices"),
    ("SEO", "seo"),
)


def encode_marker(result: AuditResult) -> str:
    payload = json.dumps(result.to_wire(), separators=(",", ":"), ensure_ascii=False)
    return f"{MARKER_PREFIX}{payload}{MARKER_SUFFIX}"


def parse_artifact(content: str) -> AuditResult:
    """
    Extract the AuditResult from an artifact body.
    Raises ValueError unless exactly one well-formed marker is present.
    """
    matches = _MARKER_RE.findall(content)
    if len(matches) != 1:
        raise ValueError(f"expected exactly one metadata marker, found {len(matches)}")
    try:
        return AuditResult.model_validate(json.loads(matches[0]))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ValueError(f"invalid metadata marker: {e}") from e


def render_report(result: AuditResult, detailed: bool = True) -> str:
    when = datetime.fromtimestamp(result.timestamp / 1000, tz=timezone.utc).isoformat()
    scores = [
        (label, f"{getattr(result.scores, attr):.0f}")
        for label, attr in _SCORE_LABELS
        if getattr(result.scores, attr) is not None
    ]
    body = REPORT_TEMPLATE.render(
        target_id=result.target_id,
        client_id=result.client_id,
        when=when,
        detailed=detailed,
        scores=scores,
        uptime=result.uptime,
        opportunities=result.opportunities,
        screenshot=result.screenshot,
    )
    return f"{body.rstrip()}\n{encode_marker(result)}\n"


def _safe(name: str) -> str:
    return _UNSAFE_NAME_RE.sub("_", name)


def _atomic_write(path: Path, data: bytes) -> None:
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


class ResultStore:
    """Append-only, directory-backed store of AuditResults."""

    def __init__(self, report_dir: str | os.PathLike, url_prefix: str = "/reports") -> None:
        self.report_dir = Path(report_dir)
        self.url_prefix = url_prefix.rstrip("/")

    @property
    def screenshot_dir(self) -> Path:
        return self.report_dir / "screenshots"

    def artifact_path(self, result: AuditResult) -> Path:
        return self.report_dir / f"{_safe(result.target_id)}-{result.timestamp}.html"

    def append(self, result: AuditResult, output_format: str = "html") -> Path:
        path = self.artifact_path(result)
        content = render_report(result, detailed=output_format == "html")
        try:
            self.report_dir.mkdir(parents=True, exist_ok=True)
            if path.exists():
                raise FileExistsError(f"artifact already exists: {path.name}")
            _atomic_write(path, content.encode("utf-8"))
        except OSError as e:
            raise PersistenceFailure(f"Failed to write report {path}: {e}") from e
        logger.info("[STORE] Saved %s", path.name)
        return path

    def save_screenshot(self, target_id: str, timestamp: int, shot: Screenshot) -> str:
        """Write a screenshot and return its public reference, or "" on failure."""
        name = f"{_safe(target_id)}-{timestamp}.{shot.ext}"
        try:
            self.screenshot_dir.mkdir(parents=True, exist_ok=True)
            _atomic_write(self.screenshot_dir / name, shot.data)
        except OSError as e:
            logger.error("[STORE] Failed to save screenshot %s: %s", name, e)
            return ""
        return f"{self.url_prefix}/screenshots/{name}"

    def list_all(self, target_id: Optional[str] = None) -> List[AuditResult]:
        """All parseable records, newest first, optionally for one target."""
        if not self.report_dir.is_dir():
            return []
        records = []
        for path in sorted(self.report_dir.glob("*.html")):
            try:
                record = parse_artifact(path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, ValueError) as e:
                logger.warning("[STORE] Skipping %s: %s", path.name, e)
                continue
            if target_id is None or record.target_id == target_id:
                records.append(record)
        records.sort(key=lambda r: r.timestamp, reverse=True)
        return records

    def latest_per_target(self) -> Dict[str, AuditResult]:
        latest: Dict[str, AuditResult] = {}
        for record in self.list_all():
            current = latest.get(record.target_id)
            if current is None or record.timestamp > current.timestamp:
                latest[record.target_id] = record
        return latest

    def history(self, target_id: str, limit: Optional[int] = None) -> List[AuditResult]:
        records = self.list_all(target_id)
        return records if limit is None else records[:limit]

    def trend_series(self, target_id: str, limit: int = 30) -> List[AuditResult]:
        """Most recent `limit` records, oldest first (chart order)."""
        return list(reversed(self.history(target_id, limit)))
