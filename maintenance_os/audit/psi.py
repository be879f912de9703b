# maintenance_os/audit/psi.py
"""Hosted audit backend: Google PageSpeed Insights (Lighthouse run remotely)."""
import asyncio
import base64
import binascii
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import aiohttp
from aiohttp import ClientTimeout
from aiohttp.client_exceptions import ClientError

from ..errors import AuditBackendError, NavigationTimeout, TransientAcquisitionFailure
from ..schemas import Target
from .base import LIGHTHOUSE_CATEGORIES, AuditBackend, AuditSession, Screenshot, extract_category_scores

PAGESPEED_API = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:image/(?P<ext>[a-z]+);base64,(?P<data>.*)$", re.DOTALL)


def build_params(url: str, strategy: str, api_key: str = "") -> List[Tuple[str, str]]:
    params = [("url", url), ("strategy", strategy)] + [("category", c) for c in LIGHTHOUSE_CATEGORIES]
    if api_key:
        params.append(("key", api_key))
    return params


def decode_screenshot(lighthouse_result: Dict[str, Any]) -> Optional[Screenshot]:
    """Decode the `final-screenshot` audit (a base64 data URI) if present."""
    audit = (lighthouse_result.get("audits") or {}).get("final-screenshot") or {}
    raw = (audit.get("details") or {}).get("data")
    if not isinstance(raw, str) or not raw:
        return None
    m = _DATA_URI_RE.match(raw)
    ext, payload = (m.group("ext"), m.group("data")) if m else ("jpeg", raw)
    try:
        data = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError):
        logger.warning("[PSI] final-screenshot is not valid base64; skipping")
        return None
    return Screenshot(data=data, ext="jpg" if ext == "jpeg" else ext)


class PageSpeedSession(AuditSession):
    def __init__(self, http: aiohttp.ClientSession, url: str, strategy: str, api_key: str) -> None:
        self._http = http
        self._url = url
        self._strategy = strategy
        self._api_key = api_key
        self._lhr: Optional[Dict[str, Any]] = None

    async def navigate(self) -> None:
        params = build_params(self._url, self._strategy, self._api_key)
        logger.info("[PSI] Requesting PageSpeed Insights for %s", self._url)
        try:
            async with self._http.get(PAGESPEED_API, params=params) as resp:
                if resp.status == 429:
                    logger.warning("[PSI] 429 for %s, retry-after=%s", self._url, resp.headers.get("Retry-After"))
                if resp.status != 200:
                    raise TransientAcquisitionFailure(f"PSI API Error: {resp.status} {resp.reason or ''}".strip())
                data = await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise NavigationTimeout(f"PSI request timed out for {self._url}") from e
        except ClientError as e:
            raise TransientAcquisitionFailure(f"PSI request failed: {e}") from e

        lhr = data.get("lighthouseResult") if isinstance(data, dict) else None
        if not isinstance(lhr, dict):
            raise AuditBackendError("PSI response has no lighthouseResult")
        self._lhr = lhr

    def _result(self) -> Dict[str, Any]:
        if self._lhr is None:
            raise AuditBackendError("navigate() must succeed before reading results")
        return self._lhr

    async def capture_screenshot(self) -> Optional[Screenshot]:
        return decode_screenshot(self._result())

    async def run_audit(self) -> Dict[str, Optional[float]]:
        return extract_category_scores(self._result())


class PageSpeedBackend(AuditBackend):
    """
    PSI runs Lighthouse on Google's side, so it works on read-only
    deployments where no local browser can be launched.
    """

    name = "psi"

    def __init__(self, api_key: str = "", strategy: str = "desktop", timeout: float = 60.0) -> None:
        self.api_key = api_key
        self.strategy = strategy
        self.timeout = timeout

    @asynccontextmanager
    async def session(self, target: Target) -> AsyncIterator[PageSpeedSession]:
        client_timeout = ClientTimeout(total=self.timeout, sock_connect=min(10.0, self.timeout))
        async with aiohttp.ClientSession(timeout=client_timeout, raise_for_status=False) as http:
            yield PageSpeedSession(http, target.url, self.strategy, self.api_key)
