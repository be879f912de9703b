# maintenance_os/audit/uptime.py
import logging
from time import perf_counter
from typing import Optional

import httpx

from ..schemas import UptimeResult

logger = logging.getLogger(__name__)

HEADERS = {"User-Agent": "MaintenanceOS-Uptime/1.0"}


async def check_uptime(
    url: str,
    *,
    timeout: float = 5.0,
    client: Optional[httpx.AsyncClient] = None,
) -> UptimeResult:
    """
    Lightweight HEAD probe.

    UP when a response arrives and it is either 2xx or below 500; anything
    else (5xx, timeout, DNS/connect/SSL failure) is DOWN. Never raises.
    """
    start = perf_counter()
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True, headers=HEADERS) as owned:
                resp = await owned.head(url)
        else:
            resp = await client.head(url, timeout=timeout, follow_redirects=True)
    except Exception as e:  # noqa: BLE001
        error = str(e) or e.__class__.__name__
        logger.info("[UPTIME] %s is DOWN: %s", url, error)
        return UptimeResult(status="DOWN", error=error)

    latency = int((perf_counter() - start) * 1000)
    up = resp.is_success or resp.status_code < 500
    return UptimeResult(status="UP" if up else "DOWN", status_code=resp.status_code, latency=latency)
