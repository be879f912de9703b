# maintenance_os/audit/browser.py
"""
Local audit backend: headless Chromium (Playwright) + the Lighthouse CLI.

Chromium is launched with a remote-debugging port; Playwright handles the
navigation/screenshot pass and Lighthouse attaches to the same browser
through that port for the category audit.
"""
from __future__ import annotations

import asyncio
import json
import logging
import socket
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from playwright.async_api import Browser, Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from ..errors import AuditBackendError, NavigationTimeout, TransientAcquisitionFailure
from ..schemas import Target
from .base import LIGHTHOUSE_CATEGORIES, AuditBackend, AuditSession, Screenshot, extract_category_scores

logger = logging.getLogger(__name__)

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def lighthouse_command(binary: str, url: str, port: int) -> List[str]:
    return [
        binary,
        url,
        f"--port={port}",
        "--output=json",
        "--output-path=stdout",
        "--quiet",
        f"--only-categories={','.join(LIGHTHOUSE_CATEGORIES)}",
    ]


class BrowserSession(AuditSession):
    def __init__(
        self,
        browser: Browser,
        port: int,
        url: str,
        *,
        navigation_timeout: float,
        lighthouse_bin: str,
        lighthouse_timeout: float,
    ) -> None:
        self._browser = browser
        self._port = port
        self._url = url
        self._navigation_timeout = navigation_timeout
        self._lighthouse_bin = lighthouse_bin
        self._lighthouse_timeout = lighthouse_timeout
        self._page = None

    async def navigate(self) -> None:
        context = await self._browser.new_context(viewport={"width": 1365, "height": 768}, ignore_https_errors=True)
        self._page = await context.new_page()
        try:
            await self._page.goto(self._url, wait_until="networkidle", timeout=self._navigation_timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(f"Navigation to {self._url} timed out after {self._navigation_timeout:.0f}s") from e
        except PlaywrightError as e:
            raise NavigationTimeout(f"Navigation to {self._url} failed: {e}") from e

    async def capture_screenshot(self) -> Optional[Screenshot]:
        if self._page is None:
            raise AuditBackendError("navigate() must succeed before capturing a screenshot")
        try:
            data = await self._page.screenshot(type="png", full_page=False)
        except PlaywrightError as e:
            logger.warning("[BROWSER] Screenshot failed for %s: %s", self._url, e)
            return None
        return Screenshot(data=data, ext="png")

    async def run_audit(self) -> Dict[str, Optional[float]]:
        cmd = lighthouse_command(self._lighthouse_bin, self._url, self._port)
        logger.info("[BROWSER] Running Lighthouse for %s", self._url)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            raise TransientAcquisitionFailure(f"Could not start Lighthouse ({cmd[0]}): {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._lighthouse_timeout)
        except asyncio.TimeoutError as e:
            raise AuditBackendError(f"Lighthouse timed out after {self._lighthouse_timeout:.0f}s") from e
        finally:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

        if proc.returncode != 0:
            tail = stderr.decode("utf-8", errors="replace").strip()[-500:]
            raise AuditBackendError(f"Lighthouse exited with {proc.returncode}: {tail}")
        try:
            report = json.loads(stdout)
        except ValueError as e:
            raise AuditBackendError(f"Lighthouse produced invalid JSON: {e}") from e
        return extract_category_scores(report)


class BrowserBackend(AuditBackend):
    name = "browser"

    def __init__(
        self,
        *,
        navigation_timeout: float = 30.0,
        lighthouse_bin: str = "lighthouse",
        lighthouse_timeout: float = 120.0,
    ) -> None:
        self.navigation_timeout = navigation_timeout
        self.lighthouse_bin = lighthouse_bin
        self.lighthouse_timeout = lighthouse_timeout

    @asynccontextmanager
    async def session(self, target: Target) -> AsyncIterator[BrowserSession]:
        port = _free_port()
        async with async_playwright() as p:
            try:
                browser = await p.chromium.launch(
                    headless=True, args=CHROMIUM_ARGS + [f"--remote-debugging-port={port}"]
                )
            except PlaywrightError as e:
                raise TransientAcquisitionFailure(f"Browser launch failed: {e}") from e
            try:
                yield BrowserSession(
                    browser,
                    port,
                    target.url,
                    navigation_timeout=self.navigation_timeout,
                    lighthouse_bin=self.lighthouse_bin,
                    lighthouse_timeout=self.lighthouse_timeout,
                )
            finally:
                await browser.close()
