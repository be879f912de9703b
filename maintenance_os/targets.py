# maintenance_os/targets.py
"""
Target registry.

Merges the static target list from settings with a mutable overlay file
(`{"clients": [...], "targets": [...]}`). Only overlay targets can be
removed. The overlay is re-read on every call so edits made out-of-band
are picked up.
"""
import json
import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union
from urllib.parse import urlparse

from pydantic import ValidationError

from .errors import (
    DuplicateTargetError,
    PersistenceFailure,
    StaticTargetError,
    TargetNotFoundError,
    TargetRegistryError,
)
from .schemas import Client, Target

logger = logging.getLogger(__name__)

QUICK_ADD_CLIENT = Client(id="quick_add", name="Quick Add Sites", tier="Standard", email="")


def site_name_from_host(hostname: str) -> str:
    # "www.my-site.co.uk" -> "My Site"
    stem = re.sub(r"^www\.", "", hostname).split(".")[0].replace("-", " ")
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), stem)


def site_id_from_host(hostname: str) -> str:
    return re.sub(r"[^a-z0-9_]", "", hostname.replace(".", "_"), flags=re.IGNORECASE).lower()


def client_id_from_name(name: str) -> str:
    return re.sub(r"\s+", "_", name.strip().lower())


class TargetRegistry:
    def __init__(
        self,
        static_targets: Sequence[Target],
        static_clients: Sequence[Client] = (),
        data_file: Union[str, os.PathLike, None] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._static_targets = list(static_targets)
        self._static_clients = list(static_clients)
        self.data_file = Path(data_file) if data_file else None
        self._clock = clock

    # ------------------------------
    # Overlay file
    # ------------------------------
    def _load(self) -> Dict[str, List[Dict[str, Any]]]:
        empty = {"clients": [], "targets": []}
        if self.data_file is None or not self.data_file.exists():
            return empty
        try:
            data = json.loads(self.data_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Error loading %s: %s", self.data_file, e)
            return empty
        if not isinstance(data, dict):
            return empty
        return {"clients": list(data.get("clients") or []), "targets": list(data.get("targets") or [])}

    def _save(self, data: Dict[str, List[Dict[str, Any]]]) -> None:
        if self.data_file is None:
            raise TargetRegistryError("No data file configured; the target list is read-only")
        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=str(self.data_file.parent), prefix=".tmp-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp, self.data_file)
        except OSError as e:
            raise PersistenceFailure(f"Failed to write {self.data_file}: {e}") from e

    def _overlay_targets(self) -> List[Target]:
        targets = []
        for raw in self._load()["targets"]:
            try:
                targets.append(Target.model_validate(raw))
            except ValidationError as e:
                logger.warning("Skipping invalid overlay target %r: %s", raw, e)
        return targets

    # ------------------------------
    # Queries
    # ------------------------------
    def static(self) -> List[Target]:
        return list(self._static_targets)

    def dynamic(self) -> List[Target]:
        return self._overlay_targets()

    def list(self) -> List[Target]:
        """Static targets first, then overlay targets, in insertion order."""
        static_ids = {t.id for t in self._static_targets}
        return self._static_targets + [t for t in self._overlay_targets() if t.id not in static_ids]

    def get(self, target_id: str) -> Optional[Target]:
        return next((t for t in self.list() if t.id == target_id), None)

    def clients(self) -> List[Client]:
        static_ids = {c.id for c in self._static_clients}
        overlay = []
        for raw in self._load()["clients"]:
            try:
                client = Client.model_validate(raw)
            except ValidationError:
                continue
            if client.id not in static_ids:
                overlay.append(client)
        return self._static_clients + overlay

    # ------------------------------
    # Mutations
    # ------------------------------
    def add(self, url: str, client_name: Optional[str] = None) -> Target:
        """
        Register a site by URL. Name and id are derived from the hostname;
        sites without a client go under the "quick_add" client.
        """
        url = (url or "").strip()
        if not url:
            raise ValueError("URL is required")
        normalized = url if url.startswith(("http://", "https://")) else f"https://{url}"
        hostname = urlparse(normalized).hostname
        if not hostname:
            raise ValueError(f"Invalid URL: {url}")

        site_id = site_id_from_host(hostname)
        if any(t.id == site_id or t.url in (url, normalized) for t in self.list()):
            raise DuplicateTargetError("Site already exists")

        data = self._load()
        if client_name:
            client = Client(id=client_id_from_name(client_name), name=client_name)
        else:
            client = QUICK_ADD_CLIENT
        if not any(c.get("id") == client.id for c in data["clients"]):
            data["clients"].append(client.to_wire())

        target = Target(
            id=site_id,
            name=site_name_from_host(hostname),
            url=normalized,
            client_id=client.id,
            type="Website",
            added_at=int(self._clock() * 1000),
        )
        data["targets"].append(target.to_wire())
        self._save(data)
        logger.info("Added site %s (%s)", target.id, target.url)
        return target

    def remove(self, target_id: str) -> None:
        if any(t.id == target_id for t in self._static_targets):
            raise StaticTargetError("Cannot delete built-in sites. Edit the settings instead.")
        data = self._load()
        remaining = [t for t in data["targets"] if t.get("id") != target_id]
        if len(remaining) == len(data["targets"]):
            raise TargetNotFoundError("Site not found")
        data["targets"] = remaining
        self._save(data)
        logger.info("Removed site %s", target_id)
