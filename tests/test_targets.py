"""
tests/test_targets.py

TargetRegistry: static list merged with the JSON overlay file.

Coverage
--------
- Name/id derivation from hostnames
- Adding sites: scheme normalisation, clients, duplicates, bad input
- Removing sites: overlay only, static protected, unknown ids
- Overlay persistence and tolerance of a missing or corrupt file
"""

from __future__ import annotations

import json

import pytest

from conftest import make_target
from maintenance_os.errors import (
    DuplicateTargetError,
    StaticTargetError,
    TargetNotFoundError,
    TargetRegistryError,
)
from maintenance_os.schemas import Client
from maintenance_os.targets import TargetRegistry, site_id_from_host, site_name_from_host


@pytest.fixture()
def data_file(tmp_path):
    return tmp_path / "data.json"


@pytest.fixture()
def registry(data_file) -> TargetRegistry:
    clients = [Client(id="novum_care", name="Novum Care Group", tier="Premium")]
    return TargetRegistry([make_target("complyflow")], clients, data_file, clock=lambda: 1_700_000_000.0)


# ---------------------------------------------------------------------------
# Derivation
# ---------------------------------------------------------------------------


class TestDerivation:
    def test_site_name(self) -> None:
        assert site_name_from_host("www.my-site.co.uk") == "My Site"
        assert site_name_from_host("example.com") == "Example"

    def test_site_id(self) -> None:
        assert site_id_from_host("www.my-site.co.uk") == "www_mysite_co_uk"
        assert site_id_from_host("Example.COM") == "example_com"


# ---------------------------------------------------------------------------
# Add
# ---------------------------------------------------------------------------


class TestAdd:
    def test_adds_overlay_target(self, registry, data_file) -> None:
        target = registry.add("my-site.co.uk")

        assert target.id == "mysite_co_uk"
        assert target.name == "My Site"
        assert target.url == "https://my-site.co.uk"
        assert target.client_id == "quick_add"
        assert target.added_at == 1_700_000_000_000

        saved = json.loads(data_file.read_text(encoding="utf-8"))
        assert [t["id"] for t in saved["targets"]] == ["mysite_co_uk"]
        assert saved["clients"][0]["id"] == "quick_add"

    def test_list_is_static_then_overlay(self, registry) -> None:
        registry.add("https://beta.example.org")
        registry.add("https://gamma.example.org")
        assert [t.id for t in registry.list()] == ["complyflow", "beta_example_org", "gamma_example_org"]
        assert [t.id for t in registry.dynamic()] == ["beta_example_org", "gamma_example_org"]
        assert registry.get("gamma_example_org").name == "Gamma"

    def test_named_client_created_once(self, registry) -> None:
        registry.add("https://one.example.org", client_name="Acme Dental")
        target = registry.add("https://two.example.org", client_name="Acme Dental")
        assert target.client_id == "acme_dental"
        assert [c.id for c in registry.clients()] == ["novum_care", "acme_dental"]

    def test_duplicate_id_rejected(self, registry) -> None:
        registry.add("https://beta.example.org")
        with pytest.raises(DuplicateTargetError):
            registry.add("http://beta.example.org/other")

    def test_duplicate_static_url_rejected(self, registry) -> None:
        with pytest.raises(DuplicateTargetError):
            registry.add("https://complyflow.example.com")

    @pytest.mark.parametrize("url", ["", "   ", "https://"])
    def test_invalid_url(self, registry, url) -> None:
        with pytest.raises(ValueError):
            registry.add(url)

    def test_read_only_without_data_file(self) -> None:
        registry = TargetRegistry([make_target()])
        with pytest.raises(TargetRegistryError):
            registry.add("https://beta.example.org")


# ---------------------------------------------------------------------------
# Remove
# ---------------------------------------------------------------------------


class TestRemove:
    def test_removes_overlay_target(self, registry) -> None:
        registry.add("https://beta.example.org")
        registry.remove("beta_example_org")
        assert registry.get("beta_example_org") is None
        assert [t.id for t in registry.list()] == ["complyflow"]

    def test_static_target_protected(self, registry) -> None:
        with pytest.raises(StaticTargetError):
            registry.remove("complyflow")

    def test_unknown_target(self, registry) -> None:
        with pytest.raises(TargetNotFoundError):
            registry.remove("nope")


# ---------------------------------------------------------------------------
# Overlay file
# ---------------------------------------------------------------------------


class TestOverlayFile:
    def test_missing_file_is_empty(self, registry) -> None:
        assert registry.dynamic() == []
        assert [c.id for c in registry.clients()] == ["novum_care"]

    def test_corrupt_file_is_empty(self, registry, data_file) -> None:
        data_file.write_text("{not json", encoding="utf-8")
        assert registry.dynamic() == []

    def test_external_edits_are_picked_up(self, registry, data_file) -> None:
        registry.add("https://beta.example.org")
        data = json.loads(data_file.read_text(encoding="utf-8"))
        data["targets"].append(make_target("delta").to_wire())
        data["targets"].append({"id": "broken"})
        data_file.write_text(json.dumps(data), encoding="utf-8")

        assert [t.id for t in registry.dynamic()] == ["beta_example_org", "delta"]

    def test_overlay_cannot_shadow_static(self, registry, data_file) -> None:
        data_file.write_text(
            json.dumps({"targets": [make_target("complyflow", name="Shadow").to_wire()]}), encoding="utf-8"
        )
        assert [t.name for t in registry.list()] == ["Complyflow"]
