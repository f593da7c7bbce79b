"""Tests for the saved-plan store and what-if comparisons."""

import json

import pytest

from exporters import ScenarioImportError, make_scenario
from models import InvalidSnapshotError
from scenarios import ScenarioStore, clone_snapshot, compare


@pytest.fixture
def store(tmp_path):
    return ScenarioStore(tmp_path / "plans" / "scenarios.json")


def envelope(*scenarios):
    return json.dumps({"exportedAt": "2025-01-01T00:00:00+00:00", "version": "1.0", "scenarios": list(scenarios)})


class TestStore:
    def test_empty_store(self, store):
        assert store.list_all() == []
        assert store.load("missing") is None

    def test_save_and_load(self, store, snapshot):
        rec = store.save("Base", snapshot, "first draft")
        assert store.load(rec["id"])["name"] == "Base"
        assert store.load_snapshot(rec["id"]) == snapshot

    def test_update_keeps_created_at(self, store, snapshot):
        rec = store.save("Base", snapshot)
        updated = store.save("Base v2", snapshot, scenario_id=rec["id"])
        assert updated["id"] == rec["id"]
        assert updated["createdAt"] == rec["createdAt"]
        assert [s["name"] for s in store.list_all()] == ["Base v2"]

    def test_list_newest_first(self, store, snapshot):
        older = dict(make_scenario(snapshot, "older"), lastModified="2024-01-01T00:00:00+00:00")
        newer = dict(make_scenario(snapshot, "newer"), lastModified="2025-06-01T09:30:00+10:00")
        store.import_blob(envelope(older, newer))
        assert [s["name"] for s in store.list_all()] == ["newer", "older"]

    def test_delete(self, store, snapshot):
        rec = store.save("Base", snapshot)
        assert store.delete(rec["id"])
        assert not store.delete(rec["id"])
        assert store.list_all() == []

    def test_duplicate(self, store, snapshot):
        rec = store.save("Base", snapshot)
        copy = store.duplicate(rec["id"], "Base (copy)")
        assert copy["id"] != rec["id"]
        assert copy["description"] == "Copy of: Base"
        assert copy["plannerState"] == rec["plannerState"]
        assert store.duplicate("missing", "x") is None

    def test_export_selected(self, store, snapshot):
        a = store.save("A", snapshot)
        store.save("B", snapshot)
        _, blob = store.export([a["id"]])
        assert [s["name"] for s in json.loads(blob)["scenarios"]] == ["A"]

    def test_import_skips_existing_unless_overwrite(self, store, snapshot):
        rec = store.save("Base", snapshot)
        incoming = dict(rec, name="Renamed")
        assert store.import_blob(envelope(incoming)) == {"imported": 0, "skipped": 1, "errors": []}
        assert store.load(rec["id"])["name"] == "Base"
        assert store.import_blob(envelope(incoming), overwrite=True)["imported"] == 1
        assert store.load(rec["id"])["name"] == "Renamed"
        assert len(store.list_all()) == 1

    def test_import_bad_file(self, store):
        with pytest.raises(ScenarioImportError):
            store.import_blob(b"{")


class TestClone:
    def test_section_override(self, snapshot):
        clone = clone_snapshot(snapshot, person={"retirementAge": 65})
        assert clone.person.retirement_age == 65
        assert clone.person.current_age == 30
        assert snapshot.person.retirement_age == 60

    def test_snake_case_section_name(self, snapshot):
        clone = clone_snapshot(snapshot, income_expense={"annualSalary": 90_000})
        assert clone.income_expense.annual_salary == 90_000

    def test_invalid_override_rejected(self, snapshot):
        with pytest.raises(InvalidSnapshotError):
            clone_snapshot(snapshot, person={"retirementAge": 20})


class TestCompare:
    def test_variants(self, snapshot, settings):
        results = compare(snapshot, [
            ("More saving", {"portfolio": {"monthlyContribution": 2_000}}),
            ("Retire later", {"person": {"retirementAge": 65}}),
        ], settings)
        assert set(results) == {"More saving", "Retire later"}
        base = compare(snapshot, [("Same", {})], settings)["Same"]
        assert results["More saving"].metrics.final_assets > base.metrics.final_assets
        assert results["Retire later"].metrics.projected_retirement_age == 65
