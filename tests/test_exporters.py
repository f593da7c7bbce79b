"""Tests for JSON sanitising, the scenario envelope and CSV export."""

import io
import json
from datetime import date

import numpy as np
import pandas as pd
import pytest

from exporters import (
    CIRCULAR,
    NON_SERIALIZABLE,
    TOO_DEEP,
    ScenarioImportError,
    export_projection,
    export_scenarios,
    export_series_csv,
    import_scenarios,
    make_scenario,
    sanitize_for_json,
)
from models import SuperOption, load_snapshot
from runner import run_projection
from simulation import run_simulation


class TestSanitize:
    def test_plain_data_unchanged(self):
        data = {"a": 1, "b": [1.5, "x", None, True], "c": {"d": 2}}
        assert sanitize_for_json(data) == data

    def test_circular_dict(self):
        d = {"a": 1}
        d["self"] = d
        assert sanitize_for_json(d) == {"a": 1, "self": CIRCULAR}

    def test_circular_list(self):
        lst = [1]
        lst.append(lst)
        assert sanitize_for_json(lst) == [1, CIRCULAR]

    def test_shared_reference_is_not_circular(self):
        shared = [1, 2]
        assert sanitize_for_json({"a": shared, "b": shared}) == {"a": [1, 2], "b": [1, 2]}

    def test_functions_and_handles_replaced(self):
        data = {"cb": lambda x: x, "fh": io.StringIO(), "n": 3}
        out = sanitize_for_json(data)
        assert out == {"cb": NON_SERIALIZABLE, "fh": NON_SERIALIZABLE, "n": 3}

    def test_numpy_dates_and_enums(self):
        out = sanitize_for_json({
            "arr": np.array([1.0, 2.0]),
            "i": np.int64(7),
            "when": date(2025, 7, 1),
            "opt": SuperOption.BALANCED,
            SuperOption.GROWTH: 1,
        })
        assert out == {"arr": [1.0, 2.0], "i": 7, "when": "2025-07-01", "opt": "Balanced", "Growth": 1}
        json.dumps(out)

    def test_non_finite_floats_become_null(self):
        assert sanitize_for_json([float("nan"), float("inf")]) == [None, None]

    def test_depth_bounded(self):
        deep = current = {}
        for _ in range(50):
            current["next"] = {}
            current = current["next"]
        out = sanitize_for_json(deep, max_depth=5)
        node = out
        for _ in range(5):
            node = node["next"]
        assert node == TOO_DEEP

    def test_models_and_dataclasses(self, snapshot, settings):
        res = run_simulation(snapshot, settings)
        out = sanitize_for_json({"snap": snapshot, "res": res})
        assert out["snap"]["person"]["currentAge"] == 30
        assert out["res"]["total_assets"] == res.total_assets
        json.dumps(out)


class TestEnvelope:
    def test_round_trip_reproduces_snapshot(self, snapshot):
        rec = make_scenario(snapshot, "  Base plan  ", "first go")
        name, blob = export_scenarios([rec])
        assert name.endswith(".json")
        envelope = json.loads(blob)
        assert {"exportedAt", "version", "scenarios"} <= set(envelope)

        report = import_scenarios(blob)
        assert report.skipped == 0
        back = report.scenarios[0]
        assert back["id"] == rec["id"]
        assert back["name"] == "Base plan"
        assert load_snapshot(back["plannerState"]) == snapshot

    def test_round_trip_with_property(self, make_plan):
        snap = load_snapshot(make_plan(properties=[{
            "name": "Unit", "type": "investment", "currentValue": 600_000, "loanBalance": 400_000,
            "weeklyRent": 550, "purchaseDate": "2019-03-01", "purchasePrice": 480_000,
        }]))
        _, blob = export_scenarios([make_scenario(snap, "With unit")])
        assert load_snapshot(import_scenarios(blob).scenarios[0]["plannerState"]) == snap

    def test_invalid_entries_skipped(self, plan, snapshot):
        bad_state = dict(plan, person={"currentAge": 70, "retirementAge": 60, "lifeExpectancyAge": 90})
        blob = json.dumps({
            "exportedAt": "2025-01-01T00:00:00+00:00",
            "version": "1.0",
            "scenarios": [
                make_scenario(snapshot, "good"),
                {"id": "s2", "name": "bad", "createdAt": "x", "lastModified": "x", "plannerState": bad_state},
                {"id": "s3", "plannerState": plan},
            ],
        })
        report = import_scenarios(blob)
        assert [s["name"] for s in report.scenarios] == ["good"]
        assert report.skipped == 2
        assert len(report.errors) == 2

    @pytest.mark.parametrize("blob", ["not json", json.dumps([1, 2]), json.dumps({"scenarios": "nope"})])
    def test_unreadable_file(self, blob):
        with pytest.raises(ScenarioImportError):
            import_scenarios(blob)


class TestResultExports:
    def test_series_csv(self, snapshot, settings):
        res = run_simulation(snapshot, settings)
        name, data = export_series_csv(res)
        df = pd.read_csv(io.BytesIO(data))
        assert name.endswith(".csv")
        assert len(df) == len(res.years)
        assert df["total_assets"].iloc[-1] == pytest.approx(res.total_assets[-1])

    def test_projection_json(self, snapshot, settings):
        name, data = export_projection(run_projection(snapshot, settings))
        payload = json.loads(data)
        assert name == "projection.json"
        assert "totalAssets" in payload["result"]
        assert "canRetire" in payload["metrics"]
        assert payload["recommendations"][0]["key"]
