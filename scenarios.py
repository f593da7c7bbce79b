import json
import logging
import os
from pathlib import Path
from typing import Optional

from dateutil import parser as dtparser

from exporters import _json_default, export_scenarios, import_scenarios, make_scenario
from models import FinancialSnapshot, load_snapshot
from runner import run_projection

logger = logging.getLogger(__name__)


def clone_snapshot(snapshot, **overrides) -> FinancialSnapshot:
    """
    Copy a snapshot with section-level overrides, e.g.
    clone_snapshot(s, person={"retirementAge": 62}). Nested dicts are merged
    into the existing section; anything else replaces it.
    """
    base = load_snapshot(snapshot).to_json_dict()
    for section, edits in overrides.items():
        key = _section_key(section, base)
        if isinstance(edits, dict) and isinstance(base.get(key), dict):
            base[key] = {**base[key], **edits}
        else:
            base[key] = edits
    return load_snapshot(base)


def _section_key(section: str, data: dict) -> str:
    if section in data:
        return section
    head, *rest = section.split("_")
    return head + "".join(w.title() for w in rest)


def compare(snapshot, variants: list[tuple[str, dict]], settings=None):
    """
    variants: list of (name, overrides-dict)
    returns: dict name -> Projection
    """
    res = {}
    for name, edits in variants:
        res[name] = run_projection(clone_snapshot(snapshot, **edits), settings)
    return res


class ScenarioStore:
    """Saved plans in a single JSON file, newest first on listing."""

    def __init__(self, path):
        self.path = Path(path)

    def _read(self) -> list:
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, list) else []

    def _write(self, scenarios: list):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(scenarios, f, indent=2, default=_json_default)
        os.replace(tmp, self.path)

    def list_all(self) -> list:
        return sorted(self._read(), key=lambda s: dtparser.isoparse(s["lastModified"]), reverse=True)

    def load(self, scenario_id: str) -> Optional[dict]:
        return next((s for s in self._read() if s["id"] == scenario_id), None)

    def load_snapshot(self, scenario_id: str) -> Optional[FinancialSnapshot]:
        rec = self.load(scenario_id)
        return load_snapshot(rec["plannerState"]) if rec else None

    def save(self, name: str, snapshot, description: Optional[str] = None,
             scenario_id: Optional[str] = None) -> dict:
        scenarios = self._read()
        existing = next((s for s in scenarios if s["id"] == scenario_id), None) if scenario_id else None
        rec = make_scenario(snapshot, name, description, scenario_id=scenario_id,
                            created_at=existing["createdAt"] if existing else None)
        if existing:
            scenarios = [rec if s["id"] == scenario_id else s for s in scenarios]
        else:
            scenarios.append(rec)
        self._write(scenarios)
        logger.info("saved scenario %s (%s)", rec["id"], rec["name"])
        return rec

    def delete(self, scenario_id: str) -> bool:
        scenarios = self._read()
        kept = [s for s in scenarios if s["id"] != scenario_id]
        if len(kept) == len(scenarios):
            return False
        self._write(kept)
        return True

    def duplicate(self, scenario_id: str, new_name: str) -> Optional[dict]:
        original = self.load(scenario_id)
        if original is None:
            return None
        return self.save(new_name, original["plannerState"],
                         f"Copy of: {original.get('description') or original['name']}")

    def export(self, scenario_ids: Optional[list] = None) -> tuple[str, bytes]:
        scenarios = self.list_all()
        if scenario_ids is not None:
            scenarios = [s for s in scenarios if s["id"] in scenario_ids]
        return export_scenarios(scenarios)

    def import_blob(self, blob, overwrite: bool = False) -> dict:
        """Merge an export file into the store. Returns imported/skipped counts and errors."""
        report = import_scenarios(blob)
        scenarios = self._read()
        ids = {s["id"] for s in scenarios}
        imported = 0
        skipped = report.skipped
        for rec in report.scenarios:
            if rec["id"] in ids:
                if not overwrite:
                    skipped += 1
                    continue
                scenarios = [s for s in scenarios if s["id"] != rec["id"]]
            scenarios.append(rec)
            ids.add(rec["id"])
            imported += 1
        if imported:
            self._write(scenarios)
        logger.info("imported %d scenario(s), skipped %d", imported, skipped)
        return {"imported": imported, "skipped": skipped, "errors": report.errors}
