# exporters.py
import json
import logging
import math
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

import numpy as np
import pandas as pd
from pydantic import BaseModel

from models import SNAPSHOT_VERSION, InvalidSnapshotError, load_snapshot

logger = logging.getLogger(__name__)

ENVELOPE_VERSION = "1.0"
CIRCULAR = "[Circular Reference]"
NON_SERIALIZABLE = "[Non-serializable Object]"
TOO_DEEP = "[Max Depth Exceeded]"


class ScenarioImportError(ValueError):
    """The uploaded file is not a scenario envelope at all."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def sanitize_for_json(obj, max_depth: int = 32):
    """
    Return a plain-data copy of `obj` that json.dumps will accept.

    Containers already on the current path are replaced with a circular
    marker; callables, handles and anything else without a data shape get
    the non-serializable marker. Shared (non-cyclic) references are copied
    normally.
    """
    on_path = set()

    def walk(value, depth):
        if isinstance(value, Enum):
            return walk(value.value, depth)
        if value is None or isinstance(value, (bool, str, int)):
            return value
        if isinstance(value, float):
            return value if math.isfinite(value) else None
        if isinstance(value, np.generic):
            return walk(value.item(), depth)
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, BaseModel):
            return value.model_dump(mode="json", by_alias=True)
        if callable(value) and not isinstance(value, type):
            return NON_SERIALIZABLE
        if depth >= max_depth:
            return TOO_DEEP

        key = id(value)
        if key in on_path:
            return CIRCULAR
        if isinstance(value, np.ndarray):
            items = value.tolist()
        elif isinstance(value, pd.DataFrame):
            items = value.to_dict(orient="list")
        elif isinstance(value, pd.Series):
            items = value.tolist()
        elif is_dataclass(value) and not isinstance(value, type):
            items = {f.name: getattr(value, f.name) for f in fields(value)}
        elif isinstance(value, (dict, list, tuple, set, frozenset)):
            items = value
        else:
            return NON_SERIALIZABLE

        on_path.add(key)
        try:
            if isinstance(items, dict):
                return {_key(k): walk(v, depth + 1) for k, v in items.items()}
            return [walk(v, depth + 1) for v in items]
        finally:
            on_path.discard(key)

    return walk(obj, 0)


def _key(k) -> str:
    if isinstance(k, Enum):
        return str(k.value)
    return k if isinstance(k, str) else str(k)


def _json_default(o):
    # Handle numpy arrays & scalars cleanly for JSON
    if isinstance(o, np.ndarray):
        return o.tolist()
    if isinstance(o, np.generic):
        return o.item()
    # Let json raise for anything else unexpected
    raise TypeError(f"Object of type {o.__class__.__name__} is not JSON serializable")


def make_scenario(snapshot, name: str, description: Optional[str] = None,
                  scenario_id: Optional[str] = None, created_at: Optional[str] = None) -> dict:
    """Wrap a validated snapshot as one scenario record of the export envelope."""
    snap = load_snapshot(snapshot)
    now = _now_iso()
    return {
        "id": scenario_id or f"scenario_{uuid4().hex[:12]}",
        "name": name.strip(),
        "description": description.strip() if description else None,
        "createdAt": created_at or now,
        "lastModified": now,
        "plannerState": snap.to_json_dict(),
        "version": SNAPSHOT_VERSION,
    }


def export_scenarios(scenarios: list) -> tuple[str, bytes]:
    envelope = {
        "exportedAt": _now_iso(),
        "version": ENVELOPE_VERSION,
        "scenarios": sanitize_for_json(list(scenarios)),
    }
    blob = json.dumps(envelope, indent=2, default=_json_default)
    return "retirement_scenarios.json", blob.encode()


@dataclass
class ImportReport:
    scenarios: list = field(default_factory=list)
    skipped: int = 0
    errors: list = field(default_factory=list)


def import_scenarios(blob) -> ImportReport:
    """
    Parse an export envelope. Each plannerState is validated on the way in;
    bad entries are skipped and reported rather than failing the whole file.
    """
    try:
        data = json.loads(blob)
    except (TypeError, ValueError) as e:
        raise ScenarioImportError(f"Not a JSON document: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("scenarios"), list):
        raise ScenarioImportError("Invalid import file format: expected a 'scenarios' list")

    report = ImportReport()
    for raw in data["scenarios"]:
        label = raw.get("name") if isinstance(raw, dict) else None
        if not isinstance(raw, dict) or not raw.get("id") or not label or raw.get("plannerState") is None:
            report.skipped += 1
            report.errors.append(f"Scenario {label or 'unnamed'!r} missing required fields")
            continue
        try:
            snap = load_snapshot(raw["plannerState"])
        except InvalidSnapshotError as e:
            report.skipped += 1
            report.errors.append(f"Scenario {label!r}: {e}")
            logger.warning("skipping scenario %s on import: %s", raw["id"], e)
            continue
        now = _now_iso()
        report.scenarios.append({
            "id": raw["id"],
            "name": label,
            "description": raw.get("description"),
            "createdAt": raw.get("createdAt") or now,
            "lastModified": raw.get("lastModified") or now,
            "plannerState": snap.to_json_dict(),
            "version": raw.get("version") or SNAPSHOT_VERSION,
        })
    return report


def export_series_csv(result) -> tuple[str, bytes]:
    df = result.to_frame()
    return "projection_series.csv", df.to_csv(index=False).encode()


def export_projection(projection) -> tuple[str, bytes]:
    """
    Result series, metrics and recommendations as one JSON document.
    """
    payload = {
        "result": projection.result.to_json_dict(),
        "metrics": projection.metrics.to_json_dict(),
        "recommendations": sanitize_for_json(projection.recommendations),
    }
    blob = json.dumps(sanitize_for_json(payload), indent=2, default=_json_default)
    return "projection.json", blob.encode()
