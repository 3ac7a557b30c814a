from __future__ import annotations

import json
import sys
from datetime import date
from pathlib import Path
from typing import Any, Iterable

from loguru import logger

from engine.types import ArtifactBackend
from geo.distance import is_valid_coordinate
from layers.types import InsertArtifact, NewLayer

SUBSTATIONS_LAYER_ID = "eversource-substations"

DEFAULT_STATES = ("CT", "MA", "NH")


def substations_layer() -> NewLayer:
    return NewLayer(
        id=SUBSTATIONS_LAYER_ID,
        name="Eversource Substations",
        description="HIFLD transmission substations in Eversource territory (CT/MA/NH)",
        source="HIFLD/ORNL",
        source_date=date.today().isoformat(),
    )


def load_substations(
    path: Path, *, states: Iterable[str] = DEFAULT_STATES
) -> tuple[list[InsertArtifact], int]:
    """
    Input: HIFLD substation export with records under `substations_by_state.<STATE>`.

    Returns (artifacts, skipped); records without valid coordinates are skipped.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    by_state = data.get("substations_by_state") or {}

    out: list[InsertArtifact] = []
    skipped = 0
    for state in states:
        key = str(state).strip().upper()
        records = by_state.get(key)
        if records is None:
            logger.warning(f"No substation data for state {key}")
            continue
        for rec in records:
            artifact = _to_artifact(rec or {})
            if artifact is None:
                skipped += 1
                continue
            out.append(artifact)
    return out, skipped


def _to_artifact(rec: dict[str, Any]) -> InsertArtifact | None:
    loc = rec.get("location") or {}
    lat = loc.get("latitude")
    lng = loc.get("longitude")
    if isinstance(lat, bool) or isinstance(lng, bool):
        return None
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return None
    if not is_valid_coordinate(lat, lng):
        return None

    sub_type = str(rec.get("type") or "SUBSTATION")
    voltage = rec.get("voltage_kv") or {}
    territory = rec.get("service_territory") or {}
    hifld = rec.get("hifld") or {}

    metadata = {
        "city": rec.get("city"),
        "county": rec.get("county"),
        "state": rec.get("state"),
        "zip": rec.get("zip"),
        "type": sub_type,
        "status": rec.get("status"),
        "voltage_kv_max": voltage.get("max"),
        "voltage_kv_min": voltage.get("min"),
        "utility_name": territory.get("utility_name"),
        "holding_company": territory.get("holding_company"),
        "hifld_objectid": hifld.get("objectid"),
        "hifld_id": hifld.get("id"),
        "hifld_lines": hifld.get("lines"),
        "google_maps_link": rec.get("google_maps_link"),
        "provenance": rec.get("provenance"),
    }

    return InsertArtifact(
        name=str(rec.get("name") or "Unnamed substation"),
        category=sub_type.lower(),
        layer=SUBSTATIONS_LAYER_ID,
        lat=float(lat),
        lng=float(lng),
        description=f"{sub_type} in {rec.get('city')}, {rec.get('state')} - {rec.get('status')}",
        metadata={k: v for k, v in metadata.items() if v is not None},
    )


def import_substations(
    backend: ArtifactBackend, path: Path, *, states: Iterable[str] = DEFAULT_STATES
) -> tuple[int, int]:
    artifacts, skipped = load_substations(path, states=states)
    backend.create_layer(substations_layer())
    created = backend.create_many(artifacts)
    logger.info(
        f"Imported {len(created)} substations into '{SUBSTATIONS_LAYER_ID}' "
        f"({skipped} skipped, backend={backend.name})"
    )
    return len(created), skipped


def main(argv: list[str] | None = None) -> int:
    # Usage: python -m layers.substations <json_path> [CT,MA,NH]
    from engine.factory import create_backend

    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        logger.error("usage: python -m layers.substations <json_path> [CT,MA,NH]")
        return 2
    states = args[1].split(",") if len(args) > 1 else list(DEFAULT_STATES)
    backend = create_backend(seed=False)
    import_substations(backend, Path(args[0]), states=states)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
