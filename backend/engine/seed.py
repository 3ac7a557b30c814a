from __future__ import annotations

import math
import random
from datetime import datetime, timedelta, timezone
from typing import Any

from loguru import logger

from engine.types import ArtifactBackend
from layers.substations import SUBSTATIONS_LAYER_ID, substations_layer
from layers.types import InsertArtifact, NewLayer

UTILITY_LAYER = "utility-poc"
SUBSTATIONS_LAYER = SUBSTATIONS_LAYER_ID

DEFAULT_LAYERS = [
    NewLayer(
        id=UTILITY_LAYER,
        name="CT Utility POC",
        description="Connecticut utility infrastructure seed data",
        source="generated",
    ),
    substations_layer(),
]

# Connecticut center; seed points fall within `SPREAD_DEG` of it (longitude stretched 1.3x).
CENTER_LAT = 41.5
CENTER_LNG = -72.7
SPREAD_DEG = 0.5

CATEGORY_NAMES: dict[str, list[str]] = {
    "substation": [
        "Hartford Substation",
        "New Haven Substation",
        "Bridgeport Substation",
        "Stamford Substation",
        "Waterbury Substation",
    ],
    "transformer": [
        "Distribution Transformer",
        "Pad-Mount Transformer",
        "Pole-Mount Transformer",
        "Network Transformer",
    ],
    "pole": ["Utility Pole", "Transmission Pole", "Distribution Pole", "Junction Pole"],
    "meter": ["Smart Meter", "Digital Meter", "Commercial Meter", "Industrial Meter"],
    "transmission_line": ["115kV Line", "345kV Line", "69kV Line", "Transmission Corridor"],
    "distribution_line": ["Primary Line", "Secondary Line", "Service Drop", "Feeder Line"],
    "switch": ["Recloser", "Sectionalizer", "Disconnect Switch", "Load Break Switch"],
    "capacitor_bank": [
        "Pole-Mounted Capacitor",
        "Substation Capacitor Bank",
        "Switched Capacitor",
    ],
}

_HIGH_VOLTAGES = ["69kV", "115kV", "345kV"]
_DIST_VOLTAGES = ["4kV", "13.8kV", "23kV"]
# Weighted: most assets are active.
_STATUSES = ["active", "active", "active", "maintenance", "planned"]


def _voltage(category: str, rng: random.Random) -> str | None:
    if category in {"substation", "transmission_line"}:
        return rng.choice(_HIGH_VOLTAGES)
    if category in {"transformer", "distribution_line"}:
        return rng.choice(_DIST_VOLTAGES)
    return None


def generate_seed_artifacts(count: int, *, rng_seed: int = 42) -> list[InsertArtifact]:
    """
    Synthetic Connecticut utility assets in the `utility-poc` layer.

    Deterministic for a given `rng_seed`, except `created_at` which is relative to now.
    """
    rng = random.Random(rng_seed)
    now = datetime.now(timezone.utc)
    categories = list(CATEGORY_NAMES.keys())

    out: list[InsertArtifact] = []
    for i in range(int(count)):
        category = rng.choice(categories)
        base_name = rng.choice(CATEGORY_NAMES[category])

        angle = rng.random() * 2 * math.pi
        distance = rng.random() * SPREAD_DEG
        lat = CENTER_LAT + math.sin(angle) * distance
        lng = CENTER_LNG + math.cos(angle) * distance * 1.3

        metadata: dict[str, Any] = {
            "status": rng.choice(_STATUSES),
            "install_year": 1980 + rng.randrange(45),
            "asset_id": f"ES-CT-{category[:3].upper()}-{i:06d}",
            "region": "connecticut",
            "utility": "eversource",
        }
        voltage = _voltage(category, rng)
        if voltage is not None:
            metadata["voltage"] = voltage

        created = now - timedelta(seconds=rng.randrange(365 * 24 * 60 * 60))
        out.append(
            InsertArtifact(
                name=f"{base_name} #{i + 1}",
                category=category,
                layer=UTILITY_LAYER,
                lat=lat,
                lng=lng,
                description=(
                    f"Eversource {category.replace('_', ' ')} in Connecticut service territory."
                ),
                metadata=metadata,
                created_at=created.isoformat(),
            )
        )
    return out


def seed_backend(backend: ArtifactBackend, *, count: int, rng_seed: int = 42) -> int:
    """
    Register the default layers and load `count` generated artifacts.
    """
    for layer in DEFAULT_LAYERS:
        if backend.get_layer(layer.id) is None:
            backend.create_layer(layer)

    artifacts = generate_seed_artifacts(count, rng_seed=rng_seed)
    bulk_load = getattr(backend, "bulk_load", None)
    if callable(bulk_load):
        created = bulk_load(artifacts)
    else:
        created = backend.create_many(artifacts)

    logger.info(f"Seeded {len(created)} artifacts ({backend.name})")
    return len(created)
