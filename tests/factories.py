"""
Test data factories for inspection records and JSONL sources
"""

import json
from typing import Any, Dict, Iterable, List, Optional, Union

SOURCE_BASE_URL = "https://sources.test/data"

CITIES = [("Houston", "TX"), ("Dallas", "TX"), ("Austin", "TX"), ("Denver", "CO")]
MATERIALS = ["PVC", "Clay", "Concrete", "Cast Iron"]


def make_inspection(index: int = 1, **overrides: Any) -> Dict[str, Any]:
    """
    Build one decoded source record.

    Top-level keys can be overridden directly; ``city``, ``state`` and
    ``material`` are routed into their nested groups.
    """
    city, state = CITIES[index % len(CITIES)]
    city = overrides.pop("city", city)
    state = overrides.pop("state", state)
    material = overrides.pop("material", MATERIALS[index % len(MATERIALS)])

    record: Dict[str, Any] = {
        "id": f"INS-{index:06d}",
        "timestamp_utc": f"2024-01-{(index % 28) + 1:02d}T10:{index % 60:02d}:00Z",
        "inspection_type": "CCTV",
        "location": {
            "city": city,
            "state": state,
            "district": f"District {index % 5}",
            "street": f"{100 + index} Main St",
            "gps": {"lat": 29.76 + index / 10000, "lon": -95.36},
        },
        "pipe": {
            "material": material,
            "diameter_in": 12,
            "length_ft": 250.5,
            "install_year": 1980,
        },
        "defects": [
            {"code": "CR", "description": "Crack", "severity": 3, "distance_ft": 42.0},
        ],
        "inspection_score": float(40 + (index * 7) % 60),
        "requires_repair": index % 3 == 0,
        "crew": {"lead": "J. Doe", "size": 2},
    }
    record.update(overrides)
    return record


def make_inspections(count: int, start: int = 1, **overrides: Any) -> List[Dict[str, Any]]:
    return [make_inspection(i, **dict(overrides)) for i in range(start, start + count)]


def to_jsonl(lines: Iterable[Union[Dict[str, Any], str]], trailing_newline: bool = True) -> bytes:
    """Encode records (dicts) and raw lines (str) as a JSONL body"""
    encoded = [json.dumps(line) if isinstance(line, dict) else line for line in lines]
    body = "\n".join(encoded)
    if trailing_newline and encoded:
        body += "\n"
    return body.encode("utf-8")


def scenario_record(
    record_id: str,
    city: str,
    score: float,
    repair: bool,
    state: str = "TX",
    material: Optional[str] = "PVC",
) -> Dict[str, Any]:
    """Minimal record carrying only the required fields"""
    return {
        "id": record_id,
        "location": {"city": city, "state": state},
        "pipe": {"material": material},
        "inspection_score": score,
        "requires_repair": repair,
    }
