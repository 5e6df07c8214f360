"""
Simulated data generator for the voids dashboards.

Generates raw survey and historic demand documents shaped like the document
store's, including the inconsistencies the normalizer has to cope with:
numbers stored as strings, mixed recharge flags, missing dates and
locations, nested SOR sections. All values are synthetic.
"""

import numpy as np
import pandas as pd

from .config import DEMAND_COLLECTION, LOCALITIES, SURVEYS_COLLECTION

# Seed for reproducibility
DEFAULT_SEED = 42

# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------
_SURVEYORS = ["Alice Shaw", "Ben Okafor", "Carla Diaz", "Dev Patel", "Ellie Moss"]

_STREETS = [
    "Mill Lane", "Church Road", "Station Street", "Park Avenue", "Victoria Road",
    "Orchard Close", "High Street", "Meadow View", "Queens Drive", "Brook Way",
]

_TOWNS = {
    "WOE": ("Bristol", 51.45, -2.58),
    "Glouc": ("Gloucester", 51.86, -2.24),
    "S&M": ("Taunton", 51.02, -3.10),
    "Central": ("Birmingham", 52.48, -1.89),
}

_CONTRACTOR_WORK = [
    ("Fencing", "Hedge & Co"),
    ("Roof repair", "TopTile Ltd"),
    ("Asbestos survey", "SafeSurvey"),
    ("Damp treatment", "DryWall Services"),
    ("Electrical test", "Spark Electrical"),
    ("Garden clearance", "Hedge & Co"),
]

_SOR_ITEMS = [
    ("201001", "Replace door handle"),
    ("301045", "Renew kitchen unit"),
    ("401220", "Clear rubbish from garden"),
    ("502310", "Make good plaster"),
    ("603001", "Remove tenant belongings"),
    ("704150", "Replace WC seat"),
]

_GIFT_NOTES = [
    "Carpets left in lounge and bedrooms",
    "Curtains and blinds throughout",
    "Shed in rear garden",
    "Laminate floor in hallway, curtain poles",
    "Washing machine",
    "Vinyl flooring in kitchen",
    "",
    "",
    "",
]

_VISIT_TYPES = ["Pre-void", "Void", "Post-works"]
_VOID_TYPES = ["Major", "Minor"]
_DEMAND_VOID_TYPES = ["Major", "Minor", "n/a"]
_LET_TYPES = ["Relet", "Relet", "Relet", "New Build"]


def _pick(rng: np.random.Generator, options: list):
    return options[int(rng.integers(len(options)))]


def _address(rng: np.random.Generator, town: str) -> str:
    return f"{int(rng.integers(1, 180))} {_pick(rng, _STREETS)}, {town}"


def _maybe_string(rng: np.random.Generator, value: float):
    # Older app builds stored numbers as text
    return f"{value:.2f}" if rng.random() < 0.3 else round(value, 2)


def _recharge_flag(rng: np.random.Generator, on: bool):
    if on:
        return _pick(rng, ["true", "TRUE", "True"]) if rng.random() < 0.6 else True
    return _pick(rng, ["false", "", "no"]) if rng.random() < 0.7 else False


def _sors(rng: np.random.Generator) -> dict | list:
    contractor = []
    for _ in range(int(rng.integers(0, 3))):
        description, company = _CONTRACTOR_WORK[int(rng.integers(len(_CONTRACTOR_WORK)))]
        contractor.append({
            "description": description,
            "contractor": company,
            "cost": _maybe_string(rng, float(rng.gamma(2.0, 160.0))),
            "timeEstimate": int(rng.integers(30, 480)),
            "comment": "Quote requested" if rng.random() < 0.3 else "",
        })
    if rng.random() < 0.15:
        # Blank entry left behind by the form
        contractor.append({"description": "", "cost": 0, "comment": ""})

    internal = []
    for _ in range(int(rng.integers(1, 5))):
        code, description = _SOR_ITEMS[int(rng.integers(len(_SOR_ITEMS)))]
        recharged = rng.random() < 0.3
        internal.append({
            "code": int(code) if rng.random() < 0.2 else code,
            "description": description,
            "quantity": _maybe_string(rng, float(rng.integers(0, 4))),
            "cost": _maybe_string(rng, float(rng.uniform(10, 200))),
            "recharge": _recharge_flag(rng, recharged),
            "rechargeCost": round(float(rng.uniform(20, 150)), 2) if recharged else 0,
            "rechargeTime": int(rng.integers(15, 120)) if recharged else 0,
        })

    roll = rng.random()
    if roll < 0.05:
        return internal
    if roll < 0.15:
        return {"contractor work": contractor, "internal": {"kitchen": internal}}
    return {"contractor work": contractor, "internal": internal}


def generate_surveys(
    n: int = 120,
    start: str = "2024-03-01",
    end: str = "2025-03-31",
    seed: int = DEFAULT_SEED,
) -> list[dict]:
    """Generate n raw survey documents submitted between start and end."""
    rng = np.random.default_rng(seed)
    start_ts, end_ts = pd.Timestamp(start), pd.Timestamp(end)
    span = int((end_ts - start_ts).total_seconds())
    docs = []

    for idx in range(n):
        locality = LOCALITIES[int(rng.integers(len(LOCALITIES)))]
        town, lat, lng = _TOWNS[locality]
        submitted = start_ts + pd.Timedelta(seconds=int(rng.integers(0, span)))
        sors = _sors(rng)

        recharge_cost = 0.0
        recharge_days = 0.0
        items = sors if isinstance(sors, list) else sors.get("internal", [])
        if isinstance(items, dict):
            items = [item for section in items.values() for item in section]
        for item in items:
            recharge_cost += float(item.get("rechargeCost") or 0)
            recharge_days += float(item.get("rechargeTime") or 0) / 60 / 7.5

        doc = {
            "id": f"survey-{idx:04d}",
            "surveyorName": _pick(rng, _SURVEYORS) if rng.random() > 0.03 else "",
            "propertyAddress": _address(rng, town),
            "voidType": _pick(rng, _VOID_TYPES),
            "visitType": _pick(rng, _VISIT_TYPES),
            "giftedItemsNotes": _pick(rng, _GIFT_NOTES),
            "sors": sors,
            "totals": {
                "cost": round(float(rng.uniform(200, 4000)), 2),
                "rechargeCost": round(recharge_cost, 2),
                "daysDecimal": round(float(rng.uniform(0.5, 12)), 1),
                "rechargeDaysDecimal": round(recharge_days, 2),
                "smv": round(float(rng.uniform(1, 40)), 1),
            },
        }

        date_roll = rng.random()
        if date_roll < 0.05:
            doc["submittedAt"] = "not a date"
        elif date_roll < 0.12:
            doc["timestamp"] = submitted.isoformat()
        else:
            doc["submittedAt"] = submitted.isoformat() + "Z"

        if rng.random() < 0.85:
            doc["location"] = {
                "lat": round(lat + float(rng.normal(0, 0.08)), 5),
                "lng": round(lng + float(rng.normal(0, 0.08)), 5),
            }
        docs.append(doc)

    return docs


def generate_demand(
    n: int = 400,
    start: str = "2024-01-01",
    end: str = "2025-06-30",
    seed: int = DEFAULT_SEED,
) -> list[dict]:
    """Generate n raw historic demand documents with CSV-style column names."""
    rng = np.random.default_rng(seed + 1)
    dates = pd.date_range(start, end, freq="D")
    docs = []

    for idx in range(n):
        locality = LOCALITIES[int(rng.integers(len(LOCALITIES)))]
        town, lat, lng = _TOWNS[locality]
        end_date = dates[int(rng.integers(len(dates)))]

        doc = {
            "id": f"demand-{idx:04d}",
            "Address of property": _address(rng, town),
            "Postcode": f"{town[:2].upper()}{int(rng.integers(1, 20))} {int(rng.integers(1, 9))}AB",
            "Let Type": _pick(rng, _LET_TYPES),
            "Local Authority": f"{town} City Council",
            "Major or Minor void?": _pick(rng, _DEMAND_VOID_TYPES),
            "Tenancy end date": end_date.strftime("%Y-%m-%d") if rng.random() > 0.04 else "",
        }
        # Both spellings appear in the uploaded sheets
        doc["Locality" if rng.random() < 0.8 else "locality"] = locality
        if rng.random() < 0.9:
            doc["Latitude"] = round(lat + float(rng.normal(0, 0.1)), 5)
            doc["Longitude"] = round(lng + float(rng.normal(0, 0.1)), 5)
        docs.append(doc)

    return docs


def generate_snapshot(seed: int = DEFAULT_SEED) -> dict[str, list[dict]]:
    """Both collections, keyed by collection name."""
    return {
        SURVEYS_COLLECTION: generate_surveys(seed=seed),
        DEMAND_COLLECTION: generate_demand(seed=seed),
    }
