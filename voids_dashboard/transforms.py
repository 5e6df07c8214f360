"""
Record normalizer: flatten nested, inconsistently-shaped raw documents into
stable survey and demand-point entities.

Normalization is pure. The same raw mapping always yields an equal entity,
and no field is ever required: missing or mistyped values fall back to a
default instead of raising.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import pandas as pd

from .config import (
    CONTRACTOR_CATEGORY,
    GIFT_CATEGORIES,
    GIFT_OTHER,
    UNCATEGORISED,
    UNKNOWN,
)
from .loaders.utils import (
    coerce_coordinate,
    coerce_number,
    coerce_text,
    month_key,
    parse_date,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Location:
    lat: float
    lng: float


@dataclass(frozen=True)
class LineItem:
    """One quoted or recharged work entry from a survey."""

    category: str
    code: str = ""
    description: str = ""
    quantity: float = 0.0
    cost: float = 0.0
    recharge: bool = False
    recharge_cost: float = 0.0
    recharge_time: float = 0.0
    comment: str = ""
    time_estimate: float = 0.0
    contractor: str = ""


@dataclass(frozen=True)
class SurveyTotals:
    cost: float = 0.0
    recharge_cost: float = 0.0
    days_decimal: float = 0.0
    recharge_days_decimal: float = 0.0
    smv: float = 0.0


@dataclass(frozen=True)
class NormalizedSurvey:
    id: str
    surveyor_name: str
    property_address: str
    submitted_at: pd.Timestamp | None
    month: str
    void_type: str
    visit_type: str
    location: Location | None
    gifted_notes: str
    line_items: tuple[LineItem, ...] = ()
    totals: SurveyTotals = field(default_factory=SurveyTotals)


@dataclass(frozen=True)
class NormalizedDemandPoint:
    id: str
    address: str
    postcode: str
    let_type: str
    local_authority: str
    void_type: str
    locality: str
    tenancy_end_date: str
    tenancy_end_month: str
    lat: float | None
    lng: float | None


# ---------------------------------------------------------------------------
# Line-item flattening
# ---------------------------------------------------------------------------
def flatten_line_items(sors_field: Any) -> list[dict]:
    """Flatten a list, or a mapping of lists, into one list of item mappings.

    Any other shape, including None, yields an empty list. Entries that are
    not mappings are dropped.
    """
    if isinstance(sors_field, list):
        sections = [sors_field]
    elif isinstance(sors_field, Mapping):
        sections = [v for v in sors_field.values() if isinstance(v, list)]
    else:
        return []
    return [item for section in sections for item in section if isinstance(item, Mapping)]


def tag_line_items(sors: Any) -> list[tuple[str, dict]]:
    """Build the (category, item) pairs for a survey's SOR field.

    The usual shape is category -> list of items, but older submissions nest
    sub-sections (category -> {section: [items]}) or store a bare list.
    """
    if isinstance(sors, list):
        return [(UNCATEGORISED, item) for item in flatten_line_items(sors)]
    if not isinstance(sors, Mapping):
        return []
    tagged = []
    for category, section in sors.items():
        for item in flatten_line_items(section):
            tagged.append((str(category), item))
    return tagged


def _coerce_code(val: Any) -> str:
    if isinstance(val, bool):
        return ""
    if isinstance(val, (int, float)):
        return str(int(val)) if float(val).is_integer() else str(val)
    return coerce_text(val)


def _is_recharge_flag(val: Any) -> bool:
    return str(val).strip().lower() == "true"


def normalize_line_item(category: str, raw: Mapping) -> LineItem:
    return LineItem(
        category=category,
        code=_coerce_code(raw.get("code")),
        description=coerce_text(raw.get("description")),
        quantity=coerce_number(raw.get("quantity")),
        cost=coerce_number(raw.get("cost")),
        recharge=_is_recharge_flag(raw.get("recharge")),
        recharge_cost=coerce_number(raw.get("rechargeCost")),
        recharge_time=coerce_number(raw.get("rechargeTime")),
        comment=coerce_text(raw.get("comment")),
        time_estimate=coerce_number(raw.get("timeEstimate")),
        contractor=coerce_text(raw.get("contractor")),
    )


# ---------------------------------------------------------------------------
# Line-item predicates
#
# The dashboards classify line items with slightly different rules. They are
# kept as separate predicates rather than merged into one.
# ---------------------------------------------------------------------------
def is_meaningful_line_item(item: LineItem) -> bool:
    """Has a cost, or a non-blank description or comment."""
    return item.cost > 0 or bool(item.description.strip()) or bool(item.comment.strip())


def is_recharge_candidate(item: LineItem) -> bool:
    """Quantity present and any recharge signal: flag, time or cost."""
    return item.quantity > 0 and (
        item.recharge or item.recharge_time > 0 or item.recharge_cost > 0
    )


def is_flagged_recharge(item: LineItem) -> bool:
    """Quantity present and the recharge flag itself set."""
    return item.quantity > 0 and item.recharge


def contractor_line_items(survey: NormalizedSurvey) -> list[LineItem]:
    return [item for item in survey.line_items if item.category == CONTRACTOR_CATEGORY]


def has_contractor_work(survey: NormalizedSurvey) -> bool:
    return any(is_meaningful_line_item(item) for item in contractor_line_items(survey))


def has_recharge_work(survey: NormalizedSurvey) -> bool:
    return any(is_recharge_candidate(item) for item in survey.line_items)


def has_gifted_items(survey: NormalizedSurvey) -> bool:
    return bool(survey.gifted_notes)


# ---------------------------------------------------------------------------
# Gifting
# ---------------------------------------------------------------------------
def classify_gift(notes: str) -> tuple[str, ...]:
    """Return the gift categories a note mentions, or ("other",)."""
    note = notes.lower()
    matched = tuple(
        category
        for category, keywords in GIFT_CATEGORIES.items()
        if any(keyword in note for keyword in keywords)
    )
    return matched or (GIFT_OTHER,)


def matches_gift_type(notes: str, gift_type: str) -> bool:
    """Gift-type facet rule: a keyword group, "other", or a plain substring."""
    note = notes.lower()
    if gift_type in GIFT_CATEGORIES:
        return any(keyword in note for keyword in GIFT_CATEGORIES[gift_type])
    if gift_type == GIFT_OTHER:
        all_keywords = [k for keywords in GIFT_CATEGORIES.values() for k in keywords]
        return not any(keyword in note for keyword in all_keywords)
    return gift_type.lower() in note


# ---------------------------------------------------------------------------
# Surveys
# ---------------------------------------------------------------------------
def _coerce_location(raw: Any) -> Location | None:
    """Read a GeoPoint-like object or a {lat,lng}/{latitude,longitude} mapping."""
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        lat = raw.get("latitude", raw.get("lat", raw.get("_latitude")))
        lng = raw.get("longitude", raw.get("lng", raw.get("_longitude")))
    else:
        lat = getattr(raw, "latitude", None)
        lng = getattr(raw, "longitude", None)
    lat = coerce_coordinate(lat)
    lng = coerce_coordinate(lng)
    if lat is None or lng is None:
        return None
    return Location(lat=lat, lng=lng)


def normalize_survey(raw: Mapping) -> NormalizedSurvey:
    """Build a NormalizedSurvey from one raw survey document."""
    totals_raw = raw.get("totals")
    if not isinstance(totals_raw, Mapping):
        totals_raw = {}

    submitted_raw = raw.get("submittedAt")
    if submitted_raw is None:
        submitted_raw = raw.get("timestamp")
    submitted_at = parse_date(submitted_raw)

    cost = totals_raw.get("cost")
    if cost is None:
        cost = raw.get("totalCost")

    gifted = raw.get("giftedItemsNotes")
    gifted_notes = gifted.lower() if isinstance(gifted, str) else ""

    line_items = tuple(
        normalize_line_item(category, item)
        for category, item in tag_line_items(raw.get("sors"))
    )

    return NormalizedSurvey(
        id=str(raw.get("id", "")),
        surveyor_name=coerce_text(raw.get("surveyorName"), UNKNOWN),
        property_address=coerce_text(raw.get("propertyAddress")),
        submitted_at=submitted_at,
        month=month_key(submitted_at),
        void_type=coerce_text(raw.get("voidType"), UNKNOWN),
        visit_type=coerce_text(raw.get("visitType"), UNKNOWN),
        location=_coerce_location(raw.get("location")),
        gifted_notes=gifted_notes,
        line_items=line_items,
        totals=SurveyTotals(
            cost=coerce_number(cost),
            recharge_cost=coerce_number(totals_raw.get("rechargeCost")),
            days_decimal=coerce_number(totals_raw.get("daysDecimal")),
            recharge_days_decimal=coerce_number(totals_raw.get("rechargeDaysDecimal")),
            smv=coerce_number(totals_raw.get("smv")),
        ),
    )


def normalize_surveys(raws: Iterable[Mapping]) -> list[NormalizedSurvey]:
    surveys = [normalize_survey(raw) for raw in raws if isinstance(raw, Mapping)]
    logger.info("Normalized %d surveys", len(surveys))
    return surveys


# ---------------------------------------------------------------------------
# Historic demand
# ---------------------------------------------------------------------------
def normalize_demand_point(raw: Mapping) -> NormalizedDemandPoint:
    """Build a NormalizedDemandPoint from one historic demand document.

    Column names follow the CSV headers the ingestion script uploads.
    Coordinates were resolved upstream; a point without them keeps
    lat/lng as None and is simply left off the map.
    """
    locality = coerce_text(raw.get("Locality")) or coerce_text(raw.get("locality"), UNKNOWN)
    end_raw = raw.get("Tenancy end date")
    end_date = parse_date(end_raw)

    lat = raw.get("Latitude", raw.get("lat"))
    lng = raw.get("Longitude", raw.get("lng"))

    return NormalizedDemandPoint(
        id=str(raw.get("id", "")),
        address=coerce_text(raw.get("Address of property")),
        postcode=coerce_text(raw.get("Postcode")),
        let_type=coerce_text(raw.get("Let Type"), UNKNOWN),
        local_authority=coerce_text(raw.get("Local Authority"), UNKNOWN),
        void_type=coerce_text(raw.get("Major or Minor void?"), UNKNOWN),
        locality=locality,
        tenancy_end_date=str(end_raw) if end_raw not in (None, "") else UNKNOWN,
        tenancy_end_month=month_key(end_date),
        lat=coerce_coordinate(lat),
        lng=coerce_coordinate(lng),
    )


def normalize_demand_points(raws: Iterable[Mapping]) -> list[NormalizedDemandPoint]:
    points = [normalize_demand_point(raw) for raw in raws if isinstance(raw, Mapping)]
    logger.info("Normalized %d demand points", len(points))
    return points
