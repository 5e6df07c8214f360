"""
Dashboard-ready output functions.

These are the primary entry points for the Streamlit front end. Each takes
the cached, normalized entities plus the user's facet selections, runs one
filter pass and returns plain dicts or DataFrames for cards, charts, tables
and the map. Export tables are built from exactly the rows displayed.
"""

import logging
from datetime import date, timedelta
from typing import Any, Mapping, Sequence

import pandas as pd

from .config import (
    CONTRACTOR_COST_BOUNDARIES,
    CONTRACTOR_COST_LABELS,
    EXPORT_COLUMNS,
    GIFT_CATEGORIES,
    GIFT_OTHER,
    LIVE_WINDOW_DAYS,
    LOCALITIES,
    RELET,
    SUMMARY_MONTHS,
    SUMMARY_START,
    TOP_N,
    NOT_AVAILABLE,
    UNKNOWN,
)
from .filters import (
    DEMAND_FACETS,
    SURVEY_FACETS,
    Facet,
    FilterEngine,
    FilterState,
    facet_options,
    normalize_filters,
)
from .kpis import (
    bandify,
    fixed_window_series,
    group_count,
    group_sum,
    monthly_matrix,
    percentage,
    safe_mean,
    sum_by,
    time_series,
    top_n,
)
from .loaders.utils import month_sort_key
from .map_layers import demand_features, is_plausible_coordinate, survey_features
from .transforms import (
    NormalizedDemandPoint,
    NormalizedSurvey,
    classify_gift,
    contractor_line_items,
    has_gifted_items,
    has_recharge_work,
    is_flagged_recharge,
    is_meaningful_line_item,
)

logger = logging.getLogger(__name__)

CONTRACTOR_ENGINE = FilterEngine(SURVEY_FACETS, contractor_line_items, is_meaningful_line_item)
RECHARGE_ENGINE = FilterEngine(SURVEY_FACETS, lambda s: s.line_items, is_flagged_recharge)
SURVEY_ENGINE = FilterEngine(SURVEY_FACETS)
DEMAND_ENGINE = FilterEngine(DEMAND_FACETS)


def _state(filters: Mapping[str, Any] | FilterState | None, facets: Sequence[Facet]) -> FilterState:
    if isinstance(filters, FilterState):
        return filters
    return normalize_filters(filters, facets)


def _or_not_available(value: str) -> str:
    return NOT_AVAILABLE if value in ("", UNKNOWN) else value


def _format_timestamp(ts: pd.Timestamp | None, fmt: str = "%Y-%m-%d %H:%M") -> str:
    if ts is None:
        return ""
    return ts.strftime(fmt)


def get_available_months(records: Sequence, month_fn=lambda r: r.month) -> list[str]:
    """Distinct month keys, most recent first, for the month dropdowns."""
    months = {month_fn(record) for record in records} - {UNKNOWN}
    return sorted(months, key=month_sort_key, reverse=True)


# ---------------------------------------------------------------------------
# Contractor work
# ---------------------------------------------------------------------------
def get_contractor_overview(
    surveys: Sequence[NormalizedSurvey],
    filters: Mapping[str, Any] | FilterState | None = None,
) -> dict:
    """Contractor work cards, charts and the export table.

    Parameters
    ----------
    surveys : Normalized surveys from the cache.
    filters : Selections for the surveyor, month and work_type facets.

    Returns
    -------
    dict with keys:
        total_submissions, voids_with_contractor, contractor_pct,
        total_cost, avg_cost, total_time_hours, avg_time_hours,
        by_surveyor, top_descriptions, top_contractors, cost_bands,
        monthly, work_types, table
    """
    result = CONTRACTOR_ENGINE.apply(surveys, _state(filters, SURVEY_FACETS))
    matches = result.line_items
    voids = result.records_with_line_items
    items = [match.item for match in matches]

    total_cost = sum_by(items, lambda item: item.cost)
    total_minutes = sum_by(items, lambda item: item.time_estimate)

    cost_per_void: dict[int, float] = {}
    for match in matches:
        cost_per_void[id(match.record)] = cost_per_void.get(id(match.record), 0.0) + match.item.cost

    contractor_counts = group_count(items, lambda item: item.contractor or UNKNOWN)
    contractor_costs = group_sum(items, lambda item: item.contractor or UNKNOWN, lambda item: item.cost)
    top_contractors = [
        {"contractor": name, "count": count, "cost": contractor_costs[name]}
        for name, count in top_n(contractor_counts, TOP_N)
    ]

    table = pd.DataFrame(
        [
            {
                "Surveyor": match.record.surveyor_name,
                "Property": match.record.property_address,
                "Description": match.item.description,
                "Cost": round(match.item.cost, 2),
                "Comment": match.item.comment,
                "Submitted At": _format_timestamp(match.record.submitted_at),
            }
            for match in matches
        ],
        columns=EXPORT_COLUMNS["contractor"],
    )

    work_types = facet_options(
        (item for survey in result.candidates for item in contractor_line_items(survey)),
        lambda item: item.description,
    )

    avg_minutes = safe_mean(total_minutes, len(items))
    logger.info(
        "Contractor view: %d of %d submissions with %d work items",
        len(voids), len(surveys), len(items),
    )
    return {
        "total_submissions": len(surveys),
        "voids_with_contractor": len(voids),
        "contractor_pct": percentage(len(voids), len(surveys)),
        "total_cost": total_cost,
        "avg_cost": safe_mean(total_cost, len(items)),
        "total_time_hours": total_minutes / 60,
        "avg_time_hours": None if avg_minutes is None else avg_minutes / 60,
        "by_surveyor": dict(top_n(group_count(voids, lambda s: s.surveyor_name))),
        "top_descriptions": top_n(group_count(items, lambda item: item.description or UNKNOWN), TOP_N),
        "top_contractors": top_contractors,
        "cost_bands": bandify(items, lambda item: item.cost, CONTRACTOR_COST_BOUNDARIES, CONTRACTOR_COST_LABELS),
        "monthly": time_series(voids, lambda s: s.month, lambda s: cost_per_void.get(id(s), 0.0)),
        "work_types": work_types,
        "table": table,
    }


# ---------------------------------------------------------------------------
# Recharges
# ---------------------------------------------------------------------------
def get_recharge_overview(
    surveys: Sequence[NormalizedSurvey],
    filters: Mapping[str, Any] | FilterState | None = None,
) -> dict:
    """Recharge cards, breakdowns, monthly series and the detail table.

    A survey counts as a recharge void when any line item carries a recharge
    signal. The item lists only use items whose recharge flag is set, weighted
    by quantity.
    """
    result = RECHARGE_ENGINE.apply(surveys, _state(filters, SURVEY_FACETS))
    total = len(result.records)
    voids = [survey for survey in result.records if has_recharge_work(survey)]

    total_cost = sum_by(voids, lambda s: s.totals.recharge_cost)
    total_minutes = sum_by(voids, lambda s: s.totals.recharge_days_decimal * 60)

    flagged = [match.item for match in result.line_items]
    by_description = group_sum(flagged, lambda item: item.description or UNKNOWN, lambda item: item.quantity)
    by_code = group_sum(
        flagged,
        lambda item: f"{item.code or UNKNOWN} - {item.description or UNKNOWN}",
        lambda item: item.quantity,
    )

    items_by_survey: dict[int, list[str]] = {}
    for match in result.line_items:
        if match.item.description:
            items_by_survey.setdefault(id(match.record), []).append(match.item.description)

    table = pd.DataFrame(
        [
            {
                "Property Address": _or_not_available(survey.property_address),
                "Surveyor": _or_not_available(survey.surveyor_name),
                "Submitted": _format_timestamp(survey.submitted_at, "%Y-%m-%d"),
                "Recharge Cost (£)": round(survey.totals.recharge_cost, 2),
                "Recharge Time (mins)": round(survey.totals.recharge_days_decimal * 60, 1),
                "Recharge Items": ", ".join(items_by_survey.get(id(survey), [])[:3]) or NOT_AVAILABLE,
            }
            for survey in voids
        ],
        columns=EXPORT_COLUMNS["recharge"],
    )

    with_pct = percentage(len(voids), total)
    logger.info("Recharge view: %d of %d submissions recharged", len(voids), total)
    return {
        "total_submissions": total,
        "voids_with_recharge": len(voids),
        "with_recharge_pct": with_pct,
        "no_recharge_pct": None if with_pct is None else 100 - with_pct,
        "total_cost": total_cost,
        "avg_cost": safe_mean(total_cost, len(voids)),
        "total_time_mins": total_minutes,
        "avg_time_mins": safe_mean(total_minutes, len(voids)),
        "by_surveyor": dict(top_n(group_count(voids, lambda s: s.surveyor_name))),
        "top_descriptions": top_n(by_description, TOP_N),
        "top_codes": top_n(by_code, TOP_N),
        "monthly": time_series(voids, lambda s: s.month, lambda s: s.totals.recharge_cost),
        "table": table,
    }


# ---------------------------------------------------------------------------
# Gifting
# ---------------------------------------------------------------------------
def get_gifting_overview(
    surveys: Sequence[NormalizedSurvey],
    filters: Mapping[str, Any] | FilterState | None = None,
) -> dict:
    """Gifted-item cards, category counts and the gifted/not-gifted split.

    The gifted percentage is taken over every survey, not just the filtered
    ones. With a gift type selected, ``not_gifted`` holds the gifted surveys
    (same surveyor filter) whose notes do not match that type.
    """
    state = _state(filters, SURVEY_FACETS)
    gift_type = state.active().get("gift_type")

    gifted = [s for s in SURVEY_ENGINE.apply(surveys, state).records if has_gifted_items(s)]
    not_gifted: list[NormalizedSurvey] = []
    if gift_type is not None:
        base = SURVEY_ENGINE.apply(surveys, state.select("gift_type", None)).records
        matched = {id(s) for s in gifted}
        not_gifted = [s for s in base if has_gifted_items(s) and id(s) not in matched]

    categories = {key: 0 for key in [*GIFT_CATEGORIES, GIFT_OTHER]}
    for survey in gifted:
        for category in classify_gift(survey.gifted_notes):
            categories[category] += 1

    table = pd.DataFrame(
        [
            {
                "Address": survey.property_address,
                "Surveyor": survey.surveyor_name,
                "Gifted Items Notes": survey.gifted_notes,
            }
            for survey in gifted
        ],
        columns=EXPORT_COLUMNS["gifting"],
    )

    return {
        "total_gifted": len(gifted),
        "gifted_pct": percentage(len(gifted), len(surveys)),
        "categories": categories,
        "split": {"Gifted": len(gifted), "Not Gifted": len(not_gifted)} if gift_type is not None else None,
        "not_gifted": not_gifted,
        "surveyors": facet_options((s for s in surveys if has_gifted_items(s)), lambda s: s.surveyor_name),
        "table": table,
    }


# ---------------------------------------------------------------------------
# Historic demand
# ---------------------------------------------------------------------------
def get_demand_overview(
    points: Sequence[NormalizedDemandPoint],
    filters: Mapping[str, Any] | FilterState | None = None,
) -> dict:
    """Filtered demand points, breakdowns, dropdown options and map features."""
    result = DEMAND_ENGINE.apply(points, _state(filters, DEMAND_FACETS))
    visible = list(result.records)
    mapped = [p for p in visible if is_plausible_coordinate(p.lat, p.lng)]
    if len(mapped) < len(visible):
        logger.warning("%d demand points have no usable coordinates", len(visible) - len(mapped))

    return {
        "points": visible,
        "visible_count": len(visible),
        "unmapped_count": len(visible) - len(mapped),
        "by_let_type": group_count(visible, lambda p: p.let_type),
        "by_void_type": group_count(visible, lambda p: p.void_type),
        "by_locality": group_count(visible, lambda p: p.locality),
        "available_months": get_available_months(points, lambda p: p.tenancy_end_month),
        "features": demand_features(mapped),
    }


def get_demand_summary_table(
    points: Sequence[NormalizedDemandPoint],
    start: str = SUMMARY_START,
    months: int = SUMMARY_MONTHS,
) -> pd.DataFrame:
    """Fixed-window relet table: locality x month counts with totals.

    Only relets with a major/minor classification are counted.
    """
    relets = DEMAND_ENGINE.apply(points, FilterState({"let_type": RELET})).records
    return monthly_matrix(
        relets,
        lambda p: p.tenancy_end_month,
        lambda p: p.locality,
        LOCALITIES,
        start,
        months,
    )


def get_locality_chart_data(
    points: Sequence[NormalizedDemandPoint],
    start: str = SUMMARY_START,
    months: int = SUMMARY_MONTHS,
) -> pd.DataFrame:
    """Long-format month/locality/count rows for the stacked locality chart.

    Counts every demand point in the window, whatever its let type.
    """
    matrix = monthly_matrix(
        points,
        lambda p: p.tenancy_end_month,
        lambda p: p.locality,
        LOCALITIES,
        start,
        months,
    )
    body = matrix.drop(index="Total", columns="Total")
    long = body.reset_index().melt(id_vars="Locality", var_name="Month", value_name="Count")
    return long[["Month", "Locality", "Count"]]


def get_demand_monthly_series(points: Sequence[NormalizedDemandPoint], start: str = SUMMARY_START) -> list:
    """Relet counts per month over the fixed window, zero-filled."""
    relets = DEMAND_ENGINE.apply(points, FilterState({"let_type": RELET})).records
    return fixed_window_series(relets, lambda p: p.tenancy_end_month, start)


# ---------------------------------------------------------------------------
# Live submissions
# ---------------------------------------------------------------------------
def default_live_range(today: date | None = None) -> tuple[date, date]:
    end = today or date.today()
    return end - timedelta(days=LIVE_WINDOW_DAYS), end


def get_live_submissions(
    surveys: Sequence[NormalizedSurvey],
    filters: Mapping[str, Any] | FilterState | None = None,
    date_range: tuple[date, date] | None = None,
) -> dict:
    """Surveys for the live map: located, dated and inside the date range.

    The end date is inclusive to the end of that day.
    """
    state = _state(filters, SURVEY_FACETS).select("date_range", date_range or default_live_range())
    located = [s for s in surveys if s.location is not None and s.submitted_at is not None]
    records = list(SURVEY_ENGINE.apply(located, state).records)
    features = survey_features(records)

    return {
        "surveys": records,
        "count": len(records),
        "features": features,
        "unmapped_count": len(records) - len(features),
        "date_range": state.get("date_range"),
        "surveyors": facet_options(located, lambda s: s.surveyor_name),
        "visit_types": facet_options(located, lambda s: s.visit_type),
        "void_types": facet_options(located, lambda s: s.void_type),
    }


# ---------------------------------------------------------------------------
# Submission list
# ---------------------------------------------------------------------------
def get_submission_list(surveys: Sequence[NormalizedSurvey]) -> pd.DataFrame:
    """All submissions, most recent first; undated ones last."""
    ordered = sorted(
        surveys,
        key=lambda s: (s.submitted_at is None, -(s.submitted_at.value if s.submitted_at is not None else 0)),
    )
    return pd.DataFrame(
        [
            {
                "Surveyor": survey.surveyor_name,
                "Property": survey.property_address,
                "Total Cost": round(survey.totals.cost, 2),
                "Submitted": _format_timestamp(survey.submitted_at) or UNKNOWN,
            }
            for survey in ordered
        ],
        columns=EXPORT_COLUMNS["submissions"],
    )
