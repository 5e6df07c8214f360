"""
Empty Homes Hub — End-to-end voids analytics pipeline.

Fetches survey and historic demand documents, normalizes them, runs every
dashboard entry point and prints smoke-test summaries.

Usage:
    python main.py

Set VOIDS_SNAPSHOT_FILE to a JSON export, or VOIDS_FIRESTORE_PROJECT to a
Firestore project, to read real documents; otherwise simulated ones are used.
"""

import logging

from voids_dashboard.config import (
    DEFAULT_DEMAND_STYLE,
    DEMAND_COLLECTION,
    DEMAND_FETCH_LIMIT,
    DEMAND_LAYER,
    SURVEYS_COLLECTION,
)
from voids_dashboard.dashboard import (
    get_contractor_overview,
    get_demand_overview,
    get_demand_summary_table,
    get_gifting_overview,
    get_live_submissions,
    get_recharge_overview,
    get_submission_list,
)
from voids_dashboard.kpis import format_percentage
from voids_dashboard.loaders import RecordCache, build_default_gateway
from voids_dashboard.map_layers import MapLayerSynchronizer, PlotlyMapSurface, demand_popup
from voids_dashboard.transforms import normalize_demand_points, normalize_surveys

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def main() -> None:
    """Run the full analytics pipeline and print smoke-test outputs."""

    print("=" * 70)
    print("  EMPTY HOMES HUB — Voids Dashboard Analytics")
    print("  Pipeline Smoke Test")
    print("=" * 70)
    print()

    # ------------------------------------------------------------------
    # 1. Fetch and normalize
    # ------------------------------------------------------------------
    print("[ 1 ] FETCHING DOCUMENTS")
    print("-" * 40)

    gateway = build_default_gateway()
    survey_cache = RecordCache(gateway, SURVEYS_COLLECTION)
    demand_cache = RecordCache(gateway, DEMAND_COLLECTION, DEMAND_FETCH_LIMIT)
    survey_cache.refresh()
    demand_cache.refresh()

    surveys = survey_cache.normalized(normalize_surveys)
    points = demand_cache.normalized(normalize_demand_points)
    print(f"\nSurveys: {len(survey_cache.records)} documents, {len(surveys)} normalized")
    print(f"Demand points: {len(demand_cache.records)} documents, {len(points)} normalized")

    # ------------------------------------------------------------------
    # 2. Survey dashboards
    # ------------------------------------------------------------------
    print("\n")
    print("[ 2 ] SURVEY DASHBOARDS")
    print("-" * 40)

    contractor = get_contractor_overview(surveys)
    print("\nContractor work:")
    print(f"  Submissions: {contractor['total_submissions']}")
    print(f"  With contractor work: {contractor['voids_with_contractor']} "
          f"({format_percentage(contractor['contractor_pct'])})")
    print(f"  Total cost: £{contractor['total_cost']:,.2f}")
    print(f"  Total time: {contractor['total_time_hours']:.1f} h")
    for band in contractor["cost_bands"]:
        print(f"    {band.label:>10}: {band.count}")

    recharge = get_recharge_overview(surveys)
    print("\nRecharges:")
    print(f"  With recharge: {recharge['voids_with_recharge']} "
          f"({format_percentage(recharge['with_recharge_pct'])})")
    print(f"  Total recharge cost: £{recharge['total_cost']:,.2f}")
    print(f"  Total recharge time: {recharge['total_time_mins']:,.0f} mins")
    for description, quantity in recharge["top_descriptions"][:5]:
        print(f"    {description}: {quantity:g}")

    gifting = get_gifting_overview(surveys)
    print("\nGifting:")
    print(f"  Gifted: {gifting['total_gifted']} ({format_percentage(gifting['gifted_pct'])})")
    print(f"  Categories: {gifting['categories']}")

    submissions = get_submission_list(surveys)
    print(f"\nLatest submissions ({len(submissions)} total):")
    print(submissions.head(5).to_string(index=False))

    # ------------------------------------------------------------------
    # 3. Historic demand
    # ------------------------------------------------------------------
    print("\n")
    print("[ 3 ] HISTORIC DEMAND")
    print("-" * 40)

    demand = get_demand_overview(points)
    print(f"\nVisible points: {demand['visible_count']} "
          f"({demand['unmapped_count']} without coordinates)")
    print(f"By locality: {demand['by_locality']}")

    summary = get_demand_summary_table(points)
    print("\nRelet summary:")
    print(summary.to_string())

    # ------------------------------------------------------------------
    # 4. Map layers
    # ------------------------------------------------------------------
    print("\n")
    print("[ 4 ] MAP LAYERS")
    print("-" * 40)

    surface = PlotlyMapSurface()
    sync = MapLayerSynchronizer(
        surface,
        DEMAND_LAYER["source_id"],
        DEMAND_LAYER["layer_id"],
        DEMAND_LAYER["paint"],
        demand_popup,
    )
    sync.mount(DEFAULT_DEMAND_STYLE)
    sync.set_features(demand["features"])
    surface.finish_style_load()
    print(f"\nMap state: {sync.state.value}, style '{sync.style}', "
          f"{len(sync.features)} features, layers {list(surface.layers)}")

    live = get_live_submissions(surveys, date_range=submission_span(surveys))
    print(f"Live submissions in range: {live['count']} ({len(live['features'])} mapped)")

    # ------------------------------------------------------------------
    # 5. Acceptance checks
    # ------------------------------------------------------------------
    print("\n")
    print("[ 5 ] ACCEPTANCE CHECKS")
    print("-" * 40)

    check1 = sum(band.count for band in contractor["cost_bands"]) == len(contractor["table"])
    print(f"\n  [{'PASS' if check1 else 'FAIL'}] Cost bands cover every contractor item")

    check2 = summary.shape[1] == 14
    print(f"  [{'PASS' if check2 else 'FAIL'}] Summary table has 13 months plus Total")

    check3 = surface.has_source(DEMAND_LAYER["source_id"]) and len(surface.layers) >= 1
    print(f"  [{'PASS' if check3 else 'FAIL'}] Demand layer is on the map")

    check4 = list(contractor["table"].columns) == ["Surveyor", "Property", "Description", "Cost", "Comment", "Submitted At"]
    print(f"  [{'PASS' if check4 else 'FAIL'}] Contractor export columns in order")

    print("\n" + "=" * 70)
    print("  Pipeline complete.")
    print("=" * 70)


def submission_span(surveys):
    """First and last submission dates, or None when nothing is dated."""
    dated = [s.submitted_at for s in surveys if s.submitted_at is not None]
    if not dated:
        return None
    return min(dated).date(), max(dated).date()


if __name__ == "__main__":
    main()
