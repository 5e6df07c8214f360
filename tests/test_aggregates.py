import pytest

from voids_dashboard.config import CONTRACTOR_COST_BOUNDARIES, CONTRACTOR_COST_LABELS
from voids_dashboard.kpis import (
    aggregate,
    bandify,
    fixed_window_series,
    format_percentage,
    group_count,
    group_sum,
    monthly_matrix,
    percentage,
    safe_mean,
    sum_by,
    time_series,
    top_n,
)

RECORDS = [
    {"who": "a", "cost": 100, "month": "2024-04"},
    {"who": "b", "cost": 101, "month": "2024-06"},
    {"who": "a", "cost": "250", "month": "2024-04"},
    {"who": "c", "cost": 900, "month": "Unknown"},
    {"who": "b", "month": "2024-05"},
]


def test_group_count_sums_to_record_count():
    counts = group_count(RECORDS, lambda r: r["who"])
    assert counts == {"a": 2, "b": 2, "c": 1}
    assert sum(counts.values()) == len(RECORDS)


def test_group_sum_treats_missing_values_as_zero():
    sums = group_sum(RECORDS, lambda r: r["who"], lambda r: r["cost"])
    assert sums == {"a": 350.0, "b": 101.0, "c": 900.0}


def test_sum_by_coerces_strings():
    assert sum_by(RECORDS, lambda r: r["cost"]) == 1351.0


def test_bandify_upper_bounds_are_inclusive():
    bands = bandify(RECORDS, lambda r: r["cost"], CONTRACTOR_COST_BOUNDARIES, CONTRACTOR_COST_LABELS)
    assert [(band.label, band.count) for band in bands] == [
        ("£0-100", 2),
        ("£101-250", 2),
        ("£251-500", 0),
        ("£501+", 1),
    ]


def test_band_counts_sum_to_record_count():
    bands = bandify(RECORDS, lambda r: r["cost"], [50, 500])
    assert sum(band.count for band in bands) == len(RECORDS)
    assert bands[-1].upper is None


def test_bandify_without_boundaries_uses_one_overflow_band():
    bands = bandify(RECORDS, lambda r: r["cost"], [])
    assert [(band.label, band.count, band.upper) for band in bands] == [("All", len(RECORDS), None)]


def test_bandify_rejects_mismatched_labels():
    with pytest.raises(ValueError):
        bandify(RECORDS, lambda r: r["cost"], [100, 200], ["one", "two"])


def test_top_n_is_descending_and_stable_on_ties():
    counts = {"x": 1, "y": 3, "z": 1, "w": 2}
    assert top_n(counts) == [("y", 3), ("w", 2), ("x", 1), ("z", 1)]
    assert top_n(counts, 2) == [("y", 3), ("w", 2)]


def test_time_series_is_chronological_and_skips_unknown():
    series = time_series(RECORDS, lambda r: r["month"], lambda r: r["cost"])
    assert [point.period for point in series] == ["2024-04", "2024-05", "2024-06"]
    assert [point.label for point in series] == ["Apr 24", "May 24", "Jun 24"]
    assert series[0].count == 2
    assert series[0].sum == 350.0


def test_fixed_window_series_always_has_thirteen_points():
    series = fixed_window_series(RECORDS, lambda r: r["month"], "2024-03")
    assert len(series) == 13
    assert series[0].label == "Mar 24"
    assert series[-1].label == "Mar 25"
    assert [point.count for point in series[:4]] == [0, 2, 1, 1]


def test_fixed_window_series_on_empty_input_is_zero_filled():
    series = fixed_window_series([], lambda r: r["month"], "2024-03")
    assert len(series) == 13
    assert all(point.count == 0 for point in series)


def test_monthly_matrix_counts_rows_and_totals():
    table = monthly_matrix(RECORDS, lambda r: r["month"], lambda r: r["who"], ["a", "b"], "2024-04", 3)

    assert list(table.columns) == ["Apr 24", "May 24", "Jun 24", "Total"]
    assert list(table.index) == ["a", "b", "Total"]
    assert table.loc["a", "Apr 24"] == 2
    assert table.loc["b", "Total"] == 2
    assert table.loc["Total", "Total"] == 4


def test_percentage_not_applicable_on_zero_denominator():
    assert percentage(1, 2) == 50.0
    assert percentage(0, 0) is None
    assert percentage(5, 0) is None
    assert format_percentage(None) == "N/A"
    assert format_percentage(50.0) == "50.0%"


def test_safe_mean():
    assert safe_mean(10, 4) == 2.5
    assert safe_mean(10, 0) is None


def test_aggregate_bundles_results():
    result = aggregate(
        RECORDS,
        lambda r: r["who"],
        lambda r: r["cost"],
        lambda r: r["month"],
        CONTRACTOR_COST_BOUNDARIES,
        CONTRACTOR_COST_LABELS,
    )
    assert result.grouped_counts == {"a": 2, "b": 2, "c": 1}
    assert sum(band.count for band in result.bands) == len(RECORDS)
    assert len(result.time_series) == 3
