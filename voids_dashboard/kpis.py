"""
Aggregation functions — pure functions with no side effects.

Provides grouped counts and sums, value banding, monthly time series, the
fixed-window demand summary and the percentage helper shared by every
dashboard card.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Sequence

import pandas as pd

from .config import NOT_AVAILABLE, SUMMARY_MONTHS, UNKNOWN
from .loaders.utils import coerce_number, month_label, month_range, month_sort_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Band:
    label: str
    count: int
    upper: float | None = None


@dataclass(frozen=True)
class TimeSeriesPoint:
    period: str
    label: str
    count: int = 0
    sum: float = 0.0


@dataclass
class AggregationResult:
    grouped_counts: dict[str, int] = field(default_factory=dict)
    grouped_sums: dict[str, float] = field(default_factory=dict)
    bands: list[Band] = field(default_factory=list)
    time_series: list[TimeSeriesPoint] = field(default_factory=list)


def _safe_value(record: Any, value_fn: Callable[[Any], Any]) -> float:
    try:
        return coerce_number(value_fn(record))
    except (LookupError, AttributeError, TypeError):
        logger.debug("Missing value on %r, counting as 0", record)
        return 0.0


def group_count(records: Iterable, key_fn: Callable[[Any], Any]) -> dict:
    """Count records per key, keys in first-seen order."""
    counts: dict = {}
    for record in records:
        key = key_fn(record)
        counts[key] = counts.get(key, 0) + 1
    return counts


def group_sum(records: Iterable, key_fn: Callable[[Any], Any], value_fn: Callable[[Any], Any]) -> dict:
    """Sum value_fn per key, keys in first-seen order."""
    sums: dict = {}
    for record in records:
        key = key_fn(record)
        sums[key] = sums.get(key, 0.0) + _safe_value(record, value_fn)
    return sums


def top_n(
    counts: dict,
    n: int | None = None,
    key: Callable[[Any], float] | None = None,
) -> list[tuple]:
    """Sort (key, value) pairs by descending value; ties keep their order.

    key extracts the sort value from each mapping value (defaults to the
    value itself, for plain counts).
    """
    extract = key or (lambda value: value)
    ranked = sorted(counts.items(), key=lambda pair: -extract(pair[1]))
    return ranked if n is None else ranked[:n]


def sum_by(records: Iterable, value_fn: Callable[[Any], Any]) -> float:
    """Sum value_fn over records; missing or non-numeric values count as 0."""
    return sum(_safe_value(record, value_fn) for record in records)


def bandify(
    records: Iterable,
    value_fn: Callable[[Any], Any],
    boundaries: Sequence[float],
    labels: Sequence[str] | None = None,
) -> list[Band]:
    """Bucket records by value into ascending inclusive-upper-bound bands.

    A record lands in the first band whose upper bound is >= its value;
    values above the last boundary go to a final overflow band, so the band
    counts always add up to the number of records. With no boundaries every
    record lands in the single overflow band.
    """
    bounds = sorted(boundaries)
    if labels is None:
        labels = [f"<= {b:g}" for b in bounds] + ([f"> {bounds[-1]:g}"] if bounds else ["All"])
    if len(labels) != len(bounds) + 1:
        raise ValueError(f"Expected {len(bounds) + 1} labels, got {len(labels)}")

    counts = [0] * (len(bounds) + 1)
    for record in records:
        value = _safe_value(record, value_fn)
        for idx, upper in enumerate(bounds):
            if value <= upper:
                counts[idx] += 1
                break
        else:
            counts[-1] += 1

    uppers = list(bounds) + [None]
    return [Band(label, count, upper) for label, count, upper in zip(labels, counts, uppers)]


def time_series(
    records: Iterable,
    month_fn: Callable[[Any], str],
    value_fn: Callable[[Any], Any] | None = None,
) -> list[TimeSeriesPoint]:
    """One point per month present in records, in calendar order.

    Records in the Unknown bucket are left out.
    """
    counts: dict[str, int] = {}
    sums: dict[str, float] = {}
    for record in records:
        key = month_fn(record)
        if key == UNKNOWN:
            continue
        counts[key] = counts.get(key, 0) + 1
        if value_fn is not None:
            sums[key] = sums.get(key, 0.0) + _safe_value(record, value_fn)

    return [
        TimeSeriesPoint(key, month_label(key), counts[key], sums.get(key, 0.0))
        for key in sorted(counts, key=month_sort_key)
    ]


def fixed_window_series(
    records: Iterable,
    month_fn: Callable[[Any], str],
    start: str,
    months: int = SUMMARY_MONTHS,
    value_fn: Callable[[Any], Any] | None = None,
) -> list[TimeSeriesPoint]:
    """Exactly `months` consecutive points from start, zero-filled."""
    observed = {point.period: point for point in time_series(records, month_fn, value_fn)}
    return [
        observed.get(key, TimeSeriesPoint(key, month_label(key)))
        for key in month_range(start, months)
    ]


def monthly_matrix(
    records: Sequence,
    month_fn: Callable[[Any], str],
    row_fn: Callable[[Any], str],
    rows: Sequence[str],
    start: str,
    months: int = SUMMARY_MONTHS,
) -> pd.DataFrame:
    """Row x month count table over a fixed window, with totals.

    Returns
    -------
    DataFrame indexed by row label (plus "Total"), with one column per
    month label in the window and a final "Total" column. The Total row
    counts every record in the window, including rows not listed.
    """
    keys = month_range(start, months)
    labels = [month_label(key) for key in keys]
    index = {key: pos for pos, key in enumerate(keys)}

    table = {row: [0] * months for row in rows}
    totals = [0] * months
    for record in records:
        pos = index.get(month_fn(record))
        if pos is None:
            continue
        totals[pos] += 1
        row = row_fn(record)
        if row in table:
            table[row][pos] += 1

    df = pd.DataFrame.from_dict(table, orient="index", columns=labels)
    df.loc["Total"] = totals
    df["Total"] = df[labels].sum(axis=1)
    df.index.name = "Locality"
    return df.astype(int)


def percentage(numerator: float, denominator: float) -> float | None:
    """Return numerator / denominator * 100.

    Returns None ("not applicable") when the denominator is 0.
    """
    if not denominator:
        return None
    return numerator / denominator * 100


def safe_mean(total: float, count: int) -> float | None:
    """Average, or None when there is nothing to average."""
    if not count:
        return None
    return total / count


def format_percentage(value: float | None, decimals: int = 1) -> str:
    if value is None:
        return NOT_AVAILABLE
    return f"{value:.{decimals}f}%"


def aggregate(
    records: Sequence,
    key_fn: Callable[[Any], Any],
    value_fn: Callable[[Any], Any],
    month_fn: Callable[[Any], str],
    boundaries: Sequence[float],
    labels: Sequence[str] | None = None,
) -> AggregationResult:
    """Bundle the standard aggregates for one filtered record set."""
    result = AggregationResult(
        grouped_counts=group_count(records, key_fn),
        grouped_sums=group_sum(records, key_fn, value_fn),
        bands=bandify(records, value_fn, boundaries, labels),
        time_series=time_series(records, month_fn, value_fn),
    )
    logger.info(
        "Aggregated %d records into %d groups and %d months",
        len(records), len(result.grouped_counts), len(result.time_series),
    )
    return result
