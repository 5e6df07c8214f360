"""
Filter engine: composable facet predicates over normalized entities.

Active facets combine by logical AND, so the order they are selected in
never matters. Every call to FilterEngine.apply starts from the full cache
it is given; clearing a facet therefore cannot leave stale exclusions behind.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Sequence

import pandas as pd

from .config import ALL, RELET, UNCLASSIFIED_VOID
from .transforms import (
    LineItem,
    NormalizedDemandPoint,
    NormalizedSurvey,
    has_gifted_items,
    has_recharge_work,
    matches_gift_type,
)

logger = logging.getLogger(__name__)


def is_unconstrained(value: Any) -> bool:
    return value is None or value == "" or value == ALL


@dataclass(frozen=True)
class Facet:
    """A named filter dimension.

    ``predicate(record, value)`` decides record membership. A facet with an
    ``item_predicate(item, value)`` works at line-item level: a record passes
    when any of its scoped line items matches, and only matching items are
    carried into the line-item projection.
    """

    name: str
    predicate: Callable[[Any, Any], bool] | None = None
    item_predicate: Callable[[LineItem, Any], bool] | None = None

    @property
    def is_line_item(self) -> bool:
        return self.item_predicate is not None


@dataclass(frozen=True)
class FilterState:
    """Facet name -> selected value. Unset facets are unconstrained."""

    selections: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "selections", MappingProxyType(dict(self.selections)))

    def select(self, name: str, value: Any) -> FilterState:
        updated = dict(self.selections)
        if is_unconstrained(value):
            updated.pop(name, None)
        else:
            updated[name] = value
        return FilterState(updated)

    def reset(self) -> FilterState:
        return FilterState()

    def active(self) -> dict[str, Any]:
        return {k: v for k, v in self.selections.items() if not is_unconstrained(v)}

    def get(self, name: str, default: Any = ALL) -> Any:
        return self.selections.get(name, default)


@dataclass(frozen=True)
class LineItemMatch:
    record: Any
    item: LineItem


@dataclass(frozen=True)
class FilterResult:
    """Parallel projections of one filter pass.

    candidates : records passing the record-level facets.
    records    : candidates that also pass every active line-item facet.
    line_items : scoped line items of ``records`` matching every line-item facet.
    """

    candidates: tuple = ()
    records: tuple = ()
    line_items: tuple[LineItemMatch, ...] = ()

    @property
    def records_with_line_items(self) -> list:
        seen: set[int] = set()
        ordered = []
        for match in self.line_items:
            if id(match.record) not in seen:
                seen.add(id(match.record))
                ordered.append(match.record)
        return ordered


class FilterEngine:
    """Evaluate a FilterState over a full record set.

    Parameters
    ----------
    facets : The facet vocabulary this engine understands.
    line_items : Maps a record to the line items in scope for this view.
    line_item_predicate : Keeps only line items meaningful for this view.
    """

    def __init__(
        self,
        facets: Iterable[Facet],
        line_items: Callable[[Any], Iterable[LineItem]] | None = None,
        line_item_predicate: Callable[[LineItem], bool] | None = None,
    ):
        self.facets = {facet.name: facet for facet in facets}
        self._line_items = line_items
        self._line_item_predicate = line_item_predicate

    def scoped_items(self, record: Any) -> list[LineItem]:
        if self._line_items is None:
            return []
        items = self._line_items(record)
        if self._line_item_predicate is None:
            return list(items)
        return [item for item in items if self._line_item_predicate(item)]

    def apply(self, records: Sequence, state: FilterState) -> FilterResult:
        active = state.active()
        unknown = set(active) - set(self.facets)
        if unknown:
            raise KeyError(f"Unknown facet(s): {sorted(unknown)}")

        record_facets = [
            (self.facets[name], value)
            for name, value in active.items()
            if not self.facets[name].is_line_item
        ]
        item_facets = [
            (self.facets[name], value)
            for name, value in active.items()
            if self.facets[name].is_line_item
        ]

        candidates = [
            record
            for record in records
            if all(facet.predicate(record, value) for facet, value in record_facets)
        ]

        passing = []
        matches = []
        for record in candidates:
            items = [
                item
                for item in self.scoped_items(record)
                if all(facet.item_predicate(item, value) for facet, value in item_facets)
            ]
            if item_facets and not items:
                continue
            passing.append(record)
            matches.extend(LineItemMatch(record, item) for item in items)

        logger.debug(
            "Filter %s: %d candidates, %d records, %d line items",
            active, len(candidates), len(passing), len(matches),
        )
        return FilterResult(tuple(candidates), tuple(passing), tuple(matches))


def normalize_filters(raw: Mapping[str, Any] | None, facets: Iterable[Facet]) -> FilterState:
    """Build a FilterState from raw UI selections, dropping unknown facets."""
    known = {facet.name for facet in facets}
    selections = {}
    for name, value in (raw or {}).items():
        if name not in known:
            logger.warning("Ignoring unknown facet '%s'", name)
            continue
        if isinstance(value, str):
            value = value.strip()
        if not is_unconstrained(value):
            selections[name] = value
    return FilterState(selections)


def facet_options(records: Iterable, key_fn: Callable[[Any], Any]) -> list:
    """Sorted distinct non-empty values for a facet dropdown."""
    values = {key_fn(record) for record in records}
    return sorted(v for v in values if v not in (None, ""))


# ---------------------------------------------------------------------------
# Survey facets
# ---------------------------------------------------------------------------
def _in_date_range(survey: NormalizedSurvey, value: tuple[date, date]) -> bool:
    if survey.submitted_at is None:
        return False
    start, end = value
    lower = pd.Timestamp(start)
    upper = pd.Timestamp(end) + pd.Timedelta(days=1) - pd.Timedelta(microseconds=1)
    return lower <= survey.submitted_at <= upper


def _as_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "y", "1")
    return bool(value)


def _surveyor_casefold(survey: NormalizedSurvey, value: str) -> bool:
    return survey.surveyor_name.strip().casefold() == str(value).strip().casefold()


SURVEY_FACETS = [
    Facet("surveyor", lambda s, v: s.surveyor_name == v),
    Facet("surveyor_ci", _surveyor_casefold),
    Facet("month", lambda s, v: s.month == v),
    Facet("work_type", item_predicate=lambda item, v: item.description == v),
    Facet("recharge_present", lambda s, v: has_recharge_work(s) == _as_flag(v)),
    Facet("gifted_present", lambda s, v: has_gifted_items(s) == _as_flag(v)),
    Facet("gift_type", lambda s, v: has_gifted_items(s) and matches_gift_type(s.gifted_notes, v)),
    Facet("visit_type", lambda s, v: s.visit_type == v),
    Facet("void_type", lambda s, v: s.void_type == v),
    Facet("date_range", _in_date_range),
]


# ---------------------------------------------------------------------------
# Historic demand facets
# ---------------------------------------------------------------------------
def _let_type_matches(point: NormalizedDemandPoint, value: str) -> bool:
    if point.let_type != value:
        return False
    # A relet without a major/minor classification is not countable demand
    return not (value == RELET and point.void_type.lower() == UNCLASSIFIED_VOID)


DEMAND_FACETS = [
    Facet("let_type", _let_type_matches),
    Facet("void_type", lambda p, v: p.void_type == v),
    Facet("locality", lambda p, v: p.locality == v),
    Facet("month", lambda p, v: p.tenancy_end_month == v),
]
