from datetime import datetime, timezone

import pandas as pd

from voids_dashboard.config import CONTRACTOR_CATEGORY, UNCATEGORISED, UNKNOWN
from voids_dashboard.loaders.utils import (
    coerce_coordinate,
    coerce_number,
    month_key,
    month_label,
    month_range,
    parse_date,
)
from voids_dashboard.transforms import (
    LineItem,
    Location,
    classify_gift,
    flatten_line_items,
    has_contractor_work,
    has_gifted_items,
    has_recharge_work,
    is_flagged_recharge,
    is_meaningful_line_item,
    is_recharge_candidate,
    matches_gift_type,
    normalize_demand_point,
    normalize_survey,
    normalize_surveys,
    tag_line_items,
)


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------
def test_coerce_number_handles_strings_and_junk():
    assert coerce_number("120") == 120.0
    assert coerce_number(" 7.5 ") == 7.5
    assert coerce_number("") == 0.0
    assert coerce_number("abc") == 0.0
    assert coerce_number(None) == 0.0
    assert coerce_number(float("nan")) == 0.0
    assert coerce_number(True) == 1.0


def test_coerce_coordinate_rejects_non_finite():
    assert coerce_coordinate("51.5") == 51.5
    assert coerce_coordinate("nan") is None
    assert coerce_coordinate(None) is None
    assert coerce_coordinate("north") is None


def test_parse_date_accepts_iso_and_converts_to_naive_utc():
    ts = parse_date("2024-04-10T09:30:00+01:00")
    assert ts == pd.Timestamp("2024-04-10 08:30:00")
    assert ts.tzinfo is None


def test_parse_date_accepts_objects_with_to_datetime():
    class FirestoreTimestamp:
        def to_datetime(self):
            return datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    assert parse_date(FirestoreTimestamp()) == pd.Timestamp("2024-06-01 12:00:00")


def test_parse_date_returns_none_for_garbage():
    assert parse_date("garbage") is None
    assert parse_date("") is None
    assert parse_date(None) is None


def test_month_helpers():
    assert month_key(pd.Timestamp("2024-04-15")) == "2024-04"
    assert month_key(None) == UNKNOWN
    assert month_label("2024-04") == "Apr 24"
    assert month_range("2024-11", 3) == ["2024-11", "2024-12", "2025-01"]


# ---------------------------------------------------------------------------
# Line items
# ---------------------------------------------------------------------------
def test_flatten_line_items_handles_list_mapping_and_other_shapes():
    assert flatten_line_items([{"a": 1}, "junk"]) == [{"a": 1}]
    assert flatten_line_items({"x": [{"a": 1}], "y": [{"b": 2}], "z": "nope"}) == [{"a": 1}, {"b": 2}]
    assert flatten_line_items(None) == []
    assert flatten_line_items("text") == []


def test_tag_line_items_flattens_nested_sections_and_bare_lists():
    tagged = tag_line_items({"internal": {"kitchen": [{"code": "1"}], "bath": [{"code": "2"}]}})
    assert [category for category, _ in tagged] == ["internal", "internal"]

    bare = tag_line_items([{"code": "1"}])
    assert bare == [(UNCATEGORISED, {"code": "1"})]


def test_meaningful_line_item_rule():
    assert is_meaningful_line_item(LineItem(CONTRACTOR_CATEGORY, cost=120))
    assert is_meaningful_line_item(LineItem(CONTRACTOR_CATEGORY, description="Fencing"))
    assert is_meaningful_line_item(LineItem(CONTRACTOR_CATEGORY, comment="see photo"))
    assert not is_meaningful_line_item(LineItem(CONTRACTOR_CATEGORY, description="   ", comment=""))


def test_recharge_predicates_differ_on_signal_source():
    time_only = LineItem("internal", quantity=1, recharge_time=30)
    flagged = LineItem("internal", quantity=2, recharge=True)
    no_quantity = LineItem("internal", quantity=0, recharge=True, recharge_cost=40)

    assert is_recharge_candidate(time_only)
    assert not is_flagged_recharge(time_only)
    assert is_recharge_candidate(flagged) and is_flagged_recharge(flagged)
    assert not is_recharge_candidate(no_quantity)
    assert not is_flagged_recharge(no_quantity)


# ---------------------------------------------------------------------------
# Surveys
# ---------------------------------------------------------------------------
def test_normalize_survey_reads_all_fields(raw_surveys):
    survey = normalize_survey(raw_surveys[0])

    assert survey.id == "s1"
    assert survey.surveyor_name == "Alice"
    assert survey.month == "2024-04"
    assert survey.location == Location(lat=51.45, lng=-2.58)
    assert survey.gifted_notes == "  carpets and curtains  "
    assert survey.totals.cost == 950.5
    assert survey.totals.recharge_days_decimal == 0.5
    assert len(survey.line_items) == 4

    handle = survey.line_items[2]
    assert handle.code == "201001"
    assert handle.quantity == 2.0
    assert handle.recharge is True


def test_normalize_survey_falls_back_to_timestamp_and_total_cost(raw_surveys):
    survey = normalize_survey(raw_surveys[1])

    assert survey.submitted_at == pd.Timestamp("2024-05-02 14:00:00")
    assert survey.month == "2024-05"
    assert survey.totals.cost == 420.0
    assert survey.location == Location(lat=51.86, lng=-2.24)


def test_normalize_survey_defaults_missing_and_bad_values(raw_surveys):
    garbage_date = normalize_survey(raw_surveys[2])
    assert garbage_date.submitted_at is None
    assert garbage_date.month == UNKNOWN
    assert garbage_date.location is None
    assert garbage_date.line_items[0].category == UNCATEGORISED

    blank = normalize_survey(raw_surveys[3])
    assert blank.surveyor_name == UNKNOWN
    assert blank.void_type == UNKNOWN
    assert blank.location is None
    assert blank.line_items == ()


def test_normalize_survey_never_raises_on_empty_record():
    survey = normalize_survey({})
    assert survey.surveyor_name == UNKNOWN
    assert survey.line_items == ()
    assert survey.totals.cost == 0.0


def test_normalize_survey_reads_geopoint_objects():
    class GeoPoint:
        latitude = 51.0
        longitude = -2.0

    assert normalize_survey({"location": GeoPoint()}).location == Location(51.0, -2.0)


def test_normalization_is_deterministic(raw_surveys):
    assert normalize_surveys(raw_surveys) == normalize_surveys(raw_surveys)


def test_normalize_surveys_skips_non_mappings(raw_surveys):
    assert len(normalize_surveys([*raw_surveys, "junk", None])) == len(raw_surveys)


def test_survey_level_predicates(surveys):
    s1, s2, s3, s4 = surveys
    assert has_contractor_work(s1) and has_contractor_work(s2)
    assert not has_contractor_work(s3)
    assert has_recharge_work(s1) and has_recharge_work(s2)
    assert not has_recharge_work(s3) and not has_recharge_work(s4)
    assert has_gifted_items(s4) and not has_gifted_items(s3)


def test_whitespace_only_gift_note_still_counts_as_gifted():
    survey = normalize_survey({"giftedItemsNotes": "   "})
    assert survey.gifted_notes == "   "
    assert has_gifted_items(survey)


# ---------------------------------------------------------------------------
# Gifting
# ---------------------------------------------------------------------------
def test_classify_gift_matches_each_keyword_group():
    assert classify_gift("carpets and curtains") == ("flooring", "windowCoverings")
    assert classify_gift("shed") == ("shed",)
    assert classify_gift("washing machine") == ("other",)


def test_matches_gift_type_supports_other_and_free_text():
    assert matches_gift_type("vinyl in kitchen", "flooring")
    assert matches_gift_type("washing machine", "other")
    assert not matches_gift_type("blinds", "other")
    assert matches_gift_type("washing machine", "Washing")


# ---------------------------------------------------------------------------
# Historic demand
# ---------------------------------------------------------------------------
def test_normalize_demand_point_reads_csv_columns(raw_demand):
    point = normalize_demand_point(raw_demand[0])
    assert point.let_type == "Relet"
    assert point.void_type == "Major"
    assert point.locality == "WOE"
    assert point.tenancy_end_month == "2024-04"
    assert (point.lat, point.lng) == (51.45, -2.58)


def test_normalize_demand_point_reads_lowercase_locality_and_string_coords(raw_demand):
    point = normalize_demand_point(raw_demand[1])
    assert point.locality == "Glouc"
    assert point.lat == 51.86


def test_normalize_demand_point_defaults(raw_demand):
    point = normalize_demand_point(raw_demand[4])
    assert point.tenancy_end_month == UNKNOWN
    assert point.postcode == ""
    assert point.local_authority == UNKNOWN

    missing = normalize_demand_point(raw_demand[2])
    assert missing.lat is None and missing.lng is None
