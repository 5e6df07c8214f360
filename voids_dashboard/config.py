"""
Configuration: collection names, facet vocabulary, bands, map styles, constants.

Everything a dashboard needs to agree on with the others lives here, so that
tables, charts and the map bucket and colour records the same way.
"""

import os

# ---------------------------------------------------------------------------
# Document store
# ---------------------------------------------------------------------------
SURVEYS_COLLECTION = "surveys"
DEMAND_COLLECTION = "historicDemand"

# Upper bound on historic demand documents fetched in one read
DEMAND_FETCH_LIMIT = 5000

# Optional overrides read by main.py / app.py
SNAPSHOT_FILE = os.environ.get("VOIDS_SNAPSHOT_FILE", "")
FIRESTORE_PROJECT = os.environ.get("VOIDS_FIRESTORE_PROJECT", "")

# ---------------------------------------------------------------------------
# Normalisation sentinels
# ---------------------------------------------------------------------------
UNKNOWN = "Unknown"
UNCATEGORISED = "Uncategorised"

# Shown in tables and cards where a value is missing or undefined
NOT_AVAILABLE = "N/A"

# Survey category holding quoted contractor work
CONTRACTOR_CATEGORY = "contractor work"

# ---------------------------------------------------------------------------
# Facets
# ---------------------------------------------------------------------------
# Selecting ALL (or leaving a facet empty) leaves it unconstrained
ALL = "All"

RELET = "Relet"
UNCLASSIFIED_VOID = "n/a"

LET_TYPES = ["Relet", "New Build"]
VOID_TYPES = ["Major", "Minor"]
LOCALITIES = ["WOE", "Glouc", "S&M", "Central"]

# ---------------------------------------------------------------------------
# Bands and windows
# ---------------------------------------------------------------------------
# Inclusive upper bounds; anything above the last lands in the overflow band
CONTRACTOR_COST_BOUNDARIES = [100, 250, 500]
CONTRACTOR_COST_LABELS = ["£0-100", "£101-250", "£251-500", "£501+"]

TOP_N = 10

# Fixed demand summary window: March 2024 to March 2025
SUMMARY_START = "2024-03"
SUMMARY_MONTHS = 13

# Live submissions map looks back this many days by default
LIVE_WINDOW_DAYS = 30

# ---------------------------------------------------------------------------
# Gifting keyword groups
# ---------------------------------------------------------------------------
# Order matters: a note is counted once per matching group, in this order
GIFT_CATEGORIES: dict[str, list[str]] = {
    "flooring": ["carpet", "vinyl", "laminate", "floor", "flooring"],
    "windowCoverings": ["curtain", "blind"],
    "shed": ["shed"],
}
GIFT_OTHER = "other"

GIFT_LABELS = {
    "flooring": "Flooring",
    "windowCoverings": "Window Coverings",
    "shed": "Shed",
    "other": "Other",
}

# ---------------------------------------------------------------------------
# Map
# ---------------------------------------------------------------------------
MAP_STYLES = {
    "Streets": "streets",
    "Outdoors": "outdoors",
    "Light": "light",
    "Satellite": "satellite-streets",
}
DEFAULT_DEMAND_STYLE = "streets"
DEFAULT_LIVE_STYLE = "light"

MAP_CENTER = {"lat": 52.5, "lon": -1.9}
MAP_ZOOM = 7

# Popups kept for display after map clicks
POPUP_HISTORY = 3

LOCALITY_COLORS = {
    "WOE": "#1d4ed8",
    "Glouc": "#16a34a",
    "S&M": "#f59e0b",
    "Central": "#dc2626",
}
DEFAULT_POINT_COLOR = "#6b7280"

# Points outside these bounds are treated as implausible and left off the map
COORDINATE_BOUNDS = {
    "lat_min": 49.0,
    "lat_max": 61.0,
    "lng_min": -8.0,
    "lng_max": 2.0,
}

DEMAND_LAYER = {
    "source_id": "historicDemand",
    "layer_id": "demand-points",
    "paint": {
        "circle-radius": 5,
        "circle-color": ["get", "color"],
        "circle-opacity": 0.7,
    },
}
LIVE_LAYER = {
    "source_id": "liveDemand",
    "layer_id": "live-demand-points",
    "paint": {
        "circle-radius": 6,
        "circle-color": ["get", "color"],
        "circle-opacity": 0.6,
    },
}

TERRAIN_SOURCE = "mapbox-dem"
TERRAIN_EXAGGERATION = 1.5
BUILDINGS_LAYER = "3d-buildings"

# ---------------------------------------------------------------------------
# Export column order, one list per dashboard table
# ---------------------------------------------------------------------------
EXPORT_COLUMNS: dict[str, list[str]] = {
    "contractor": ["Surveyor", "Property", "Description", "Cost", "Comment", "Submitted At"],
    "recharge": [
        "Property Address",
        "Surveyor",
        "Submitted",
        "Recharge Cost (£)",
        "Recharge Time (mins)",
        "Recharge Items",
    ],
    "gifting": ["Address", "Surveyor", "Gifted Items Notes"],
    "submissions": ["Surveyor", "Property", "Total Cost", "Submitted"],
}

PDF_TITLES = {
    "contractor": "Contractor Work Detail Table",
    "recharge": "Recharge Detail Table",
    "gifting": "Gifted Items",
    "submissions": "Survey Submissions",
}
