"""
Empty Homes Hub — Interactive Voids Dashboard

Run with:  streamlit run app.py
"""

from datetime import date

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from voids_dashboard.charts import (
    band_figure,
    gift_category_figure,
    locality_stacked_figure,
    monthly_trend_figure,
    ranked_bar_figure,
    share_pie_figure,
)
from voids_dashboard.config import (
    ALL,
    DEFAULT_DEMAND_STYLE,
    DEFAULT_LIVE_STYLE,
    DEMAND_COLLECTION,
    DEMAND_FETCH_LIMIT,
    DEMAND_LAYER,
    GIFT_LABELS,
    LET_TYPES,
    LIVE_LAYER,
    LOCALITIES,
    MAP_STYLES,
    SURVEYS_COLLECTION,
    VOID_TYPES,
)
from voids_dashboard.dashboard import (
    default_live_range,
    get_available_months,
    get_contractor_overview,
    get_demand_overview,
    get_demand_summary_table,
    get_gifting_overview,
    get_live_submissions,
    get_locality_chart_data,
    get_recharge_overview,
    get_submission_list,
)
from voids_dashboard.exports import EXPORT_FORMATS, export_table
from voids_dashboard.filters import facet_options
from voids_dashboard.kpis import format_percentage
from voids_dashboard.loaders import RecordCache, build_default_gateway
from voids_dashboard.loaders.utils import month_label
from voids_dashboard.map_layers import (
    MapLayerSynchronizer,
    PlotlyMapSurface,
    demand_popup,
    live_popup,
)
from voids_dashboard.transforms import normalize_demand_points, normalize_surveys

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="Empty Homes Hub",
    page_icon="🏠",
    layout="wide",
    initial_sidebar_state="expanded",
)


# ---------------------------------------------------------------------------
# Data loading (cached)
# ---------------------------------------------------------------------------
@st.cache_resource
def load_caches() -> dict[str, RecordCache]:
    gateway = build_default_gateway()
    return {
        SURVEYS_COLLECTION: RecordCache(gateway, SURVEYS_COLLECTION),
        DEMAND_COLLECTION: RecordCache(gateway, DEMAND_COLLECTION, DEMAND_FETCH_LIMIT),
    }


caches = load_caches()
for cache in caches.values():
    cache.ensure_loaded()

surveys = caches[SURVEYS_COLLECTION].normalized(normalize_surveys)
points = caches[DEMAND_COLLECTION].normalized(normalize_demand_points)

# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
st.sidebar.title("Empty Homes Hub")
st.sidebar.markdown("Voids Dashboard")
st.sidebar.divider()

page = st.sidebar.radio(
    "Dashboard",
    ["Contractor Work", "Recharges", "Gifting", "Historic Demand", "Live Submissions", "Submissions"],
)

st.sidebar.divider()
if st.sidebar.button("Refresh data"):
    failed = [name for name, cache in caches.items() if not cache.refresh()]
    if failed:
        st.sidebar.warning(f"Could not refresh: {', '.join(failed)}. Showing previous data.")
    st.rerun()
st.sidebar.caption(f"{len(surveys)} surveys, {len(points)} demand points")


# ---------------------------------------------------------------------------
# Shared widgets
# ---------------------------------------------------------------------------
def month_select(label: str, records, month_fn, key: str) -> str:
    months = get_available_months(records, month_fn)
    return st.selectbox(
        label,
        [ALL, *months],
        format_func=lambda m: m if m == ALL else month_label(m),
        key=key,
    )


def export_buttons(df: pd.DataFrame, table: str, basename: str) -> None:
    cols = st.columns(len(EXPORT_FORMATS))
    for col, fmt in zip(cols, EXPORT_FORMATS):
        payload, mime = export_table(df, fmt, table)
        with col:
            st.download_button(
                f"Export {fmt.upper()}",
                payload,
                file_name=f"{basename}.{fmt}",
                mime=mime,
                key=f"{basename}_{fmt}",
            )


def metric_cards(cards: list[tuple[str, str]]) -> None:
    cols = st.columns(len(cards))
    for col, (label, value) in zip(cols, cards):
        with col:
            st.metric(label, value)


def money(value) -> str:
    return "N/A" if value is None else f"£{value:,.2f}"


def get_synchronizer(key: str, layer: dict, popup, style: str) -> MapLayerSynchronizer:
    """One synchronizer and surface per map page, kept across reruns."""
    if key not in st.session_state:
        sync = MapLayerSynchronizer(
            PlotlyMapSurface(),
            layer["source_id"],
            layer["layer_id"],
            layer["paint"],
            popup,
        )
        sync.mount(style)
        st.session_state[key] = sync
    return st.session_state[key]


def render_map(sync: MapLayerSynchronizer, style: str, features, key: str) -> None:
    if style != sync.style:
        sync.request_style(style)
    sync.set_features(features)
    surface = sync.surface
    surface.finish_style_load()

    event = st.plotly_chart(surface.to_figure(), use_container_width=True, on_select="rerun", key=key)
    selected = event["selection"]["points"] if event else []
    last_key = f"{key}_last_click"
    if selected:
        point = selected[0]
        layer_id, index = point["customdata"]
        click_id = (layer_id, index, sync.epoch)
        properties = surface.feature_properties(layer_id, int(index))
        if properties is not None and st.session_state.get(last_key) != click_id:
            surface.click(layer_id, point["lon"], point["lat"], [properties])
            st.session_state[last_key] = click_id

    for popup in reversed(surface.popups):
        st.markdown(popup.html, unsafe_allow_html=True)


# ===========================================================================
# PAGE: Contractor Work
# ===========================================================================
if page == "Contractor Work":
    st.title("Contractor Work")

    col1, col2, col3 = st.columns(3)
    with col1:
        surveyor = st.selectbox("Surveyor", [ALL, *facet_options(surveys, lambda s: s.surveyor_name)])
    with col2:
        month = month_select("Month", surveys, lambda s: s.month, "contractor_month")
    base = get_contractor_overview(surveys, {"surveyor": surveyor, "month": month})
    with col3:
        work_type = st.selectbox("Work Type", [ALL, *base["work_types"]])

    data = get_contractor_overview(
        surveys, {"surveyor": surveyor, "month": month, "work_type": work_type}
    )

    metric_cards([
        ("Total Submissions", str(data["total_submissions"])),
        ("Voids with Contractor Work", str(data["voids_with_contractor"])),
        ("% with Contractor Work", format_percentage(data["contractor_pct"])),
    ])
    metric_cards([
        ("Total Contractor Cost", money(data["total_cost"])),
        ("Average Contractor Cost", money(data["avg_cost"])),
        ("Total Time (hrs)", f"{data['total_time_hours']:.2f}"),
        ("Avg Time per Entry (hrs)",
         "N/A" if data["avg_time_hours"] is None else f"{data['avg_time_hours']:.2f}"),
    ])

    st.plotly_chart(
        monthly_trend_figure(data["monthly"], "Monthly Contractor Work", "Voids", "Cost (£)"),
        use_container_width=True,
    )

    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(
            ranked_bar_figure(list(data["by_surveyor"].items()), "Contractor Work by Surveyor", "Voids"),
            use_container_width=True,
        )
    with col2:
        st.plotly_chart(band_figure(data["cost_bands"], "Cost Bands"), use_container_width=True)

    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(
            ranked_bar_figure(data["top_descriptions"], "Top 10 Work Descriptions"),
            use_container_width=True,
        )
    with col2:
        st.subheader("Top Contractors")
        st.dataframe(pd.DataFrame(data["top_contractors"]), use_container_width=True, hide_index=True)

    st.subheader("Contractor Work Entries")
    st.dataframe(data["table"], use_container_width=True, hide_index=True)
    export_buttons(data["table"], "contractor", "contractor_work")


# ===========================================================================
# PAGE: Recharges
# ===========================================================================
elif page == "Recharges":
    st.title("Recharges")

    col1, col2 = st.columns(2)
    with col1:
        surveyor = st.selectbox("Surveyor", [ALL, *facet_options(surveys, lambda s: s.surveyor_name)])
    with col2:
        month = month_select("Month", surveys, lambda s: s.month, "recharge_month")

    data = get_recharge_overview(surveys, {"surveyor": surveyor, "month": month})

    metric_cards([
        ("Total Submissions", str(data["total_submissions"])),
        ("Voids with Recharges", str(data["voids_with_recharge"])),
        ("With Recharge", format_percentage(data["with_recharge_pct"])),
        ("No Recharge", format_percentage(data["no_recharge_pct"])),
    ])
    metric_cards([
        ("Total Recharge Cost", money(data["total_cost"])),
        ("Average Recharge Cost", money(data["avg_cost"])),
        ("Total Recharge Time (mins)", f"{data['total_time_mins']:,.0f}"),
        ("Average Recharge Time (mins)",
         "N/A" if data["avg_time_mins"] is None else f"{data['avg_time_mins']:,.1f}"),
    ])

    st.plotly_chart(
        monthly_trend_figure(data["monthly"], "Recharge Cost by Month", "Voids", "Recharge Cost (£)"),
        use_container_width=True,
    )

    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(
            ranked_bar_figure(data["top_descriptions"], "Top Recharge Items", "Quantity"),
            use_container_width=True,
        )
    with col2:
        st.plotly_chart(
            ranked_bar_figure(data["top_codes"], "Top Recharge SOR Codes", "Quantity"),
            use_container_width=True,
        )

    st.plotly_chart(
        ranked_bar_figure(list(data["by_surveyor"].items()), "Recharges by Surveyor", "Voids"),
        use_container_width=True,
    )

    st.subheader("Recharge Detail")
    st.dataframe(data["table"], use_container_width=True, hide_index=True)
    export_buttons(data["table"], "recharge", "recharges")


# ===========================================================================
# PAGE: Gifting
# ===========================================================================
elif page == "Gifting":
    st.title("Gifting")

    col1, col2 = st.columns(2)
    with col1:
        overview = get_gifting_overview(surveys)
        surveyor = st.selectbox("Surveyor", [ALL, *overview["surveyors"]])
    with col2:
        gift_type = st.selectbox(
            "Gift Type",
            [ALL, *GIFT_LABELS],
            format_func=lambda g: g if g == ALL else GIFT_LABELS[g],
        )

    data = get_gifting_overview(surveys, {"surveyor": surveyor, "gift_type": gift_type})

    metric_cards([
        ("Total Gifted", str(data["total_gifted"])),
        ("Gifted %", format_percentage(data["gifted_pct"])),
    ])

    if data["split"] is None:
        st.plotly_chart(gift_category_figure(data["categories"]), use_container_width=True)
    else:
        st.plotly_chart(share_pie_figure(data["split"], "Gifted vs Not Gifted"), use_container_width=True)

    st.subheader("Gifted Item Notes")
    st.dataframe(data["table"], use_container_width=True, hide_index=True)
    export_buttons(data["table"], "gifting", "gifted_items")

    if data["split"] is not None:
        st.subheader("Non-Gifted Entries")
        st.dataframe(
            pd.DataFrame(
                [
                    {"Address": s.property_address, "Surveyor": s.surveyor_name, "Gifted Items Notes": s.gifted_notes}
                    for s in data["not_gifted"]
                ]
            ),
            use_container_width=True,
            hide_index=True,
        )


# ===========================================================================
# PAGE: Historic Demand
# ===========================================================================
elif page == "Historic Demand":
    st.title("Historic Demand")

    col1, col2, col3, col4, col5 = st.columns(5)
    with col1:
        let_type = st.selectbox("Let Type", [ALL, *LET_TYPES])
    with col2:
        void_type = st.selectbox("Void Type", [ALL, *VOID_TYPES])
    with col3:
        locality = st.selectbox("Locality", [ALL, *LOCALITIES])
    with col4:
        month = month_select("Tenancy End Month", points, lambda p: p.tenancy_end_month, "demand_month")
    with col5:
        style_name = st.selectbox("Map Style", list(MAP_STYLES), key="demand_style")

    data = get_demand_overview(
        points,
        {"let_type": let_type, "void_type": void_type, "locality": locality, "month": month},
    )
    metric_cards([
        ("Visible Points", str(data["visible_count"])),
        ("Without Coordinates", str(data["unmapped_count"])),
    ])

    sync = get_synchronizer("demand_map_sync", DEMAND_LAYER, demand_popup, DEFAULT_DEMAND_STYLE)
    render_map(sync, MAP_STYLES[style_name], data["features"], "demand_map")

    st.subheader("Relet Summary")
    st.dataframe(get_demand_summary_table(points), use_container_width=True)

    st.plotly_chart(locality_stacked_figure(get_locality_chart_data(points)), use_container_width=True)


# ===========================================================================
# PAGE: Live Submissions
# ===========================================================================
elif page == "Live Submissions":
    st.title("Live Submissions")

    default_start, default_end = default_live_range(date.today())
    col1, col2, col3, col4, col5 = st.columns(5)
    with col1:
        date_range = st.date_input("Submitted Between", (default_start, default_end))
    with col2:
        visit_type = st.selectbox("Visit Type", [ALL, *facet_options(surveys, lambda s: s.visit_type)])
    with col3:
        void_type = st.selectbox("Void Type", [ALL, *facet_options(surveys, lambda s: s.void_type)])
    with col4:
        surveyor = st.text_input("Surveyor")
    with col5:
        style_name = st.selectbox("Map Style", list(MAP_STYLES), index=2, key="live_style")

    if isinstance(date_range, tuple) and len(date_range) == 2:
        selected_range = date_range
    else:
        selected_range = (default_start, default_end)

    data = get_live_submissions(
        surveys,
        {"visit_type": visit_type, "void_type": void_type, "surveyor_ci": surveyor},
        selected_range,
    )
    metric_cards([("Submissions", str(data["count"])), ("Mapped", str(len(data["features"])))])

    sync = get_synchronizer("live_map_sync", LIVE_LAYER, live_popup, DEFAULT_LIVE_STYLE)
    render_map(sync, MAP_STYLES[style_name], data["features"], "live_map")


# ===========================================================================
# PAGE: Submissions
# ===========================================================================
elif page == "Submissions":
    st.title("Submissions")

    table = get_submission_list(surveys)
    if table.empty:
        st.info("No submissions yet.")
    else:
        fig = go.Figure(go.Histogram(
            x=pd.to_datetime(table["Submitted"], errors="coerce"),
            marker_color="#3498db",
        ))
        fig.update_layout(title="Submissions over Time", height=300, plot_bgcolor="rgba(0,0,0,0)")
        st.plotly_chart(fig, use_container_width=True)
        st.dataframe(table, use_container_width=True, hide_index=True)
        export_buttons(table, "submissions", "submissions")
