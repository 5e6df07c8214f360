"""
Plotly figure builders for the dashboard pages.

Each builder takes the output of a ``dashboard.get_*`` function and only
arranges it for display; no counting happens here.
"""

from typing import Sequence

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from .config import GIFT_LABELS, LOCALITY_COLORS
from .kpis import Band, TimeSeriesPoint

BAR_COLOR = "#3498db"
LINE_COLOR = "#e74c3c"


def _empty_figure(title: str) -> go.Figure:
    fig = go.Figure()
    fig.update_layout(
        title=title,
        height=350,
        annotations=[dict(text="No data", showarrow=False, font=dict(size=16))],
        xaxis=dict(visible=False),
        yaxis=dict(visible=False),
    )
    return fig


def monthly_trend_figure(
    series: Sequence[TimeSeriesPoint],
    title: str,
    count_name: str = "Submissions",
    sum_name: str = "Cost (£)",
) -> go.Figure:
    """Bars for the monthly count, a line on a second axis for the monthly sum."""
    if not series:
        return _empty_figure(title)
    labels = [point.label for point in series]
    fig = go.Figure()
    fig.add_trace(go.Bar(
        x=labels,
        y=[point.count for point in series],
        name=count_name,
        marker_color=BAR_COLOR,
    ))
    fig.add_trace(go.Scatter(
        x=labels,
        y=[round(point.sum, 2) for point in series],
        name=sum_name,
        mode="lines+markers",
        yaxis="y2",
        line=dict(color=LINE_COLOR, width=2),
        marker=dict(size=8),
    ))
    fig.update_layout(
        title=title,
        yaxis=dict(title=count_name),
        yaxis2=dict(title=sum_name, overlaying="y", side="right"),
        height=400,
        plot_bgcolor="rgba(0,0,0,0)",
        legend=dict(orientation="h", y=-0.2),
    )
    return fig


def ranked_bar_figure(pairs: Sequence[tuple], title: str, value_title: str = "Count") -> go.Figure:
    """Horizontal bars for (label, value) pairs, largest at the top."""
    if not pairs:
        return _empty_figure(title)
    labels = [str(label) for label, _ in pairs][::-1]
    values = [value for _, value in pairs][::-1]
    fig = go.Figure(go.Bar(
        x=values,
        y=labels,
        orientation="h",
        marker_color=BAR_COLOR,
    ))
    fig.update_layout(
        title=title,
        xaxis_title=value_title,
        height=max(300, 32 * len(labels) + 120),
        plot_bgcolor="rgba(0,0,0,0)",
    )
    return fig


def band_figure(bands: Sequence[Band], title: str) -> go.Figure:
    fig = go.Figure(go.Bar(
        x=[band.label for band in bands],
        y=[band.count for band in bands],
        marker_color=BAR_COLOR,
    ))
    fig.update_layout(title=title, yaxis_title="Items", height=350, plot_bgcolor="rgba(0,0,0,0)")
    return fig


def share_pie_figure(counts: dict, title: str, labels: dict | None = None) -> go.Figure:
    if not any(counts.values()):
        return _empty_figure(title)
    names = [(labels or {}).get(key, key) for key in counts]
    fig = go.Figure(go.Pie(labels=names, values=list(counts.values()), hole=0.4))
    fig.update_layout(title=title, height=350)
    return fig


def gift_category_figure(categories: dict) -> go.Figure:
    return share_pie_figure(categories, "Gifted Items by Category", GIFT_LABELS)


def locality_stacked_figure(long_df: pd.DataFrame) -> go.Figure:
    """Stacked monthly bars, one colour per locality."""
    title = "Demand by Locality"
    if long_df.empty:
        return _empty_figure(title)
    fig = px.bar(
        long_df,
        x="Month",
        y="Count",
        color="Locality",
        color_discrete_map=LOCALITY_COLORS,
        title=title,
    )
    fig.update_layout(barmode="stack", height=400, plot_bgcolor="rgba(0,0,0,0)")
    return fig
