"""
Map layer synchronizer: keeps one geospatial rendering surface consistent with
the filtered data across asynchronous style reloads.

The rendering engine discards every source and layer when its style changes
and announces the new style with a style-loaded notification. The
synchronizer is the only writer to the surface:

    UNINITIALIZED --mount/request_style--> STYLE_LOADING
    STYLE_LOADING --style loaded--------> READY         (source, layer, click handler created)
    READY ---------request_style--------> STYLE_LOADING (previous epoch's registrations gone)
    READY ---------set_features---------> READY         (data-only replace)

Feature updates that arrive while a style is loading are held and applied
when the source is created.
"""

import html
import logging
import math
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Protocol

import plotly.graph_objects as go

from .config import (
    BUILDINGS_LAYER,
    COORDINATE_BOUNDS,
    DEFAULT_POINT_COLOR,
    LOCALITY_COLORS,
    MAP_CENTER,
    MAP_ZOOM,
    POPUP_HISTORY,
    TERRAIN_EXAGGERATION,
    TERRAIN_SOURCE,
)
from .transforms import NormalizedDemandPoint, NormalizedSurvey

logger = logging.getLogger(__name__)


class MapState(Enum):
    UNINITIALIZED = "uninitialized"
    STYLE_LOADING = "style_loading"
    READY = "ready"


@dataclass(frozen=True)
class MapFeature:
    lng: float
    lat: float
    properties: Mapping[str, Any] = field(default_factory=dict)

    def to_geojson(self) -> dict:
        return {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [self.lng, self.lat]},
            "properties": dict(self.properties),
        }


@dataclass(frozen=True)
class ClickEvent:
    """A click on a layer: pointer position and the feature properties under it."""

    lng: float
    lat: float
    features: tuple[Mapping[str, Any], ...] = ()


def feature_collection(features: Iterable[MapFeature]) -> dict:
    return {"type": "FeatureCollection", "features": [f.to_geojson() for f in features]}


class MapSurface(Protocol):
    """Read/write surface of the rendering engine the synchronizer drives."""

    def set_style(self, style: str) -> None: ...
    def on_style_load(self, callback: Callable[[str | None], None]) -> None: ...
    def add_source(self, source_id: str, definition: dict) -> None: ...
    def has_source(self, source_id: str) -> bool: ...
    def set_source_data(self, source_id: str, data: dict) -> None: ...
    def add_layer(self, layer: dict) -> None: ...
    def has_layer(self, layer_id: str) -> bool: ...
    def on_click(self, layer_id: str, handler: Callable[[ClickEvent], None]) -> None: ...
    def off_click(self, layer_id: str, handler: Callable[[ClickEvent], None]) -> None: ...
    def get_terrain(self) -> dict | None: ...
    def set_terrain(self, terrain: dict) -> None: ...
    def show_popup(self, lng: float, lat: float, html: str) -> None: ...


# ---------------------------------------------------------------------------
# Synchronizer
# ---------------------------------------------------------------------------
class MapLayerSynchronizer:
    """Own the point source, circle layer and click handler on one surface.

    Parameters
    ----------
    surface : The rendering surface. Nothing else may add sources or layers to it.
    source_id, layer_id : Identifiers of the point source and its circle layer.
    paint : Circle paint properties for the layer.
    popup : Renders the popup HTML for the clicked feature's properties.
    decorations : Add terrain relief and extruded buildings on each style load.
    """

    def __init__(
        self,
        surface: MapSurface,
        source_id: str,
        layer_id: str,
        paint: dict,
        popup: Callable[[Mapping[str, Any]], str],
        decorations: bool = True,
    ):
        self.surface = surface
        self.source_id = source_id
        self.layer_id = layer_id
        self.paint = dict(paint)
        self.popup = popup
        self.decorations = decorations

        self.state = MapState.UNINITIALIZED
        self.style: str | None = None
        self.epoch = 0
        self._features: list[MapFeature] = []
        self._pending_data = False
        self._listening = False
        self._click_epoch: int | None = None

    @property
    def features(self) -> list[MapFeature]:
        return list(self._features)

    @property
    def has_pending_data(self) -> bool:
        return self._pending_data

    # -- style lifecycle ---------------------------------------------------
    def mount(self, style: str) -> None:
        """First mount: begin loading the initial style."""
        if self.state is not MapState.UNINITIALIZED:
            self.request_style(style)
            return
        if not self._listening:
            self.surface.on_style_load(self.handle_style_loaded)
            self._listening = True
        self._begin_style_load(style)

    def request_style(self, style: str) -> None:
        """Switch styles. Registrations from the current epoch are discarded."""
        if self.state is MapState.UNINITIALIZED:
            self.mount(style)
            return
        self._begin_style_load(style)

    def _begin_style_load(self, style: str) -> None:
        self.style = style
        self.epoch += 1
        self.state = MapState.STYLE_LOADING
        logger.debug("Style epoch %d: loading '%s'", self.epoch, style)
        self.surface.set_style(style)

    def handle_style_loaded(self, style: str | None = None) -> None:
        """Style-loaded notification from the rendering engine."""
        if self.state is not MapState.STYLE_LOADING:
            logger.debug("Ignoring style-loaded notification in state %s", self.state.value)
            return
        if style is not None and style != self.style:
            logger.debug("Ignoring stale style-loaded notification for '%s'", style)
            return

        if self.decorations:
            self._add_decorations()
        self._create_layers()
        self._register_click_handler()
        self.state = MapState.READY
        self._pending_data = False
        logger.info(
            "Map layer '%s' ready on style '%s' with %d features",
            self.layer_id, self.style, len(self._features),
        )

    def _add_decorations(self) -> None:
        surface = self.surface
        if not surface.has_source(TERRAIN_SOURCE):
            surface.add_source(
                TERRAIN_SOURCE,
                {
                    "type": "raster-dem",
                    "url": "mapbox://mapbox.terrain-rgb",
                    "tileSize": 512,
                    "maxzoom": 14,
                },
            )
        if surface.get_terrain() is None:
            surface.set_terrain({"source": TERRAIN_SOURCE, "exaggeration": TERRAIN_EXAGGERATION})
        if not surface.has_layer(BUILDINGS_LAYER):
            surface.add_layer(
                {
                    "id": BUILDINGS_LAYER,
                    "source": "composite",
                    "source-layer": "building",
                    "filter": ["==", "extrude", "true"],
                    "type": "fill-extrusion",
                    "minzoom": 15,
                    "paint": {
                        "fill-extrusion-color": "#aaa",
                        "fill-extrusion-height": [
                            "interpolate", ["linear"], ["zoom"], 15, 0, 15.05, ["get", "height"],
                        ],
                        "fill-extrusion-base": [
                            "interpolate", ["linear"], ["zoom"], 15, 0, 15.05, ["get", "min_height"],
                        ],
                        "fill-extrusion-opacity": 0.6,
                    },
                }
            )

    def _create_layers(self) -> None:
        data = feature_collection(self._features)
        if self.surface.has_source(self.source_id):
            logger.warning("Source '%s' survived a style swap; replacing its data", self.source_id)
            self.surface.set_source_data(self.source_id, data)
        else:
            self.surface.add_source(self.source_id, {"type": "geojson", "data": data})
        if not self.surface.has_layer(self.layer_id):
            self.surface.add_layer(
                {"id": self.layer_id, "type": "circle", "source": self.source_id, "paint": self.paint}
            )

    def _register_click_handler(self) -> None:
        if self._click_epoch == self.epoch:
            return
        if self._click_epoch is not None:
            self.surface.off_click(self.layer_id, self.handle_click)
        self.surface.on_click(self.layer_id, self.handle_click)
        self._click_epoch = self.epoch

    # -- data --------------------------------------------------------------
    def set_features(self, features: Iterable[MapFeature]) -> None:
        """Push a new feature set. Applied now if READY, else on READY."""
        self._features = list(features)
        if self.state is MapState.READY:
            self.surface.set_source_data(self.source_id, feature_collection(self._features))
            return
        self._pending_data = True
        logger.debug(
            "Deferring %d features for '%s' until style is ready",
            len(self._features), self.source_id,
        )

    # -- interaction -------------------------------------------------------
    def handle_click(self, event: ClickEvent) -> None:
        if not event.features:
            return
        properties = event.features[0]
        self.surface.show_popup(event.lng, event.lat, self.popup(properties))


# ---------------------------------------------------------------------------
# Feature projections
# ---------------------------------------------------------------------------
def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def string_to_color(text: str) -> str:
    """Deterministic bright pastel colour for a string (surveyor markers)."""
    hash_ = 0
    for char in text:
        hash_ = ord(char) + (_to_int32(_to_int32(hash_) << 5) - hash_)
    hue = int(math.fmod(hash_, 360))
    return f"hsl({hue}, 90%, 65%)"


def locality_color(locality: str) -> str:
    return LOCALITY_COLORS.get(locality, DEFAULT_POINT_COLOR)


def is_plausible_coordinate(lat: float | None, lng: float | None) -> bool:
    if lat is None or lng is None:
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    bounds = COORDINATE_BOUNDS
    return bounds["lat_min"] <= lat <= bounds["lat_max"] and bounds["lng_min"] <= lng <= bounds["lng_max"]


def survey_features(surveys: Iterable[NormalizedSurvey]) -> list[MapFeature]:
    """Live submission points; surveys without a location or date are skipped."""
    features = []
    skipped = 0
    for survey in surveys:
        loc = survey.location
        if loc is None or survey.submitted_at is None or not is_plausible_coordinate(loc.lat, loc.lng):
            skipped += 1
            continue
        features.append(
            MapFeature(
                lng=loc.lng,
                lat=loc.lat,
                properties={
                    "address": survey.property_address,
                    "surveyor": survey.surveyor_name,
                    "voidType": survey.void_type,
                    "letType": survey.visit_type,
                    "color": string_to_color(survey.surveyor_name),
                    "voidTime": f"{survey.totals.days_decimal:.1f}",
                    "totalCost": f"{survey.totals.cost:.2f}",
                },
            )
        )
    if skipped:
        logger.info("Left %d surveys without usable coordinates off the map", skipped)
    return features


def demand_features(points: Iterable[NormalizedDemandPoint]) -> list[MapFeature]:
    """Historic demand points; points without plausible coordinates are skipped."""
    features = []
    skipped = 0
    for point in points:
        if not is_plausible_coordinate(point.lat, point.lng):
            skipped += 1
            continue
        features.append(
            MapFeature(
                lng=point.lng,
                lat=point.lat,
                properties={
                    "address": point.address,
                    "postcode": point.postcode,
                    "letType": point.let_type,
                    "localAuth": point.local_authority,
                    "voidType": point.void_type,
                    "locality": point.locality,
                    "color": locality_color(point.locality),
                    "tenancyEndDate": point.tenancy_end_date,
                },
            )
        )
    if skipped:
        logger.info("Left %d demand points without usable coordinates off the map", skipped)
    return features


def _esc(props: Mapping[str, Any], key: str, default: str = "") -> str:
    return html.escape(str(props.get(key, default)))


def live_popup(props: Mapping[str, Any]) -> str:
    try:
        cost = float(props.get("totalCost", 0))
    except (TypeError, ValueError):
        cost = 0.0
    return (
        "<div>"
        f"<strong>{_esc(props, 'address')}</strong><br/>"
        f"Surveyor: {_esc(props, 'surveyor')}<br/>"
        f"Visit Type: {_esc(props, 'letType')}<br/>"
        f"Void Type: {_esc(props, 'voidType')}<br/>"
        f"Void Time: {_esc(props, 'voidTime')} days<br/>"
        f"Total Cost: £{cost:.2f}"
        "</div>"
    )


def demand_popup(props: Mapping[str, Any]) -> str:
    return (
        "<div>"
        f"<strong>{_esc(props, 'address')}</strong><br/>"
        f"<span>Postcode: {_esc(props, 'postcode')}</span><br/>"
        f"<span>Let Type: {_esc(props, 'letType')}</span><br/>"
        f"<span>Local Authority: {_esc(props, 'localAuth')}</span><br/>"
        f"<span>Void Type: {_esc(props, 'voidType')}</span><br/>"
        f"<span>Locality: {_esc(props, 'locality')}</span><br/>"
        f"<span>Est. Tenancy End: {_esc(props, 'tenancyEndDate', 'Unknown')}</span><br/>"
        "</div>"
    )


# ---------------------------------------------------------------------------
# Plotly surface
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Popup:
    lng: float
    lat: float
    html: str


class PlotlyMapSurface:
    """MapSurface rendered as a plotly ``Scattermap`` figure.

    Style loads complete when ``finish_style_load()`` is called, which the
    Streamlit app does once per rerun before drawing. Terrain and extruded
    buildings are kept as registrations only; plotly draws circle layers.
    """

    def __init__(self, center: dict | None = None, zoom: float = MAP_ZOOM):
        self.center = dict(center or MAP_CENTER)
        self.zoom = zoom
        self.style: str | None = None
        self.pending_style: str | None = None
        self.sources: dict[str, dict] = {}
        self.layers: dict[str, dict] = {}
        self.terrain: dict | None = None
        self.popups: deque[Popup] = deque(maxlen=POPUP_HISTORY)
        self._style_listeners: list[Callable[[str | None], None]] = []
        self._click_handlers: dict[str, list[Callable[[ClickEvent], None]]] = {}

    def set_style(self, style: str) -> None:
        self.pending_style = style
        self.sources = {}
        self.layers = {}
        self.terrain = None

    def finish_style_load(self) -> bool:
        if self.pending_style is None:
            return False
        self.style, self.pending_style = self.pending_style, None
        for listener in list(self._style_listeners):
            listener(self.style)
        return True

    def on_style_load(self, callback: Callable[[str | None], None]) -> None:
        self._style_listeners.append(callback)

    def add_source(self, source_id: str, definition: dict) -> None:
        if source_id in self.sources:
            raise ValueError(f"Source '{source_id}' already exists")
        self.sources[source_id] = dict(definition)

    def has_source(self, source_id: str) -> bool:
        return source_id in self.sources

    def set_source_data(self, source_id: str, data: dict) -> None:
        self.sources[source_id]["data"] = data

    def add_layer(self, layer: dict) -> None:
        if layer["id"] in self.layers:
            raise ValueError(f"Layer '{layer['id']}' already exists")
        self.layers[layer["id"]] = dict(layer)

    def has_layer(self, layer_id: str) -> bool:
        return layer_id in self.layers

    def on_click(self, layer_id: str, handler: Callable[[ClickEvent], None]) -> None:
        self._click_handlers.setdefault(layer_id, []).append(handler)

    def off_click(self, layer_id: str, handler: Callable[[ClickEvent], None]) -> None:
        handlers = self._click_handlers.get(layer_id, [])
        if handler in handlers:
            handlers.remove(handler)

    def click_handler_count(self, layer_id: str) -> int:
        return len(self._click_handlers.get(layer_id, []))

    def get_terrain(self) -> dict | None:
        return self.terrain

    def set_terrain(self, terrain: dict) -> None:
        self.terrain = dict(terrain)

    def show_popup(self, lng: float, lat: float, html: str) -> None:
        self.popups.append(Popup(lng, lat, html))

    def click(self, layer_id: str, lng: float, lat: float, features: Iterable[Mapping] = ()) -> None:
        event = ClickEvent(lng, lat, tuple(features))
        for handler in list(self._click_handlers.get(layer_id, [])):
            handler(event)

    def to_figure(self, height: int = 600) -> go.Figure:
        fig = go.Figure()
        for layer in self.layers.values():
            if layer.get("type") != "circle":
                continue
            source = self.sources.get(layer["source"], {})
            features = source.get("data", {}).get("features", [])
            paint = layer.get("paint", {})
            props = [f["properties"] for f in features]
            fig.add_trace(
                go.Scattermap(
                    lon=[f["geometry"]["coordinates"][0] for f in features],
                    lat=[f["geometry"]["coordinates"][1] for f in features],
                    mode="markers",
                    marker={
                        "size": paint.get("circle-radius", 5) * 2,
                        "color": [_resolve_paint(paint.get("circle-color"), p) for p in props],
                        "opacity": paint.get("circle-opacity", 1.0),
                    },
                    customdata=[[layer["id"], i] for i in range(len(props))],
                    text=[p.get("address", "") for p in props],
                    hoverinfo="text",
                    name=layer["id"],
                )
            )
        fig.update_layout(
            map={"style": self.style or "open-street-map", "center": self.center, "zoom": self.zoom},
            margin={"l": 0, "r": 0, "t": 0, "b": 0},
            height=height,
            showlegend=False,
        )
        return fig

    def feature_properties(self, layer_id: str, index: int) -> Mapping[str, Any] | None:
        layer = self.layers.get(layer_id)
        if layer is None:
            return None
        features = self.sources.get(layer["source"], {}).get("data", {}).get("features", [])
        if not 0 <= index < len(features):
            return None
        return features[index]["properties"]


def _resolve_paint(value: Any, props: Mapping[str, Any]) -> Any:
    if isinstance(value, list) and len(value) == 2 and value[0] == "get":
        return props.get(value[1], DEFAULT_POINT_COLOR)
    return value if value is not None else DEFAULT_POINT_COLOR
