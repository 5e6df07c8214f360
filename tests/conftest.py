import pytest

from voids_dashboard.map_layers import ClickEvent
from voids_dashboard.transforms import normalize_demand_points, normalize_surveys


class FakeMapSurface:
    """Rendering surface whose style loads complete only when told to.

    set_style wipes sources, layers and terrain immediately (as a real engine
    does) and queues a style-loaded notification; deliver() fires queued
    notifications in order.
    """

    def __init__(self, report_style: bool = True):
        self.report_style = report_style
        self.style = None
        self.set_style_calls = []
        self.pending = []
        self.sources = {}
        self.layers = {}
        self.terrain = None
        self.popups = []
        self.source_data_updates = []
        self.add_source_calls = []
        self.add_layer_calls = []
        self.click_handlers = {}
        self._style_listeners = []

    def set_style(self, style):
        self.set_style_calls.append(style)
        self.pending.append(style)
        self.sources = {}
        self.layers = {}
        self.terrain = None

    def deliver(self, count=None):
        batch = self.pending if count is None else self.pending[:count]
        self.pending = self.pending[len(batch):]
        for style in batch:
            self.style = style
            for listener in list(self._style_listeners):
                listener(style if self.report_style else None)

    def on_style_load(self, callback):
        self._style_listeners.append(callback)

    def add_source(self, source_id, definition):
        assert source_id not in self.sources, f"duplicate source {source_id}"
        self.add_source_calls.append(source_id)
        self.sources[source_id] = dict(definition)

    def has_source(self, source_id):
        return source_id in self.sources

    def set_source_data(self, source_id, data):
        self.source_data_updates.append(source_id)
        self.sources[source_id]["data"] = data

    def add_layer(self, layer):
        assert layer["id"] not in self.layers, f"duplicate layer {layer['id']}"
        self.add_layer_calls.append(layer["id"])
        self.layers[layer["id"]] = dict(layer)

    def has_layer(self, layer_id):
        return layer_id in self.layers

    def on_click(self, layer_id, handler):
        self.click_handlers.setdefault(layer_id, []).append(handler)

    def off_click(self, layer_id, handler):
        handlers = self.click_handlers.get(layer_id, [])
        if handler in handlers:
            handlers.remove(handler)

    def get_terrain(self):
        return self.terrain

    def set_terrain(self, terrain):
        self.terrain = dict(terrain)

    def show_popup(self, lng, lat, html):
        self.popups.append((lng, lat, html))

    def click(self, layer_id, lng, lat, features=()):
        event = ClickEvent(lng, lat, tuple(features))
        for handler in list(self.click_handlers.get(layer_id, [])):
            handler(event)


@pytest.fixture
def fake_surface():
    return FakeMapSurface()


@pytest.fixture
def raw_surveys():
    return [
        {
            "id": "s1",
            "surveyorName": "Alice",
            "propertyAddress": "1 Mill Lane, Bristol",
            "submittedAt": "2024-04-10T09:30:00Z",
            "voidType": "Major",
            "visitType": "Void",
            "giftedItemsNotes": "  Carpets and CURTAINS  ",
            "location": {"lat": 51.45, "lng": -2.58},
            "sors": {
                "contractor work": [
                    {"description": "Fencing", "cost": "120", "contractor": "Hedge & Co", "timeEstimate": 90},
                    {"description": "", "cost": 0, "comment": ""},
                ],
                "internal": [
                    {"code": 201001, "description": "Replace door handle", "quantity": "2",
                     "recharge": "TRUE", "rechargeCost": 30, "rechargeTime": 20},
                    {"code": "301045", "description": "Renew kitchen unit", "quantity": 1, "recharge": "false"},
                ],
            },
            "totals": {"cost": 950.5, "rechargeCost": 30, "daysDecimal": 3.5, "rechargeDaysDecimal": 0.5},
        },
        {
            "id": "s2",
            "surveyorName": "Ben",
            "propertyAddress": "2 Church Road, Gloucester",
            "timestamp": "2024-05-02T14:00:00",
            "voidType": "Minor",
            "visitType": "Pre-void",
            "giftedItemsNotes": "Shed",
            "location": {"latitude": 51.86, "longitude": -2.24},
            "sors": {
                "contractor work": [
                    {"description": "Roof repair", "cost": 640, "contractor": "TopTile Ltd", "timeEstimate": 240},
                ],
                "internal": {
                    "kitchen": [
                        {"code": "401220", "description": "Clear rubbish", "quantity": 0,
                         "recharge": "true", "rechargeCost": 50},
                        {"code": "502310", "description": "Make good plaster", "quantity": 3,
                         "rechargeTime": 45},
                    ],
                },
            },
            "totalCost": 420,
        },
        {
            "id": "s3",
            "surveyorName": "Alice",
            "propertyAddress": "3 Park Avenue, Taunton",
            "submittedAt": "garbage",
            "voidType": "Minor",
            "visitType": "Void",
            "sors": [{"description": "Loose item", "cost": 5}],
        },
        {
            "id": "s4",
            "surveyorName": "",
            "propertyAddress": "4 High Street, Birmingham",
            "submittedAt": "2024-05-20T08:00:00Z",
            "giftedItemsNotes": "Washing machine",
            "location": {"lat": "nan", "lng": 1.0},
            "sors": None,
        },
    ]


@pytest.fixture
def surveys(raw_surveys):
    return normalize_surveys(raw_surveys)


@pytest.fixture
def raw_demand():
    return [
        {"id": "d1", "Address of property": "10 Brook Way", "Postcode": "BS1 1AB", "Let Type": "Relet",
         "Local Authority": "Bristol", "Major or Minor void?": "Major", "Locality": "WOE",
         "Tenancy end date": "2024-04-15", "Latitude": 51.45, "Longitude": -2.58},
        {"id": "d2", "Address of property": "11 Brook Way", "Postcode": "GL1 2CD", "Let Type": "Relet",
         "Local Authority": "Gloucester", "Major or Minor void?": "n/a", "locality": "Glouc",
         "Tenancy end date": "2024-04-20", "Latitude": "51.86", "Longitude": "-2.24"},
        {"id": "d3", "Address of property": "12 Brook Way", "Postcode": "TA1 3EF", "Let Type": "New Build",
         "Local Authority": "Somerset", "Major or Minor void?": "Minor", "Locality": "S&M",
         "Tenancy end date": "2024-06-01"},
        {"id": "d4", "Address of property": "13 Brook Way", "Postcode": "B1 4GH", "Let Type": "Relet",
         "Local Authority": "Birmingham", "Major or Minor void?": "Minor", "Locality": "Central",
         "Tenancy end date": "2025-03-31", "Latitude": 40.0, "Longitude": -2.0},
        {"id": "d5", "Address of property": "14 Brook Way", "Let Type": "Relet",
         "Major or Minor void?": "Major", "Locality": "Elsewhere",
         "Tenancy end date": "not known", "Latitude": 52.0, "Longitude": -1.5},
    ]


@pytest.fixture
def demand_points(raw_demand):
    return normalize_demand_points(raw_demand)
