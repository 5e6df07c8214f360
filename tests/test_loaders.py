import json

from voids_dashboard.loaders import (
    FirestoreGateway,
    InMemoryGateway,
    JsonSnapshotGateway,
    RecordCache,
    build_default_gateway,
)
from voids_dashboard.transforms import normalize_surveys


class FakeDocument:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    def to_dict(self):
        return self._data


class FakeQuery:
    def __init__(self, docs):
        self.docs = docs
        self.limited_to = None

    def limit(self, n):
        self.limited_to = n
        return FakeQuery(self.docs[:n])

    def stream(self):
        return iter(self.docs)


class FakeClient:
    def __init__(self, collections):
        self.collections = collections
        self.requested = []

    def collection(self, name):
        self.requested.append(name)
        return FakeQuery(self.collections.get(name, []))


class FailingGateway:
    def fetch_all(self, collection, limit=None):
        raise ConnectionError("store unreachable")


class SwitchableGateway:
    def __init__(self, batches):
        self.batches = list(batches)

    def fetch_all(self, collection, limit=None):
        batch = self.batches.pop(0)
        if isinstance(batch, Exception):
            raise batch
        return batch


def test_firestore_gateway_merges_id_and_data():
    client = FakeClient({"surveys": [FakeDocument("x1", {"surveyorName": "Alice"}), FakeDocument("x2", None)]})
    records = FirestoreGateway(client).fetch_all("surveys")

    assert records == [{"id": "x1", "surveyorName": "Alice"}, {"id": "x2"}]
    assert client.requested == ["surveys"]


def test_firestore_gateway_applies_limit():
    docs = [FakeDocument(str(i), {}) for i in range(10)]
    records = FirestoreGateway(FakeClient({"historicDemand": docs})).fetch_all("historicDemand", limit=3)
    assert [r["id"] for r in records] == ["0", "1", "2"]


def test_in_memory_gateway_returns_copies():
    gateway = InMemoryGateway({"surveys": [{"id": "a"}]})
    first = gateway.fetch_all("surveys")
    first[0]["id"] = "changed"
    assert gateway.fetch_all("surveys") == [{"id": "a"}]
    assert gateway.fetch_all("missing") == []


def test_json_snapshot_gateway(tmp_path):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps({"surveys": [{"id": "a"}, {"id": "b"}, "junk"], "bad": {"id": "c"}}))
    gateway = JsonSnapshotGateway(path)

    assert gateway.fetch_all("surveys") == [{"id": "a"}, {"id": "b"}]
    assert gateway.fetch_all("surveys", limit=1) == [{"id": "a"}]
    assert gateway.fetch_all("bad") == []


def test_cache_refresh_replaces_snapshot():
    cache = RecordCache(InMemoryGateway({"surveys": [{"id": "a"}]}), "surveys")
    assert not cache.loaded
    assert cache.refresh()
    assert cache.loaded
    assert cache.records == ({"id": "a"},)


def test_failed_refresh_keeps_previous_snapshot():
    cache = RecordCache(SwitchableGateway([[{"id": "a"}], ConnectionError("down")]), "surveys")
    cache.refresh()

    assert cache.refresh() is False
    assert cache.records == ({"id": "a"},)


def test_failed_first_load_leaves_cache_empty():
    cache = RecordCache(FailingGateway(), "surveys")
    assert cache.ensure_loaded() == ()
    assert not cache.loaded


def test_normalized_view_is_cached_per_snapshot():
    cache = RecordCache(SwitchableGateway([[{"id": "a"}], [{"id": "a"}, {"id": "b"}]]), "surveys")
    cache.refresh()
    first = cache.normalized(normalize_surveys)
    assert cache.normalized(normalize_surveys) is first

    cache.refresh()
    assert len(cache.normalized(normalize_surveys)) == 2


def test_default_gateway_prefers_snapshot(tmp_path):
    path = tmp_path / "snapshot.json"
    path.write_text("{}")
    assert isinstance(build_default_gateway(str(path), "project"), JsonSnapshotGateway)


def test_default_gateway_falls_back_to_simulated_documents():
    gateway = build_default_gateway("", "")
    assert isinstance(gateway, InMemoryGateway)
    assert len(gateway.fetch_all("surveys")) > 0
    assert len(gateway.fetch_all("historicDemand")) > 0
