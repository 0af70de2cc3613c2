import json
import logging
from pathlib import Path

import httpx
import pytest
from openpyxl import Workbook

from signalcore.data import signal_repository
from signalcore.data.overpass_client import OverpassCatalogSource, build_signal_query
from signalcore.data.signal_repository import (
    DefaultCatalogSource,
    FileCatalogSource,
    SupabaseCatalogSource,
    load_signals,
    normalize_records,
)
from signalcore.exceptions import CatalogUnavailable, InvalidParameter

OVERPASS_PAYLOAD = {
    "version": 0.6,
    "elements": [
        {"type": "node", "id": 245934, "lat": 18.5204, "lon": 73.8567, "tags": {"highway": "traffic_signals"}},
        {"type": "node", "id": 245935, "lat": 18.5314, "lon": 73.8446, "tags": {"highway": "traffic_signals"}},
    ],
}


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.bounds = None

    def select(self, columns):
        return self

    def range(self, start, end):
        self.bounds = (start, end)
        return self

    def execute(self):
        if self.client.error:
            raise self.client.error
        start, end = self.bounds
        self.client.requested.append(self.bounds)
        return FakeResponse(self.client.rows[start:end + 1])


class FakeSupabase:
    def __init__(self, rows, error=None):
        self.rows = rows
        self.error = error
        self.requested = []

    def table(self, name):
        return FakeQuery(self, name)


def test_normalize_overpass_elements():
    records = normalize_records(OVERPASS_PAYLOAD["elements"], "test")

    assert [record.id for record in records] == ["245934", "245935"]
    assert records[0].lat == 18.5204
    assert records[0].lon == 73.8567


def test_normalize_accepts_alternate_coordinate_shapes():
    rows = [
        {"signal_id": "A", "latitude": "18.52", "longitude": "73.85"},
        {"id": "B", "lat": 18.53, "lng": 73.86},
        {"id": "C", "geometry": {"type": "Point", "coordinates": [73.87, 18.54]}},
        {"type": "Feature", "properties": {"name": "x"}, "geometry": {"coordinates": [73.88, 18.55]}},
    ]

    records = normalize_records(rows, "test")

    assert [(record.lat, record.lon) for record in records] == [
        (18.52, 73.85),
        (18.53, 73.86),
        (18.54, 73.87),
        (18.55, 73.88),
    ]
    assert records[3].id.startswith("sig-")
    assert normalize_records(rows[3:], "test")[0].id == records[3].id


def test_invalid_rows_are_dropped_with_warning(caplog):
    rows = [
        {"id": "OK", "lat": 18.52, "lon": 73.85},
        {"id": "OUT_OF_RANGE", "lat": 123.0, "lon": 73.85},
        {"id": "MISSING", "lat": 18.52},
        {"id": "GARBAGE", "lat": "north", "lon": 73.85},
        {"id": "OK", "lat": 18.60, "lon": 73.90},
        "not a record",
    ]

    with caplog.at_level(logging.WARNING):
        records = normalize_records(rows, "test")

    assert [record.id for record in records] == ["OK"]
    assert records[0].lat == 18.52
    assert "OUT_OF_RANGE" not in {record.id for record in records}
    assert any("Skipping" in message for message in caplog.messages)


def test_no_usable_records_is_catalog_unavailable():
    with pytest.raises(CatalogUnavailable):
        normalize_records([], "test")
    with pytest.raises(CatalogUnavailable):
        normalize_records([{"id": "X"}, {"id": "Y", "lat": 200, "lon": 0}], "test")


def test_file_source_reads_overpass_documents(tmp_path: Path):
    path = tmp_path / "signals.json"
    path.write_text(json.dumps([OVERPASS_PAYLOAD]), encoding="utf-8")

    records = FileCatalogSource(path).load()

    assert len(records) == 2


def test_file_source_reads_csv(tmp_path: Path):
    path = tmp_path / "signals.csv"
    path.write_text("id,latitude,longitude\nS1,18.52,73.85\nS2,,73.86\nS3,18.54,73.87\n", encoding="utf-8")

    records = FileCatalogSource(path).load()

    assert [record.id for record in records] == ["S1", "S3"]


def test_file_source_reads_workbook(tmp_path: Path):
    path = tmp_path / "signals.xlsx"
    wb = Workbook()
    sheet = wb.active
    sheet.append(["id", "Latitude", "Longitude"])
    sheet.append(["W1", 18.52, 73.85])
    sheet.append([None, None, None])
    sheet.append(["W2", 18.53, 73.86])
    wb.save(path)

    records = FileCatalogSource(path).load()

    assert [record.id for record in records] == ["W1", "W2"]


def test_file_source_failures(tmp_path: Path):
    with pytest.raises(CatalogUnavailable):
        FileCatalogSource(tmp_path / "missing.json").load()

    unsupported = tmp_path / "signals.txt"
    unsupported.write_text("18.52,73.85", encoding="utf-8")
    with pytest.raises(CatalogUnavailable):
        FileCatalogSource(unsupported).load()

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(CatalogUnavailable):
        FileCatalogSource(broken).load()

    scalar = tmp_path / "scalar.json"
    scalar.write_text("42", encoding="utf-8")
    with pytest.raises(CatalogUnavailable):
        FileCatalogSource(scalar).load()


def test_supabase_source_reads_all_pages():
    rows = [{"id": f"S{i}", "lat": 18.5 + i * 0.001, "lon": 73.8} for i in range(5)]
    client = FakeSupabase(rows)

    records = SupabaseCatalogSource(client=client, table="traffic_signals", page_size=2).load()

    assert [record.id for record in records] == ["S0", "S1", "S2", "S3", "S4"]
    assert client.requested == [(0, 1), (2, 3), (4, 5)]


def test_supabase_source_failures(monkeypatch):
    with pytest.raises(CatalogUnavailable):
        SupabaseCatalogSource(client=FakeSupabase([], error=RuntimeError("boom"))).load()
    with pytest.raises(CatalogUnavailable):
        SupabaseCatalogSource(client=FakeSupabase([])).load()

    monkeypatch.setattr(signal_repository, "get_supabase_client", lambda: None)
    unconfigured = SupabaseCatalogSource()
    assert not unconfigured.configured
    with pytest.raises(CatalogUnavailable):
        unconfigured.load()


def test_default_source_falls_back_to_file(tmp_path: Path):
    path = tmp_path / "signals.json"
    path.write_text(json.dumps(OVERPASS_PAYLOAD), encoding="utf-8")
    database = SupabaseCatalogSource(client=FakeSupabase([], error=RuntimeError("timeout")))

    records = load_signals(DefaultCatalogSource(database=database, file=FileCatalogSource(path)))

    assert len(records) == 2


def test_default_source_reports_database_failure_without_file(tmp_path: Path):
    database = SupabaseCatalogSource(client=FakeSupabase([], error=RuntimeError("timeout")))
    source = DefaultCatalogSource(database=database, file=FileCatalogSource(tmp_path / "absent.json"))

    with pytest.raises(CatalogUnavailable) as excinfo:
        source.load()
    assert "timeout" in str(excinfo.value)


def test_build_signal_query_validates_bbox():
    query = build_signal_query((18.4, 73.7, 18.6, 74.0))

    assert 'node["highway"="traffic_signals"](18.4,73.7,18.6,74.0)' in query
    with pytest.raises(InvalidParameter):
        build_signal_query((18.6, 73.7, 18.4, 74.0))


def test_overpass_source_retries_busy_server():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(429, json={"remark": "rate limited"})
        return httpx.Response(200, json=OVERPASS_PAYLOAD)

    source = OverpassCatalogSource(
        bbox=(18.4, 73.7, 18.6, 74.0),
        base_url="https://overpass.test/api/interpreter",
        max_retries=2,
        backoff_seconds=0,
        transport=httpx.MockTransport(handler),
    )

    records = source.load()

    assert len(calls) == 2
    assert [record.id for record in records] == ["245934", "245935"]
    assert b"traffic_signals" in calls[-1].content


def test_overpass_source_gives_up_on_client_errors():
    source = OverpassCatalogSource(
        bbox=(18.4, 73.7, 18.6, 74.0),
        base_url="https://overpass.test/api/interpreter",
        max_retries=3,
        backoff_seconds=0,
        transport=httpx.MockTransport(lambda request: httpx.Response(400, text="bad query")),
    )

    with pytest.raises(CatalogUnavailable):
        source.load()


@pytest.mark.parametrize(
    ("filename", "content"),
    [
        ("signals.json", b'[{"id": "\xff", "lat": 18.52, "lon": 73.85}]'),
        ("signals.csv", b"id,lat,lon\n\xff\xfe\xfa,1,2\n"),
    ],
)
def test_file_source_with_invalid_encoding_is_catalog_unavailable(tmp_path: Path, filename, content):
    path = tmp_path / filename
    path.write_bytes(content)

    with pytest.raises(CatalogUnavailable):
        FileCatalogSource(path).load()


def test_overpass_backend_without_bbox_is_catalog_unavailable(monkeypatch):
    from signalcore.data import overpass_client

    monkeypatch.setattr(overpass_client.settings, "overpass_bbox", None)

    with pytest.raises(CatalogUnavailable):
        signal_repository.get_catalog_source("overpass")
