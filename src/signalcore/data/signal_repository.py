"""Signal catalog loaders with a database-first approach, falling back to an inventory file."""

from __future__ import annotations

import csv
import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Protocol
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..config import settings
from ..db.supabase import get_supabase_client
from ..exceptions import CatalogUnavailable, InvalidParameter
from ..models.domain import GeoPoint, SignalRecord

logger = logging.getLogger(__name__)

DATABASE_PAGE_SIZE = 1000

_LAT_KEYS = ("lat", "latitude", "Latitude", "LAT")
_LON_KEYS = ("lon", "lng", "longitude", "Longitude", "LON", "LNG")
_ID_KEYS = ("id", "signal_id", "SignalId", "osm_id", "_id")


class CatalogSource(Protocol):
    """Anything that can produce an immutable snapshot of the signal inventory."""

    name: str

    def load(self) -> tuple[SignalRecord, ...]:
        ...


def _coerce_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Unable to parse float from value '{value}'")
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(",", "").strip())
    except ValueError as exc:
        raise ValueError(f"Unable to parse float from value '{value}'") from exc


def _first_present(row: dict, keys: Iterable[str]) -> Any:
    for key in keys:
        value = row.get(key)
        if value is not None and value != "":
            return value
    return None


def _extract_coordinates(row: dict) -> tuple[Optional[float], Optional[float]]:
    """Read (lat, lon) from flat keys or a GeoJSON point geometry ([lon, lat])."""

    geometry = row.get("geometry")
    if isinstance(geometry, dict) and isinstance(geometry.get("coordinates"), (list, tuple)):
        coordinates = geometry["coordinates"]
        if len(coordinates) >= 2:
            return _coerce_float(coordinates[1]), _coerce_float(coordinates[0])
        return None, None
    return _coerce_float(_first_present(row, _LAT_KEYS)), _coerce_float(_first_present(row, _LON_KEYS))


def _fallback_id(lat: float, lon: float) -> str:
    digest = hashlib.sha1(f"{lat:.7f},{lon:.7f}".encode("utf-8")).hexdigest()
    return f"sig-{digest[:12]}"


def _flatten_documents(payload: Any, source: str) -> list[dict]:
    """Unwrap Overpass ``elements``, GeoJSON ``features`` and lists of such documents."""

    if isinstance(payload, dict):
        if "elements" in payload:
            return _flatten_documents(payload["elements"], source)
        if "features" in payload:
            return _flatten_documents(payload["features"], source)
        return [payload]
    if isinstance(payload, list):
        rows: list[dict] = []
        for item in payload:
            if isinstance(item, dict) and ("elements" in item or "features" in item):
                rows.extend(_flatten_documents(item, source))
            else:
                rows.append(item)
        return rows
    raise CatalogUnavailable(source, f"expected a list of signal records, got {type(payload).__name__}")


def normalize_records(rows: Iterable[Any], source: str) -> tuple[SignalRecord, ...]:
    """Convert raw storage rows into signal records.

    Rows with missing, unparseable or out-of-range coordinates are skipped
    with a warning. Duplicate ids keep their first occurrence. Raises
    ``CatalogUnavailable`` when nothing usable remains.
    """

    records: list[SignalRecord] = []
    seen: set[str] = set()
    skipped = 0
    total = 0
    for row in rows:
        total += 1
        if not isinstance(row, dict):
            logger.warning("Skipping non-object signal row from %s: %r", source, row)
            skipped += 1
            continue
        if "properties" in row and isinstance(row["properties"], dict) and "id" not in row:
            row = {**row["properties"], "geometry": row.get("geometry")}
        try:
            lat, lon = _extract_coordinates(row)
            if lat is None or lon is None:
                raise ValueError("missing coordinates")
            location = GeoPoint(lat=lat, lon=lon)
        except (ValueError, TypeError, InvalidParameter) as exc:
            logger.warning("Skipping invalid signal row from %s: %s", source, exc)
            skipped += 1
            continue

        raw_id = _first_present(row, _ID_KEYS)
        signal_id = str(raw_id).strip() if raw_id is not None else _fallback_id(lat, lon)
        if signal_id in seen:
            logger.warning("Skipping duplicate signal id '%s' from %s", signal_id, source)
            skipped += 1
            continue
        seen.add(signal_id)
        records.append(SignalRecord(id=signal_id, location=location))

    if not records:
        if total == 0:
            raise CatalogUnavailable(source, "no signal records returned")
        raise CatalogUnavailable(source, f"none of the {total} signal records had usable coordinates")
    if skipped:
        logger.warning("Loaded %d signals from %s, skipped %d invalid rows", len(records), source, skipped)
    return tuple(records)


def _iter_csv_rows(path: Path) -> Iterator[dict]:
    with path.open(mode="r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            raise CatalogUnavailable(str(path), "file is missing a header row")
        yield from reader


def _iter_workbook_rows(path: Path) -> Iterator[dict]:
    wb = load_workbook(path, data_only=True, read_only=True)
    try:
        rows = wb.active.iter_rows(min_row=1, values_only=True)
        header = next(rows, None)
        if header is None:
            raise CatalogUnavailable(str(path), "workbook is empty")
        names = [str(name).strip() if name is not None else "" for name in header]
        for row in rows:
            if all(value is None for value in row):
                continue
            yield dict(zip(names, row))
    finally:
        wb.close()


class FileCatalogSource:
    """Signal inventory stored as JSON (Overpass, GeoJSON or plain records), CSV or XLSX."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = Path(path or settings.signals_file)
        self.name = f"file {self.path.name}"

    def load(self) -> tuple[SignalRecord, ...]:
        if not self.path.exists():
            raise CatalogUnavailable(self.name, f"inventory file not found: {self.path}")

        suffix = self.path.suffix.lower()
        if suffix in {".json", ".geojson"}:
            try:
                payload = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
                raise CatalogUnavailable(self.name, f"unreadable JSON: {exc}") from exc
            rows: Iterable[Any] = _flatten_documents(payload, self.name)
        elif suffix == ".csv":
            rows = _iter_csv_rows(self.path)
        elif suffix == ".xlsx":
            rows = _iter_workbook_rows(self.path)
        else:
            raise CatalogUnavailable(self.name, f"unsupported inventory format '{suffix}'")
        try:
            return normalize_records(rows, self.name)
        except (OSError, UnicodeDecodeError, BadZipFile, InvalidFileException) as exc:
            raise CatalogUnavailable(self.name, f"unreadable inventory file: {exc}") from exc


class SupabaseCatalogSource:
    """Signal inventory held in a Supabase table, read page by page."""

    def __init__(self, client: Any = None, table: str | None = None, page_size: int = DATABASE_PAGE_SIZE) -> None:
        self._client = client
        self.table = table or settings.signals_table
        self.page_size = page_size
        self.name = f"database table {self.table}"

    @property
    def configured(self) -> bool:
        return (self._client or get_supabase_client()) is not None

    def _fetch_rows(self) -> list[dict]:
        client = self._client or get_supabase_client()
        if client is None:
            raise CatalogUnavailable(self.name, "Supabase is not configured")

        rows: list[dict] = []
        offset = 0
        try:
            while True:
                response = (
                    client.table(self.table)
                    .select("*")
                    .range(offset, offset + self.page_size - 1)
                    .execute()
                )
                batch = response.data or []
                rows.extend(batch)
                if len(batch) < self.page_size:
                    break
                offset += self.page_size
        except CatalogUnavailable:
            raise
        except Exception as exc:
            raise CatalogUnavailable(self.name, f"query failed: {exc}") from exc
        return rows

    def load(self) -> tuple[SignalRecord, ...]:
        return normalize_records(_flatten_documents(self._fetch_rows(), self.name), self.name)


class DefaultCatalogSource:
    """Read the database when it is configured, otherwise the inventory file."""

    name = "signal catalog"

    def __init__(self, database: SupabaseCatalogSource | None = None, file: FileCatalogSource | None = None) -> None:
        self.database = database or SupabaseCatalogSource()
        self.file = file or FileCatalogSource()

    def load(self) -> tuple[SignalRecord, ...]:
        if self.database.configured:
            try:
                return self.database.load()
            except CatalogUnavailable as exc:
                if not self.file.path.exists():
                    raise
                logger.warning(f"{exc}. Falling back to {self.file.name}.")
        return self.file.load()


def get_catalog_source(backend: str | None = None) -> CatalogSource:
    match backend or settings.catalog_backend:
        case "auto":
            return DefaultCatalogSource()
        case "database":
            return SupabaseCatalogSource()
        case "file":
            return FileCatalogSource()
        case "overpass":
            from .overpass_client import OverpassCatalogSource

            return OverpassCatalogSource()
        case other:
            raise ValueError(f"Unknown catalog backend '{other}'.")


def load_signals(source: CatalogSource | None = None) -> tuple[SignalRecord, ...]:
    """Load an immutable snapshot of the signal catalog."""

    catalog_source = source or get_catalog_source()
    signals = catalog_source.load()
    logger.info("Loaded %d traffic signals from %s", len(signals), catalog_source.name)
    return signals
