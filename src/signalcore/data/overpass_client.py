"""HTTP client for importing traffic signals from the OpenStreetMap Overpass API."""

from __future__ import annotations

import logging
import time

import httpx

from ..config import settings
from ..exceptions import CatalogUnavailable, InvalidParameter
from ..models.domain import SignalRecord
from .signal_repository import _flatten_documents, normalize_records

logger = logging.getLogger(__name__)

Bounds = tuple[float, float, float, float]


def build_signal_query(bbox: Bounds, timeout_seconds: int = 60) -> str:
    """Overpass QL selecting traffic signal nodes inside (south, west, north, east)."""

    south, west, north, east = bbox
    if not (-90.0 <= south < north <= 90.0) or not (-180.0 <= west < east <= 180.0):
        raise InvalidParameter("bbox", bbox, "expected (south, west, north, east) with south < north and west < east")
    return (
        f"[out:json][timeout:{timeout_seconds}];"
        f'node["highway"="traffic_signals"]({south},{west},{north},{east});'
        "out body;"
    )


class OverpassCatalogSource:
    def __init__(
        self,
        bbox: Bounds | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.bbox = bbox or settings.overpass_bbox
        if not self.bbox:
            raise CatalogUnavailable("Overpass", "bounding box is not configured (SIGNALCORE_OVERPASS_BBOX)")
        self.base_url = base_url or settings.overpass_url
        self.timeout = timeout if timeout is not None else settings.overpass_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.overpass_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.overpass_backoff_seconds
        self._transport = transport
        self.name = f"Overpass {self.base_url}"

    def _get_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=self._transport,
        )

    def fetch_elements(self) -> list[dict]:
        query = build_signal_query(self.bbox, timeout_seconds=int(self.timeout))
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.post(self.base_url, data={"data": query})
                    response.raise_for_status()
                    payload = response.json()
                    if "elements" not in payload:
                        raise CatalogUnavailable(self.name, "response missing 'elements'")
                    return _flatten_documents(payload, self.name)
                except httpx.HTTPStatusError as e:
                    attempt += 1
                    # rate limiting and gateway errors only
                    retryable = e.response.status_code in (429, 502, 503, 504)
                    if not retryable or attempt > self.max_retries:
                        raise CatalogUnavailable(
                            self.name, f"HTTP {e.response.status_code} from Overpass"
                        ) from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Overpass busy, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait_time)
                except httpx.TransportError as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"Overpass request failed after {self.max_retries} retries: {e}")
                        raise CatalogUnavailable(self.name, f"network error: {e}") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Overpass network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait_time)
                except ValueError as e:
                    raise CatalogUnavailable(self.name, f"invalid JSON response: {e}") from e
        finally:
            client.close()

    def load(self) -> tuple[SignalRecord, ...]:
        return normalize_records(self.fetch_elements(), self.name)
