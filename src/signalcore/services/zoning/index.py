"""Read-only lookup of zones by their 1-based index."""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterator, Mapping, Sequence

from ...exceptions import InvalidParameter, ZoneNotFound
from ...models.domain import Zone


class ZoneIndex:
    """Immutable mapping from zone index to zone, built once per clustering run."""

    __slots__ = ("_zones", "_by_index", "_by_signal", "version")

    def __init__(self, zones: Sequence[Zone], version: int = 0) -> None:
        ordered = tuple(sorted(zones, key=lambda zone: zone.index))
        by_index: dict[int, Zone] = {}
        for zone in ordered:
            if zone.index in by_index:
                raise InvalidParameter("zones", zone.index, "duplicate zone index")
            by_index[zone.index] = zone
        expected = list(range(1, len(ordered) + 1))
        if list(by_index) != expected:
            raise InvalidParameter("zones", list(by_index), "zone indices must run 1..N")
        by_signal: dict[str, Zone] = {}
        for zone in ordered:
            for member in zone.members:
                if member.id in by_signal:
                    raise InvalidParameter("zones", member.id, "signal assigned to more than one zone")
                by_signal[member.id] = zone

        self._zones: tuple[Zone, ...] = ordered
        self._by_index: Mapping[int, Zone] = MappingProxyType(by_index)
        self._by_signal: Mapping[str, Zone] = MappingProxyType(by_signal)
        self.version = version

    @classmethod
    def build(cls, zones: Sequence[Zone], version: int = 0) -> "ZoneIndex":
        return cls(zones, version=version)

    @classmethod
    def empty(cls) -> "ZoneIndex":
        return cls((), version=0)

    def lookup(self, index: int) -> Zone:
        if isinstance(index, bool) or not isinstance(index, int):
            raise ZoneNotFound(index, len(self._zones))
        zone = self._by_index.get(index)
        if zone is None:
            raise ZoneNotFound(index, len(self._zones))
        return zone

    def zone_for_signal(self, signal_id: str) -> Zone:
        """Return the zone holding ``signal_id``."""
        zone = self._by_signal.get(signal_id)
        if zone is None:
            raise ZoneNotFound(signal_id, len(self._zones))
        return zone

    @property
    def zones(self) -> tuple[Zone, ...]:
        return self._zones

    def __len__(self) -> int:
        return len(self._zones)

    def __iter__(self) -> Iterator[Zone]:
        return iter(self._zones)

    def __contains__(self, index: object) -> bool:
        return index in self._by_index

    def __setattr__(self, name: str, value: object) -> None:
        if hasattr(self, "version"):
            raise AttributeError("ZoneIndex is read-only")
        object.__setattr__(self, name, value)
