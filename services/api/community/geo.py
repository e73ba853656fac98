"""
Geo resolver — postal code (+ optional preferred city/state) -> LocationRecord.

Backed by a static US cities CSV with at least these columns:
    city, state_id, county_name, lat, lng, population, zips
where `zips` is a space-separated list of postal codes.

The index is built lazily on first lookup and then treated as read-only.
Two coroutines racing on the first build both produce an equivalent index;
the last assignment wins and no lock is taken.

Also provides haversine distance helpers memoized per origin and per set of
service-area centers.
"""

from __future__ import annotations

import csv
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class LocationRecord:
    city: str
    state: str
    county: str
    lat: float
    lng: float
    population: int
    zips: frozenset[str]


def _parse_row(row: dict[str, str]) -> LocationRecord | None:
    try:
        return LocationRecord(
            city=(row.get("city") or "").strip(),
            state=(row.get("state_id") or "").strip().upper(),
            county=(row.get("county_name") or "").strip(),
            lat=float(row["lat"]),
            lng=float(row["lng"]),
            population=int(float(row.get("population") or 0)),
            zips=frozenset((row.get("zips") or "").split()),
        )
    except (KeyError, TypeError, ValueError):
        return None


def load_city_records(path: str | Path) -> list[LocationRecord]:
    """Read the cities CSV. Rows with unparseable coordinates are skipped."""
    records: list[LocationRecord] = []
    with open(path, newline="", encoding="utf-8") as fh:
        for row in csv.DictReader(fh):
            record = _parse_row(row)
            if record is not None and record.city:
                records.append(record)
    logger.info("Loaded %d city records from %s", len(records), path)
    return records


class GeoIndex:
    """
    In-memory postal-code and city-name index over LocationRecords.

    Usage:
        index = GeoIndex.from_csv(settings.community_cities_dataset)
        location = index.resolve("78701")
        location = index.resolve("78701", preferred_city="Austin", preferred_state="tx")
    """

    def __init__(
        self,
        records: Iterable[LocationRecord] | None = None,
        dataset_path: str | Path | None = None,
    ) -> None:
        self._seed = list(records) if records is not None else None
        self._dataset_path = dataset_path
        self._records: list[LocationRecord] | None = None
        self._by_zip: dict[str, LocationRecord] = {}
        self._by_city: dict[str, list[LocationRecord]] = {}

    @classmethod
    def from_csv(cls, path: str | Path) -> "GeoIndex":
        return cls(dataset_path=path)

    @classmethod
    def from_records(cls, records: Iterable[LocationRecord]) -> "GeoIndex":
        return cls(records=records)

    def _ensure_built(self) -> list[LocationRecord]:
        if self._records is not None:
            return self._records

        if self._seed is not None:
            records = self._seed
        elif self._dataset_path is not None:
            try:
                records = load_city_records(self._dataset_path)
            except OSError:
                logger.warning(
                    "City dataset unavailable at %s; geo lookups disabled",
                    self._dataset_path,
                    exc_info=True,
                )
                records = []
        else:
            records = []

        by_zip: dict[str, LocationRecord] = {}
        by_city: dict[str, list[LocationRecord]] = {}
        for record in records:
            for zip_code in record.zips:
                existing = by_zip.get(zip_code)
                if existing is None or record.population > existing.population:
                    by_zip[zip_code] = record
            by_city.setdefault(record.city.strip().lower(), []).append(record)

        self._by_zip = by_zip
        self._by_city = by_city
        self._records = records
        return records

    def resolve(
        self,
        zip_code: str,
        preferred_city: str | None = None,
        preferred_state: str | None = None,
    ) -> LocationRecord | None:
        """
        Resolve a postal code to its LocationRecord.

        With a preferred city, only records for that city (case-insensitive,
        optionally in the preferred state) that list the postal code qualify;
        the most populous wins. Otherwise the direct postal-code index is used.
        Returns None when nothing matches.
        """
        self._ensure_built()
        if not zip_code:
            return None

        if preferred_city:
            city_key = preferred_city.strip().lower()
            state_key = preferred_state.strip().upper() if preferred_state else None
            candidates = [
                record
                for record in self._by_city.get(city_key, [])
                if zip_code in record.zips
                and (state_key is None or record.state == state_key)
            ]
            if candidates:
                return max(candidates, key=lambda record: record.population)

        return self._by_zip.get(zip_code)

    def cities_named(self, city: str) -> list[LocationRecord]:
        self._ensure_built()
        return list(self._by_city.get(city.strip().lower(), []))


def resolve_location_or_warn(
    index: GeoIndex,
    zip_code: str,
    preferred_city: str | None = None,
    preferred_state: str | None = None,
    audience: str | None = None,
) -> LocationRecord | None:
    location = index.resolve(zip_code, preferred_city, preferred_state)
    if location is None:
        logger.warning(
            "Unable to resolve zip=%s city=%r state=%r audience=%s; skipping community data",
            zip_code,
            preferred_city,
            preferred_state,
            audience,
        )
    return location


# ---------------------------------------------------------------------------
# Distance
# ---------------------------------------------------------------------------

def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _coord_key(lat: float, lng: float) -> str:
    return f"{lat:.5f}:{lng:.5f}"


class DistanceCache:
    """Memoized distance from a fixed origin."""

    def __init__(self, origin_lat: float, origin_lng: float) -> None:
        self.origin_lat = origin_lat
        self.origin_lng = origin_lng
        self._cache: dict[str, float] = {}

    def distance_km(self, lat: float, lng: float) -> float:
        key = _coord_key(lat, lng)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        distance = haversine_km(self.origin_lat, self.origin_lng, lat, lng)
        self._cache[key] = distance
        return distance


class ServiceAreaDistanceCache:
    """Memoized distance to the nearest of several service-area centers."""

    def __init__(self, centers: list[LocationRecord]) -> None:
        self.centers = centers
        self._cache: dict[str, float] = {}

    def distance_km(self, lat: float, lng: float) -> float | None:
        if not self.centers:
            return None
        key = _coord_key(lat, lng)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        distance = min(
            haversine_km(center.lat, center.lng, lat, lng) for center in self.centers
        )
        self._cache[key] = distance
        return distance


def resolve_service_area_centers(
    service_areas: list[str] | None,
    location: LocationRecord,
    index: GeoIndex,
) -> list[LocationRecord] | None:
    """
    Map "City" or "City, ST" service-area strings to dataset records.

    Same-state matches are preferred, then the most populous record.
    Unknown names are skipped. Returns None when nothing resolves.
    """
    if not service_areas:
        return None
    areas = [area.strip() for area in service_areas if area and area.strip()]
    if not areas:
        return None

    centers: list[LocationRecord] = []
    for area in areas:
        city_part, _, state_part = area.partition(",")
        city_part = city_part.strip() or area
        state_part = state_part.strip()

        candidates = index.cities_named(city_part)
        if not candidates:
            continue
        if state_part:
            candidates = [r for r in candidates if r.state.lower() == state_part.lower()]
        same_state = [r for r in candidates if r.state == location.state]
        pool = same_state or candidates
        if pool:
            centers.append(max(pool, key=lambda record: record.population))

    return centers or None


@dataclass
class GeoRuntimeContext:
    distance_cache: DistanceCache
    service_area_cache: ServiceAreaDistanceCache | None


def build_geo_runtime_context(
    location: LocationRecord,
    service_areas: list[str] | None,
    index: GeoIndex,
) -> GeoRuntimeContext:
    centers = resolve_service_area_centers(service_areas, location, index)
    return GeoRuntimeContext(
        distance_cache=DistanceCache(location.lat, location.lng),
        service_area_cache=ServiceAreaDistanceCache(centers) if centers else None,
    )
