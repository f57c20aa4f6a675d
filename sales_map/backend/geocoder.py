"""
Geocoding for sales records.

GoogleGeocoder talks to the Google Geocoding API over requests.
GeocodeEnricher resolves every distinct (city, state) pair still at the (0, 0)
sentinel, in rate-limited waves, and writes coordinates back into the store.
"""
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Protocol

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from models import SalesRecord
from store import SalesStore

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

Coordinates = tuple[float, float]


class GeocodingError(Exception):
    """Raised when the geocoding provider rejects or fails a request."""


class Geocoder(Protocol):
    def lookup(self, address: str) -> Coordinates | None: ...


# ============================================================================
# Google Geocoding Client
# ============================================================================

def get_session_with_retries(total: int = 3, backoff: float = 1.0) -> requests.Session:
    s = requests.Session()
    retries = Retry(
        total=total,
        backoff_factor=backoff,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
    )
    s.mount("https://", HTTPAdapter(max_retries=retries))
    s.mount("http://", HTTPAdapter(max_retries=retries))
    return s


class GoogleGeocoder:
    """Blocking client for the Google Geocoding JSON API."""

    def __init__(
        self,
        api_key: str,
        session: requests.Session | None = None,
        timeout: float = 10.0,
        url: str = GEOCODE_URL,
    ):
        self.api_key = api_key
        self.session = session or get_session_with_retries()
        self.timeout = timeout
        self.url = url

    def fetch(self, address: str) -> dict[str, Any]:
        """Return the provider's raw JSON response for an address."""
        response = self.session.get(
            self.url,
            params={"address": address, "key": self.api_key},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def lookup(self, address: str) -> Coordinates | None:
        """
        Resolve an address to (latitude, longitude).

        Returns None when the provider finds nothing; raises GeocodingError for
        any other non-OK provider status.
        """
        data = self.fetch(address)
        status = data.get("status")
        if status == "ZERO_RESULTS":
            return None
        if status != "OK":
            detail = data.get("error_message") or "no details"
            raise GeocodingError(f"Geocoding status {status}: {detail}")

        results = data.get("results") or []
        if not results:
            return None
        location = results[0]["geometry"]["location"]
        return float(location["lat"]), float(location["lng"])

    def close(self) -> None:
        self.session.close()


# ============================================================================
# Enrichment
# ============================================================================

@dataclass
class EnrichmentResult:
    pending_records: int = 0
    cache_hits: int = 0
    lookups: int = 0
    updated_records: int = 0
    failed_keys: list[str] = field(default_factory=list)


class GeocodeEnricher:
    """
    Fills in coordinates for records still at the (0, 0) sentinel.

    Lookups are deduplicated by "city, state": cached keys are applied without
    a provider call, and each uncached key is looked up once per pass, at most
    batch_size at a time with batch_delay seconds between waves. Failed keys
    stay at the sentinel so a later pass can retry them.
    """

    def __init__(
        self,
        store: SalesStore,
        geocoder: Geocoder | None,
        batch_size: int = 10,
        batch_delay: float = 1.0,
        region: str = "India",
    ):
        self.store = store
        self.geocoder = geocoder
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay
        self.region = region
        self.cache: dict[str, Coordinates] = {}

    @property
    def enabled(self) -> bool:
        return self.geocoder is not None

    def address_for(self, record: SalesRecord) -> str:
        if self.region:
            return f"{record.city}, {record.state}, {self.region}"
        return f"{record.city}, {record.state}"

    def _apply(self, records: list[SalesRecord], coords: Coordinates, generation: int) -> int:
        updated = 0
        for record in records:
            if self.store.update_coordinates(record.id, coords[0], coords[1], generation=generation):
                updated += 1
        return updated

    async def _lookup(self, key: str, address: str) -> Coordinates | None:
        try:
            coords = await asyncio.to_thread(self.geocoder.lookup, address)
        except (requests.RequestException, GeocodingError) as exc:
            logger.warning("Geocoding failed for %s: %s", key, exc)
            return None
        except Exception:
            # Malformed provider payloads and client bugs fail this key only
            logger.warning("Geocoding failed for %s", key, exc_info=True)
            return None
        if coords is None:
            logger.warning("Geocoding returned no results for %s", key)
        return coords

    async def enrich_all(self) -> EnrichmentResult:
        """Resolve and write coordinates for every record that still needs them."""
        result = EnrichmentResult()
        if not self.enabled:
            logger.info("Geocoding skipped: no API key configured")
            return result

        generation = self.store.generation
        pending = self.store.pending_geocode()
        result.pending_records = len(pending)
        if not pending:
            return result

        by_key: dict[str, list[SalesRecord]] = defaultdict(list)
        for record in pending:
            by_key[record.geocode_key].append(record)

        misses: list[str] = []
        for key, records in by_key.items():
            cached = self.cache.get(key)
            if cached is not None:
                result.cache_hits += 1
                result.updated_records += self._apply(records, cached, generation)
            else:
                misses.append(key)

        logger.info("Geocoding %d locations for %d records in background...",
                    len(misses), result.pending_records)

        for start in range(0, len(misses), self.batch_size):
            if generation != self.store.generation:
                logger.info("Geocoding stopped: sales data was cleared")
                break

            wave = misses[start:start + self.batch_size]
            resolved = await asyncio.gather(*(
                self._lookup(key, self.address_for(by_key[key][0])) for key in wave
            ))
            result.lookups += len(wave)

            for key, coords in zip(wave, resolved):
                if coords is None:
                    result.failed_keys.append(key)
                    continue
                self.cache[key] = coords
                result.updated_records += self._apply(by_key[key], coords, generation)

            if start + self.batch_size < len(misses):
                await asyncio.sleep(self.batch_delay)

        logger.info("Background geocoding completed: %d records updated, %d locations failed",
                    result.updated_records, len(result.failed_keys))
        return result
