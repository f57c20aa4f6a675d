"""
In-memory sales record store.
Holds every imported record keyed by a sequential id, plus cached filter options.
"""
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from models import FilterOptions, SalesRecord, SalesRecordCreate

logger = logging.getLogger(__name__)

INITIAL_ID = 1


def batch_chunk_size(count: int) -> int:
    """Chunk size used by insert_batch: a tenth of the batch, kept within [100, 1000]."""
    return min(1000, max(100, count // 10))


class SalesStore:
    """
    Process-local record store.

    All methods are synchronous and never yield to the event loop, so each call
    is atomic with respect to other store calls made from coroutines on the
    same loop. Callers on other threads must not touch the store directly.
    """

    def __init__(self):
        self._records: dict[int, SalesRecord] = {}
        self._next_id = INITIAL_ID
        self._filter_options: FilterOptions | None = None
        # Bumped by clear(); lets long-running writers detect a reset
        self.generation = 0

    # ------------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------------

    def _store(self, record: SalesRecordCreate | Mapping[str, Any]) -> SalesRecord:
        if not isinstance(record, SalesRecordCreate):
            record = SalesRecordCreate.model_validate(record)
        record_id = self._next_id
        self._next_id += 1
        stored = SalesRecord.model_construct(id=record_id, **record.model_dump())
        self._records[record_id] = stored
        return stored

    def insert(self, record: SalesRecordCreate | Mapping[str, Any]) -> SalesRecord:
        """Assign the next id to a record, fill defaults and store it."""
        stored = self._store(record)
        self._filter_options = None
        return stored

    def insert_batch(
        self, records: Iterable[SalesRecordCreate | Mapping[str, Any]]
    ) -> list[SalesRecord]:
        """
        Insert many records; ids follow input order.

        Equivalent to calling insert() for each record, but works through the
        batch in chunks.
        """
        pending = list(records)
        chunk_size = batch_chunk_size(len(pending))
        inserted: list[SalesRecord] = []
        for start in range(0, len(pending), chunk_size):
            inserted.extend(self._store(r) for r in pending[start:start + chunk_size])
        self._filter_options = None
        logger.debug("Inserted %d records in chunks of %d", len(inserted), chunk_size)
        return inserted

    def clear(self) -> None:
        """Drop all records, reset ids to their initial value and invalidate caches."""
        self._records.clear()
        self._next_id = INITIAL_ID
        self._filter_options = None
        self.generation += 1

    def update_coordinates(
        self,
        record_id: int,
        latitude: float,
        longitude: float,
        generation: int | None = None,
    ) -> bool:
        """
        Set the coordinates of one record.

        Unknown ids are ignored (the store may have been cleared in the
        meantime). When a generation is given, the write is also ignored if the
        store has been cleared since that generation was read.
        Returns True if a record was updated.
        """
        if generation is not None and generation != self.generation:
            return False
        record = self._records.get(record_id)
        if record is None:
            return False
        record.latitude = latitude
        record.longitude = longitude
        return True

    # ------------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------------

    def get_all(self) -> list[SalesRecord]:
        return list(self._records.values())

    def get(self, record_id: int) -> SalesRecord | None:
        return self._records.get(record_id)

    def pending_geocode(self) -> list[SalesRecord]:
        """Records still at the (0, 0) sentinel that have a city and state to look up."""
        return [
            r for r in self._records.values()
            if not r.is_geocoded and r.city and r.state
        ]

    def get_filter_options(self) -> FilterOptions:
        """
        Distinct, non-empty, sorted values for each filter dimension.
        Cached until the next insert or clear.
        """
        if self._filter_options is None:
            makers, rtos, states, districts = set(), set(), set(), set()
            for r in self._records.values():
                makers.add(r.maker)
                rtos.add(r.rto)
                states.add(r.state)
                districts.add(r.district)
            self._filter_options = FilterOptions(
                makers=sorted(v for v in makers if v),
                rtos=sorted(v for v in rtos if v),
                states=sorted(v for v in states if v),
                districts=sorted(v for v in districts if v),
            )
        return self._filter_options

    @property
    def record_count(self) -> int:
        return len(self._records)

    @property
    def is_loaded(self) -> bool:
        return bool(self._records)
