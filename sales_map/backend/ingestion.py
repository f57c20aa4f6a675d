"""
Background ingestion of uploaded sales spreadsheets.

An upload becomes a job (processing -> completed | error) that decodes the
first sheet, normalizes rows chunk by chunk, replaces the store contents and
then kicks off geocoding. Jobs are not queued or cancelled: two overlapping
uploads both run, and whichever inserts last owns the store.
"""
import asyncio
import logging
import time
import uuid
from collections.abc import Callable, Coroutine
from typing import Any

from data_loader import SheetData, SheetNormalizer, normalize_chunk_size, read_first_sheet
from geocoder import GeocodeEnricher
from metrics import round_half_up
from models import UploadJob, UploadStatusResponse
from store import SalesStore

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_MESSAGE = "Failed to process Excel file"


def generate_upload_id() -> str:
    return f"upload_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _now_ms() -> int:
    return int(time.time() * 1000)


class IngestionRunner:
    """
    Owns upload jobs and the background tasks that process them.

    Must be used from coroutines running on a single event loop; job state
    and the store are only mutated from that loop.
    """

    def __init__(
        self,
        store: SalesStore,
        enricher: GeocodeEnricher | None = None,
        decoder: Callable[[bytes], SheetData] = read_first_sheet,
    ):
        self.store = store
        self.enricher = enricher
        self.decoder = decoder
        self._jobs: dict[str, UploadJob] = {}
        # Strong references so the loop does not drop running tasks
        self._tasks: set[asyncio.Task] = set()
        # Running geocoding pass and the store generation it was started for
        self._enrichment: tuple[asyncio.Task, int] | None = None

    # ------------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------------

    def start(self, content: bytes) -> str:
        """Register a job for the uploaded bytes and process it in the background."""
        job_id = generate_upload_id()
        self._jobs[job_id] = UploadJob(job_id=job_id, status="processing", start_time=_now_ms())
        logger.info("Starting background processing for upload %s", job_id)
        self._spawn(self.process(job_id, content), name=f"ingest-{job_id}")
        return job_id

    def get_status(self, job_id: str) -> UploadJob | None:
        job = self._jobs.get(job_id)
        return job.model_copy() if job is not None else None

    def status_report(self, job_id: str) -> UploadStatusResponse | None:
        """Job snapshot plus elapsed time and percent complete."""
        job = self._jobs.get(job_id)
        if job is None:
            return None
        percent = int(round_half_up(job.processed_rows / job.total_rows * 100)) if job.total_rows > 0 else 0
        return UploadStatusResponse(
            **job.model_dump(),
            processing_time=_now_ms() - job.start_time,
            progress_percent=percent,
        )

    def schedule_enrichment(self) -> bool:
        """
        Start a geocoding pass in the background. Returns False if geocoding is unavailable.

        A pass still running over the current data is reused instead of
        starting a second one that would repeat its lookups. A pass left over
        from data that has since been cleared stops on its own, so a fresh
        one is started.
        """
        if self.enricher is None or not self.enricher.enabled:
            return False
        if self._enrichment is not None:
            task, generation = self._enrichment
            if not task.done() and generation == self.store.generation:
                logger.info("Geocoding already in progress; not starting another pass")
                return True
        task = self._spawn(self._enrich_in_background(), name="geocode")
        self._enrichment = (task, self.store.generation)
        return True

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every background task, including ones they spawn, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding background work (process shutdown only)."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _fail(self, job: UploadJob, message: str) -> None:
        job.status = "error"
        job.error = message

    async def process(self, job_id: str, content: bytes) -> None:
        job = self._jobs[job_id]
        try:
            # Decoding is blocking pandas work; keep the loop free for status polls
            sheet = await asyncio.to_thread(self.decoder, content)
            total_rows = len(sheet.rows)
            job.total_rows = total_rows

            normalizer = SheetNormalizer()
            records = []
            chunk_size = normalize_chunk_size(total_rows)
            for start in range(0, total_rows, chunk_size):
                records.extend(normalizer.normalize_rows(sheet.rows[start:start + chunk_size]))
                job.processed_rows = min(start + chunk_size, total_rows)
                await asyncio.sleep(0)

            if not records:
                message = normalizer.no_valid_data_message(sheet.columns)
                logger.warning("Upload %s produced no valid rows (%d skipped): %s",
                               job_id, normalizer.skipped, message)
                self._fail(job, message)
                return

            logger.info("Found unique makers: %s", sorted(normalizer.makers))
            logger.info("Found unique RTOs: %s", sorted(normalizer.rtos))

            # No suspension between clear and insert: readers never see a half-loaded store
            self.store.clear()
            inserted = self.store.insert_batch(records)

            job.inserted_records = len(inserted)
            job.processed_rows = total_rows
            job.status = "completed"
            logger.info("Background processing completed for upload %s: %d records inserted, %d rows skipped",
                        job_id, len(inserted), normalizer.skipped)
        except Exception as exc:
            logger.exception("Background processing error for upload %s", job_id)
            self._fail(job, str(exc) or DEFAULT_FAILURE_MESSAGE)
            return

        self.schedule_enrichment()

    async def _enrich_in_background(self) -> None:
        try:
            await self.enricher.enrich_all()
        except Exception:
            logger.exception("Background geocoding failed")
