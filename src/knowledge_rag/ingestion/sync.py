"""Catalog sync: diff, then retry rounds until the pending set converges.

Flow of one run::

    fetch_catalog ─► pending_items (incremental) ─► round 1 ─► round 2 ─► …

Every round submits each still-pending item to the shared
:class:`~knowledge_rag.scheduler.RateLimitedScheduler`.  An item's unit of
work is ``fetch → convert → chunk → upsert → record_ingested``; any exception
from any stage marks the item failed and it is retried next round.  Rounds
are strictly sequential.

The loop stops when

* the pending set is empty (``completed``),
* cancellation was requested (``cancelled``; remaining items are reported as
  not attempted, in-flight tasks drain), or
* ``max_rounds`` rounds have run (``failed``; remaining items are reported as
  unresolved instead of being retried forever).

Parse errors cannot heal on retry, so an item that fails with
:class:`~knowledge_rag.errors.PayloadParseError` ``parse_error_rounds`` times
is skipped and logged.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from concurrent.futures import Future
from datetime import datetime, timezone
from typing import Any, Sequence

from knowledge_rag.errors import PayloadParseError
from knowledge_rag.ingestion import delta
from knowledge_rag.ingestion.catalog import CatalogClient
from knowledge_rag.ingestion.chunker import chunk_document
from knowledge_rag.ingestion.diff import pending_items
from knowledge_rag.ingestion.models import (
    CatalogItem,
    RoundStats,
    SyncJob,
    SyncMode,
    SyncReport,
    SyncStatus,
)
from knowledge_rag.retrieval.base import VectorStoreBase
from knowledge_rag.scheduler import RateLimitedScheduler
from knowledge_rag.store import DocumentStore

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ConvergenceLoop:
    """Drive retry rounds over a set of catalog items.

    Parameters
    ----------
    client:
        Catalog client used to fetch article payloads.
    scheduler:
        Shared rate limiter; every item unit runs inside one scheduled task.
    store:
        Document store notified of each ingested article and of job progress.
    index:
        Vector store receiving the article chunks.
    source_type:
        Tag recorded with every ingested document.
    category_id:
        Optional category attached to every chunk.
    chunk_size / chunk_overlap:
        Chunking parameters.
    max_rounds:
        Maximum number of rounds before remaining items are reported as
        unresolved.
    parse_error_rounds:
        Number of parse failures after which an item is skipped.
    """

    def __init__(
        self,
        client: CatalogClient,
        scheduler: RateLimitedScheduler,
        store: DocumentStore,
        index: VectorStoreBase,
        *,
        source_type: str,
        category_id: str | None = None,
        chunk_size: int = 500,
        chunk_overlap: int = 100,
        max_rounds: int = 10,
        parse_error_rounds: int = 1,
    ) -> None:
        if max_rounds < 1:
            raise ValueError(f"max_rounds must be >= 1, got {max_rounds}")
        self._client = client
        self._scheduler = scheduler
        self._store = store
        self._index = index
        self.source_type = source_type
        self.category_id = category_id
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.max_rounds = max_rounds
        self.parse_error_rounds = max(1, parse_error_rounds)
        self._job_lock = threading.Lock()

    # -- unit of work ---------------------------------------------------------

    def process_item(self, item: CatalogItem) -> bool:
        """Fetch, convert, chunk, index and record one item.

        The item's previously indexed chunks are replaced, not appended to.

        Returns the store's verdict; exceptions propagate to the round.
        """
        article = self._client.fetch_item(item.id)
        text = delta.convert(article.document)
        title = article.title or item.title
        source_url = self._client.item_url(item.id)

        chunks = []
        if text.strip():
            chunks = chunk_document(
                text,
                document_id=item.id,
                category_id=self.category_id,
                title=title,
                source_url=source_url,
                path="/".join(item.path_segments) or None,
                chunk_size=self.chunk_size,
                chunk_overlap=self.chunk_overlap,
            )
        self._index.replace_document(item.id, chunks)

        return self._store.record_ingested(
            text,
            title,
            [*item.path_segments, item.id],
            self.source_type,
            source_url,
            article.updated_at or item.updated_at,
        )

    # -- job lifecycle --------------------------------------------------------

    def start_job(self, job: SyncJob) -> None:
        with self._job_lock:
            if job.status is SyncStatus.PENDING:
                job.status = SyncStatus.RUNNING
                job.started_at = _now()
        self._store.save_sync_job(job)

    def finish_job(self, job: SyncJob, status: SyncStatus, error_message: str | None = None) -> bool:
        """Set the terminal state of *job*; later calls are ignored."""
        with self._job_lock:
            if job.status.is_terminal:
                return False
            job.status = status
            job.completed_at = _now()
            job.error_message = error_message
        self._store.save_sync_job(job)
        return True

    # -- the loop -------------------------------------------------------------

    def run(
        self,
        items: Sequence[CatalogItem],
        *,
        job: SyncJob | None = None,
        cancelled: threading.Event | None = None,
    ) -> SyncReport:
        """Process *items* round after round until the pending set converges."""
        job = job or SyncJob()
        cancelled = cancelled or threading.Event()
        report = SyncReport(job_id=job.id, status=SyncStatus.RUNNING)
        parse_failures: Counter[str] = Counter()

        pending = list(items)
        job.items_total = len(pending)
        self.start_job(job)

        round_no = 0
        while pending:
            if cancelled.is_set():
                report.not_attempted = [i.id for i in pending]
                logger.info("Sync %s cancelled before round %d; %d item(s) not attempted",
                            job.id, round_no + 1, len(pending))
                break
            if round_no >= self.max_rounds:
                report.unresolved = [i.id for i in pending]
                logger.error("Sync %s gave up after %d rounds; %d item(s) unresolved: %s",
                             job.id, round_no, len(pending), report.unresolved)
                break

            round_no += 1
            futures: list[tuple[CatalogItem, Future[bool]]] = [
                (item, self._scheduler.schedule(self.process_item, item)) for item in pending
            ]

            failed: list[CatalogItem] = []
            skipped_now = 0
            for item, future in futures:
                try:
                    ok = future.result()
                except PayloadParseError as exc:
                    parse_failures[item.id] += 1
                    if parse_failures[item.id] >= self.parse_error_rounds:
                        logger.error("Skipping item %s after %d parse failure(s): %s",
                                     item.id, parse_failures[item.id], exc)
                        report.skipped.append(item.id)
                        skipped_now += 1
                    else:
                        logger.warning("Item %s failed to parse in round %d: %s", item.id, round_no, exc)
                        failed.append(item)
                    continue
                except Exception as exc:
                    logger.warning("Item %s failed in round %d: %s: %s",
                                   item.id, round_no, type(exc).__name__, exc)
                    failed.append(item)
                    continue

                if ok:
                    report.succeeded.append(item.id)
                    job.items_processed += 1
                else:
                    logger.warning("Store rejected item %s in round %d", item.id, round_no)
                    failed.append(item)

            stats = RoundStats(
                round=round_no,
                attempted=len(pending),
                failed=len(failed) + skipped_now,
                remaining=len(failed),
            )
            report.rounds.append(stats)
            job.rounds.append(stats)
            logger.info("Sync %s round %d: attempted=%d failed=%d remaining=%d",
                        job.id, stats.round, stats.attempted, stats.failed, stats.remaining)
            self._store.save_sync_job(job)
            pending = failed

        report.status = self._conclude(job, report)
        return report

    def _conclude(self, job: SyncJob, report: SyncReport) -> SyncStatus:
        if report.not_attempted:
            status, message = SyncStatus.CANCELLED, None
        elif report.unresolved:
            status = SyncStatus.FAILED
            message = f"{len(report.unresolved)} item(s) unresolved after {len(report.rounds)} round(s)"
        else:
            status = SyncStatus.COMPLETED
            message = f"{len(report.skipped)} item(s) skipped (unparseable)" if report.skipped else None
        self.finish_job(job, status, message)
        return job.status


class SyncService:
    """Entry point for collaborators: trigger, observe and cancel sync runs.

    Jobs run on a background thread (``trigger_sync``) or inline
    (``run_sync``).  There is no cross-run lock; callers that need at most one
    active run must serialise through the document store.
    """

    def __init__(
        self,
        client: CatalogClient,
        scheduler: RateLimitedScheduler,
        store: DocumentStore,
        index: VectorStoreBase,
        *,
        root_id: str,
        source_type: str,
        **loop_options: Any,
    ) -> None:
        self._client = client
        self._store = store
        self.root_id = root_id
        self.source_type = source_type
        self.loop = ConvergenceLoop(
            client, scheduler, store, index, source_type=source_type, **loop_options
        )
        self._jobs: dict[str, SyncJob] = {}
        self._cancel_events: dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        store: DocumentStore,
        index: VectorStoreBase,
        *,
        scheduler: RateLimitedScheduler | None = None,
        client: CatalogClient | None = None,
    ) -> SyncService:
        return cls(
            client or CatalogClient.from_settings(settings),
            scheduler or RateLimitedScheduler.from_settings(settings),
            store,
            index,
            root_id=settings.catalog_root_id,
            source_type=settings.source_type,
            category_id=settings.default_category_id,
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
            max_rounds=settings.sync_max_rounds,
            parse_error_rounds=settings.sync_parse_error_rounds,
        )

    # -- public API -----------------------------------------------------------

    def trigger_sync(self, mode: SyncMode | str = SyncMode.INCREMENTAL) -> SyncJob:
        """Start a sync in the background and return its (pending) job."""
        job = self._create_job(SyncMode(mode))
        snapshot = job.model_copy(deep=True)
        worker = threading.Thread(
            target=self._execute, args=(job,), name=f"sync-{job.id[:8]}", daemon=True
        )
        worker.start()
        return snapshot

    def run_sync(self, mode: SyncMode | str = SyncMode.INCREMENTAL) -> SyncReport:
        """Run a sync to completion on the calling thread."""
        return self._execute(self._create_job(SyncMode(mode)))

    def cancel_sync(self, job_id: str) -> bool:
        """Request cancellation; ``False`` for unknown or finished jobs."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status.is_terminal:
                return False
            self._cancel_events[job_id].set()
        logger.info("Cancellation requested for sync %s", job_id)
        return True

    def get_job(self, job_id: str) -> SyncJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job is not None else None

    # -- internals ------------------------------------------------------------

    def _create_job(self, mode: SyncMode) -> SyncJob:
        job = SyncJob(mode=mode)
        with self._lock:
            self._jobs[job.id] = job
            self._cancel_events[job.id] = threading.Event()
        self._store.save_sync_job(job)
        logger.info("Created %s sync job %s", mode.value, job.id)
        return job

    def _execute(self, job: SyncJob) -> SyncReport:
        cancelled = self._cancel_events[job.id]
        try:
            self.loop.start_job(job)
            catalog = self._client.fetch_catalog(self.root_id)
            if job.mode is SyncMode.FULL:
                items = catalog
            else:
                known = self._store.find_existing_updated_at(self.source_type)
                items = pending_items(catalog, known)
            logger.info("Sync %s: %d of %d catalog item(s) pending (%s)",
                        job.id, len(items), len(catalog), job.mode.value)
            return self.loop.run(items, job=job, cancelled=cancelled)
        except Exception as exc:
            logger.exception("Sync %s aborted", job.id)
            self._abort(job, exc)
            return SyncReport(job_id=job.id, status=job.status)

    def _abort(self, job: SyncJob, exc: Exception) -> None:
        # finish_job sets the terminal state before it writes to the store.
        try:
            self.loop.finish_job(job, SyncStatus.FAILED, str(exc))
        except Exception:
            logger.exception("Could not persist failure of sync %s", job.id)
