"""Concurrent dispatch of coordinate lookups over the session pool."""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Optional, Sequence

from gmaps_coords.core.errors import LookupFailure, PoolExhaustedError
from gmaps_coords.core.session_pool import SessionPool
from gmaps_coords.models import FailureReason, LookupOutcome, LookupTask, PlaceRecord

logger = logging.getLogger(__name__)

DEFAULT_RETRY_CEILING = 2


def build_query(record: PlaceRecord) -> Optional[str]:
    """Use the record's URL when it has one, otherwise search by name and address."""
    if record.source_locator and record.source_locator.strip():
        return record.source_locator.strip()
    parts = []
    for part in (record.display_name, record.address):
        part = (part or "").strip()
        if part and part not in parts:
            parts.append(part)
    return ", ".join(parts) or None


class ResolutionScheduler:
    """Resolve every record that lacks coordinates, at most ``parallelism`` at a time.

    Timeouts and session errors are pushed back onto the work queue until a
    task has been attempted ``1 + retry_ceiling`` times; a not-found result is
    final. ``run`` returns exactly one outcome per looked-up record, keyed by
    record identity.
    """

    def __init__(
        self,
        pool: SessionPool,
        *,
        retry_ceiling: int = DEFAULT_RETRY_CEILING,
        parallelism: Optional[int] = None,
    ) -> None:
        if retry_ceiling < 0:
            raise ValueError("retry_ceiling must be >= 0")
        self.pool = pool
        self.retry_ceiling = retry_ceiling
        self.parallelism = parallelism
        self.pool_exhausted = False
        self._cancelled = False
        self._queue: "queue.Queue[Optional[LookupTask]]" = queue.Queue()
        self._outcomes: Dict[int, LookupOutcome] = {}
        self._lock = threading.Lock()

    @property
    def max_attempts(self) -> int:
        return 1 + self.retry_ceiling

    def run(self, records: Sequence[PlaceRecord]) -> Dict[int, LookupOutcome]:
        self._queue = queue.Queue()
        self._outcomes = {}
        self.pool_exhausted = False

        seen = set()
        pending = 0
        for record in records:
            if record.identity in seen:
                raise ValueError(f"Duplicate record identity {record.identity}")
            seen.add(record.identity)
            if not record.needs_lookup:
                continue
            query = build_query(record)
            if query is None:
                logger.warning("Record %d has neither a URL nor a name; marking as not found", record.identity)
                self._record(LookupOutcome(record.identity, failure=FailureReason.NOT_FOUND))
                continue
            self._queue.put(LookupTask(record.identity, query))
            pending += 1

        if not pending:
            logger.info("No records need a lookup")
            return dict(self._outcomes)

        limit = self.parallelism or self.pool.size
        workers = max(1, min(limit, self.pool.size, pending))
        logger.info(
            "Resolving %d places with %d workers (%d already located)",
            pending,
            workers,
            len(records) - pending - len(self._outcomes),
        )

        self._cancelled = False
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="lookup") as executor:
            futures = [executor.submit(self._worker_loop) for _ in range(workers)]
            try:
                self._queue.join()
            except BaseException:
                # Interrupted: let in-flight lookups finish, drop everything still queued.
                self._cancelled = True
                self._drain()
                raise
            finally:
                for _ in futures:
                    self._queue.put(None)
        for future in futures:
            future.result()

        return dict(self._outcomes)

    def _drain(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return
            self._queue.task_done()

    def _worker_loop(self) -> None:
        while True:
            task = self._queue.get()
            try:
                if task is None:
                    return
                self._process(task.next_attempt())
            finally:
                self._queue.task_done()

    def _process(self, task: LookupTask) -> None:
        try:
            handle = self.pool.acquire()
        except PoolExhaustedError as exc:
            if not self.pool_exhausted:
                logger.error("Session pool exhausted: %s", exc)
            self.pool_exhausted = True
            # No lookup ran on this pass, so only earlier attempts count.
            self._record(
                LookupOutcome(
                    task.record_identity,
                    failure=FailureReason.SESSION_ERROR,
                    attempts=task.attempt_count - 1,
                )
            )
            return

        coordinates = None
        failure: Optional[FailureReason] = None
        try:
            coordinates = handle.client.resolve(task.query)
        except LookupFailure as exc:
            failure = exc.reason
            logger.debug("Lookup for record %d failed: %s", task.record_identity, exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error resolving record %d: %s", task.record_identity, exc)
            failure = FailureReason.SESSION_ERROR
        finally:
            self.pool.release(handle, failed=failure is FailureReason.SESSION_ERROR)

        if failure is None:
            self._finish(task, coordinates=coordinates)
        elif self._cancelled:
            self._finish(task, failure=failure)
        elif failure.retryable and task.attempt_count < self.max_attempts:
            logger.warning(
                "Lookup for record %d failed with %s (attempt %d/%d); requeueing",
                task.record_identity,
                failure.value,
                task.attempt_count,
                self.max_attempts,
            )
            self._queue.put(task)
        else:
            logger.warning(
                "Giving up on record %d after %d attempt(s): %s",
                task.record_identity,
                task.attempt_count,
                failure.value,
            )
            self._finish(task, failure=failure)

    def _finish(self, task: LookupTask, **result) -> None:
        self._record(LookupOutcome(task.record_identity, attempts=task.attempt_count, **result))

    def _record(self, outcome: LookupOutcome) -> None:
        with self._lock:
            if outcome.record_identity in self._outcomes:
                raise RuntimeError(f"Record {outcome.record_identity} already has an outcome")
            self._outcomes[outcome.record_identity] = outcome
