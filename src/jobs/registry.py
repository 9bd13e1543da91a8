"""In-memory job registry with per-job locking and TTL eviction."""

import threading
import time
import uuid
from dataclasses import replace
from typing import Callable, Dict, Optional

from src.errors import UnknownJobError
from src.utils.logger import logger as LOGGER

from .job import Job, can_transition


class JobRegistry:
    """Map from job id to Job; the single source of truth for progress.

    ``mutate`` serializes writers of the same job while jobs with different
    ids never wait on each other.
    """

    def __init__(self, ttl_seconds: Optional[float] = None,
                 on_evict: Optional[Callable[[Job], None]] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.on_evict = on_evict
        self.clock = clock

        self._jobs: Dict[str, Job] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._issued: set[str] = set()
        # Time of the last poll per job, refreshed even when the job is unchanged
        self._last_seen: Dict[str, float] = {}
        self._table_lock = threading.Lock()

    def __len__(self) -> int:
        with self._table_lock:
            return len(self._jobs)

    def _new_id(self) -> str:
        while True:
            job_id = uuid.uuid4().hex
            if job_id not in self._issued:
                self._issued.add(job_id)
                return job_id

    def _insert(self, source_id: str, manga_id: str, chapter_id: str, now: float) -> str:
        # Caller holds the table lock
        job_id = self._new_id()
        self._jobs[job_id] = Job(
            job_id=job_id,
            source_id=source_id,
            manga_id=manga_id,
            chapter_id=chapter_id,
            created_at=now,
            last_polled_at=now,
        )
        self._locks[job_id] = threading.Lock()
        self._last_seen[job_id] = now

        LOGGER.debug(f"Created job {job_id} for {source_id}:{manga_id}/{chapter_id}")
        return job_id

    def _find_active_locked(self, key: tuple[str, str, str]) -> Optional[Job]:
        for job in self._jobs.values():
            if not job.is_terminal and job.chapter_key == key:
                return job
        return None

    def create(self, source_id: str, manga_id: str, chapter_id: str) -> str:
        """Register a PENDING job and return its id."""
        now = self.clock()
        with self._table_lock:
            return self._insert(source_id, manga_id, chapter_id, now)

    def create_or_get_active(self, source_id: str, manga_id: str, chapter_id: str) -> tuple[str, bool]:
        """Return the chapter's active job id, creating a job if there is none.

        Lookup and insert happen under one lock, so concurrent callers for
        the same chapter always share a single job.

        Returns:
            (job_id, created)
        """
        now = self.clock()
        with self._table_lock:
            existing = self._find_active_locked((source_id, manga_id, chapter_id))
            if existing is not None:
                return existing.job_id, False
            return self._insert(source_id, manga_id, chapter_id, now), True

    def get(self, job_id: str) -> Job:
        with self._table_lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise UnknownJobError(job_id)
        return job

    def jobs(self) -> list[Job]:
        """Return a snapshot of every registered job."""
        with self._table_lock:
            return list(self._jobs.values())

    def find_active(self, source_id: str, manga_id: str, chapter_id: str) -> Optional[Job]:
        """Return the non-terminal job for a chapter, if any."""
        with self._table_lock:
            return self._find_active_locked((source_id, manga_id, chapter_id))

    def last_seen(self, job_id: str) -> float:
        """Return when the job was last created or polled."""
        with self._table_lock:
            if job_id not in self._last_seen:
                raise UnknownJobError(job_id)
            return self._last_seen[job_id]

    def _lock_for(self, job_id: str) -> threading.Lock:
        with self._table_lock:
            lock = self._locks.get(job_id)
        if lock is None:
            raise UnknownJobError(job_id)
        return lock

    def mutate(self, job_id: str, fn: Callable[[Job], Job]) -> Job:
        """Apply ``fn`` to the job under its lock and store the result.

        The stored job is replaced only when ``fn`` returns; if it raises, the
        job keeps its pre-call state. A returned job that differs from the
        input gets its ``last_polled_at`` refreshed. Every call counts as a
        poll for eviction, including calls on terminal jobs.
        """
        with self._lock_for(job_id):
            current = self.get(job_id)
            with self._table_lock:
                self._last_seen[job_id] = self.clock()
            updated = fn(current)

            if updated is current:
                return current

            if updated.job_id != current.job_id:
                raise ValueError(f"Transition changed job id {current.job_id} -> {updated.job_id}")
            if not can_transition(current.status, updated.status):
                raise ValueError(f"Illegal transition {current.status} -> {updated.status} for {job_id}")
            if updated.cursor < current.cursor or updated.cursor > max(len(updated.pages), 0):
                raise ValueError(f"Illegal cursor move {current.cursor} -> {updated.cursor} for {job_id}")

            updated = replace(updated, last_polled_at=self.clock())
            with self._table_lock:
                if job_id not in self._jobs:
                    # Removed while the step ran
                    raise UnknownJobError(job_id)
                self._jobs[job_id] = updated
            return updated

    def remove(self, job_id: str) -> Job:
        """Remove a job (after any in-flight step finishes) and run the evict hook."""
        with self._lock_for(job_id):
            with self._table_lock:
                job = self._jobs.pop(job_id, None)
                self._locks.pop(job_id, None)
                self._last_seen.pop(job_id, None)
        if job is None:
            raise UnknownJobError(job_id)

        self._run_evict_hook(job)
        return job

    def evict_expired(self, now: Optional[float] = None) -> list[str]:
        """Drop jobs not created or polled within ``ttl_seconds``.

        Jobs with a step in flight are skipped and retried on a later call.

        Returns:
            Ids of evicted jobs
        """
        if not self.ttl_seconds:
            return []

        now = self.clock() if now is None else now
        with self._table_lock:
            expired = [
                (job_id, self._locks[job_id])
                for job_id, seen in self._last_seen.items()
                if now - seen > self.ttl_seconds
            ]

        evicted = []
        for job_id, lock in expired:
            if not lock.acquire(blocking=False):
                continue
            try:
                with self._table_lock:
                    seen = self._last_seen.get(job_id, now)
                    # Polled since the snapshot was taken
                    if now - seen <= self.ttl_seconds:
                        continue
                    job = self._jobs.pop(job_id, None)
                    self._locks.pop(job_id, None)
                    self._last_seen.pop(job_id, None)
            finally:
                lock.release()

            if job is not None:
                LOGGER.info(f"Evicting job {job_id} ({job.status}), idle for {now - seen:.0f}s")
                self._run_evict_hook(job)
                evicted.append(job_id)

        return evicted

    def _run_evict_hook(self, job: Job) -> None:
        if self.on_evict is None:
            return
        try:
            self.on_evict(job)
        except Exception as e:
            LOGGER.error(f"Cleanup of job {job.job_id} failed: {e}")
