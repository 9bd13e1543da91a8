"""Chapter download job datastructures."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional

from src.acquisition.adapter import PageRef


JobStatus = Literal["PENDING", "DOWNLOADING", "PACKAGING", "COMPLETED", "FAILED"]

# Forward order of the non-failure path
STATUS_ORDER: tuple[JobStatus, ...] = ("PENDING", "DOWNLOADING", "PACKAGING", "COMPLETED")
TERMINAL_STATUSES = frozenset({"COMPLETED", "FAILED"})


@dataclass(frozen=True)
class Job:
    """One chapter download, advanced a step at a time by polls.

    Instances are immutable; the driver returns a new Job for every step.
    """

    # Identifiers
    job_id: str
    source_id: str
    manga_id: str
    chapter_id: str

    # Progress
    status: JobStatus = "PENDING"
    pages: tuple[PageRef, ...] = ()
    cursor: int = 0
    failed_pages: int = 0
    warnings: tuple[str, ...] = ()

    # Paths
    staging_path: Optional[Path] = None
    artifact_path: Optional[Path] = None

    error: Optional[str] = None

    # Monotonic timestamps for retention
    created_at: float = 0.0
    last_polled_at: float = field(default=0.0, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def chapter_key(self) -> tuple[str, str, str]:
        return (self.source_id, self.manga_id, self.chapter_id)


def can_transition(current: JobStatus, new: JobStatus) -> bool:
    """Return True if ``current -> new`` moves forward (or stays put)."""
    if current == new:
        return True
    if current in TERMINAL_STATUSES:
        return False
    if new == "FAILED":
        return True
    return STATUS_ORDER.index(new) > STATUS_ORDER.index(current)


@dataclass(frozen=True)
class JobView:
    """Poll response: ``{"type": ..., "data": {...}}``."""

    type: Literal["PENDING", "COMPLETED", "FAILED"]
    data: dict

    def to_dict(self) -> dict:
        return {"type": self.type, "data": dict(self.data)}

    @classmethod
    def failed(cls, message: str) -> "JobView":
        return cls(type="FAILED", data={"message": message or "Unknown error"})

    @classmethod
    def from_job(cls, job: Job) -> "JobView":
        if job.status == "COMPLETED":
            return cls(
                type="COMPLETED",
                data={"artifact_path": str(job.artifact_path), "warnings": list(job.warnings)},
            )
        if job.status == "FAILED":
            return cls.failed(job.error)
        return cls(type="PENDING", data={"current": job.cursor, "total": len(job.pages)})
