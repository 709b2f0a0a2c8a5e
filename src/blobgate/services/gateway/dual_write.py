"""Concurrent multi-representation blob writes.

Writes the representations of one item (envelope copy, raw copy) to the
object store as independent steps issued concurrently on a shared thread
pool.

Design:
- BlobWriteStep: one keyed write with its own status and timing
- DualWriteExecutor: runs all steps, waits for every one, reports each
- No compensation: a completed write is never rolled back when a sibling
  fails. The caller decides which failures are fatal.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from blobgate.storage import ObjectStorageError, ObjectStore, StoredObjectMetadata

logger = logging.getLogger(__name__)

ENVELOPE_STEP = "envelope"
RAW_STEP = "raw"


class WriteStepStatus(StrEnum):
    """Status of a single blob write."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class BlobWriteStep:
    """A single keyed write."""

    name: str
    key: str
    data: bytes
    content_type: str | None = None


@dataclass
class WriteStepResult:
    """Result of executing one write step."""

    step_name: str
    key: str
    status: WriteStepStatus = WriteStepStatus.PENDING
    metadata: StoredObjectMetadata | None = None
    error: ObjectStorageError | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == WriteStepStatus.COMPLETED


@dataclass
class DualWriteResult:
    """Per-step results of one multi-representation write."""

    item_id: str
    step_results: dict[str, WriteStepResult] = field(default_factory=dict)

    def step(self, name: str) -> WriteStepResult | None:
        return self.step_results.get(name)

    def succeeded(self, name: str) -> bool:
        result = self.step_results.get(name)
        return result is not None and result.succeeded

    @property
    def failed_steps(self) -> list[str]:
        return [name for name, r in self.step_results.items() if not r.succeeded]


class DualWriteExecutor:
    """Runs the blob writes of one item concurrently.

    Every step runs to completion regardless of its siblings. Storage errors
    are captured on the step result; any other exception propagates from
    execute() once all steps have finished.
    """

    def __init__(self, store: ObjectStore, executor: Executor) -> None:
        """Initialize the executor.

        Args:
            store: Object store receiving every write.
            executor: Shared pool the writes are submitted to.
        """
        self._store = store
        self._executor = executor

    def _run_step(self, step: BlobWriteStep) -> WriteStepResult:
        result = WriteStepResult(
            step_name=step.name,
            key=step.key,
            started_at=datetime.now(UTC),
        )
        try:
            result.metadata = self._store.put(step.key, step.data, content_type=step.content_type)
            result.status = WriteStepStatus.COMPLETED
            logger.debug("Write step %s completed: key=%s", step.name, step.key)
        except ObjectStorageError as e:
            result.status = WriteStepStatus.FAILED
            result.error = e
            logger.error("Write step %s failed: key=%s error=%s", step.name, step.key, e)
        result.completed_at = datetime.now(UTC)
        return result

    def execute(self, item_id: str, steps: list[BlobWriteStep]) -> DualWriteResult:
        """Execute all steps concurrently and wait for every one.

        Args:
            item_id: Id of the item being written (for reporting).
            steps: Writes to perform; names must be unique.

        Returns:
            DualWriteResult with one WriteStepResult per step.
        """
        futures: dict[str, Future[WriteStepResult]] = {
            step.name: self._executor.submit(self._run_step, step) for step in steps
        }

        outcome = DualWriteResult(item_id=item_id)
        first_unexpected: BaseException | None = None
        for name, future in futures.items():
            try:
                outcome.step_results[name] = future.result()
            except Exception as e:
                if first_unexpected is None:
                    first_unexpected = e

        if first_unexpected is not None:
            raise first_unexpected

        if outcome.failed_steps:
            logger.warning(
                "Write of %s finished with failed steps: %s",
                item_id,
                ", ".join(outcome.failed_steps),
            )
        else:
            logger.info("Write of %s completed (%d steps)", item_id, len(steps))
        return outcome
