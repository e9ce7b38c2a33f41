"""
Fault-tolerant chunked step engine.

Drives read -> transform -> write over an ordered sequence of items:

- transformed entities are buffered and written one chunk at a time
- a row the transformer rejects is skipped and counted; the step fails only
  once the running skip count exceeds the skip limit
- any error raised while writing a chunk is a storage failure and fails the
  step immediately (not retried, not counted as a skip)

Chunks already written stay written when the step fails later.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, Iterable, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class SkipRecord(Exception):
    """Raised by a transformer to discard one row without failing the job."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class SkipLimitExceeded(Exception):
    def __init__(self, skip_count: int, skip_limit: int):
        self.skip_count = skip_count
        self.skip_limit = skip_limit
        super().__init__(f"Skip limit of {skip_limit} exceeded ({skip_count} rows skipped)")


class StepStatus(str, Enum):
    INIT = "INIT"
    READING = "READING"
    TRANSFORMING = "TRANSFORMING"
    WRITING = "WRITING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class StepExecution:
    """Outcome of one step run."""

    step_name: str
    status: StepStatus = StepStatus.INIT
    items_read: int = 0
    items_written: int = 0
    items_skipped: int = 0
    commit_count: int = 0
    error: str | None = None
    skip_reasons: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step_name,
            "status": self.status.value,
            "items_read": self.items_read,
            "items_written": self.items_written,
            "items_skipped": self.items_skipped,
            "commit_count": self.commit_count,
            "error": self.error,
            "duration_ms": round(self.duration_ms, 2),
        }


class ChunkStep(Generic[T, R]):
    """
    One fault-tolerant chunk-oriented step.

    Usage:
        step = ChunkStep("patientStep", transformer.transform, writer.write,
                         chunk_size=100, skip_limit=100)
        execution = step.run(records)

    ``transform_fn`` returns the entity for an item, or None / raises
    SkipRecord to skip it. ``write_fn`` receives a full chunk and returns
    the entities it actually saved; entities it drops count as skips.
    """

    def __init__(
        self,
        name: str,
        transform_fn: Callable[[T], R | None],
        write_fn: Callable[[list[R]], Sequence[R]],
        chunk_size: int = 100,
        skip_limit: int = 0,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        if skip_limit < 0:
            raise ValueError("skip_limit must not be negative")
        self.name = name
        self.transform_fn = transform_fn
        self.write_fn = write_fn
        self.chunk_size = chunk_size
        self.skip_limit = skip_limit

    def run(self, items: Iterable[T]) -> StepExecution:
        execution = StepExecution(step_name=self.name)
        buffer: list[R] = []
        start = time.perf_counter()
        logger.info(
            "Starting step '%s' (chunk_size=%d, skip_limit=%d)",
            self.name,
            self.chunk_size,
            self.skip_limit,
        )

        try:
            for item in items:
                execution.status = StepStatus.READING
                execution.items_read += 1

                execution.status = StepStatus.TRANSFORMING
                try:
                    entity = self.transform_fn(item)
                except SkipRecord as exc:
                    self._skip(execution, exc.reason)
                    continue
                if entity is None:
                    self._skip(execution, "filtered by transformer")
                    continue

                buffer.append(entity)
                if len(buffer) >= self.chunk_size:
                    self._write(execution, buffer)
                    buffer = []

            if buffer:
                self._write(execution, buffer)
            execution.status = StepStatus.COMPLETED
        except SkipLimitExceeded as exc:
            execution.status = StepStatus.FAILED
            execution.error = str(exc)
            logger.error("Step '%s' aborted: %s", self.name, exc)
        except Exception as exc:
            execution.status = StepStatus.FAILED
            execution.error = f"{type(exc).__name__}: {exc}"
            logger.error("Step '%s' failed: %s", self.name, execution.error)
        finally:
            execution.duration_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "Step '%s' finished – %s (read=%d, written=%d, skipped=%d, commits=%d)",
            self.name,
            execution.status.value,
            execution.items_read,
            execution.items_written,
            execution.items_skipped,
            execution.commit_count,
        )
        return execution

    def _skip(self, execution: StepExecution, reason: str) -> None:
        execution.items_skipped += 1
        execution.skip_reasons.append(reason)
        logger.warning("Step '%s' skipped item %d: %s", self.name, execution.items_read, reason)
        if execution.items_skipped > self.skip_limit:
            raise SkipLimitExceeded(execution.items_skipped, self.skip_limit)

    def _write(self, execution: StepExecution, chunk: list[R]) -> None:
        execution.status = StepStatus.WRITING
        saved = self.write_fn(chunk)
        execution.commit_count += 1
        execution.items_written += len(saved)
        logger.info("Step '%s' committed chunk %d (%d items)", self.name, execution.commit_count, len(saved))

        dropped = len(chunk) - len(saved)
        for _ in range(dropped):
            self._skip(execution, "dropped by writer")
