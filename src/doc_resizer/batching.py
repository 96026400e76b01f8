"""Chunked, sequential execution of mutation actions against the remote API."""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from threading import Event
from typing import Any, Callable, Sequence

from .client import BatchClient, RemoteError
from .config import BatchPreset
from .constants import SIZE_UNIT
from .models import ChunkOutcome, ExecutionResult
from .planner import DeleteInsert, DeletePositionedInsert, MutationAction, PropertyUpdate

logger = logging.getLogger(__name__)

PROPERTY_UPDATE_REQUEST = "updateEmbeddedObjectSize"
INSERT_REQUEST = "insertInlineImage"

ProgressCallback = Callable[[float], None]
ChunkCallback = Callable[[ChunkOutcome], None]
Sleeper = Callable[[float], None]


@dataclass(slots=True)
class Chunk:
    index: int
    actions: list[MutationAction]

    @property
    def operation_count(self) -> int:
        return sum(action.operation_count for action in self.actions)


@dataclass(slots=True)
class RenderedChunk:
    """Remote operations for one chunk plus, per operation, the image id an insert replaces."""

    operations: list[dict[str, Any]] = field(default_factory=list)
    insert_sources: list[str | None] = field(default_factory=list)
    inserted_offsets: Counter[int] = field(default_factory=Counter)

    def add(self, operation: dict[str, Any], source: str | None = None) -> None:
        self.operations.append(operation)
        self.insert_sources.append(source)


def chunk_actions(actions: Sequence[MutationAction], chunk_size: int) -> list[Chunk]:
    """Split actions into consecutive chunks of at most ``chunk_size`` actions.

    Both operations of a paired action always land in the same chunk.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    return [
        Chunk(index=number, actions=list(actions[start : start + chunk_size]))
        for number, start in enumerate(range(0, len(actions), chunk_size))
    ]


def _object_size(width: float, height: float | None) -> dict[str, Any]:
    size: dict[str, Any] = {"width": {"magnitude": width, "unit": SIZE_UNIT}}
    if height is not None:
        size["height"] = {"magnitude": height, "unit": SIZE_UNIT}
    return size


def _insert(index: int, uri: str, width: float, height: float | None) -> dict[str, Any]:
    return {
        INSERT_REQUEST: {
            "location": {"index": index},
            "uri": uri,
            "objectSize": _object_size(width, height),
        }
    }


def render_chunk(chunk: Chunk, committed: Counter[int]) -> RenderedChunk:
    """Render a chunk's actions into remote operations.

    ``committed`` counts images already inserted at an offset by earlier
    floating-image actions; an inline placeholder at that offset has moved right
    by that many positions.
    """
    rendered = RenderedChunk()
    for action in chunk.actions:
        offset = action.anchor_offset
        if isinstance(action, DeletePositionedInsert):
            rendered.add({"deletePositionedObject": {"objectId": action.image_id}})
            rendered.add(
                _insert(offset, action.new_uri, action.target_width, action.target_height),
                action.image_id,
            )
            rendered.inserted_offsets[offset] += 1
        elif isinstance(action, DeleteInsert):
            position = offset + committed[offset] + rendered.inserted_offsets[offset]
            rendered.add({"deleteContentRange": {"range": {"startIndex": position, "endIndex": position + 1}}})
            rendered.add(
                _insert(position, action.new_uri, action.target_width, action.target_height),
                action.image_id,
            )
        elif isinstance(action, PropertyUpdate):
            rendered.add(
                {
                    PROPERTY_UPDATE_REQUEST: {
                        "objectId": action.image_id,
                        "objectSize": _object_size(action.target_width, action.target_height),
                    }
                }
            )
        else:
            raise TypeError(f"Unsupported action: {action!r}")
    return rendered


def reconcile_ids(rendered: RenderedChunk, replies: Sequence[dict[str, Any]]) -> dict[str, str]:
    """Map original image ids to the ids the remote assigned to their replacements.

    Replies are matched to operations by position; only insert operations carry
    a source id, so deletes and property updates in the same chunk are skipped.
    """
    mapping: dict[str, str] = {}
    for position, source in enumerate(rendered.insert_sources):
        if source is None or position >= len(replies):
            continue
        reply = replies[position] or {}
        inserted = reply.get(INSERT_REQUEST) if isinstance(reply, dict) else None
        new_id = inserted.get("objectId") if isinstance(inserted, dict) else None
        if new_id:
            mapping[source] = str(new_id)
    return mapping


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_retries: int = 2
    backoff_base_s: float = 1.0

    @classmethod
    def from_preset(cls, preset: BatchPreset) -> "RetryPolicy":
        return cls(max_retries=max(0, preset.max_retries), backoff_base_s=max(0.0, preset.backoff_base_s))

    def delay(self, retry_number: int) -> float:
        return self.backoff_base_s * (2**retry_number)

    def should_retry(self, error: RemoteError, retries_done: int) -> bool:
        return error.transient and retries_done < self.max_retries


class BatchExecutor:
    """Submit chunks one after another; a failed chunk never stops the run."""

    def __init__(
        self,
        client: BatchClient,
        preset: BatchPreset,
        *,
        sleep: Sleeper = time.sleep,
    ) -> None:
        self._client = client
        self._chunk_size = preset.chunk_size
        self._policy = RetryPolicy.from_preset(preset)
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def execute(
        self,
        document_id: str,
        actions: Sequence[MutationAction],
        *,
        cancellation: Event | None = None,
        progress: ProgressCallback | None = None,
        on_chunk: ChunkCallback | None = None,
    ) -> ExecutionResult:
        result = ExecutionResult(total_count=len(actions))
        if not actions:
            return result
        chunks = chunk_actions(actions, self._chunk_size)
        committed: Counter[int] = Counter()
        callback = progress or (lambda _: None)

        for chunk in chunks:
            if cancellation is not None and cancellation.is_set():
                outcome = self._skip(chunk, result)
            else:
                outcome = self._run_chunk(document_id, chunk, committed, result)
            result.chunks.append(outcome)
            if on_chunk is not None:
                on_chunk(outcome)
            callback((chunk.index + 1) / len(chunks))
        return result

    def _skip(self, chunk: Chunk, result: ExecutionResult) -> ChunkOutcome:
        result.cancelled = True
        result.skipped_count += len(chunk.actions)
        result.failed_count += len(chunk.actions)
        return ChunkOutcome(
            index=chunk.index,
            status="skipped",
            attempts=0,
            operations=chunk.operation_count,
            actions=len(chunk.actions),
            error_code="CANCELED",
        )

    def _run_chunk(
        self,
        document_id: str,
        chunk: Chunk,
        committed: Counter[int],
        result: ExecutionResult,
    ) -> ChunkOutcome:
        rendered = render_chunk(chunk, committed)
        start = time.perf_counter()
        attempts = 0
        while True:
            attempts += 1
            try:
                replies = self._client.batch_update(document_id, rendered.operations)
            except RemoteError as exc:
                retries_done = attempts - 1
                if self._policy.should_retry(exc, retries_done):
                    delay = self._policy.delay(retries_done)
                    logger.warning(
                        "Chunk %d failed with %s (attempt %d), retrying in %.1fs",
                        chunk.index,
                        exc.code,
                        attempts,
                        delay,
                    )
                    self._sleep(delay)
                    continue
                logger.warning(
                    "Chunk %d failed with %s after %d attempt(s): %s",
                    chunk.index,
                    exc.code,
                    attempts,
                    exc,
                )
                result.failed_count += len(chunk.actions)
                return ChunkOutcome(
                    index=chunk.index,
                    status="failed",
                    attempts=attempts,
                    operations=len(rendered.operations),
                    actions=len(chunk.actions),
                    error_code=exc.code,
                    error_message=str(exc),
                    elapsed_ms=(time.perf_counter() - start) * 1000,
                )
            break

        committed.update(rendered.inserted_offsets)
        result.id_map.update(reconcile_ids(rendered, replies))
        result.success_count += len(chunk.actions)
        logger.debug("Chunk %d applied %d operation(s)", chunk.index, len(rendered.operations))
        return ChunkOutcome(
            index=chunk.index,
            status="succeeded",
            attempts=attempts,
            operations=len(rendered.operations),
            actions=len(chunk.actions),
            elapsed_ms=(time.perf_counter() - start) * 1000,
        )


__all__ = [
    "BatchExecutor",
    "Chunk",
    "INSERT_REQUEST",
    "PROPERTY_UPDATE_REQUEST",
    "RenderedChunk",
    "RetryPolicy",
    "chunk_actions",
    "reconcile_ids",
    "render_chunk",
]
