"""Domain models for resize runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from .planner import ScopeSelection

ChunkStatus = Literal["succeeded", "failed", "skipped"]


@dataclass(slots=True)
class ResizeOptions:
    """Configuration for a single resize run."""

    target_width_cm: float
    selection: ScopeSelection
    preset: str | None = None
    strategy: Literal["delete_insert", "property_update"] | None = None


@dataclass(slots=True)
class ChunkOutcome:
    index: int
    status: ChunkStatus
    attempts: int
    operations: int
    actions: int
    error_code: str | None = None
    error_message: str | None = None
    elapsed_ms: float = 0.0


@dataclass(slots=True)
class ExecutionResult:
    """Tally of a batch execution. Counts are only ever incremented."""

    success_count: int = 0
    failed_count: int = 0
    total_count: int = 0
    id_map: dict[str, str] = field(default_factory=dict)
    skipped_count: int = 0
    cancelled: bool = False
    chunks: list[ChunkOutcome] = field(default_factory=list)

    def to_payload(self) -> dict[str, object]:
        return {
            "total": self.total_count,
            "success": self.success_count,
            "failed": self.failed_count,
            "skipped": self.skipped_count,
            "cancelled": self.cancelled,
            "new_id_mapping": dict(self.id_map),
        }


@dataclass(slots=True)
class ResizeResult:
    """Result metadata for one resize run against one document."""

    run_id: str
    document_id: str
    execution: ExecutionResult
    warnings: list[str]
    summary: str
    run_dir: str | None = None


__all__ = [
    "ChunkOutcome",
    "ChunkStatus",
    "ExecutionResult",
    "ResizeOptions",
    "ResizeResult",
]
