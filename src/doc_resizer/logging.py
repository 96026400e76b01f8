from __future__ import annotations

import csv
import json
import time
from dataclasses import asdict, dataclass, field
from io import StringIO
from pathlib import Path
from typing import Any

from .models import ChunkOutcome
from .utils import atomic_write


@dataclass(slots=True)
class ChunkLogEntry:
    run_id: str
    document_id: str
    chunk_index: int
    status: str
    attempts: int
    operations: int
    actions: int
    error_code: str | None
    elapsed_ms: float

    @classmethod
    def from_outcome(cls, run_id: str, document_id: str, outcome: ChunkOutcome) -> "ChunkLogEntry":
        return cls(
            run_id=run_id,
            document_id=document_id,
            chunk_index=outcome.index,
            status=outcome.status,
            attempts=outcome.attempts,
            operations=outcome.operations,
            actions=outcome.actions,
            error_code=outcome.error_code,
            elapsed_ms=round(outcome.elapsed_ms, 3),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class RunLogger:
    def __init__(self, log_file: Path) -> None:
        self._log_file = log_file

    def append(self, entry: ChunkLogEntry) -> None:
        self._log_file.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(entry.to_dict(), ensure_ascii=False)
        with self._log_file.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")


SUMMARY_HEADER = ["run_id", "timestamp", "document_id", "total", "successes", "failures"]


@dataclass(slots=True)
class RunSummary:
    document_id: str
    timestamp: float = field(default_factory=time.time)
    total: int = 0
    successes: int = 0
    failures: int = 0

    def as_row(self, run_id: str) -> list[str]:
        return [
            run_id,
            time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.timestamp)),
            self.document_id,
            str(self.total),
            str(self.successes),
            str(self.failures),
        ]


def write_summary_csv(path: Path, header: list[str], rows: list[list[str]]) -> None:
    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(header)
    writer.writerows(rows)
    atomic_write(path, buffer.getvalue())


def append_summary_row(path: Path, run_id: str, summary: RunSummary) -> None:
    header = SUMMARY_HEADER
    rows: list[list[str]] = []
    if path.exists():
        with path.open("r", encoding="utf-8", newline="") as handle:
            reader = list(csv.reader(handle))
        if reader:
            header = reader[0]
            rows = reader[1:]
    rows.append(summary.as_row(run_id))
    write_summary_csv(path, header, rows)
