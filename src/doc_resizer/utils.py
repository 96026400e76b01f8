from __future__ import annotations

import hashlib
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

from .config import AppConfig


@dataclass(slots=True)
class RunPaths:
    run_id: str
    base_dir: Path
    result_file: Path
    log_file: Path


def generate_run_id(prefix: str = "resize") -> str:
    epoch_ms = int(time.time() * 1000)
    random_bits = hashlib.sha256(os.urandom(16)).hexdigest()[:8]
    return f"{prefix}-{epoch_ms}-{random_bits}"


def ensure_run_paths(config: AppConfig, run_id: str) -> RunPaths:
    base = config.runtime.output_dir / run_id
    base.mkdir(parents=True, exist_ok=True)
    return RunPaths(
        run_id=run_id,
        base_dir=base,
        result_file=base / "result.json",
        log_file=base / config.runtime.log_file,
    )


def atomic_write(path: Path, data: str, encoding: str = "utf-8") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", delete=False, dir=path.parent, encoding=encoding) as tmp:
        tmp.write(data)
        tmp.flush()
        os.fsync(tmp.fileno())
    os.replace(tmp.name, path)


def parse_scope(value: str) -> tuple[int, int]:
    """Parse ``START:END`` into an offset range."""
    start, sep, end = value.partition(":")
    if not sep:
        raise ValueError(f"Scope must look like START:END, got {value!r}")
    lower, upper = int(start), int(end)
    if upper <= lower:
        raise ValueError(f"Scope end must be greater than start: {value!r}")
    return lower, upper
