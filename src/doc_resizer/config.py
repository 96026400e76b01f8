from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal, Mapping

from .constants import DEFAULT_BASE_URL, DEFAULT_CONFIG_PATH

Strategy = Literal["delete_insert", "property_update"]
STRATEGIES: tuple[str, ...] = ("delete_insert", "property_update")


@dataclass(frozen=True, slots=True)
class BatchPreset:
    """Chunking and retry knobs for one execution profile."""

    chunk_size: int = 5
    max_retries: int = 2
    backoff_base_s: float = 1.0


BUILTIN_PRESETS: dict[str, BatchPreset] = {
    "micro": BatchPreset(chunk_size=5, max_retries=2, backoff_base_s=1.0),
    "standard": BatchPreset(chunk_size=10, max_retries=2, backoff_base_s=1.0),
    "bulk": BatchPreset(chunk_size=25, max_retries=3, backoff_base_s=2.0),
    "single": BatchPreset(chunk_size=1, max_retries=3, backoff_base_s=1.0),
}


@dataclass(slots=True)
class BatchConfig:
    preset: str = "micro"
    chunk_size: int | None = None
    max_retries: int | None = None
    backoff_base_s: float | None = None
    presets: dict[str, BatchPreset] = field(default_factory=lambda: dict(BUILTIN_PRESETS))

    def resolve(self, name: str | None = None) -> BatchPreset:
        """Return the named preset with any explicit overrides applied.

        Overrides only apply to the configured default preset; asking for a
        different preset by name returns it untouched.
        """
        key = name or self.preset
        if key not in self.presets:
            raise KeyError(f"Unknown batch preset: {key}")
        preset = self.presets[key]
        if name is not None and name != self.preset:
            return preset
        if self.chunk_size is not None:
            preset = replace(preset, chunk_size=self.chunk_size)
        if self.max_retries is not None:
            preset = replace(preset, max_retries=self.max_retries)
        if self.backoff_base_s is not None:
            preset = replace(preset, backoff_base_s=self.backoff_base_s)
        return preset


@dataclass(slots=True)
class PlannerConfig:
    strategy: Strategy = "delete_insert"
    relay_template: str | None = None
    default_selection: Literal["all", "none"] = "all"


@dataclass(slots=True)
class RemoteConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout_s: float = 60.0


@dataclass(slots=True)
class RuntimeConfig:
    output_dir: Path = Path("runs")
    log_file: str = "log.jsonl"
    summary_csv: str = "summary.csv"
    enable_local_api: bool = False
    record_runs: bool = True


@dataclass(slots=True)
class APIConfig:
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass(slots=True)
class AppConfig:
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    planner: PlannerConfig = field(default_factory=PlannerConfig)
    api: APIConfig = field(default_factory=APIConfig)


def _read_toml(path: Path) -> Mapping[str, object]:
    if not path.exists():
        return {}
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _section(raw: Mapping[str, object], name: str) -> Mapping[str, object] | None:
    value = raw.get(name)
    return value if isinstance(value, Mapping) else None


def _optional_int(value: object | None) -> int | None:
    return int(value) if value is not None else None  # type: ignore[arg-type]


def _optional_float(value: object | None) -> float | None:
    return float(value) if value is not None else None  # type: ignore[arg-type]


def _build_runtime(data: Mapping[str, object] | None) -> RuntimeConfig:
    if not data:
        return RuntimeConfig()
    return RuntimeConfig(
        output_dir=Path(str(data.get("output_dir", "runs"))),
        log_file=str(data.get("log_file", "log.jsonl")),
        summary_csv=str(data.get("summary_csv", "summary.csv")),
        enable_local_api=bool(data.get("enable_local_api", False)),
        record_runs=bool(data.get("record_runs", True)),
    )


def _build_remote(data: Mapping[str, object] | None) -> RemoteConfig:
    if not data:
        return RemoteConfig()
    return RemoteConfig(
        base_url=str(data.get("base_url", DEFAULT_BASE_URL)).rstrip("/"),
        timeout_s=float(data.get("timeout_s", 60.0)),  # type: ignore[arg-type]
    )


def _check_batch_values(chunk_size: int | None, max_retries: int | None) -> None:
    if chunk_size is not None and chunk_size < 1:
        raise ValueError(f"Batch chunk_size must be at least 1: {chunk_size}")
    if max_retries is not None and max_retries < 0:
        raise ValueError(f"Batch max_retries must not be negative: {max_retries}")


def _build_preset(data: Mapping[str, object], fallback: BatchPreset) -> BatchPreset:
    preset = BatchPreset(
        chunk_size=int(data.get("chunk_size", fallback.chunk_size)),  # type: ignore[arg-type]
        max_retries=int(data.get("max_retries", fallback.max_retries)),  # type: ignore[arg-type]
        backoff_base_s=float(data.get("backoff_base_s", fallback.backoff_base_s)),  # type: ignore[arg-type]
    )
    _check_batch_values(preset.chunk_size, preset.max_retries)
    return preset


def _build_batch(data: Mapping[str, object] | None) -> BatchConfig:
    if not data:
        return BatchConfig()
    presets = dict(BUILTIN_PRESETS)
    extra = data.get("presets")
    if isinstance(extra, Mapping):
        for name, values in extra.items():
            if isinstance(values, Mapping):
                presets[str(name)] = _build_preset(values, presets.get(str(name), BatchPreset()))
    preset = str(data.get("preset", "micro"))
    if preset not in presets:
        raise ValueError(f"Unknown batch preset in configuration: {preset}")
    chunk_size = _optional_int(data.get("chunk_size"))
    max_retries = _optional_int(data.get("max_retries"))
    _check_batch_values(chunk_size, max_retries)
    return BatchConfig(
        preset=preset,
        chunk_size=chunk_size,
        max_retries=max_retries,
        backoff_base_s=_optional_float(data.get("backoff_base_s")),
        presets=presets,
    )


def _build_planner(data: Mapping[str, object] | None) -> PlannerConfig:
    if not data:
        return PlannerConfig()
    strategy = str(data.get("strategy", "delete_insert"))
    if strategy not in STRATEGIES:
        raise ValueError(f"Unsupported planner strategy: {strategy}")
    default_selection = str(data.get("default_selection", "all"))
    if default_selection not in {"all", "none"}:
        raise ValueError(f"Unsupported default_selection: {default_selection}")
    relay = data.get("relay_template")
    return PlannerConfig(
        strategy=strategy,  # type: ignore[arg-type]
        relay_template=str(relay) if relay else None,
        default_selection=default_selection,  # type: ignore[arg-type]
    )


def _build_api(data: Mapping[str, object] | None) -> APIConfig:
    if not data:
        return APIConfig()
    return APIConfig(host=str(data.get("host", "127.0.0.1")), port=int(data.get("port", 8000)))  # type: ignore[arg-type]


def load_config(path: Path | None = None) -> AppConfig:
    path = path or DEFAULT_CONFIG_PATH
    raw = _read_toml(path)
    return AppConfig(
        runtime=_build_runtime(_section(raw, "runtime")),
        remote=_build_remote(_section(raw, "remote")),
        batch=_build_batch(_section(raw, "batch")),
        planner=_build_planner(_section(raw, "planner")),
        api=_build_api(_section(raw, "api")),
    )


def dump_config(config: AppConfig) -> str:
    payload = {
        "runtime": {
            "output_dir": str(config.runtime.output_dir),
            "log_file": config.runtime.log_file,
            "summary_csv": config.runtime.summary_csv,
            "enable_local_api": config.runtime.enable_local_api,
            "record_runs": config.runtime.record_runs,
        },
        "remote": {
            "base_url": config.remote.base_url,
            "timeout_s": config.remote.timeout_s,
        },
        "batch": {
            "preset": config.batch.preset,
            "effective": _preset_dict(config.batch.resolve()),
            "presets": {name: _preset_dict(p) for name, p in sorted(config.batch.presets.items())},
        },
        "planner": {
            "strategy": config.planner.strategy,
            "relay_template": config.planner.relay_template,
            "default_selection": config.planner.default_selection,
        },
        "api": {
            "host": config.api.host,
            "port": config.api.port,
        },
    }
    return json.dumps(payload, indent=2)


def _preset_dict(preset: BatchPreset) -> dict[str, object]:
    return {
        "chunk_size": preset.chunk_size,
        "max_retries": preset.max_retries,
        "backoff_base_s": preset.backoff_base_s,
    }
