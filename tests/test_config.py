import json
from pathlib import Path

import pytest

from doc_resizer.config import BUILTIN_PRESETS, AppConfig, dump_config, load_config


def test_defaults_when_file_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path / "absent.toml")
    assert config.batch.resolve() == BUILTIN_PRESETS["micro"]
    assert config.planner.strategy == "delete_insert"
    assert config.planner.default_selection == "all"
    assert config.runtime.enable_local_api is False


def test_presets_and_overrides(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text(
        """
[batch]
preset = "cautious"
max_retries = 5

[batch.presets.cautious]
chunk_size = 2
backoff_base_s = 3.0

[planner]
strategy = "property_update"
relay_template = "https://relay.example/{uri}"

[remote]
base_url = "https://docs.internal/v1/"
""",
        encoding="utf-8",
    )
    config = load_config(path)
    effective = config.batch.resolve()
    assert (effective.chunk_size, effective.max_retries, effective.backoff_base_s) == (2, 5, 3.0)
    assert config.batch.resolve("bulk") == BUILTIN_PRESETS["bulk"]
    assert config.planner.strategy == "property_update"
    assert config.remote.base_url == "https://docs.internal/v1"


def test_invalid_strategy_rejected(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text('[planner]\nstrategy = "teleport"\n', encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_unknown_preset_rejected(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text('[batch]\npreset = "nope"\n', encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


@pytest.mark.parametrize(
    "body",
    [
        "[batch]\nchunk_size = 0\n",
        "[batch]\nmax_retries = -1\n",
        "[batch.presets.tiny]\nchunk_size = -2\n",
    ],
)
def test_invalid_batch_values_rejected(tmp_path: Path, body: str) -> None:
    path = tmp_path / "config.toml"
    path.write_text(body, encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_dump_config_is_json() -> None:
    payload = json.loads(dump_config(AppConfig()))
    assert payload["batch"]["effective"]["chunk_size"] == 5
    assert set(payload["batch"]["presets"]) == {"micro", "standard", "bulk", "single"}
