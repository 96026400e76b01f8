from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from doc_resizer.cli import app

runner = CliRunner()


def test_show_config_prints_effective_preset(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text('[batch]\npreset = "bulk"\n', encoding="utf-8")
    result = runner.invoke(app, ["show-config", "--config", str(config_path)])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["batch"]["effective"]["chunk_size"] == 25


def test_resize_requires_token(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("DOCRESIZE_ACCESS_TOKEN", raising=False)
    result = runner.invoke(app, ["resize", "doc-1", "--width-cm", "5", "--config", str(tmp_path / "none.toml")])
    assert result.exit_code == 2


def test_resize_rejects_bad_scope(tmp_path: Path) -> None:
    result = runner.invoke(
        app,
        ["resize", "doc-1", "--width-cm", "5", "--scope", "oops", "--token", "t", "--config", str(tmp_path / "none.toml")],
    )
    assert result.exit_code != 0


def test_new_run_id() -> None:
    result = runner.invoke(app, ["new-run-id"])
    assert result.exit_code == 0
    assert result.stdout.strip().startswith("resize-")


def test_serve_refuses_when_local_api_disabled(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("[runtime]\nenable_local_api = false\n", encoding="utf-8")
    result = runner.invoke(app, ["serve", "--config", str(config_path)])
    assert result.exit_code == 1
