from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from ..config import AppConfig, dump_config, load_config
from ..core import ResizeError, ResizeService
from ..models import ResizeOptions
from ..planner import selection_from_request
from ..settings import get_settings
from ..utils import generate_run_id, parse_scope

console = Console()

app = typer.Typer(help="Resize images embedded in remote documents")

TOKEN_ENV = "DOCRESIZE_ACCESS_TOKEN"


def _load_config(path: Path | None) -> AppConfig:
    return load_config(path or get_settings().config_path)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, get_settings().log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s %(message)s")


def _require_token(token: str | None) -> str:
    token = token or get_settings().access_token
    if not token:
        console.print(f"[red]Missing access token[/red]: pass --token or set {TOKEN_ENV}")
        raise typer.Exit(2)
    return token


@app.command()
def structure(
    document_id: str,
    token: str | None = typer.Option(None, "--token", envvar=TOKEN_ENV, help="OAuth access token"),
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    _configure_logging(verbose)
    service = ResizeService(_load_config(config))
    try:
        result = service.structure(_require_token(token), document_id)
    except ResizeError as exc:
        console.print(f"[red]Failed[/red]: {exc.code} - {exc}")
        raise typer.Exit(1) from exc
    table = Table(title=result.title)
    table.add_column("Heading")
    table.add_column("Level")
    table.add_column("Scope")
    table.add_column("Images")
    for entry in result.items:
        node = entry.node
        table.add_row(
            ("  " * (node.level - 1)) + node.title,
            str(node.level),
            f"{node.start_offset}:{node.scope_end_offset}",
            str(entry.image_count),
        )
    console.print(table)
    console.print(f"{len(result.images)} images, {len(result.unscoped_images)} outside any heading.")


@app.command()
def resize(
    document_id: str,
    width_cm: float = typer.Option(..., "--width-cm", min=0.01, help="Target width in centimeters"),
    image: list[str] = typer.Option(None, "--image", help="Image id to resize (repeatable)"),
    scope: list[str] = typer.Option(None, "--scope", help="Offset range START:END (repeatable)"),
    preset: str | None = typer.Option(None, "--preset", help="Batch preset name"),
    strategy: str | None = typer.Option(None, "--strategy", help="delete_insert or property_update"),
    token: str | None = typer.Option(None, "--token", envvar=TOKEN_ENV, help="OAuth access token"),
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    _configure_logging(verbose)
    cfg = _load_config(config)
    if strategy is not None and strategy not in {"delete_insert", "property_update"}:
        raise typer.BadParameter(f"Unknown strategy: {strategy}", param_hint="--strategy")
    try:
        scopes = [parse_scope(item) for item in scope] if scope else None
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--scope") from exc
    options = ResizeOptions(
        target_width_cm=width_cm,
        selection=selection_from_request(image or None, scopes, default=cfg.planner.default_selection),
        preset=preset,
        strategy=strategy,  # type: ignore[arg-type]
    )
    service = ResizeService(cfg)
    try:
        result = service.resize(_require_token(token), document_id, options)
    except ResizeError as exc:
        console.print(f"[red]Resize failed[/red]: {exc.code} - {exc}")
        raise typer.Exit(1) from exc

    execution = result.execution
    if execution.id_map:
        table = Table(title="Replaced image ids")
        table.add_column("Original")
        table.add_column("New")
        for old_id, new_id in execution.id_map.items():
            table.add_row(old_id, new_id)
        console.print(table)
    for warning in result.warnings:
        console.print(f"[yellow]Warning[/yellow]: {warning}")
    colour = "green" if execution.failed_count == 0 else "yellow"
    console.print(f"[{colour}]{result.summary}[/{colour}]")
    if result.run_dir:
        console.print(f"Run log: {result.run_dir}")
    if execution.failed_count:
        raise typer.Exit(1)


@app.command("show-config")
def show_config(config: Path | None = typer.Option(None, "--config", help="Path to config.toml")) -> None:
    typer.echo(dump_config(_load_config(config)))


@app.command()
def clean(
    older_than: int = typer.Option(
        0,
        "--older-than",
        min=0,
        help="Delete runs older than the given days",
    ),
    keep: int = typer.Option(
        0,
        "--keep",
        min=0,
        help="Keep the most recent N runs and delete the rest",
    ),
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    cfg = _load_config(config)
    output_dir = cfg.runtime.output_dir
    if not output_dir.exists():
        console.print("No runs directory found.")
        raise typer.Exit()
    candidates = sorted([p for p in output_dir.iterdir() if p.is_dir()], key=lambda p: p.stat().st_mtime)
    to_remove: list[Path] = []
    if keep:
        to_remove.extend(candidates[:-keep])
    if older_than:
        threshold = time.time() - older_than * 86400
        to_remove.extend([p for p in candidates if p.stat().st_mtime < threshold])
    seen: set[Path] = set()
    for path in to_remove:
        if path in seen:
            continue
        shutil.rmtree(path, ignore_errors=True)
        seen.add(path)
    console.print(f"Removed {len(seen)} run directories.")


@app.command()
def new_run_id() -> None:
    console.print(generate_run_id())


@app.command()
def serve(
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
) -> None:
    import uvicorn

    from ..api import create_app

    cfg = _load_config(config)
    _configure_logging(False)
    try:
        api = create_app(config=cfg)
    except RuntimeError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc
    uvicorn.run(api, host=host or cfg.api.host, port=port or cfg.api.port)


if __name__ == "__main__":
    app()
