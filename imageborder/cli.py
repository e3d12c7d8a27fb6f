from __future__ import annotations

import logging
import threading
from pathlib import Path

import typer

from imageborder.batch import BatchOrchestrator
from imageborder.config import load_config, write_default_config
from imageborder.discover import expand_inputs
from imageborder.errors import ImageBorderError, sanitize_error_message
from imageborder.exporter import save_image
from imageborder.models import BatchRequest, BatchSummary, DrawOrder, OverlayDiagnostic, ProgressEvent
from imageborder.template_loader import TemplateService

app = typer.Typer(add_completion=False, no_args_is_help=True, help="Batch product-in-frame compositing CLI.")


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def _parse_field_values(values: list[str]) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for item in values:
        name, sep, value = item.partition("=")
        name = name.strip()
        if not sep or not name:
            raise typer.BadParameter(f"expected name=value, got: {item!r}", param_hint="--value")
        parsed[name] = value
    return parsed


def _parse_draw_order(position: str | None, cfg: dict) -> DrawOrder:
    if position is None:
        return DrawOrder.parse(cfg.get("draw_order"))
    choices = [member.value for member in DrawOrder]
    if position.strip().lower() not in choices:
        expected = "|".join(choices)
        raise typer.BadParameter(f"expected {expected}, got: {position!r}", param_hint="--position")
    return DrawOrder.parse(position)


class _EchoListener:
    """Prints batch notifications to the terminal."""

    def __init__(self) -> None:
        self.cancelled = False
        self.summary: BatchSummary | None = None

    def on_progress(self, event: ProgressEvent) -> None:
        mark = "OK  " if event.success else "FAIL"
        color = typer.colors.GREEN if event.success else typer.colors.RED
        typer.secho(f"{mark} [{event.current}/{event.total}] {event.filename}", fg=color)

    def on_complete(self, summary: BatchSummary) -> None:
        self.summary = summary
        typer.echo(f"Done. success={summary.total_processed} failed={summary.total_failed} -> {summary.output_dir}")
        if summary.failures:
            typer.secho("Failures:", fg=typer.colors.RED)
            for name in summary.failures:
                typer.secho(f"  {name}", fg=typer.colors.RED)

    def on_cancelled(self) -> None:
        self.cancelled = True
        typer.secho("Cancelled.", fg=typer.colors.YELLOW)

    def on_error(self, message: str) -> None:
        typer.secho(f"Error: {message}", err=True, fg=typer.colors.RED)


def _run_in_worker(orchestrator: BatchOrchestrator, request: BatchRequest, listener: _EchoListener) -> None:
    errors: list[BaseException] = []

    def _target() -> None:
        try:
            orchestrator.submit(request, listener)
        except BaseException as exc:
            errors.append(exc)

    worker = threading.Thread(target=_target, name="imageborder-batch", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(timeout=0.2)
    except KeyboardInterrupt:
        typer.secho("Stopping after the current image...", fg=typer.colors.YELLOW)
        orchestrator.cancel()
        worker.join()
    if errors:
        raise errors[0]


@app.command()
def render(
    products: list[Path] = typer.Argument(..., exists=True, resolve_path=True, help="Product images or folders."),
    frame: Path = typer.Option(..., "--frame", exists=True, dir_okay=False, resolve_path=True, help="Frame image."),
    out: Path = typer.Option(..., "--out", file_okay=False, resolve_path=True, help="Output directory."),
    template: Path | None = typer.Option(None, "--template", exists=True, dir_okay=False, help="Template JSON file."),
    value: list[str] = typer.Option([], "--value", "-v", help="Placeholder value, name=value. Repeatable."),
    output_format: str | None = typer.Option(None, "--format", help="Output format: png|jpg|jpeg|webp"),
    quality: int | None = typer.Option(None, "--quality", help="Lossy quality 0-100."),
    position: str | None = typer.Option(None, "--position", help="above: frame over product; below: product over frame."),
    recursive: bool = typer.Option(False, "--recursive", help="Recursively scan input directories."),
    log_level: str | None = typer.Option(None, "--log-level"),
) -> None:
    """Composite every product image into the frame and save the results."""
    cfg = load_config()
    _setup_logging(log_level or str(cfg.get("log_level", "info")))

    files = expand_inputs(products, recursive=recursive)
    if not files:
        typer.echo("No supported image files found.")
        raise typer.Exit(0)

    request = BatchRequest(
        product_paths=[str(p) for p in files],
        frame_path=str(frame),
        output_dir=str(out),
        template_path=str(template) if template else None,
        field_values=_parse_field_values(value),
        output_format=output_format if output_format is not None else str(cfg.get("output_format", "png")),
        quality=quality if quality is not None else int(cfg.get("quality", 90)),
        draw_order=_parse_draw_order(position, cfg),
    )
    orchestrator = BatchOrchestrator(config=cfg)
    listener = _EchoListener()
    try:
        _run_in_worker(orchestrator, request, listener)
    except ImageBorderError as exc:
        typer.secho(sanitize_error_message(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(1)

    if listener.cancelled:
        raise typer.Exit(130)
    if listener.summary is not None and listener.summary.total_failed:
        raise typer.Exit(1)


@app.command()
def fields(
    template: Path = typer.Argument(..., exists=True, dir_okay=False, resolve_path=True),
) -> None:
    """List the placeholder names a template expects values for."""
    try:
        names = TemplateService().fields(template)
    except ImageBorderError as exc:
        typer.secho(sanitize_error_message(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(1)
    for name in names:
        typer.echo(name)


@app.command()
def preview(
    product: Path = typer.Argument(..., exists=True, dir_okay=False, resolve_path=True),
    frame: Path = typer.Option(..., "--frame", exists=True, dir_okay=False, resolve_path=True),
    out: Path = typer.Option(..., "--out", dir_okay=False, help="PNG file to write."),
    template: Path | None = typer.Option(None, "--template", exists=True, dir_okay=False),
    value: list[str] = typer.Option([], "--value", "-v"),
    position: str | None = typer.Option(None, "--position"),
) -> None:
    """Render a single product without running a batch."""
    cfg = load_config()
    request = BatchRequest(
        product_paths=[str(product)],
        frame_path=str(frame),
        output_dir=str(out.parent),
        template_path=str(template) if template else None,
        field_values=_parse_field_values(value),
        draw_order=_parse_draw_order(position, cfg),
    )
    diagnostics: list[OverlayDiagnostic] = []
    try:
        image = BatchOrchestrator(config=cfg).preview(request, diagnostics)
        written = save_image(image, out, "png")
    except ImageBorderError as exc:
        typer.secho(sanitize_error_message(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(1)
    for item in diagnostics:
        typer.secho(f"warning: {item.field_name}: {item.message}", err=True, fg=typer.colors.YELLOW)
    typer.echo(f"Preview written: {written}")


@app.command("init-config")
def init_config(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config file."),
) -> None:
    path = write_default_config(force=force)
    typer.echo(f"Config initialized: {path}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
