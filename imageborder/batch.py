"""Single-flight batch pipeline: load, compose, draw text, save.

At most one batch runs per orchestrator. Items are processed sequentially
in input order; cancellation is checked between items, never mid-item.
"""
from __future__ import annotations

import logging
import os
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Mapping, Protocol

from PIL import Image

from imageborder.config import DEFAULT_CONFIG, config_int
from imageborder.decoders.image_decoder import decode_image
from imageborder.errors import (
    AlreadyProcessingError,
    DecodeError,
    DuplicatePathError,
    ValidationError,
    sanitize_error_message,
)
from imageborder.exporter import normalize_quality, resolve_output_format, save_image
from imageborder.models import (
    BatchRequest,
    BatchSummary,
    DrawOrder,
    OverlayDiagnostic,
    ProgressEvent,
    ResolvedOverlay,
    TemplateDocument,
)
from imageborder.naming import build_output_stem, unique_output_path
from imageborder.render.compositor import compose_with_text
from imageborder.render.text_overlay import TextOverlayRenderer
from imageborder.render.typography import FontManager
from imageborder.template_loader import TemplateService, apply_values

LOGGER = logging.getLogger(__name__)


class BatchState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class BatchListener(Protocol):
    def on_progress(self, event: ProgressEvent) -> None: ...

    def on_complete(self, summary: BatchSummary) -> None: ...

    def on_cancelled(self) -> None: ...

    def on_error(self, message: str) -> None: ...


class LoggingBatchListener:
    def on_progress(self, event: ProgressEvent) -> None:
        status = "OK  " if event.success else "FAIL"
        LOGGER.info("%s [%d/%d] %s", status, event.current, event.total, event.filename)

    def on_complete(self, summary: BatchSummary) -> None:
        LOGGER.info(
            "batch done: processed=%d failed=%d -> %s",
            summary.total_processed,
            summary.total_failed,
            summary.output_dir,
        )

    def on_cancelled(self) -> None:
        LOGGER.info("batch cancelled")

    def on_error(self, message: str) -> None:
        LOGGER.error("batch error: %s", message)


@dataclass(slots=True)
class RunHandle:
    cancel_event: threading.Event = field(default_factory=threading.Event)
    state: BatchState = BatchState.RUNNING

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


@dataclass(slots=True)
class _PreparedBatch:
    product_paths: list[str]
    frame_path: str
    output_dir: str
    extension: str
    output_format: str
    quality: int
    draw_order: DrawOrder
    template: TemplateDocument | None


@dataclass(slots=True)
class _ItemResult:
    success: bool
    output: Path | None = None
    elapsed: float = 0.0
    error: str | None = None


def _normalize_path(path: str) -> str:
    return os.path.abspath(os.path.normpath(path))


class BatchOrchestrator:
    def __init__(
        self,
        *,
        config: Mapping[str, Any] | None = None,
        template_service: TemplateService | None = None,
        font_manager: FontManager | None = None,
        renderer: TextOverlayRenderer | None = None,
        listener: BatchListener | None = None,
    ) -> None:
        cfg = dict(DEFAULT_CONFIG)
        cfg.update(config or {})
        self.max_batch_size = config_int(cfg, "max_batch_size")
        self.max_image_width = config_int(cfg, "max_image_width")
        self.max_image_height = config_int(cfg, "max_image_height")
        self.collision_retry_limit = config_int(cfg, "collision_retry_limit", minimum=0)
        self.output_suffix = str(cfg.get("output_suffix") or "")
        self.template_service = template_service or TemplateService()
        if renderer is None:
            font_path = cfg.get("font_path")
            font_manager = font_manager or FontManager(Path(font_path) if font_path else None)
            renderer = TextOverlayRenderer(font_manager, default_font_size=config_int(cfg, "default_font_size"))
        self.renderer = renderer
        self.listener: BatchListener = listener or LoggingBatchListener()
        self._lock = threading.Lock()
        self._active: RunHandle | None = None
        self.last_outcome: BatchState | None = None

    @property
    def state(self) -> BatchState:
        with self._lock:
            return self._active.state if self._active is not None else BatchState.IDLE

    @property
    def is_running(self) -> bool:
        return self.state == BatchState.RUNNING

    def cancel(self) -> bool:
        """Signal the active run to stop at the next item boundary."""
        with self._lock:
            if self._active is None:
                return False
            self._active.cancel()
            return True

    @contextmanager
    def _acquire_run(self) -> Iterator[RunHandle]:
        with self._lock:
            if self._active is not None:
                raise AlreadyProcessingError("another batch is already processing")
            handle = RunHandle()
            self._active = handle
        try:
            yield handle
        finally:
            with self._lock:
                self.last_outcome = handle.state
                self._active = None

    def _validate_common(self, request: BatchRequest) -> tuple[list[str], str, str, str, int]:
        products = [_normalize_path(p) for p in request.product_paths if p]
        if not products:
            raise ValidationError("no images to process")
        if not request.frame_path:
            raise ValidationError("frame image required")
        extension, _pil_format = resolve_output_format(request.output_format)
        output_format = (request.output_format or "").strip().lower() or extension
        frame_path = _normalize_path(request.frame_path)
        return products, frame_path, output_format, extension, normalize_quality(request.quality)

    def _load_template(self, template_path: str | None) -> TemplateDocument | None:
        if not template_path:
            return None
        if not os.path.isfile(template_path):
            raise ValidationError(f"template file not found: {template_path}")
        return self.template_service.load(template_path)

    def validate(self, request: BatchRequest) -> _PreparedBatch:
        products, frame_path, output_format, extension, quality = self._validate_common(request)
        if len(products) > self.max_batch_size:
            raise ValidationError(f"batch size {len(products)} exceeds maximum {self.max_batch_size}")
        seen: set[str] = set()
        for path in products:
            if path in seen:
                raise DuplicatePathError(f"duplicate path detected: {os.path.basename(path)}")
            seen.add(path)
        if not request.output_dir:
            raise ValidationError("output directory required")
        template = self._load_template(request.template_path)
        return _PreparedBatch(
            product_paths=products,
            frame_path=frame_path,
            output_dir=_normalize_path(request.output_dir),
            extension=extension,
            output_format=output_format,
            quality=quality,
            draw_order=DrawOrder.parse(request.draw_order),
            template=template,
        )

    def submit(self, request: BatchRequest, listener: BatchListener | None = None) -> BatchSummary | None:
        """Run one batch to completion or cancellation.

        Returns the summary, or None when the run was cancelled. Validation
        failures raise before any work starts; a frame that cannot be loaded
        is reported through on_error and re-raised.
        """
        events = listener or self.listener
        prepared = self.validate(request)
        with self._acquire_run() as handle:
            try:
                return self._run(prepared, request.field_values, handle, events)
            except BaseException:
                if handle.state == BatchState.RUNNING:
                    handle.state = BatchState.FAILED
                raise

    def _load(self, path: str) -> Image.Image:
        return decode_image(path, max_width=self.max_image_width, max_height=self.max_image_height)

    def _run(
        self,
        prepared: _PreparedBatch,
        field_values: Mapping[str, str],
        handle: RunHandle,
        events: BatchListener,
    ) -> BatchSummary | None:
        try:
            frame = self._load(prepared.frame_path)
        except DecodeError as exc:
            _emit(events.on_error, sanitize_error_message(exc))
            raise

        background: str | None = None
        overlays: dict[str, ResolvedOverlay] = {}
        if prepared.template is not None:
            background = prepared.template.background
            overlays = apply_values(prepared.template, field_values or {})

        total = len(prepared.product_paths)
        failures: list[str] = []
        LOGGER.info("batch start: %d item(s), frame=%s", total, os.path.basename(prepared.frame_path))
        for index, product_path in enumerate(prepared.product_paths, start=1):
            if handle.cancelled:
                handle.state = BatchState.CANCELLED
                _emit(events.on_cancelled)
                return None
            result = self._process_item(product_path, frame, background, overlays, prepared)
            if not result.success:
                failures.append(os.path.basename(product_path))
                LOGGER.error("FAIL %s  %s", os.path.basename(product_path), result.error)
            else:
                LOGGER.info(
                    "OK   %s -> %s  (%.2fs)",
                    os.path.basename(product_path),
                    result.output.name if result.output else "-",
                    result.elapsed,
                )
            _emit(
                events.on_progress,
                ProgressEvent(
                    current=index,
                    total=total,
                    filename=os.path.basename(product_path),
                    success=result.success,
                ),
            )

        summary = BatchSummary(
            output_dir=prepared.output_dir,
            total_processed=total - len(failures),
            total_failed=len(failures),
            failures=failures,
        )
        handle.state = BatchState.COMPLETED
        _emit(events.on_complete, summary)
        return summary

    def _process_item(
        self,
        product_path: str,
        frame: Image.Image,
        background: str | None,
        overlays: Mapping[str, ResolvedOverlay],
        prepared: _PreparedBatch,
    ) -> _ItemResult:
        t0 = time.perf_counter()
        try:
            product = self._load(product_path)
            diagnostics: list[OverlayDiagnostic] = []
            result = compose_with_text(
                product,
                frame,
                background,
                overlays,
                self.renderer,
                draw_order=prepared.draw_order,
                diagnostics=diagnostics,
            )
            stem = build_output_stem(product_path, self.output_suffix)
            target = unique_output_path(
                prepared.output_dir,
                stem,
                prepared.extension,
                retry_limit=self.collision_retry_limit,
            )
            written = save_image(result.image, target, prepared.output_format, prepared.quality)
            return _ItemResult(success=True, output=written, elapsed=time.perf_counter() - t0)
        except Exception as exc:
            return _ItemResult(
                success=False,
                error=sanitize_error_message(exc),
                elapsed=time.perf_counter() - t0,
            )

    def preview(self, request: BatchRequest, diagnostics: list[OverlayDiagnostic] | None = None) -> Image.Image:
        """Compose the first product only. Writes nothing and takes no run slot."""
        products, frame_path, _output_format, _extension, _quality = self._validate_common(request)
        template = self._load_template(request.template_path)
        product = self._load(products[0])
        frame = self._load(frame_path)
        background = template.background if template is not None else None
        overlays = apply_values(template, request.field_values or {}) if template is not None else {}
        result = compose_with_text(
            product,
            frame,
            background,
            overlays,
            self.renderer,
            draw_order=DrawOrder.parse(request.draw_order),
            diagnostics=diagnostics,
        )
        return result.image


def _emit(callback: Any, *args: Any) -> None:
    try:
        callback(*args)
    except Exception:
        LOGGER.exception("batch listener %s failed", getattr(callback, "__name__", callback))
