from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from PIL import Image

from imageborder.models import BatchSummary, ProgressEvent

BORDER_COLOR = (0, 0, 255, 255)


def make_frame(size: int = 200, border: int = 20, color=BORDER_COLOR) -> Image.Image:
    frame = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    opaque = Image.new("RGBA", (size, size), color)
    mask = Image.new("L", (size, size), 255)
    mask.paste(0, (border, border, size - border, size - border))
    frame.paste(opaque, (0, 0), mask)
    return frame


def assert_close(actual, expected, tolerance: int = 2) -> None:
    assert len(actual) == len(expected)
    for a, e in zip(actual, expected):
        assert abs(a - e) <= tolerance, f"{actual} != {expected}"


@pytest.fixture
def write_image(tmp_path: Path) -> Callable[..., Path]:
    def _write(name: str, size=(100, 100), color=(255, 0, 0, 255), image: Image.Image | None = None) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        img = image if image is not None else Image.new("RGBA", size, color)
        if path.suffix.lower() in {".jpg", ".jpeg"}:
            img = img.convert("RGB")
        img.save(path)
        return path

    return _write


@pytest.fixture
def frame_path(write_image) -> Path:
    return write_image("frame.png", image=make_frame())


class RecordingListener:
    def __init__(self) -> None:
        self.progress: list[ProgressEvent] = []
        self.completed: list[BatchSummary] = []
        self.cancelled = 0
        self.errors: list[str] = []

    def on_progress(self, event: ProgressEvent) -> None:
        self.progress.append(event)

    def on_complete(self, summary: BatchSummary) -> None:
        self.completed.append(summary)

    def on_cancelled(self) -> None:
        self.cancelled += 1

    def on_error(self, message: str) -> None:
        self.errors.append(message)


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()
