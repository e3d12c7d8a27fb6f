import json
from pathlib import Path

import pytest
from PIL import Image

from conftest import RecordingListener
from imageborder.batch import BatchOrchestrator, BatchState
from imageborder.errors import (
    AlreadyProcessingError,
    DecodeError,
    DuplicatePathError,
    ParseError,
    UnsupportedFormatError,
    ValidationError,
)
from imageborder.models import BatchRequest, DrawOrder


def _products(write_image, count: int, size=(100, 100)) -> list[str]:
    return [str(write_image(f"in/item{i}.png", size=size)) for i in range(1, count + 1)]


def _request(products, frame_path, out: Path, **kwargs) -> BatchRequest:
    return BatchRequest(product_paths=list(products), frame_path=str(frame_path), output_dir=str(out), **kwargs)


def test_batch_writes_every_item(write_image, frame_path, tmp_path, listener) -> None:
    out = tmp_path / "out"
    products = _products(write_image, 3)
    orchestrator = BatchOrchestrator(listener=listener)

    summary = orchestrator.submit(_request(products, frame_path, out))

    assert summary is not None
    assert (summary.total_processed, summary.total_failed) == (3, 0)
    assert summary.output_dir == str(out)
    assert sorted(p.name for p in out.iterdir()) == ["item1_framed.png", "item2_framed.png", "item3_framed.png"]
    assert [(e.current, e.total, e.filename, e.success) for e in listener.progress] == [
        (1, 3, "item1.png", True),
        (2, 3, "item2.png", True),
        (3, 3, "item3.png", True),
    ]
    assert listener.completed == [summary]
    assert orchestrator.state == BatchState.IDLE
    assert orchestrator.last_outcome == BatchState.COMPLETED
    with Image.open(out / "item1_framed.png") as written:
        assert written.size == (200, 200)


def test_second_run_does_not_overwrite(write_image, frame_path, tmp_path, listener) -> None:
    out = tmp_path / "out"
    products = _products(write_image, 1)
    orchestrator = BatchOrchestrator(listener=listener)
    orchestrator.submit(_request(products, frame_path, out))
    orchestrator.submit(_request(products, frame_path, out))
    assert sorted(p.name for p in out.iterdir()) == ["item1_framed.png", "item1_framed_1.png"]


def test_duplicate_paths_rejected_before_work(write_image, frame_path, tmp_path, listener) -> None:
    product = _products(write_image, 1)[0]
    duplicate = str(Path(product).parent / "." / Path(product).name)
    orchestrator = BatchOrchestrator(listener=listener)
    with pytest.raises(DuplicatePathError):
        orchestrator.submit(_request([product, duplicate], frame_path, tmp_path / "out"))
    assert listener.progress == []
    assert not (tmp_path / "out").exists()


@pytest.mark.parametrize(
    ("overrides", "error"),
    [
        ({"product_paths": []}, ValidationError),
        ({"frame_path": ""}, ValidationError),
        ({"output_dir": ""}, ValidationError),
        ({"output_format": "gif"}, UnsupportedFormatError),
        ({"template_path": "missing.json"}, ValidationError),
    ],
)
def test_invalid_requests(write_image, frame_path, tmp_path, listener, overrides, error) -> None:
    request = _request(_products(write_image, 1), frame_path, tmp_path / "out")
    for key, value in overrides.items():
        setattr(request, key, value)
    with pytest.raises(error):
        BatchOrchestrator(listener=listener).submit(request)
    assert listener.progress == [] and listener.errors == []


def test_batch_size_limit_from_config(write_image, frame_path, tmp_path, listener) -> None:
    orchestrator = BatchOrchestrator(config={"max_batch_size": 2}, listener=listener)
    with pytest.raises(ValidationError):
        orchestrator.submit(_request(_products(write_image, 3), frame_path, tmp_path / "out"))


def test_malformed_template_is_parse_error(write_image, frame_path, tmp_path, listener) -> None:
    template = tmp_path / "template.json"
    template.write_text("{broken", encoding="utf-8")
    request = _request(_products(write_image, 1), frame_path, tmp_path / "out", template_path=str(template))
    with pytest.raises(ParseError):
        BatchOrchestrator(listener=listener).submit(request)


def test_unreadable_frame_reports_error(write_image, tmp_path, listener) -> None:
    frame = tmp_path / "private_dir" / "frame.png"
    frame.parent.mkdir()
    frame.write_bytes(b"garbage")
    orchestrator = BatchOrchestrator(listener=listener)

    with pytest.raises(DecodeError):
        orchestrator.submit(_request(_products(write_image, 2), frame, tmp_path / "out"))

    assert len(listener.errors) == 1
    assert "private_dir" not in listener.errors[0]
    assert "frame.png" in listener.errors[0]
    assert listener.progress == []
    assert orchestrator.state == BatchState.IDLE
    assert orchestrator.last_outcome == BatchState.FAILED


def test_failed_item_does_not_stop_batch(write_image, frame_path, tmp_path, listener) -> None:
    good = _products(write_image, 2)
    bad = tmp_path / "in" / "broken.png"
    bad.write_bytes(b"not an image")
    out = tmp_path / "out"

    summary = BatchOrchestrator(listener=listener).submit(_request([good[0], str(bad), good[1]], frame_path, out))

    assert summary is not None
    assert (summary.total_processed, summary.total_failed) == (2, 1)
    assert summary.failures == ["broken.png"]
    assert [e.success for e in listener.progress] == [True, False, True]
    assert len(list(out.iterdir())) == 2


def test_oversize_product_fails_item(write_image, frame_path, tmp_path, listener) -> None:
    products = _products(write_image, 1) + [str(write_image("in/wide.png", size=(300, 100)))]
    orchestrator = BatchOrchestrator(config={"max_image_width": 250}, listener=listener)
    summary = orchestrator.submit(_request(products, frame_path, tmp_path / "out"))
    assert summary.failures == ["wide.png"]


class _CancelAfter(RecordingListener):
    def __init__(self, orchestrator: BatchOrchestrator, after: int) -> None:
        super().__init__()
        self.orchestrator = orchestrator
        self.after = after

    def on_progress(self, event) -> None:
        super().on_progress(event)
        if event.current == self.after:
            self.orchestrator.cancel()


def test_cancel_stops_between_items(write_image, frame_path, tmp_path) -> None:
    out = tmp_path / "out"
    orchestrator = BatchOrchestrator()
    events = _CancelAfter(orchestrator, after=3)

    result = orchestrator.submit(_request(_products(write_image, 10), frame_path, out), events)

    assert result is None
    assert len(events.progress) == 3
    assert events.cancelled == 1
    assert events.completed == []
    assert len(list(out.iterdir())) == 3
    assert orchestrator.last_outcome == BatchState.CANCELLED
    assert orchestrator.cancel() is False


class _ReentrantSubmit(RecordingListener):
    def __init__(self, orchestrator: BatchOrchestrator, request: BatchRequest) -> None:
        super().__init__()
        self.orchestrator = orchestrator
        self.request = request
        self.rejections: list[Exception] = []

    def on_progress(self, event) -> None:
        super().on_progress(event)
        try:
            self.orchestrator.submit(self.request)
        except AlreadyProcessingError as exc:
            self.rejections.append(exc)


def test_only_one_batch_runs_at_a_time(write_image, frame_path, tmp_path) -> None:
    orchestrator = BatchOrchestrator()
    request = _request(_products(write_image, 2), frame_path, tmp_path / "out")
    events = _ReentrantSubmit(orchestrator, request)

    orchestrator.submit(request, events)

    assert len(events.rejections) == 2
    assert len(events.completed) == 1
    # 运行结束后互斥标志已释放
    again = RecordingListener()
    assert orchestrator.submit(request, again) is not None
    assert len(again.completed) == 1


def test_cancel_when_idle_is_noop() -> None:
    orchestrator = BatchOrchestrator()
    assert orchestrator.cancel() is False
    assert orchestrator.state == BatchState.IDLE
    assert orchestrator.last_outcome is None


@pytest.mark.parametrize(("fmt", "name", "pil_format"), [("jpeg", "item1_framed.jpeg", "JPEG"), ("webp", "item1_framed.webp", "WEBP")])
def test_lossy_output_formats(write_image, frame_path, tmp_path, listener, fmt, name, pil_format) -> None:
    out = tmp_path / "out"
    request = _request(_products(write_image, 1), frame_path, out, output_format=fmt, quality=70)
    BatchOrchestrator(listener=listener).submit(request)
    with Image.open(out / name) as written:
        assert written.format == pil_format


def test_collision_limit_fails_item(write_image, frame_path, tmp_path, listener) -> None:
    out = tmp_path / "out"
    out.mkdir()
    (out / "item1_framed.png").write_bytes(b"taken")
    orchestrator = BatchOrchestrator(config={"collision_retry_limit": 0}, listener=listener)
    summary = orchestrator.submit(_request(_products(write_image, 1), frame_path, out))
    assert summary.failures == ["item1.png"]
    assert (out / "item1_framed.png").read_bytes() == b"taken"


def test_template_background_and_overlays_applied(write_image, frame_path, tmp_path, listener) -> None:
    template = tmp_path / "template.json"
    template.write_text(
        json.dumps(
            {
                "background": "#00ff00",
                "title": {"text": "[name]", "position": "150,5", "fontsize": 12, "color": "black"},
                "note": {"text": "[missing]", "position": "0,0"},
            }
        ),
        encoding="utf-8",
    )
    out = tmp_path / "out"
    request = _request(
        _products(write_image, 1),
        frame_path,
        out,
        template_path=str(template),
        field_values={"name": "Chair"},
    )
    BatchOrchestrator(listener=listener).submit(request)
    with Image.open(out / "item1_framed.png") as written:
        rgba = written.convert("RGBA")
        assert rgba.getpixel((30, 30)) == (0, 255, 0, 255)
        assert rgba.getpixel((100, 100)) == (255, 0, 0, 255)


def test_preview_composes_first_product_without_writing(write_image, frame_path, tmp_path, listener) -> None:
    out = tmp_path / "out"
    orchestrator = BatchOrchestrator(listener=listener)
    image = orchestrator.preview(_request(_products(write_image, 2), frame_path, out, draw_order=DrawOrder.BELOW))
    assert image.size == (200, 200)
    assert image.getpixel((100, 100)) == (255, 0, 0, 255)
    assert not out.exists()
    assert listener.progress == []
