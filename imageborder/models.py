from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from PIL import Image

from imageborder.constants import DEFAULT_OUTPUT_FORMAT, DEFAULT_QUALITY, TEMPLATE_DEFAULT_FONT_SIZE


class DrawOrder(str, Enum):
    ABOVE = "above"  # 产品在下，边框覆盖其上
    BELOW = "below"  # 边框在下，产品覆盖其上

    @classmethod
    def parse(cls, value: Any) -> "DrawOrder":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value == text:
                return member
        return cls.ABOVE


@dataclass(slots=True, frozen=True)
class TemplateField:
    text: str
    position: str = ""
    font_size: int = TEMPLATE_DEFAULT_FONT_SIZE
    color: str = ""

    def with_text(self, text: str) -> "TemplateField":
        return replace(self, text=text)


# A field after placeholder substitution; same shape, different lifecycle.
ResolvedOverlay = TemplateField


@dataclass(slots=True)
class TemplateDocument:
    background: str | None = None
    fields: dict[str, TemplateField] = field(default_factory=dict)


@dataclass(slots=True)
class CompositeCanvas:
    image: Image.Image
    width: int
    height: int


@dataclass(slots=True)
class BatchRequest:
    product_paths: list[str]
    frame_path: str
    output_dir: str
    template_path: str | None = None
    field_values: dict[str, str] = field(default_factory=dict)
    output_format: str = DEFAULT_OUTPUT_FORMAT
    quality: int = DEFAULT_QUALITY
    draw_order: DrawOrder = DrawOrder.ABOVE


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    current: int
    total: int
    filename: str
    success: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "current": self.current,
            "total": self.total,
            "file": self.filename,
            "success": self.success,
        }


@dataclass(slots=True, frozen=True)
class BatchSummary:
    output_dir: str
    total_processed: int
    total_failed: int
    failures: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "outputDir": self.output_dir,
            "totalProcessed": self.total_processed,
            "totalFailed": self.total_failed,
            "failures": list(self.failures),
        }


@dataclass(slots=True, frozen=True)
class OverlayDiagnostic:
    field_name: str
    message: str
