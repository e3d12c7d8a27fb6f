from __future__ import annotations

import logging
from typing import Mapping

from PIL import Image, ImageDraw

from imageborder.colors import Color, parse_color, parse_position
from imageborder.constants import DEFAULT_FONT_NAME, RENDER_DEFAULT_FONT_SIZE
from imageborder.errors import ImageBorderError
from imageborder.models import OverlayDiagnostic, ResolvedOverlay
from imageborder.render.typography import FontFace, FontManager

LOGGER = logging.getLogger(__name__)


class OverlayRenderError(ImageBorderError):
    """Raised in strict mode when a single overlay cannot be drawn."""


class TextOverlayRenderer:
    """Draws resolved template fields onto a canvas.

    A failure on one overlay is reported as an OverlayDiagnostic and the
    remaining overlays are still drawn. With ``strict=True`` the first
    failure is raised instead.
    """

    def __init__(
        self,
        font_manager: FontManager,
        *,
        font_name: str = DEFAULT_FONT_NAME,
        default_font_size: int = RENDER_DEFAULT_FONT_SIZE,
        strict: bool = False,
    ) -> None:
        self.font_manager = font_manager
        self.font_name = font_name
        self.default_font_size = default_font_size if default_font_size > 0 else RENDER_DEFAULT_FONT_SIZE
        self.strict = strict

    def draw_overlays(
        self,
        image: Image.Image,
        overlays: Mapping[str, ResolvedOverlay],
        diagnostics: list[OverlayDiagnostic] | None = None,
    ) -> Image.Image:
        canvas = image.convert("RGBA") if image.mode != "RGBA" else image.copy()
        for name, overlay in overlays.items():
            try:
                self._draw_single(canvas, overlay)
            except Exception as exc:
                if self.strict:
                    raise OverlayRenderError(f"failed to draw overlay {name}: {exc}") from exc
                LOGGER.warning("failed to draw overlay %s: %s", name, exc)
                if diagnostics is not None:
                    diagnostics.append(OverlayDiagnostic(field_name=name, message=str(exc)))
        return canvas

    def _font_size(self, overlay: ResolvedOverlay) -> int:
        try:
            size = int(overlay.font_size)
        except (TypeError, ValueError):
            return self.default_font_size
        return size if size > 0 else self.default_font_size

    def _draw_single(self, canvas: Image.Image, overlay: ResolvedOverlay) -> None:
        if not overlay.text.strip():
            return
        x, y = parse_position(overlay.position)
        color = parse_color(overlay.color)
        font = self.font_manager.get_face(self.font_name, self._font_size(overlay))
        draw_text_at(canvas, overlay.text, x=x, y=y, font=font, color=color)


def draw_text_at(canvas: Image.Image, text: str, *, x: int, y: int, font: FontFace, color: Color) -> None:
    """Alpha-composite text so that (x, y) is the top-left of its visible ink."""
    probe = ImageDraw.Draw(canvas)
    left, top, right, bottom = probe.textbbox((0, 0), text, font=font)
    layer = Image.new("RGBA", (max(1, right - left), max(1, bottom - top)), (0, 0, 0, 0))
    ImageDraw.Draw(layer).text((-left, -top), text, font=font, fill=color)
    # textbbox 含字形左侧留白，按实际墨迹裁剪
    ink = layer.getchannel("A").getbbox()
    if ink is None:
        return
    layer = layer.crop(ink)
    if x >= canvas.width or y >= canvas.height or x + layer.width <= 0 or y + layer.height <= 0:
        return
    canvas.alpha_composite(layer, dest=(max(0, x), max(0, y)), source=(max(0, -x), max(0, -y)))
