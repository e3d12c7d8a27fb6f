from __future__ import annotations

import logging
from typing import Mapping

from PIL import Image

from imageborder.models import CompositeCanvas, DrawOrder, OverlayDiagnostic, ResolvedOverlay
from imageborder.render.image_modes import blank_canvas, resize_to_fit
from imageborder.render.text_overlay import TextOverlayRenderer

LOGGER = logging.getLogger(__name__)


def _as_rgba(image: Image.Image) -> Image.Image:
    return image if image.mode == "RGBA" else image.convert("RGBA")


def center_offset(outer: tuple[int, int], inner: tuple[int, int]) -> tuple[int, int]:
    # 奇数差值时向左上偏 1px
    return (outer[0] - inner[0]) // 2, (outer[1] - inner[1]) // 2


def compose(
    product: Image.Image,
    frame: Image.Image,
    background: str | None = None,
    *,
    draw_order: DrawOrder = DrawOrder.ABOVE,
) -> CompositeCanvas:
    """Layer product and frame onto a canvas the size of the frame.

    The product is contain-fitted into the frame bounds and centered. With
    DrawOrder.ABOVE the frame is drawn over the product so transparent
    regions of the frame reveal it; DrawOrder.BELOW reverses the two.
    """
    frame_rgba = _as_rgba(frame)
    width, height = frame_rgba.size
    canvas = blank_canvas(width, height, background or None)

    resized = _as_rgba(resize_to_fit(product, width, height))
    offset = center_offset((width, height), resized.size)

    if draw_order == DrawOrder.BELOW:
        canvas.alpha_composite(frame_rgba)
        canvas.alpha_composite(resized, dest=offset)
    else:
        canvas.alpha_composite(resized, dest=offset)
        canvas.alpha_composite(frame_rgba)

    LOGGER.debug(
        "composed %sx%s product=%sx%s at %s order=%s",
        width,
        height,
        resized.width,
        resized.height,
        offset,
        draw_order.value,
    )
    return CompositeCanvas(image=canvas, width=width, height=height)


def compose_with_text(
    product: Image.Image,
    frame: Image.Image,
    background: str | None,
    overlays: Mapping[str, ResolvedOverlay] | None,
    renderer: TextOverlayRenderer | None,
    *,
    draw_order: DrawOrder = DrawOrder.ABOVE,
    diagnostics: list[OverlayDiagnostic] | None = None,
) -> CompositeCanvas:
    result = compose(product, frame, background, draw_order=draw_order)
    if renderer is not None and overlays:
        result.image = renderer.draw_overlays(result.image, overlays, diagnostics)
    return result
