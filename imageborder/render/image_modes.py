from __future__ import annotations

from PIL import Image, ImageOps

from imageborder.colors import Color, parse_color


def resize_to_fit(image: Image.Image, max_width: int, max_height: int) -> Image.Image:
    """Scale down, keeping aspect ratio, until the image fits max_width x max_height.

    Images that already fit are returned as a copy at their original size.
    """
    if max_width <= 0 or max_height <= 0:
        raise ValueError(f"target size must be positive, got {max_width}x{max_height}")
    width, height = image.size
    if width <= max_width and height <= max_height:
        return image.copy()
    src_aspect = width / float(height)
    dst_aspect = max_width / float(max_height)
    if src_aspect > dst_aspect:
        new_size = (max_width, max(1, int(height * max_width / float(width) + 0.5)))
    else:
        new_size = (max(1, int(width * max_height / float(height) + 0.5)), max_height)
    return image.resize(new_size, Image.Resampling.LANCZOS)


def resize_to_fill(image: Image.Image, width: int, height: int) -> Image.Image:
    """Scale and center-crop so the result covers exactly width x height."""
    if width <= 0 or height <= 0:
        raise ValueError(f"target size must be positive, got {width}x{height}")
    return ImageOps.fit(image, (width, height), method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))


def blank_canvas(width: int, height: int, color: str | Color | None = None) -> Image.Image:
    if color is None:
        fill: Color = (0, 0, 0, 0)
    elif isinstance(color, tuple):
        fill = color
    else:
        fill = parse_color(color)
    return Image.new("RGBA", (width, height), color=fill)
