from __future__ import annotations

import os
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from imageborder.constants import HEIF_EXTENSIONS, MAX_IMAGE_HEIGHT, MAX_IMAGE_WIDTH
from imageborder.errors import DecodeError, OversizeError

_HEIF_REGISTERED = False


def _register_heif_opener() -> bool:
    global _HEIF_REGISTERED
    if _HEIF_REGISTERED:
        return True
    try:
        from pillow_heif import register_heif_opener
    except ImportError:
        return False
    register_heif_opener()
    _HEIF_REGISTERED = True
    return True


def heif_available() -> bool:
    return _register_heif_opener()


def _check_dimensions(path: Path, width: int, height: int, max_width: int, max_height: int) -> None:
    if width > max_width or height > max_height:
        raise OversizeError(
            f"image exceeds maximum allowed dimensions: {width}x{height} exceeds {max_width}x{max_height}",
            details={"file": path.name, "width": width, "height": height},
        )


def decode_image(
    path: Path | str,
    *,
    max_width: int = MAX_IMAGE_WIDTH,
    max_height: int = MAX_IMAGE_HEIGHT,
) -> Image.Image:
    """Decode an image file into a detached RGBA buffer.

    The size check runs on the header before pixel data is loaded, so an
    oversized file never allocates its full buffer.
    """
    path = Path(os.path.normpath(str(path)))
    if path.suffix.lower() in HEIF_EXTENSIONS and not _register_heif_opener():
        raise DecodeError(f"pillow-heif is required to decode HEIF/HEIC/HIF: {path.name}")
    try:
        with Image.open(path) as image:
            _check_dimensions(path, image.width, image.height, max_width, max_height)
            image = ImageOps.exif_transpose(image)
            return image.convert("RGBA").copy()
    except FileNotFoundError as exc:
        raise DecodeError(f"failed to open image: {path}", details={"file": path.name}) from exc
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"failed to decode image: {path}: {exc}", details={"file": path.name}) from exc
