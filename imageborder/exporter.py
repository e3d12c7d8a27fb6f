from __future__ import annotations

import logging
from pathlib import Path

from PIL import Image

from imageborder.constants import (
    DEFAULT_OUTPUT_FORMAT,
    DEFAULT_QUALITY,
    LOSSY_FORMATS,
    OUTPUT_FORMATS,
    STANDARD_EXTENSIONS,
)
from imageborder.errors import UnsupportedFormatError

LOGGER = logging.getLogger(__name__)


def resolve_output_format(fmt: str | None) -> tuple[str, str]:
    """Map a requested format to (file extension, Pillow format).

    An empty format means png.
    """
    f = (fmt or "").strip().lower() or DEFAULT_OUTPUT_FORMAT
    resolved = OUTPUT_FORMATS.get(f)
    if resolved is None:
        raise UnsupportedFormatError(f"unsupported format: {fmt}", details={"format": fmt})
    return resolved


def normalize_quality(quality: int | None) -> int:
    try:
        value = int(quality) if quality is not None else DEFAULT_QUALITY
    except (TypeError, ValueError):
        return DEFAULT_QUALITY
    if value < 0 or value > 100:
        return DEFAULT_QUALITY
    return value


def save_image(image: Image.Image, path: Path | str, fmt: str | None, quality: int | None = None) -> Path:
    """Encode image to path, creating parent directories as needed.

    A known image extension on path is replaced by the one matching fmt,
    otherwise the extension is appended. Returns the path actually written.
    """
    out_ext, pil_format = resolve_output_format(fmt)
    target = Path(path)
    if target.suffix.lower() in STANDARD_EXTENSIONS:
        target = target.with_suffix(f".{out_ext}")
    else:
        target = target.with_name(f"{target.name}.{out_ext}")
    target.parent.mkdir(parents=True, exist_ok=True)
    if pil_format in LOSSY_FORMATS:
        q = max(1, normalize_quality(quality))
        if pil_format == "JPEG":
            image.convert("RGB").save(target, format="JPEG", quality=q, optimize=True, progressive=True)
        else:
            image.save(target, format="WEBP", quality=q)
    else:
        image.save(target, format="PNG", optimize=True)
    LOGGER.debug("saved %s (%s)", target.name, pil_format)
    return target
