from __future__ import annotations

import re
from pathlib import Path

from imageborder.constants import COLLISION_RETRY_LIMIT, OUTPUT_SUFFIX
from imageborder.errors import OutputCollisionExhausted

INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1F]')


def sanitize_filename(value: str, fallback: str = "output") -> str:
    text = INVALID_FILENAME_CHARS.sub("_", value).strip()
    text = text.strip(" .")
    return text or fallback


def build_output_stem(source: Path | str, suffix: str = OUTPUT_SUFFIX) -> str:
    stem = Path(source).stem
    return sanitize_filename(f"{stem}{suffix}", fallback=f"image{suffix}")


def unique_output_path(
    output_dir: Path | str,
    stem: str,
    extension: str,
    retry_limit: int = COLLISION_RETRY_LIMIT,
) -> Path:
    """Return the first free ``stem[_N].ext`` path inside output_dir.

    ``stem.ext`` is tried first, then ``stem_1.ext``, ``stem_2.ext`` and so
    on, up to retry_limit numbered candidates.
    """
    ext = extension.lower().lstrip(".")
    out_dir = Path(output_dir)
    for counter in range(retry_limit + 1):
        name = stem if counter == 0 else f"{stem}_{counter}"
        candidate = out_dir / f"{name}.{ext}"
        if not candidate.exists():
            return candidate
    raise OutputCollisionExhausted(
        f"too many duplicate files for {stem}.{ext}",
        details={"stem": stem, "retry_limit": retry_limit},
    )
