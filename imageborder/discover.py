from __future__ import annotations

from pathlib import Path
from typing import Iterable

from imageborder.constants import HEIF_EXTENSIONS, STANDARD_EXTENSIONS
from imageborder.decoders.image_decoder import heif_available


def default_extensions() -> set[str]:
    exts = set(STANDARD_EXTENSIONS)
    if heif_available():
        exts |= HEIF_EXTENSIONS
    return exts


def _normalize_extensions(extensions: Iterable[str] | None) -> set[str]:
    if not extensions:
        return default_extensions()
    normalized: set[str] = set()
    for ext in extensions:
        if not ext:
            continue
        ext = ext.lower()
        normalized.add(ext if ext.startswith(".") else f".{ext}")
    return normalized


def discover_inputs(
    input_path: Path,
    recursive: bool = False,
    extensions: Iterable[str] | None = None,
) -> list[Path]:
    exts = _normalize_extensions(extensions)
    if input_path.is_file():
        return [input_path] if input_path.suffix.lower() in exts else []
    if not input_path.exists():
        return []
    if recursive:
        files = [p for p in input_path.rglob("*") if p.is_file() and p.suffix.lower() in exts]
    else:
        files = [p for p in input_path.iterdir() if p.is_file() and p.suffix.lower() in exts]
    return sorted(files)


def expand_inputs(paths: Iterable[Path], recursive: bool = False) -> list[Path]:
    """Expand files and directories, in argument order, into a flat file list."""
    result: list[Path] = []
    for path in paths:
        result.extend(discover_inputs(path, recursive=recursive))
    return result
