from __future__ import annotations

import io
import logging
import os
import platform
import threading
from functools import lru_cache
from pathlib import Path

from PIL import ImageFont

from imageborder.constants import DEFAULT_FONT_NAME

LOGGER = logging.getLogger(__name__)

_FONT_FILE_SUFFIXES = {".ttf", ".ttc", ".otf", ".otc"}

FontFace = ImageFont.FreeTypeFont | ImageFont.ImageFont


def _system_font_candidates() -> list[Path]:
    system = platform.system().lower()
    if "windows" in system:
        return [
            Path(r"C:\Windows\Fonts\arial.ttf"),
            Path(r"C:\Windows\Fonts\segoeui.ttf"),
            Path(r"C:\Windows\Fonts\tahoma.ttf"),
        ]
    if "darwin" in system:
        return [
            Path("/System/Library/Fonts/Helvetica.ttc"),
            Path("/Library/Fonts/Arial Unicode.ttf"),
            Path("/Library/Fonts/Arial.ttf"),
        ]
    return [
        Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
        Path("/usr/share/fonts/TTF/DejaVuSans.ttf"),
        Path("/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf"),
        Path("/usr/share/fonts/opentype/noto/NotoSans-Regular.ttf"),
    ]


def _system_font_directories() -> list[Path]:
    system = platform.system().lower()
    roots: list[Path] = []
    if "windows" in system:
        windows_dir = Path(os.environ.get("WINDIR", r"C:\Windows"))
        roots.append(windows_dir / "Fonts")
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            roots.append(Path(local_app_data) / "Microsoft" / "Windows" / "Fonts")
    elif "darwin" in system:
        roots.extend(
            [
                Path("/System/Library/Fonts"),
                Path("/Library/Fonts"),
                Path.home() / "Library" / "Fonts",
            ]
        )
    else:
        roots.extend(
            [
                Path("/usr/share/fonts"),
                Path("/usr/local/share/fonts"),
                Path.home() / ".fonts",
                Path.home() / ".local" / "share" / "fonts",
            ]
        )
    return roots


@lru_cache(maxsize=1)
def list_available_font_paths() -> list[Path]:
    available: list[Path] = []
    seen: set[str] = set()
    for root in _system_font_directories():
        if not root.is_dir():
            continue
        for dir_path, _dir_names, file_names in os.walk(root, onerror=lambda _err: None):
            for file_name in file_names:
                if Path(file_name).suffix.lower() not in _FONT_FILE_SUFFIXES:
                    continue
                candidate = Path(dir_path) / file_name
                key = str(candidate).lower()
                if key in seen:
                    continue
                seen.add(key)
                available.append(candidate)
    available.sort(key=lambda path: (path.stem.lower(), str(path).lower()))
    return available


def find_font_file(name: str, font_path: Path | None = None) -> Path | None:
    """Resolve a font name to a font file.

    The default name resolves to font_path, then to the first existing
    system candidate. Any other name is either a path or a font file stem
    searched in the system font directories.
    """
    if name == DEFAULT_FONT_NAME:
        candidates: list[Path] = []
        if font_path:
            candidates.append(font_path)
        candidates.extend(_system_font_candidates())
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        return None
    direct = Path(name)
    if direct.suffix.lower() in _FONT_FILE_SUFFIXES and direct.is_file():
        return direct
    lowered = name.lower()
    for candidate in list_available_font_paths():
        if candidate.stem.lower() == lowered:
            return candidate
    return None


class FontManager:
    """Process-wide font cache.

    Font files are read at most once per name; faces are built once per
    (name, size). Lookups are lock-free on a hit and double-checked under
    the lock on a miss.
    """

    def __init__(self, font_path: Path | None = None) -> None:
        self.font_path = font_path
        self._data: dict[str, bytes | None] = {}
        self._faces: dict[tuple[str, int], FontFace] = {}
        self._lock = threading.Lock()

    def _read_font_bytes(self, name: str) -> bytes | None:
        path = find_font_file(name, self.font_path)
        if path is None:
            if name != DEFAULT_FONT_NAME:
                raise FileNotFoundError(f"font not found: {name}")
            LOGGER.debug("no TrueType font found, using Pillow built-in font")
            return None
        LOGGER.debug("loading font %s from %s", name, path)
        return path.read_bytes()

    def load_font_data(self, name: str) -> bytes | None:
        if name in self._data:
            return self._data[name]
        with self._lock:
            if name in self._data:
                return self._data[name]
            data = self._read_font_bytes(name)
            self._data[name] = data
            return data

    def get_face(self, name: str, size: int) -> FontFace:
        key = (name, int(size))
        face = self._faces.get(key)
        if face is not None:
            return face
        data = self.load_font_data(name)
        with self._lock:
            face = self._faces.get(key)
            if face is not None:
                return face
            if data is None:
                face = ImageFont.load_default(size=key[1])
            else:
                face = ImageFont.truetype(io.BytesIO(data), size=key[1])
            self._faces[key] = face
            return face

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self._faces.clear()

