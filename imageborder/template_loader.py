# Template document parsing and placeholder substitution.
from __future__ import annotations

import json
import logging
import os
import re
import threading
from pathlib import Path
from typing import Any, Mapping

from imageborder.constants import TEMPLATE_BACKGROUND_KEY, TEMPLATE_DEFAULT_FONT_SIZE
from imageborder.errors import ParseError
from imageborder.models import ResolvedOverlay, TemplateDocument, TemplateField

LOGGER = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\[([^\]]+)\]")


def _parse_font_size(value: Any) -> int:
    if isinstance(value, bool):
        return TEMPLATE_DEFAULT_FONT_SIZE
    try:
        size = int(str(value).strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError, OverflowError):
        return TEMPLATE_DEFAULT_FONT_SIZE
    return size if size > 0 else TEMPLATE_DEFAULT_FONT_SIZE


def _parse_field(value: Any) -> TemplateField | None:
    if not isinstance(value, dict):
        return None
    text = value.get("text")
    if not isinstance(text, str):
        return None
    position = value.get("position")
    color = value.get("color")
    return TemplateField(
        text=text,
        position=position if isinstance(position, str) else "",
        font_size=_parse_font_size(value.get("fontsize", value.get("font_size"))),
        color=color if isinstance(color, str) else "",
    )


def parse_template_dict(raw: dict[str, Any]) -> TemplateDocument:
    """Split a template object into background metadata and text fields.

    Keys whose value is not an object with a string ``text`` member are
    treated as metadata and skipped.
    """
    background = raw.get(TEMPLATE_BACKGROUND_KEY)
    doc = TemplateDocument(background=background.strip() or None if isinstance(background, str) else None)
    for key, value in raw.items():
        if key == TEMPLATE_BACKGROUND_KEY:
            continue
        parsed = _parse_field(value)
        if parsed is None:
            LOGGER.debug("template key %r is not a text field, skipped", key)
            continue
        doc.fields[key] = parsed
    return doc


def parse_template(path: Path | str) -> TemplateDocument:
    path = Path(os.path.normpath(str(path)))
    try:
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(f"failed to read template: {path}", details={"file": path.name}) from exc
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"invalid JSON in template {path.name}: {exc.msg}", details={"line": exc.lineno}) from exc
    if not isinstance(raw, dict):
        raise ParseError(f"template is not a JSON object: {path.name}")
    return parse_template_dict(raw)


def extract_field_names(doc: TemplateDocument) -> set[str]:
    names: set[str] = set()
    for template_field in doc.fields.values():
        names.update(PLACEHOLDER_PATTERN.findall(template_field.text))
    return names


def substitute_placeholders(text: str, values: Mapping[str, str]) -> str:
    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in values:
            return str(values[name])
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_replace, text)


def apply_values(doc: TemplateDocument, values: Mapping[str, str]) -> dict[str, ResolvedOverlay]:
    """Substitute values into every field, dropping fields left partially filled."""
    resolved: dict[str, ResolvedOverlay] = {}
    for name, template_field in doc.fields.items():
        text = substitute_placeholders(template_field.text, values)
        if PLACEHOLDER_PATTERN.search(text):
            LOGGER.debug("field %s has unfilled placeholders, dropped", name)
            continue
        resolved[name] = template_field.with_text(text)
    return resolved


class TemplateService:
    """Parsed-template cache keyed by normalized absolute path."""

    def __init__(self) -> None:
        self._cache: dict[str, TemplateDocument] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _key(path: Path | str) -> str:
        return os.path.abspath(os.path.normpath(str(path)))

    def load(self, path: Path | str) -> TemplateDocument:
        key = self._key(path)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
            doc = parse_template(key)
            self._cache[key] = doc
            return doc

    def fields(self, path: Path | str) -> list[str]:
        return sorted(extract_field_names(self.load(path)))

    def overlays(self, path: Path | str, values: Mapping[str, str]) -> dict[str, ResolvedOverlay]:
        return apply_values(self.load(path), values)

    def background(self, path: Path | str) -> str | None:
        return self.load(path).background

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
