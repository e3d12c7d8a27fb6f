from __future__ import annotations

import re
from typing import Any

from imageborder.constants import NAMED_COLORS
from imageborder.errors import InvalidPositionError

Color = tuple[int, int, int, int]

WHITE: Color = NAMED_COLORS["white"]

_HEX_COLOR = re.compile(r"^#([0-9a-f]{3}|[0-9a-f]{6}|[0-9a-f]{8})$")


def parse_color(token: Any) -> Color:
    """Convert a named or hex color token to an RGBA tuple.

    Recognized: the names in NAMED_COLORS (case-insensitive), ``#RGB``,
    ``#RRGGBB`` and ``#RRGGBBAA``. Anything else yields opaque white so a
    malformed template degrades instead of aborting the batch.
    """
    text = str(token or "").strip().lower()
    named = NAMED_COLORS.get(text)
    if named is not None:
        return named
    match = _HEX_COLOR.match(text)
    if not match:
        return WHITE
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    if len(digits) == 6:
        digits += "ff"
    r, g, b, a = (int(digits[i : i + 2], 16) for i in range(0, 8, 2))
    return (r, g, b, a)


def parse_position(token: Any) -> tuple[int, int]:
    text = str(token or "")
    parts = text.split(",")
    if len(parts) != 2:
        raise InvalidPositionError(f"invalid position format: {text!r}")
    try:
        x = int(parts[0].strip())
    except ValueError as exc:
        raise InvalidPositionError(f"invalid x coordinate: {parts[0].strip()!r}") from exc
    try:
        y = int(parts[1].strip())
    except ValueError as exc:
        raise InvalidPositionError(f"invalid y coordinate: {parts[1].strip()!r}") from exc
    return x, y
