from __future__ import annotations

import re
from typing import Any

from imageborder.constants import ERROR_MESSAGE_LIMIT

# 路径前缀：盘符或首段，直到最后一个分隔符，目录名可含空格
_PATH_PREFIX = re.compile(r"[^\s'\"\\/]*[\\/](?:[^\\/'\"\n]*[\\/])*")


class ImageBorderError(Exception):
    """Base exception for all imageborder failures."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": sanitize_error_message(self.message),
            "details": self.details,
        }


class DecodeError(ImageBorderError):
    """Raised when an image file cannot be read or decoded."""


class OversizeError(DecodeError):
    """Raised when an image exceeds the configured maximum dimensions."""


class UnsupportedFormatError(ImageBorderError):
    """Raised when an output format is not one of png/jpg/jpeg/webp."""


class InvalidPositionError(ImageBorderError, ValueError):
    """Raised when a position token is not of the form "x,y"."""


class ParseError(ImageBorderError):
    """Raised when a template file cannot be read or is not a JSON object."""


class ValidationError(ImageBorderError):
    """Raised when a batch request is malformed."""


class DuplicatePathError(ValidationError):
    pass


class AlreadyProcessingError(ImageBorderError):
    pass


class OutputCollisionExhausted(ImageBorderError):
    """Raised when no free output name is found within the retry ceiling."""


def sanitize_error_message(error: BaseException | str, limit: int = ERROR_MESSAGE_LIMIT) -> str:
    """Strip directory structure from an error text and cap its length."""
    if isinstance(error, ImageBorderError):
        text = error.message
    else:
        text = str(error)
    text = _PATH_PREFIX.sub("", text)
    if len(text) > limit:
        text = text[:limit] + "..."
    return text
