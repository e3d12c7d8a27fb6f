from __future__ import annotations

import copy
import os
import platform
import sys
from pathlib import Path
from typing import Any

import yaml

from imageborder.constants import (
    COLLISION_RETRY_LIMIT,
    DEFAULT_OUTPUT_FORMAT,
    DEFAULT_QUALITY,
    MAX_BATCH_SIZE,
    MAX_IMAGE_HEIGHT,
    MAX_IMAGE_WIDTH,
    OUTPUT_SUFFIX,
    RENDER_DEFAULT_FONT_SIZE,
)

APP_DIR_NAME = "ImageBorder"

DEFAULT_CONFIG: dict[str, Any] = {
    "output_format": DEFAULT_OUTPUT_FORMAT,
    "quality": DEFAULT_QUALITY,
    "output_suffix": OUTPUT_SUFFIX,
    "max_batch_size": MAX_BATCH_SIZE,
    "max_image_width": MAX_IMAGE_WIDTH,
    "max_image_height": MAX_IMAGE_HEIGHT,
    "collision_retry_limit": COLLISION_RETRY_LIMIT,
    "font_path": None,
    "default_font_size": RENDER_DEFAULT_FONT_SIZE,
    "draw_order": "above",
    "log_level": "info",
}


def get_app_dir() -> Path:
    """Return the application root directory.

    - Frozen (PyInstaller): directory containing the executable.
    - Development: project root (two levels up from this file).
    """
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    # imageborder/config.py → imageborder/ → project_root/
    return Path(__file__).resolve().parent.parent


def is_source_checkout() -> bool:
    """源码目录运行（非打包、非 pip 安装）时配置放在项目根目录。"""
    if getattr(sys, "frozen", False):
        return False
    return (get_app_dir() / "pyproject.toml").is_file()


def get_user_data_dir() -> Path:
    """返回用户可写的数据目录，打包或安装后避免写入 app bundle 和 site-packages。"""
    if is_source_checkout():
        return get_app_dir()

    system_name = platform.system().lower()
    if system_name == "windows":
        base = (
            os.environ.get("APPDATA")
            or os.environ.get("LOCALAPPDATA")
            or str(Path.home() / "AppData" / "Roaming")
        )
        return Path(base) / APP_DIR_NAME
    if system_name == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_DIR_NAME

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        return Path(xdg_config_home) / APP_DIR_NAME
    return Path.home() / ".config" / APP_DIR_NAME


def get_config_path() -> Path:
    return get_user_data_dir() / "Config" / "config.yaml"


def _deep_merge(base: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | None = None) -> dict[str, Any]:
    cfg_path = path or get_config_path()
    if not cfg_path.exists():
        return copy.deepcopy(DEFAULT_CONFIG)

    text = cfg_path.read_text(encoding="utf-8")
    loaded = yaml.safe_load(text) or {}
    if not isinstance(loaded, dict):
        loaded = {}
    return _deep_merge(DEFAULT_CONFIG, loaded)


def write_default_config(path: Path | None = None, force: bool = False) -> Path:
    cfg_path = path or get_config_path()
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    if cfg_path.exists() and not force:
        return cfg_path
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg_path.write_text(yaml.safe_dump(cfg, sort_keys=False, allow_unicode=True), encoding="utf-8")
    return cfg_path


def config_int(cfg: dict[str, Any], key: str, minimum: int = 1) -> int:
    try:
        value = int(cfg.get(key))
    except (TypeError, ValueError):
        value = int(DEFAULT_CONFIG[key])
    return max(minimum, value)
