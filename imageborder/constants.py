STANDARD_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}
HEIF_EXTENSIONS = {".heic", ".heif", ".hif"}

# 输出格式 -> (扩展名, Pillow 编码器)
OUTPUT_FORMATS = {
    "png": ("png", "PNG"),
    "jpg": ("jpg", "JPEG"),
    "jpeg": ("jpeg", "JPEG"),
    "webp": ("webp", "WEBP"),
}
LOSSY_FORMATS = {"JPEG", "WEBP"}
DEFAULT_OUTPUT_FORMAT = "png"
DEFAULT_QUALITY = 90

MAX_IMAGE_WIDTH = 8192
MAX_IMAGE_HEIGHT = 8192
MAX_BATCH_SIZE = 1000
COLLISION_RETRY_LIMIT = 1000
OUTPUT_SUFFIX = "_framed"

TEMPLATE_BACKGROUND_KEY = "background"
TEMPLATE_DEFAULT_FONT_SIZE = 24
RENDER_DEFAULT_FONT_SIZE = 40
DEFAULT_FONT_NAME = "default"

ERROR_MESSAGE_LIMIT = 200

NAMED_COLORS: dict[str, tuple[int, int, int, int]] = {
    "white": (255, 255, 255, 255),
    "black": (0, 0, 0, 255),
    "red": (255, 0, 0, 255),
    "green": (0, 255, 0, 255),
    "blue": (0, 0, 255, 255),
    "yellow": (255, 255, 0, 255),
    "cyan": (0, 255, 255, 255),
    "magenta": (255, 0, 255, 255),
    "gray": (128, 128, 128, 255),
    "grey": (128, 128, 128, 255),
}
