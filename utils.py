"""Utility helpers shared across server modules."""

import mimetypes
from pathlib import Path
from urllib.parse import unquote

from config import ASSETS_DIR, ASSETS_PREFIX


def get_content_type(file_path: Path) -> str:
    content_type, _encoding = mimetypes.guess_type(file_path.name)
    return content_type or "application/octet-stream"


def resolve_static_file(
    request_path: str,
    static_dir: str | Path = ASSETS_DIR,
    prefix: str = ASSETS_PREFIX,
) -> Path | None:
    """Resolve a safe static file path or return None for traversal attempts."""
    if not request_path.lower().startswith(prefix):
        return None

    decoded_relative_path = unquote(request_path[len(prefix) :])

    static_root = Path(static_dir).resolve()
    candidate = (static_root / decoded_relative_path).resolve()

    try:
        candidate.relative_to(static_root)
    except ValueError:
        return None

    return candidate


def _trim_number(value: float) -> str:
    rounded = round(float(value), 2)
    if rounded.is_integer():
        return str(int(rounded))
    return str(rounded)


def format_uptime(uptime_secs: float) -> str:
    if uptime_secs < 60:
        return f"{_trim_number(uptime_secs)} seconds"
    if uptime_secs < 3600:
        minutes, seconds = divmod(uptime_secs, 60)
        return f"{int(minutes)} min {round(seconds)} sec"
    if uptime_secs < 86_400:
        hours, remainder = divmod(uptime_secs, 3600)
        return f"{int(hours)} hr {int(remainder // 60)} min"
    days, remainder = divmod(uptime_secs, 86_400)
    return f"{int(days)} days {int(remainder // 3600)} hr"


def format_megabytes(byte_count: int) -> str:
    return f"{_trim_number(byte_count / 1024 / 1024)} MB"
