"""This modules contains common utils"""

# pylint: disable=broad-exception-caught

import os
import re
from typing import Optional

from fake_useragent import UserAgent

UNKNOWN_FILE_TYPE = "unknown"

# Debug flag controlled by env var PICMIRROR_DEBUG
DEBUG = os.environ.get("PICMIRROR_DEBUG", "").lower() in {"1", "true", "yes", "on"}


def dbg(msg: str) -> None:
    """
    Print a debug message when the DEBUG flag is enabled.

    Args:
        msg (str): Message to print when debug logging is active.
    """
    if DEBUG:
        print(f"[debug] {msg}")


def env_int(name: str, default: int) -> int:
    """Read a positive integer tunable from the environment."""
    try:
        value = int(os.environ.get(name, "") or default)
    except ValueError:
        return default
    return value if value > 0 else default


def get_random_user_agent() -> str:
    """
    Return a random user agent string; fallback to a generic UA if generator fails.
    """
    try:
        return UserAgent().random
    except Exception:
        return "Mozilla/5.0"


def derive_file_type(filename: str) -> str:
    """
    Return the lower-cased final dot-delimited segment of a filename.

    Names without an extension (no dot, or a trailing dot) map to "unknown".

    Args:
        filename (str): Filename as reported by the image host.

    Returns:
        str: The file type, never empty.
    """
    base = os.path.basename(filename or "")
    if "." not in base:
        return UNKNOWN_FILE_TYPE
    ext = base.rsplit(".", 1)[1].strip().lower()
    return ext or UNKNOWN_FILE_TYPE


def sanitize(name: Optional[str]) -> str:
    """
    Sanitize a string to be safe for file names by replacing invalid
    characters with underscores. If input is None or empty, returns "picture".

    Args:
        name (Optional[str]): The input string to sanitize.

    Returns:
        str: A sanitized string safe to use as filename.
    """
    return re.sub(r'[\\/*?:"<>|]', "_", name) if name else "picture"


def format_size(num_bytes: int) -> str:
    """Return human readable size string."""
    units = ["B", "KB", "MB", "GB", "TB"]
    size = float(num_bytes)
    for unit in units:
        if size < 1024 or unit == units[-1]:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"
