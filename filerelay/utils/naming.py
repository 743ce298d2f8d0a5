import re
from typing import Tuple

UPLOAD_PREFIX = "uploads"  # folder for new uploads

_UNSAFE = re.compile(r"[^A-Za-z0-9_\-]")


def sanitize(base: str) -> str:
    """Replace every character outside [A-Za-z0-9_-] with an underscore."""
    return _UNSAFE.sub("_", base)


def basename(name: str) -> str:
    return name.rsplit("/", 1)[-1]


def split_name(name: str) -> Tuple[str, str]:
    """
    Split a filename into (base, ext), ext including the dot.

    Examples:
        "My Report.pdf"   -> ("My Report", ".pdf")
        "archive.tar.gz"  -> ("archive.tar", ".gz")
        ".env"            -> (".env", "")
    """
    name = basename(name)
    dot = name.rfind(".")
    if dot <= 0:
        return name, ""
    return name[:dot], name[dot:]


def encode_key(original_name: str, timestamp_ms: int, prefix: str = UPLOAD_PREFIX, counter: int = 0) -> str:
    """
    Build the storage key "{prefix}/{sanitized base}__{timestamp}{ext}".

    A positive counter is appended to the timestamp segment ("__{ts}_{n}") so
    files sharing a name inside one batch do not collide; the display name is
    unaffected because it only looks at the part before "__".
    """
    base, ext = split_name(original_name)
    stamp = f"{timestamp_ms}_{counter}" if counter > 0 else str(timestamp_ms)
    name = f"{sanitize(base)}__{stamp}{ext}"
    return f"{prefix}/{name}" if prefix else name


def display_name(stored_name: str) -> str:
    """
    Recover the human-facing filename from a stored key.

    Files stored before the "__timestamp" scheme are returned unchanged.
    """
    name = basename(stored_name)
    if "__" not in name:
        return name
    _, ext = split_name(name)
    return name.split("__", 1)[0] + ext
