"""
Name sanitization and materialized path helpers
"""
import re
from typing import Optional

from ..core.errors import InvalidNameError

MAX_NAME_LENGTH = 255

_FORBIDDEN_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')
_WHITESPACE = re.compile(r"\s+")

# Windows device names; rejected so exported archives stay portable
RESERVED_NAMES = frozenset(
    ["CON", "PRN", "AUX", "NUL"]
    + [f"COM{i}" for i in range(1, 10)]
    + [f"LPT{i}" for i in range(1, 10)]
)


def sanitize_name(name: str) -> str:
    """Strip characters that cannot appear in a folder/file name and collapse whitespace"""
    if not isinstance(name, str):
        return ""
    cleaned = _FORBIDDEN_CHARS.sub("", name)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    return cleaned[:MAX_NAME_LENGTH]


def validate_name(name: str) -> str:
    """
    Sanitize and validate a single path component.

    Returns:
        The sanitized name

    Raises:
        InvalidNameError: if nothing usable remains or the name is reserved
    """
    cleaned = sanitize_name(name)
    if not cleaned:
        raise InvalidNameError(name, "name cannot be empty")
    if cleaned.strip(".") == "":
        raise InvalidNameError(name, "name cannot be a relative path reference")
    if cleaned.upper() in RESERVED_NAMES:
        raise InvalidNameError(name, "name is a reserved system name")
    return cleaned


def join_path(parent_path: Optional[str], name: str) -> str:
    """Materialized path of ``name`` under ``parent_path`` (None = drive root)"""
    if not parent_path:
        return f"/{name}"
    return f"{parent_path.rstrip('/')}/{name}"


def file_type_for(name: str) -> str:
    """Upper-case extension used as a coarse file type ("PDF", "PNG", ...)"""
    stem, dot, extension = name.rpartition(".")
    if not dot or not stem or not extension:
        return "FILE"
    return extension.upper()[:32]


def copy_name_for(name: str, keep_extension: bool = False) -> str:
    """Default name of a copy: "Notes (Copy)", or "notes (Copy).pdf" for files"""
    if keep_extension:
        stem, dot, extension = name.rpartition(".")
        if dot and stem and extension:
            return f"{stem} (Copy).{extension}"
    return f"{name} (Copy)"
