"""
Filename sanitization for blob keys.
"""
import re

from filevault.exceptions import InvalidFilename

# control characters, whitespace and characters unsafe in file systems or URLs
_UNSAFE_RUN = re.compile(r'[\x00-\x1f\x7f\s"<>|:*?\\/#%&{}$!]+')
_DOTTED_SEPARATORS = re.compile(r'[_.]*\.[_.]*')
_UNDERSCORES = re.compile(r'_{2,}')
_SEPARATORS = "_."


def sanitize_filename(filename: str) -> str:
    """
    Turn an uploaded filename into a blob key.

    Transformations applied in order:
    1. Replace each run of unsafe characters with a single underscore
    2. Collapse a run of separators that contains a dot to a single dot
    3. Collapse repeated underscores
    4. Trim leading and trailing separators

    Example: "my file!.txt" -> "my_file.txt"

    The result is a fixed point: sanitizing it again returns it unchanged.
    May return an empty string; see ``require_sanitized_filename``.
    """
    name = _UNSAFE_RUN.sub("_", filename or "")
    name = _DOTTED_SEPARATORS.sub(".", name)
    name = _UNDERSCORES.sub("_", name)
    return name.strip(_SEPARATORS)


def require_sanitized_filename(filename: str) -> str:
    sanitized = sanitize_filename(filename)
    if not sanitized:
        raise InvalidFilename("Invalid filename")
    return sanitized
