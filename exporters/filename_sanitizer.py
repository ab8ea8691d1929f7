"""Filesystem-safe path segments from untrusted page and attachment titles."""

import re

DEFAULT_NAME = 'untitled'
MAX_NAME_BYTES = 255

ILLEGAL_CHARS = re.compile(r'[/?<>\\:*|"]')
CONTROL_CHARS = re.compile(r'[\x00-\x1f\x80-\x9f]')
SURROGATES = re.compile(r'[\ud800-\udfff]')
RELATIVE_NAMES = re.compile(r'^\.+$')
WINDOWS_RESERVED = re.compile(r'^(con|prn|aux|nul|com[0-9]|lpt[0-9])(\..*)?$', re.IGNORECASE)
TRAILING_DOTS_SPACES = re.compile(r'[. ]+$')


def _sanitize_once(name: str) -> str:
    name = ILLEGAL_CHARS.sub('', name)
    name = CONTROL_CHARS.sub('', name)
    name = SURROGATES.sub('', name)
    name = RELATIVE_NAMES.sub('', name)
    name = WINDOWS_RESERVED.sub('', name)
    name = TRAILING_DOTS_SPACES.sub('', name)
    return truncate_utf8(name, MAX_NAME_BYTES)


def truncate_utf8(name: str, max_bytes: int) -> str:
    encoded = name.encode('utf-8')
    if len(encoded) <= max_bytes:
        return name
    return encoded[:max_bytes].decode('utf-8', errors='ignore')


def sanitize_filename(title: str) -> str:
    """
    Convert an arbitrary title into a single filesystem-safe path segment.

    Removes path separators, characters illegal on common filesystems,
    control characters, lone surrogates, ``.``/``..`` and Windows reserved device names, strips
    trailing dots and spaces, and limits the result to 255 UTF-8 bytes.
    Titles that sanitize to nothing become ``untitled``.

    The result is a fixed point: ``sanitize_filename(sanitize_filename(x))``
    equals ``sanitize_filename(x)`` for every input.

    Args:
        title: Page or attachment title

    Returns:
        Sanitized path segment
    """
    if not title:
        return DEFAULT_NAME

    sanitized = str(title)
    # Each pass only removes characters, so this terminates
    while True:
        cleaned = _sanitize_once(sanitized)
        if cleaned == sanitized:
            break
        sanitized = cleaned

    return sanitized or DEFAULT_NAME


__all__ = ['sanitize_filename', 'truncate_utf8', 'DEFAULT_NAME', 'MAX_NAME_BYTES']
