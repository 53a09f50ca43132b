"""Path normalization for image references."""

import re

from .urls import safe_decode_uri, strip_query_hash

_SCHEME_PREFIX = re.compile(r"^([a-z][a-z0-9+.-]*://)(.*)$", re.IGNORECASE | re.DOTALL)


def normalize_path(path: str) -> str:
    """Collapse ``.``, ``..`` and empty segments.

    A ``scheme://`` prefix is kept as-is and only the remainder is
    normalized. Absolute paths keep one leading ``/`` and cannot climb above
    root; relative paths keep leading ``..`` segments.

    Examples:
        >>> normalize_path("./a/../b//c.png")
        'b/c.png'
        >>> normalize_path("../../x.png")
        '../../x.png'
        >>> normalize_path("/../x.png")
        '/x.png'
        >>> normalize_path("https://example.com/a/./b/../c.png")
        'https://example.com/a/c.png'
    """
    if not path:
        return path

    scheme_match = _SCHEME_PREFIX.match(path)
    if scheme_match:
        return scheme_match.group(1) + normalize_path(scheme_match.group(2))

    is_absolute = path.startswith("/")
    normalized: list[str] = []

    for segment in path.split("/"):
        if segment == ".":
            continue
        if segment == "":
            # The leading empty segment of an absolute path carries the root slash
            if is_absolute and not normalized:
                normalized.append(segment)
            continue
        if segment == "..":
            if normalized and normalized[-1] not in ("..", ""):
                normalized.pop()
            elif not is_absolute:
                normalized.append(segment)
            continue
        normalized.append(segment)

    if normalized == [""]:
        return "/"
    return "/".join(normalized)


def _last_separator(text: str) -> int:
    return max(text.rfind("/"), text.rfind("\\"))


def get_basename(value: str) -> str:
    """Return the decoded file name of a reference, query and hash removed."""
    clean = strip_query_hash(safe_decode_uri(value))
    return clean[_last_separator(clean) + 1 :]


def get_image_name(value: str) -> str:
    """Return the basename without its extension (``a/cat@2x.png`` -> ``cat@2x``)."""
    clean = strip_query_hash(safe_decode_uri(value))
    slash = _last_separator(clean)
    dot = clean.rfind(".")
    if dot > slash:
        return clean[slash + 1 : dot]
    return clean[slash + 1 :]
