"""Classification and string helpers for image references."""

import codecs
import re
from enum import Enum
from urllib.parse import quote, urlsplit


class Kind(str, Enum):
    """Mutually exclusive categories of an image reference."""

    HTTP = "http"
    PROTOCOL_RELATIVE = "protocol-relative"
    FILE_URL = "file-url"
    SPECIAL_SCHEME = "special-scheme"
    LOCAL_PATH = "local-path"


OUTPUT_URL_MODES = ("absolute", "protocol-relative", "path-only")

_HTTP_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
_PROTOCOL_RELATIVE_PATTERN = re.compile(r"^//")
_FILE_URL_PATTERN = re.compile(r"^file://", re.IGNORECASE)
_URL_SCHEME_PATTERN = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
_ABSOLUTE_URL_PATTERN = re.compile(r"^(?:[a-z][a-z0-9+.-]*:)?//", re.IGNORECASE)
# Opaque references: inline data, object URLs and editor webview resources
_SPECIAL_SCHEME_PATTERN = re.compile(
    r"^(data|blob|vscode-resource|vscode-webview-resource|vscode-file):",
    re.IGNORECASE,
)
_HTML_FILE_PATTERN = re.compile(r"\.(html|htm|xhtml)$", re.IGNORECASE)
_QUERY_HASH_PATTERN = re.compile(r"[?#]")
_PERCENT_ESCAPE = re.compile(r"%[0-9A-Fa-f]{2}")
_PERCENT_RUN = re.compile(r"(?:%[0-9A-Fa-f]{2})+")
_ENCODED_SEPARATOR = re.compile(r"%2f|%5c", re.IGNORECASE)

# Characters decodeURI leaves percent-encoded
_URI_RESERVED = set(";/?:@&=+$,#")


def _text(value) -> str:
    return value if isinstance(value, str) else ""


def is_http_url(value) -> bool:
    return bool(_HTTP_PATTERN.match(_text(value)))


def is_protocol_relative_url(value) -> bool:
    return bool(_PROTOCOL_RELATIVE_PATTERN.match(_text(value)))


def is_file_url(value) -> bool:
    return bool(_FILE_URL_PATTERN.match(_text(value)))


def has_url_scheme(value) -> bool:
    return bool(_URL_SCHEME_PATTERN.match(_text(value)))


def has_special_scheme(value) -> bool:
    return bool(_SPECIAL_SCHEME_PATTERN.match(_text(value)))


def is_absolute_url(value) -> bool:
    """True for ``scheme://...`` and ``//...`` references."""
    return bool(_ABSOLUTE_URL_PATTERN.match(_text(value)))


def is_html_file(value) -> bool:
    return bool(_HTML_FILE_PATTERN.search(_text(value)))


def classify(ref: str) -> Kind:
    """Categorize a raw image reference.

    Total over all strings: anything that is not an http(s) URL, a
    protocol-relative URL, a file URL or one of the opaque special schemes
    is a local path, whether relative (``./x``, ``x``) or absolute
    (``/x``, ``C:/x``).
    """
    text = _text(ref)
    if is_http_url(text):
        return Kind.HTTP
    if is_protocol_relative_url(text):
        return Kind.PROTOCOL_RELATIVE
    if is_file_url(text):
        return Kind.FILE_URL
    if has_special_scheme(text):
        return Kind.SPECIAL_SCHEME
    return Kind.LOCAL_PATH


def to_absolute_remote(value: str) -> str:
    """Turn ``//host/x`` into a fetchable ``https://host/x``."""
    return f"https:{value}" if is_protocol_relative_url(value) else value


def strip_query_hash(value) -> str:
    """Return everything before the first ``?`` or ``#``."""
    text = _text(value)
    if not text:
        return ""
    return _QUERY_HASH_PATTERN.split(text, maxsplit=1)[0]


def split_query_hash(value) -> tuple[str, str]:
    """Split a reference into ``(base, suffix)`` where suffix is query+hash."""
    text = _text(value)
    base = strip_query_hash(text)
    return base, text[len(base) :]


def _decode_escape_run(run: str) -> str:
    decoder = codecs.getincrementaldecoder("utf-8")()
    out = []
    pending = []
    for escape in _PERCENT_ESCAPE.findall(run):
        pending.append(escape)
        char = decoder.decode(bytes([int(escape[1:], 16)]))
        if char:
            out.append("".join(pending) if char in _URI_RESERVED else char)
            pending = []
    # Raises UnicodeDecodeError on a truncated sequence
    decoder.decode(b"", final=True)
    return "".join(out)


def safe_decode_uri(value) -> str:
    """Percent-decode a reference the way ``decodeURI`` does.

    Reserved characters stay encoded, references containing an encoded path
    separator (``%2F``/``%5C``) are returned untouched, and malformed
    sequences leave the whole input unchanged.
    """
    text = _text(value)
    if not text:
        return ""
    if not _PERCENT_ESCAPE.search(text):
        return text
    if _ENCODED_SEPARATOR.search(text):
        return text
    try:
        return _PERCENT_RUN.sub(lambda m: _decode_escape_run(m.group(0)), text)
    except UnicodeDecodeError:
        return text


def ensure_trailing_slash(value) -> str:
    text = _text(value)
    if not text:
        return text
    return text if text.endswith("/") else text + "/"


def join_url(base, path) -> str:
    """Join ``base`` and ``path`` regardless of slashes at the seam."""
    base_text = _text(base)
    path_text = _text(path)
    if not base_text:
        return path_text
    base_with_slash = ensure_trailing_slash(base_text)
    if not path_text:
        return base_with_slash
    return base_with_slash + path_text.lstrip("/")


def _directory_of(path_text: str) -> str:
    trimmed = (path_text or "/").rstrip("/")
    last = trimmed.split("/")[-1]
    if is_html_file(last):
        index = trimmed.rfind("/")
        return trimmed[: index + 1] if index >= 0 else "/"
    return trimmed + "/" if trimmed else "/"


def get_url_path(value) -> str:
    """Return the directory path of a page URL, always ending in ``/``.

    ``https://example.com/post/index.html`` gives ``/post/`` and
    ``https://example.com/post`` gives ``/post/``. Strings that are not
    absolute URLs are treated as a bare path.
    """
    text = _text(value)
    if not text:
        return ""
    clean = strip_query_hash(text)
    if has_url_scheme(clean):
        try:
            parts = urlsplit(clean)
        except ValueError:
            return _directory_of(clean)
        if parts.netloc:
            return _directory_of(parts.path)
    return _directory_of(clean)


def apply_output_url_mode(value, mode: str) -> str:
    """Shape an http(s) or protocol-relative output URL.

    ``absolute`` returns the value unchanged, ``protocol-relative`` drops
    the scheme and ``path-only`` keeps only path, query and fragment.
    Anything else passes through.
    """
    text = _text(value)
    if not text or not mode or mode == "absolute":
        return text
    if mode == "protocol-relative":
        return _HTTP_PATTERN.sub("//", text, count=1)
    if mode == "path-only" and (is_protocol_relative_url(text) or is_http_url(text)):
        try:
            parts = urlsplit(to_absolute_remote(text))
        except ValueError:
            return text
        if not parts.netloc:
            return text
        # Re-encode like a browser URL pathname; existing escapes stay as they are
        result = quote(parts.path, safe="/%:@!$&'()*+,;=") or "/"
        if parts.query:
            result += f"?{parts.query}"
        if parts.fragment:
            result += f"#{parts.fragment}"
        return result
    return text
