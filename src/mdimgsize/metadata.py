"""Document frontmatter: reading it and resolving the image-related fields."""

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass

import frontmatter
import yaml

from .urls import ensure_trailing_slash, get_url_path, is_absolute_url, join_url

_SIMPLE_FRONTMATTER_PATTERN = re.compile(r"^--- *\n(.*?)\n---", re.DOTALL)
_PERCENT_SCALE_PATTERN = re.compile(r"^([0-9]+(?:\.[0-9]+)?)\s*%$")

# Canonical key first; the lowercase key wins when both are present
FIELD_ALIASES = {
    "url": ("url",),
    "urlimage": ("urlimage", "urlImage"),
    "urlimagebase": ("urlimagebase", "urlImageBase"),
    "lid": ("lid",),
    "lmd": ("lmd",),
    "imagescale": ("imagescale", "imageScale"),
}


@dataclass(frozen=True)
class ResolvedFrontmatter:
    """Image-related frontmatter fields after normalization."""

    url: str = ""
    urlimage: str = ""
    urlimagebase: str = ""
    lid: str = ""
    image_dir: str = ""
    has_image_dir: bool = False
    lmd: str = ""
    image_scale: float | None = None


def parse_simple_frontmatter(markdown_content: str) -> dict:
    """Parse flat ``key: value`` frontmatter without a YAML library.

    Only the subset the image fields need is understood: one key per line,
    surrounding quotes stripped, ``true``/``false`` as booleans and ``#``
    comment lines skipped.
    """
    if not isinstance(markdown_content, str) or not markdown_content:
        return {}
    match = _SIMPLE_FRONTMATTER_PATTERN.match(markdown_content)
    if not match:
        return {}

    result: dict = {}
    for line in match.group(1).split("\n"):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition(":")
        if not sep:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        if value == "true":
            value = True
        elif value == "false":
            value = False
        result[key.strip()] = value
    return result


def read_frontmatter(markdown_content: str) -> tuple[dict, str]:
    """Split markdown text into ``(metadata, content)``.

    Falls back to the flat parser when the YAML block does not parse, so a
    single malformed field does not lose every image setting.
    """
    from .logging import warning

    if not markdown_content:
        return {}, ""
    try:
        post = frontmatter.loads(markdown_content)
        return dict(post.metadata), post.content
    except (yaml.YAMLError, TypeError, ValueError) as e:
        warning(f"YAML frontmatter could not be parsed, using key: value lines only: {e}")
        content = _SIMPLE_FRONTMATTER_PATTERN.sub("", markdown_content, count=1)
        return parse_simple_frontmatter(markdown_content), content.lstrip("\n")


def _field(data: Mapping, name: str) -> tuple[bool, str]:
    """Return ``(present, text)`` for a field honoring its aliases."""
    for key in FIELD_ALIASES[name]:
        if key in data:
            value = data[key]
            return True, value if isinstance(value, str) else ""
    return False, ""


def _raw_field(data: Mapping, name: str):
    for key in FIELD_ALIASES[name]:
        if key in data:
            return data[key]
    return None


def _strip_dot_slash(value: str) -> str:
    return value[2:] if value.startswith("./") else value


def parse_image_scale(value) -> float | None:
    """Parse a document scale given as ``0.5``, ``"0.5"`` or ``"50%"``.

    Returns None for anything non-finite, zero, negative or unparsable.
    The result never exceeds 1.0: a document cannot ask for upscaling.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value <= 0:
            return None
        return min(float(value), 1.0)

    text = str(value).strip()
    if not text:
        return None
    percent_match = _PERCENT_SCALE_PATTERN.match(text)
    if percent_match:
        percent = float(percent_match.group(1))
        if not math.isfinite(percent) or percent <= 0:
            return None
        return min(percent / 100, 1.0)
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return min(number, 1.0)


def resolve_frontmatter(data) -> ResolvedFrontmatter | None:
    """Normalize the image fields of a frontmatter mapping.

    Args:
        data: Document metadata; anything that is not a mapping yields None

    Returns:
        ResolvedFrontmatter with trailing slashes enforced and the
        ``urlimage`` field split into an absolute base or a directory override
    """
    if not isinstance(data, Mapping):
        return None

    _, lid = _field(data, "lid")
    lid = lid.strip()
    if lid:
        lid = _strip_dot_slash(ensure_trailing_slash(lid))

    _, url = _field(data, "url")
    url = ensure_trailing_slash(url)

    has_urlimage, urlimage = _field(data, "urlimage")
    image_dir = ""
    has_image_dir = False
    if urlimage and is_absolute_url(urlimage):
        urlimage = ensure_trailing_slash(urlimage)
    elif has_urlimage:
        # A relative (or empty) urlimage flattens references to their basename
        has_image_dir = True
        image_dir = urlimage
        urlimage = ""

    if image_dir in (".", "./"):
        image_dir = ""
    if image_dir:
        image_dir = _strip_dot_slash(ensure_trailing_slash(image_dir)).lstrip("/")

    _, urlimagebase = _field(data, "urlimagebase")
    urlimagebase = ensure_trailing_slash(urlimagebase)

    _, lmd = _field(data, "lmd")
    lmd = ensure_trailing_slash(lmd)

    return ResolvedFrontmatter(
        url=url,
        urlimage=urlimage,
        urlimagebase=urlimagebase,
        lid=lid,
        image_dir=image_dir,
        has_image_dir=has_image_dir,
        lmd=lmd,
        image_scale=parse_image_scale(_raw_field(data, "imagescale")),
    )


def resolve_image_base(fields: ResolvedFrontmatter | None, fallback_urlimagebase: str = "") -> str:
    """Pick the prefix for rewritten local references.

    Precedence: absolute ``urlimage``, then ``urlimagebase`` joined with the
    directory path of ``url``, then ``url`` itself.
    """
    if fields is None:
        fields = ResolvedFrontmatter()
    urlimagebase = fields.urlimagebase or ensure_trailing_slash(fallback_urlimagebase or "")

    if fields.urlimage:
        base = fields.urlimage
    elif urlimagebase:
        base = join_url(urlimagebase, get_url_path(fields.url))
    else:
        base = fields.url
    return ensure_trailing_slash(base)
