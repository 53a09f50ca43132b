"""Width/height calculation from probed pixels and sizing hints.

Three independent rules stack in a fixed order:

1. filename scale suffix (``cat@2x.png``, ``scan_300dpi.png``)
2. a per-image resize directive from the title (``resize:50%``,
   ``resize:320px``); when present it overrides the document scale
3. the document-wide ``imagescale``

and the result is finally clamped so it never exceeds the source pixels.
Every step rounds half up, like JavaScript's ``Math.round``, so chained
suffix + directive results match the markup produced by the browser host.
"""

import math
import re
from dataclasses import dataclass
from typing import NamedTuple

SCALE_SUFFIX_PATTERN = re.compile(r"[@._-]([0-9]+)(x|dpi|ppi)$")

RESIZE_PATTERN = re.compile(
    r"(?:(?:(?:大きさ|サイズ)の?変更|リサイズ|resize(?:d to)?) *[:：]? *"
    r"([0-9]+(?:\.[0-9]+)?)([%％]|px)"
    r"|([0-9]+(?:\.[0-9]+)?)([%％]|px)[にへ](?:(?:大きさ|サイズ)を?変更|リサイズ))",
    re.IGNORECASE,
)
RESIZE_VALUE_PATTERN = re.compile(r"^([0-9]+(?:\.[0-9]+)?)(%|px)$", re.IGNORECASE)

CSS_PIXELS_PER_INCH = 96


class ImageSize(NamedTuple):
    width: int
    height: int


@dataclass(frozen=True)
class ResizeDirective:
    """A per-image target size: ``value`` percent or ``value`` pixels wide."""

    value: float
    unit: str
    text: str

    @property
    def normalized(self) -> str:
        return f"{self.text}{self.unit}"


def round_half_up(value: float) -> int:
    """Round like ``Math.round``: halves go towards positive infinity."""
    return math.floor(value + 0.5)


def normalize_resize_value(title) -> str:
    """Extract ``"50%"`` / ``"128px"`` from a title, or ``""`` if there is none."""
    directive = parse_resize_directive(title)
    return directive.normalized if directive else ""


def parse_resize_directive(title) -> ResizeDirective | None:
    """Find a resize directive anywhere in a title string.

    Recognizes ``resize:50%``, ``resized to 320px``, the Japanese keyword
    forms (``リサイズ：50%``, ``50%にリサイズ``) and full-width ``％``.
    """
    if not title:
        return None
    text = str(title).strip()
    if not text:
        return None
    match = RESIZE_PATTERN.search(text)
    if not match:
        return None
    number = match.group(1) or match.group(3)
    unit = match.group(2) or match.group(4)
    if not number or not unit:
        return None
    unit = "%" if unit in ("%", "％") else unit.lower()
    value = float(number)
    if not math.isfinite(value):
        return None
    return ResizeDirective(value=value, unit=unit, text=number)


def parse_stored_resize(value) -> ResizeDirective | None:
    """Recover a directive from a data attribute.

    The attribute normally holds the normalized ``50%`` form, but a full
    directive text is accepted too.
    """
    if not value:
        return None
    text = str(value).strip()
    match = RESIZE_VALUE_PATTERN.match(text)
    if match:
        return ResizeDirective(
            value=float(match.group(1)), unit=match.group(2).lower(), text=match.group(1)
        )
    return parse_resize_directive(text)


def compute_size(
    raw: ImageSize | tuple[int, int],
    image_name: str = "",
    scale_suffix: bool = False,
    resize: bool = False,
    title: str | None = None,
    image_scale: float | None = None,
    no_upscale: bool = True,
    directive: ResizeDirective | None = None,
) -> ImageSize:
    """Compute the rendered size of an image.

    Args:
        raw: Probed pixel size
        image_name: File name without extension, checked for a scale suffix
        scale_suffix: Apply ``@Nx`` / ``Ndpi`` / ``Nppi`` suffixes
        resize: Honor a resize directive
        title: Title text searched for a resize directive
        image_scale: Document-wide factor, used only without a directive
        no_upscale: Clamp the result to the raw pixel size
        directive: Already-parsed directive, e.g. recovered from a data attribute

    Returns:
        ImageSize with positive integer dimensions
    """
    original_width, original_height = raw
    width, height = original_width, original_height

    if scale_suffix:
        match = SCALE_SUFFIX_PATTERN.search(image_name or "")
        if match:
            scale = int(match.group(1))
            if scale > 0 and match.group(2) == "x":
                width = round_half_up(width / scale)
                height = round_half_up(height / scale)
            elif scale > 0:
                width = round_half_up(width * CSS_PIXELS_PER_INCH / scale)
                height = round_half_up(height * CSS_PIXELS_PER_INCH / scale)

    if resize and directive is None and title:
        directive = parse_resize_directive(title)
    if not resize:
        directive = None

    if directive is not None:
        if directive.unit == "%":
            height = round_half_up(height * directive.value / 100)
            width = round_half_up(width * directive.value / 100)
        elif directive.unit == "px" and width > 0:
            height = round_half_up(height * directive.value / width)
            width = round_half_up(directive.value)
    elif image_scale and math.isfinite(image_scale):
        width = round_half_up(width * image_scale)
        height = round_half_up(height * image_scale)

    if (
        no_upscale
        and original_width > 0
        and original_height > 0
        and width > 0
        and height > 0
    ):
        limit = min(1, original_width / width, original_height / height)
        if limit < 1:
            width = round_half_up(width * limit)
            height = round_half_up(height * limit)

    return ImageSize(max(1, width), max(1, height))
