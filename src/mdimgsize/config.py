"""Option handling for mdimgsize.

Options arrive as keyword arguments, plain dicts (snake_case or the
camelCase names used by the browser build) or a ``.mdimgsize.toml`` file.
``normalize_options`` runs once per extension or post-processing context and
produces a frozen options value; nothing downstream inspects raw dicts.
"""

import re
import tomllib
from collections.abc import Callable
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TypeVar

from .errors import SUPPRESS_MODES
from .urls import OUTPUT_URL_MODES

T = TypeVar("T")

CONFIG_FILENAME = ".mdimgsize.toml"
PREVIEW_MODES = ("output", "markdown", "local")

# Old option names and the option they map to; the new name wins when both are given
LEGACY_OPTIONS = {
    "hide_title": "auto_hide_resize_title",
    "modify_img_src": "resolve_src",
    "suppress_load_errors": "suppress_errors",
}
# Accepted for compatibility but without effect
IGNORED_OPTIONS = {"img_src_prefix", "no_upscale"}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def _find_similar(key: str, valid_keys: set[str], threshold: float = 0.6) -> str | None:
    """Find a similar key from valid_keys using Levenshtein ratio.

    Args:
        key: The unknown key to match
        valid_keys: Set of valid key names
        threshold: Minimum similarity ratio (0-1) to suggest

    Returns:
        Most similar key if above threshold, None otherwise
    """

    def levenshtein_ratio(s1: str, s2: str) -> float:
        m, n = len(s1), len(s2)
        if m == 0 or n == 0:
            return 0.0

        d = [[0] * (n + 1) for _ in range(m + 1)]
        for i in range(m + 1):
            d[i][0] = i
        for j in range(n + 1):
            d[0][j] = j

        for i in range(1, m + 1):
            for j in range(1, n + 1):
                cost = 0 if s1[i - 1] == s2[j - 1] else 1
                d[i][j] = min(d[i - 1][j] + 1, d[i][j - 1] + 1, d[i - 1][j - 1] + cost)

        return 1.0 - (d[m][n] / max(m, n))

    best_match = None
    best_ratio = 0.0

    for valid in sorted(valid_keys):
        ratio = levenshtein_ratio(key.lower(), valid.lower())
        if ratio > best_ratio:
            best_ratio = ratio
            best_match = valid

    return best_match if best_ratio >= threshold else None


def _warn_unknown_keys(
    keys: set[str], valid_keys: set[str], section: str, config_path: Path | None = None
) -> None:
    """Warn about unknown option keys, suggesting the closest valid one."""
    from .logging import warning

    for key in sorted(keys - valid_keys):
        location = f" in {config_path}" if config_path else ""
        msg = f"Unknown option '{key}' in [{section}]{location}"

        similar = _find_similar(key, valid_keys)
        if similar:
            msg += f". Did you mean '{similar}'?"

        warning(msg)


def to_snake_case(name: str) -> str:
    """``checkImgExtensions`` -> ``check_img_extensions``."""
    return _CAMEL_BOUNDARY.sub(r"_\1", name).lower()


@dataclass(frozen=True)
class SharedOptions:
    """Options understood by both the markdown extension and the post-processor."""

    scale_suffix: bool = False  # scale by @2x or dpi/ppi suffix
    resize: bool = False  # resize by title hint
    lazy_load: bool = False  # add loading="lazy"
    async_decode: bool = False  # add decoding="async"
    check_img_extensions: str = "png,jpg,jpeg,gif,webp"
    resolve_src: bool = True  # rewrite src from frontmatter
    url_image_base: str = ""  # fallback base when frontmatter lacks urlimagebase
    output_url_mode: str = "absolute"
    auto_hide_resize_title: bool = True
    resize_data_attr: str = "data-img-resize"
    no_upscale: bool = True
    suppress_errors: str = "none"


@dataclass(frozen=True)
class RenderOptions(SharedOptions):
    """Options for the synchronous markdown extension."""

    md_path: str = ""  # markdown file path for local sizing
    disable_remote_size: bool = False
    remote_timeout: int = 5000  # ms
    remote_max_bytes: int = 16 * 1024 * 1024
    cache_max: int = 64


@dataclass(frozen=True)
class DomOptions(SharedOptions):
    """Options for the asynchronous HTML post-processor."""

    preview_mode: str = "output"
    preview_output_src_attr: str = "data-img-output-src"
    set_dom_src: bool = True
    load_src_resolver: Callable | None = None  # (src, context) -> load src
    load_src_map: dict | None = None  # markdown src -> load src
    enable_size_probe: bool = True
    await_size_probes: bool = True
    size_probe_timeout_ms: int = 3000  # 0 disables the timeout
    on_image_processed: Callable | None = None  # (img, result)
    read_meta: bool = False  # read <meta name="markdown-frontmatter">
    md_path: str = ""
    remote_max_bytes: int = 16 * 1024 * 1024
    cache_max: int = 64


def build_extension_pattern(check_img_extensions: str) -> re.Pattern:
    """Compile the allow-list into a pattern matching ``.png``, ``.jpg?x`` etc."""
    extensions = [
        re.escape(ext.strip().lstrip("."))
        for ext in (check_img_extensions or "").split(",")
        if ext.strip().lstrip(".")
    ]
    if not extensions:
        return re.compile(r"(?!)")
    return re.compile(r"\.(?:" + "|".join(extensions) + r")(?=$|[?#])", re.IGNORECASE)


def _option_values(options) -> dict:
    return {f.name: getattr(options, f.name) for f in fields(options)}


def normalize_options(
    cls: type[T],
    data=None,
    section: str = "options",
    config_path: Path | None = None,
    **overrides,
) -> T:
    """Build a canonical options value from user input.

    Args:
        cls: RenderOptions, DomOptions or SharedOptions
        data: Existing options instance, dict of options, or None
        section: Section name for warnings
        config_path: Config file path for warnings
        **overrides: Extra options applied on top of ``data``

    Returns:
        Frozen options instance with invalid values replaced by defaults
    """
    from .logging import debug, warning

    if isinstance(data, cls) and not overrides:
        return data

    valid = {f.name for f in fields(cls)}
    defaults = cls()

    raw: dict = {}
    if isinstance(data, SharedOptions):
        raw.update({k: v for k, v in _option_values(data).items() if k in valid})
    elif data:
        raw.update(data)
    raw.update(overrides)
    exact: dict = {}
    aliased: dict = {}
    legacy: dict = {}
    unknown: set[str] = set()

    for key, value in raw.items():
        name = to_snake_case(key)
        if name in IGNORED_OPTIONS:
            if name == "no_upscale" and value is not defaults.no_upscale:
                debug(f"Option '{key}' cannot be changed and is ignored")
            elif name == "img_src_prefix":
                debug(f"Option '{key}' is no longer supported and is ignored")
            continue
        if name in LEGACY_OPTIONS:
            legacy[name] = value
        elif name in valid:
            (exact if key == name else aliased)[name] = value
        else:
            unknown.add(key)

    _warn_unknown_keys(unknown, valid, section, config_path)

    values = {**aliased, **exact}
    for old_name, value in legacy.items():
        new_name = LEGACY_OPTIONS[old_name]
        if new_name in values or new_name not in valid:
            continue
        if old_name == "suppress_load_errors":
            if value:
                values[new_name] = "all"
        else:
            values[new_name] = bool(value)

    suppress = values.get("suppress_errors", defaults.suppress_errors)
    if suppress not in SUPPRESS_MODES:
        warning(f"Invalid suppress_errors value: {suppress!r}. Using 'none'.")
        values["suppress_errors"] = "none"

    mode = values.get("output_url_mode", defaults.output_url_mode)
    if mode not in OUTPUT_URL_MODES:
        warning(f"Invalid output_url_mode value: {mode!r}. Using 'absolute'.")
        values["output_url_mode"] = "absolute"

    if "preview_mode" in valid:
        preview = values.get("preview_mode", defaults.preview_mode)
        if preview not in PREVIEW_MODES:
            warning(f"Invalid preview_mode value: {preview!r}. Using 'output'.")
            values["preview_mode"] = "output"

    if "cache_max" in values:
        cache_max = values["cache_max"]
        if isinstance(cache_max, bool) or not isinstance(cache_max, int) or cache_max < 0:
            warning(f"Invalid cache_max value: {cache_max!r}. Using {defaults.cache_max}.")
            values["cache_max"] = defaults.cache_max

    if "no_upscale" in values:
        del values["no_upscale"]

    return cls(**values)


@dataclass
class Config:
    """Options loaded from ``.mdimgsize.toml``.

    ``[image]`` holds shared keys; ``[render]`` and ``[dom]`` override them
    for the markdown extension and the post-processor respectively.
    """

    render: RenderOptions = field(default_factory=RenderOptions)
    dom: DomOptions = field(default_factory=DomOptions)
    config_path: Path | None = None

    @classmethod
    def load(cls, config_path: Path) -> "Config":
        """Load configuration from a TOML file.

        Args:
            config_path: Path to the .mdimgsize.toml file

        Returns:
            Loaded Config object with defaults merged
        """
        config = cls()
        config.config_path = config_path

        if not config_path.exists():
            return config

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        _warn_unknown_keys(set(data), {"image", "render", "dom"}, "top-level", config_path)

        shared = data.get("image", {})
        config.render = normalize_options(
            RenderOptions,
            {**shared, **data.get("render", {})},
            section="render",
            config_path=config_path,
        )
        config.dom = normalize_options(
            DomOptions,
            {**shared, **data.get("dom", {})},
            section="dom",
            config_path=config_path,
        )
        return config

    @classmethod
    def find_and_load(cls, start_path: Path | None = None) -> "Config":
        """Load the nearest .mdimgsize.toml, or defaults when there is none."""
        if start_path is None:
            start_path = Path.cwd()

        config_path = cls.find_config(start_path)
        if config_path is None:
            return cls()
        return cls.load(config_path)

    @staticmethod
    def find_config(start_path: Path) -> Path | None:
        """Find .mdimgsize.toml starting from start_path and walking up.

        Args:
            start_path: Directory to start searching from

        Returns:
            Path to the config file if found, None otherwise
        """
        current = start_path.resolve()

        while True:
            config_path = current / CONFIG_FILENAME
            if config_path.exists():
                return config_path

            parent = current.parent
            if parent == current:
                return None
            current = parent
