"""Failure taxonomy and the reporting policy for image probes.

None of these errors abort a render: an image whose probe fails is emitted
without ``width``/``height`` and every other attribute is still applied.
"""

from enum import Enum

SUPPRESS_MODES = ("none", "all", "local", "remote")


class Locality(str, Enum):
    """Where the pixels for a reference are read from."""

    LOCAL = "local"
    REMOTE = "remote"


class ImageSizeError(Exception):
    """Base class for image sizing failures."""

    def __init__(self, message: str, target: str = ""):
        super().__init__(message)
        self.target = target


class UnresolvableLocalPath(ImageSizeError):
    """A relative local reference has no directory to be resolved against."""


class ProbeFailed(ImageSizeError):
    """Reading or decoding the image failed."""


class ProbeTooLarge(ProbeFailed):
    """The remote content-length exceeded the configured ceiling."""

    def __init__(self, message: str, target: str = "", content_length: int = 0):
        super().__init__(message, target)
        self.content_length = content_length


class ProbeTimedOut(ProbeFailed):
    """The probe did not settle before its timeout."""


def should_report(locality: Locality | str, mode: str) -> bool:
    """Decide whether a failure at ``locality`` is reported under ``mode``.

    ``all`` silences everything, ``local``/``remote`` silence only that
    locality and ``none`` silences nothing. This only gates the caller's
    single-shot diagnostic; it does not log anything itself.
    """
    locality = Locality(locality)
    if mode == "all":
        return False
    if mode == "local":
        return locality is not Locality.LOCAL
    if mode == "remote":
        return locality is not Locality.REMOTE
    return True
