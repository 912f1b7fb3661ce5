"""Enums module for the image generation service.

Contains all enumeration classes used throughout the application.
"""

from enum import StrEnum


class Megapixels(StrEnum):
    """Resolution class; "1" is roughly 1024x1024, "0.25" roughly 512x512."""
    One = "1"
    Quarter = "0.25"


class AspectRatio(StrEnum):
    Square = "1:1"
    Standard = "4:3"
    Wide = "16:9"


class OutputFormat(StrEnum):
    """Image encodings the provider can return."""
    Webp = "webp"
    Png = "png"
    Jpeg = "jpeg"


class ErrorKind(StrEnum):
    """Tag carried by every service exception."""
    Upstream = "upstream"
    Download = "download"
    Persist = "persist"
    Internal = "internal"
    Configuration = "configuration"
