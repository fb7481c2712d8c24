"""
Content-type classification for cached responses.
"""

import os
from enum import Enum


class FormatTag(Enum):
    """Storage format of a cached response body."""

    JSON = "json"
    HTML = "html"
    XML = "xml"
    DEFAULT = "default"


# Checked in order; the first media type contained in the header wins
_MEDIA_TYPES = [
    ("application/json", FormatTag.JSON),
    ("text/html", FormatTag.HTML),
    ("application/xml", FormatTag.XML),
]

# DEFAULT shares the JSON extension
EXTENSIONS = {
    FormatTag.JSON: ".json",
    FormatTag.HTML: ".html",
    FormatTag.XML: ".xml",
    FormatTag.DEFAULT: ".json",
}

# Distinct extensions, in the order lookups probe them
LOOKUP_EXTENSIONS = [".json", ".html", ".xml"]

_SERVED_MEDIA_TYPES = {
    ".json": "application/json",
    ".html": "text/html; charset=utf-8",
    ".xml": "application/xml",
}


def classify(media_type: str) -> FormatTag:
    """Map a Content-Type header value to a FormatTag."""
    media_type = media_type or ""
    for needle, tag in _MEDIA_TYPES:
        if needle in media_type:
            return tag
    return FormatTag.DEFAULT


def extension_for(tag: FormatTag) -> str:
    return EXTENSIONS[tag]


def media_type_for_path(path: str) -> str:
    """Content type to serve a stored artifact with, from its extension."""
    _, ext = os.path.splitext(path)
    return _SERVED_MEDIA_TYPES.get(ext, "application/octet-stream")
