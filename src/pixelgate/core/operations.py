"""
Operation strings and optimize path decomposition.

Path format: /{operations}/{image_path}

    w_300,f_webp/example.com/cat.jpg
      -> operations {"w": "300", "f": "webp"}, image "example.com/cat.jpg"

Operation keys are not validated here; the image processor owns the
vocabulary.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import unquote, urlsplit, urlunsplit

from pixelgate.core.errors import InvalidImageUrl, MalformedPath

NO_OPERATIONS = "_"

_COLLAPSED_PROTOCOL_RE = re.compile(r"^(https?:/)(?!/)")
_HTTP_PROTOCOL_RE = re.compile(r"^https?://", re.IGNORECASE)
_ANY_PROTOCOL_RE = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.-]*)://")
_BAD_PERCENT_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")


@dataclass(frozen=True)
class ImagePath:
    operations: str
    image_path: str

    @property
    def canonical(self) -> str:
        # the exact string covered by URL signatures
        return f"{self.operations}/{self.image_path}"


def parse_operations(segment: str) -> dict[str, str | bool]:
    """
    Parse "embed,f_webp,s_200x200" into {"embed": True, "f": "webp", "s": "200x200"}.

    Tokens without an underscore past position 0 become boolean flags.
    Duplicate keys: the last value wins. Never raises.
    """
    if segment == NO_OPERATIONS:
        return {}

    operations: dict[str, str | bool] = {}
    for part in segment.split(","):
        idx = part.find("_")
        if idx > 0:
            operations[part[:idx]] = part[idx + 1:]
        else:
            operations[part] = True
    return operations


def restore_protocol_slashes(path: str) -> str:
    """'https:/example.com' -> 'https://example.com' (proxies collapse '//')."""
    return _COLLAPSED_PROTOCOL_RE.sub(r"\1/", path, count=1)


def _strict_unquote(value: str) -> str:
    if _BAD_PERCENT_RE.search(value):
        raise MalformedPath("Invalid path encoding")
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError as exc:
        raise MalformedPath("Invalid path encoding") from exc


def parse_image_path(segments: list[str]) -> ImagePath:
    if len(segments) < 2:
        raise MalformedPath()

    operations = segments[0]
    image_path = _strict_unquote("/".join(segments[1:]))
    if not operations or not image_path:
        raise MalformedPath()

    return ImagePath(operations=operations, image_path=restore_protocol_slashes(image_path))


def ensure_protocol(path: str) -> str:
    """
    Return an absolute http(s) URL for an image path.

    localhost gets http://, every other bare host gets https://.
    """
    if _HTTP_PROTOCOL_RE.match(path):
        return path

    if path.startswith("/"):
        raise InvalidImageUrl("Path cannot start with /, please provide full domain path")

    match = _ANY_PROTOCOL_RE.match(path)
    if match:
        raise InvalidImageUrl(
            f"Unsupported protocol: {match.group(1).lower()}://. Only http:// or https:// are allowed"
        )

    if path == "localhost" or path.startswith("localhost:") or path.startswith("localhost/"):
        return f"http://{path}"

    return f"https://{path}"


def resolve_content_type(fmt: str) -> str:
    fmt = fmt.lower()
    if fmt in ("jpg", "jpeg"):
        return "image/jpeg"
    return f"image/{fmt}"


def normalize_image_url(url: str) -> tuple[str, str]:
    """
    Return (url, hostname) for an absolute image URL, rebuilt from its parts.

    The rebuilt URL is what gets fetched, so the checked hostname and the
    fetched one cannot diverge. URL parsers disagree on backslashes and
    userinfo, so both are rejected outright, as is anything that does not
    survive a split/unsplit round trip.
    """
    if "\\" in url:
        raise InvalidImageUrl("Invalid image URL", details="Backslashes are not allowed in image URLs")

    try:
        parts = urlsplit(url)
        # raises on a non-numeric or out-of-range port
        parts.port
    except ValueError as exc:
        raise InvalidImageUrl("Invalid image URL", details="Could not parse the image URL") from exc

    if parts.username is not None or parts.password is not None:
        raise InvalidImageUrl("Invalid image URL", details="Credentials are not allowed in image URLs")
    if not parts.hostname:
        raise InvalidImageUrl("Invalid image URL", details="Could not determine the image host")

    rebuilt = urlunsplit(parts)
    # urlsplit lowercases the scheme; that alone is not a divergence
    if rebuilt != parts.scheme + url[len(parts.scheme):]:
        raise InvalidImageUrl("Invalid image URL", details="Image URL is not in canonical form")
    return rebuilt, parts.hostname
