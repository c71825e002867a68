import pytest

from pixelgate.core.errors import InvalidImageUrl, MalformedPath
from pixelgate.core.operations import (
    ensure_protocol,
    normalize_image_url,
    parse_image_path,
    parse_operations,
    resolve_content_type,
    restore_protocol_slashes,
)


def test_underscore_means_no_operations():
    assert parse_operations("_") == {}


def test_key_value_and_flags():
    assert parse_operations("w_200") == {"w": "200"}
    assert parse_operations("embed,f_webp,s_200x200") == {"embed": True, "f": "webp", "s": "200x200"}


def test_order_is_preserved():
    assert list(parse_operations("q_80,w_300,grayscale,f_avif")) == ["q", "w", "grayscale", "f"]


def test_duplicate_keys_last_wins():
    ops = parse_operations("w_100,f_png,w_300")
    assert ops == {"w": "300", "f": "png"}
    assert list(ops) == ["w", "f"]


def test_only_first_underscore_splits():
    assert parse_operations("pos_left_top") == {"pos": "left_top"}


@pytest.mark.parametrize("token", ["_webp", "flip", "", "_"])
def test_malformed_tokens_degrade_to_flags(token):
    ops = parse_operations(f"w_10,{token}")
    assert ops[token] is True


def test_keys_are_case_sensitive():
    assert parse_operations("W_1,w_2") == {"W": "1", "w": "2"}


def test_image_path_joins_and_decodes():
    parsed = parse_image_path(["w_300,f_webp", "example.com", "photos", "my%20cat.jpg"])
    assert parsed.operations == "w_300,f_webp"
    assert parsed.image_path == "example.com/photos/my cat.jpg"
    assert parsed.canonical == "w_300,f_webp/example.com/photos/my cat.jpg"


def test_image_path_restores_collapsed_protocol():
    parsed = parse_image_path(["_", "https:", "cdn.example.com", "a.png"])
    assert parsed.image_path == "https://cdn.example.com/a.png"


def test_restore_protocol_slashes_is_idempotent():
    assert restore_protocol_slashes("https:/example.com") == "https://example.com"
    assert restore_protocol_slashes("http:/localhost") == "http://localhost"
    assert restore_protocol_slashes("https://example.com") == "https://example.com"


@pytest.mark.parametrize("segments", [[], ["w_300"]])
def test_too_few_segments(segments):
    with pytest.raises(MalformedPath):
        parse_image_path(segments)


@pytest.mark.parametrize("bad", ["example.com/%E0%A4%A.jpg", "example.com/%zz.jpg", "example.com/%C3%28.jpg"])
def test_malformed_percent_encoding(bad):
    with pytest.raises(MalformedPath):
        parse_image_path(["w_1", *bad.split("/")])


def test_malformed_path_carries_usage():
    with pytest.raises(MalformedPath) as exc_info:
        parse_image_path(["only"])
    body = exc_info.value.to_dict()
    assert body["usage"].startswith("/v1/")
    assert body["examples"]


@pytest.mark.parametrize(
    "path,expected",
    [
        ("example.com/a.jpg", "https://example.com/a.jpg"),
        ("http://example.com/a.jpg", "http://example.com/a.jpg"),
        ("HTTPS://example.com/a.jpg", "HTTPS://example.com/a.jpg"),
        ("localhost:3024/demo.png", "http://localhost:3024/demo.png"),
        ("localhost", "http://localhost"),
        ("localhost.evil.com/a.png", "https://localhost.evil.com/a.png"),
    ],
)
def test_ensure_protocol(path, expected):
    assert ensure_protocol(path) == expected


@pytest.mark.parametrize("path", ["/etc/passwd", "file:///etc/passwd", "ftp://example.com/a.jpg"])
def test_ensure_protocol_rejects(path):
    with pytest.raises(InvalidImageUrl):
        ensure_protocol(path)


@pytest.mark.parametrize(
    "fmt,expected",
    [("jpg", "image/jpeg"), ("jpeg", "image/jpeg"), ("webp", "image/webp"), ("avif", "image/avif"), ("PNG", "image/png")],
)
def test_resolve_content_type(fmt, expected):
    assert resolve_content_type(fmt) == expected


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://example.com/cat.jpg", ("https://example.com/cat.jpg", "example.com")),
        ("HTTPS://Images.Example.com/a.jpg", ("https://Images.Example.com/a.jpg", "images.example.com")),
        ("http://localhost:3024/demo.png", ("http://localhost:3024/demo.png", "localhost")),
    ],
)
def test_normalize_image_url(url, expected):
    assert normalize_image_url(url) == expected


@pytest.mark.parametrize(
    "url",
    [
        "https://evil.internal\\@example.com/cat.jpg",
        "https://example.com\\evil.internal/cat.jpg",
        "https://user@example.com/cat.jpg",
        "https://user:pw@example.com/cat.jpg",
        "https://example.com:99999/cat.jpg",
        "https://example.com:abc/cat.jpg",
        "https://[::1/cat.jpg",
        "https:///cat.jpg",
        "https://example.com/cat.jpg?",
    ],
)
def test_normalize_image_url_rejects(url):
    with pytest.raises(InvalidImageUrl):
        normalize_image_url(url)
