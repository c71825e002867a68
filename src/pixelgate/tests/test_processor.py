import json

import httpx
import pytest

from pixelgate.core.processor import HttpImageProcessor, ProcessorError

pytestmark = pytest.mark.asyncio


def _processor(handler) -> HttpImageProcessor:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpImageProcessor("http://engine/process", client=client)


async def test_posts_operations_and_source():
    seen = {}

    def handler(request: httpx.Request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=b"img", headers={"Content-Type": "image/avif", "X-Original-Size": "9000"})

    result = await _processor(handler).process("https://example.com/a.jpg", {"w": "300", "embed": True})

    assert seen["body"] == {"operations": {"w": "300", "embed": True}, "source": "https://example.com/a.jpg"}
    assert result.data == b"img"
    assert result.format == "avif"
    assert result.original_size == 9000


async def test_explicit_format_header_wins():
    def handler(request):
        return httpx.Response(200, content=b"x", headers={"Content-Type": "application/octet-stream", "X-Image-Format": "jpeg"})

    result = await _processor(handler).process("https://example.com/a.jpg", {})
    assert result.format == "jpeg"
    assert result.original_size is None


async def test_error_status_raises():
    def handler(request):
        return httpx.Response(422, text="unsupported operation")

    with pytest.raises(ProcessorError, match="HTTP 422"):
        await _processor(handler).process("https://example.com/a.jpg", {"bogus": True})


async def test_transport_error_raises():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ProcessorError, match="unreachable"):
        await _processor(handler).process("https://example.com/a.jpg", {})
