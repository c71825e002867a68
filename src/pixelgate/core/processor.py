from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx


class ProcessorError(Exception):
    pass


@dataclass(frozen=True)
class ProcessedImage:
    data: bytes
    format: str
    original_size: int | None = None


class ImageProcessor(Protocol):
    async def process(self, source: str, operations: dict[str, str | bool]) -> ProcessedImage: ...


def _format_from_content_type(content_type: str | None) -> str | None:
    if not content_type:
        return None
    mime = content_type.split(";", 1)[0].strip().lower()
    if not mime.startswith("image/"):
        return None
    return mime.removeprefix("image/")


class HttpImageProcessor:
    """
    Client for the external image engine.

    The engine takes {"operations": {...}, "source": url} and answers with the
    encoded image; the format comes from X-Image-Format or the Content-Type.
    """

    def __init__(self, url: str, timeout: float = 30.0, client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def process(self, source: str, operations: dict[str, str | bool]) -> ProcessedImage:
        try:
            response = await self._client.post(self.url, json={"operations": operations, "source": source})
        except httpx.TimeoutException as exc:
            raise ProcessorError("Image processor timed out") from exc
        except httpx.RequestError as exc:
            raise ProcessorError(f"Image processor unreachable: {type(exc).__name__}") from exc

        if not response.is_success:
            raise ProcessorError(f"Image processor returned HTTP {response.status_code}: {response.text[:200]}")

        fmt = response.headers.get("X-Image-Format") or _format_from_content_type(
            response.headers.get("Content-Type")
        )
        original = response.headers.get("X-Original-Size")

        return ProcessedImage(
            data=response.content,
            format=fmt or "webp",
            original_size=int(original) if original and original.isdigit() else None,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
