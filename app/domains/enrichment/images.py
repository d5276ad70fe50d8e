"""Определение натурального размера изображения"""
import base64
import binascii
import io
import logging
from typing import Optional, Tuple
from urllib.parse import unquote_to_bytes

import httpx
from PIL import Image, UnidentifiedImageError

from app.utils.async_tools import await_condition

logger = logging.getLogger(__name__)

Size = Tuple[int, int]


class ImageProbeError(Exception):
    pass


def read_image_size(data: bytes) -> Optional[Size]:
    """Размер по заголовку изображения; Pillow не декодирует пиксели"""
    try:
        with Image.open(io.BytesIO(data)) as image:
            width, height = image.size
    except (UnidentifiedImageError, OSError):
        return None
    if width <= 0 or height <= 0:
        return None
    return width, height


def decode_data_uri(uri: str) -> Optional[bytes]:
    header, sep, body = uri.partition(",")
    if not sep or not header.startswith("data:"):
        return None
    if header.endswith(";base64"):
        try:
            return base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError):
            return None
    return unquote_to_bytes(body)


class ImageProbe:
    """Загружает изображение и читает его размер, с ограниченным числом попыток"""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        attempts: int = 3,
        interval: float = 0.2,
        timeout: float = 10.0,
    ):
        self._http_client = http_client
        self._owns_client = http_client is None
        self.attempts = attempts
        self.interval = interval
        self.timeout = timeout

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._http_client

    async def probe(self, url: str) -> Size:
        if url.startswith("data:"):
            data = decode_data_uri(url)
            size = read_image_size(data) if data else None
            if size is None:
                raise ImageProbeError("Unreadable data URI image")
            return size

        if not url.startswith(("http://", "https://")):
            raise ImageProbeError(f"Cannot probe image reference {url!r}")

        size = await await_condition(lambda: self._fetch_size(url), self.attempts, self.interval)
        if size is None:
            raise ImageProbeError(f"Could not read image size for {url}")
        return size

    async def _fetch_size(self, url: str) -> Optional[Size]:
        client = await self._get_http_client()
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.debug(f"Image probe request failed for {url}: {e}")
            return None
        return read_image_size(response.content)

    async def close(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None
