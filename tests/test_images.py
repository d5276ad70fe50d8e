import base64
import io

import httpx
import pytest
from PIL import Image

from app.domains.enrichment.images import ImageProbe, ImageProbeError, decode_data_uri, read_image_size


def _png(width: int, height: int) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 10, 10)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_read_image_size():
    assert read_image_size(_png(16, 9)) == (16, 9)
    assert read_image_size(b"definitely not an image") is None


def test_decode_data_uri():
    payload = _png(2, 3)
    uri = "data:image/png;base64," + base64.b64encode(payload).decode()

    assert decode_data_uri(uri) == payload
    assert decode_data_uri("https://example.com/a.png") is None
    assert decode_data_uri("data:image/png;base64,***") is None


async def test_probe_reads_size_over_http():
    def handler(request):
        return httpx.Response(200, content=_png(40, 30), headers={"content-type": "image/png"})

    probe = ImageProbe(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), attempts=2, interval=0)

    assert await probe.probe("https://cdn.example.com/a.png") == (40, 30)


async def test_probe_retries_then_gives_up():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404)

    probe = ImageProbe(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), attempts=3, interval=0)

    with pytest.raises(ImageProbeError):
        await probe.probe("https://cdn.example.com/missing.png")
    assert len(calls) == 3


async def test_probe_handles_data_uri_and_rejects_opaque_refs():
    probe = ImageProbe(attempts=1, interval=0)
    uri = "data:image/png;base64," + base64.b64encode(_png(8, 4)).decode()

    assert await probe.probe(uri) == (8, 4)
    with pytest.raises(ImageProbeError):
        await probe.probe("asset-ref:1234")
    await probe.close()
