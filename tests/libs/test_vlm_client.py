import asyncio
import io
import json

import httpx
import pytest
from PIL import Image

from curatorworks.libs.vlm import ImageRef, InvalidImageError, VisionClient, VLMBackendError


def _client(handler, **kwargs) -> VisionClient:
    return VisionClient(
        base_url="http://backend.test/v1",
        model_name="qwen2.5-vl-7b-instruct",
        api_key="secret",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def _reply(content) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


def test_complete_posts_openai_chat_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return _reply('{"ok": true}')

    async def _run():
        client = _client(handler, max_tokens=0, top_p=3.0)
        try:
            return await client.complete(
                "Describe it", [ImageRef.from_url("https://img.example/a.jpg")], system="Be strict"
            )
        finally:
            await client.aclose()

    text = asyncio.run(_run())

    assert text == '{"ok": true}'
    assert seen["url"] == "http://backend.test/v1/chat/completions"
    assert seen["auth"] == "Bearer secret"
    body = seen["body"]
    assert body["model"] == "qwen2.5-vl-7b-instruct"
    assert body["max_tokens"] == 1
    assert body["top_p"] == 1.0
    assert body["messages"][0] == {"role": "system", "content": "Be strict"}
    user = body["messages"][1]["content"]
    assert user[0] == {"type": "text", "text": "Describe it"}
    assert user[1]["image_url"]["url"] == "https://img.example/a.jpg"


def test_list_content_is_joined():
    client = _client(lambda request: _reply([{"type": "text", "text": "a"}, {"text": "b"}]))

    assert asyncio.run(client.complete("x", [])) == "ab"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, text="loading model"),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, text="not json"),
    ],
)
def test_backend_failures_raise_backend_error(response):
    client = _client(lambda request: response)

    with pytest.raises(VLMBackendError):
        asyncio.run(client.complete("x", []))


def test_connection_errors_raise_backend_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(VLMBackendError):
        asyncio.run(_client(handler).complete("x", []))


def test_inline_bytes_become_a_data_url():
    buffer = io.BytesIO()
    Image.new("RGB", (2, 2)).save(buffer, format="JPEG")

    url = ImageRef.from_bytes(buffer.getvalue()).as_url()

    assert url.startswith("data:image/jpeg;base64,")


def test_unreadable_bytes_are_rejected_on_construction():
    with pytest.raises(InvalidImageError):
        ImageRef.from_bytes(b"definitely not an image")


def test_empty_reference_is_rejected():
    with pytest.raises(InvalidImageError):
        ImageRef.from_url("")
