"""Async OpenAI-compatible chat client for image + instruction prompts."""

from __future__ import annotations

import asyncio
import base64
import io
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

import httpx
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

_ERROR_SNIPPET_CHARS = 600


class VLMBackendError(RuntimeError):
    """Raised when the backend cannot produce a completion."""


class InvalidImageError(ValueError):
    """Raised when an image reference is empty or its bytes cannot be decoded."""


@dataclass(frozen=True)
class ImageRef:
    """An image passed to the backend either by URL or as inline bytes.

    Inline bytes are decoded once on construction, so an unreadable payload
    fails before anything is sent or paid for.
    """

    url: Optional[str] = None
    data: Optional[bytes] = None
    mime: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not self.url and not self.data:
            raise InvalidImageError("ImageRef needs a url or inline data")
        if self.data and not self.url and self.mime is None:
            object.__setattr__(self, "mime", _sniff_mime(self.data))

    @classmethod
    def from_url(cls, url: str) -> "ImageRef":
        return cls(url=url)

    @classmethod
    def from_bytes(cls, data: bytes) -> "ImageRef":
        return cls(data=data)

    def as_url(self) -> str:
        if self.url:
            return self.url
        encoded = base64.b64encode(self.data or b"").decode("utf-8")
        return f"data:{self.mime};base64,{encoded}"


def _sniff_mime(data: bytes) -> str:
    try:
        with Image.open(io.BytesIO(data)) as image:
            fmt = (image.format or "JPEG").lower()
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidImageError(f"Inline image data is not a readable image: {exc}") from exc
    return "image/" + ("jpeg" if fmt in {"jpg", "mpo"} else fmt)


class VisionCompletion(Protocol):
    async def complete(
        self,
        instruction: str,
        images: Sequence[ImageRef],
        *,
        system: Optional[str] = None,
    ) -> str: ...


class VisionClient:
    """Posts ``/chat/completions`` and returns the first choice's text.

    Transport errors, HTTP errors and timeouts surface as
    :class:`VLMBackendError`; callers decide whether to retry.
    """

    def __init__(
        self,
        *,
        base_url: str,
        model_name: str,
        api_key: str = "",
        timeout: float = 120,
        max_tokens: int = 768,
        temperature: float = 0.1,
        top_p: float = 0.9,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.model_name = model_name
        self.timeout = float(timeout)
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.top_p = top_p
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {api_key}"} if api_key else None,
            timeout=self.timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "VisionClient":
        return cls(
            base_url=settings.base_url,
            model_name=settings.model,
            api_key=settings.api_key,
            timeout=settings.timeout,
            max_tokens=settings.max_new_tokens,
            temperature=settings.temperature,
            top_p=settings.top_p,
            **kwargs,
        )

    def _messages(
        self, instruction: str, images: Sequence[ImageRef], system: Optional[str]
    ) -> List[Dict[str, object]]:
        content: List[Dict[str, object]] = [{"type": "text", "text": instruction}]
        for image in images:
            content.append({"type": "image_url", "image_url": {"url": image.as_url()}})
        messages: List[Dict[str, object]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": content})
        return messages

    async def complete(
        self,
        instruction: str,
        images: Sequence[ImageRef],
        *,
        system: Optional[str] = None,
    ) -> str:
        payload = {
            "model": self.model_name,
            "messages": self._messages(instruction, images, system),
            "max_tokens": max(1, self.max_tokens),
            "temperature": max(0.0, self.temperature),
            "top_p": max(0.0, min(1.0, self.top_p)),
            "stream": False,
        }
        try:
            response = await asyncio.wait_for(
                self._client.post("/chat/completions", json=payload),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except asyncio.TimeoutError as exc:
            logger.warning(
                "Vision backend timed out after %.1fs (model '%s')",
                self.timeout,
                self.model_name,
            )
            raise VLMBackendError(
                f"Vision backend timed out after {self.timeout:.1f}s"
            ) from exc
        except httpx.HTTPStatusError as exc:
            snippet = exc.response.text[:_ERROR_SNIPPET_CHARS]
            logger.error(
                "Vision backend returned HTTP %s for model '%s': %s",
                exc.response.status_code,
                self.model_name,
                snippet,
            )
            raise VLMBackendError(
                f"Vision backend returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Vision backend request failed: %s", exc)
            raise VLMBackendError(f"Vision backend unreachable: {exc}") from exc

        try:
            body = response.json()
            content = body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise VLMBackendError(
                "Vision backend response missing choices[0].message.content"
            ) from exc
        if isinstance(content, list):
            content = "".join(
                str(part.get("text", "")) for part in content if isinstance(part, dict)
            )
        return str(content or "")

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = [
    "ImageRef",
    "InvalidImageError",
    "VLMBackendError",
    "VisionClient",
    "VisionCompletion",
]
