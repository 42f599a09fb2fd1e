"""Client for the external image-edit provider.

The provider receives the drawing, a prompt and a target size, and
answers with zero or one base64-encoded image. The HTTP client has no
deadline of its own; ``globestamp.services.enhance`` bounds each call.

Example:
    >>> provider = OpenAIImageEditProvider(api_key="sk-...")
    >>> b64 = await provider.edit(png_bytes, "Make it pop", "1024x1024", "u1")
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from globestamp.core import config, errors

logger = logging.getLogger(__name__)

_MALFORMED_BODY = "Image edit provider returned a malformed body"


class ImageEditProviderProtocol(Protocol):
    """Protocol interface for image-edit providers."""

    async def edit(
        self,
        image: bytes,
        prompt: str,
        size: str,
        user: str,
    ) -> str | None: ...


class OpenAIImageEditProvider(ImageEditProviderProtocol):
    """Calls the OpenAI ``/images/edits`` endpoint over HTTP."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-image-1",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            api_key: Bearer token for the provider API.
            base_url: API root; ``/images/edits`` is appended.
            model: Model name sent with every request.
            client: Optional shared client. A short-lived client is created
                per call when omitted.
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._client = client

    async def edit(
        self,
        image: bytes,
        prompt: str,
        size: str,
        user: str,
    ) -> str | None:
        """Request an edited version of ``image``.

        Returns:
            The base64 image payload, or None if the provider returned no
            image.

        Raises:
            UpstreamFailure: On transport errors, non-2xx responses or an
                unparseable body.
        """
        if self._client is not None:
            return await self._edit(self._client, image, prompt, size, user)
        async with httpx.AsyncClient(timeout=None) as client:
            return await self._edit(client, image, prompt, size, user)

    async def _edit(
        self,
        client: httpx.AsyncClient,
        image: bytes,
        prompt: str,
        size: str,
        user: str,
    ) -> str | None:
        try:
            response = await client.post(
                f"{self.base_url}/images/edits",
                headers={"Authorization": f"Bearer {self.api_key}"},
                data={
                    "model": self.model,
                    "prompt": prompt,
                    "size": size,
                    "user": user,
                },
                files={"image": ("drawing.png", image, "image/png")},
            )
            response.raise_for_status()
            body: Any = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Image edit provider answered %s", exc.response.status_code
            )
            raise errors.UpstreamFailure(
                f"Image edit provider error ({exc.response.status_code})"
            ) from exc
        except httpx.HTTPError as exc:
            raise errors.UpstreamFailure(
                f"Image edit provider unreachable: {exc}"
            ) from exc
        except ValueError as exc:
            raise errors.UpstreamFailure(
                "Image edit provider returned invalid JSON"
            ) from exc

        if not isinstance(body, dict):
            raise errors.UpstreamFailure(_MALFORMED_BODY)
        data = body.get("data") or []
        if not data:
            return None
        if not isinstance(data, list) or not isinstance(data[0], dict):
            raise errors.UpstreamFailure(_MALFORMED_BODY)
        b64 = data[0].get("b64_json")
        if b64 is not None and not isinstance(b64, str):
            raise errors.UpstreamFailure(_MALFORMED_BODY)
        return b64 or None


def get_image_edit_provider(
    settings: config.Settings,
) -> ImageEditProviderProtocol | None:
    """Factory function to create the configured image-edit provider.

    Returns:
        OpenAIImageEditProvider, or None if no API key is configured.
    """
    if not settings.openai_api_key:
        return None
    return OpenAIImageEditProvider(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        model=settings.enhance_model,
    )
