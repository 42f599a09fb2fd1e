"""Enhancement pipeline running drawings through the image-edit provider.

Steps, short-circuiting on the first failure:

1. Charge one unit of the actor's daily enhancement quota.
2. Check the PNG data-URL prefix and the decoded size.
3. Resolve a prompt from the requested style.
4. Call the provider, bounded by a deadline (30 seconds by default).

The quota unit is charged before the provider call, so a call that times
out still consumes it. Every failure after validation carries the
caller's original image so clients can fall back to it. The pipeline
never touches stored drawings; persisting an enhanced image is a separate
step (see ``StampPipeline.mark_enhanced``).

Example:
    >>> pipeline = EnhancementPipeline(limiter, provider)
    >>> result = await pipeline.enhance(image_data, "watercolor", "user-1")
    >>> result.image_data.startswith("data:image/png;base64,")
    True
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import TYPE_CHECKING

from globestamp.core import errors
from globestamp.services import image_validation, rate_limit

if TYPE_CHECKING:
    from globestamp.services import enhance_provider

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_SIZE = "1024x1024"

BASE_PROMPT = (
    "Enhance this drawing to make it more artistic and visually appealing "
    "while maintaining the original content and intent."
)

STYLE_PROMPTS: dict[str, str] = {
    "watercolor": "Transform into a beautiful watercolor painting.",
    "pixelart": "Convert to high-quality pixel art style.",
    "sketch": "Refine into a professional pencil sketch.",
    "vibrant": "Enhance with vibrant, saturated colors and bold lines.",
}


def build_enhancement_prompt(style: str | None = None) -> str:
    """Return the prompt for ``style``; unknown or absent styles get the base prompt."""
    if not style or style == "none":
        return BASE_PROMPT
    return STYLE_PROMPTS.get(style, BASE_PROMPT)


@dataclasses.dataclass(frozen=True)
class EnhancementResult:
    image_data: str
    prompt: str


class EnhancementPipeline:
    """Rate-limited, deadline-bounded calls to the image-edit provider."""

    def __init__(
        self,
        limiter: rate_limit.RateLimiter,
        provider: enhance_provider.ImageEditProviderProtocol | None,
        max_image_bytes: int = image_validation.MAX_IMAGE_BYTES,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        size: str = DEFAULT_SIZE,
    ) -> None:
        """Initialize the pipeline.

        Args:
            limiter: Shared rate limiter; charged on the daily class.
            provider: Image-edit provider, or None when unconfigured.
            max_image_bytes: Maximum decoded image size.
            timeout: Seconds to wait for the provider before giving up.
            size: Target size requested from the provider.
        """
        self.limiter = limiter
        self.provider = provider
        self.max_image_bytes = max_image_bytes
        self.timeout = timeout
        self.size = size

    async def enhance(
        self,
        image_data: object,
        style: str | None,
        actor_key: str,
    ) -> EnhancementResult:
        """Enhance a drawing.

        Args:
            image_data: Base64 PNG data URL.
            style: Optional style key (watercolor, pixelart, sketch, vibrant).
            actor_key: Key the daily quota is charged to.

        Returns:
            EnhancementResult holding the enhanced image as a PNG data URL.

        Raises:
            MissingField: If no image data was supplied.
            RateLimited: If the actor's daily quota is exhausted.
            InvalidFormat: If the payload is not a PNG data URL.
            TooLarge: If the decoded image exceeds the size limit.
            EnhancementTimeout: If the provider misses the deadline.
            EnhancementFailed: If the provider call fails.
            NoEnhancementResult: If the provider returns no image.
        """
        if not image_data or not isinstance(image_data, str):
            raise errors.MissingField("Missing image data")

        decision = self.limiter.check(actor_key, rate_limit.QuotaClass.DAILY_ENHANCE)
        if not decision.allowed:
            raise errors.RateLimited(
                "Daily enhancement limit reached",
                retry_after=decision.retry_after,
            )

        buffer = image_validation.validate_png_payload(
            image_data, self.max_image_bytes, require_signature=False
        )

        if self.provider is None:
            raise errors.EnhancementFailed("Server misconfiguration", image_data)

        prompt = build_enhancement_prompt(style)
        try:
            b64 = await asyncio.wait_for(
                self.provider.edit(buffer, prompt, self.size, actor_key),
                timeout=self.timeout,
            )
        except TimeoutError as exc:
            logger.warning(
                "Enhancement for %s timed out after %ss", actor_key, self.timeout
            )
            raise errors.EnhancementTimeout(
                "Enhancement timeout", image_data
            ) from exc
        except errors.UpstreamFailure as exc:
            logger.warning("Enhancement for %s failed: %s", actor_key, exc)
            raise errors.EnhancementFailed(str(exc), image_data) from exc
        except Exception as exc:
            logger.exception("Enhancement for %s raised unexpectedly", actor_key)
            raise errors.EnhancementFailed(
                "Image enhancement failed", image_data
            ) from exc

        if not b64:
            raise errors.NoEnhancementResult("No enhanced image returned", image_data)

        return EnhancementResult(
            image_data=f"{image_validation.DATA_URL_PREFIX}{b64}",
            prompt=prompt,
        )
