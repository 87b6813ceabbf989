import logging
import time
from functools import lru_cache
from typing import Optional, Tuple

import httpx
from google import genai
from google.genai import types

from app.core.config import get_settings
from app.core.errors import ConfigurationError, UpstreamError
from app.core.models_catalog import ModelSpec


logger = logging.getLogger(__name__)

STYLE_INSTRUCTION = (
    "Generate an image that matches the style and characteristics of the provided reference image."
)


@lru_cache
def get_client() -> genai.Client:
    settings = get_settings()
    if not settings.AI_KEY:
        raise ConfigurationError("AI_KEY is not configured")
    return genai.Client(api_key=settings.AI_KEY)


def download_image(image_url: str) -> Tuple[bytes, str]:
    """Fetch the style reference image. Returns (bytes, mime type)."""
    try:
        with httpx.Client(timeout=30.0, follow_redirects=True) as http_client:
            response = http_client.get(image_url)
            response.raise_for_status()
    except httpx.HTTPError as e:
        raise UpstreamError(f"Failed to download image: {e}") from e
    if not response.content:
        raise UpstreamError("Failed to download image: empty response")
    mime_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
    return response.content, mime_type or "image/png"


def build_prompt(prompt: str, output_style: Optional[str] = None) -> str:
    text = f"{prompt}\n\n{STYLE_INSTRUCTION}"
    if output_style:
        text = f"{text} Output style: {output_style}."
    return text


def generate_image(
    prompt: str,
    style_image_url: str,
    model: ModelSpec,
    output_style: Optional[str] = None,
) -> Tuple[bytes, str]:
    """
    Generate an image with the given model, conditioned on a style reference image.

    Returns:
        Tuple of (image bytes, mime_type)

    Raises:
        ConfigurationError: AI_KEY is missing
        UpstreamError: download failed, the gateway failed or returned no image
    """
    client = get_client()
    style_bytes, style_mime = download_image(style_image_url)

    parts = [
        build_prompt(prompt, output_style),
        types.Part.from_bytes(data=style_bytes, mime_type=style_mime),
    ]

    started = time.monotonic()
    logger.info("Generating image with model %s", model.type)
    try:
        response = client.models.generate_content(
            model=model.type,
            contents=parts,
            config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
        )
    except Exception as e:
        raise UpstreamError(f"Image generation failed: {e}") from e

    # First inline image of the response wins
    for part in response.parts or []:
        inline = getattr(part, "inline_data", None)
        if inline is not None and inline.data:
            logger.info("Generation completed in %.0fms", (time.monotonic() - started) * 1000)
            return inline.data, inline.mime_type or "image/png"

    raise UpstreamError("No image generated in response")
