import asyncio
import logging
import time
from typing import Optional
from urllib.parse import quote

import google.genai as genai
from google.genai import types

from bogofit.core.config import settings
from bogofit.core.exceptions import GenerationError, ProviderNotConfiguredError
from bogofit.schemas.virtual_fitting import UploadedImage
from bogofit.utils.fitting_workflow.samples import CATEGORY_BOTTOM, CATEGORY_TOP
from bogofit.utils.image_workflow.prompt import (
    build_fitting_prompt,
    build_garment_analysis_prompt,
    build_video_prompt,
)
from bogofit.utils.remote_images import fetch_remote_media, parse_data_url

logger = logging.getLogger(__name__)

VIDEO_DURATION_SECONDS = 6
VIDEO_ASPECT_RATIO = "9:16"


def _get_gemini_client() -> genai.Client:
    """Initialize and return Gemini API client."""
    api_key = settings.GOOGLE_API_KEY
    if not api_key:
        raise ProviderNotConfiguredError("GOOGLE_API_KEY is not configured in settings")

    return genai.Client(api_key=api_key)


def generate_fitting_image(
    person: Optional[UploadedImage],
    garment: Optional[UploadedImage],
    item: Optional[UploadedImage] = None,
    product_title: Optional[str] = None,
) -> tuple[bytes, str]:
    """
    Generate a virtual fitting image with Gemini.

    Args:
        person: Person image
        garment: Garment image
        item: Optional accessory image
        product_title: Product name used in the prompt

    Returns:
        Tuple of (image_bytes, mime_type)

    Raises:
        ValueError: If no image is provided
        ProviderNotConfiguredError: If the API key is missing
        GenerationError: If Gemini returns no image
    """
    if not (person or garment or item):
        raise ValueError("At least one image is required")

    client = _get_gemini_client()

    prompt = build_fitting_prompt(
        has_person=person is not None,
        has_garment=garment is not None,
        has_item=item is not None,
        product_title=product_title,
    )
    contents = [types.Part.from_text(text=prompt)]
    for image in (person, garment, item):
        if image is not None:
            contents.append(types.Part.from_bytes(data=image.data, mime_type=image.content_type or "image/jpeg"))

    logger.info(
        f"[generate_fitting_image] Sending {len(contents)} parts to {settings.GEMINI_IMAGE_MODEL} "
        f"(person={person is not None}, garment={garment is not None}, item={item is not None})"
    )

    config = types.GenerateContentConfig(
        temperature=0.3,
        top_p=0.8,
        top_k=20,
        candidate_count=1,
        response_modalities=["IMAGE"],
    )

    image_bytes = b""
    mime_type = "image/png"
    for chunk in client.models.generate_content_stream(
        model=settings.GEMINI_IMAGE_MODEL,
        contents=contents,
        config=config,
    ):
        if not chunk.candidates or not chunk.candidates[0].content or not chunk.candidates[0].content.parts:
            continue
        for part in chunk.candidates[0].content.parts:
            if part.inline_data and part.inline_data.data:
                image_bytes = part.inline_data.data
                mime_type = part.inline_data.mime_type or mime_type
                logger.info(f"[generate_fitting_image] Received: {len(image_bytes)} bytes")

    if not image_bytes:
        raise GenerationError("No image generated from AI")

    return image_bytes, mime_type


def parse_garment_category(text: str) -> str:
    """Reduce the model answer to top or bottom; anything unclear counts as a top."""
    normalized = text.strip().lower()
    if CATEGORY_BOTTOM in normalized or "bottom" in normalized:
        return CATEGORY_BOTTOM
    return CATEGORY_TOP


def analyze_garment_category(
    image_data: bytes,
    mime_type: str = "image/png",
    product_name: Optional[str] = None,
) -> str:
    """
    Ask Gemini whether a product image shows a top or a bottom garment.

    Returns:
        CATEGORY_TOP or CATEGORY_BOTTOM

    Raises:
        ValueError: If the image is empty
        ProviderNotConfiguredError: If the API key is missing
    """
    if not image_data:
        raise ValueError("Image is required")

    client = _get_gemini_client()
    response = client.models.generate_content(
        model=settings.GEMINI_TEXT_MODEL,
        contents=[
            types.Part.from_text(text=build_garment_analysis_prompt(product_name)),
            types.Part.from_bytes(data=image_data, mime_type=mime_type),
        ],
    )
    answer = response.text or ""
    category = parse_garment_category(answer)
    logger.info(f"[analyze_garment_category] Model answered {answer.strip()!r} -> {category}")
    return category


def _load_source_image(image_url: str) -> tuple[bytes, str]:
    if image_url.startswith("data:"):
        mime_type, data = parse_data_url(image_url)
        return data, mime_type
    data, content_type = asyncio.run(fetch_remote_media(image_url, timeout=30))
    return data, content_type.split(";")[0] or "image/png"


def video_proxy_url(video_uri: str) -> str:
    return f"{settings.API_V1_STR}/ai/video-proxy?url={quote(video_uri, safe='')}"


def generate_fitting_video(
    image_url: str,
    prompt: Optional[str] = None,
    product_title: Optional[str] = None,
) -> dict:
    """
    Turn a fitting image into a short rotating showcase video with Veo.

    Blocks while polling the long-running operation; meant to run in a
    background worker.

    Returns:
        Dict with video_url (served through the video proxy), original_url and prompt
    """
    video_prompt = prompt or build_video_prompt(product_title)

    if not settings.GOOGLE_API_KEY:
        logger.warning("[generate_fitting_video] GOOGLE_API_KEY not configured, returning mock video")
        return {
            "video_url": settings.MOCK_VIDEO_URL,
            "original_url": settings.MOCK_VIDEO_URL,
            "prompt": video_prompt,
        }

    client = _get_gemini_client()
    image_bytes, mime_type = _load_source_image(image_url)
    logger.info(f"[generate_fitting_video] Source image: {len(image_bytes)} bytes ({mime_type})")

    operation = client.models.generate_videos(
        model=settings.VEO_VIDEO_MODEL,
        prompt=video_prompt,
        image=types.Image(image_bytes=image_bytes, mime_type=mime_type),
        config=types.GenerateVideosConfig(
            aspect_ratio=VIDEO_ASPECT_RATIO,
            duration_seconds=VIDEO_DURATION_SECONDS,
            person_generation="allow_adult",
        ),
    )
    logger.info(f"[generate_fitting_video] Operation started: {operation.name}")

    while not operation.done:
        time.sleep(settings.VIDEO_POLL_INTERVAL_SECONDS)
        operation = client.operations.get(operation)

    if operation.error:
        raise GenerationError(f"Video generation failed: {operation.error}")

    videos = operation.response.generated_videos if operation.response else None
    video_uri = videos[0].video.uri if videos and videos[0].video else None
    if not video_uri:
        raise GenerationError("No video URL returned from generation")

    logger.info(f"[generate_fitting_video] Completed: {video_uri}")
    return {
        "video_url": video_proxy_url(video_uri),
        "original_url": video_uri,
        "prompt": video_prompt,
    }
