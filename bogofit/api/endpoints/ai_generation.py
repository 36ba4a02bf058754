"""
AI generation endpoints backed by Gemini: virtual fitting images, garment
classification, fitting videos (as background jobs) and the video proxy.
"""
import base64
import binascii
import logging
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit
from uuid import uuid4

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from bogofit.core.config import settings
from bogofit.core.exceptions import GenerationError, ImageProxyError, ProviderNotConfiguredError
from bogofit.jobs.tasks import generate_video_task, record_video_task, video_task_key
from bogofit.schemas.virtual_fitting import (
    AIFittingResponseSchema,
    GarmentAnalysisRequestSchema,
    GarmentAnalysisResponseSchema,
    UploadedImage,
    VideoGenerationRequestSchema,
    VideoTaskSchema,
)
from bogofit.utils.fitting_workflow.samples import slot_for_category
from bogofit.utils.image_workflow import analyze_garment_category, generate_fitting_image
from bogofit.utils.redis import get_redis_client
from bogofit.utils.remote_images import is_http_url, open_remote_stream, parse_data_url, to_data_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{settings.API_V1_STR}/ai", tags=["AI Generation"])

GOOGLE_API_HOST = "generativelanguage.googleapis.com"


async def _optional_image(upload: Optional[UploadFile]) -> Optional[UploadedImage]:
    if upload is None:
        return None
    data = await upload.read()
    if not data:
        return None
    return UploadedImage(
        filename=upload.filename or "upload",
        content_type=upload.content_type or "image/jpeg",
        data=data,
    )


@router.post(
    "/virtual-fitting",
    response_model=AIFittingResponseSchema,
    summary="Generate Virtual Fitting Image",
    description="Dress the person in the garment (and optional accessory) with Gemini",
)
async def create_ai_fitting(
    person_image: Optional[UploadFile] = File(None),
    garment_image: Optional[UploadFile] = File(None),
    item_image: Optional[UploadFile] = File(None, description="Optional accessory (bag, hat, ...)"),
    product_title: Optional[str] = Form(None),
) -> AIFittingResponseSchema:
    """
    Raises:
        HTTPException: 400 if no image was sent, 500 if generation fails
    """
    person = await _optional_image(person_image)
    garment = await _optional_image(garment_image)
    item = await _optional_image(item_image)
    logger.info(
        f"[create_ai_fitting] person={person is not None}, garment={garment is not None}, "
        f"item={item is not None}, title={product_title}"
    )

    try:
        image_bytes, mime_type = await run_in_threadpool(
            generate_fitting_image, person, garment, item, product_title
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except ProviderNotConfiguredError as e:
        logger.error(f"[create_ai_fitting] {e}")
        raise HTTPException(status_code=500, detail={"error": "AI service not configured"})
    except GenerationError as e:
        raise HTTPException(status_code=500, detail={"error": str(e)})
    except Exception as e:
        logger.error(f"[create_ai_fitting] Error: {e}")
        raise HTTPException(status_code=500, detail={"error": str(e)})

    return AIFittingResponseSchema(
        image_url=to_data_url(image_bytes, mime_type),
        has_item=item is not None,
    )


@router.post(
    "/analyze-garment",
    response_model=GarmentAnalysisResponseSchema,
    summary="Classify Garment",
    description="Decide with Gemini whether a product image shows a top or a bottom",
)
async def analyze_garment(request: GarmentAnalysisRequestSchema) -> GarmentAnalysisResponseSchema:
    """
    Raises:
        HTTPException: 400 if the image is missing or malformed, 500 if analysis fails
    """
    try:
        if request.image.startswith("data:"):
            mime_type, data = parse_data_url(request.image)
        else:
            mime_type, data = "image/png", base64.b64decode(request.image, validate=True)
    except (ValueError, binascii.Error):
        raise HTTPException(status_code=400, detail={"error": "Image must be base64 data or a data: URL"})

    try:
        category = await run_in_threadpool(analyze_garment_category, data, mime_type, request.product_name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except ProviderNotConfiguredError as e:
        logger.error(f"[analyze_garment] {e}")
        raise HTTPException(status_code=500, detail={"error": "AI service not configured"})
    except Exception as e:
        logger.error(f"[analyze_garment] Error: {e}")
        raise HTTPException(status_code=500, detail={"error": "Failed to analyze image"})

    return GarmentAnalysisResponseSchema(category=category, slot=slot_for_category(category))


@router.post("/generate-video", response_model=VideoTaskSchema, status_code=202)
def create_video_task(request: VideoGenerationRequestSchema) -> VideoTaskSchema:
    """Queue a fitting video; poll GET /generate-video/{task_id} for the result."""
    task_id = str(uuid4())
    record_video_task(task_id, status="pending")
    generate_video_task.apply_async(
        kwargs={
            "task_id": task_id,
            "image_url": request.image_url,
            "prompt": request.prompt,
            "product_title": request.product_title,
        },
        countdown=0,
    )
    logger.info(f"[create_video_task] Queued {task_id}")
    return VideoTaskSchema(task_id=task_id, status="pending")


@router.get("/generate-video/{task_id}", response_model=VideoTaskSchema)
def get_video_task(task_id: str) -> VideoTaskSchema:
    data = get_redis_client().hgetall(video_task_key(task_id))
    if not data:
        raise HTTPException(status_code=404, detail={"error": f"Unknown video task: {task_id}"})
    return VideoTaskSchema(
        task_id=task_id,
        status=data.get("status", "pending"),
        video_url=data.get("video_url"),
        original_url=data.get("original_url"),
        error=data.get("error"),
    )


def with_api_key(url: str, api_key: str) -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query) if k != "key"]
    query.append(("key", api_key))
    return urlunsplit(parts._replace(query=urlencode(query)))


@router.get("/video-proxy", summary="Proxy a generated video")
async def video_proxy(url: str = Query(..., description="Video URL")) -> StreamingResponse:
    """Stream a generated video, authenticating Google API downloads with the API key."""
    if not is_http_url(url):
        raise HTTPException(status_code=400, detail={"error": "Video URL is required"})

    fetch_url = url
    if urlsplit(url).hostname == GOOGLE_API_HOST:
        if not settings.GOOGLE_API_KEY:
            raise HTTPException(status_code=500, detail={"error": "API key not configured"})
        fetch_url = with_api_key(url, settings.GOOGLE_API_KEY)

    try:
        content_type, body = await open_remote_stream(fetch_url, timeout=120, headers={"Accept": "video/*"})
    except ImageProxyError as e:
        # The message may carry the keyed URL
        logger.error(f"[video_proxy] Failed to fetch video (status {e.status_code})")
        raise HTTPException(
            status_code=502,
            detail={"error": "Failed to fetch video from source", "upstream_status": e.status_code},
        )

    return StreamingResponse(
        body,
        media_type=content_type or "video/mp4",
        headers={"Cache-Control": "public, max-age=31536000, immutable"},
    )
