"""
Virtual fitting endpoints: server-side fitting runs, sample catalog and the
image proxy used to re-upload external product images.
"""
import logging
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, Query, Response, UploadFile

from bogofit.core.config import settings
from bogofit.core.exceptions import ImageProxyError
from bogofit.schemas.virtual_fitting import (
    FittingRunResponseSchema,
    SampleCatalogSchema,
    SlotErrorSchema,
    SlotName,
    UploadedImage,
)
from bogofit.services.virtual_fitting_service import FittingSession
from bogofit.utils.fitting_workflow.samples import (
    BACKGROUND_SAMPLES,
    GARMENT_SAMPLES,
    HUMAN_SAMPLES,
    LOWER_SAMPLES,
    find_sample,
)
from bogofit.utils.remote_images import fetch_remote_media, is_http_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix=settings.API_V1_STR, tags=["Virtual Fitting"])


async def _to_uploaded_image(upload: UploadFile) -> UploadedImage:
    return UploadedImage(
        filename=upload.filename or "upload",
        content_type=upload.content_type or "",
        data=await upload.read(),
    )


@router.get("/virtual-fitting/samples", response_model=SampleCatalogSchema)
def list_samples() -> SampleCatalogSchema:
    """Curated sample images that can be picked instead of uploading."""
    return SampleCatalogSchema(
        human=HUMAN_SAMPLES,
        garment=GARMENT_SAMPLES,
        lower=LOWER_SAMPLES,
        background=BACKGROUND_SAMPLES,
    )


@router.post(
    "/virtual-fitting/try-on",
    response_model=FittingRunResponseSchema,
    summary="Run Virtual Fitting",
    description="Fill the fitting slots from uploads, samples or the product image and run the fitting workflow",
)
async def run_virtual_fitting(
    human_file: Optional[UploadFile] = File(None, description="Person image (at least the upper body)"),
    garment_file: Optional[UploadFile] = File(None, description="Top / outer / dress image"),
    lower_file: Optional[UploadFile] = File(None, description="Bottom image"),
    background_file: Optional[UploadFile] = File(None, description="Background image"),
    human_sample: Optional[str] = Form(None, description="Sample id for the person slot"),
    garment_sample: Optional[str] = Form(None),
    lower_sample: Optional[str] = Form(None),
    background_sample: Optional[str] = Form(None),
    is_pro: bool = Form(False, description="Also generate a video from the image"),
    product_title: Optional[str] = Form(None),
    product_category: Optional[str] = Form(None),
    current_image: Optional[str] = Form(None, description="Current product image URL"),
) -> FittingRunResponseSchema:
    """
    Run one fitting.

    Upstream failures are reported in the response body; only rejected
    inputs produce an HTTP error.

    Raises:
        HTTPException: 400 if a slot input is invalid
    """
    session = FittingSession()
    session.pro_mode = is_pro

    await session.slots.set_product_context(product_title, product_category, current_image)

    samples = {
        SlotName.HUMAN: human_sample,
        SlotName.GARMENT: garment_sample,
        SlotName.LOWER: lower_sample,
        SlotName.BACKGROUND: background_sample,
    }
    for name, sample_id in samples.items():
        if not sample_id:
            continue
        found = find_sample(sample_id)
        if found is None or found[0] != name:
            raise HTTPException(status_code=400, detail={"error": f"Unknown {name.value} sample: {sample_id}"})
        await session.slots.set_from_sample(name, found[1].src)

    uploads = {
        SlotName.HUMAN: human_file,
        SlotName.GARMENT: garment_file,
        SlotName.LOWER: lower_file,
        SlotName.BACKGROUND: background_file,
    }
    for name, upload in uploads.items():
        if upload is not None:
            await session.slots.set_from_upload(name, await _to_uploaded_image(upload))

    slot_errors = [SlotErrorSchema(slot=name, error=error) for name, error in session.slots.errors().items()]
    if slot_errors:
        logger.info(f"[run_virtual_fitting] Rejected inputs: {slot_errors}")
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid image input", "slot_errors": [e.model_dump(mode="json") for e in slot_errors]},
        )

    result = await session.run()
    logger.info(f"[run_virtual_fitting] Finished in state {session.state.value}: {session.status_message}")

    return FittingRunResponseSchema(
        state=session.state,
        status=session.status_message,
        tone=session.status_tone,
        progress=session.progress_state,
        result=result,
    )


@router.get("/image-proxy", summary="Proxy an external image")
async def image_proxy(url: str = Query(..., description="Absolute image URL")) -> Response:
    """
    Fetch an external image and return its bytes with the original content
    type, so that product images can be re-uploaded as fitting inputs.
    """
    if not is_http_url(url):
        raise HTTPException(status_code=400, detail={"error": "A valid http(s) image URL is required"})

    try:
        data, content_type = await fetch_remote_media(url)
    except ImageProxyError as e:
        logger.error(f"[image_proxy] {e}")
        raise HTTPException(status_code=502, detail={"error": str(e), "upstream_status": e.status_code})

    return Response(
        content=data,
        media_type=content_type,
        headers={"Cache-Control": "public, max-age=86400"},
    )
