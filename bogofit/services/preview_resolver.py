"""
Slot state and preview resolution for the fitting form.

Every slot keeps its preview consistent with its current file. Uploads are
validated before they touch the slot; decoding runs asynchronously and a
per-slot generation counter drops completions that were superseded by a
newer selection.
"""
import logging
import time
from typing import Optional
from urllib.parse import quote

from bogofit.core.config import settings
from bogofit.core.exceptions import ImageProxyError
from bogofit.schemas.virtual_fitting import SlotName, UploadedImage
from bogofit.services.file_validator import check_decodable, validate_file
from bogofit.utils.fitting_workflow.samples import slot_for_category
from bogofit.utils.remote_images import (
    fetch_remote_media,
    is_http_url,
    parse_data_url,
    to_data_url,
)

logger = logging.getLogger(__name__)


class UploadSlot:
    def __init__(self, name: SlotName):
        self.name = name
        self.file: Optional[UploadedImage] = None
        self.preview = ""
        self.validation_error = ""
        self.generation = 0

    @property
    def filled(self) -> bool:
        return self.file is not None

    def clear(self) -> None:
        self.generation += 1
        self.file = None
        self.preview = ""
        self.validation_error = ""

    def __repr__(self) -> str:
        return f"<UploadSlot(name={self.name.value}, filled={self.filled}, error={self.validation_error!r})>"


class PreviewResolver:
    """Owns the four upload slots and every way they can be filled."""

    def __init__(
        self,
        max_upload_bytes: Optional[int] = settings.UPLOAD_MAX_SIZE_BYTES,
        site_base_url: str = settings.SITE_BASE_URL,
        proxy_url: str = settings.IMAGE_PROXY_URL,
    ):
        self.slots = {name: UploadSlot(name) for name in SlotName}
        self.max_upload_bytes = max_upload_bytes
        self.site_base_url = site_base_url.rstrip("/")
        self.proxy_url = proxy_url
        self.product_title: Optional[str] = None
        self.product_category: Optional[str] = None
        self.current_image: Optional[str] = None

    def __getitem__(self, name: SlotName) -> UploadSlot:
        return self.slots[name]

    def files(self) -> dict[SlotName, Optional[UploadedImage]]:
        return {name: slot.file for name, slot in self.slots.items()}

    def errors(self) -> dict[SlotName, str]:
        return {name: slot.validation_error for name, slot in self.slots.items() if slot.validation_error}

    def clear(self, name: SlotName) -> None:
        self.slots[name].clear()

    def clear_all(self) -> None:
        for slot in self.slots.values():
            slot.clear()

    async def set_from_upload(self, name: SlotName, image: Optional[UploadedImage]) -> bool:
        """
        Put a user-selected image into a slot.

        Returns:
            True if the slot now holds the image, False if it was rejected
            or superseded by a newer selection
        """
        slot = self.slots[name]
        if image is None:
            slot.clear()
            return False

        slot.validation_error = ""
        error = validate_file(image, self.max_upload_bytes)
        if error:
            logger.info(f"[set_from_upload] {name.value}: rejected {image.filename}: {error}")
            slot.validation_error = error
            return False

        slot.generation += 1
        generation = slot.generation
        decode_error = await check_decodable(image.data)
        if slot.generation != generation:
            logger.debug(f"[set_from_upload] {name.value}: dropping superseded selection {image.filename}")
            return False

        if decode_error:
            slot.file = None
            slot.preview = ""
            slot.validation_error = decode_error
            return False

        slot.file = image
        slot.preview = to_data_url(image.data, image.content_type)
        return True

    async def set_from_sample(self, name: SlotName, image_ref: str) -> bool:
        """
        Select a curated sample. Samples are known-good, so the preview is set
        right away and no validation runs; the bytes are fetched afterwards
        to become the slot's file.
        """
        slot = self.slots[name]
        slot.generation += 1
        generation = slot.generation
        slot.validation_error = ""
        slot.file = None
        slot.preview = image_ref

        image = await self.resolve_image(image_ref, f"sample-{int(time.time() * 1000)}.jpg")
        if slot.generation != generation:
            return False
        if image is None:
            # Keep the preview; the run will report the missing file
            logger.warning(f"[set_from_sample] {name.value}: could not load sample {image_ref}")
            return False

        slot.file = image
        return True

    async def seed_from_product_image(
        self,
        remote_url: Optional[str],
        category: Optional[str],
        product_title: Optional[str] = None,
    ) -> Optional[SlotName]:
        """
        Fill the slot matching the product category with the product image,
        as if the user had uploaded it. Only empty slots are seeded. Any
        failure is logged and skipped.

        Returns:
            The seeded slot, or None if nothing was seeded
        """
        name = slot_for_category(category)
        if not remote_url or name is None:
            return None

        slot = self.slots[name]
        if slot.filled:
            return None

        generation = slot.generation
        image = await self.resolve_image(remote_url, f"{product_title or 'product'}.jpg")
        if image is None:
            logger.warning(f"[seed_from_product_image] Skipping auto-fill of {name.value} from {remote_url}")
            return None

        # Product images skip the upload allow-list; anything Pillow can decode is accepted
        error = await check_decodable(image.data)
        if error:
            logger.warning(f"[seed_from_product_image] Product image unusable for {name.value}: {error}")
            return None

        if slot.generation != generation or slot.filled:
            return None

        slot.generation += 1
        slot.file = image
        slot.preview = to_data_url(image.data, image.content_type)
        slot.validation_error = ""
        logger.info(f"[seed_from_product_image] Seeded {name.value} from product image ({image.size} bytes)")
        return name

    async def set_product_context(
        self,
        product_title: Optional[str],
        product_category: Optional[str],
        current_image: Optional[str],
    ) -> Optional[SlotName]:
        """Switch to another product: drop every slot and seed from its image."""
        if (product_title, product_category, current_image) != (
            self.product_title,
            self.product_category,
            self.current_image,
        ):
            self.clear_all()
        self.product_title = product_title
        self.product_category = product_category
        self.current_image = current_image
        return await self.seed_from_product_image(current_image, product_category, product_title)

    def _source_url(self, ref: str) -> str:
        if ref.startswith("/"):
            return f"{self.site_base_url}{ref}"
        if self.proxy_url:
            return f"{self.proxy_url}?url={quote(ref, safe='')}"
        return ref

    async def resolve_image(self, ref: str, filename: str) -> Optional[UploadedImage]:
        """
        Load an image reference (site-relative path, external URL or data: URL)
        as an uploadable image. Returns None when it cannot be loaded.
        """
        if ref.startswith("data:"):
            try:
                mime_type, data = parse_data_url(ref)
            except ValueError as e:
                logger.error(f"[resolve_image] Bad data URL: {e}")
                return None
            return UploadedImage(filename=filename, content_type=mime_type, data=data)

        url = self._source_url(ref)
        if not is_http_url(url):
            logger.error(f"[resolve_image] Unsupported image reference: {ref}")
            return None

        try:
            data, content_type = await fetch_remote_media(url)
        except ImageProxyError as e:
            logger.error(f"[resolve_image] Image download failed: {e}")
            return None

        content_type = content_type.split(";")[0].strip() or "image/jpeg"
        if not content_type.startswith("image/"):
            content_type = "image/jpeg"
        return UploadedImage(filename=filename, content_type=content_type, data=data)
