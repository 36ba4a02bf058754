import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from bogofit.core.exceptions import ImageProxyError
from bogofit.schemas.virtual_fitting import SlotName, UploadedImage
from bogofit.services.file_validator import UNDECODABLE_MESSAGE, UNSUPPORTED_TYPE_MESSAGE
from bogofit.services.preview_resolver import PreviewResolver
from bogofit.utils.remote_images import to_data_url


@pytest.fixture
def resolver():
    return PreviewResolver(max_upload_bytes=10 * 1024 * 1024, site_base_url="http://shop.test/", proxy_url="")


class TestSetFromUpload:
    @pytest.mark.asyncio
    async def test_valid_upload_sets_file_and_preview(self, resolver, person_image):
        assert await resolver.set_from_upload(SlotName.HUMAN, person_image) is True

        slot = resolver[SlotName.HUMAN]
        assert slot.file == person_image
        assert slot.preview == to_data_url(person_image.data, "image/png")
        assert slot.validation_error == ""

    @pytest.mark.asyncio
    async def test_rejected_type_leaves_slot_untouched(self, resolver, person_image, png_bytes):
        await resolver.set_from_upload(SlotName.HUMAN, person_image)
        before = resolver[SlotName.HUMAN].preview

        gif = UploadedImage(filename="a.gif", content_type="image/gif", data=png_bytes)
        assert await resolver.set_from_upload(SlotName.HUMAN, gif) is False

        slot = resolver[SlotName.HUMAN]
        assert slot.validation_error == UNSUPPORTED_TYPE_MESSAGE
        assert slot.file == person_image
        assert slot.preview == before

    @pytest.mark.asyncio
    async def test_oversized_upload_is_rejected(self, person_image):
        resolver = PreviewResolver(max_upload_bytes=16)
        assert await resolver.set_from_upload(SlotName.GARMENT, person_image) is False
        assert resolver[SlotName.GARMENT].validation_error.startswith("File is too large.")
        assert resolver[SlotName.GARMENT].file is None

    @pytest.mark.asyncio
    async def test_undecodable_upload_clears_slot(self, resolver, person_image):
        await resolver.set_from_upload(SlotName.HUMAN, person_image)

        broken = UploadedImage(filename="broken.png", content_type="image/png", data=b"not really a png")
        assert await resolver.set_from_upload(SlotName.HUMAN, broken) is False

        slot = resolver[SlotName.HUMAN]
        assert slot.file is None
        assert slot.preview == ""
        assert slot.validation_error == UNDECODABLE_MESSAGE

    @pytest.mark.asyncio
    async def test_none_clears_slot(self, resolver, person_image):
        await resolver.set_from_upload(SlotName.HUMAN, person_image)
        await resolver.set_from_upload(SlotName.HUMAN, None)
        assert not resolver[SlotName.HUMAN].filled
        assert resolver[SlotName.HUMAN].preview == ""

    @pytest.mark.asyncio
    async def test_superseded_selection_is_dropped(self, resolver, person_image, garment_image):
        """Selecting A then B leaves B, even when A finishes decoding last."""
        release_first = asyncio.Event()

        async def slow_then_fast(data):
            if data == person_image.data:
                await release_first.wait()
            return ""

        with patch("bogofit.services.preview_resolver.check_decodable", side_effect=slow_then_fast):
            first = asyncio.create_task(resolver.set_from_upload(SlotName.HUMAN, person_image))
            await asyncio.sleep(0)
            assert await resolver.set_from_upload(SlotName.HUMAN, garment_image) is True
            release_first.set()
            assert await first is False

        slot = resolver[SlotName.HUMAN]
        assert slot.file == garment_image
        assert slot.preview == to_data_url(garment_image.data, "image/png")

    @pytest.mark.asyncio
    async def test_clear_during_decode_wins(self, resolver, person_image):
        release = asyncio.Event()

        async def slow(data):
            await release.wait()
            return ""

        with patch("bogofit.services.preview_resolver.check_decodable", side_effect=slow):
            pending = asyncio.create_task(resolver.set_from_upload(SlotName.HUMAN, person_image))
            await asyncio.sleep(0)
            resolver.clear(SlotName.HUMAN)
            release.set()
            assert await pending is False

        assert not resolver[SlotName.HUMAN].filled
        assert resolver[SlotName.HUMAN].preview == ""


class TestSetFromSample:
    @pytest.mark.asyncio
    async def test_sample_resolves_against_site(self, resolver, png_bytes):
        fetch = AsyncMock(return_value=(png_bytes, "image/png"))
        with patch("bogofit.services.preview_resolver.fetch_remote_media", fetch):
            assert await resolver.set_from_sample(SlotName.HUMAN, "/images/human/image2.jpg") is True

        fetch.assert_awaited_once_with("http://shop.test/images/human/image2.jpg")
        slot = resolver[SlotName.HUMAN]
        assert slot.preview == "/images/human/image2.jpg"
        assert slot.file.data == png_bytes
        assert slot.file.content_type == "image/png"

    @pytest.mark.asyncio
    async def test_failed_sample_keeps_preview(self, resolver):
        fetch = AsyncMock(side_effect=ImageProxyError("gone", status_code=404))
        with patch("bogofit.services.preview_resolver.fetch_remote_media", fetch):
            assert await resolver.set_from_sample(SlotName.LOWER, "/images/bottom/bottom001.png") is False

        slot = resolver[SlotName.LOWER]
        assert slot.preview == "/images/bottom/bottom001.png"
        assert slot.file is None

    @pytest.mark.asyncio
    async def test_sample_replaces_validation_error(self, resolver, png_bytes):
        resolver[SlotName.HUMAN].validation_error = UNSUPPORTED_TYPE_MESSAGE
        with patch("bogofit.services.preview_resolver.fetch_remote_media", AsyncMock(return_value=(png_bytes, "image/png"))):
            await resolver.set_from_sample(SlotName.HUMAN, "/images/human/image3.jpg")
        assert resolver.errors() == {}


class TestProductSeeding:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "category,expected",
        [("상의", SlotName.GARMENT), ("아우터", SlotName.GARMENT), ("원피스", SlotName.GARMENT), ("하의", SlotName.LOWER)],
    )
    async def test_category_picks_slot(self, resolver, png_bytes, category, expected):
        with patch("bogofit.services.preview_resolver.fetch_remote_media", AsyncMock(return_value=(png_bytes, "image/png"))):
            seeded = await resolver.seed_from_product_image("https://img.test/p.png", category, "Linen shirt")

        assert seeded == expected
        assert resolver[expected].filled
        assert resolver[expected].preview.startswith("data:image/png;base64,")

    @pytest.mark.asyncio
    async def test_other_category_seeds_nothing(self, resolver):
        fetch = AsyncMock()
        with patch("bogofit.services.preview_resolver.fetch_remote_media", fetch):
            assert await resolver.seed_from_product_image("https://img.test/p.png", "기타") is None
        fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_fetch_failure_is_skipped(self, resolver):
        fetch = AsyncMock(side_effect=ImageProxyError("boom"))
        with patch("bogofit.services.preview_resolver.fetch_remote_media", fetch):
            assert await resolver.seed_from_product_image("https://img.test/p.png", "상의") is None

        assert not resolver[SlotName.GARMENT].filled
        assert resolver.errors() == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content_type", ["image/gif", "image/avif"])
    async def test_product_image_outside_upload_allow_list_is_seeded(self, resolver, png_bytes, content_type):
        fetch = AsyncMock(return_value=(png_bytes, content_type))
        with patch("bogofit.services.preview_resolver.fetch_remote_media", fetch):
            seeded = await resolver.seed_from_product_image("https://img.test/p", "상의")

        assert seeded == SlotName.GARMENT
        assert resolver[SlotName.GARMENT].file.content_type == content_type
        assert resolver.errors() == {}

    @pytest.mark.asyncio
    async def test_undecodable_product_image_is_skipped(self, resolver):
        fetch = AsyncMock(return_value=(b"<html>not found</html>", "image/png"))
        with patch("bogofit.services.preview_resolver.fetch_remote_media", fetch):
            assert await resolver.seed_from_product_image("https://img.test/p.png", "상의") is None
        assert not resolver[SlotName.GARMENT].filled

    @pytest.mark.asyncio
    async def test_filled_slot_is_not_overwritten(self, resolver, garment_image, png_bytes):
        await resolver.set_from_upload(SlotName.GARMENT, garment_image)
        fetch = AsyncMock(return_value=(png_bytes, "image/png"))
        with patch("bogofit.services.preview_resolver.fetch_remote_media", fetch):
            assert await resolver.seed_from_product_image("https://img.test/p.png", "상의") is None
        assert resolver[SlotName.GARMENT].file == garment_image
        fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_changing_product_clears_slots(self, resolver, person_image, png_bytes):
        await resolver.set_from_upload(SlotName.HUMAN, person_image)
        with patch("bogofit.services.preview_resolver.fetch_remote_media", AsyncMock(return_value=(png_bytes, "image/png"))):
            seeded = await resolver.set_product_context("Denim pants", "하의", "https://img.test/pants.png")

        assert seeded == SlotName.LOWER
        assert not resolver[SlotName.HUMAN].filled
        assert resolver[SlotName.LOWER].filled


class TestResolveImage:
    @pytest.mark.asyncio
    async def test_data_url(self, resolver, png_bytes):
        image = await resolver.resolve_image(to_data_url(png_bytes, "image/png"), "x.png")
        assert image.data == png_bytes
        assert image.content_type == "image/png"

    @pytest.mark.asyncio
    async def test_external_url_goes_through_proxy(self, png_bytes):
        resolver = PreviewResolver(proxy_url="http://api.test/api/v1/image-proxy")
        fetch = AsyncMock(return_value=(png_bytes, "image/webp; charset=binary"))
        with patch("bogofit.services.preview_resolver.fetch_remote_media", fetch):
            image = await resolver.resolve_image("https://img.test/a b.webp", "x.webp")

        fetch.assert_awaited_once_with("http://api.test/api/v1/image-proxy?url=https%3A%2F%2Fimg.test%2Fa%20b.webp")
        assert image.content_type == "image/webp"

    @pytest.mark.asyncio
    async def test_non_image_content_type_defaults_to_jpeg(self, resolver, png_bytes):
        with patch("bogofit.services.preview_resolver.fetch_remote_media", AsyncMock(return_value=(png_bytes, "application/octet-stream"))):
            image = await resolver.resolve_image("https://img.test/a", "a")
        assert image.content_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_unsupported_reference(self, resolver):
        assert await resolver.resolve_image("ftp://img.test/a.png", "a") is None
