import io

import pytest
from PIL import Image

from bogofit.schemas.virtual_fitting import UploadedImage


def make_png(size=(8, 8), color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def person_image(png_bytes):
    return UploadedImage(filename="person.png", content_type="image/png", data=png_bytes)


@pytest.fixture
def garment_image():
    return UploadedImage(filename="shirt.png", content_type="image/png", data=make_png(color=(10, 10, 220)))


@pytest.fixture
def background_image():
    return UploadedImage(filename="bg.png", content_type="image/png", data=make_png(color=(10, 200, 10)))
