import io

import pytest
from PIL import Image

from core.models import SourceFile, SpotFields
from core.services.photo_batch import PhotoBatch
from infrastructure.image_service import ImageNormalizer
from infrastructure.memory_backend import InMemoryBlobStorage, InMemorySpotBackend
from infrastructure.photo_service import PhotoUploadService
from infrastructure.preview_store import PreviewStore
from infrastructure.settings import JsonSettings

LIST_ID = "list-1"


def encode_image(width, height, fmt="JPEG", mode="RGB", color=(200, 120, 40)):
    """Return encoded bytes of a solid-color image."""
    if mode == "RGBA" and len(color) == 3:
        color = (*color, 128)
    img = Image.new(mode, (width, height), color)
    buf = io.BytesIO()
    img.save(buf, fmt)
    return buf.getvalue()


@pytest.fixture
def make_source():
    """Factory for SourceFile test inputs."""

    def _make(width=640, height=480, fmt="JPEG", media_type="image/jpeg", name=None, mode="RGB"):
        data = encode_image(width, height, fmt=fmt, mode=mode)
        return SourceFile(name=name or f"photo_{width}x{height}.{fmt.lower()}", data=data, media_type=media_type)

    return _make


@pytest.fixture
def settings():
    return JsonSettings.defaults()


@pytest.fixture
def normalizer(settings):
    return ImageNormalizer(settings)


@pytest.fixture
def storage():
    return InMemoryBlobStorage(chunk_size=256)


@pytest.fixture
def backend():
    return InMemorySpotBackend()


@pytest.fixture
def uploader(storage, backend, normalizer, settings):
    return PhotoUploadService(storage, backend, normalizer, settings)


@pytest.fixture
def previews(tmp_path):
    return PreviewStore(cache_dir=tmp_path / "previews")


@pytest.fixture
def batch(previews):
    return PhotoBatch(previews)


@pytest.fixture
def fields():
    return SpotFields(
        name="Kebab Haus",
        category="Döner",
        address="Hauptstraße 1",
        description="Late night favourite",
        comment="Great sauce",
        ratings={"Bread": 4, "Meat": 5, "Sauce": 5, "Freshness": 0, "Value": 3},
    )


@pytest.fixture
def existing_spot(backend):
    """A spot that already exists in LIST_ID; returns its id."""
    spot_id = "spot-existing"
    backend.spots[spot_id] = {
        "id": spot_id,
        "list_id": LIST_ID,
        "name": "Existing Spot",
        "cover_photo_url": None,
    }
    backend.ratings[spot_id] = {"score": 8.0, "criteria": {}, "comment": None}
    return spot_id
