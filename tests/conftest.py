"""Shared fixtures: synthetic framed artwork images."""
import io
from typing import Tuple

import boto3
import pytest
from PIL import Image, ImageDraw

from frame_removal.config import FrameDetectionConfig
from frame_removal.detector import FrameDetector

Color = Tuple[int, int, int]

BLACK = (0, 0, 0)
ORANGE = (255, 200, 100)


def encode(image: Image.Image, fmt: str = 'PNG', **options) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt, **options)
    return buffer.getvalue()


def framed_image(
    width: int,
    height: int,
    border: int,
    frame_color: Color = BLACK,
    artwork_color: Color = ORANGE,
    mode: str = 'RGB'
) -> Image.Image:
    """Solid artwork rectangle inset by ``border`` pixels inside a solid frame."""
    image = Image.new('RGB', (width, height), frame_color)
    draw = ImageDraw.Draw(image)
    draw.rectangle(
        [border, border, width - border - 1, height - border - 1],
        fill=artwork_color
    )
    return image.convert(mode) if mode != 'RGB' else image


def framed_bytes(width: int, height: int, border: int, fmt: str = 'PNG', **kwargs) -> bytes:
    options = kwargs.pop('options', {})
    return encode(framed_image(width, height, border, **kwargs), fmt, **options)


def solid_bytes(width: int, height: int, color: Color = (200, 150, 100), fmt: str = 'PNG') -> bytes:
    return encode(Image.new('RGB', (width, height), color), fmt)


def decode(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


@pytest.fixture
def detector() -> FrameDetector:
    return FrameDetector()


@pytest.fixture
def config() -> FrameDetectionConfig:
    return FrameDetectionConfig()


@pytest.fixture
def framed_png() -> bytes:
    return framed_bytes(500, 500, 50)


@pytest.fixture
def solid_png() -> bytes:
    return solid_bytes(400, 300)


class InMemoryObjectStore:
    """Dict-backed stand-in for S3ObjectStore."""

    def __init__(self):
        self.objects = {}

    def get(self, key):
        stored = self.objects.get(key)
        return stored['body'] if stored else None

    def put(self, key, data, content_type=None, metadata=None):
        self.objects[key] = {'body': data, 'content_type': content_type, 'metadata': metadata or {}}

    def exists(self, key):
        return key in self.objects

    def delete(self, key):
        return self.objects.pop(key, None) is not None


@pytest.fixture
def s3_client():
    return boto3.client(
        's3',
        region_name='us-east-1',
        aws_access_key_id='testing',
        aws_secret_access_key='testing',
    )
