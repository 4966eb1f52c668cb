"""Pure image operations: decoding, preprocessing, edge maps and re-encoding."""
import io
import math
import logging
from dataclasses import dataclass
from typing import Tuple, Optional

import cv2
import numpy as np
from PIL import Image

from .config import FrameDetectionConfig
from .state import BoundingBox, ImageDimensions, ZERO_DIMENSIONS

logger = logging.getLogger(__name__)

# Gaussian taps below this fraction of the peak are dropped from the blur kernel
BLUR_MIN_AMPLITUDE = 0.2

FALLBACK_FORMAT = 'PNG'

_DECODE_ERRORS = (OSError, ValueError, SyntaxError, EOFError, Image.DecompressionBombError)


class ImageProcessingError(Exception):
    """Raised when image processing operations fail."""
    pass


class DecodeError(ImageProcessingError):
    """Raised when bytes cannot be decoded into an image with known dimensions."""
    pass


@dataclass(frozen=True)
class DecodedImage:
    """A fully loaded source image together with its container format."""
    image: Image.Image
    format: Optional[str]

    @property
    def dimensions(self) -> ImageDimensions:
        width, height = self.image.size
        return ImageDimensions(width, height)


def decode_image(data: bytes) -> DecodedImage:
    """
    Decode encoded image bytes.

    Args:
        data: Encoded image (JPEG, PNG, WebP, ...)

    Returns:
        DecodedImage with pixels loaded

    Raises:
        DecodeError: If the bytes are not a decodable image
    """
    if not data:
        raise DecodeError("Empty image buffer")

    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except _DECODE_ERRORS as e:
        raise DecodeError(f"Could not decode image: {str(e)}") from e

    width, height = image.size
    if width <= 0 or height <= 0:
        raise DecodeError("Could not determine image dimensions")

    return DecodedImage(image=image, format=image.format)


def try_decode(data: bytes) -> Tuple[Optional[DecodedImage], Optional[DecodeError]]:
    """
    Decode without raising.

    Returns:
        (decoded, None) on success, (None, error) on failure
    """
    try:
        return decode_image(data), None
    except DecodeError as e:
        return None, e


def read_dimensions(data: bytes) -> ImageDimensions:
    """
    Read image dimensions from the header only.

    Returns:
        ImageDimensions, or 0x0 when the header is unreadable
    """
    if not data:
        return ZERO_DIMENSIONS
    try:
        with Image.open(io.BytesIO(data)) as image:
            width, height = image.size
        return ImageDimensions(width, height)
    except _DECODE_ERRORS as e:
        logger.debug(f"Header read failed: {e}")
        return ZERO_DIMENSIONS


def to_grayscale(image: Image.Image) -> np.ndarray:
    """
    Convert an image to single-channel luminance.

    Alpha is ignored; palette and CMYK images are expanded to RGB first.
    """
    if image.mode == 'L':
        return np.asarray(image, dtype=np.uint8)
    if image.mode in ('I;16', 'I;16B', 'I;16L', 'I', 'F'):
        # High bit depth: rescale to 8 bits rather than clip
        wide = np.asarray(image, dtype=np.float64)
        peak = wide.max() if wide.size else 0.0
        if peak > 255.0:
            wide = wide * (255.0 / peak)
        return np.clip(wide, 0, 255).astype(np.uint8)

    rgb = np.asarray(image.convert('RGB'), dtype=np.uint8)
    return cv2.cvtColor(rgb, cv2.COLOR_RGB2GRAY)


def blur_kernel_size(sigma: float) -> int:
    """Odd kernel width for a Gaussian of ``sigma`` truncated at BLUR_MIN_AMPLITUDE."""
    if sigma <= 0:
        return 1
    radius = int(math.floor(sigma * math.sqrt(2.0 * math.log(1.0 / BLUR_MIN_AMPLITUDE))))
    return 2 * radius + 1


def blur(gray: np.ndarray, kernel_size: float) -> np.ndarray:
    """
    Gaussian blur with sigma = kernel_size / 2.

    Args:
        gray: Grayscale image array
        kernel_size: Configured blur size; 0 disables blurring

    Returns:
        Blurred uint8 array of the same shape
    """
    sigma = kernel_size / 2.0
    ksize = blur_kernel_size(sigma)
    if ksize <= 1:
        return gray
    return cv2.GaussianBlur(gray, (ksize, ksize), sigmaX=sigma, sigmaY=sigma,
                            borderType=cv2.BORDER_REPLICATE)


def preprocess(image: Image.Image, config: FrameDetectionConfig) -> np.ndarray:
    """Reduce an image to blurred single-channel intensity."""
    gray = to_grayscale(image)
    return blur(gray, config.blur_kernel_size)


def compute_edge_map(gray: np.ndarray, threshold: float) -> np.ndarray:
    """
    Binary edge map from 3x3 Sobel gradient magnitude.

    Args:
        gray: Blurred grayscale image
        threshold: A pixel is an edge when its magnitude exceeds this value

    Returns:
        uint8 array, 255 for edge pixels and 0 elsewhere. The outermost
        1-pixel border is always 0.
    """
    height, width = gray.shape[:2]
    edges = np.zeros((height, width), dtype=np.uint8)
    if height < 3 or width < 3:
        return edges

    gx = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
    magnitude = cv2.magnitude(gx, gy)

    interior = magnitude[1:-1, 1:-1] > threshold
    edges[1:-1, 1:-1][interior] = 255
    return edges


def build_edge_map(image: Image.Image, config: FrameDetectionConfig) -> np.ndarray:
    """Preprocess an image and compute its edge map."""
    gray = preprocess(image, config)
    return compute_edge_map(gray, config.canny_low_threshold)


def encode_image(
    image: Image.Image,
    image_format: Optional[str],
    config: FrameDetectionConfig,
    icc_profile: Optional[bytes] = None
) -> Tuple[bytes, str]:
    """
    Encode an image, keeping its source format where possible.

    JPEG is written at ``config.jpeg_quality`` with optimized Huffman tables,
    PNG at ``config.png_compress_level``. Formats Pillow cannot write fall
    back to PNG.

    Returns:
        (encoded bytes, format name actually written)

    Raises:
        ImageProcessingError: If encoding fails
    """
    fmt = (image_format or FALLBACK_FORMAT).upper()
    Image.init()
    if fmt not in Image.SAVE:
        logger.debug(f"No encoder for {fmt}, writing {FALLBACK_FORMAT}")
        fmt = FALLBACK_FORMAT

    options = {}
    if icc_profile:
        options['icc_profile'] = icc_profile

    if fmt in ('JPEG', 'MPO'):
        fmt = 'JPEG'
        if image.mode not in ('RGB', 'L', 'CMYK'):
            image = image.convert('RGB')
        options.update(quality=config.jpeg_quality, optimize=True)
    elif fmt == 'PNG':
        options.update(compress_level=config.png_compress_level)
    elif fmt == 'WEBP':
        options.update(quality=config.jpeg_quality)

    try:
        buffer = io.BytesIO()
        image.save(buffer, format=fmt, **options)
        return buffer.getvalue(), fmt
    except (OSError, ValueError, KeyError) as e:
        logger.error(f"Error encoding {fmt} image: {e}")
        raise ImageProcessingError(f"Error encoding {fmt} image: {str(e)}") from e


def crop_and_encode(
    decoded: DecodedImage,
    box: BoundingBox,
    config: FrameDetectionConfig
) -> Tuple[bytes, str]:
    """
    Crop the original image to ``box`` and re-encode it.

    Args:
        decoded: Source image as decoded from the input bytes
        box: Region to keep
        config: Detection config carrying encoder settings

    Returns:
        (encoded bytes, output format)

    Raises:
        ImageProcessingError: If the box is outside the image or encoding fails
    """
    if box.width <= 0 or box.height <= 0 or not box.fits_within(decoded.dimensions):
        raise ImageProcessingError(
            f"Crop box {box.to_dict()} outside image {decoded.dimensions.to_dict()}"
        )

    try:
        cropped = decoded.image.crop(box.as_crop_box())
    except (OSError, ValueError) as e:
        logger.error(f"Error applying crop: {e}")
        raise ImageProcessingError(f"Error applying crop: {str(e)}") from e

    return encode_image(
        cropped,
        decoded.format,
        config,
        icc_profile=decoded.image.info.get('icc_profile'),
    )
