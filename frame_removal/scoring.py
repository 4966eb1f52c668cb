"""Confidence scoring and acceptance rules for candidate artwork regions."""
import logging
from typing import Optional

import numpy as np

from .config import FrameDetectionConfig
from .state import BoundingBox, ImageDimensions

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 0.3

# Fraction of each side excluded when measuring interior edge density
INTERIOR_MARGIN = 0.1
# Interior edge density below this counts as "no structure"
SOLID_INTERIOR_DENSITY = 0.001
NEAR_FULL_CROP_RATIO = 0.96
CONFIDENCE_DIGITS = 6


def crop_ratio(box: BoundingBox, dimensions: ImageDimensions) -> float:
    """Fraction of the original area kept by ``box``."""
    if dimensions.area <= 0:
        return 0.0
    return box.area / float(dimensions.area)


def interior_edge_density(edge_map: np.ndarray) -> float:
    """
    Fraction of edge pixels inside the central region of the edge map.

    The central region excludes INTERIOR_MARGIN of the height and width on
    every side.
    """
    height, width = edge_map.shape[:2]
    y0 = int(height * INTERIOR_MARGIN)
    x0 = int(width * INTERIOR_MARGIN)
    interior = edge_map[y0:height - y0, x0:width - x0]
    if interior.size == 0:
        return 0.0
    return np.count_nonzero(interior) / float(interior.size)


def _crop_ratio_adjustment(ratio: float) -> float:
    if 0.5 <= ratio <= 0.85:
        # Clear frame
        return 0.4
    if 0.3 <= ratio < 0.5:
        # Thick frame
        return 0.25
    if 0.85 < ratio <= NEAR_FULL_CROP_RATIO:
        # Thin frame
        return 0.2
    if ratio > NEAR_FULL_CROP_RATIO:
        return -0.3
    return 0.0


def _centering_adjustment(box: BoundingBox, dimensions: ImageDimensions) -> float:
    image_cx = dimensions.width / 2.0
    image_cy = dimensions.height / 2.0
    offset_x = abs((box.x + box.width / 2.0) - image_cx) / image_cx
    offset_y = abs((box.y + box.height / 2.0) - image_cy) / image_cy

    if offset_x > 0.4 or offset_y > 0.4:
        return -0.2
    if offset_x < 0.1 and offset_y < 0.1:
        return 0.2
    if offset_x < 0.2 and offset_y < 0.2:
        return 0.1
    return 0.0


def _aspect_adjustment(box: BoundingBox, dimensions: ImageDimensions) -> float:
    original_aspect = dimensions.width / float(dimensions.height)
    cropped_aspect = box.width / float(box.height)
    aspect_diff = abs(original_aspect - cropped_aspect) / original_aspect

    if aspect_diff < 0.1:
        return 0.1
    if aspect_diff < 0.2:
        return 0.05
    if aspect_diff > 0.3:
        return -0.2
    return 0.0


def calculate_confidence(
    box: BoundingBox,
    dimensions: ImageDimensions,
    edge_map: Optional[np.ndarray] = None
) -> float:
    """
    Score how likely ``box`` is a real artwork region inside a frame.

    Starts from BASE_CONFIDENCE and adds independent adjustments for the crop
    ratio, how centered the box is, and how well it keeps the aspect ratio.
    When an edge map is given, a near-full-size box over an image whose
    interior has no edges is penalized: that is what the boundary fallback
    produces for solid-color or frameless images.

    Args:
        box: Candidate artwork region
        dimensions: Original image dimensions
        edge_map: Optional edge map used for the interior density signal

    Returns:
        Confidence rounded to CONFIDENCE_DIGITS and clamped into [0, 1]
    """
    if dimensions.width <= 0 or dimensions.height <= 0:
        return 0.0
    if box.width <= 0 or box.height <= 0:
        return 0.0

    ratio = crop_ratio(box, dimensions)
    confidence = BASE_CONFIDENCE
    confidence += _crop_ratio_adjustment(ratio)
    confidence += _centering_adjustment(box, dimensions)
    confidence += _aspect_adjustment(box, dimensions)

    if edge_map is not None and ratio > NEAR_FULL_CROP_RATIO:
        density = interior_edge_density(edge_map)
        if density < SOLID_INTERIOR_DENSITY:
            logger.debug(f"Interior edge density {density:.5f} with crop ratio {ratio:.3f}: solid-color penalty")
            confidence -= 0.3

    # Drop float residue left by summing the adjustments
    confidence = round(confidence, CONFIDENCE_DIGITS)
    return float(max(0.0, min(1.0, confidence)))


def validate_detection(
    box: BoundingBox,
    dimensions: ImageDimensions,
    confidence: float,
    config: FrameDetectionConfig
) -> bool:
    """
    Decide whether a candidate box is accepted as a frame detection.

    Accepts only when the confidence reaches ``config.min_confidence``, the
    crop ratio lies within [min_crop_percentage, max_crop_percentage] and the
    box is inside the image.
    """
    if confidence < config.min_confidence:
        logger.debug(f"Rejected: confidence {confidence:.3f} < {config.min_confidence}")
        return False

    ratio = crop_ratio(box, dimensions)
    if ratio < config.min_crop_percentage or ratio > config.max_crop_percentage:
        logger.debug(f"Rejected: crop ratio {ratio:.3f} outside "
                     f"[{config.min_crop_percentage}, {config.max_crop_percentage}]")
        return False

    if not box.fits_within(dimensions):
        logger.debug(f"Rejected: box {box.to_dict()} outside image {dimensions.to_dict()}")
        return False

    return True
