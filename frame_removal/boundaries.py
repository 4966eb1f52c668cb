"""Locate frame/artwork transitions from edge density profiles."""
import logging
from typing import Tuple

import numpy as np

from .state import BoundingBox

logger = logging.getLogger(__name__)

FORWARD = 'forward'
BACKWARD = 'backward'

# Profiles weaker than this carry no sustained edge
MIN_PEAK_DENSITY = 5
MIN_MEAN_DENSITY = 1.0

MEDIAN_FACTOR = 1.5
PEAK_FACTOR = 0.3
DROP_FACTOR = 0.4
MIN_PEAK_DISTANCE = 2


def density_profiles(edge_map: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Count edge pixels per row and per column.

    Returns:
        (row_density[height], col_density[width])
    """
    mask = edge_map > 0
    rows = np.count_nonzero(mask, axis=1).astype(np.uint32)
    cols = np.count_nonzero(mask, axis=0).astype(np.uint32)
    return rows, cols


def boundary_threshold(profile: np.ndarray) -> float:
    """
    Adaptive density threshold for a profile, or 0.0 when the profile has no
    sustained edge at all.
    """
    if profile.size == 0:
        return 0.0

    max_density = float(profile.max())
    mean_density = float(profile.mean())
    if max_density < MIN_PEAK_DENSITY or mean_density < MIN_MEAN_DENSITY:
        return 0.0

    ordered = np.sort(profile)[::-1]
    median_density = float(ordered[len(ordered) // 2])
    return max(median_density * MEDIAN_FACTOR, max_density * PEAK_FACTOR)


def find_edge_boundary(profile: np.ndarray, direction: str) -> int:
    """
    Find where a frame ends and the artwork begins along one profile.

    Scans from the outside in, finds the first density peak above an adaptive
    threshold (the frame edge) and returns the first index more than
    MIN_PEAK_DISTANCE steps past it whose density drops below
    ``threshold * DROP_FACTOR``.

    Args:
        profile: Row or column edge densities
        direction: FORWARD scans from index 0, BACKWARD from the end

    Returns:
        Boundary index. When no transition is found this is the outermost
        position for the direction: 0 forward, ``len(profile)`` backward,
        meaning no cropping on that side.
    """
    if direction not in (FORWARD, BACKWARD):
        raise ValueError(f"Unknown scan direction: {direction}")

    length = len(profile)
    outermost = 0 if direction == FORWARD else length

    threshold = boundary_threshold(profile)
    if threshold <= 0.0:
        return outermost

    if direction == FORWARD:
        indices = range(0, length)
    else:
        indices = range(length - 1, -1, -1)

    drop_level = threshold * DROP_FACTOR
    peak = None
    for i in indices:
        density = profile[i]
        if peak is None:
            if density > threshold:
                peak = i
            continue
        if abs(i - peak) > MIN_PEAK_DISTANCE and density < drop_level:
            return i

    return outermost


def find_artwork_bounds(edge_map: np.ndarray) -> BoundingBox:
    """
    Candidate artwork region from an edge map.

    Returns:
        BoundingBox spanning [left, right) x [top, bottom)
    """
    rows, cols = density_profiles(edge_map)

    top = find_edge_boundary(rows, FORWARD)
    bottom = find_edge_boundary(rows, BACKWARD)
    left = find_edge_boundary(cols, FORWARD)
    right = find_edge_boundary(cols, BACKWARD)
    logger.debug(f"Boundaries: top={top} bottom={bottom} left={left} right={right}")

    return BoundingBox(
        x=int(left),
        y=int(top),
        width=int(max(0, right - left)),
        height=int(max(0, bottom - top)),
    )
