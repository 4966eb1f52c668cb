"""Frame detection and removal for artwork images."""
import time
import logging
from typing import Optional, Mapping, Any, Tuple, Union

from .config import FrameDetectionConfig, DEFAULT_CONFIG
from .state import (
    FrameDetectionResult, FrameRemovalResult, ImageDimensions, no_frame
)
from .image_ops import (
    DecodedImage, ImageProcessingError, try_decode, read_dimensions,
    build_edge_map, crop_and_encode
)
from .boundaries import find_artwork_bounds
from .scoring import calculate_confidence, validate_detection

logger = logging.getLogger(__name__)

ConfigLike = Union[FrameDetectionConfig, Mapping[str, Any], None]


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))


class FrameDetector:
    """
    Detects decorative frames around artwork and crops them away.

    The detector holds nothing but its resolved, immutable config, so one
    instance can be shared freely or rebuilt per job. Neither public method
    raises: every outcome is reported through the returned result.
    """

    def __init__(self, config: ConfigLike = None, **overrides: Any):
        """
        Initialize detector.

        Args:
            config: Full config, or a partial mapping merged over the defaults
            **overrides: Individual fields merged last

        Raises:
            ConfigError: If the resulting thresholds are inconsistent
        """
        if isinstance(config, FrameDetectionConfig):
            resolved = config
        else:
            resolved = DEFAULT_CONFIG.merged(config)
        self.config = resolved.merged(overrides)

    def detect_frame(self, image_bytes: bytes) -> FrameDetectionResult:
        """
        Detect a frame in an encoded image.

        Undecodable input yields ``has_frame=False`` and ``confidence=0`` with
        the dimensions read from the header, or 0x0 if even that fails.
        """
        start = time.perf_counter()
        detection, _ = self._detect(image_bytes)
        logger.debug(f"Detection finished in {_elapsed_ms(start)} ms: "
                     f"has_frame={detection.has_frame} confidence={detection.confidence:.3f}")
        return detection

    def remove_frame(self, image_bytes: bytes) -> FrameRemovalResult:
        """
        Detect a frame and crop it away.

        Returns:
            FrameRemovalResult. ``success`` is True with no bytes when no frame
            was found, True with the cropped image when one was removed, and
            False with ``error`` set when cropping or encoding failed.
        """
        start = time.perf_counter()
        detection, decoded = self._detect(image_bytes)

        if not detection.has_frame or detection.bounding_box is None or decoded is None:
            logger.debug("No frame accepted, nothing to crop")
            return FrameRemovalResult(
                success=True,
                detection=detection,
                processing_time_ms=_elapsed_ms(start),
            )

        try:
            processed, output_format = crop_and_encode(decoded, detection.bounding_box, self.config)
        except ImageProcessingError as e:
            logger.error(f"Crop failed: {e}")
            return self._crop_failed(detection, str(e), start)
        except Exception as e:
            logger.error(f"Unexpected error while cropping: {e}", exc_info=True)
            return self._crop_failed(detection, str(e) or type(e).__name__, start)

        logger.debug(f"Cropped to {detection.bounding_box.to_dict()} as {output_format}")
        return FrameRemovalResult(
            success=True,
            detection=detection,
            processed_image_bytes=processed,
            output_format=output_format,
            processing_time_ms=_elapsed_ms(start),
        )

    def _crop_failed(self, detection: FrameDetectionResult, message: str, start: float) -> FrameRemovalResult:
        return FrameRemovalResult(
            success=False,
            detection=detection,
            error=message,
            processing_time_ms=_elapsed_ms(start),
        )

    def _detect(self, image_bytes: bytes) -> Tuple[FrameDetectionResult, Optional[DecodedImage]]:
        decoded, error = try_decode(image_bytes)
        if error is not None:
            logger.warning(f"Frame detection skipped: {error}")
            return no_frame(0.0, read_dimensions(image_bytes)), None

        dimensions = decoded.dimensions
        try:
            return self._analyze(decoded, dimensions), decoded
        except Exception as e:
            logger.error(f"Frame detection failed: {e}", exc_info=True)
            return no_frame(0.0, dimensions), decoded

    def _analyze(self, decoded: DecodedImage, dimensions: ImageDimensions) -> FrameDetectionResult:
        edge_map = build_edge_map(decoded.image, self.config)
        box = find_artwork_bounds(edge_map)
        confidence = calculate_confidence(box, dimensions, edge_map)

        if not validate_detection(box, dimensions, confidence, self.config):
            return no_frame(confidence, dimensions)

        return FrameDetectionResult(
            has_frame=True,
            confidence=confidence,
            original_dimensions=dimensions,
            bounding_box=box,
            cropped_dimensions=box.dimensions,
        )


def detect_frame(image_bytes: bytes, config: ConfigLike = None) -> FrameDetectionResult:
    """Detect a frame using ``config`` (defaults when omitted)."""
    return FrameDetector(config).detect_frame(image_bytes)


def remove_frame(image_bytes: bytes, config: ConfigLike = None) -> FrameRemovalResult:
    """Remove a frame using ``config`` (defaults when omitted)."""
    return FrameDetector(config).remove_frame(image_bytes)
