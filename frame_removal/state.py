"""Result and job records for frame detection and removal."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple, Dict, Any, Mapping


@dataclass(frozen=True)
class ImageDimensions:
    """Pixel dimensions of an image."""
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    def to_dict(self) -> Dict[str, int]:
        return {'width': self.width, 'height': self.height}


ZERO_DIMENSIONS = ImageDimensions(0, 0)


@dataclass(frozen=True)
class BoundingBox:
    """Artwork region in pixel coordinates of the original image."""
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def dimensions(self) -> ImageDimensions:
        return ImageDimensions(self.width, self.height)

    def fits_within(self, dimensions: ImageDimensions) -> bool:
        """Check that the box lies entirely inside an image of ``dimensions``."""
        return (
            self.x >= 0 and self.y >= 0
            and self.right <= dimensions.width
            and self.bottom <= dimensions.height
        )

    def as_crop_box(self) -> Tuple[int, int, int, int]:
        """Get (left, top, right, bottom) as expected by PIL's crop."""
        return (self.x, self.y, self.right, self.bottom)

    def to_dict(self) -> Dict[str, int]:
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}


@dataclass(frozen=True)
class FrameDetectionResult:
    """Outcome of a single frame detection call."""
    has_frame: bool
    confidence: float
    original_dimensions: ImageDimensions
    bounding_box: Optional[BoundingBox] = None
    cropped_dimensions: Optional[ImageDimensions] = None
    method: str = "edge-detection"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary with camelCase keys."""
        return {
            'hasFrame': self.has_frame,
            'confidence': self.confidence,
            'boundingBox': self.bounding_box.to_dict() if self.bounding_box else None,
            'method': self.method,
            'originalDimensions': self.original_dimensions.to_dict(),
            'croppedDimensions': self.cropped_dimensions.to_dict() if self.cropped_dimensions else None,
        }


def no_frame(confidence: float, dimensions: ImageDimensions) -> FrameDetectionResult:
    """Build a rejected detection; the confidence is kept for diagnostics."""
    return FrameDetectionResult(
        has_frame=False,
        confidence=confidence,
        original_dimensions=dimensions,
    )


@dataclass(frozen=True)
class FrameRemovalResult:
    """
    Outcome of a frame removal call.

    ``processed_image_bytes`` is None both when processing failed and when no
    frame was found; check ``detection.has_frame`` to tell them apart.
    """
    success: bool
    detection: FrameDetectionResult
    processing_time_ms: int
    processed_image_bytes: Optional[bytes] = None
    output_format: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'detection': self.detection.to_dict(),
            'processedBytes': len(self.processed_image_bytes) if self.processed_image_bytes else None,
            'outputFormat': self.output_format,
            'error': self.error,
            'processingTimeMs': self.processing_time_ms,
        }


class ProcessingStatus(str, Enum):
    """Frame removal status persisted on an artwork record."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class FrameRemovalJob:
    """Queue message requesting frame removal for one artwork."""
    artwork_id: str
    image_url: str
    gallery_id: str
    config: Optional[Dict[str, Any]] = None

    @classmethod
    def from_message(cls, message: Any) -> 'FrameRemovalJob':
        """
        Build a job from a queue message body.

        Raises:
            ValueError: If the body is not an object or a required field is
                missing or empty
        """
        if not isinstance(message, Mapping):
            raise ValueError(f"Job message must be an object, got {type(message).__name__}")

        try:
            artwork_id = message['artworkId']
            image_url = message['imageUrl']
            gallery_id = message['galleryId']
        except KeyError as e:
            raise ValueError(f"Job message missing field: {e.args[0]}") from e

        if not artwork_id or not image_url or not gallery_id:
            raise ValueError("Job message fields must be non-empty")

        return cls(
            artwork_id=str(artwork_id),
            image_url=str(image_url),
            gallery_id=str(gallery_id),
            config=message.get('config'),
        )

    def to_message(self) -> Dict[str, Any]:
        message = {
            'artworkId': self.artwork_id,
            'imageUrl': self.image_url,
            'galleryId': self.gallery_id,
        }
        if self.config:
            message['config'] = dict(self.config)
        return message


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class FrameRemovalUpdate:
    """Row update written back to the artwork store after a job."""
    artwork_id: str
    status: ProcessingStatus
    confidence: Optional[float] = None
    processed_image_url: Optional[str] = None
    error: Optional[str] = None
    processed_at: str = field(default_factory=utc_now)

    @property
    def retryable(self) -> bool:
        return self.status == ProcessingStatus.FAILED
