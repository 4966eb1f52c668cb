"""
frame_removal - Frame detection and removal for artwork images
"""

from .config import FrameDetectionConfig, ConfigError, DEFAULT_CONFIG
from .detector import FrameDetector, detect_frame, remove_frame
from .state import (
    BoundingBox, ImageDimensions, FrameDetectionResult, FrameRemovalResult,
    FrameRemovalJob, FrameRemovalUpdate, ProcessingStatus
)
from .image_ops import ImageProcessingError, DecodeError

__all__ = [
    'FrameDetector', 'detect_frame', 'remove_frame',
    'FrameDetectionConfig', 'ConfigError', 'DEFAULT_CONFIG',
    'BoundingBox', 'ImageDimensions', 'FrameDetectionResult', 'FrameRemovalResult',
    'FrameRemovalJob', 'FrameRemovalUpdate', 'ProcessingStatus',
    'ImageProcessingError', 'DecodeError',
]
__version__ = '0.1.0'
