"""Storage keys, public URLs and output locations for processed images."""
import logging
from pathlib import Path
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = ('.jpg', '.jpeg', '.png', '.webp', '.tif', '.tiff', '.bmp', '.gif')

FORMAT_EXTENSIONS = {
    'JPEG': '.jpg',
    'PNG': '.png',
    'WEBP': '.webp',
    'TIFF': '.tif',
    'BMP': '.bmp',
    'GIF': '.gif',
}

FORMAT_CONTENT_TYPES = {
    'JPEG': 'image/jpeg',
    'PNG': 'image/png',
    'WEBP': 'image/webp',
    'TIFF': 'image/tiff',
    'BMP': 'image/bmp',
    'GIF': 'image/gif',
}

DEFAULT_OUTPUT_DIRNAME = "frames_removed"


class PathError(Exception):
    """Raised when path operations fail."""
    pass


def extension_for(image_format: Optional[str]) -> str:
    """File extension for a Pillow format name, '.png' when unknown."""
    return FORMAT_EXTENSIONS.get((image_format or '').upper(), '.png')


def content_type_for(image_format: Optional[str]) -> str:
    return FORMAT_CONTENT_TYPES.get((image_format or '').upper(), 'application/octet-stream')


def processed_image_key(gallery_id: str, artwork_id: str, image_format: Optional[str] = 'JPEG') -> str:
    """
    Object storage key for a frame-removed artwork image.

    Example:
        >>> processed_image_key("g1", "a1", "JPEG")
        'artworks/g1/a1_processed.jpg'
    """
    if not gallery_id or not artwork_id:
        raise PathError("gallery_id and artwork_id are required")
    return f"artworks/{gallery_id}/{artwork_id}_processed{extension_for(image_format)}"


def public_url(base_url: str, key: str) -> str:
    """Join a public base URL and an object key."""
    return f"{base_url.rstrip('/')}/{key.lstrip('/')}"


def output_dir_for(input_path: Path) -> Path:
    """
    Get or create the default output directory beside an input.

    Args:
        input_path: Input file or directory

    Returns:
        Path to the frames_removed directory

    Raises:
        PathError: If directory creation fails
    """
    base = input_path if input_path.is_dir() else input_path.parent
    try:
        output_dir = base / DEFAULT_OUTPUT_DIRNAME
        output_dir.mkdir(parents=True, exist_ok=True)
        return output_dir
    except OSError as e:
        logger.error(f"Error ensuring output directory: {e}")
        raise PathError(f"Error ensuring output directory: {str(e)}") from e


def output_path_for(source: Path, output_dir: Path, image_format: Optional[str]) -> Path:
    """Destination for the processed copy of ``source``."""
    return output_dir / f"{source.stem}{extension_for(image_format)}"


def collect_image_paths(inputs: Iterable[Path]) -> List[Path]:
    """
    Expand files and directories into a sorted list of image files.

    Directories are scanned one level deep. Missing paths are logged and
    skipped.
    """
    images = []
    for path in inputs:
        if not path.exists():
            logger.warning(f"Path does not exist: {path}")
            continue
        if path.is_dir():
            found = sorted(
                (f for f in path.iterdir() if f.is_file() and f.suffix.lower() in IMAGE_SUFFIXES),
                key=lambda p: p.name
            )
            logger.info(f"Found {len(found)} images in {path}")
            images.extend(found)
        else:
            images.append(path)
    return images
