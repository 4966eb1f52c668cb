"""Service layer for orchestrating frame removal jobs."""
import logging
import concurrent.futures
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Callable, Any, Iterable

from .config import FrameDetectionConfig, ConfigError, DEFAULT_CONFIG
from .detector import FrameDetector
from .state import (
    FrameRemovalJob, FrameRemovalUpdate, FrameRemovalResult, ProcessingStatus,
    ZERO_DIMENSIONS, no_frame
)
from .repository import ArtworkStore, S3ObjectStore, RepositoryError, fetch_image_bytes
from .paths import (
    PathError, processed_image_key, public_url, output_path_for, content_type_for
)

logger = logging.getLogger(__name__)

DEFAULT_PUBLIC_BASE_URL = "https://images.paillette.art"
DEFAULT_MAX_ATTEMPTS = 3
NO_FRAME_MESSAGE = "No frame detected"

ACK = "ack"
RETRY = "retry"


class JobError(Exception):
    """Raised when a job fails in a way that should be retried."""
    pass


class FrameRemovalService:
    """Processes frame removal jobs against an artwork store and object store."""

    def __init__(
        self,
        artworks: ArtworkStore,
        storage: S3ObjectStore,
        config: FrameDetectionConfig = DEFAULT_CONFIG,
        public_base_url: str = DEFAULT_PUBLIC_BASE_URL,
        fetcher: Optional[Callable[[str], bytes]] = None
    ):
        """
        Initialize frame removal service.

        Args:
            artworks: Store holding artwork rows and processing status
            storage: Object store for processed images
            config: Detection config; per-job overrides are merged over it
            public_base_url: Base URL under which stored objects are served
            fetcher: Callable returning source bytes for an image URL
        """
        self.artworks = artworks
        self.storage = storage
        self.config = config
        self.public_base_url = public_base_url
        self._fetch = fetcher or (lambda url: fetch_image_bytes(url, storage))

    def _detector_for(self, job: FrameRemovalJob) -> FrameDetector:
        if job.config:
            return FrameDetector(self.config.merged(job.config))
        return FrameDetector(self.config)

    def _store_processed(self, job: FrameRemovalJob, result: FrameRemovalResult) -> str:
        key = processed_image_key(job.gallery_id, job.artwork_id, result.output_format)
        self.storage.put(
            key,
            result.processed_image_bytes,
            content_type=content_type_for(result.output_format),
            metadata={
                'artworkId': job.artwork_id,
                'galleryId': job.gallery_id,
                'type': 'frame-removed',
            },
        )
        return public_url(self.public_base_url, key)

    def run_job(self, job: FrameRemovalJob) -> FrameRemovalUpdate:
        """
        Fetch, process and store one artwork image.

        Returns:
            Update describing a completed job. A job with no frame found is
            completed with no processed URL.

        Raises:
            JobError: If fetching, processing or storing fails
        """
        try:
            detector = self._detector_for(job)
        except ConfigError as e:
            raise JobError(f"Invalid job config: {str(e)}") from e

        try:
            image_bytes = self._fetch(job.image_url)
        except RepositoryError as e:
            raise JobError(str(e)) from e

        result = detector.remove_frame(image_bytes)
        confidence = result.detection.confidence

        if not result.success:
            raise JobError(result.error or "Frame removal failed")

        if result.processed_image_bytes is None:
            logger.info(f"No frame detected for artwork {job.artwork_id} (confidence {confidence:.2f})")
            return FrameRemovalUpdate(
                artwork_id=job.artwork_id,
                status=ProcessingStatus.COMPLETED,
                confidence=confidence,
                error=NO_FRAME_MESSAGE,
            )

        try:
            url = self._store_processed(job, result)
        except (RepositoryError, PathError) as e:
            raise JobError(f"Failed to store processed image: {str(e)}") from e

        logger.info(f"Frame removal completed for artwork {job.artwork_id} with confidence {confidence:.2f}")
        return FrameRemovalUpdate(
            artwork_id=job.artwork_id,
            status=ProcessingStatus.COMPLETED,
            confidence=confidence,
            processed_image_url=url,
        )

    def process_job(self, job: FrameRemovalJob) -> FrameRemovalUpdate:
        """
        Run one job and persist its outcome.

        An artwork without a row gets a pending one first.

        Returns:
            The persisted update; status FAILED means the job should be retried

        Raises:
            RepositoryError: If the artwork store itself cannot be written
        """
        self.artworks.ensure_artwork(job)
        self.artworks.mark_processing(job.artwork_id)
        try:
            update = self.run_job(job)
        except JobError as e:
            logger.error(f"Frame removal failed for artwork {job.artwork_id}: {e}")
            update = FrameRemovalUpdate(
                artwork_id=job.artwork_id,
                status=ProcessingStatus.FAILED,
                error=str(e),
            )
        self.artworks.apply_update(update)
        return update

    def handle_message(self, message: Any) -> str:
        """
        Queue consumer entry point for one message body.

        Returns:
            ACK when the outcome is final, RETRY when the job failed
        """
        try:
            job = FrameRemovalJob.from_message(message)
        except ValueError as e:
            # Malformed messages can never succeed
            logger.error(f"Dropping malformed job message {message!r}: {e}")
            return ACK

        update = self.process_job(job)
        return RETRY if update.retryable else ACK

    def run_jobs(self, jobs: Iterable[FrameRemovalJob], max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> List[FrameRemovalUpdate]:
        """
        Process jobs with bounded retries.

        Each job is attempted until it completes or ``max_attempts`` is
        reached; the final update of every job is returned in order.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        updates = []
        for job in jobs:
            update = None
            for attempt in range(1, max_attempts + 1):
                update = self.process_job(job)
                if not update.retryable:
                    break
                logger.warning(f"Attempt {attempt}/{max_attempts} failed for artwork {job.artwork_id}")
            updates.append(update)

        completed = sum(1 for u in updates if u.status == ProcessingStatus.COMPLETED)
        logger.info(f"Processed {len(updates)} jobs: {completed} completed, {len(updates) - completed} failed")
        return updates


@dataclass(frozen=True)
class FileOutcome:
    """Result of removing the frame from one file on disk."""
    source: Path
    result: FrameRemovalResult
    output: Optional[Path] = None


def _remove_frame_file(path: Path, config: FrameDetectionConfig) -> FrameRemovalResult:
    try:
        data = path.read_bytes()
    except OSError as e:
        logger.error(f"Error reading {path}: {e}")
        return FrameRemovalResult(
            success=False,
            detection=no_frame(0.0, ZERO_DIMENSIONS),
            processing_time_ms=0,
            error=f"Error reading {path}: {str(e)}",
        )
    return FrameDetector(config).remove_frame(data)


def remove_frames_parallel(
    paths: List[Path],
    config: FrameDetectionConfig = DEFAULT_CONFIG,
    max_workers: int = 1
) -> List[FrameRemovalResult]:
    """
    Run frame removal over files, one image per worker process.

    Results are returned in the order of ``paths``. ``max_workers`` of 1 runs
    in the calling process.
    """
    if max_workers <= 1 or len(paths) <= 1:
        return [_remove_frame_file(p, config) for p in paths]

    with concurrent.futures.ProcessPoolExecutor(max_workers=max_workers) as ex:
        return list(ex.map(_remove_frame_file, paths, [config] * len(paths)))


def process_files(
    paths: List[Path],
    output_dir: Path,
    config: FrameDetectionConfig = DEFAULT_CONFIG,
    max_workers: int = 1,
    progress: Optional[Callable[[int, int, str], None]] = None
) -> List[FileOutcome]:
    """
    Remove frames from files and write cropped copies to ``output_dir``.

    Files with no frame, or that failed, produce no output file.

    Raises:
        PathError: If the output directory cannot be created
    """
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PathError(f"Error creating output directory: {str(e)}") from e

    results = remove_frames_parallel(paths, config, max_workers)
    outcomes = []
    total = len(paths)
    for i, (path, result) in enumerate(zip(paths, results), start=1):
        if progress:
            progress(i, total, f"Processed {path.name}")

        if not result.success:
            logger.error(f"Frame removal failed for {path.name}: {result.error}")
            outcomes.append(FileOutcome(path, result))
            continue
        if result.processed_image_bytes is None:
            logger.info(f"No frame detected in {path.name} (confidence {result.detection.confidence:.2f})")
            outcomes.append(FileOutcome(path, result))
            continue

        destination = output_path_for(path, output_dir, result.output_format)
        try:
            destination.write_bytes(result.processed_image_bytes)
        except OSError as e:
            logger.error(f"Error writing {destination}: {e}")
            failed = FrameRemovalResult(
                success=False,
                detection=result.detection,
                processing_time_ms=result.processing_time_ms,
                error=f"Error writing {destination}: {str(e)}",
            )
            outcomes.append(FileOutcome(path, failed))
            continue

        logger.info(f"Removed frame from {path.name} -> {destination.name} "
                    f"(confidence {result.detection.confidence:.2f})")
        outcomes.append(FileOutcome(path, result, destination))

    return outcomes
