"""Command-line interface for frame removal."""
import argparse
import json
import sys
import logging
from pathlib import Path
from typing import List, Optional

from .config import FrameDetectionConfig, ConfigError, load_config
from .detector import FrameDetector
from .state import FrameRemovalJob
from .paths import PathError, collect_image_paths, output_dir_for
from .repository import ArtworkStore, RepositoryError, S3ObjectStore
from .services import (
    FrameRemovalService, process_files, DEFAULT_MAX_ATTEMPTS, DEFAULT_PUBLIC_BASE_URL
)

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def run_detect(paths: List[Path], config: FrameDetectionConfig) -> int:
    """
    Print one JSON detection per image.

    Returns:
        Exit code (0 for success, non-zero when no images were found)
    """
    images = collect_image_paths(paths)
    if not images:
        logger.error("No images found to process")
        return 1

    detector = FrameDetector(config)
    for path in images:
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.error(f"Error reading {path}: {e}")
            continue
        detection = detector.detect_frame(data)
        print(json.dumps({'file': str(path), **detection.to_dict()}))
    return 0


def run_remove(
    paths: List[Path],
    output_dir: Optional[Path],
    config: FrameDetectionConfig,
    workers: int = 1
) -> int:
    """
    Crop frames from images into an output directory.

    Returns:
        Exit code (0 when every image was processed, 1 otherwise)
    """
    images = collect_image_paths(paths)
    if not images:
        logger.error("No images found to process")
        return 1

    try:
        output_dir = output_dir or output_dir_for(paths[0])
        outcomes = process_files(images, output_dir, config, max_workers=workers)
    except PathError as e:
        logger.error(f"Remove failed: {e}")
        return 1

    cropped = sum(1 for o in outcomes if o.output is not None)
    failed = sum(1 for o in outcomes if not o.result.success)
    unchanged = len(outcomes) - cropped - failed
    logger.info(f"Done: {cropped} cropped, {unchanged} without frame, {failed} failed -> {output_dir}")
    return 1 if failed else 0


def read_jobs(jobs_file: Path) -> List[FrameRemovalJob]:
    """
    Read queue messages from a JSON-lines file.

    Blank lines are skipped.

    Raises:
        ValueError: If a line is not a valid job message
    """
    jobs = []
    with open(jobs_file, 'r') as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                jobs.append(FrameRemovalJob.from_message(json.loads(line)))
            except (json.JSONDecodeError, ValueError, TypeError) as e:
                raise ValueError(f"{jobs_file}:{line_no}: {e}") from e
    return jobs


def run_worker(
    db_path: Path,
    bucket: str,
    config: FrameDetectionConfig,
    jobs_file: Optional[Path] = None,
    gallery_id: Optional[str] = None,
    force_reprocess: bool = False,
    dry_run: bool = False,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    public_base_url: str = DEFAULT_PUBLIC_BASE_URL,
    endpoint_url: Optional[str] = None
) -> int:
    """
    Process frame removal jobs against the artwork database and bucket.

    Jobs come from a JSON-lines file of queue messages, or from the artworks
    of a gallery that still need processing.

    Returns:
        Exit code (0 when every job completed, 1 otherwise)
    """
    try:
        with ArtworkStore(db_path) as artworks:
            if jobs_file is not None:
                jobs = read_jobs(jobs_file)
                for job in jobs:
                    artworks.ensure_artwork(job)
            else:
                jobs = artworks.pending_jobs(gallery_id, force_reprocess)

            logger.info(f"Artworks to process: {len(jobs)}")
            if dry_run or not jobs:
                return 0

            service = FrameRemovalService(
                artworks, S3ObjectStore(bucket, endpoint_url=endpoint_url), config, public_base_url
            )
            updates = service.run_jobs(jobs, max_attempts)

            if gallery_id:
                stats = artworks.processing_stats(gallery_id)
                logger.info(f"Gallery {gallery_id}: {json.dumps(stats)}")
    except (RepositoryError, OSError, ValueError) as e:
        logger.error(f"Worker failed: {e}")
        return 1

    return 0 if all(not u.retryable for u in updates) else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="Detect and remove decorative frames from artwork images",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Print detection results as JSON lines
  frame-removal detect painting.jpg scans/

  # Crop frames into an output directory using 4 worker processes
  frame-removal remove scans/ --output cropped/ --workers 4

  # Process queue messages from a JSON-lines file
  frame-removal worker --jobs jobs.jsonl --db artworks.db --bucket processed

  # Queue and process every unprocessed artwork in a gallery
  frame-removal worker --gallery abc-123 --db artworks.db --bucket processed --endpoint-url https://<account>.r2.cloudflarestorage.com
        """
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    parser.add_argument('--config', '-c', type=str, default=None,
                        help='JSON file with detection settings (default: user settings file)')

    subparsers = parser.add_subparsers(dest='command', required=True)

    detect = subparsers.add_parser('detect', help='Report frame detection results')
    detect.add_argument('paths', nargs='+', help='Image files or directories')

    remove = subparsers.add_parser('remove', help='Crop detected frames')
    remove.add_argument('paths', nargs='+', help='Image files or directories')
    remove.add_argument('--output', '-o', type=str, default=None,
                        help='Output directory (default: <input>/frames_removed)')
    remove.add_argument('--workers', '-w', type=int, default=1,
                        help='Number of worker processes (default: 1)')

    worker = subparsers.add_parser('worker', help='Process frame removal jobs')
    source = worker.add_mutually_exclusive_group(required=True)
    source.add_argument('--jobs', type=str, help='JSON-lines file of job messages')
    source.add_argument('--gallery', '-g', type=str, help='Gallery ID to process')
    worker.add_argument('--db', type=str, required=True, help='SQLite artwork database')
    worker.add_argument('--bucket', type=str, required=True, help='Bucket for processed images')
    worker.add_argument('--endpoint-url', type=str, default=None,
                        help='S3-compatible endpoint such as R2 (default: $S3_ENDPOINT_URL or AWS)')
    worker.add_argument('--public-url', type=str, default=DEFAULT_PUBLIC_BASE_URL,
                        help='Public base URL for processed images')
    worker.add_argument('--max-attempts', type=int, default=DEFAULT_MAX_ATTEMPTS,
                        help='Attempts per job before giving up')
    worker.add_argument('--force-reprocess', '-f', action='store_true',
                        help='Reprocess already completed artworks (gallery mode)')
    worker.add_argument('--dry-run', '-d', action='store_true',
                        help='Show how many artworks would be processed')

    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    try:
        config = load_config(Path(args.config) if args.config else None)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    if args.command == 'detect':
        return run_detect([Path(p) for p in args.paths], config)

    if args.command == 'remove':
        output_dir = Path(args.output).resolve() if args.output else None
        if output_dir and output_dir.exists() and not output_dir.is_dir():
            logger.error(f"Output path exists but is not a directory: {output_dir}")
            return 1
        return run_remove([Path(p) for p in args.paths], output_dir, config, max(1, args.workers))

    if args.max_attempts < 1:
        logger.error("--max-attempts must be at least 1")
        return 1
    return run_worker(
        Path(args.db),
        args.bucket,
        config,
        jobs_file=Path(args.jobs) if args.jobs else None,
        gallery_id=args.gallery,
        force_reprocess=args.force_reprocess,
        dry_run=args.dry_run,
        max_attempts=args.max_attempts,
        public_base_url=args.public_url,
        endpoint_url=args.endpoint_url,
    )


if __name__ == '__main__':
    sys.exit(main())
