"""S3-compatible object storage, the artwork store and image fetching."""
import os
import sqlite3
import logging
import urllib.request
import urllib.error
from pathlib import Path
from typing import Optional, Dict, Any, List
from urllib.parse import urlparse, unquote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .state import FrameRemovalUpdate, FrameRemovalJob, ProcessingStatus

logger = logging.getLogger(__name__)

STORE_SCHEME = "store"
FETCH_TIMEOUT_S = 30

# R2 ignores the region but the S3 client requires one
DEFAULT_REGION = "auto"

_MISSING_CODES = ('404', 'NoSuchKey', 'NotFound')


class RepositoryError(Exception):
    """Raised when repository operations fail."""
    pass


def _error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', '')


class S3ObjectStore:
    """
    Processed-image bucket on S3 or an S3-compatible service such as R2.

    Credentials come from the usual AWS environment variables; the endpoint
    URL selects a non-AWS service.
    """

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        region_name: Optional[str] = None,
        client=None
    ):
        if not bucket:
            raise RepositoryError("A bucket name is required")
        self.bucket = bucket
        if client is None:
            client = boto3.client(
                's3',
                endpoint_url=endpoint_url or os.getenv('S3_ENDPOINT_URL'),
                aws_access_key_id=os.getenv('AWS_ACCESS_KEY_ID'),
                aws_secret_access_key=os.getenv('AWS_SECRET_ACCESS_KEY'),
                region_name=region_name or os.getenv('AWS_REGION', DEFAULT_REGION)
            )
        self.client = client

    @staticmethod
    def _check_key(key: str) -> str:
        if not key or key.startswith('/'):
            raise RepositoryError(f"Invalid object key: {key!r}")
        return key

    def get(self, key: str) -> Optional[bytes]:
        """
        Load an object.

        Returns:
            Object bytes or None if the key does not exist

        Raises:
            RepositoryError: If the read fails
        """
        key = self._check_key(key)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response['Body'].read()
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return None
            logger.error(f"Error reading object {key}: {e}")
            raise RepositoryError(f"Error reading object {key}: {str(e)}") from e
        except BotoCoreError as e:
            logger.error(f"Error reading object {key}: {e}")
            raise RepositoryError(f"Error reading object {key}: {str(e)}") from e

    def put(
        self,
        key: str,
        data: bytes,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Store an object, replacing any existing one.

        Raises:
            RepositoryError: If the upload fails
        """
        key = self._check_key(key)
        params = {'Bucket': self.bucket, 'Key': key, 'Body': data}
        if content_type:
            params['ContentType'] = content_type
        if metadata:
            params['Metadata'] = {k: str(v) for k, v in metadata.items()}

        try:
            self.client.put_object(**params)
            logger.debug(f"Stored object {key} ({len(data)} bytes)")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error storing object {key}: {e}")
            raise RepositoryError(f"Error storing object {key}: {str(e)}") from e

    def exists(self, key: str) -> bool:
        key = self._check_key(key)
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return False
            raise RepositoryError(f"Error checking object {key}: {str(e)}") from e
        except BotoCoreError as e:
            raise RepositoryError(f"Error checking object {key}: {str(e)}") from e

    def delete(self, key: str) -> bool:
        """
        Remove an object.

        Returns:
            True if the object existed
        """
        if not self.exists(key):
            return False
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error removing object {key}: {e}")
            raise RepositoryError(f"Error removing object {key}: {str(e)}") from e


def fetch_image_bytes(image_url: str, store: Optional[S3ObjectStore] = None) -> bytes:
    """
    Fetch source image bytes for a job.

    Supports ``http(s)://`` URLs, ``file://`` URLs, plain filesystem paths and
    ``store://<key>`` references into the object store.

    Raises:
        RepositoryError: If the image cannot be fetched
    """
    parsed = urlparse(image_url)
    scheme = parsed.scheme.lower()

    if scheme in ('http', 'https'):
        try:
            with urllib.request.urlopen(image_url, timeout=FETCH_TIMEOUT_S) as response:
                return response.read()
        except (urllib.error.URLError, OSError) as e:
            raise RepositoryError(f"Failed to fetch image: {str(e)}") from e

    if scheme == STORE_SCHEME:
        if store is None:
            raise RepositoryError(f"No object store configured for {image_url}")
        key = (parsed.netloc + parsed.path).lstrip('/')
        data = store.get(key)
        if data is None:
            raise RepositoryError(f"Object not found: {key}")
        return data

    if scheme == 'file':
        path = Path(unquote(parsed.path))
    elif scheme == '' or len(scheme) == 1:
        # Bare paths, including Windows drive letters
        path = Path(image_url)
    else:
        raise RepositoryError(f"Unsupported image URL scheme: {scheme}")

    try:
        return path.read_bytes()
    except OSError as e:
        raise RepositoryError(f"Failed to read image {path}: {str(e)}") from e


_SCHEMA = """
CREATE TABLE IF NOT EXISTS artworks (
    id TEXT PRIMARY KEY,
    gallery_id TEXT NOT NULL,
    image_url TEXT NOT NULL,
    image_url_processed TEXT,
    processing_status TEXT CHECK(
        processing_status IN ('pending', 'processing', 'completed', 'failed')
    ),
    frame_removal_confidence REAL CHECK(
        frame_removal_confidence >= 0.0 AND frame_removal_confidence <= 1.0
    ),
    processing_error TEXT,
    processed_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_artworks_processing_status
ON artworks(gallery_id, processing_status)
WHERE processing_status IS NOT NULL;
"""


class ArtworkStore:
    """SQLite-backed artwork rows carrying frame-removal status columns."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        try:
            self._conn = sqlite3.connect(str(db_path))
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as e:
            logger.error(f"Failed to open artwork store {db_path}: {e}")
            raise RepositoryError(f"Failed to open artwork store: {str(e)}") from e

    def close(self) -> None:
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _execute(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        try:
            with self._conn:
                return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Artwork store error: {e}")
            raise RepositoryError(f"Artwork store error: {str(e)}") from e

    def _update_artwork(self, artwork_id: str, sql: str, params: tuple) -> None:
        try:
            with self._conn:
                updated = self._conn.execute(sql, params).rowcount
        except sqlite3.Error as e:
            logger.error(f"Artwork store error: {e}")
            raise RepositoryError(f"Artwork store error: {str(e)}") from e
        if updated == 0:
            logger.error(f"No artwork row for {artwork_id}")
            raise RepositoryError(f"Unknown artwork: {artwork_id}")

    def add_artwork(self, artwork_id: str, gallery_id: str, image_url: str) -> None:
        """Insert or replace an artwork row in the pending state."""
        self._execute(
            """INSERT OR REPLACE INTO artworks (id, gallery_id, image_url, processing_status)
               VALUES (?, ?, ?, ?)""",
            (artwork_id, gallery_id, image_url, ProcessingStatus.PENDING.value)
        )

    def ensure_artwork(self, job: FrameRemovalJob) -> None:
        """Insert a pending row for a job's artwork unless one already exists."""
        self._execute(
            """INSERT OR IGNORE INTO artworks (id, gallery_id, image_url, processing_status)
               VALUES (?, ?, ?, ?)""",
            (job.artwork_id, job.gallery_id, job.image_url, ProcessingStatus.PENDING.value)
        )

    def get_artwork(self, artwork_id: str) -> Optional[Dict[str, Any]]:
        rows = self._execute("SELECT * FROM artworks WHERE id = ?", (artwork_id,))
        return dict(rows[0]) if rows else None

    def mark_processing(self, artwork_id: str) -> None:
        """
        Set an artwork to the processing state.

        Raises:
            RepositoryError: If the artwork has no row
        """
        self._update_artwork(
            artwork_id,
            "UPDATE artworks SET processing_status = ? WHERE id = ?",
            (ProcessingStatus.PROCESSING.value, artwork_id)
        )

    def apply_update(self, update: FrameRemovalUpdate) -> None:
        """
        Persist the outcome of a frame removal job.

        A failed update keeps any previously stored processed image URL and
        confidence; a completed one replaces both.

        Raises:
            RepositoryError: If the artwork has no row or the write fails
        """
        if update.status == ProcessingStatus.FAILED:
            self._update_artwork(
                update.artwork_id,
                """UPDATE artworks
                   SET processing_status = ?, processing_error = ?, processed_at = ?
                   WHERE id = ?""",
                (update.status.value, update.error, update.processed_at, update.artwork_id)
            )
            return

        self._update_artwork(
            update.artwork_id,
            """UPDATE artworks
               SET image_url_processed = ?, processing_status = ?,
                   frame_removal_confidence = ?, processing_error = ?, processed_at = ?
               WHERE id = ?""",
            (update.processed_image_url, update.status.value, update.confidence,
             update.error, update.processed_at, update.artwork_id)
        )

    def pending_jobs(self, gallery_id: str, force_reprocess: bool = False) -> List[FrameRemovalJob]:
        """
        Jobs for every artwork in a gallery that still needs processing.

        Artworks already completed or currently processing are skipped unless
        ``force_reprocess`` is set.
        """
        sql = "SELECT id, image_url, gallery_id FROM artworks WHERE gallery_id = ?"
        params = (gallery_id,)
        if not force_reprocess:
            sql += " AND (processing_status IS NULL OR processing_status IN (?, ?))"
            params += (ProcessingStatus.PENDING.value, ProcessingStatus.FAILED.value)
        rows = self._execute(sql + " ORDER BY id", params)
        return [
            FrameRemovalJob(artwork_id=row['id'], image_url=row['image_url'], gallery_id=row['gallery_id'])
            for row in rows
        ]

    def processing_stats(self, gallery_id: str) -> Dict[str, Any]:
        """Counts per processing status and the mean confidence for a gallery."""
        rows = self._execute(
            """SELECT
                   COUNT(*) AS total,
                   COUNT(image_url_processed) AS has_processed_image,
                   SUM(CASE WHEN processing_status = 'pending' THEN 1 ELSE 0 END) AS pending,
                   SUM(CASE WHEN processing_status = 'processing' THEN 1 ELSE 0 END) AS processing,
                   SUM(CASE WHEN processing_status = 'completed' THEN 1 ELSE 0 END) AS completed,
                   SUM(CASE WHEN processing_status = 'failed' THEN 1 ELSE 0 END) AS failed,
                   AVG(frame_removal_confidence) AS avg_confidence
               FROM artworks WHERE gallery_id = ?""",
            (gallery_id,)
        )
        stats = dict(rows[0])
        for key in ('pending', 'processing', 'completed', 'failed'):
            stats[key] = stats[key] or 0
        return stats
