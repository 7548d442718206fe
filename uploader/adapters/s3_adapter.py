"""
AWS S3 adapter for video blobs.

Uploads run on a background thread through boto3's managed transfer so the
caller can await completion; download URLs are either public URLs under a
configured base or presigned GET URLs.
"""

import os
import logging
import threading
from typing import Optional

import boto3
from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from .base import ObjectStoreAdapter, TransferHandle, ProgressCallback
from ..errors import BlobDeleteFailed, TransferFailed, URLResolutionFailed

logger = logging.getLogger("video_uploader")

# SigV4 presigned URLs are capped at seven days
MAX_PRESIGNED_EXPIRY = 7 * 24 * 3600


class S3Transfer(TransferHandle):
    """Upload of one local file, running on its own thread"""

    def __init__(self, client, bucket: str, local_path: str, remote_path: str,
                 progress: Optional[ProgressCallback] = None):
        self.client = client
        self.bucket = bucket
        self.local_path = local_path
        self.remote_path = remote_path
        self.progress = progress
        self.error: Optional[Exception] = None
        self.bytes_sent = 0
        self._total: Optional[int] = None
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self) -> 'S3Transfer':
        try:
            self._total = os.path.getsize(self.local_path)
        except OSError:
            self._total = None
        self._thread.start()
        return self

    def _on_bytes(self, count: int) -> None:
        self.bytes_sent += count
        if self.progress:
            self.progress(self.bytes_sent, self._total)

    def _run(self) -> None:
        try:
            self.client.upload_file(
                self.local_path,
                self.bucket,
                self.remote_path,
                ExtraArgs={"ContentType": "video/mp4"},
                Callback=self._on_bytes,
            )
            logger.info(f"Uploaded {self.local_path} to s3://{self.bucket}/{self.remote_path}")
        except (Boto3Error, ClientError, BotoCoreError, OSError) as e:
            # upload_file wraps most failures in S3UploadFailedError
            self.error = e

    def await_completion(self) -> None:
        self._thread.join()
        if self.error is not None:
            raise TransferFailed(f"Upload to {self.remote_path} failed: {self.error}") from self.error


class S3ObjectStore(ObjectStoreAdapter):
    """AWS S3 (or S3-compatible) implementation of the object store"""

    def __init__(self, bucket: str, region: str = "us-east-1",
                 endpoint_url: Optional[str] = None, public_url: Optional[str] = None,
                 url_expiry: int = MAX_PRESIGNED_EXPIRY):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url or None
        self.public_url = public_url or None
        self.url_expiry = min(url_expiry, MAX_PRESIGNED_EXPIRY)
        self.s3 = None

    def connect(self):
        """Initialize S3 client"""
        try:
            client_kwargs = {"region_name": self.region}
            if self.endpoint_url:
                client_kwargs["endpoint_url"] = self.endpoint_url
            self.s3 = boto3.client('s3', **client_kwargs)
            logger.info(f"S3 object store connected to bucket: {self.bucket}")
        except Exception as e:
            logger.error(f"Failed to connect to S3: {e}")
            raise

    def put_file(self, local_path: str, remote_path: str,
                 progress: Optional[ProgressCallback] = None) -> S3Transfer:
        return S3Transfer(self.s3, self.bucket, local_path, remote_path, progress).start()

    def get_download_url(self, remote_path: str) -> str:
        """Confirm the object exists, then build its URL"""
        try:
            self.s3.head_object(Bucket=self.bucket, Key=remote_path)
            if self.public_url:
                return f"{self.public_url.rstrip('/')}/{remote_path}"
            return self.s3.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket, 'Key': remote_path},
                ExpiresIn=self.url_expiry,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error resolving download URL for {remote_path}: {e}")
            raise URLResolutionFailed(f"Could not resolve URL for {remote_path}: {e}") from e

    def exists(self, remote_path: str) -> bool:
        try:
            self.s3.head_object(Bucket=self.bucket, Key=remote_path)
            return True
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in ('404', 'NoSuchKey', 'NotFound'):
                return False
            logger.warning(f"Error checking {remote_path}: {e}")
            return False
        except BotoCoreError as e:
            logger.warning(f"Error checking {remote_path}: {e}")
            return False

    def delete(self, remote_path: str) -> None:
        try:
            self.s3.delete_object(Bucket=self.bucket, Key=remote_path)
            logger.info(f"Deleted s3://{self.bucket}/{remote_path}")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error deleting {remote_path}: {e}")
            raise BlobDeleteFailed(f"Could not delete {remote_path}: {e}") from e

    def close(self):
        """Close S3 connection"""
        self.s3 = None
        logger.info("S3 object store connection closed")
