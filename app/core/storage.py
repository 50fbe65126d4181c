"""
Resume file storage supporting local filesystem and S3-compatible services.

Objects are addressed by a key such as "resumes/<file_id>.pdf". The API
writes them at upload time; the Parse queue reads them back as bytes.
"""

import logging
import os
from functools import lru_cache
from typing import Optional
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from app.core.config import settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when an object cannot be written or read"""
    pass


class StorageBackend:
    """Abstract base class for storage backends"""

    def upload(self, data: bytes, object_name: str, content_type: str) -> str:
        """Store bytes under object_name and return the key"""
        raise NotImplementedError

    def download(self, object_name: str) -> bytes:
        """Return the object's bytes"""
        raise NotImplementedError

    def delete(self, object_name: str) -> bool:
        raise NotImplementedError

    def exists(self, object_name: str) -> bool:
        raise NotImplementedError


class LocalStorage(StorageBackend):
    """Local filesystem storage backend (development)"""

    def __init__(self, base_dir: str = settings.LOCAL_STORAGE_DIR):
        self.base_dir = base_dir
        os.makedirs(self.base_dir, exist_ok=True)

    def _path(self, object_name: str) -> str:
        path = os.path.normpath(os.path.join(self.base_dir, object_name))
        # Keys are relative; refuse anything that climbs out of base_dir
        if not path.startswith(os.path.normpath(self.base_dir) + os.sep):
            raise StorageError(f"Invalid object name: {object_name}")
        return path

    def upload(self, data: bytes, object_name: str, content_type: str) -> str:
        path = self._path(object_name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as buffer:
            buffer.write(data)
        return object_name

    def download(self, object_name: str) -> bytes:
        try:
            with open(self._path(object_name), "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise StorageError(f"Object not found: {object_name}")

    def delete(self, object_name: str) -> bool:
        path = self._path(object_name)
        if os.path.exists(path):
            os.remove(path)
            return True
        return False

    def exists(self, object_name: str) -> bool:
        return os.path.exists(self._path(object_name))


class S3Storage(StorageBackend):
    """AWS S3 / MinIO storage backend"""

    def __init__(self, bucket_name: Optional[str] = None, endpoint_url: Optional[str] = None):
        self.bucket_name = bucket_name or settings.S3_BUCKET_NAME

        client_kwargs = {"region_name": settings.AWS_REGION}
        # MinIO and other S3-compatible services
        if endpoint_url or settings.S3_ENDPOINT_URL:
            client_kwargs["endpoint_url"] = endpoint_url or settings.S3_ENDPOINT_URL
        # Without explicit keys boto3 falls back to IAM roles
        if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
            client_kwargs["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
            client_kwargs["aws_secret_access_key"] = settings.AWS_SECRET_ACCESS_KEY

        self.s3_client = boto3.client("s3", **client_kwargs)

    def upload(self, data: bytes, object_name: str, content_type: str) -> str:
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=object_name,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error uploading {object_name} to S3: {e}")
            raise StorageError(f"Failed to upload file: {e}")
        return object_name

    def download(self, object_name: str) -> bytes:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=object_name)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error downloading {object_name} from S3: {e}")
            raise StorageError(f"Failed to download file: {e}")

    def delete(self, object_name: str) -> bool:
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=object_name)
            return True
        except ClientError as e:
            logger.error(f"Error deleting {object_name} from S3: {e}")
            return False

    def exists(self, object_name: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=object_name)
            return True
        except ClientError:
            return False

    def check(self) -> None:
        """Raise if the bucket is unreachable (health checks)"""
        self.s3_client.head_bucket(Bucket=self.bucket_name)


@lru_cache
def get_storage() -> StorageBackend:
    """Get storage backend based on USE_S3 setting"""
    if settings.USE_S3:
        if not settings.S3_BUCKET_NAME:
            raise ValueError("S3_BUCKET_NAME must be set when USE_S3=True")
        return S3Storage()
    return LocalStorage()
