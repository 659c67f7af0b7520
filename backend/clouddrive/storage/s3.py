"""S3-compatible object store backend (AWS, R2, MinIO...)."""

import logging
from typing import Any, BinaryIO, List, Sequence

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..core.storage_config import S3Settings
from ..exceptions import StorageBackendError, StorageConfigurationError, StorageObjectNotFoundError
from .base import DownloadResult, RemoteObject, StorageBackend, UploadResult, iter_chunks

logger = logging.getLogger(__name__)

# DeleteObjects accepts at most 1000 keys per request.
S3_DELETE_BATCH = 1000
_MISSING_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


class S3Storage(StorageBackend):
    """Objects are keyed ``{user_id}/{folder_id}/{file_name}``."""

    name = "s3"

    def __init__(self, config: S3Settings, client: Any = None):
        if not config.bucket_name:
            raise StorageConfigurationError("S3 storage mode is enabled but no bucket is configured.")
        self.bucket = config.bucket_name
        self.public_url = config.public_url
        self.client = client or boto3.client(
            "s3",
            endpoint_url=config.endpoint or None,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region or "auto",
            config=BotoConfig(signature_version="s3v4", retries={"max_attempts": 3}),
        )

    def upload(self, stream: BinaryIO, file_name: str, content_type: str,
               user_id: int, folder_id: int) -> UploadResult:
        key = f"{user_id}/{folder_id}/{file_name}"
        try:
            self.client.upload_fileobj(
                stream, self.bucket, key, ExtraArgs={"ContentType": content_type}
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageBackendError(f"S3 upload failed: {e}", self.name) from e
        return UploadResult(physical_id=key)

    def download(self, physical_id: str, user_id: int) -> DownloadResult:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=physical_id)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                raise StorageObjectNotFoundError(physical_id, self.name) from e
            raise StorageBackendError(f"S3 download failed: {e}", self.name) from e
        except BotoCoreError as e:
            raise StorageBackendError(f"S3 download failed: {e}", self.name) from e

        return DownloadResult(
            stream=iter_chunks(obj["Body"]),
            content_type=obj.get("ContentType") or "application/octet-stream",
            content_length=obj.get("ContentLength"),
            etag=obj.get("ETag"),
        )

    def remove(self, files: Sequence[Any], folders: Sequence[Any], user_id: int) -> None:
        keys = [f.physical_id for f in files if f.physical_id]
        parents = {k.rsplit("/", 1)[0] for k in keys if "/" in k}

        for start in range(0, len(keys), S3_DELETE_BATCH):
            chunk = keys[start:start + S3_DELETE_BATCH]
            try:
                resp = self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": k} for k in chunk], "Quiet": True},
                )
                for err in resp.get("Errors", []):
                    logger.warning("S3 delete failed for %s: %s", err.get("Key"), err.get("Message"))
            except (BotoCoreError, ClientError) as e:
                logger.warning("S3 batch delete failed (%d keys): %s", len(chunk), e)

        for parent in parents:
            self._delete_dir_marker_if_empty(parent)

    def _delete_dir_marker_if_empty(self, prefix: str) -> None:
        # Some S3 tools create zero-byte "dir/" markers; drop them once empty.
        try:
            if not self.list(prefix + "/"):
                self.client.delete_object(Bucket=self.bucket, Key=prefix + "/")
        except (BotoCoreError, ClientError, StorageBackendError) as e:
            logger.debug("Skipped S3 marker cleanup for %s: %s", prefix, e)

    def list(self, prefix: str) -> List[RemoteObject]:
        objects: List[RemoteObject] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    if item["Key"].endswith("/"):
                        continue
                    objects.append(RemoteObject(
                        physical_id=item["Key"],
                        size=int(item.get("Size", 0)),
                        updated_at=int(item["LastModified"].timestamp() * 1000),
                    ))
        except (BotoCoreError, ClientError) as e:
            raise StorageBackendError(f"S3 list failed: {e}", self.name) from e
        return objects
