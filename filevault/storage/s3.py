import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from filevault.config import Settings
from filevault.exceptions import StoreFailure

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
_MISSING_CODES = ("404", "NoSuchKey", "NotFound")


@dataclass(frozen=True)
class BlobInfo:
    name: str
    size: int
    last_modified: datetime
    uri: str
    content_type: str = DEFAULT_CONTENT_TYPE


def _error_code(exc: ClientError) -> str | None:
    return getattr(exc, "response", {}).get("Error", {}).get("Code")


@contextmanager
def _store_call(action: str, key: str | None = None):
    try:
        yield
    except (ClientError, BotoCoreError) as e:
        logger.exception("Blob store %s failed (key=%s)", action, key)
        raise StoreFailure(f"Blob store {action} failed") from e


class S3Storage:
    def __init__(self, settings: Settings, client=None):
        self.bucket = settings.S3_BUCKET
        self.region = settings.S3_REGION
        self.endpoint_url = settings.S3_ENDPOINT_URL
        self.client = client or boto3.client(
            "s3",
            region_name = settings.S3_REGION,
            endpoint_url = settings.S3_ENDPOINT_URL,
            aws_access_key_id = settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key = settings.S3_SECRET_ACCESS_KEY,
        )

    def url_for(self, key: str) -> str:
        quoted = quote(key)
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{quoted}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{quoted}"

    def ensure_bucket(self) -> None:
        with _store_call("ensure_bucket"):
            try:
                self.client.head_bucket(Bucket=self.bucket)
                return
            except ClientError as e:
                if _error_code(e) not in _MISSING_CODES + ("NoSuchBucket",):
                    raise
            params = {"Bucket": self.bucket}
            if self.region and self.region != "us-east-1":
                params["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
            self.client.create_bucket(**params)
            logger.info("Created bucket %s", self.bucket)

    def ping(self) -> dict:
        with _store_call("ping"):
            self.client.head_bucket(Bucket=self.bucket)
        return {"bucket": self.bucket, "region": self.region}

    def exists(self, *, key: str) -> bool:
        with _store_call("exists", key):
            try:
                self.client.head_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if _error_code(e) in _MISSING_CODES:
                    return False
                raise
        return True

    def _blob_from_head(self, key: str, resp: dict) -> BlobInfo:
        return BlobInfo(
            name=key,
            size=int(resp.get("ContentLength", 0)),
            last_modified=resp.get("LastModified") or datetime.now(timezone.utc),
            uri=self.url_for(key),
            content_type=resp.get("ContentType") or DEFAULT_CONTENT_TYPE,
        )

    # get metadata
    def head(self, *, key: str) -> BlobInfo:
        with _store_call("head", key):
            resp = self.client.head_object(Bucket=self.bucket, Key=key)
        return self._blob_from_head(key, resp)

    def _head_if_present(self, key: str) -> BlobInfo | None:
        with _store_call("head", key):
            try:
                resp = self.client.head_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if _error_code(e) in _MISSING_CODES:
                    return None
                raise
        return self._blob_from_head(key, resp)

    def put(self, *, key: str, data: bytes, content_type: str) -> BlobInfo:
        with _store_call("put", key):
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        return self.head(key=key)

    def list_blobs(self, *, with_metadata: bool = False) -> list[BlobInfo]:
        """Every object in the bucket.

        Listing does not return content types; ``with_metadata`` issues a
        head request per object to fetch them.
        """
        blobs = []
        with _store_call("list"):
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket):
                for obj in page.get("Contents", []):
                    blobs.append(BlobInfo(
                        name=obj["Key"],
                        size=int(obj.get("Size", 0)),
                        last_modified=obj.get("LastModified") or datetime.now(timezone.utc),
                        uri=self.url_for(obj["Key"]),
                    ))
        if with_metadata:
            # a key deleted between the listing and its head is skipped
            heads = (self._head_if_present(b.name) for b in blobs)
            return [b for b in heads if b is not None]
        return blobs

    def delete(self, *, key: str) -> None:
        # S3 delete is a no-op for missing keys
        with _store_call("delete", key):
            self.client.delete_object(Bucket=self.bucket, Key=key)
