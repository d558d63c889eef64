"""
S3 Storage Service for normalized sticker sources
Uploads image bytes and hands back the public URL the generation model reads
"""
import logging
import uuid
from typing import Callable, Optional
from urllib.parse import urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import StorageConfig, get_config
from .errors import StorageError

logger = logging.getLogger(__name__)

# (data, content_type) -> public URL
Uploader = Callable[[bytes, str], str]

EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
}


class S3Service:
    """Service for publishing images to AWS S3 (or an S3-compatible store)"""

    def __init__(
        self,
        bucket: str,
        region: str = "ap-south-1",
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        prefix: str = "",
        public_url_base: Optional[str] = None,
        client=None,
    ):
        """
        Initialize S3 service

        Args:
            bucket: S3 bucket name
            region: AWS region
            endpoint_url: Custom S3 endpoint (for MinIO, etc.)
            access_key: AWS access key ID (falls back to the boto3 credential chain)
            secret_key: AWS secret access key
            prefix: Key prefix for uploaded objects
            public_url_base: CDN/base URL used instead of the bucket host
            client: Pre-built boto3 S3 client
        """
        self.bucket = bucket
        self.region = region
        self.prefix = prefix
        self.public_url_base = public_url_base.rstrip("/") if public_url_base else None

        if client is None:
            client_kwargs = {"region_name": region}
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url
            if access_key and secret_key:
                client_kwargs["aws_access_key_id"] = access_key
                client_kwargs["aws_secret_access_key"] = secret_key
            client = boto3.client("s3", **client_kwargs)
        self.s3_client = client

        # Verify bucket exists
        try:
            self.s3_client.head_bucket(Bucket=bucket)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code in ("404", "NoSuchBucket"):
                raise StorageError(f"S3 bucket '{bucket}' not found") from e
            if error_code == "403":
                raise StorageError(f"Access denied to S3 bucket '{bucket}'") from e
            raise StorageError(f"Failed to connect to S3: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to connect to S3: {e}") from e
        logger.info(f"✅ S3 connection successful - bucket: {bucket}")

    @classmethod
    def from_config(cls, config: Optional[StorageConfig] = None) -> "S3Service":
        config = config or get_config().storage
        if not config.use_s3:
            raise StorageError("S3_BUCKET is not configured")
        return cls(
            bucket=config.s3_bucket,
            region=config.s3_region,
            endpoint_url=config.s3_endpoint or None,
            access_key=config.s3_access_key or None,
            secret_key=config.s3_secret_key or None,
            prefix=config.s3_prefix,
            public_url_base=config.public_url_base,
        )

    def upload_image(
        self,
        file_bytes: bytes,
        key: str,
        content_type: str = "image/png",
        metadata: Optional[dict] = None,
    ) -> str:
        """
        Upload image to S3

        Returns:
            S3 object URL (s3://bucket/key)
        """
        extra_args = {
            "ContentType": content_type,
            "ServerSideEncryption": "AES256",
        }
        if metadata:
            extra_args["Metadata"] = {str(k): str(v) for k, v in metadata.items()}

        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=file_bytes,
                **extra_args,
            )
        except (ClientError, BotoCoreError) as e:
            error_msg = f"Failed to upload to S3: {e}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

        s3_url = f"s3://{self.bucket}/{key}"
        logger.info(f"✅ Uploaded to S3: {s3_url} ({len(file_bytes)} bytes)")
        return s3_url

    def get_https_url(self, key: str) -> str:
        """Public HTTPS URL for an object"""
        if self.public_url_base:
            return f"{self.public_url_base}/{key}"

        endpoint = getattr(self.s3_client.meta, "endpoint_url", None)
        if endpoint:
            host = urlparse(endpoint).netloc
            if host:
                # Virtual-hosted-style URL: https://{bucket}.{s3-host}/{key}
                return f"https://{self.bucket}.{host}/{key}"

        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def publish(self, file_bytes: bytes, content_type: str = "image/png") -> str:
        """Upload under a fresh key and return its public URL"""
        key = f"{self.prefix}{uuid.uuid4().hex}{EXTENSIONS.get(content_type, '')}"
        self.upload_image(file_bytes, key, content_type=content_type)
        return self.get_https_url(key)

    def as_uploader(self) -> Uploader:
        """Uploader callable for StickerSourcePreparer"""
        return self.publish
