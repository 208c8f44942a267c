"""
MinIO (S3-compatible) client for image storage.

Stores post images and avatars as objects. Images are normalised with
Pillow before upload: bounded to ``max_dimension`` on the longest side and
re-encoded. Reads hand out pre-signed URLs so clients fetch the bytes
directly from MinIO without going through the API service.
"""
import logging
import uuid
from io import BytesIO
from typing import Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from PIL import Image, UnidentifiedImageError

from community_api.config import Settings
from community_api.errors import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)

POSTS_FOLDER = "posts"
PROFILES_FOLDER = "profiles"

_CONTENT_TYPES = {
    "JPEG": ("jpg", "image/jpeg"),
    "PNG": ("png", "image/png"),
    "WEBP": ("webp", "image/webp"),
}


class MediaStore:
    def __init__(
        self,
        s3,
        bucket: str,
        url_ttl: int = 3600,
        max_dimension: int = 800,
        max_pixels: int = 40_000_000,
    ) -> None:
        self._s3 = s3
        self.bucket = bucket
        self.url_ttl = url_ttl
        self.max_dimension = max_dimension
        self.max_pixels = max_pixels

    @classmethod
    def from_settings(cls, settings: Settings) -> "MediaStore":
        scheme = "https" if settings.minio_use_ssl else "http"
        s3 = boto3.client(
            "s3",
            endpoint_url=f"{scheme}://{settings.minio_endpoint}",
            aws_access_key_id=settings.minio_access_key,
            aws_secret_access_key=settings.minio_secret_key,
            config=Config(signature_version="s3v4"),
            region_name="us-east-1",
        )
        return cls(
            s3,
            settings.minio_bucket,
            url_ttl=settings.media_url_ttl,
            max_dimension=settings.image_max_dimension,
            max_pixels=settings.image_max_pixels,
        )

    def ensure_bucket(self) -> None:
        """Create the media bucket if missing."""
        try:
            existing = [b["Name"] for b in self._s3.list_buckets().get("Buckets", [])]
            if self.bucket not in existing:
                self._s3.create_bucket(Bucket=self.bucket)
                logger.info("Created MinIO bucket '%s'", self.bucket)
            else:
                logger.info("MinIO bucket '%s' already exists", self.bucket)
        except (BotoCoreError, ClientError) as exc:
            logger.warning("Could not verify MinIO bucket '%s': %s", self.bucket, exc)

    def normalise_image(self, data: bytes) -> tuple[bytes, str, str]:
        """
        Bound the image to max_dimension x max_dimension and re-encode it.
        Returns (bytes, extension, content type).

        The header is checked against max_pixels before any pixel data is
        decoded; thumbnail() decodes through draft() where the codec allows.
        """
        try:
            image = Image.open(BytesIO(data))
        except Image.DecompressionBombError as exc:
            raise ValidationError("Image dimensions are too large") from exc
        except (UnidentifiedImageError, OSError) as exc:
            raise ValidationError("Only image files are allowed") from exc

        width, height = image.size
        if width * height > self.max_pixels:
            raise ValidationError("Image dimensions are too large")

        fmt = image.format if image.format in _CONTENT_TYPES else "JPEG"
        try:
            image.thumbnail((self.max_dimension, self.max_dimension))
            image.load()
        except Image.DecompressionBombError as exc:
            raise ValidationError("Image dimensions are too large") from exc
        except OSError as exc:
            raise ValidationError("Only image files are allowed") from exc
        if fmt == "JPEG" and image.mode not in ("RGB", "L"):
            image = image.convert("RGB")

        out = BytesIO()
        if fmt == "JPEG":
            image.save(out, format=fmt, quality=85, optimize=True)
        else:
            image.save(out, format=fmt)
        ext, content_type = _CONTENT_TYPES[fmt]
        return out.getvalue(), ext, content_type

    def upload_image(self, data: bytes, folder: str) -> str:
        """
        Normalise and upload an image, return the object key.
        Key format: {folder}/{uuid}.{ext}
        """
        body, ext, content_type = self.normalise_image(data)
        key = f"{folder}/{uuid.uuid4()}.{ext}"
        try:
            self._s3.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=BytesIO(body),
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Image upload to MinIO failed: %s", exc)
            raise ExternalServiceError("Failed to upload image") from exc
        logger.debug("Uploaded image to MinIO: %s", key)
        return key

    def delete_object(self, key: str) -> None:
        try:
            self._s3.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            logger.error("Failed to delete %s from MinIO: %s", key, exc)
            raise ExternalServiceError("Failed to delete image") from exc

    def url_for(self, key: Optional[str]) -> Optional[str]:
        """Generate a temporary pre-signed URL valid for url_ttl seconds."""
        if not key:
            return None
        try:
            return self._s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.url_ttl,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.warning("Failed to generate presigned URL for %s: %s", key, exc)
            return None
