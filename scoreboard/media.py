"""
Media attachment: upload a captured screenshot to the image host, then patch
the resulting URL onto the task's record.

Runs only after the task's base fields are persisted, so a record id always
exists. If the patch fails the uploaded image stays on the host unreferenced;
nothing cleans it up.
"""
import logging

import cloudinary.exceptions
import cloudinary.uploader

from .errors import AttachFailed, GatewayError, UploadFailed, ValidationError
from .gateway import RecordGateway

logger = logging.getLogger(__name__)


class ImageUploader:
    """Uploads to the image hosting service through its SDK."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        folder: str = "youtube-screenshots",
        timeout: int = 60,
    ):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "ImageUploader":
        settings.require_uploads()
        return cls(
            cloud_name=settings.cloud_name,
            api_key=settings.upload_key,
            api_secret=settings.upload_secret,
            folder=settings.upload_folder,
        )

    def upload(self, encoded_image: str) -> str:
        """Upload a data-URI/base64 image as PNG and return its public https URL."""
        if not encoded_image:
            raise ValidationError("No image to upload")
        try:
            result = cloudinary.uploader.upload(
                encoded_image,
                folder=self.folder,
                resource_type="image",
                format="png",
                cloud_name=self.cloud_name,
                api_key=self.api_key,
                api_secret=self.api_secret,
                timeout=self.timeout,
            )
        except (cloudinary.exceptions.Error, OSError) as e:
            raise UploadFailed(f"Image upload failed: {e}") from e
        image_url = result.get("secure_url") if isinstance(result, dict) else None
        if not image_url:
            raise UploadFailed("Image host response carried no URL")
        logger.info(f"Upload successful: {image_url}")
        return image_url


class MediaAttachmentGateway:
    """Two steps: upload, then set ``screenshotUrl`` on the record."""

    def __init__(self, records: RecordGateway, uploader: ImageUploader):
        self.records = records
        self.uploader = uploader

    def attach(self, collection: str, record_id: str, encoded_image: str) -> str:
        if not record_id:
            raise ValidationError("Record ID is required")
        logger.info(f"Uploading screenshot for record: {record_id}")
        image_url = self.uploader.upload(encoded_image)
        try:
            self.records.update(collection, record_id, {"screenshotUrl": image_url})
        except GatewayError as e:
            logger.error(f"Record update after upload failed for {record_id}: {e}")
            raise AttachFailed(f"Record update failed: {e}", image_url=image_url) from e
        return image_url
