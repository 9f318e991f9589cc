# image_store.py
import io
import logging

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader

from config import settings
from errors import ImageUploadError

logger = logging.getLogger(__name__)


class CloudinaryImageStore:
    """Uploads meter photos to Cloudinary and hands back their https URL."""

    def __init__(self, cloud_name, api_key, api_secret, folder="anopog-readings"):
        self.folder = folder
        cloudinary.config(
            cloud_name=cloud_name,
            api_key=api_key,
            api_secret=api_secret,
            secure=True,
        )

    @classmethod
    def from_settings(cls):
        return cls(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            folder=settings.cloudinary_folder,
        )

    def upload(self, data: bytes) -> str:
        try:
            result = cloudinary.uploader.upload(io.BytesIO(data), folder=self.folder)
            return result["secure_url"]
        except (cloudinary.exceptions.Error, KeyError) as exc:
            logger.exception("Image upload to folder %s failed", self.folder)
            raise ImageUploadError("Failed to upload image") from exc
