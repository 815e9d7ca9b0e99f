"""Image hosting: multipart uploads are staged on disk, then pushed to Cloudinary."""
import logging
import os
import shutil
import uuid

import cloudinary
import cloudinary.uploader
from fastapi import UploadFile

from config import get_settings
from errors import DownstreamError, InvalidInputError

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")


def save_upload(upload: UploadFile, directory: str) -> str:
    """Write an uploaded file to `directory` and return its local path."""
    if upload.content_type not in ALLOWED_CONTENT_TYPES:
        raise InvalidInputError("Only jpeg, png, webp and gif images are allowed", status_code=400)
    os.makedirs(directory, exist_ok=True)
    _, ext = os.path.splitext(upload.filename or "")
    path = os.path.join(directory, f"{uuid.uuid4().hex}{ext.lower()}")
    with open(path, "wb") as buffer:
        shutil.copyfileobj(upload.file, buffer)
    return path


class CloudinaryUploader:

    def __init__(self, cloud_name: str = None, api_key: str = None, api_secret: str = None):
        if cloud_name:
            cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)

    def upload(self, local_path: str) -> str:
        try:
            response = cloudinary.uploader.upload(local_path, resource_type="auto")
        except Exception as e:
            logger.error(f"Image upload failed for {local_path}: {e}")
            raise DownstreamError("Error uploading image")
        finally:
            if os.path.exists(local_path):
                os.remove(local_path)
        url = response.get("secure_url") or response.get("url")
        if not url:
            raise DownstreamError("Error uploading image")
        logger.info(f"Uploaded image to {url}")
        return url


def get_image_uploader() -> CloudinaryUploader:
    settings = get_settings()
    return CloudinaryUploader(settings.cloudinary_cloud_name, settings.cloudinary_api_key,
                              settings.cloudinary_api_secret)
