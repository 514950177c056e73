"""
Image upload to Cloudinary through its REST API.

Uploads are signed: sha1 of the sorted upload params followed by the API
secret. Credentials come from the system settings section, falling back
to the CLOUDINARY_* environment variables.
"""

import hashlib
import logging
import os
import time
from typing import Any, Dict, List, Optional, Tuple

import requests

from errors import BadRequest
from schemas import SystemSettings

logger = logging.getLogger(__name__)

UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud}/image/upload"
PING_URL = "https://api.cloudinary.com/v1_1/{cloud}/resources/image"
UPLOAD_FOLDER = "brelis"
MAX_FILES = 10
MAX_FILE_SIZE = 5 * 1024 * 1024
ALLOWED_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}
REQUEST_TIMEOUT = 30


class UploadError(Exception):
    pass


def _credentials(system: SystemSettings) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    return (
        system.cloudinary_cloud_name or os.getenv("CLOUDINARY_CLOUD_NAME"),
        system.cloudinary_api_key or os.getenv("CLOUDINARY_API_KEY"),
        system.cloudinary_api_secret or os.getenv("CLOUDINARY_API_SECRET"),
    )


def sign(params: Dict[str, Any], secret: str) -> str:
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return hashlib.sha1(f"{to_sign}{secret}".encode()).hexdigest()


def validate_image(filename: str, content_type: Optional[str], size: int) -> None:
    if content_type not in ALLOWED_TYPES:
        raise BadRequest(f"{filename}: only JPEG, PNG, WEBP and GIF images are allowed")
    if size > MAX_FILE_SIZE:
        raise BadRequest(f"{filename}: file is larger than 5MB")


def upload_image(system: SystemSettings, filename: str, content: bytes, content_type: str) -> Dict[str, Any]:
    cloud, api_key, api_secret = _credentials(system)
    if not (cloud and api_key and api_secret):
        raise UploadError("Cloudinary is not configured")

    params = {"folder": UPLOAD_FOLDER, "timestamp": int(time.time())}
    data = dict(params, api_key=api_key, signature=sign(params, api_secret))
    try:
        res = requests.post(
            UPLOAD_URL.format(cloud=cloud),
            data=data,
            files={"file": (filename, content, content_type)},
            timeout=REQUEST_TIMEOUT,
        )
        res.raise_for_status()
    except requests.RequestException as exc:
        logger.exception("Cloudinary upload of %s failed", filename)
        raise UploadError(f"Upload failed: {exc}") from exc

    body = res.json()
    logger.info("Uploaded %s to Cloudinary as %s", filename, body.get("public_id"))
    return {
        "url": body.get("secure_url"),
        "public_id": body.get("public_id"),
        "width": body.get("width"),
        "height": body.get("height"),
        "format": body.get("format"),
        "bytes": body.get("bytes"),
    }


def upload_images(system: SystemSettings, files: List[Tuple[str, bytes, str]]) -> Dict[str, Any]:
    if len(files) > MAX_FILES:
        raise BadRequest(f"You can upload at most {MAX_FILES} images at once")
    uploaded: List[Dict[str, Any]] = []
    failed: List[Dict[str, str]] = []
    for filename, content, content_type in files:
        try:
            uploaded.append(upload_image(system, filename, content, content_type))
        except UploadError as exc:
            failed.append({"filename": filename, "error": str(exc)})
    return {
        "uploaded": uploaded,
        "failed": failed,
        "total": len(files),
        "successful": len(uploaded),
    }


def check_connection(system: SystemSettings) -> None:
    """Call an authenticated Cloudinary endpoint. Raises on failure."""
    cloud, api_key, api_secret = _credentials(system)
    if not (cloud and api_key and api_secret):
        raise UploadError("Cloudinary is not configured")
    res = requests.get(
        PING_URL.format(cloud=cloud),
        auth=(api_key, api_secret),
        params={"max_results": 1},
        timeout=REQUEST_TIMEOUT,
    )
    res.raise_for_status()
