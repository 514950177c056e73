from typing import Any, Dict, List

from fastapi import APIRouter, Depends, File, UploadFile

import image_upload
from errors import StoreError
from responses import ok
from schemas import StoreSettings
from security import require_admin
from settings_store import get_store_settings

router = APIRouter(prefix="/upload", tags=["upload"], dependencies=[Depends(require_admin)])


def _read(upload: UploadFile) -> bytes:
    content = upload.file.read()
    image_upload.validate_image(upload.filename or "image", upload.content_type, len(content))
    return content


@router.post("/image")
def upload_one(file: UploadFile = File(...), settings: StoreSettings = Depends(get_store_settings)):
    content = _read(file)
    try:
        image = image_upload.upload_image(settings.system, file.filename or "image", content, file.content_type)
    except image_upload.UploadError as exc:
        raise StoreError(str(exc), status_code=502)
    return ok({"image": image}, "Image uploaded successfully")


@router.post("/images")
def upload_many(files: List[UploadFile] = File(...), settings: StoreSettings = Depends(get_store_settings)):
    batch: List[Any] = []
    for upload in files:
        batch.append((upload.filename or "image", _read(upload), upload.content_type))
    result: Dict[str, Any] = image_upload.upload_images(settings.system, batch)
    return ok(result, f"{result['successful']} of {result['total']} images uploaded")
