from typing import Optional
from fastapi import APIRouter, File, UploadFile, status
from storefront.common.custom_exceptions import ProviderError
from storefront.common.utils import json_error, json_ok
from storefront.uploads.constants import MAX_IMAGE_BYTES, UPLOAD_PREFIX, logger
from storefront.uploads.services import blob_token, put_blob
from storefront.uploads.utils import build_blob_path

uploads_router = APIRouter()


@uploads_router.post("/upload")
async def upload_image(file: Optional[UploadFile] = File(None)):
    if file is None:
        return json_error({"ok": False, "error": "Missing file"}, status_code=status.HTTP_400_BAD_REQUEST)

    content_type = file.content_type or ""
    if not content_type.startswith("image/"):
        return json_error({"ok": False, "error": "File must be an image"}, status_code=status.HTTP_400_BAD_REQUEST)

    content = await file.read(MAX_IMAGE_BYTES + 1)
    if len(content) > MAX_IMAGE_BYTES:
        return json_error({"ok": False, "error": "Image is too large (max 10MB)"},
                          status_code=status.HTTP_400_BAD_REQUEST)

    blob_token()
    pathname = build_blob_path(UPLOAD_PREFIX, file.filename or "image")
    try:
        blob = await put_blob(pathname, content, content_type)
    except ProviderError as e:
        logger.error("blob.upload.failed", extra={"blob_path": pathname, "error": str(e)})
        return json_error({"ok": False, "error": "Blob upload failed"},
                          status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return json_ok({"ok": True, "url": blob.get("url"), "pathname": blob.get("pathname", pathname)})
