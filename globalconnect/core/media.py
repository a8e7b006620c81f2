from fastapi import HTTPException, UploadFile
from globalconnect import config

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif"}
MAX_IMAGE_BYTES = 5 * 1024 * 1024
MAX_POST_MEDIA = 5


async def read_image(upload: UploadFile) -> bytes:
    if upload.content_type not in ALLOWED_IMAGE_TYPES:
        config.logger.warning(f"Rejected upload {upload.filename} with type {upload.content_type}")
        raise HTTPException(status_code=400, detail="Invalid file type! Only images are allowed.")
    data = await upload.read()
    if len(data) > MAX_IMAGE_BYTES:
        raise HTTPException(status_code=400, detail="File too large. The limit is 5MB.")
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    return data


async def store_image(upload: UploadFile, folder: str) -> dict:
    """Validate an uploaded image and push it to Cloudinary."""
    data = await read_image(upload)
    url = await config.upload_image(data, folder)
    config.logger.info(f"Uploaded {upload.filename} to {folder}")
    return {"media_path": url, "media_type": upload.content_type, "description": ""}
