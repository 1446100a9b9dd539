"""
HTTP routes for submissions, the gallery, app config and health.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile

from eventboard import images
from eventboard.config import Settings
from eventboard.db import DbClient, SubmissionRecord, generate_short_id
from eventboard.dependencies import (
    get_app_settings,
    get_db_client,
    get_storage_client,
)
from eventboard.schemas import (
    ConfigResponse,
    ConfigValueRequest,
    HealthResponse,
    MessageResponse,
    Submission,
    SubmissionListResponse,
    SubmissionResponse,
    UpdateSubmissionRequest,
)
from eventboard.storage import StorageClient

logger = logging.getLogger(__name__)

router = APIRouter()


def _submission_out(
    record: SubmissionRecord, *, include_path: bool = False
) -> Submission:
    return Submission(
        id=record.id,
        name=record.name,
        image_url=record.image_url,
        image_path=record.image_path if include_path else None,
        created_at=record.created_at,
    )


def _parse_crop_box(
    crop_x: Optional[int],
    crop_y: Optional[int],
    crop_width: Optional[int],
    crop_height: Optional[int],
) -> Optional[images.CropBox]:
    values = (crop_x, crop_y, crop_width, crop_height)
    if all(value is None for value in values):
        return None
    if any(value is None for value in values):
        raise HTTPException(
            status_code=400,
            detail="crop_x, crop_y, crop_width and crop_height must be sent together",
        )
    return images.CropBox(x=crop_x, y=crop_y, width=crop_width, height=crop_height)


def _discard_image(storage: StorageClient, path: str) -> None:
    try:
        storage.delete(path)
    except Exception:
        logger.exception("Error cleaning up image %s", path)


@router.post(
    "/submit",
    response_model=SubmissionResponse,
    response_model_exclude_none=True,
    status_code=201,
)
async def submit(
    request: Request,
    name: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    crop_x: Optional[int] = Form(None),
    crop_y: Optional[int] = Form(None),
    crop_width: Optional[int] = Form(None),
    crop_height: Optional[int] = Form(None),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_app_settings),
):
    """
    Store the uploaded image, then record the submission. The image is removed
    again if the row cannot be written.
    """
    if not name or not name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    if image is None or not image.filename:
        raise HTTPException(status_code=400, detail="Image is required")

    crop_box = _parse_crop_box(crop_x, crop_y, crop_width, crop_height)
    data = await image.read()
    try:
        images.check_upload(
            image.filename, image.content_type, len(data), settings.max_upload_bytes
        )
        images.check_dimensions(
            data, settings.max_image_width, settings.max_image_height
        )
        if crop_box:
            data = images.crop_square(
                data, crop_box, size=settings.crop_output_size
            )
    except images.ImageValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if crop_box:
        extension, content_type = images.CROP_EXTENSION, images.CROP_CONTENT_TYPE
    else:
        extension, content_type = images.file_extension(image.filename), image.content_type

    image_path = f"images/{uuid.uuid4()}{extension}"
    storage.upload_bytes(
        image_path,
        data,
        content_type,
        metadata={
            # Object metadata travels as HTTP headers.
            "originalName": image.filename.encode("ascii", "ignore").decode(),
            "uploadedAt": datetime.now(timezone.utc).isoformat(),
        },
    )
    image_url = storage.public_url(image_path, str(request.base_url))

    try:
        record = db.create_submission(
            generate_short_id(), name.strip(), image_path, image_url
        )
    except Exception as exc:
        logger.exception("Error inserting submission for %s", name.strip())
        _discard_image(storage, image_path)
        raise HTTPException(status_code=500, detail="Internal server error") from exc

    logger.info("New submission: %s (%s)", record.name, image_url)
    data_out = _submission_out(record)
    data_out.storage_type = settings.storage_type
    return SubmissionResponse(message="Form submitted successfully", data=data_out)


@router.get(
    "/submit",
    response_model=SubmissionListResponse,
    response_model_exclude_none=True,
)
@router.get(
    "/users",
    response_model=SubmissionListResponse,
    response_model_exclude_none=True,
)
def list_submissions(
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_app_settings),
):
    submissions = [_submission_out(record) for record in db.list_submissions()]
    return SubmissionListResponse(
        data=submissions,
        count=len(submissions),
        storage_type=settings.storage_type,
    )


@router.get(
    "/users/{submission_id}",
    response_model=SubmissionResponse,
    response_model_exclude_none=True,
)
def get_submission(submission_id: str, db: DbClient = Depends(get_db_client)):
    record = db.get_submission(submission_id)
    if not record:
        raise HTTPException(status_code=404, detail="User not found")
    return SubmissionResponse(data=_submission_out(record, include_path=True))


@router.put(
    "/users/{submission_id}",
    response_model=SubmissionResponse,
    response_model_exclude_none=True,
)
def rename_submission(
    submission_id: str,
    payload: UpdateSubmissionRequest,
    db: DbClient = Depends(get_db_client),
):
    if not payload.name or not payload.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    record = db.rename_submission(submission_id, payload.name.strip())
    if not record:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("Updated user name: %s (ID: %s)", record.name, submission_id)
    return SubmissionResponse(
        message="Name updated successfully",
        data=_submission_out(record, include_path=True),
    )


@router.delete("/users", response_model=MessageResponse)
def clear_submissions(
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    """Remove every submission and its stored image."""
    removed = db.clear_submissions()
    for record in removed:
        if record.image_path:
            _discard_image(storage, record.image_path)
    logger.info("Cleared %d submissions and their images", len(removed))
    return MessageResponse(message=f"Cleared {len(removed)} images")


@router.get("/config/{key}", response_model=ConfigResponse)
def get_config(key: str, db: DbClient = Depends(get_db_client)):
    entry = db.get_config(key)
    if not entry:
        raise HTTPException(status_code=404, detail="Config key not found")
    return ConfigResponse(key=entry.key, value=entry.value, updated_at=entry.updated_at)


@router.post("/config/{key}", response_model=ConfigResponse)
def set_config(
    key: str, payload: ConfigValueRequest, db: DbClient = Depends(get_db_client)
):
    if payload.value is None:
        raise HTTPException(status_code=400, detail="Value is required")
    entry = db.set_config(key, str(payload.value))
    logger.info("Config updated: %s = %s", entry.key, entry.value)
    return ConfigResponse(key=entry.key, value=entry.value, updated_at=entry.updated_at)


@router.get("/health", response_model=HealthResponse)
def health(settings: Settings = Depends(get_app_settings)):
    return HealthResponse(
        status="OK",
        timestamp=datetime.now(timezone.utc).isoformat(),
        service="Event Board Backend",
        storage="Digital Ocean Spaces" if settings.use_spaces else "Local Storage",
        spaces_bucket=(settings.spaces_bucket or "N/A")
        if settings.use_spaces
        else "N/A",
    )
