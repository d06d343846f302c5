"""
PCOS Portal - File Intake API
Genetic data and medical imaging uploads: bytes go to blob storage first, then
a metadata row referencing the object key is inserted. A failed insert leaves
the blob in place.
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, ConfigDict, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pcos_portal.auth import require_user
from pcos_portal.database import get_db
from pcos_portal.exceptions import FileSelectionError, FormValidationError, PersistenceError
from pcos_portal.models import GeneticFile, ImagingFile, Participant, User
from pcos_portal.participants import get_owned_participant
from pcos_portal.storage import GENETIC_BUCKET, IMAGING_BUCKET, BlobStorage, build_object_key, get_storage, safe_filename

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/participants", tags=["files"])

GENETIC_TEST_TYPES = ["SNP", "WES", "WGS", "Other"]
IMAGING_TYPES = ["Ultrasound", "MRI", "CT", "X-Ray", "Other"]


# ============ Pydantic Models ============

class GeneticFileForm(BaseModel):
    genetic_test_type: Literal["SNP", "WES", "WGS", "Other"]


class ImagingFileForm(BaseModel):
    imaging_type: Literal["Ultrasound", "MRI", "CT", "X-Ray", "Other"]
    imaging_date: Optional[date] = None
    notes: Optional[str] = None


class GeneticFileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    participant_id: Optional[str] = None
    file_name: str
    file_path: str
    file_size: Optional[int] = None
    genetic_test_type: Optional[str] = None
    variant_summary: Optional[Any] = None
    upload_date: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ImagingFileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    participant_id: Optional[str] = None
    file_name: str
    file_path: str
    file_size: Optional[int] = None
    imaging_type: Optional[str] = None
    imaging_date: Optional[date] = None
    notes: Optional[str] = None
    upload_date: Optional[datetime] = None
    created_at: Optional[datetime] = None


class FileUploadResponse(BaseModel):
    file: Dict[str, Any]
    message: str


# ============ Helper Functions ============

FILE_CATEGORIES = {
    "genetic": {
        "bucket": GENETIC_BUCKET,
        "model": GeneticFile,
        "form": GeneticFileForm,
        "label": "Genetic",
    },
    "imaging": {
        "bucket": IMAGING_BUCKET,
        "model": ImagingFile,
        "form": ImagingFileForm,
        "label": "Imaging",
    },
}


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


def upload_participant_file(
    db: Session,
    storage: BlobStorage,
    user: User,
    participant: Participant,
    category: str,
    filename: Optional[str],
    content: Optional[bytes],
    fields: Dict[str, Any],
):
    """Store one uploaded file and record its metadata; returns the metadata row"""
    if not filename or content is None or not safe_filename(filename):
        raise FileSelectionError()

    kind = FILE_CATEGORIES[category]
    try:
        form = kind["form"](**{key: _blank_to_none(value) for key, value in fields.items()})
    except ValidationError as e:
        raise FormValidationError.from_pydantic(e) from e

    object_key = build_object_key(user.id, filename)
    storage.upload(kind["bucket"], object_key, content)

    row = kind["model"](
        participant_id=participant.id,
        file_name=safe_filename(filename),
        file_path=object_key,
        file_size=len(content),
        **form.model_dump()
    )
    try:
        db.add(row)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Metadata insert failed for %s/%s: %s", kind["bucket"], object_key, e)
        raise PersistenceError(f"Failed to save {category} file metadata", table=kind["model"].__tablename__) from e

    logger.info("%s file %s uploaded for participant %s", kind["label"], row.file_name, participant.id)
    return row


def upload_success_message(category: str) -> str:
    return f"{FILE_CATEGORIES[category]['label']} file uploaded successfully!"


def _read_upload(file: Optional[UploadFile]) -> tuple[Optional[str], Optional[bytes]]:
    if file is None or not file.filename:
        return None, None
    return file.filename, file.file.read()


# ============ API Endpoints ============

@router.post("/{participant_pk}/files/genetic", response_model=FileUploadResponse)
def upload_genetic_file(
    participant_pk: str,
    token: Optional[str] = Form(None),
    genetic_test_type: str = Form(...),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    """Upload a genetic data file (SNP panel, WES, WGS, ...)"""
    user = require_user(token, db)
    participant = get_owned_participant(db, user, participant_pk)
    filename, content = _read_upload(file)

    row = upload_participant_file(
        db, storage, user, participant, "genetic", filename, content,
        {"genetic_test_type": genetic_test_type}
    )
    return FileUploadResponse(
        file=GeneticFileOut.model_validate(row).model_dump(mode="json", exclude={"file_path"}),
        message=upload_success_message("genetic")
    )


@router.post("/{participant_pk}/files/imaging", response_model=FileUploadResponse)
def upload_imaging_file(
    participant_pk: str,
    token: Optional[str] = Form(None),
    imaging_type: str = Form(...),
    imaging_date: Optional[str] = Form(None),
    notes: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    """Upload a medical image (ultrasound, MRI, CT, X-ray, ...)"""
    user = require_user(token, db)
    participant = get_owned_participant(db, user, participant_pk)
    filename, content = _read_upload(file)

    row = upload_participant_file(
        db, storage, user, participant, "imaging", filename, content,
        {"imaging_type": imaging_type, "imaging_date": imaging_date, "notes": notes}
    )
    return FileUploadResponse(
        file=ImagingFileOut.model_validate(row).model_dump(mode="json", exclude={"file_path"}),
        message=upload_success_message("imaging")
    )
