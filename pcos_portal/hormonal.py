"""
PCOS Portal - Hormonal Panel API
Endocrine lab values per draw; the LH:FSH ratio is derived at insert time
"""
import logging
from datetime import date, datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pcos_portal.auth import require_user
from pcos_portal.database import get_db
from pcos_portal.derived import calculate_lh_fsh_ratio
from pcos_portal.exceptions import PersistenceError
from pcos_portal.models import HormonalRecord, Participant
from pcos_portal.participants import get_owned_participant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/participants", tags=["hormonal"])

MENSTRUAL_HISTORY_OPTIONS = ["regular", "irregular"]


# ============ Pydantic Models ============

class HormonalPanelForm(BaseModel):
    """Hormonal panel as entered; every lab value is optional"""
    sample_date: date
    menstrual_history: Literal["regular", "irregular"]
    lh: Optional[float] = Field(None, ge=0, description="Luteinizing hormone (mIU/mL)")
    fsh: Optional[float] = Field(None, ge=0, description="Follicle-stimulating hormone (mIU/mL)")
    testosterone_total: Optional[float] = Field(None, ge=0, description="Total testosterone (ng/dL)")
    testosterone_free: Optional[float] = Field(None, ge=0, description="Free testosterone (pg/mL)")
    dhea_s: Optional[float] = Field(None, ge=0, description="DHEA-S (µg/dL)")
    shbg: Optional[float] = Field(None, ge=0, description="SHBG (nmol/L)")
    prolactin: Optional[float] = Field(None, ge=0, description="Prolactin (ng/mL)")
    amh: Optional[float] = Field(None, ge=0, description="Anti-Müllerian hormone (ng/mL)")


class HormonalSubmitRequest(HormonalPanelForm):
    token: Optional[str] = None


class HormonalRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    participant_id: Optional[str] = None
    sample_date: date
    menstrual_history: Optional[str] = None
    lh: Optional[float] = None
    fsh: Optional[float] = None
    lh_to_fsh_ratio: Optional[float] = None
    testosterone_total: Optional[float] = None
    testosterone_free: Optional[float] = None
    dhea_s: Optional[float] = None
    shbg: Optional[float] = None
    prolactin: Optional[float] = None
    amh: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class HormonalSubmitResponse(BaseModel):
    record: HormonalRecordOut
    message: str


# ============ Helper Functions ============

def record_hormonal_panel(db: Session, participant: Participant, form: HormonalPanelForm) -> HormonalRecord:
    """Insert one hormonal record with its LH:FSH ratio"""
    record = HormonalRecord(
        participant_id=participant.id,
        lh_to_fsh_ratio=calculate_lh_fsh_ratio(form.lh, form.fsh),
        **form.model_dump()
    )
    try:
        db.add(record)
        db.commit()
        db.refresh(record)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Hormonal insert failed for participant %s: %s", participant.id, e)
        raise PersistenceError("Failed to save hormonal data", table="hormonal_data") from e

    logger.info("Hormonal record %s saved (LH:FSH=%s)", record.id, record.lh_to_fsh_ratio)
    return record


# ============ API Endpoints ============

@router.post("/{participant_pk}/hormonal", response_model=HormonalSubmitResponse)
def submit_hormonal_data(participant_pk: str, request: HormonalSubmitRequest, db: Session = Depends(get_db)):
    """Record a hormonal panel for the caller's participant"""
    user = require_user(request.token, db)
    participant = get_owned_participant(db, user, participant_pk)

    form = HormonalPanelForm(**request.model_dump(exclude={"token"}))
    record = record_hormonal_panel(db, participant, form)

    return HormonalSubmitResponse(
        record=HormonalRecordOut.model_validate(record),
        message="Hormonal data saved successfully!"
    )
