"""
PCOS Portal - Metabolic Panel API
Metabolic lab values per draw; HOMA-IR is derived at insert time and copied
onto the participant's computed-values row (last write wins).
"""
import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pcos_portal.auth import require_user
from pcos_portal.database import get_db
from pcos_portal.derived import calculate_homa_ir, format_derived
from pcos_portal.exceptions import PersistenceError
from pcos_portal.models import ComputedValues, MetabolicRecord, Participant
from pcos_portal.participants import get_owned_participant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/participants", tags=["metabolic"])


# ============ Pydantic Models ============

class MetabolicPanelForm(BaseModel):
    """Metabolic panel as entered; every lab value is optional"""
    sample_date: date
    fasting_glucose: Optional[float] = Field(None, ge=0, description="Fasting glucose (mg/dL)")
    hba1c: Optional[float] = Field(None, ge=0, description="HbA1c (%)")
    insulin_fasting: Optional[float] = Field(None, ge=0, description="Fasting insulin (µU/mL)")
    hdl: Optional[float] = Field(None, ge=0, description="HDL cholesterol (mg/dL)")
    ldl: Optional[float] = Field(None, ge=0, description="LDL cholesterol (mg/dL)")
    triglycerides: Optional[float] = Field(None, ge=0, description="Triglycerides (mg/dL)")
    total_cholesterol: Optional[float] = Field(None, ge=0, description="Total cholesterol (mg/dL)")
    blood_pressure_systolic: Optional[int] = Field(None, ge=0, description="Systolic BP (mmHg)")
    blood_pressure_diastolic: Optional[int] = Field(None, ge=0, description="Diastolic BP (mmHg)")
    waist_circumference_cm: Optional[float] = Field(None, ge=0, description="Waist circumference (cm)")


class MetabolicSubmitRequest(MetabolicPanelForm):
    token: Optional[str] = None


class MetabolicRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    participant_id: Optional[str] = None
    sample_date: date
    fasting_glucose: Optional[float] = None
    hba1c: Optional[float] = None
    insulin_fasting: Optional[float] = None
    homa_ir: Optional[float] = None
    hdl: Optional[float] = None
    ldl: Optional[float] = None
    triglycerides: Optional[float] = None
    total_cholesterol: Optional[float] = None
    blood_pressure_systolic: Optional[int] = None
    blood_pressure_diastolic: Optional[int] = None
    waist_circumference_cm: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MetabolicSubmitResponse(BaseModel):
    record: MetabolicRecordOut
    homa_ir: Optional[float] = None
    message: str


# ============ Helper Functions ============

def record_metabolic_panel(db: Session, participant: Participant, form: MetabolicPanelForm) -> MetabolicRecord:
    """
    Insert one metabolic record. When HOMA-IR can be derived it also
    overwrites ComputedValues.homa_ir_computed for the participant; there is
    no version check, so concurrent submissions keep whichever commits last.
    """
    homa_ir = calculate_homa_ir(form.fasting_glucose, form.insulin_fasting)
    record = MetabolicRecord(
        participant_id=participant.id,
        homa_ir=homa_ir,
        **form.model_dump()
    )
    try:
        db.add(record)
        if homa_ir is not None:
            db.query(ComputedValues).filter(
                ComputedValues.participant_id == participant.id
            ).update(
                {"homa_ir_computed": homa_ir},
                synchronize_session=False
            )
        db.commit()
        db.refresh(record)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Metabolic insert failed for participant %s: %s", participant.id, e)
        raise PersistenceError("Failed to save metabolic data", table="metabolic_data") from e

    logger.info("Metabolic record %s saved (HOMA-IR=%s)", record.id, homa_ir)
    return record


def metabolic_success_message(homa_ir: Optional[float]) -> str:
    if homa_ir is None:
        return "Metabolic data saved successfully!"
    return f"Metabolic data saved! HOMA-IR: {format_derived(homa_ir)}"


# ============ API Endpoints ============

@router.post("/{participant_pk}/metabolic", response_model=MetabolicSubmitResponse)
def submit_metabolic_data(participant_pk: str, request: MetabolicSubmitRequest, db: Session = Depends(get_db)):
    """Record a metabolic panel for the caller's participant"""
    user = require_user(request.token, db)
    participant = get_owned_participant(db, user, participant_pk)

    form = MetabolicPanelForm(**request.model_dump(exclude={"token"}))
    record = record_metabolic_panel(db, participant, form)

    return MetabolicSubmitResponse(
        record=MetabolicRecordOut.model_validate(record),
        homa_ir=record.homa_ir,
        message=metabolic_success_message(record.homa_ir)
    )
