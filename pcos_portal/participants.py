"""
PCOS Portal - Participant Intake API
Enrollment with consent capture; BMI and BMI category are derived at creation
"""
import logging
from datetime import date, datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pcos_portal.auth import require_user
from pcos_portal.config import settings
from pcos_portal.database import get_db
from pcos_portal.derived import calculate_bmi_with_category
from pcos_portal.exceptions import FormValidationError, NotFoundError, PersistenceError
from pcos_portal.models import ComputedValues, Participant, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/participants", tags=["participants"])

SEX_OPTIONS = [("Female", "F"), ("Male", "M"), ("Other", "Other")]


# ============ Pydantic Models ============

class ParticipantForm(BaseModel):
    """Fields collected by the enrollment form"""
    participant_id: str = Field("", validate_default=True, description="Study participant ID, e.g. PCOS-001")
    age: int = Field(..., ge=1, le=150)
    sex: Literal["F", "M", "Other"]
    ethnicity: str = Field("", validate_default=True)
    height_cm: float = Field(..., gt=0)
    weight_kg: float = Field(..., gt=0)
    date_of_birth: date
    consent: bool = Field(False, validate_default=True)

    @field_validator("participant_id")
    @classmethod
    def participant_id_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Participant ID is required")
        return value

    @field_validator("ethnicity")
    @classmethod
    def ethnicity_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Ethnicity is required")
        return value

    @field_validator("consent")
    @classmethod
    def consent_required(cls, value: bool) -> bool:
        if value is not True:
            raise ValueError("Consent is required")
        return value


class ParticipantCreateRequest(ParticipantForm):
    token: Optional[str] = None


class ParticipantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    participant_id: str
    age: int
    sex: str
    ethnicity: str = Field("", validate_default=True)
    height_cm: Optional[float] = None
    weight_kg: Optional[float] = None
    date_of_birth: date
    consent_version: str
    consent_date: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ComputedValuesOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    participant_id: Optional[str] = None
    bmi: Optional[float] = None
    bmi_category: Optional[str] = None
    homa_ir_computed: Optional[float] = None
    metabolic_syndrome_risk: Optional[str] = None
    computed_at: Optional[datetime] = None


class ParticipantResponse(BaseModel):
    participant: ParticipantOut
    computed_values: Optional[ComputedValuesOut] = None
    message: str


class MyParticipantResponse(BaseModel):
    participant: Optional[ParticipantOut] = None


# ============ Helper Functions ============

def get_owned_participant(db: Session, user: User, participant_pk: str) -> Participant:
    """Participant by primary key, only if it belongs to the user"""
    participant = db.query(Participant).filter(
        Participant.id == participant_pk,
        Participant.user_id == user.id
    ).first()
    if not participant:
        raise NotFoundError("Participant not found", resource="participant")
    return participant


def find_participant_for_user(db: Session, user_id: int) -> Optional[Participant]:
    return db.query(Participant).filter(Participant.user_id == user_id).first()


def enroll_participant(db: Session, user: User, form: ParticipantForm) -> tuple[Participant, ComputedValues]:
    """Insert the participant and its computed-values row (BMI, category)"""
    if find_participant_for_user(db, user.id):
        raise FormValidationError("A participant profile already exists for this account")

    duplicate = db.query(Participant).filter(
        Participant.participant_id == form.participant_id
    ).first()
    if duplicate:
        raise FormValidationError("Participant ID already exists", field="participant_id")

    bmi, category = calculate_bmi_with_category(form.height_cm, form.weight_kg)

    try:
        participant = Participant(
            user_id=user.id,
            participant_id=form.participant_id,
            age=form.age,
            sex=form.sex,
            ethnicity=form.ethnicity,
            height_cm=form.height_cm,
            weight_kg=form.weight_kg,
            date_of_birth=form.date_of_birth,
            consent_version=settings.consent_version,
            consent_date=datetime.utcnow()
        )
        db.add(participant)
        db.flush()

        computed = ComputedValues(
            participant_id=participant.id,
            bmi=bmi,
            bmi_category=category
        )
        db.add(computed)
        db.commit()
        db.refresh(participant)
        db.refresh(computed)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Participant insert failed for user %s: %s", user.id, e)
        raise PersistenceError("Failed to create participant", table="participants") from e

    logger.info("Enrolled participant %s (BMI %s, %s)", participant.participant_id, bmi, computed.bmi_category)
    return participant, computed


# ============ API Endpoints ============

@router.post("", response_model=ParticipantResponse)
def create_participant(request: ParticipantCreateRequest, db: Session = Depends(get_db)):
    """Enroll the caller as a study participant"""
    user = require_user(request.token, db)
    form = ParticipantForm(**request.model_dump(exclude={"token"}))
    participant, computed = enroll_participant(db, user, form)

    return ParticipantResponse(
        participant=ParticipantOut.model_validate(participant),
        computed_values=ComputedValuesOut.model_validate(computed),
        message="Participant profile created successfully!"
    )


@router.get("/me", response_model=MyParticipantResponse)
def get_my_participant(token: Optional[str] = None, db: Session = Depends(get_db)):
    """The caller's participant profile, if one has been created"""
    user = require_user(token, db)
    participant = find_participant_for_user(db, user.id)
    return MyParticipantResponse(
        participant=ParticipantOut.model_validate(participant) if participant else None
    )
