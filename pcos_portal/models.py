"""
PCOS Portal - Database Models
SQLAlchemy ORM models for accounts, participants, clinical panels and file metadata
"""
import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from pcos_portal.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """User account model"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    participants = relationship("Participant", back_populates="user")


class UserSession(Base):
    """User session for authentication"""
    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    token = Column(String(255), unique=True, index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)

    # Relationships
    user = relationship("User", back_populates="sessions")


class Participant(Base):
    """Enrolled study participant, one per user account"""
    __tablename__ = "participants"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    participant_id = Column(String(64), unique=True, index=True, nullable=False)  # Study ID, e.g. PCOS-001

    age = Column(Integer, nullable=False)
    sex = Column(String(10), nullable=False)  # F, M, Other
    ethnicity = Column(String(100), nullable=False)
    height_cm = Column(Float, nullable=True)
    weight_kg = Column(Float, nullable=True)
    date_of_birth = Column(Date, nullable=False)

    consent_version = Column(String(20), nullable=False)
    consent_date = Column(DateTime, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="participants")
    computed_values = relationship("ComputedValues", back_populates="participant")
    hormonal_records = relationship("HormonalRecord", back_populates="participant")
    metabolic_records = relationship("MetabolicRecord", back_populates="participant")
    genetic_files = relationship("GeneticFile", back_populates="participant")
    imaging_files = relationship("ImagingFile", back_populates="participant")


class ComputedValues(Base):
    """Denormalized derived values per participant"""
    __tablename__ = "computed_values"

    id = Column(String(36), primary_key=True, default=new_id)
    participant_id = Column(String(36), ForeignKey("participants.id"), nullable=True, index=True)

    bmi = Column(Float, nullable=True)
    bmi_category = Column(String(20), nullable=True)  # Underweight, Normal, Overweight, Obese
    homa_ir_computed = Column(Float, nullable=True)  # Latest HOMA-IR, last write wins
    metabolic_syndrome_risk = Column(String(20), nullable=True)
    computed_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    participant = relationship("Participant", back_populates="computed_values")


class HormonalRecord(Base):
    """Endocrine panel from a single lab draw"""
    __tablename__ = "hormonal_data"

    id = Column(String(36), primary_key=True, default=new_id)
    participant_id = Column(String(36), ForeignKey("participants.id"), nullable=True, index=True)

    sample_date = Column(Date, nullable=False)
    menstrual_history = Column(String(20), nullable=True)  # regular, irregular

    lh = Column(Float, nullable=True)                    # mIU/mL
    fsh = Column(Float, nullable=True)                   # mIU/mL
    lh_to_fsh_ratio = Column(Float, nullable=True)       # Derived at insert
    testosterone_total = Column(Float, nullable=True)    # ng/dL
    testosterone_free = Column(Float, nullable=True)     # pg/mL
    dhea_s = Column(Float, nullable=True)                # µg/dL
    shbg = Column(Float, nullable=True)                  # nmol/L
    prolactin = Column(Float, nullable=True)             # ng/mL
    amh = Column(Float, nullable=True)                   # ng/mL

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    participant = relationship("Participant", back_populates="hormonal_records")


class MetabolicRecord(Base):
    """Metabolic panel from a single lab draw"""
    __tablename__ = "metabolic_data"

    id = Column(String(36), primary_key=True, default=new_id)
    participant_id = Column(String(36), ForeignKey("participants.id"), nullable=True, index=True)

    sample_date = Column(Date, nullable=False)

    fasting_glucose = Column(Float, nullable=True)       # mg/dL
    hba1c = Column(Float, nullable=True)                 # %
    insulin_fasting = Column(Float, nullable=True)       # µU/mL
    homa_ir = Column(Float, nullable=True)               # Derived at insert
    hdl = Column(Float, nullable=True)                   # mg/dL
    ldl = Column(Float, nullable=True)                   # mg/dL
    triglycerides = Column(Float, nullable=True)         # mg/dL
    total_cholesterol = Column(Float, nullable=True)     # mg/dL
    blood_pressure_systolic = Column(Integer, nullable=True)   # mmHg
    blood_pressure_diastolic = Column(Integer, nullable=True)  # mmHg
    waist_circumference_cm = Column(Float, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    participant = relationship("Participant", back_populates="metabolic_records")


class GeneticFile(Base):
    """Metadata for an uploaded genetic data file"""
    __tablename__ = "genetic_files"

    id = Column(String(36), primary_key=True, default=new_id)
    participant_id = Column(String(36), ForeignKey("participants.id"), nullable=True, index=True)

    file_name = Column(String(255), nullable=False)
    file_path = Column(String(512), nullable=False)  # Object key in the genetic-data bucket
    file_size = Column(Integer, nullable=True)       # Bytes
    genetic_test_type = Column(String(20), nullable=True)  # SNP, WES, WGS, Other
    variant_summary = Column(JSON, nullable=True)

    upload_date = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    participant = relationship("Participant", back_populates="genetic_files")


class ImagingFile(Base):
    """Metadata for an uploaded medical image"""
    __tablename__ = "imaging_files"

    id = Column(String(36), primary_key=True, default=new_id)
    participant_id = Column(String(36), ForeignKey("participants.id"), nullable=True, index=True)

    file_name = Column(String(255), nullable=False)
    file_path = Column(String(512), nullable=False)  # Object key in the medical-imaging bucket
    file_size = Column(Integer, nullable=True)       # Bytes
    imaging_type = Column(String(20), nullable=True)  # Ultrasound, MRI, CT, X-Ray, Other
    imaging_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    upload_date = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    participant = relationship("Participant", back_populates="imaging_files")
