"""
PCOS Portal - Data Viewer & Export API
Loads every section for one participant concurrently (all or nothing),
renders summary tables and serializes the JSON export.
"""
import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional

import pandas as pd
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from pcos_portal.auth import require_user
from pcos_portal.database import get_db, get_session_factory, session_scope
from pcos_portal.derived import format_derived
from pcos_portal.exceptions import DataLoadError, NotFoundError
from pcos_portal.files import GeneticFileOut, ImagingFileOut
from pcos_portal.hormonal import HormonalRecordOut
from pcos_portal.metabolic import MetabolicRecordOut
from pcos_portal.models import (
    ComputedValues,
    GeneticFile,
    HormonalRecord,
    ImagingFile,
    MetabolicRecord,
    Participant,
)
from pcos_portal.participants import ComputedValuesOut, ParticipantOut, get_owned_participant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/participants", tags=["data"])

# Export keys, in document order
EXPORT_KEYS = ["participant", "hormonalData", "metabolicData", "geneticFiles", "imagingFiles", "computedValues"]
STORAGE_PATH_FIELD = "file_path"


class ParticipantData(BaseModel):
    """Everything stored for one participant"""
    participant: ParticipantOut
    hormonal_data: List[HormonalRecordOut]
    metabolic_data: List[MetabolicRecordOut]
    genetic_files: List[GeneticFileOut]
    imaging_files: List[ImagingFileOut]
    computed_values: Optional[ComputedValuesOut] = None


# ============ Section Readers ============
# Each reader runs in a worker thread on its own session.

def read_participant(session_factory, participant_pk: str) -> ParticipantOut:
    with session_scope(session_factory) as db:
        participant = db.get(Participant, participant_pk)
        if participant is None:
            raise NotFoundError("Participant not found", resource="participant")
        return ParticipantOut.model_validate(participant)


def _read_rows(session_factory, model, out_model, participant_pk: str) -> list:
    with session_scope(session_factory) as db:
        rows = db.query(model).filter(
            model.participant_id == participant_pk
        ).order_by(model.created_at, model.id).all()
        return [out_model.model_validate(row) for row in rows]


def read_hormonal(session_factory, participant_pk: str) -> List[HormonalRecordOut]:
    return _read_rows(session_factory, HormonalRecord, HormonalRecordOut, participant_pk)


def read_metabolic(session_factory, participant_pk: str) -> List[MetabolicRecordOut]:
    return _read_rows(session_factory, MetabolicRecord, MetabolicRecordOut, participant_pk)


def read_genetic_files(session_factory, participant_pk: str) -> List[GeneticFileOut]:
    return _read_rows(session_factory, GeneticFile, GeneticFileOut, participant_pk)


def read_imaging_files(session_factory, participant_pk: str) -> List[ImagingFileOut]:
    return _read_rows(session_factory, ImagingFile, ImagingFileOut, participant_pk)


def read_computed_values(session_factory, participant_pk: str) -> Optional[ComputedValuesOut]:
    with session_scope(session_factory) as db:
        row = db.query(ComputedValues).filter(
            ComputedValues.participant_id == participant_pk
        ).order_by(ComputedValues.computed_at, ComputedValues.id).first()
        return ComputedValuesOut.model_validate(row) if row else None


SECTION_READERS: Dict[str, Callable] = {
    "participant": read_participant,
    "hormonal_data": read_hormonal,
    "metabolic_data": read_metabolic,
    "genetic_files": read_genetic_files,
    "imaging_files": read_imaging_files,
    "computed_values": read_computed_values,
}


async def load_participant_data(session_factory, participant_pk: str) -> ParticipantData:
    """
    Run the six section reads concurrently and wait for all of them.
    If any read fails, nothing is returned: a single DataLoadError is raised.
    """
    sections = list(SECTION_READERS)
    try:
        results = await asyncio.gather(*(
            run_in_threadpool(SECTION_READERS[section], session_factory, participant_pk)
            for section in sections
        ))
    except Exception as e:
        logger.warning("Data view load failed for participant %s: %s", participant_pk, e)
        raise DataLoadError() from e

    return ParticipantData(**dict(zip(sections, results)))


# ============ Export ============

def build_export(data: ParticipantData) -> Dict[str, Any]:
    """Export document; storage paths are removed from every file entry"""
    def strip_path(entries):
        return [entry.model_dump(mode="json", exclude={STORAGE_PATH_FIELD}) for entry in entries]

    return {
        "participant": data.participant.model_dump(mode="json"),
        "hormonalData": [record.model_dump(mode="json") for record in data.hormonal_data],
        "metabolicData": [record.model_dump(mode="json") for record in data.metabolic_data],
        "geneticFiles": strip_path(data.genetic_files),
        "imagingFiles": strip_path(data.imaging_files),
        "computedValues": data.computed_values.model_dump(mode="json") if data.computed_values else None,
    }


def export_json(data: ParticipantData) -> str:
    return json.dumps(build_export(data), indent=2, ensure_ascii=False)


def export_filename(data: ParticipantData) -> str:
    return f"participant_{data.participant.participant_id}_data.json"


# ============ Tables ============

def _or_dash(value):
    return "—" if value is None else value


def participant_summary(data: ParticipantData) -> str:
    """Markdown summary card for the viewer"""
    participant = data.participant
    lines = [
        "### Participant Information",
        "",
        f"**Participant ID:** {participant.participant_id}  ",
        f"**Age:** {participant.age} years  ",
        f"**Sex:** {participant.sex}  ",
        f"**Ethnicity:** {participant.ethnicity}  ",
    ]
    computed = data.computed_values
    if computed:
        lines.append(f"**BMI:** {_or_dash(computed.bmi)} ({_or_dash(computed.bmi_category)})  ")
        if computed.homa_ir_computed is not None:
            lines.append(f"**HOMA-IR:** {format_derived(computed.homa_ir_computed)}  ")
    return "\n".join(lines)


def hormonal_table(records: List[HormonalRecordOut]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Sample Date": record.sample_date.isoformat(),
                "Menstrual History": _or_dash(record.menstrual_history),
                "LH": _or_dash(record.lh),
                "FSH": _or_dash(record.fsh),
                "LH:FSH Ratio": format_derived(record.lh_to_fsh_ratio),
                "Testosterone": _or_dash(record.testosterone_total),
            }
            for record in records
        ],
        columns=["Sample Date", "Menstrual History", "LH", "FSH", "LH:FSH Ratio", "Testosterone"],
    )


def metabolic_table(records: List[MetabolicRecordOut]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Sample Date": record.sample_date.isoformat(),
                "Glucose": _or_dash(record.fasting_glucose),
                "HbA1c": _or_dash(record.hba1c),
                "Insulin": _or_dash(record.insulin_fasting),
                "HOMA-IR": format_derived(record.homa_ir),
                "HDL": _or_dash(record.hdl),
                "LDL": _or_dash(record.ldl),
            }
            for record in records
        ],
        columns=["Sample Date", "Glucose", "HbA1c", "Insulin", "HOMA-IR", "HDL", "LDL"],
    )


def files_table(files: list, type_field: str) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "File Name": entry.file_name,
                "Type": _or_dash(getattr(entry, type_field)),
                "Size (MB)": f"{(entry.file_size or 0) / 1024 / 1024:.2f}",
                "Uploaded": entry.upload_date.date().isoformat() if entry.upload_date else "—",
            }
            for entry in files
        ],
        columns=["File Name", "Type", "Size (MB)", "Uploaded"],
    )


# ============ API Endpoints ============

def _authorize(token: Optional[str], participant_pk: str, db: Session) -> None:
    user = require_user(token, db)
    get_owned_participant(db, user, participant_pk)


@router.get("/{participant_pk}/data")
async def get_participant_data(
    participant_pk: str,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    """All records for a participant, in export shape"""
    await run_in_threadpool(_authorize, token, participant_pk, db)
    data = await load_participant_data(session_factory, participant_pk)
    return build_export(data)


@router.get("/{participant_pk}/export")
async def export_participant_data(
    participant_pk: str,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    """Download the JSON export"""
    await run_in_threadpool(_authorize, token, participant_pk, db)
    data = await load_participant_data(session_factory, participant_pk)
    logger.info("Exported data for participant %s", data.participant.participant_id)
    return Response(
        content=export_json(data),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(data)}"'}
    )
