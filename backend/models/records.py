"""
Record shapes for the known collections.

Records are plain JSON objects. These TypedDicts document the fields the
application writes; the store itself accepts any mapping.
"""

from typing import Any, TypedDict

Record = dict[str, Any]

DIAGNOSES = "diagnoses"
DOCTOR_NOTES = "doctor_notes"
PROFILES = "profiles"


class BaseRecord(TypedDict, total=False):
    id: str
    created_at: str


class DiagnosisRecord(BaseRecord, total=False):
    user_id: str
    patient_name: str
    image_url: str
    imaging_type: str
    body_region: str
    diagnosis_result: dict[str, str]
    disease_found: bool
    disease_stage: str | None
    disease_name: str | None


class DoctorNoteRecord(BaseRecord, total=False):
    diagnosis_id: str
    user_id: str
    note: str


class ProfileRecord(BaseRecord, total=False):
    user_id: str
    display_name: str
