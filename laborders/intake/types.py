"""
Typed payloads, the only shapes the services understand.

Every step of the intake workflow has its own payload variant; the import
webhook has a nested ImportPayload. Adapters (adapters.py) turn raw request
bodies into these structures and validate them before any service runs.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional, Union

from ..enums import OrderStep

# Literal relation target meaning "the main patient of this submission".
MAIN_PATIENT = 'main'


# ── Intake steps ───────────────────────────────────────────────────────────

@dataclass
class TestMethodPayload:
    test_ids: list[int]


@dataclass
class RelationData:
    related_patient_id: Union[int, str]  # local id or MAIN_PATIENT
    relation_type: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class PatientData:
    full_name: str
    nationality: str
    date_of_birth: date
    gender: str
    consanguineous_parents: str
    id: Optional[int] = None
    contact: Optional[dict] = None
    extra: Optional[dict] = None
    is_fetus: bool = False
    reference_id: Optional[str] = None
    id_no: Optional[str] = None
    relations: list[RelationData] = field(default_factory=list)
    replace_relations: bool = False

    def attributes(self) -> dict:
        """Column values written to the Patient row."""
        return {
            'full_name': self.full_name,
            'nationality': self.nationality,
            'date_of_birth': self.date_of_birth,
            'gender': self.gender,
            'consanguineous_parents': self.consanguineous_parents,
            'contact': self.contact,
            'extra': self.extra,
            'is_fetus': self.is_fetus,
            'reference_id': self.reference_id,
            'id_no': self.id_no,
        }


@dataclass
class PatientDetailsPayload:
    patients: list[PatientData]


@dataclass
class AssignmentData:
    test_id: int
    patient_ids: list[int]


@dataclass
class PatientTestAssignmentPayload:
    assignments: list[AssignmentData] = field(default_factory=list)


@dataclass
class ClinicalDetailsPayload:
    """
    files mixes already-stored paths (str) with fresh uploads (file handles).
    order_forms carries filled-in values for the attached forms.
    """

    files: list[Any] = field(default_factory=list)
    order_forms: Optional[list[dict]] = None


@dataclass
class SampleData:
    sample_type_id: int
    collection_date: Optional[date] = None
    id: Optional[int] = None
    sample_id: Optional[str] = None  # human-readable id, the barcode for labelled tubes
    patient_id: Optional[int] = None
    order_item_id: Optional[int] = None


@dataclass
class SampleDetailsPayload:
    samples: list[SampleData]


@dataclass
class MaterialCheckQuery:
    barcode: str
    sample_id: Optional[int] = None  # local id of the sample the barcode is for, if it exists


@dataclass
class ConsentFormPayload:
    files: list[Any] = field(default_factory=list)
    consents: Optional[list[dict]] = None


@dataclass
class FinalizePayload:
    pass


StepPayload = Union[
    TestMethodPayload,
    PatientDetailsPayload,
    PatientTestAssignmentPayload,
    ClinicalDetailsPayload,
    SampleDetailsPayload,
    ConsentFormPayload,
    FinalizePayload,
]

PAYLOAD_TYPES: dict[OrderStep, type] = {
    OrderStep.TEST_METHOD: TestMethodPayload,
    OrderStep.PATIENT_DETAILS: PatientDetailsPayload,
    OrderStep.PATIENT_TEST_ASSIGNMENT: PatientTestAssignmentPayload,
    OrderStep.CLINICAL_DETAILS: ClinicalDetailsPayload,
    OrderStep.SAMPLE_DETAILS: SampleDetailsPayload,
    OrderStep.CONSENT_FORM: ConsentFormPayload,
    OrderStep.FINALIZE: FinalizePayload,
}


# ── Import from the system of record ───────────────────────────────────────

@dataclass
class RemotePatient:
    full_name: str
    nationality: str
    date_of_birth: date
    gender: str
    server_id: Optional[str] = None
    reference_id: Optional[str] = None
    id_no: Optional[str] = None
    is_main: bool = False


@dataclass
class RemoteTest:
    server_id: str
    name: str
    code: str
    short_name: Optional[str] = None


@dataclass
class RemoteSampleType:
    server_id: str
    name: str
    sample_id_required: bool = False


@dataclass
class RemoteSample:
    sample_type: RemoteSampleType
    collection_date: date
    patient_server_id: Optional[str] = None
    sample_id: Optional[str] = None
    barcode: Optional[str] = None


@dataclass
class RemoteOrderItem:
    server_id: str
    test: RemoteTest
    samples: list[RemoteSample]
    patients: list[RemotePatient]


@dataclass
class ImportPayload:
    """
    raw_payload keeps the original body for troubleshooting; services never
    read it.
    """

    referrer_id: str
    server_id: str
    status: str
    main_patient: RemotePatient
    order_items: list[RemoteOrderItem]
    patients: list[RemotePatient] = field(default_factory=list)
    order_forms: list[Any] = field(default_factory=list)
    consents: Any = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    raw_payload: Any = field(default=None, repr=False)


@dataclass
class ImportResult:
    order_id: int
    order_items_count: int
    samples_count: int
    created: bool = True
