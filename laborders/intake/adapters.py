"""
Concrete adapters: one per workflow step plus the import webhook.

Wire field names follow the operator UI and the system of record
(camelCase, e.g. fullName / dateOfBirth / collectionDate); the typed
payloads use snake_case.
"""

from typing import Any

from ..enums import OrderStatus, OrderStep
from .base import REQUIRED, BaseIntakeAdapter
from .types import (
    MAIN_PATIENT,
    AssignmentData,
    ClinicalDetailsPayload,
    ConsentFormPayload,
    FinalizePayload,
    ImportPayload,
    MaterialCheckQuery,
    PatientData,
    PatientDetailsPayload,
    PatientTestAssignmentPayload,
    RelationData,
    RemoteOrderItem,
    RemotePatient,
    RemoteSample,
    RemoteSampleType,
    RemoteTest,
    SampleData,
    SampleDetailsPayload,
    TestMethodPayload,
)


def _id_of(value: Any) -> Any:
    """Accept both {"id": 3} and a bare 3."""
    if isinstance(value, dict):
        return value.get('id')
    return value


# ── Test method ────────────────────────────────────────────────────────────
#
# {"tests": [{"id": 1}, {"id": 2}]}   or   {"test_ids": [1, 2]}

class TestMethodAdapter(BaseIntakeAdapter):
    step = OrderStep.TEST_METHOD

    def transform(self) -> TestMethodPayload:
        raw = self._parsed
        key = 'tests' if 'tests' in raw else 'test_ids'
        tests = self.as_list(raw.get(key), key)

        test_ids = []
        for i, test in enumerate(tests):
            test_id = self.as_int(_id_of(test), f'{key}.{i}.id' if key == 'tests' else f'{key}.{i}')
            if test_id is not None and test_id not in test_ids:
                test_ids.append(test_id)
        return TestMethodPayload(test_ids=test_ids)


# ── Patient details ────────────────────────────────────────────────────────
#
# {
#   "patients": [
#     {
#       "id": 12,                                   ← optional, existing patient
#       "fullName": "Jane Doe",
#       "nationality": {"code": "DE"},              ← or a bare "DE"
#       "dateOfBirth": "1990-04-01",
#       "gender": "0",
#       "consanguineousParents": "-1",
#       "isFetus": false,
#       "reference_id": "MRN-1",
#       "relations": [{"related_patient_id": "main", "relation_type": "Mother", "notes": ""}]
#     }
#   ]
# }
#
# A body without "patients" is read as a single patient.

class PatientDetailsAdapter(BaseIntakeAdapter):
    step = OrderStep.PATIENT_DETAILS

    def transform(self) -> PatientDetailsPayload:
        raw = self._parsed
        if 'patients' in raw:
            entries = self.as_list(raw.get('patients'), 'patients')
            prefix = 'patients.{}.'
        else:
            entries = [raw]
            prefix = ''

        patients = []
        for i, entry in enumerate(entries):
            path = prefix.format(i)
            if not isinstance(entry, dict):
                self.error(path.rstrip('.') or 'patients', 'Must be an object.')
                continue
            patients.append(self._patient(entry, path))
        return PatientDetailsPayload(patients=patients)

    def _patient(self, raw: dict, path: str) -> PatientData:
        nationality = raw.get('nationality')
        if isinstance(nationality, dict):
            nationality = nationality.get('code')
        if not nationality or nationality == '-1':
            self.error(f'{path}nationality.code', 'Please select a nationality.')

        full_name = self.as_text(raw.get('fullName'))
        if not full_name:
            self.error(f'{path}fullName', 'This field is required.')

        return PatientData(
            id=self.as_int(raw.get('id'), f'{path}id', required=False),
            full_name=full_name,
            nationality=nationality,
            date_of_birth=self.as_date(raw.get('dateOfBirth'), f'{path}dateOfBirth', before_today=True),
            gender=self.as_tri_state(raw.get('gender'), f'{path}gender'),
            consanguineous_parents=self.as_tri_state(
                raw.get('consanguineousParents'), f'{path}consanguineousParents'
            ),
            contact=raw.get('contact') or None,
            extra=raw.get('extra') or None,
            is_fetus=bool(raw.get('isFetus', False)),
            reference_id=self.as_text(raw.get('reference_id')),
            id_no=self.as_text(raw.get('id_no') or raw.get('idNo')),
            relations=self._relations(raw.get('relations'), f'{path}relations'),
            replace_relations=bool(raw.get('replaceRelations', False)),
        )

    def _relations(self, value: Any, path: str) -> list[RelationData]:
        relations = []
        for i, relation in enumerate(self.as_list(value, path, required=False)):
            target = relation.get('related_patient_id') if isinstance(relation, dict) else None
            if target != MAIN_PATIENT:
                target = self.as_int(target, f'{path}.{i}.related_patient_id')
            if target is None:
                continue
            relations.append(RelationData(
                related_patient_id=target,
                relation_type=self.as_text(relation.get('relation_type')),
                notes=relation.get('notes'),
            ))
        return relations


# ── Patient / test assignment ──────────────────────────────────────────────
#
# {"assignments": [{"test_id": 4, "patient_ids": [12, 13]}]}
# Index 0 of patient_ids is the main patient for that test.

class PatientTestAssignmentAdapter(BaseIntakeAdapter):
    step = OrderStep.PATIENT_TEST_ASSIGNMENT

    def transform(self) -> PatientTestAssignmentPayload:
        assignments = []
        entries = self.as_list(self._parsed.get('assignments'), 'assignments', required=False)
        for i, entry in enumerate(entries):
            path = f'assignments.{i}'
            if not isinstance(entry, dict):
                self.error(path, 'Must be an object.')
                continue
            test_id = self.as_int(entry.get('test_id'), f'{path}.test_id')
            patient_ids = [
                self.as_int(patient_id, f'{path}.patient_ids.{j}')
                for j, patient_id in enumerate(self.as_list(entry.get('patient_ids'), f'{path}.patient_ids'))
            ]
            assignments.append(AssignmentData(test_id=test_id, patient_ids=patient_ids))
        return PatientTestAssignmentPayload(assignments=assignments)


# ── Clinical details ───────────────────────────────────────────────────────
#
# JSON:      {"files": ["orders/7/files/a.pdf"], "orderForms": [...]}
# multipart: payload=<the JSON above>, files=<upload>, files=<upload>

class ClinicalDetailsAdapter(BaseIntakeAdapter):
    step = OrderStep.CLINICAL_DETAILS

    def transform(self) -> ClinicalDetailsPayload:
        raw = self._parsed
        stored = [f for f in self.as_list(raw.get('files'), 'files', required=False) if isinstance(f, str) and f]

        order_forms = raw.get('orderForms')
        if order_forms is not None and not isinstance(order_forms, list):
            self.error('orderForms', 'Must be a list.')
            order_forms = None

        return ClinicalDetailsPayload(files=stored + self.uploads('files'), order_forms=order_forms)


# ── Sample details ─────────────────────────────────────────────────────────
#
# {
#   "samples": [
#     {"id": 3, "sample_type": {"id": 2}, "sampleId": "BC-100",
#      "collectionDate": "2024-03-01", "patient_id": 12, "order_item_id": 5}
#   ]
# }

class SampleDetailsAdapter(BaseIntakeAdapter):
    step = OrderStep.SAMPLE_DETAILS

    def transform(self) -> SampleDetailsPayload:
        samples = []
        for i, entry in enumerate(self.as_list(self._parsed.get('samples'), 'samples')):
            path = f'samples.{i}'
            if not isinstance(entry, dict):
                self.error(path, 'Must be an object.')
                continue
            sample_type = entry.get('sample_type') if 'sample_type' in entry else entry.get('sample_type_id')
            samples.append(SampleData(
                id=self.as_int(entry.get('id'), f'{path}.id', required=False),
                sample_type_id=self.as_int(_id_of(sample_type), f'{path}.sample_type.id'),
                sample_id=self.as_text(entry.get('sampleId')),
                collection_date=self.as_date(entry.get('collectionDate'), f'{path}.collectionDate', not_future=True),
                patient_id=self.as_int(
                    _id_of(entry.get('patient_id', entry.get('patient'))), f'{path}.patient_id', required=False
                ),
                order_item_id=self.as_int(entry.get('order_item_id'), f'{path}.order_item_id', required=False),
            ))
        return SampleDetailsPayload(samples=samples)


# ── Material check ─────────────────────────────────────────────────────────
#
# ?sampleId=BC-100&id=3   (query string; id is the sample being edited)

class MaterialCheckAdapter(BaseIntakeAdapter):

    def transform(self) -> MaterialCheckQuery:
        raw = self._parsed
        barcode = self.as_text(raw.get('sampleId'))
        if barcode is None:
            self.error('sampleId', REQUIRED)
        return MaterialCheckQuery(
            barcode=barcode,
            sample_id=self.as_int(raw.get('id'), 'id', required=False),
        )


# ── Consent form ───────────────────────────────────────────────────────────
#
# {"consents": [{"title": "Genetic testing", "value": true}], "consentForm": ["orders/7/consents/x.pdf"]}
# multipart uploads under "consentForm".

class ConsentFormAdapter(BaseIntakeAdapter):
    step = OrderStep.CONSENT_FORM

    def transform(self) -> ConsentFormPayload:
        raw = self._parsed
        consents = raw.get('consents')
        if consents is not None and not isinstance(consents, list):
            self.error('consents', 'Must be a list.')
            consents = None

        stored = [
            f for f in self.as_list(raw.get('consentForm'), 'consentForm', required=False)
            if isinstance(f, str) and f
        ]
        return ConsentFormPayload(files=stored + self.uploads('consentForm'), consents=consents)


class FinalizeAdapter(BaseIntakeAdapter):
    step = OrderStep.FINALIZE

    def transform(self) -> FinalizePayload:
        return FinalizePayload()


# ── Order import (system of record webhook) ────────────────────────────────
#
# {
#   "referrer_id": 77,
#   "order": {
#     "id": 555, "status": "received",
#     "main_patient": {"id": "p-1", "fullName": "..", "nationality": "DE", "dateOfBirth": "..", "gender": 1},
#     "patients": [...],
#     "orderItems": [
#       {"id": 9001, "test_id": 9, "test": {"id": 9, "name": "WES", "code": "WES"},
#        "samples": [{"sample_type_id": 3, "sampleType": {"id": 3, "name": "Blood"},
#                     "patientId": "p-1", "collectionDate": "..", "sampleId": "BC-100", "barcode": "BC-100"}],
#        "patients": [{"id": "p-1", "fullName": "..", ..., "is_main": true}]}
#     ]
#   }
# }

class OrderImportAdapter(BaseIntakeAdapter):

    def transform(self) -> ImportPayload:
        raw = self._parsed
        referrer_id = self.required(raw, 'referrer_id', 'referrer_id')

        order = raw.get('order')
        if not isinstance(order, dict):
            self.error('order', 'This field is required.')
            order = {}

        server_id = self.as_int(order.get('id'), 'order.id')
        status = self.required(order, 'status', 'order.status')
        if status is not None and status not in OrderStatus.values:
            self.error('order.status', f'Unknown status {status!r}.')

        main_patient = order.get('main_patient')
        if isinstance(main_patient, dict):
            main_patient = self._patient(main_patient, 'order.main_patient', id_required=False)
        else:
            self.error('order.main_patient', 'This field is required.')

        patients = [
            self._patient(entry, f'order.patients.{i}')
            for i, entry in enumerate(self.as_list(order.get('patients'), 'order.patients', required=False))
        ]

        items = []
        for i, entry in enumerate(self.as_list(order.get('orderItems'), 'order.orderItems')):
            items.append(self._order_item(entry if isinstance(entry, dict) else {}, f'order.orderItems.{i}'))

        return ImportPayload(
            referrer_id=str(referrer_id) if referrer_id is not None else None,
            server_id=str(server_id) if server_id is not None else None,
            status=status,
            main_patient=main_patient,
            patients=patients,
            order_items=items,
            order_forms=order.get('orderForms') or [],
            consents=order.get('consents') or {},
            created_at=order.get('created_at'),
            updated_at=order.get('updated_at'),
            raw_payload=raw,
        )

    def _patient(self, raw: Any, path: str, id_required: bool = True) -> RemotePatient:
        if not isinstance(raw, dict):
            self.error(path, 'Must be an object.')
            raw = {}
        server_id = raw.get('id')
        if id_required and server_id in (None, ''):
            self.error(f'{path}.id', 'This field is required.')
        nationality = raw.get('nationality')
        if isinstance(nationality, dict):
            nationality = nationality.get('code')
        if not nationality:
            self.error(f'{path}.nationality', 'This field is required.')
        return RemotePatient(
            server_id=str(server_id) if server_id not in (None, '') else None,
            full_name=self.required(raw, 'fullName', f'{path}.fullName'),
            nationality=nationality,
            date_of_birth=self.as_date(raw.get('dateOfBirth'), f'{path}.dateOfBirth'),
            gender=self.as_tri_state(raw.get('gender'), f'{path}.gender'),
            reference_id=self.as_text(raw.get('reference_id')),
            id_no=self.as_text(raw.get('id_no') or raw.get('idNo')),
            is_main=bool(raw.get('is_main', False)),
        )

    def _order_item(self, raw: dict, path: str) -> RemoteOrderItem:
        item_id = self.required(raw, 'id', f'{path}.id')
        self.as_int(raw.get('test_id'), f'{path}.test_id')

        test = raw.get('test') if isinstance(raw.get('test'), dict) else {}
        if not test:
            self.error(f'{path}.test', 'This field is required.')
        test_id = self.as_int(test.get('id'), f'{path}.test.id')
        remote_test = RemoteTest(
            server_id=str(test_id) if test_id is not None else None,
            name=self.required(test, 'name', f'{path}.test.name'),
            code=self.required(test, 'code', f'{path}.test.code'),
            short_name=self.as_text(test.get('shortName')),
        )

        samples = [
            self._sample(entry if isinstance(entry, dict) else {}, f'{path}.samples.{j}')
            for j, entry in enumerate(self.as_list(raw.get('samples'), f'{path}.samples'))
        ]
        patients = []
        for j, entry in enumerate(self.as_list(raw.get('patients'), f'{path}.patients')):
            patient = self._patient(entry, f'{path}.patients.{j}')
            if not isinstance(entry, dict) or not isinstance(entry.get('is_main'), bool):
                self.error(f'{path}.patients.{j}.is_main', 'Must be a boolean.')
            patients.append(patient)

        return RemoteOrderItem(
            server_id=str(item_id) if item_id is not None else None,
            test=remote_test,
            samples=samples,
            patients=patients,
        )

    def _sample(self, raw: dict, path: str) -> RemoteSample:
        self.as_int(raw.get('sample_type_id'), f'{path}.sample_type_id')
        sample_type = raw.get('sampleType') if isinstance(raw.get('sampleType'), dict) else {}
        if not sample_type:
            self.error(f'{path}.sampleType', 'This field is required.')
        sample_type_id = self.as_int(sample_type.get('id'), f'{path}.sampleType.id')

        patient_id = raw.get('patientId')
        if patient_id in (None, ''):
            self.error(f'{path}.patientId', 'This field is required.')

        return RemoteSample(
            sample_type=RemoteSampleType(
                server_id=str(sample_type_id) if sample_type_id is not None else None,
                name=self.required(sample_type, 'name', f'{path}.sampleType.name'),
                sample_id_required=bool(
                    sample_type.get('sample_id_required', sample_type.get('required_barcode', False))
                ),
            ),
            collection_date=self.as_date(raw.get('collectionDate'), f'{path}.collectionDate'),
            patient_server_id=str(patient_id) if patient_id not in (None, '') else None,
            sample_id=self.as_text(raw.get('sampleId')),
            barcode=self.as_text(raw.get('barcode')),
        )
