"""
Identity resolution: external or local references → local rows.

Shared by the step engine and the import reconciler. Lookups that must
exist raise NotFoundError; the resolve_or_create_* helpers used by imports
mint placeholder catalog rows instead, flagged with is_placeholder and
logged at warning level so catalog curation can find them later.
"""

import logging

from django.db.models import Q

from ..exceptions import NotFoundError, ValidationError
from ..models import Account, Material, Patient, SampleType, Test

logger = logging.getLogger(__name__)


def assign_changed(instance, attributes):
    """
    Copy attributes onto a model instance, returning the names that changed.

    Callers save only when the list is non-empty, so an unchanged resubmission
    leaves the row (and its updated_at) untouched.
    """
    changed = []
    for name, value in attributes.items():
        if getattr(instance, name) != value:
            setattr(instance, name, value)
            changed.append(name)
    return changed


def save_changed(instance, changed):
    if not changed:
        return False
    fields = list(changed)
    if any(f.name == 'updated_at' for f in instance._meta.concrete_fields):
        fields.append('updated_at')
    instance.save(update_fields=fields)
    return True


# ── Local lookups ──────────────────────────────────────────────────────────

def get_account(account_id):
    try:
        return Account.objects.get(id=account_id)
    except (Account.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(
            message='Account not found',
            code='ACCOUNT_NOT_FOUND',
            detail={'account_id': str(account_id)},
        )


def get_account_by_referrer(referrer_id):
    """The local account behind a remote referrer id; 422 when there is none."""
    account = Account.objects.filter(referrer_id=str(referrer_id)).first()
    if account is None:
        raise ValidationError.from_errors(
            {'referrer_id': f'No account is registered for referrer {referrer_id}.'},
            message='Referrer not found.',
        )
    return account


def get_patient(patient_id, owner=None):
    query = Patient.objects.filter(id=patient_id)
    if owner is not None:
        query = query.filter(owner=owner)
    patient = query.first()
    if patient is None:
        raise NotFoundError(
            message='Patient not found',
            code='PATIENT_NOT_FOUND',
            detail={'patient_id': patient_id},
        )
    return patient


def get_sample_type(sample_type_id):
    try:
        return SampleType.objects.get(id=sample_type_id)
    except SampleType.DoesNotExist:
        raise NotFoundError(
            message='Sample type not found',
            code='SAMPLE_TYPE_NOT_FOUND',
            detail={'sample_type_id': sample_type_id},
        )


def get_tests(test_ids):
    """All tests for the ids, in the given order; 404 if any is unknown."""
    tests = {test.id: test for test in Test.objects.filter(id__in=test_ids)}
    missing = [test_id for test_id in test_ids if test_id not in tests]
    if missing:
        raise NotFoundError(
            message='Test not found',
            code='TEST_NOT_FOUND',
            detail={'test_ids': missing},
        )
    return [tests[test_id] for test_id in test_ids]


def find_material(barcode, owner=None):
    """Material by barcode, limited to the owner's (or unowned) materials when owner is given."""
    if not barcode:
        return None
    query = Material.objects.select_related('sample_type').filter(barcode=barcode)
    if owner is not None:
        query = query.filter(Q(owner=owner) | Q(owner__isnull=True))
    return query.first()


# ── Remote references (import) ─────────────────────────────────────────────

def find_remote_patient(remote, owner):
    """
    Resolution order: external id, else reference code, else id number.
    Without any of them there is nothing to match on and None is returned.
    """
    query = Patient.objects.filter(owner=owner)
    if remote.server_id:
        query = query.filter(server_id=remote.server_id)
    elif remote.reference_id:
        query = query.filter(reference_id=remote.reference_id)
    elif remote.id_no:
        query = query.filter(id_no=remote.id_no)
    else:
        return None
    return query.order_by('id').first()


def upsert_remote_patient(remote, owner):
    attributes = {
        'server_id': remote.server_id,
        'full_name': remote.full_name,
        'nationality': remote.nationality,
        'date_of_birth': remote.date_of_birth,
        'gender': remote.gender,
        'reference_id': remote.reference_id,
        'id_no': remote.id_no,
    }
    patient = find_remote_patient(remote, owner)
    if patient is None:
        patient = Patient.objects.create(owner=owner, **attributes)
        logger.info('Patient created patient_id=%s server_id=%s', patient.id, remote.server_id)
        return patient

    if save_changed(patient, assign_changed(patient, attributes)):
        logger.info('Patient updated patient_id=%s server_id=%s', patient.id, remote.server_id)
    return patient


def resolve_or_create_test(remote):
    """Test by external id, or a placeholder built from the embedded summary."""
    test = Test.objects.filter(server_id=remote.server_id).first()
    if test is not None:
        return test

    logger.warning(
        'Test not found by server_id, creating placeholder server_id=%s name=%r',
        remote.server_id, remote.name,
    )
    return Test.objects.create(
        server_id=remote.server_id,
        name=remote.name,
        code=remote.code,
        short_name=remote.short_name or remote.code,
        is_placeholder=True,
    )


def resolve_or_create_sample_type(remote):
    sample_type = SampleType.objects.filter(server_id=remote.server_id).first()
    if sample_type is not None:
        return sample_type

    logger.warning(
        'Sample type not found by server_id, creating placeholder server_id=%s name=%r',
        remote.server_id, remote.name,
    )
    return SampleType.objects.create(
        server_id=remote.server_id,
        name=remote.name,
        sample_id_required=remote.sample_id_required,
        is_placeholder=True,
    )
