"""
Order step engine.

advance(order, step, payload, actor) applies one step of the intake
workflow to the order aggregate and moves the step pointer:

    test method → patient details → patient test assignment →
    clinical details → sample details → consent form → finalize

Each call is a single transaction; if any part of a step fails nothing of
it is written. Concurrent calls on the same order are expected to be
serialised by the caller (one writer per order).
"""

import logging

from django.db import transaction

from ..enums import OrderStatus, OrderStep
from ..exceptions import ConflictError, NotFoundError, ValidationError
from ..intake.types import MAIN_PATIENT, PAYLOAD_TYPES
from ..models import OrderItem, OrderItemPatient, Patient, PatientRelation, Sample
from .files import merge_files
from .forms import apply_form_values, reconcile_forms
from .identity import assign_changed, get_patient, get_tests, save_changed
from .samples import prune_samples, reconcile_samples

logger = logging.getLogger(__name__)

CONSENT_FILES_KEY = 'consentForm'
CONSENT_ITEMS_KEY = 'consentItems'


# ── test method ────────────────────────────────────────────────────────────

def apply_test_method(order, payload, actor, fresh=False):
    tests = get_tests(payload.test_ids)
    new_ids = [test.id for test in tests]
    previous_ids = list(order.order_items.values_list('test_id', flat=True).distinct())

    order.order_forms = reconcile_forms(
        None if fresh else order.order_forms,
        previous_ids,
        new_ids,
    )

    # Items of kept tests survive with their samples and patients.
    dropped = order.order_items.exclude(test_id__in=new_ids)
    orphan_ids = list(Sample.objects.filter(order_items__in=dropped).values_list('id', flat=True).distinct())
    dropped.delete()
    Sample.objects.filter(id__in=orphan_ids, order_items__isnull=True).delete()
    for test_id in new_ids:
        if test_id not in previous_ids:
            OrderItem.objects.create(order=order, test_id=test_id)


# ── patient details ────────────────────────────────────────────────────────

def _save_patient(data, actor):
    if data.id is not None:
        patient = get_patient(data.id, owner=actor)
        save_changed(patient, assign_changed(patient, data.attributes()))
        return patient
    return Patient.objects.create(owner=actor, **data.attributes())


def _apply_relations(patient, data, main_patient):
    """Insert-if-absent, update-if-present; other edges stay unless replace_relations is set."""
    declared = []
    for relation in data.relations:
        target_id = main_patient.id if relation.related_patient_id == MAIN_PATIENT else relation.related_patient_id
        if target_id == patient.id:
            continue
        if not Patient.objects.filter(id=target_id, owner=patient.owner).exists():
            raise NotFoundError(
                message='Related patient not found',
                code='PATIENT_NOT_FOUND',
                detail={'patient_id': target_id},
            )
        edge, created = PatientRelation.objects.get_or_create(
            patient=patient,
            related_patient_id=target_id,
            defaults={'relation_type': relation.relation_type, 'notes': relation.notes},
        )
        if not created:
            save_changed(edge, assign_changed(edge, {
                'relation_type': relation.relation_type,
                'notes': relation.notes,
            }))
        declared.append(target_id)

    if data.replace_relations:
        patient.relations.exclude(related_patient_id__in=declared).delete()


def apply_patient_details(order, payload, actor):
    if not payload.patients:
        raise ValidationError.from_errors({'patients': 'This field is required.'})

    patients = [_save_patient(data, actor) for data in payload.patients]
    main_patient = patients[0]
    order.main_patient = main_patient
    order.patients.set(patients)
    _prune_item_patients(order, [patient.id for patient in patients])

    for patient, data in zip(patients, payload.patients):
        _apply_relations(patient, data, main_patient)


def _prune_item_patients(order, patient_ids):
    """Drop item links to patients no longer on the order; keep one main link per item."""
    stale = OrderItemPatient.objects.filter(order_item__order=order).exclude(patient_id__in=patient_ids)
    dropped, _ = stale.delete()
    if not dropped:
        return

    for item in order.order_items.all():
        links = list(item.patient_links.order_by('id'))
        if links and not any(link.is_main for link in links):
            links[0].is_main = True
            links[0].save(update_fields=['is_main'])
    logger.info('Pruned item patients order_id=%s dropped=%d', order.id, dropped)


# ── patient / test assignment ──────────────────────────────────────────────

def _assign(item, patient_ids):
    OrderItemPatient.objects.filter(order_item=item).delete()
    seen = []
    for patient_id in patient_ids:
        if patient_id in seen:
            continue
        OrderItemPatient.objects.create(order_item=item, patient_id=patient_id, is_main=not seen)
        seen.append(patient_id)


def apply_patient_test_assignment(order, payload, actor):
    if not payload.assignments:
        if order.main_patient_id is None:
            raise ValidationError.from_errors(
                {'assignments': 'The order has no main patient to assign.'},
            )
        for item in order.order_items.all():
            _assign(item, [order.main_patient_id])
        return

    order_patient_ids = set(order.patients.values_list('id', flat=True))
    for assignment in payload.assignments:
        item = order.order_items.filter(test_id=assignment.test_id).first()
        if item is None:
            raise NotFoundError(
                message='Order item not found',
                code='ORDER_ITEM_NOT_FOUND',
                detail={'test_id': assignment.test_id},
            )
        unknown = [pid for pid in assignment.patient_ids if pid not in order_patient_ids]
        if unknown:
            raise NotFoundError(
                message='Patient not found on this order',
                code='PATIENT_NOT_FOUND',
                detail={'patient_ids': unknown},
            )
        _assign(item, assignment.patient_ids)


# ── clinical details / consent form ────────────────────────────────────────

def apply_clinical_details(order, payload, actor):
    order.files = merge_files(order, payload.files, 'files')
    if payload.order_forms is not None:
        order.order_forms = apply_form_values(order.order_forms or [], payload.order_forms)


def apply_consent_form(order, payload, actor):
    consents = dict(order.consents or {})
    if payload.consents is not None:
        consents[CONSENT_ITEMS_KEY] = payload.consents
    consents[CONSENT_FILES_KEY] = merge_files(order, payload.files, 'consents')
    order.consents = consents


# ── sample details / finalize ──────────────────────────────────────────────

def apply_sample_details(order, payload, actor):
    sample_ids = reconcile_samples(order, payload.samples, actor)
    prune_samples(order, sample_ids)


def apply_finalize(order, payload, actor):
    order.status = OrderStatus.REQUESTED


STEP_HANDLERS = {
    OrderStep.TEST_METHOD: apply_test_method,
    OrderStep.PATIENT_DETAILS: apply_patient_details,
    OrderStep.PATIENT_TEST_ASSIGNMENT: apply_patient_test_assignment,
    OrderStep.CLINICAL_DETAILS: apply_clinical_details,
    OrderStep.SAMPLE_DETAILS: apply_sample_details,
    OrderStep.CONSENT_FORM: apply_consent_form,
    OrderStep.FINALIZE: apply_finalize,
}


def advance(order, step, payload, actor):
    """
    Apply one workflow step to the order and move its step pointer.

    The pointer lands on step.next(), or stays where it is when the order is
    already further along; the terminal step is its own successor, so
    finalize can be re-applied.

    Raises:
        ConflictError:   step is ahead of the order's current step
        ValidationError: payload does not belong to the step
        NotFoundError / MaterialNotFoundError: a referenced entity is missing
    """
    step = OrderStep(step)
    current = order.current_step
    if step.position > current.position:
        raise ConflictError(
            message=f'Step {step.value!r} is not reachable yet; the order is at {current.value!r}.',
            code='STEP_NOT_REACHED',
            detail={'step': step.value, 'current_step': current.value},
        )
    if not isinstance(payload, PAYLOAD_TYPES[step]):
        raise ValidationError.from_errors({'step': f'Payload does not match step {step.value!r}.'})

    with transaction.atomic():
        STEP_HANDLERS[step](order, payload, actor)
        order.step = current.later_of(step.next())
        order.save()

    logger.info('Order step applied order_id=%s step=%r next=%r', order.id, step.value, str(order.step))
    return order
