"""
Import reconciler: orders authored by the system of record.

import_order(payload) creates the whole aggregate (patients, items,
samples) in one transaction, keyed by the remote order id. A second import
of the same order only refreshes its status; nested entities are assumed
to be in place since the first import.

Catalog gaps never fail an import: unknown tests and sample types become
placeholder rows (see identity.resolve_or_create_*).
"""

import logging

from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from ..enums import NOTIFY_STATUSES, OrderStep
from ..exceptions import BaseAppException, ImportFailedError
from ..intake.types import ImportResult
from ..models import Order, OrderItem, OrderItemPatient, Patient, Sample
from .identity import (
    find_material,
    get_account_by_referrer,
    resolve_or_create_sample_type,
    resolve_or_create_test,
    upsert_remote_patient,
)

logger = logging.getLogger(__name__)


def _counts(order):
    items = order.order_items.all()
    samples_count = sum(item.samples.count() for item in items)
    return items.count(), samples_count


def _timestamp(value):
    if not value:
        return timezone.now()
    parsed = parse_datetime(str(value))
    if parsed is None:
        return timezone.now()
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def _notify_on_commit(order_id, status):
    from ..tasks import notify_order_status_changed

    transaction.on_commit(lambda: notify_order_status_changed.delay(order_id, status))


# ── known order ────────────────────────────────────────────────────────────

def _refresh_status(order, payload):
    previous = order.status
    if previous != payload.status:
        order.status = payload.status
        order.save(update_fields=['status', 'updated_at'])
        if payload.status in NOTIFY_STATUSES:
            _notify_on_commit(order.id, payload.status)

    items_count, samples_count = _counts(order)
    logger.info(
        'Order import short-circuited order_id=%s server_id=%s status=%s->%s',
        order.id, payload.server_id, previous, payload.status,
    )
    return ImportResult(
        order_id=order.id,
        order_items_count=items_count,
        samples_count=samples_count,
        created=False,
    )


# ── new order ──────────────────────────────────────────────────────────────

def _import_sample(remote, owner):
    sample_type = resolve_or_create_sample_type(remote.sample_type)

    if remote.sample_id:
        existing = (
            Sample.objects
            .filter(sample_type=sample_type, sample_id=remote.sample_id)
            .order_by('id')
            .first()
        )
        if existing is not None:
            return existing

    material = find_material(remote.barcode)
    if material is not None and material.samples.exists():
        logger.warning(
            'Material already linked to another sample barcode=%s material_id=%s',
            remote.barcode, material.id,
        )

    patient = None
    if remote.patient_server_id:
        patient = Patient.objects.filter(owner=owner, server_id=remote.patient_server_id).first()

    return Sample.objects.create(
        sample_id=remote.sample_id,
        sample_type=sample_type,
        material=material,
        patient=patient,
        collection_date=remote.collection_date,
    )


def _import_item(order, remote, owner):
    test = resolve_or_create_test(remote.test)
    item = OrderItem.objects.create(order=order, test=test, server_id=remote.server_id)

    for remote_sample in remote.samples:
        item.samples.add(_import_sample(remote_sample, owner))

    for remote_patient in remote.patients:
        patient = upsert_remote_patient(remote_patient, owner)
        OrderItemPatient.objects.get_or_create(
            order_item=item,
            patient=patient,
            defaults={'is_main': remote_patient.is_main},
        )
    return item


def _create(payload, owner):
    main_patient = upsert_remote_patient(payload.main_patient, owner)
    patients = [main_patient]
    for remote in payload.patients:
        patient = upsert_remote_patient(remote, owner)
        if patient not in patients:
            patients.append(patient)

    order = Order.objects.create(
        owner=owner,
        server_id=payload.server_id,
        step=OrderStep.FINALIZE,
        status=payload.status,
        main_patient=main_patient,
        order_forms=payload.order_forms or [],
        consents=payload.consents or {},
        files=[],
    )
    order.patients.set(patients)

    for remote_item in payload.order_items:
        _import_item(order, remote_item, owner)

    # auto_now fields ignore assigned values; the remote timestamps win.
    Order.objects.filter(id=order.id).update(
        created_at=_timestamp(payload.created_at),
        updated_at=_timestamp(payload.updated_at),
    )

    items_count, samples_count = _counts(order)
    logger.info(
        'Order imported order_id=%s server_id=%s items=%d samples=%d',
        order.id, payload.server_id, items_count, samples_count,
    )
    return ImportResult(order_id=order.id, order_items_count=items_count, samples_count=samples_count)


def import_order(payload):
    """
    Create or refresh the local copy of a remote order.

    Raises:
        ValidationError:   referrer_id does not belong to any account (422)
        ImportFailedError: anything unexpected; nothing of the import is kept
    """
    logger.info('Order import received server_id=%s referrer_id=%s', payload.server_id, payload.referrer_id)
    try:
        with transaction.atomic():
            owner = get_account_by_referrer(payload.referrer_id)
            existing = Order.objects.filter(server_id=payload.server_id).first()
            if existing is not None:
                return _refresh_status(existing, payload)
            return _create(payload, owner)
    except BaseAppException:
        raise
    except Exception as exc:
        logger.exception('Order import failed server_id=%s', payload.server_id)
        raise ImportFailedError(
            message=f'Failed to import order: {exc}',
            detail={'server_id': payload.server_id},
        ) from exc
