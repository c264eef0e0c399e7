"""
Sample / material reconciliation for the sample-details step.

A submission is the complete sample set of the order: reconcile_samples
upserts every submitted sample, prune_samples then removes whatever the
order's items still reference but the submission no longer lists.
"""

import logging

from ..exceptions import ConflictError, MaterialNotFoundError, NotFoundError
from ..models import OrderItem, Sample
from .identity import assign_changed, find_material, get_patient, get_sample_type, save_changed

logger = logging.getLogger(__name__)


def check_material(actor, barcode, sample_pk=None):
    """
    Return the actor's material for a barcode, ready to be linked to a sample.

    Raises:
        MaterialNotFoundError: no such material for this actor
        ConflictError:         the material is already linked to another sample
    """
    material = find_material(barcode, owner=actor)
    if material is None:
        raise MaterialNotFoundError(barcode)
    if material.samples.exclude(id=sample_pk).exists():
        raise ConflictError(
            message=f'Material {barcode!r} is already used by another sample.',
            code='MATERIAL_ALREADY_USED',
            detail={'barcode': barcode},
        )
    return material


def _load_sample(order, data, sample_type):
    """
    Existing sample by local id, else by (sample type, sample id) among this
    order's samples, else a new one.
    """
    if data.id is not None:
        sample = Sample.objects.filter(id=data.id, order_items__order=order).first()
        if sample is None:
            raise NotFoundError(
                message='Sample not found',
                code='SAMPLE_NOT_FOUND',
                detail={'sample_id': data.id},
            )
        return sample

    if data.sample_id:
        existing = (
            Sample.objects
            .filter(sample_type=sample_type, sample_id=data.sample_id, order_items__order=order)
            .distinct()
            .order_by('id')
            .first()
        )
        if existing is not None:
            return existing
    return Sample(sample_type=sample_type)


def _target_items(order, data, sample_type):
    if data.order_item_id is not None:
        item = OrderItem.objects.filter(id=data.order_item_id, order=order).first()
        if item is None:
            raise NotFoundError(
                message='Order item not found',
                code='ORDER_ITEM_NOT_FOUND',
                detail={'order_item_id': data.order_item_id},
            )
        return [item]

    items = list(order.order_items.all())
    matching = [item for item in items if item.test.sample_types.filter(id=sample_type.id).exists()]
    return matching or items


def reconcile_sample(order, data, actor):
    sample_type = get_sample_type(data.sample_type_id)
    sample = _load_sample(order, data, sample_type)

    attributes = {
        'sample_type': sample_type,
        'sample_id': data.sample_id,
        'collection_date': data.collection_date,
    }
    if sample_type.sample_id_required:
        attributes['material'] = check_material(actor, data.sample_id, sample_pk=sample.pk)
    else:
        # A type without barcodes never keeps a material from a previous type.
        attributes['material'] = None
    if data.patient_id is not None:
        attributes['patient'] = get_patient(data.patient_id, owner=actor)

    changed = assign_changed(sample, attributes)
    if sample.pk is None:
        sample.save()
    else:
        save_changed(sample, changed)

    for item in _target_items(order, data, sample_type):
        # add() never detaches the item's other samples.
        item.samples.add(sample)
    return sample


def reconcile_samples(order, samples, actor):
    """Upsert every submitted sample; returns the resulting sample ids."""
    return [reconcile_sample(order, data, actor).id for data in samples]


def prune_samples(order, keep_ids):
    """
    Detach samples the submission dropped and delete those no order item
    references any more.
    """
    stale_ids = list(
        Sample.objects
        .filter(order_items__order=order)
        .exclude(id__in=keep_ids)
        .values_list('id', flat=True)
        .distinct()
    )
    if not stale_ids:
        return 0

    for item in order.order_items.all():
        item.samples.remove(*stale_ids)
    deleted, _ = Sample.objects.filter(id__in=stale_ids, order_items__isnull=True).delete()
    logger.info('Pruned samples order_id=%s detached=%d deleted=%d', order.id, len(stale_ids), deleted)
    return deleted
