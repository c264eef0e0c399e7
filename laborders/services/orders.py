"""
Order lifecycle entry points outside the step engine: creation, creation
from a material barcode, and lookups.
"""

import logging

from django.db import transaction

from ..enums import OrderStatus, OrderStep
from ..exceptions import NotFoundError, ValidationError
from ..intake.types import TestMethodPayload
from ..models import Order, Sample, SampleTypeTest
from .samples import check_material
from .steps import apply_test_method

logger = logging.getLogger(__name__)


def get_order(order_id, actor=None):
    """Get order by id, optionally limited to the actor's orders. Raises NotFoundError."""
    query = Order.objects.select_related('main_patient', 'owner').filter(id=order_id)
    if actor is not None:
        query = query.filter(owner=actor)
    order = query.first()
    if order is None:
        raise NotFoundError(
            message='Order not found',
            code='ORDER_NOT_FOUND',
            detail={'order_id': str(order_id)},
        )
    return order


def create_order(actor, test_ids):
    """
    Create a pending order for the selected tests.

    The test-method step is applied as part of creation, so the new order
    already carries its items and forms and waits at patient details.
    """
    with transaction.atomic():
        order = Order.objects.create(
            owner=actor,
            step=OrderStep.TEST_METHOD,
            status=OrderStatus.PENDING,
            files=[],
            consents={},
        )
        apply_test_method(order, TestMethodPayload(test_ids=list(test_ids)), actor, fresh=True)
        order.step = OrderStep.TEST_METHOD.next()
        order.save()

    logger.info('Order created order_id=%s owner=%s tests=%s', order.id, actor.id, list(test_ids))
    return order


def create_order_by_barcode(actor, barcode):
    """
    Start an order from a labelled collection tube.

    The material's sample type must have a default test; the new order gets
    that test and a sample bound to the material.
    """
    material = check_material(actor, barcode)
    link = (
        SampleTypeTest.objects
        .filter(sample_type=material.sample_type, is_default=True)
        .select_related('test')
        .first()
    )
    if link is None:
        raise ValidationError.from_errors(
            {'barcode': f'Sample type {material.sample_type.name!r} has no default test.'},
        )

    with transaction.atomic():
        order = create_order(actor, [link.test_id])
        sample = Sample.objects.create(
            sample_id=barcode,
            sample_type=material.sample_type,
            material=material,
        )
        order.order_items.get().samples.add(sample)

    logger.info('Order created from barcode order_id=%s barcode=%s', order.id, barcode)
    return order
