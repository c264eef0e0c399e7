"""
Catalog sync from the system of record.

Tests and sample types pushed by the remote catalog are upserted by their
external id. A synced row is authoritative, so it also clears the
placeholder flag set by imports that referenced it before it was known.
"""

import logging

from django.db import transaction

from ..exceptions import ValidationError
from ..models import Consent, Instruction, OrderForm, SampleType, Test

logger = logging.getLogger(__name__)


def _require(data, keys, prefix):
    errors = {f'{prefix}.{key}': 'This field is required.' for key in keys if data.get(key) in (None, '')}
    if errors:
        raise ValidationError.from_errors(errors)


def upsert_sample_type(server_id, data):
    """
    data: {"sample_type": {"id", "name", "orderable", "required_barcode"}}
    """
    remote = data.get('sample_type') or {}
    _require(remote, ['name'], 'sample_type')

    sample_type, created = SampleType.objects.update_or_create(
        server_id=str(server_id),
        defaults={
            'name': remote['name'],
            'orderable': bool(remote.get('orderable', True)),
            'sample_id_required': bool(remote.get('required_barcode', False)),
            'is_placeholder': False,
        },
    )
    logger.info('Sample type synced server_id=%s created=%s', server_id, created)
    return sample_type


def _by_server_id(model, server_id):
    if server_id in (None, ''):
        return None
    return model.objects.filter(server_id=str(server_id)).first()


def upsert_test(server_id, data):
    """
    data: {"test": {"fullName", "code", "name", "description",
                    "methods_max_turnaround_time", "status",
                    "consent_form_id", "request_form_id", "instruction_id",
                    "sample_types": [{"id", "is_default"}]}}
    """
    remote = data.get('test') or {}
    _require(remote, ['fullName', 'code'], 'test')

    with transaction.atomic():
        test, created = Test.objects.update_or_create(
            server_id=str(server_id),
            defaults={
                'name': remote['fullName'],
                'code': remote['code'],
                'short_name': remote.get('name') or remote['code'],
                'description': remote.get('description') or '',
                'turnaround_time': remote.get('methods_max_turnaround_time') or 1,
                'is_active': bool(remote.get('status', True)),
                'consent': _by_server_id(Consent, remote.get('consent_form_id')),
                'instruction': _by_server_id(Instruction, remote.get('instruction_id')),
                'is_placeholder': False,
            },
        )
        order_form = _by_server_id(OrderForm, remote.get('request_form_id'))
        if order_form is not None:
            test.order_forms.add(order_form)

        for link in remote.get('sample_types') or []:
            sample_type = _by_server_id(SampleType, link.get('id'))
            if sample_type is None:
                logger.warning('Unknown sample type in test sync server_id=%s', link.get('id'))
                continue
            test.sample_type_links.update_or_create(
                sample_type=sample_type,
                defaults={'is_default': bool(link.get('is_default', False))},
            )

    logger.info('Test synced server_id=%s created=%s', server_id, created)
    return test
