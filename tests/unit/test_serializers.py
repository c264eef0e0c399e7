"""
Unit tests for serializer functions.

覆盖 serialize_order_summary 的 aggregate 输出 + serialize_import_result。
"""
import pytest

from laborders.intake.types import ImportResult
from laborders.models import OrderItemPatient
from laborders.serializers import serialize_import_result, serialize_order_summary
from tests.conftest import (
    MaterialFactory,
    OrderFactory,
    OrderItemFactory,
    PatientFactory,
    SampleFactory,
)


@pytest.mark.django_db
class TestSerializeOrderSummary:

    def test_empty_order(self):
        order = OrderFactory()
        result = serialize_order_summary(order)

        assert result['id'] == order.id
        assert result['order_id'] == f"OR.{order.created_at:%Y%m%d}.{order.id}"
        assert result['main_patient'] is None
        assert result['order_items'] == []
        assert result['consents'] == {}

    def test_items_patients_and_samples(self):
        patient = PatientFactory(full_name='Jane Doe')
        order = OrderFactory(owner=patient.owner, main_patient=patient)
        order.patients.add(patient)
        item = OrderItemFactory(order=order)
        OrderItemPatient.objects.create(order_item=item, patient=patient, is_main=True)
        material = MaterialFactory(barcode='BC-1')
        item.samples.add(SampleFactory(sample_type=material.sample_type, sample_id='BC-1', material=material))

        result = serialize_order_summary(order)

        assert result['main_patient']['fullName'] == 'Jane Doe'
        assert result['main_patient']['dateOfBirth'] == '1990-04-01'
        entry = result['order_items'][0]
        assert entry['test']['id'] == item.test_id
        assert entry['patients'] == [{'id': patient.id, 'fullName': 'Jane Doe', 'is_main': True}]
        assert entry['samples'][0]['material'] == {'id': material.id, 'barcode': 'BC-1'}

    def test_sample_without_material(self):
        order = OrderFactory()
        item = OrderItemFactory(order=order)
        item.samples.add(SampleFactory())

        sample = serialize_order_summary(order)['order_items'][0]['samples'][0]

        assert sample['material'] is None
        assert sample['collectionDate'] == '2024-03-01'


class TestSerializeImportResult:

    def test_created_flag_is_not_exposed(self):
        result = ImportResult(order_id=7, order_items_count=2, samples_count=3, created=False)
        assert serialize_import_result(result) == {'order_id': 7, 'order_items_count': 2, 'samples_count': 3}
