"""
Unit tests for the import reconciler (laborders.services.importer).

Payloads go through OrderImportAdapter first, the same way the webhook view
feeds import_order().
"""
import copy
from unittest.mock import patch

import pytest

from laborders.enums import OrderStep
from laborders.exceptions import ImportFailedError, ValidationError
from laborders.intake.adapters import OrderImportAdapter
from laborders.models import Order, OrderItem, OrderItemPatient, Patient, Sample, SampleType
from laborders.models import Test as LabTest
from laborders.services.importer import import_order
from tests.conftest import MaterialFactory, PatientFactory, SampleTypeFactory, TestFactory


def run_import(raw):
    return import_order(OrderImportAdapter(data=copy.deepcopy(raw)).process())


@pytest.mark.django_db
class TestFirstImport:

    def test_round_trip(self, account, import_payload):
        material = MaterialFactory(barcode='BC-100')

        result = run_import(import_payload)

        order = Order.objects.get(id=result.order_id)
        assert order.server_id == '555'
        assert order.owner == account
        assert order.step == OrderStep.FINALIZE
        assert order.status == 'sent'
        assert result.created is True
        assert result.order_items_count == 1
        assert result.samples_count == 1

        sample = Sample.objects.get()
        assert sample.material_id == material.id
        assert sample.sample_id == 'BC-100'
        assert sample.patient.server_id == 'p-1'

    def test_remote_timestamps_are_kept(self, account, import_payload):
        result = run_import(import_payload)

        order = Order.objects.get(id=result.order_id)
        assert order.created_at.isoformat().startswith('2024-03-02T10:00:00')
        assert order.order_id == f'OR.20240302.{order.id}'

    def test_missing_catalog_rows_become_placeholders(self, account, import_payload):
        run_import(import_payload)

        test = LabTest.objects.get(server_id='9')
        assert test.is_placeholder
        assert test.code == 'WES'
        sample_type = SampleType.objects.get(server_id='3')
        assert sample_type.is_placeholder
        assert sample_type.name == 'EDTA blood'

    def test_known_catalog_rows_are_reused(self, account, import_payload):
        test = TestFactory(server_id='9')
        sample_type = SampleTypeFactory(server_id='3')

        run_import(import_payload)

        item = OrderItem.objects.get()
        assert item.test == test
        assert item.server_id == '9001'
        assert Sample.objects.get().sample_type == sample_type
        assert LabTest.objects.count() == 1

    def test_item_patients_carry_main_flag(self, account, import_payload):
        run_import(import_payload)

        link = OrderItemPatient.objects.get()
        assert link.is_main is True
        assert link.patient.server_id == 'p-1'
        # Main patient and item patient are the same remote id.
        assert Patient.objects.count() == 1

    def test_existing_patient_matched_by_reference_id(self, account, import_payload):
        existing = PatientFactory(owner=account, reference_id='MRN-7', full_name='Old name')
        payload = copy.deepcopy(import_payload)
        payload['order']['main_patient'].pop('id')
        payload['order']['main_patient']['reference_id'] = 'MRN-7'

        result = run_import(payload)

        existing.refresh_from_db()
        assert Order.objects.get(id=result.order_id).main_patient_id == existing.id
        assert existing.full_name == 'Jane Doe'


@pytest.mark.django_db
class TestIdempotency:

    def test_second_import_only_updates_status(self, account, import_payload):
        MaterialFactory(barcode='BC-100')
        first = run_import(import_payload)

        again = copy.deepcopy(import_payload)
        again['order']['status'] = 'reported'
        with patch('laborders.tasks.notify_order_status_changed'):
            second = run_import(again)

        assert second.order_id == first.order_id
        assert second.created is False
        assert second.samples_count == first.samples_count == 1
        assert second.order_items_count == 1
        assert Order.objects.count() == 1
        assert Sample.objects.count() == 1
        assert Patient.objects.count() == 1
        assert Order.objects.get().status == 'reported'

    def test_notifies_after_commit_on_tracked_status(
        self, account, import_payload, django_capture_on_commit_callbacks,
    ):
        run_import(import_payload)
        again = copy.deepcopy(import_payload)
        again['order']['status'] = 'received'

        with patch('laborders.tasks.notify_order_status_changed') as mock_task:
            with django_capture_on_commit_callbacks(execute=True):
                result = run_import(again)

        mock_task.delay.assert_called_once_with(result.order_id, 'received')

    def test_unchanged_status_does_not_notify(
        self, account, import_payload, django_capture_on_commit_callbacks,
    ):
        import_payload['order']['status'] = 'received'
        run_import(import_payload)

        with patch('laborders.tasks.notify_order_status_changed') as mock_task:
            with django_capture_on_commit_callbacks(execute=True):
                run_import(import_payload)

        mock_task.delay.assert_not_called()


@pytest.mark.django_db
class TestImportFailures:

    def test_unknown_referrer(self, import_payload):
        with pytest.raises(ValidationError) as exc_info:
            run_import(import_payload)

        assert 'referrer_id' in exc_info.value.detail['errors']
        assert Order.objects.count() == 0

    def test_unexpected_error_is_wrapped_and_rolled_back(self, account, import_payload):
        with patch('laborders.services.importer.resolve_or_create_test', side_effect=RuntimeError('db gone')):
            with pytest.raises(ImportFailedError) as exc_info:
                run_import(import_payload)

        assert 'db gone' in exc_info.value.message
        assert Order.objects.count() == 0
        assert Patient.objects.count() == 0
