"""
Unit tests for order creation, catalog sync and the notification task.
"""
from unittest.mock import MagicMock, patch

import pytest
from django.test import override_settings

from laborders.enums import OrderStatus, OrderStep
from laborders.exceptions import ConflictError, MaterialNotFoundError, NotFoundError, ValidationError
from laborders.models import Sample, SampleType
from laborders.models import Test as LabTest
from laborders.services import (
    create_order,
    create_order_by_barcode,
    get_order,
    upsert_sample_type,
    upsert_test,
)
from laborders.tasks import notify_order_status_changed
from tests.conftest import (
    AccountFactory,
    MaterialFactory,
    OrderFactory,
    OrderFormFactory,
    SampleFactory,
    SampleTypeFactory,
    SampleTypeTestFactory,
    TestFactory,
)


# -------------------------------------------------------------------
# create_order / get_order
# -------------------------------------------------------------------

@pytest.mark.django_db
class TestCreateOrder:

    def test_new_order_waits_at_patient_details(self, account):
        form = OrderFormFactory()
        first = TestFactory(order_forms=[form])
        second = TestFactory()

        order = create_order(account, [first.id, second.id])

        order.refresh_from_db()
        assert order.owner == account
        assert order.step == OrderStep.PATIENT_DETAILS
        assert order.status == OrderStatus.PENDING
        assert list(order.order_items.order_by('id').values_list('test_id', flat=True)) == [first.id, second.id]
        assert [f['id'] for f in order.order_forms] == [form.id]

    def test_unknown_test_creates_nothing(self, account):
        with pytest.raises(NotFoundError):
            create_order(account, [999999])
        assert not account.orders.exists()

    def test_get_order_limited_to_owner(self, account):
        order = OrderFactory(owner=account)
        stranger = AccountFactory()

        assert get_order(order.id, actor=account) == order
        with pytest.raises(NotFoundError) as exc_info:
            get_order(order.id, actor=stranger)
        assert exc_info.value.code == 'ORDER_NOT_FOUND'


@pytest.mark.django_db
class TestCreateOrderByBarcode:

    def test_default_test_and_sample(self, account):
        material = MaterialFactory(owner=account, barcode='BC-7')
        link = SampleTypeTestFactory(sample_type=material.sample_type, is_default=True)

        order = create_order_by_barcode(account, 'BC-7')

        item = order.order_items.get()
        assert item.test == link.test
        sample = item.samples.get()
        assert (sample.sample_id, sample.material_id) == ('BC-7', material.id)

    def test_type_without_default_test(self, account):
        material = MaterialFactory(owner=account, barcode='BC-8')
        SampleTypeTestFactory(sample_type=material.sample_type, is_default=False)

        with pytest.raises(ValidationError):
            create_order_by_barcode(account, 'BC-8')
        assert not account.orders.exists()

    def test_unknown_barcode(self, account):
        with pytest.raises(MaterialNotFoundError):
            create_order_by_barcode(account, 'BC-404')

    def test_used_material(self, account):
        material = MaterialFactory(owner=account, barcode='BC-9')
        SampleTypeTestFactory(sample_type=material.sample_type, is_default=True)
        SampleFactory(sample_type=material.sample_type, material=material)

        with pytest.raises(ConflictError):
            create_order_by_barcode(account, 'BC-9')
        assert Sample.objects.count() == 1


# -------------------------------------------------------------------
# Catalog sync
# -------------------------------------------------------------------

@pytest.mark.django_db
class TestCatalogSync:

    def test_sync_clears_placeholder_sample_type(self):
        SampleTypeFactory(server_id='3', name='EDTA blood', is_placeholder=True)

        sample_type = upsert_sample_type('3', {'sample_type': {'name': 'EDTA whole blood', 'required_barcode': True}})

        assert SampleType.objects.count() == 1
        assert sample_type.name == 'EDTA whole blood'
        assert sample_type.sample_id_required is True
        assert sample_type.is_placeholder is False

    def test_sync_test_links_sample_types(self):
        TestFactory(server_id='9', code='WES', name='WES', is_placeholder=True)
        blood = SampleTypeFactory(server_id='3')

        test = upsert_test('9', {'test': {
            'fullName': 'Whole exome sequencing',
            'code': 'WES',
            'name': 'WES',
            'methods_max_turnaround_time': 30,
            'sample_types': [{'id': 3, 'is_default': True}, {'id': 404}],
        }})

        assert LabTest.objects.count() == 1
        assert test.is_placeholder is False
        assert test.turnaround_time == 30
        link = test.sample_type_links.get()
        assert (link.sample_type, link.is_default) == (blood, True)

    def test_missing_fields(self):
        with pytest.raises(ValidationError) as exc_info:
            upsert_test('9', {'test': {'name': 'WES'}})
        assert set(exc_info.value.detail['errors']) == {'test.fullName', 'test.code'}


# -------------------------------------------------------------------
# notify_order_status_changed
# -------------------------------------------------------------------

def notifier_stub(order_id, status):
    notifier_stub.calls.append((order_id, status))


notifier_stub.calls = []


@pytest.mark.django_db
class TestNotifyTask:

    def test_calls_configured_notifier(self, account):
        order = OrderFactory(owner=account)
        notifier_stub.calls.clear()

        with override_settings(ORDER_NOTIFIER='tests.unit.test_order_services.notifier_stub'):
            notify_order_status_changed.apply(args=(order.id, 'reported'))

        assert notifier_stub.calls == [(order.id, 'reported')]

    def test_without_notifier_only_logs(self, account):
        order = OrderFactory(owner=account)
        with override_settings(ORDER_NOTIFIER=''):
            result = notify_order_status_changed.apply(args=(order.id, 'received'))
        assert result.successful()

    def test_missing_order_is_skipped(self):
        notifier = MagicMock()
        with patch('laborders.tasks._notifier', return_value=notifier):
            notify_order_status_changed.apply(args=(999999, 'received'))
        notifier.assert_not_called()

    def test_failure_is_retried_with_backoff(self, account):
        order = OrderFactory(owner=account)
        notifier = MagicMock(side_effect=ConnectionError('smtp down'))

        with patch('laborders.tasks._notifier', return_value=notifier), \
                patch.object(notify_order_status_changed, 'retry', side_effect=RuntimeError('retry')) as retry:
            result = notify_order_status_changed.apply(args=(order.id, 'received'))

        assert result.failed()
        assert retry.call_args.kwargs['countdown'] == 10
