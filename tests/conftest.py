"""
Shared fixtures for all tests.

factory-boy factories live here so both unit/ and integration/ can import them.
"""
import json
from datetime import date

import factory
import pytest
from django.test import Client

from laborders.enums import OrderStatus, OrderStep
from laborders.models import (
    Account,
    Material,
    Order,
    OrderForm,
    OrderItem,
    Patient,
    Sample,
    SampleType,
    SampleTypeTest,
    Test,
)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

class AccountFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Account

    name = factory.Sequence(lambda n: f'Clinic {n}')
    email = factory.Sequence(lambda n: f'clinic{n}@example.com')
    referrer_id = factory.Sequence(lambda n: f'ref-{n}')


class SampleTypeFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = SampleType

    server_id = factory.Sequence(lambda n: f'st-{n}')
    name = factory.Sequence(lambda n: f'Sample type {n}')
    sample_id_required = False


class OrderFormFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = OrderForm

    name = factory.Sequence(lambda n: f'Form {n}')
    form_data = factory.LazyFunction(lambda: [
        {'type': 'text', 'label': 'Symptoms', 'required': True},
        {'type': 'checkbox', 'label': 'Family history', 'required': False},
    ])


class TestFactory(factory.django.DjangoModelFactory):
    __test__ = False

    class Meta:
        model = Test
        skip_postgeneration_save = True

    server_id = factory.Sequence(lambda n: f't-{n}')
    code = factory.Sequence(lambda n: f'T{n:03d}')
    name = factory.Sequence(lambda n: f'Test {n}')
    short_name = factory.LazyAttribute(lambda obj: obj.code)

    @factory.post_generation
    def order_forms(self, create, extracted, **kwargs):
        if create and extracted:
            self.order_forms.add(*extracted)


class SampleTypeTestFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = SampleTypeTest

    test = factory.SubFactory(TestFactory)
    sample_type = factory.SubFactory(SampleTypeFactory)
    is_default = False


class PatientFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Patient

    owner = factory.SubFactory(AccountFactory)
    full_name = 'Jane Doe'
    nationality = 'DE'
    date_of_birth = date(1990, 4, 1)
    gender = '0'
    consanguineous_parents = '-1'


class MaterialFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Material

    barcode = factory.Sequence(lambda n: f'BC-{n:04d}')
    sample_type = factory.SubFactory(SampleTypeFactory, sample_id_required=True)
    owner = factory.SubFactory(AccountFactory)


class OrderFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Order

    owner = factory.SubFactory(AccountFactory)
    step = OrderStep.PATIENT_DETAILS
    status = OrderStatus.PENDING
    order_forms = factory.LazyFunction(list)
    consents = factory.LazyFunction(dict)
    files = factory.LazyFunction(list)


class OrderItemFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = OrderItem

    order = factory.SubFactory(OrderFactory)
    test = factory.SubFactory(TestFactory)


class SampleFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Sample

    sample_type = factory.SubFactory(SampleTypeFactory)
    sample_id = factory.Sequence(lambda n: f'S-{n}')
    collection_date = date(2024, 3, 1)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def api_client():
    """Django test client for integration tests."""
    return Client()


@pytest.fixture
def account(db):
    return AccountFactory(referrer_id='77')


@pytest.fixture
def actor_headers(account):
    """Extra request headers identifying the acting account."""
    return {'HTTP_X_ACCOUNT_ID': str(account.id)}


@pytest.fixture
def send_json(api_client):
    """(method, url, payload, **headers) → (status_code, body_dict)."""

    def _send(method, url, payload=None, **headers):
        response = getattr(api_client, method)(
            url,
            data=json.dumps(payload if payload is not None else {}),
            content_type='application/json',
            **headers,
        )
        return response.status_code, json.loads(response.content)

    return _send


@pytest.fixture
def import_payload():
    """Minimal valid body for POST /api/webhooks/orders/import/."""
    return {
        'referrer_id': 77,
        'order': {
            'id': 555,
            'status': 'sent',
            'main_patient': {
                'id': 'p-1',
                'fullName': 'Jane Doe',
                'nationality': 'DE',
                'dateOfBirth': '1990-04-01',
                'gender': 0,
            },
            'orderItems': [
                {
                    'id': 9001,
                    'test_id': 9,
                    'test': {'id': 9, 'name': 'Whole exome', 'code': 'WES'},
                    'samples': [
                        {
                            'sample_type_id': 3,
                            'sampleType': {'id': 3, 'name': 'EDTA blood'},
                            'patientId': 'p-1',
                            'collectionDate': '2024-03-01',
                            'sampleId': 'BC-100',
                            'barcode': 'BC-100',
                        },
                    ],
                    'patients': [
                        {
                            'id': 'p-1',
                            'fullName': 'Jane Doe',
                            'nationality': 'DE',
                            'dateOfBirth': '1990-04-01',
                            'gender': 0,
                            'is_main': True,
                        },
                    ],
                },
            ],
            'created_at': '2024-03-02T10:00:00Z',
            'updated_at': '2024-03-02T10:00:00Z',
        },
    }
