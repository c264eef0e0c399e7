"""
HTTP layer: thin DRF views.

Views read the request, hand it to an intake adapter, call one service and
serialize the result. They never catch business exceptions; the unified
exception handler renders them.
"""

import hmac
import logging

from django.conf import settings
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import ValidationError, WebhookRejected
from .intake import get_adapter, resolve_step
from .intake.adapters import MaterialCheckAdapter, OrderImportAdapter, TestMethodAdapter
from .serializers import (
    serialize_catalog_entry,
    serialize_import_result,
    serialize_material,
    serialize_order_summary,
)
from .services import (
    advance,
    check_material,
    create_order,
    create_order_by_barcode,
    get_account,
    get_order,
    import_order,
    upsert_sample_type,
    upsert_test,
)

logger = logging.getLogger(__name__)

ACCOUNT_HEADER = 'HTTP_X_ACCOUNT_ID'
WEBHOOK_TOKEN_HEADER = 'HTTP_X_WEBHOOK_TOKEN'


class ActorView(APIView):
    """Base for operator endpoints; the acting account comes from X-Account-Id."""

    def actor(self, request):
        return get_account(request.META.get(ACCOUNT_HEADER))


class WebhookView(APIView):
    """Base for system-of-record webhooks, gated by X-Webhook-Token."""

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        expected = settings.WEBHOOK_TOKEN
        if not expected:
            return
        supplied = request.META.get(WEBHOOK_TOKEN_HEADER, '')
        if not hmac.compare_digest(str(supplied).encode(), str(expected).encode()):
            logger.warning('Webhook token rejected path=%s', request.path)
            raise WebhookRejected(message='Invalid webhook token.')


# ── Operator endpoints ─────────────────────────────────────────────────────

class OrderCreateView(ActorView):
    """POST /api/orders/ - create an order for the selected tests"""

    def post(self, request):
        actor = self.actor(request)
        payload = TestMethodAdapter(data=request.data).process()
        order = create_order(actor, payload.test_ids)
        return Response(serialize_order_summary(order), status=status.HTTP_201_CREATED)


class OrderByBarcodeView(ActorView):
    """POST /api/orders/by-barcode/ - start an order from a material barcode"""

    def post(self, request):
        actor = self.actor(request)
        barcode = str(request.data.get('barcode') or '').strip()
        if not barcode:
            raise ValidationError.from_errors({'barcode': 'This field is required.'})
        order = create_order_by_barcode(actor, barcode)
        return Response(serialize_order_summary(order), status=status.HTTP_201_CREATED)


class OrderDetailView(ActorView):
    """GET /api/orders/<order_id>/ - order summary"""

    def get(self, request, order_id):
        order = get_order(order_id, actor=self.actor(request))
        return Response(serialize_order_summary(order))


class OrderStepView(ActorView):
    """PUT|POST /api/orders/<order_id>/steps/<step>/ - apply one workflow step"""

    def put(self, request, order_id, step):
        actor = self.actor(request)
        order = get_order(order_id, actor=actor)
        step = resolve_step(step)
        payload = get_adapter(step, request.data, request.FILES).process()
        order = advance(order, step, payload, actor)
        return Response(serialize_order_summary(order))

    def post(self, request, order_id, step):
        return self.put(request, order_id, step)


class MaterialCheckView(ActorView):
    """GET /api/materials/check/?sampleId=<barcode>&id=<sample id> - can this barcode be used?"""

    def get(self, request):
        actor = self.actor(request)
        query = MaterialCheckAdapter(data=request.query_params).process()
        material = check_material(actor, query.barcode, sample_pk=query.sample_id)
        return Response(serialize_material(material))


# ── Webhooks ───────────────────────────────────────────────────────────────

class OrderImportWebhookView(WebhookView):
    """POST /api/webhooks/orders/import/ - import an order from the system of record"""

    def post(self, request):
        payload = OrderImportAdapter(data=request.data).process()
        result = import_order(payload)
        return Response(serialize_import_result(result), status=status.HTTP_200_OK)


class SampleTypeWebhookView(WebhookView):
    """POST /api/webhooks/sample-types/<server_id>/"""

    def post(self, request, server_id):
        sample_type = upsert_sample_type(server_id, request.data)
        return Response(serialize_catalog_entry(sample_type))


class TestWebhookView(WebhookView):
    """POST /api/webhooks/tests/<server_id>/"""

    def post(self, request, server_id):
        test = upsert_test(server_id, request.data)
        return Response(serialize_catalog_entry(test))
