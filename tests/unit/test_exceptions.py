"""
Unit tests for exception classes and unified_exception_handler.

不需要数据库，纯 Python 测试：
1. BaseAppException 默认值
2. 各子类的默认 type / code / http_status
3. 构造时覆盖 code / http_status
4. unified_exception_handler 把异常转成统一 body
"""
import json

from rest_framework.exceptions import NotAuthenticated, ParseError
from rest_framework.exceptions import ValidationError as DRFValidationError

from laborders.exception_handler import unified_exception_handler
from laborders.exceptions import (
    BaseAppException,
    ConflictError,
    ImportFailedError,
    MaterialNotFoundError,
    NotFoundError,
    ValidationError,
    WebhookRejected,
)


def render(exc):
    response = unified_exception_handler(exc, {})
    return response.status_code, json.loads(response.content)


# -------------------------------------------------------------------
# Exception classes
# -------------------------------------------------------------------

class TestBaseAppException:

    def test_defaults(self):
        exc = BaseAppException('something broke')
        assert exc.message == 'something broke'
        assert exc.type == 'error'
        assert exc.code == 'UNKNOWN_ERROR'
        assert exc.http_status == 500
        assert exc.detail is None

    def test_override_code_and_status(self):
        exc = BaseAppException('bad', code='CUSTOM_CODE', http_status=418)
        assert exc.code == 'CUSTOM_CODE'
        assert exc.http_status == 418


class TestSubclasses:

    def test_validation_error_from_errors(self):
        exc = ValidationError.from_errors({'order.id': 'This field is required.'})
        assert (exc.type, exc.code, exc.http_status) == ('validation_error', 'VALIDATION_ERROR', 422)
        assert exc.detail == {'errors': {'order.id': 'This field is required.'}}

    def test_not_found(self):
        exc = NotFoundError('Order not found', code='ORDER_NOT_FOUND')
        assert (exc.type, exc.code, exc.http_status) == ('not_found', 'ORDER_NOT_FOUND', 404)

    def test_material_not_found_names_barcode(self):
        exc = MaterialNotFoundError('BC-9')
        assert exc.code == 'MATERIAL_NOT_FOUND'
        assert exc.http_status == 404
        assert 'BC-9' in exc.message
        assert exc.detail == {'barcode': 'BC-9'}

    def test_conflict(self):
        exc = ConflictError('ahead', code='STEP_NOT_REACHED')
        assert (exc.type, exc.http_status) == ('block', 409)

    def test_import_failed_and_webhook(self):
        assert ImportFailedError('boom').http_status == 500
        assert WebhookRejected('nope').http_status == 401


# -------------------------------------------------------------------
# unified_exception_handler
# -------------------------------------------------------------------

class TestUnifiedExceptionHandler:

    def test_app_exception_body(self):
        status, body = render(NotFoundError('Order not found', code='ORDER_NOT_FOUND', detail={'order_id': '7'}))
        assert status == 404
        assert body == {
            'type': 'not_found',
            'code': 'ORDER_NOT_FOUND',
            'message': 'Order not found',
            'detail': {'order_id': '7'},
        }

    def test_detail_omitted_when_absent(self):
        status, body = render(ConflictError('blocked'))
        assert status == 409
        assert 'detail' not in body

    def test_drf_validation_error_becomes_422(self):
        status, body = render(DRFValidationError({'barcode': ['required']}))
        assert status == 422
        assert body['type'] == 'validation_error'
        assert body['detail'] == {'errors': {'barcode': ['required']}}

    def test_parse_error_becomes_422(self):
        status, body = render(ParseError('JSON parse error'))
        assert status == 422
        assert body['code'] == 'VALIDATION_ERROR'

    def test_other_drf_exceptions_use_default(self):
        response = unified_exception_handler(NotAuthenticated(), {})
        assert response.status_code == 401

    def test_non_api_exception_is_not_handled(self):
        assert unified_exception_handler(RuntimeError('x'), {}) is None
