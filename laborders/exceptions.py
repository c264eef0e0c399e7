"""
Unified exception hierarchy.

Every business exception derives from BaseAppException and carries:
- type:        error family (validation_error / not_found / block / error)
- code:        machine-readable code (MATERIAL_NOT_FOUND / STEP_NOT_REACHED / ...)
- message:     human-readable description
- detail:      optional extra payload (dict / list / None)
- http_status: HTTP status code

Services and views only raise; exception_handler renders the response.
"""


class BaseAppException(Exception):
    """Base class for all business exceptions."""

    type = 'error'
    code = 'UNKNOWN_ERROR'
    http_status = 500

    def __init__(self, message, code=None, detail=None, http_status=None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)


class ValidationError(BaseAppException):
    """
    Malformed or incomplete payload. Raised by intake adapters, 422.

    detail is {"errors": {"<field path>": "<message>"}}.
    """

    type = 'validation_error'
    code = 'VALIDATION_ERROR'
    http_status = 422

    @classmethod
    def from_errors(cls, errors, message='Request validation failed.'):
        return cls(message=message, detail={'errors': dict(errors)})


class NotFoundError(BaseAppException):
    """An order or a referenced sub-entity does not exist, 404."""

    type = 'not_found'
    code = 'NOT_FOUND'
    http_status = 404


class MaterialNotFoundError(NotFoundError):
    """A barcode-required sample whose barcode resolves to no Material."""

    code = 'MATERIAL_NOT_FOUND'

    def __init__(self, barcode, message=None):
        self.barcode = barcode
        super().__init__(
            message or f"There isn't any material with barcode {barcode!r}.",
            detail={'barcode': barcode},
        )


class ConflictError(BaseAppException):
    """A business rule blocks the operation, 409."""

    type = 'block'
    code = 'BUSINESS_BLOCK'
    http_status = 409


class ImportFailedError(BaseAppException):
    """Unexpected failure while importing an order from the system of record."""

    type = 'error'
    code = 'IMPORT_FAILED'
    http_status = 500


class WebhookRejected(BaseAppException):
    type = 'block'
    code = 'WEBHOOK_REJECTED'
    http_status = 401
