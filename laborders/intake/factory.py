"""
Factory: map a workflow step to its adapter.

Adding a step means:
  1. a payload dataclass in types.py
  2. an adapter class in adapters.py
  3. one line in the registry below
"""

from typing import Any

from ..enums import OrderStep
from ..exceptions import NotFoundError
from .base import BaseIntakeAdapter


def _build_registry() -> dict[OrderStep, type[BaseIntakeAdapter]]:
    # Imported lazily to avoid a circular import through adapters → types.
    from .adapters import (
        ClinicalDetailsAdapter,
        ConsentFormAdapter,
        FinalizeAdapter,
        PatientDetailsAdapter,
        PatientTestAssignmentAdapter,
        SampleDetailsAdapter,
        TestMethodAdapter,
    )

    return {
        OrderStep.TEST_METHOD: TestMethodAdapter,
        OrderStep.PATIENT_DETAILS: PatientDetailsAdapter,
        OrderStep.PATIENT_TEST_ASSIGNMENT: PatientTestAssignmentAdapter,
        OrderStep.CLINICAL_DETAILS: ClinicalDetailsAdapter,
        OrderStep.SAMPLE_DETAILS: SampleDetailsAdapter,
        OrderStep.CONSENT_FORM: ConsentFormAdapter,
        OrderStep.FINALIZE: FinalizeAdapter,
    }


def resolve_step(value: Any) -> OrderStep:
    """
    Accept the stored value ("sample details") or its URL slug ("sample-details").

    Raises:
        NotFoundError: unknown step
    """
    if isinstance(value, OrderStep):
        return value
    normalized = str(value or '').strip().replace('-', ' ').replace('_', ' ').lower()
    try:
        return OrderStep(normalized)
    except ValueError:
        raise NotFoundError(
            message=f'Unknown order step: {value!r}.',
            code='STEP_NOT_FOUND',
            detail={'known_steps': list(OrderStep.values)},
        )


def get_adapter(step: Any, data: Any, files: Any = None) -> BaseIntakeAdapter:
    """
    Return an instantiated adapter for the step.

    Args:
        step:  OrderStep, stored value or URL slug
        data:  parsed request body (dict / QueryDict) or raw JSON bytes
        files: multipart uploads (request.FILES), if any
    """
    step = resolve_step(step)
    adapter_cls = _build_registry()[step]
    return adapter_cls(data=data, files=files)
