"""
Form set reconciliation for an order's test selection.

Forms attached to an order are copies of OrderForm templates (see
OrderForm.as_attachment) stored in Order.order_forms. Reconciling keeps the
copies already on the order, so values filled in earlier survive a test
selection change.
"""

from ..models import OrderForm


def forms_for_tests(test_ids):
    return OrderForm.objects.filter(tests__id__in=list(test_ids)).distinct().order_by('id')


def reconcile_forms(current_forms, previous_test_ids, new_test_ids):
    """
    Compute the attached form list after a test selection change.

    - added tests:   their templates are prepended, skipping ids already attached
    - removed tests: their templates are dropped unless a remaining test
                     still needs them

    With no previous selection (current_forms is None) the full set for
    new_test_ids is returned.
    """
    new_ids = set(new_test_ids)
    if current_forms is None:
        return [form.as_attachment() for form in forms_for_tests(new_ids)]

    previous_ids = set(previous_test_ids or [])
    added = new_ids - previous_ids
    removed = previous_ids - new_ids
    forms = list(current_forms)

    if added:
        attached = {form.get('id') for form in forms}
        fresh = [form.as_attachment() for form in forms_for_tests(added) if form.id not in attached]
        forms = fresh + forms

    if removed:
        still_required = set(forms_for_tests(new_ids).values_list('id', flat=True))
        stale = set(forms_for_tests(removed).values_list('id', flat=True)) - still_required
        forms = [form for form in forms if form.get('id') not in stale]

    return forms


def apply_form_values(attached_forms, submitted_forms):
    """
    Copy field values from submitted forms onto the attached copies.

    Forms are matched by id and fields by position; only "value" is taken
    from the submission, so field definitions cannot be rewritten by a client.
    """
    submitted = {
        form.get('id'): form.get('formData') or []
        for form in submitted_forms or []
        if isinstance(form, dict)
    }
    result = []
    for form in attached_forms:
        fields = submitted.get(form.get('id'))
        if fields is None:
            result.append(form)
            continue
        merged = []
        for index, field in enumerate(form.get('formData') or []):
            field = dict(field)
            if index < len(fields) and isinstance(fields[index], dict) and 'value' in fields[index]:
                field['value'] = fields[index]['value']
            merged.append(field)
        result.append({**form, 'formData': merged})
    return result
