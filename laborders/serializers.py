"""
Response serializers: ORM objects → JSON-able dicts.

Output formatting only. Request parsing and validation live in the
laborders/intake adapters.
"""


def _date(value):
    return value.isoformat() if value else None


def serialize_patient(patient):
    if patient is None:
        return None
    return {
        'id': patient.id,
        'server_id': patient.server_id,
        'fullName': patient.full_name,
        'nationality': patient.nationality,
        'dateOfBirth': _date(patient.date_of_birth),
        'gender': patient.gender,
        'consanguineousParents': patient.consanguineous_parents,
        'isFetus': patient.is_fetus,
        'reference_id': patient.reference_id,
        'id_no': patient.id_no,
        'relations': [
            {
                'related_patient_id': relation.related_patient_id,
                'relation_type': relation.relation_type,
                'notes': relation.notes,
            }
            for relation in patient.relations.all()
        ],
    }


def serialize_sample(sample):
    return {
        'id': sample.id,
        'sampleId': sample.sample_id,
        'sample_type': {'id': sample.sample_type_id, 'name': sample.sample_type.name},
        'material': (
            {'id': sample.material_id, 'barcode': sample.material.barcode}
            if sample.material_id else None
        ),
        'patient_id': sample.patient_id,
        'collectionDate': _date(sample.collection_date),
    }


def serialize_order_item(item):
    return {
        'id': item.id,
        'server_id': item.server_id,
        'test': {
            'id': item.test_id,
            'code': item.test.code,
            'name': item.test.name,
            'is_placeholder': item.test.is_placeholder,
        },
        'patients': [
            {'id': link.patient_id, 'fullName': link.patient.full_name, 'is_main': link.is_main}
            for link in item.patient_links.select_related('patient').order_by('id')
        ],
        'samples': [
            serialize_sample(sample)
            for sample in item.samples.select_related('sample_type', 'material').order_by('id')
        ],
    }


def serialize_order_summary(order):
    """Serialize the whole order aggregate for the detail / step responses."""
    return {
        'id': order.id,
        'order_id': order.order_id,
        'server_id': order.server_id,
        'step': order.step,
        'status': order.status,
        'main_patient': serialize_patient(order.main_patient),
        'patients': [serialize_patient(patient) for patient in order.patients.order_by('id')],
        'order_items': [
            serialize_order_item(item)
            for item in order.order_items.select_related('test').order_by('id')
        ],
        'orderForms': order.order_forms or [],
        'consents': order.consents or {},
        'files': order.files or [],
        'created_at': order.created_at.isoformat(),
        'updated_at': order.updated_at.isoformat(),
    }


def serialize_material(material):
    return {
        'id': material.id,
        'barcode': material.barcode,
        'sample_type': {'id': material.sample_type_id, 'name': material.sample_type.name},
        'expire_date': _date(material.expire_date),
    }


def serialize_import_result(result):
    return {
        'order_id': result.order_id,
        'order_items_count': result.order_items_count,
        'samples_count': result.samples_count,
    }


def serialize_catalog_entry(entry):
    """SampleType or Test after a catalog sync."""
    return {
        'id': entry.id,
        'server_id': entry.server_id,
        'name': entry.name,
        'is_placeholder': entry.is_placeholder,
    }
