"""
Order file storage.

Uploads are written through Django's default storage; the order keeps only
the returned paths. A failed write raises, so a step never reports success
with an upload missing.
"""

import logging
import os
import uuid

from django.conf import settings
from django.core.files.storage import default_storage

logger = logging.getLogger(__name__)


def order_folder(order, key):
    return f'{settings.ORDER_FILES_ROOT}/{order.id}/{key}/'


def store_uploads(order, uploads, key):
    """Persist uploaded files for an order and return their storage paths."""
    folder = order_folder(order, key)
    paths = []
    for upload in uploads:
        extension = os.path.splitext(getattr(upload, 'name', '') or '')[1]
        path = default_storage.save(f'{folder}{uuid.uuid4()}{extension}', upload)
        logger.info('Stored upload order_id=%s path=%s', order.id, path)
        paths.append(path)
    return paths


def merge_files(order, entries, key):
    """Keep already-stored paths (str entries) and append freshly stored uploads."""
    kept = [entry for entry in entries if isinstance(entry, str)]
    uploads = [entry for entry in entries if not isinstance(entry, str)]
    return kept + store_uploads(order, uploads, key)
