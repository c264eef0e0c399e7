"""
Service layer: every write to the order aggregate goes through here.

Views parse requests with the intake adapters and call these functions;
services raise BaseAppException subclasses and never build responses.
"""

from .catalog import upsert_sample_type, upsert_test
from .identity import get_account
from .importer import import_order
from .orders import create_order, create_order_by_barcode, get_order
from .samples import check_material
from .steps import advance

__all__ = [
    'advance',
    'check_material',
    'create_order',
    'create_order_by_barcode',
    'get_account',
    'get_order',
    'import_order',
    'upsert_sample_type',
    'upsert_test',
]
