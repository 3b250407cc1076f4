from .core import get_db_connection, initialize_database
from .transaction_helpers import immediate_transaction

__all__ = [
    'get_db_connection',
    'initialize_database',
    'immediate_transaction',
]
