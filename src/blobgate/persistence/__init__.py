"""Blobgate Persistence Module.

Provides tag index database connectivity, pagination cursors, and migration
support.
"""

from blobgate.persistence.cursor import QueryCursor, decode_cursor, encode_cursor
from blobgate.persistence.db import begin_conn, create_index_engine, get_database_url

__all__ = [
    "QueryCursor",
    "begin_conn",
    "create_index_engine",
    "decode_cursor",
    "encode_cursor",
    "get_database_url",
]
