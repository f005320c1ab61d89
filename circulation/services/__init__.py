"""Circulation - Services Package

This package contains the data store clients and auxiliary services:
- Data store contract and local SQLite store (store.py)
- Hosted PostgREST-style store over HTTP (http_client.py)
- Client log relay (log_relay.py)
"""

from typing import Optional

from config import settings
from circulation.services.store import DataStoreClient, SQLiteDataStore


def get_data_store(kind: Optional[str] = None, db_file: Optional[str] = None) -> DataStoreClient:
    """Ayarlara göre yapılandırılmış veri deposu istemcisini oluştur."""
    kind = (kind or settings.data_store).lower()
    if kind == "rest":
        from circulation.services.http_client import RestDataStore
        return RestDataStore()
    return SQLiteDataStore(db_file=db_file or settings.database_file)
