import logging
import time
import uuid
from typing import Any, Dict, List, Optional

import httpx

from config import settings
from circulation.errors import StorageError, ValidationError
from circulation.services.store import COLUMNS, OPERATORS, DataStoreClient

logger = logging.getLogger(__name__)

ISSUANCE_EMBED = (
    "id,member_id,book_id,issue_date,due_date,return_date,"
    "member:members(id,name,email,phone),"
    "book:books(id,title,author,isbn,quantity,available_quantity)"
)


def _filter_params(table: str, filters: Optional[Dict[str, Any]]) -> List[tuple]:
    """Filtre sözlüğünü PostgREST sorgu parametrelerine çevir (col=eq.değer)."""
    params: List[tuple] = []
    for column, value in (filters or {}).items():
        if column not in COLUMNS[table]:
            raise ValidationError(f"Unknown column for {table}: {column}")
        if value is None:
            params.append((column, "is.null"))
        elif isinstance(value, tuple):
            op, operand = value
            if op not in OPERATORS:
                raise ValidationError(f"Unknown filter operator: {op}")
            if op == "in":
                operand = "(" + ",".join(str(v) for v in operand) + ")"
            params.append((column, f"{op}.{operand}"))
        else:
            params.append((column, f"eq.{value}"))
    return params


class RestDataStore(DataStoreClient):
    """Barındırılan, PostgREST uyumlu bir depo için HTTP istemcisi.

    Her tablo ``/rest/v1/<tablo>`` altında sunulur. Koşullu güncellemeler
    PATCH isteğine ek filtreler olarak gönderilir; eşleşen satır yoksa
    sunucu boş bir liste döndürür.
    """

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 timeout: Optional[float] = None, transport: Optional[httpx.BaseTransport] = None,
                 read_retries: int = 3, backoff: float = 0.5) -> None:
        base_url = base_url or settings.rest_url
        if not base_url:
            raise ValidationError("REST_URL is not configured.")
        api_key = api_key or settings.rest_api_key or ""
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        # Bağlantı limitleri ve zaman aşımı yapılandırması
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20, keepalive_expiry=30.0)
        request_timeout = timeout if timeout is not None else settings.rest_timeout
        self.read_retries = max(1, read_retries)
        self.backoff = backoff
        self._client = httpx.Client(
            base_url=base_url.rstrip("/") + "/rest/v1",
            headers=headers,
            limits=limits,
            timeout=httpx.Timeout(request_timeout, connect=5.0),
            follow_redirects=True,
            transport=transport,
        )

    # ------------------------- İstek yardımcıları ------------------------- #
    def _send(self, method: str, table: str, **kwargs) -> Any:
        try:
            response = self._client.request(method, f"/{table}", **kwargs)
        except httpx.RequestError as e:
            logger.error(f"{method} /{table} failed: {e}")
            raise StorageError(f"Data store unreachable: {e}") from e
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            # Vekil sunucular nesne olmayan gövdeler döndürebilir
            message = (body.get("message") if isinstance(body, dict) else None) or response.text
            logger.error(f"{method} /{table} returned {response.status_code}: {message}")
            raise StorageError(f"Data store error ({response.status_code}): {message}")
        if not response.content:
            return []
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{method} /{table} returned a non-JSON body")
            raise StorageError(f"Data store returned an unreadable response: {e}") from e

    def _get_with_retry(self, table: str, params: List[tuple]) -> Any:
        """Üstel geri çekilme ile okuma; yazmalar asla yeniden denenmez."""
        for attempt in range(self.read_retries):
            try:
                return self._send("GET", table, params=params)
            except StorageError as e:
                if not isinstance(e.__cause__, httpx.RequestError) or attempt == self.read_retries - 1:
                    raise
                time.sleep(self.backoff * (2 ** attempt))

    # ------------------------- Sözleşme ------------------------- #
    def select(self, table, filters=None, order=None, descending=False):
        if table not in COLUMNS:
            raise ValidationError(f"Unknown table: {table}")
        params = [("select", ",".join(COLUMNS[table]))] + _filter_params(table, filters)
        if order:
            params.append(("order", f"{order}.{'desc' if descending else 'asc'}"))
        return self._get_with_retry(table, params)

    def select_issuances(self, filters=None, order=None, descending=False):
        params = [("select", ISSUANCE_EMBED)] + _filter_params("issuances", filters)
        if order:
            params.append(("order", f"{order}.{'desc' if descending else 'asc'}"))
        return self._get_with_retry("issuances", params)

    def insert(self, table, row):
        if table not in COLUMNS:
            raise ValidationError(f"Unknown table: {table}")
        row = dict(row)
        row.setdefault("id", str(uuid.uuid4()))
        rows = self._send("POST", table, json=[row], headers={"Prefer": "return=representation"})
        if not rows:
            raise StorageError(f"Data store did not return the inserted {table[:-1]}.")
        return rows[0]

    def update(self, table, row_id, patch, expected=None):
        if table not in COLUMNS:
            raise ValidationError(f"Unknown table: {table}")
        if not patch:
            raise ValidationError("Nothing to update.")
        params = _filter_params(table, {"id": row_id, **(expected or {})})
        rows = self._send(
            "PATCH", table, params=params, json=patch,
            headers={"Prefer": "return=representation"},
        )
        return rows[0] if rows else None

    def close(self) -> None:
        """HTTP istemcisini kapat"""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
