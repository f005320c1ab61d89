import logging
import sqlite3
import uuid
from typing import Any, Dict, List, Optional, Tuple

import database
from circulation.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

# Tablo başına izin verilen sütunlar; sorgularda yalnızca bunlar kullanılır
COLUMNS: Dict[str, Tuple[str, ...]] = {
    "members": ("id", "name", "email", "phone", "created_at"),
    "books": ("id", "title", "author", "isbn", "quantity", "available_quantity", "created_at"),
    "issuances": ("id", "member_id", "book_id", "issue_date", "due_date", "return_date"),
}

# Filtre değerleri: düz değer -> eşitlik, None -> IS NULL, (op, değer) -> karşılaştırma
OPERATORS = {"eq": "=", "neq": "!=", "gt": ">", "gte": ">=", "lt": "<", "lte": "<=", "in": "IN"}


class DataStoreClient:
    """Tablo başına select/insert/update sunan uzak ilişkisel depo sözleşmesi.

    İşlem/toplu yazma ilkeli yoktur. Tek atomik araç, ``update`` çağrısının
    ``expected`` ön koşuludur: satır hâlâ beklenen değerlere sahipse yazılır,
    değilse hiçbir şey değişmez ve ``None`` döner.
    """

    def select(self, table: str, filters: Optional[Dict[str, Any]] = None,
               order: Optional[str] = None, descending: bool = False) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def update(self, table: str, row_id: str, patch: Dict[str, Any],
               expected: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def get(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        rows = self.select(table, {"id": row_id})
        return rows[0] if rows else None

    def select_issuances(self, filters: Optional[Dict[str, Any]] = None,
                         order: Optional[str] = None, descending: bool = False) -> List[Dict[str, Any]]:
        """Üye ve kitap nesneleri iç içe eklenmiş ödünç satırları.

        Yerel depo birleştirmeyi yabancı anahtara göre bellekte yapar;
        uzak depolar bunu tek sorguda yapabilir.
        """
        rows = self.select("issuances", filters, order, descending)
        if not rows:
            return []
        member_ids = sorted({row["member_id"] for row in rows})
        book_ids = sorted({row["book_id"] for row in rows})
        members = {m["id"]: m for m in self.select("members", {"id": ("in", member_ids)})}
        books = {b["id"]: b for b in self.select("books", {"id": ("in", book_ids)})}
        joined = []
        for row in rows:
            item = dict(row)
            item["member"] = members.get(row["member_id"])
            item["book"] = books.get(row["book_id"])
            joined.append(item)
        return joined

    def close(self) -> None:
        pass


def _check_table(table: str) -> Tuple[str, ...]:
    try:
        return COLUMNS[table]
    except KeyError:
        raise ValidationError(f"Unknown table: {table}") from None


def _check_columns(table: str, names) -> None:
    allowed = _check_table(table)
    for name in names:
        if name not in allowed:
            raise ValidationError(f"Unknown column for {table}: {name}")


def _where_clause(table: str, conditions: Dict[str, Any]) -> Tuple[str, List[Any]]:
    _check_columns(table, conditions.keys())
    parts: List[str] = []
    params: List[Any] = []
    for column, value in conditions.items():
        if value is None:
            parts.append(f"{column} IS NULL")
        elif isinstance(value, tuple):
            op, operand = value
            if op not in OPERATORS:
                raise ValidationError(f"Unknown filter operator: {op}")
            if op == "in":
                values = list(operand)
                if not values:
                    parts.append("0 = 1")
                    continue
                parts.append(f"{column} IN ({', '.join('?' for _ in values)})")
                params.extend(values)
                continue
            parts.append(f"{column} {OPERATORS[op]} ?")
            params.append(operand)
        else:
            parts.append(f"{column} = ?")
            params.append(value)
    return " AND ".join(parts), params


class SQLiteDataStore(DataStoreClient):
    """Yerel SQLite dosyası üzerinde veri deposu istemcisi."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file or database.DATABASE_FILE
        try:
            database.initialize_database(self.db_file)
        except sqlite3.Error as e:
            raise StorageError(f"Could not initialise database: {e}") from e

    def select(self, table, filters=None, order=None, descending=False):
        columns = _check_table(table)
        sql = f"SELECT {', '.join(columns)} FROM {table}"
        params: List[Any] = []
        if filters:
            clause, params = _where_clause(table, filters)
            sql += f" WHERE {clause}"
        if order:
            _check_columns(table, [order])
            sql += f" ORDER BY {order} {'DESC' if descending else 'ASC'}"
        conn = database.get_db_connection(self.db_file)
        try:
            rows = conn.execute(sql, params).fetchall()
            return [dict(row) for row in rows]
        except sqlite3.Error as e:
            logger.error(f"Select on {table} failed: {e}")
            raise StorageError(f"Failed to read {table}.") from e
        finally:
            conn.close()

    def insert(self, table, row):
        row = dict(row)
        row.setdefault("id", str(uuid.uuid4()))
        row.pop("created_at", None)
        _check_columns(table, row.keys())
        names = list(row.keys())
        placeholders = ", ".join("?" for _ in names)
        conn = database.get_db_connection(self.db_file)
        try:
            conn.execute(
                f"INSERT INTO {table} ({', '.join(names)}) VALUES ({placeholders})",
                [row[name] for name in names],
            )
            conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Insert into {table} failed: {e}")
            raise StorageError(f"Failed to save {table[:-1]}.") from e
        finally:
            conn.close()
        return self.get(table, row["id"])

    def update(self, table, row_id, patch, expected=None):
        if not patch:
            raise ValidationError("Nothing to update.")
        patch = {k: v for k, v in patch.items() if k != "id"}
        _check_columns(table, patch.keys())
        set_clause = ", ".join(f"{name} = ?" for name in patch.keys())
        params: List[Any] = list(patch.values())
        where, where_params = _where_clause(table, {"id": row_id, **(expected or {})})
        conn = database.get_db_connection(self.db_file)
        try:
            cursor = conn.execute(f"UPDATE {table} SET {set_clause} WHERE {where}", params + where_params)
            conn.commit()
            changed = cursor.rowcount
        except sqlite3.Error as e:
            logger.error(f"Update on {table} ({row_id}) failed: {e}")
            raise StorageError(f"Failed to update {table[:-1]}.") from e
        finally:
            conn.close()
        if changed == 0:
            return None
        return self.get(table, row_id)
