"""Document storage backends for users, cost entries and monthly totals."""

from __future__ import annotations

import copy
import json
import logging
import re
import sqlite3
import threading
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol

from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo import errors as mongo_errors

from spendlog.models import COSTS, MONTHLY_TOTALS, USERS
from spendlog.validation import SpendlogError

if TYPE_CHECKING:
    from spendlog.config import Settings


logger = logging.getLogger("spendlog.storage")

# Field that must be unique within a collection
UNIQUE_KEYS: Dict[str, str] = {USERS: "id"}

_RANGE_OPS = {"$gte": ">=", "$gt": ">", "$lte": "<=", "$lt": "<"}
_FIELD_PATH = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")


class StorageError(SpendlogError):
    """Raised when the underlying store fails."""
    pass


class DuplicateKeyError(StorageError):
    """Raised when an insert violates a unique key."""
    pass


class DocumentStore(Protocol):
    """Document store interface.

    Filters match on field equality, or on a dict of range operators
    ($gte, $gt, $lte, $lt). Updates support $inc, $set and $push with
    dotted field paths.
    """

    def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    def find(self, collection: str, filter: Dict[str, Any]) -> List[Dict[str, Any]]:
        ...

    def upsert(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Atomically update the first match, creating it if missing. Returns the updated document."""
        ...

    def sum_field(self, collection: str, filter: Dict[str, Any], field: str) -> float:
        """Sum a numeric field over all matches. 0 when nothing matches."""
        ...

    def delete_one(self, collection: str, filter: Dict[str, Any]) -> bool:
        """Delete the first match. Returns True if a document was removed."""
        ...

    def close(self) -> None:
        ...


# =========================================================================
# Document helpers
# =========================================================================

def _check_path(path: str) -> str:
    if not _FIELD_PATH.match(path):
        raise StorageError(f"Invalid field path: {path!r}")
    return path


def _get_path(doc: Dict[str, Any], path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def _set_path(doc: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def _matches(doc: Dict[str, Any], filter: Dict[str, Any]) -> bool:
    for path, condition in filter.items():
        value = _get_path(doc, path)
        if isinstance(condition, dict):
            for op, bound in condition.items():
                if op not in _RANGE_OPS:
                    raise StorageError(f"Unsupported filter operator: {op}")
                if value is None:
                    return False
                if op == "$gte" and not value >= bound:
                    return False
                if op == "$gt" and not value > bound:
                    return False
                if op == "$lte" and not value <= bound:
                    return False
                if op == "$lt" and not value < bound:
                    return False
        elif value != condition:
            return False
    return True


def _apply_update(doc: Dict[str, Any], update: Dict[str, Any]) -> None:
    for op, fields in update.items():
        for path, value in fields.items():
            _check_path(path)
            if op == "$inc":
                _set_path(doc, path, (_get_path(doc, path) or 0) + value)
            elif op == "$set":
                _set_path(doc, path, copy.deepcopy(value))
            elif op == "$push":
                current = _get_path(doc, path)
                _set_path(doc, path, (current or []) + [copy.deepcopy(value)])
            else:
                raise StorageError(f"Unsupported update operator: {op}")


def _seed_from_filter(filter: Dict[str, Any]) -> Dict[str, Any]:
    """Equality conditions become fields of a document created by upsert."""
    doc: Dict[str, Any] = {}
    for path, condition in filter.items():
        if not isinstance(condition, dict):
            _set_path(doc, path, condition)
    return doc


# =========================================================================
# In-memory backend
# =========================================================================

class InMemoryStore:
    """In-memory storage backend (default)."""

    def __init__(self):
        self._collections: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def _collection(self, name: str) -> List[Dict[str, Any]]:
        return self._collections.setdefault(name, [])

    def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            docs = self._collection(collection)
            key = UNIQUE_KEYS.get(collection)
            if key is not None and any(d.get(key) == document.get(key) for d in docs):
                raise DuplicateKeyError(f"Duplicate {key} in {collection}: {document.get(key)}")
            docs.append(copy.deepcopy(document))
        return copy.deepcopy(document)

    def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            for doc in self._collection(collection):
                if _matches(doc, filter):
                    return copy.deepcopy(doc)
        return None

    def find(self, collection: str, filter: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(d) for d in self._collection(collection) if _matches(d, filter)]

    def upsert(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            docs = self._collection(collection)
            for index, doc in enumerate(docs):
                if _matches(doc, filter):
                    updated = copy.deepcopy(doc)
                    _apply_update(updated, update)
                    docs[index] = updated
                    return copy.deepcopy(updated)
            doc = _seed_from_filter(filter)
            _apply_update(doc, update)
            docs.append(doc)
            return copy.deepcopy(doc)

    def sum_field(self, collection: str, filter: Dict[str, Any], field: str) -> float:
        with self._lock:
            return sum(
                _get_path(d, field) or 0
                for d in self._collection(collection)
                if _matches(d, filter)
            )

    def delete_one(self, collection: str, filter: Dict[str, Any]) -> bool:
        with self._lock:
            docs = self._collection(collection)
            for index, doc in enumerate(docs):
                if _matches(doc, filter):
                    del docs[index]
                    return True
        return False

    def close(self) -> None:
        pass


# =========================================================================
# SQLite backend
# =========================================================================

class SQLiteStore:
    """SQLite-backed storage. Documents are stored as JSON text."""

    def __init__(self, db_path: str = "spendlog.db"):
        try:
            # Autocommit mode; upsert opens its own transaction
            self._conn = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._init_schema()
        except sqlite3.Error as exc:
            raise StorageError(f"Could not open SQLite store at {db_path}: {exc}") from exc
        self._lock = threading.Lock()
        logger.info(f"Opened SQLite store at {db_path}")

    def _init_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                doc_id INTEGER PRIMARY KEY AUTOINCREMENT,
                collection TEXT NOT NULL,
                body TEXT NOT NULL
            )
            """
        )
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)")
        self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_costs_user_date "
            "ON documents(json_extract(body, '$.userid'), json_extract(body, '$.date')) "
            f"WHERE collection = '{COSTS}'"
        )
        for collection, key in UNIQUE_KEYS.items():
            self._conn.execute(
                f"CREATE UNIQUE INDEX IF NOT EXISTS idx_{collection}_{key} "
                f"ON documents(json_extract(body, '$.{key}')) WHERE collection = '{collection}'"
            )

    def _where(self, collection: str, filter: Dict[str, Any]) -> tuple[str, list]:
        clauses = ["collection = ?"]
        params: list = [collection]
        for path, condition in filter.items():
            column = f"json_extract(body, '$.{_check_path(path)}')"
            if isinstance(condition, dict):
                for op, bound in condition.items():
                    if op not in _RANGE_OPS:
                        raise StorageError(f"Unsupported filter operator: {op}")
                    clauses.append(f"{column} {_RANGE_OPS[op]} ?")
                    params.append(bound)
            elif condition is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(condition)
        return " AND ".join(clauses), params

    def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        try:
            with self._lock:
                self._conn.execute(
                    "INSERT INTO documents (collection, body) VALUES (?, ?)",
                    (collection, json.dumps(document)),
                )
        except sqlite3.IntegrityError as exc:
            raise DuplicateKeyError(f"Duplicate key in {collection}: {exc}") from exc
        except sqlite3.Error as exc:
            raise StorageError(f"Insert into {collection} failed: {exc}") from exc
        return copy.deepcopy(document)

    def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        where, params = self._where(collection, filter)
        try:
            with self._lock:
                row = self._conn.execute(
                    f"SELECT body FROM documents WHERE {where} ORDER BY doc_id LIMIT 1",
                    params,
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Query on {collection} failed: {exc}") from exc
        if not row:
            return None
        return json.loads(row["body"])

    def find(self, collection: str, filter: Dict[str, Any]) -> List[Dict[str, Any]]:
        where, params = self._where(collection, filter)
        try:
            with self._lock:
                rows = self._conn.execute(
                    f"SELECT body FROM documents WHERE {where} ORDER BY doc_id",
                    params,
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Query on {collection} failed: {exc}") from exc
        return [json.loads(row["body"]) for row in rows]

    def upsert(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        where, params = self._where(collection, filter)
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
                row = self._conn.execute(
                    f"SELECT doc_id, body FROM documents WHERE {where} ORDER BY doc_id LIMIT 1",
                    params,
                ).fetchone()
                if row:
                    doc = json.loads(row["body"])
                    _apply_update(doc, update)
                    self._conn.execute(
                        "UPDATE documents SET body = ? WHERE doc_id = ?",
                        (json.dumps(doc), row["doc_id"]),
                    )
                else:
                    doc = _seed_from_filter(filter)
                    _apply_update(doc, update)
                    self._conn.execute(
                        "INSERT INTO documents (collection, body) VALUES (?, ?)",
                        (collection, json.dumps(doc)),
                    )
                self._conn.execute("COMMIT")
            except sqlite3.Error as exc:
                self._rollback()
                raise StorageError(f"Upsert on {collection} failed: {exc}") from exc
            except StorageError:
                self._rollback()
                raise
        return doc

    def _rollback(self) -> None:
        if self._conn.in_transaction:
            self._conn.execute("ROLLBACK")

    def sum_field(self, collection: str, filter: Dict[str, Any], field: str) -> float:
        where, params = self._where(collection, filter)
        try:
            with self._lock:
                row = self._conn.execute(
                    f"SELECT COALESCE(SUM(json_extract(body, '$.{_check_path(field)}')), 0) AS total "
                    f"FROM documents WHERE {where}",
                    params,
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Aggregation on {collection} failed: {exc}") from exc
        return row["total"]

    def delete_one(self, collection: str, filter: Dict[str, Any]) -> bool:
        where, params = self._where(collection, filter)
        try:
            with self._lock:
                cursor = self._conn.execute(
                    "DELETE FROM documents WHERE doc_id = "
                    f"(SELECT doc_id FROM documents WHERE {where} ORDER BY doc_id LIMIT 1)",
                    params,
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Delete from {collection} failed: {exc}") from exc
        return cursor.rowcount > 0

    def close(self) -> None:
        self._conn.close()


# =========================================================================
# MongoDB backend
# =========================================================================

class MongoStore:
    """MongoDB-backed storage via pymongo."""

    def __init__(
        self,
        uri: str = "mongodb://localhost:27017",
        db_name: str = "spendlog",
        client: Optional[MongoClient] = None,
    ):
        self._client = client if client is not None else MongoClient(uri)
        self._db = self._client[db_name]
        try:
            self._db[USERS].create_index([("id", ASCENDING)], unique=True)
            self._db[COSTS].create_index([("userid", ASCENDING), ("date", ASCENDING)])
            self._db[MONTHLY_TOTALS].create_index(
                [("userid", ASCENDING), ("year", ASCENDING), ("month", ASCENDING)],
                unique=True,
            )
        except mongo_errors.PyMongoError as exc:
            raise StorageError(f"Could not prepare MongoDB indexes: {exc}") from exc
        logger.info(f"Opened MongoDB store, database {db_name}")

    def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        try:
            # insert_one adds _id to the dict it is given
            self._db[collection].insert_one(dict(document))
        except mongo_errors.DuplicateKeyError as exc:
            raise DuplicateKeyError(f"Duplicate key in {collection}: {exc}") from exc
        except mongo_errors.PyMongoError as exc:
            raise StorageError(f"Insert into {collection} failed: {exc}") from exc
        return copy.deepcopy(document)

    def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return self._db[collection].find_one(filter, {"_id": 0})
        except mongo_errors.PyMongoError as exc:
            raise StorageError(f"Query on {collection} failed: {exc}") from exc

    def find(self, collection: str, filter: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            return list(self._db[collection].find(filter, {"_id": 0}))
        except mongo_errors.PyMongoError as exc:
            raise StorageError(f"Query on {collection} failed: {exc}") from exc

    def upsert(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return self._db[collection].find_one_and_update(
                filter,
                update,
                projection={"_id": 0},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except mongo_errors.PyMongoError as exc:
            raise StorageError(f"Upsert on {collection} failed: {exc}") from exc

    def sum_field(self, collection: str, filter: Dict[str, Any], field: str) -> float:
        pipeline = [
            {"$match": filter},
            {"$group": {"_id": None, "total": {"$sum": f"${field}"}}},
        ]
        try:
            result = list(self._db[collection].aggregate(pipeline))
        except mongo_errors.PyMongoError as exc:
            raise StorageError(f"Aggregation on {collection} failed: {exc}") from exc
        return result[0]["total"] if result else 0

    def delete_one(self, collection: str, filter: Dict[str, Any]) -> bool:
        try:
            return self._db[collection].delete_one(filter).deleted_count > 0
        except mongo_errors.PyMongoError as exc:
            raise StorageError(f"Delete from {collection} failed: {exc}") from exc

    def close(self) -> None:
        self._client.close()


def create_storage(settings: Settings) -> DocumentStore:
    """Build the storage backend named in settings."""
    if settings.storage == "memory":
        return InMemoryStore()
    if settings.storage == "sqlite":
        return SQLiteStore(db_path=settings.db_path)
    if settings.storage == "mongo":
        return MongoStore(uri=settings.mongo_uri, db_name=settings.mongo_db)
    raise ValueError(f"Unknown storage backend: {settings.storage}")
