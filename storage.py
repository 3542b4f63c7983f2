"""
Persistence for the collection ledger.

`Storage` is the interface the accounting engine depends on. `MemStorage`
keeps everything in process memory (volatile, used by the tests and when no
database is configured); `MongoStorage` keeps one MongoDB collection per
record type. Records go in and come out as plain dicts with a string `id`.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING

from database import create_document, get_documents
from schemas import Customer, DailyCollection, DailyEntry, Expense

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class Storage(ABC):
    # Customers
    @abstractmethod
    def list_customers(self) -> List[Record]: ...

    @abstractmethod
    def get_customer(self, customer_id: str) -> Optional[Record]: ...

    @abstractmethod
    def find_customer_by_number(self, customer_number: str) -> Optional[Record]: ...

    @abstractmethod
    def create_customer(self, record: Record) -> Record: ...

    @abstractmethod
    def update_customer(self, customer_id: str, patch: Record) -> Optional[Record]: ...

    # Daily collections
    @abstractmethod
    def list_collections(self, date: Optional[str] = None, line: Optional[str] = None, customer_id: Optional[str] = None) -> List[Record]: ...

    @abstractmethod
    def get_collection(self, collection_id: str) -> Optional[Record]: ...

    @abstractmethod
    def find_collection(self, customer_id: str, date: str) -> Optional[Record]:
        """Return the oldest collection for (customer, date), if any."""

    @abstractmethod
    def create_collection(self, record: Record) -> Record: ...

    @abstractmethod
    def update_collection(self, collection_id: str, patch: Record) -> Optional[Record]: ...

    @abstractmethod
    def delete_collection(self, collection_id: str) -> bool: ...

    # Daily entries
    @abstractmethod
    def list_daily_entries(self, start: Optional[str] = None, end: Optional[str] = None) -> List[Record]:
        """Entries with start <= entry_date <= end, newest first."""

    @abstractmethod
    def get_daily_entry(self, entry_id: str) -> Optional[Record]: ...

    @abstractmethod
    def find_daily_entry(self, date: str, line: str) -> Optional[Record]: ...

    @abstractmethod
    def create_daily_entry(self, record: Record) -> Record: ...

    @abstractmethod
    def update_daily_entry(self, entry_id: str, patch: Record) -> Optional[Record]: ...

    # Expenses
    @abstractmethod
    def list_expenses(self, date: Optional[str] = None, line: Optional[str] = None) -> List[Record]: ...

    @abstractmethod
    def create_expenses(self, records: Iterable[Record]) -> List[Record]: ...


def _matches(record: Record, **criteria) -> bool:
    return all(value is None or record.get(key) == value for key, value in criteria.items())


class MemStorage(Storage):
    """Dict-backed store. Insertion order is kept, so find-first lookups
    return the oldest matching row."""

    def __init__(self):
        self.customers: Dict[str, Record] = {}
        self.collections: Dict[str, Record] = {}
        self.entries: Dict[str, Record] = {}
        self.expenses: Dict[str, Record] = {}

    @staticmethod
    def _insert(table: Dict[str, Record], record: Record) -> Record:
        doc = dict(record)
        doc["id"] = uuid.uuid4().hex
        doc["created_at"] = datetime.now(timezone.utc).isoformat()
        table[doc["id"]] = doc
        return dict(doc)

    @staticmethod
    def _patch(table: Dict[str, Record], record_id: str, patch: Record) -> Optional[Record]:
        doc = table.get(record_id)
        if doc is None:
            return None
        doc.update({k: v for k, v in patch.items() if k not in ("id", "created_at")})
        return dict(doc)

    @staticmethod
    def _get(table: Dict[str, Record], record_id: str) -> Optional[Record]:
        doc = table.get(record_id)
        return dict(doc) if doc is not None else None

    def list_customers(self):
        return [dict(c) for c in self.customers.values()]

    def get_customer(self, customer_id):
        return self._get(self.customers, customer_id)

    def find_customer_by_number(self, customer_number):
        for c in self.customers.values():
            if c["customer_number"] == customer_number:
                return dict(c)
        return None

    def create_customer(self, record):
        return self._insert(self.customers, Customer.model_validate(record).model_dump())

    def update_customer(self, customer_id, patch):
        return self._patch(self.customers, customer_id, patch)

    def list_collections(self, date=None, line=None, customer_id=None):
        return [
            dict(c) for c in self.collections.values()
            if _matches(c, collection_date=date, collection_line=line, customer_id=customer_id)
        ]

    def get_collection(self, collection_id):
        return self._get(self.collections, collection_id)

    def find_collection(self, customer_id, date):
        for c in self.collections.values():
            if c["customer_id"] == customer_id and c["collection_date"] == date:
                return dict(c)
        return None

    def create_collection(self, record):
        return self._insert(self.collections, DailyCollection.model_validate(record).model_dump())

    def update_collection(self, collection_id, patch):
        return self._patch(self.collections, collection_id, patch)

    def delete_collection(self, collection_id):
        return self.collections.pop(collection_id, None) is not None

    def list_daily_entries(self, start=None, end=None):
        entries = [dict(e) for e in self.entries.values()]
        if start:
            entries = [e for e in entries if e["entry_date"] >= start]
        if end:
            entries = [e for e in entries if e["entry_date"] <= end]
        return sorted(entries, key=lambda e: e["entry_date"], reverse=True)

    def get_daily_entry(self, entry_id):
        return self._get(self.entries, entry_id)

    def find_daily_entry(self, date, line):
        for e in self.entries.values():
            if e["entry_date"] == date and e["collection_line"] == line:
                return dict(e)
        return None

    def create_daily_entry(self, record):
        return self._insert(self.entries, DailyEntry.model_validate(record).model_dump())

    def update_daily_entry(self, entry_id, patch):
        return self._patch(self.entries, entry_id, patch)

    def list_expenses(self, date=None, line=None):
        return [dict(e) for e in self.expenses.values() if _matches(e, date=date, collection_line=line)]

    def create_expenses(self, records):
        validated = [Expense.model_validate(r).model_dump() for r in records]
        return [self._insert(self.expenses, doc) for doc in validated]


# -------------------- MongoDB --------------------

def serialize_doc(doc: Optional[Record]) -> Optional[Record]:
    if not doc:
        return doc
    out = {}
    for k, v in doc.items():
        if k == "_id":
            out["id"] = str(v)
        elif isinstance(v, ObjectId):
            out[k] = str(v)
        elif isinstance(v, datetime):
            out[k] = v.isoformat()
        else:
            out[k] = v
    return out


def oid(obj_id: str) -> Optional[ObjectId]:
    return ObjectId(obj_id) if ObjectId.is_valid(obj_id) else None


class MongoStorage(Storage):
    CUSTOMERS = "customer"
    COLLECTIONS = "dailycollection"
    ENTRIES = "dailyentry"
    EXPENSES = "expense"

    def __init__(self, database):
        self.db = database
        logger.info("Using MongoDB storage in %s", database.name)
        self.db[self.CUSTOMERS].create_index("customer_number", unique=True)
        # Not unique: duplicate rows are tolerated, lookups take the oldest.
        self.db[self.COLLECTIONS].create_index([("customer_id", ASCENDING), ("collection_date", ASCENDING)])
        self.db[self.ENTRIES].create_index([("entry_date", ASCENDING), ("collection_line", ASCENDING)])

    def _get(self, name: str, record_id: str) -> Optional[Record]:
        key = oid(record_id)
        if key is None:
            return None
        return serialize_doc(self.db[name].find_one({"_id": key}))

    def _find_first(self, name: str, query: Record) -> Optional[Record]:
        # ObjectIds grow with insertion order, so the first one is the oldest
        docs = get_documents(name, query, limit=1, sort=[("_id", ASCENDING)], database=self.db)
        return serialize_doc(docs[0]) if docs else None

    def _list(self, name: str, query: Record, sort=None) -> List[Record]:
        docs = get_documents(name, query, sort=sort or [("_id", ASCENDING)], database=self.db)
        return [serialize_doc(d) for d in docs]

    def _insert(self, name: str, model) -> Record:
        new_id = create_document(name, model, database=self.db)
        return self._get(name, new_id)

    def _patch(self, name: str, record_id: str, patch: Record) -> Optional[Record]:
        key = oid(record_id)
        if key is None:
            return None
        update = {k: v for k, v in patch.items() if k not in ("id", "_id", "created_at")}
        update["updated_at"] = datetime.now(timezone.utc)
        res = self.db[name].update_one({"_id": key}, {"$set": update})
        if res.matched_count == 0:
            return None
        return self._get(name, record_id)

    def list_customers(self):
        return self._list(self.CUSTOMERS, {})

    def get_customer(self, customer_id):
        return self._get(self.CUSTOMERS, customer_id)

    def find_customer_by_number(self, customer_number):
        return serialize_doc(self.db[self.CUSTOMERS].find_one({"customer_number": customer_number}))

    def create_customer(self, record):
        return self._insert(self.CUSTOMERS, Customer.model_validate(record))

    def update_customer(self, customer_id, patch):
        return self._patch(self.CUSTOMERS, customer_id, patch)

    def list_collections(self, date=None, line=None, customer_id=None):
        q: Record = {}
        if date:
            q["collection_date"] = date
        if line:
            q["collection_line"] = line
        if customer_id:
            q["customer_id"] = customer_id
        return self._list(self.COLLECTIONS, q)

    def get_collection(self, collection_id):
        return self._get(self.COLLECTIONS, collection_id)

    def find_collection(self, customer_id, date):
        return self._find_first(self.COLLECTIONS, {"customer_id": customer_id, "collection_date": date})

    def create_collection(self, record):
        return self._insert(self.COLLECTIONS, DailyCollection.model_validate(record))

    def update_collection(self, collection_id, patch):
        return self._patch(self.COLLECTIONS, collection_id, patch)

    def delete_collection(self, collection_id):
        key = oid(collection_id)
        if key is None:
            return False
        return self.db[self.COLLECTIONS].delete_one({"_id": key}).deleted_count > 0

    def list_daily_entries(self, start=None, end=None):
        q: Record = {}
        if start or end:
            q["entry_date"] = {}
            if start:
                q["entry_date"]["$gte"] = start
            if end:
                q["entry_date"]["$lte"] = end
        return self._list(self.ENTRIES, q, sort=[("entry_date", DESCENDING)])

    def get_daily_entry(self, entry_id):
        return self._get(self.ENTRIES, entry_id)

    def find_daily_entry(self, date, line):
        return self._find_first(self.ENTRIES, {"entry_date": date, "collection_line": line})

    def create_daily_entry(self, record):
        return self._insert(self.ENTRIES, DailyEntry.model_validate(record))

    def update_daily_entry(self, entry_id, patch):
        return self._patch(self.ENTRIES, entry_id, patch)

    def list_expenses(self, date=None, line=None):
        q: Record = {}
        if date:
            q["date"] = date
        if line:
            q["collection_line"] = line
        return self._list(self.EXPENSES, q)

    def create_expenses(self, records):
        models = [Expense.model_validate(r) for r in records]
        return [self._insert(self.EXPENSES, m) for m in models]
