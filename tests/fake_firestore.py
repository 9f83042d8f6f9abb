"""In-memory stand-in for google.cloud.firestore.Client

Documents live in a dict keyed by "collection/id". Batches and transactions buffer their writes
and apply them all-or-nothing on commit, recording each commit so tests can inspect them.
FakeTransaction implements the hooks that firestore.transactional drives (_begin, _commit,
_rollback, _clean_up) so the real decorator runs unchanged.
"""

import copy
import operator

from google.api_core import exceptions as google_exceptions

# Firestore rejects a commit with more writes than this
MAX_COMMIT_WRITES = 500

OPERATORS = {
    "==": operator.eq,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = copy.deepcopy(data)

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)

    def get(self, field):
        if self._data is None or field not in self._data:
            raise KeyError(field)
        return self._data[field]


class FakeDocumentReference:
    def __init__(self, db, collection: str, doc_id: str):
        self._db = db
        self.collection_name = collection
        self.id = doc_id
        self.path = f"{collection}/{doc_id}"

    def get(self, transaction=None):
        if transaction is not None:
            transaction.reads.append(self.path)
        return FakeSnapshot(self, self._db.documents.get(self.path))

    def set(self, data):
        self._db.documents[self.path] = copy.deepcopy(data)

    def update(self, data):
        if self.path not in self._db.documents:
            raise google_exceptions.NotFound(self.path)
        self._db.documents[self.path].update(copy.deepcopy(data))

    def delete(self):
        self._db.documents.pop(self.path, None)


class FakeQuery:
    def __init__(self, db, collection: str, filters=(), limit=None):
        self._db = db
        self._collection = collection
        self._filters = tuple(filters)
        self._limit = limit

    def where(self, filter):
        return FakeQuery(self._db, self._collection, self._filters + (filter,), self._limit)

    def limit(self, count: int):
        return FakeQuery(self._db, self._collection, self._filters, count)

    def _matches(self, data: dict) -> bool:
        for field_filter in self._filters:
            if field_filter.field_path not in data:
                return False
            value = data[field_filter.field_path]
            if value is None:
                return False
            if not OPERATORS[field_filter.op_string](value, field_filter.value):
                return False
        return True

    def stream(self):
        prefix = f"{self._collection}/"
        results = []
        for path in sorted(self._db.documents):
            if not path.startswith(prefix):
                continue
            data = self._db.documents[path]
            if self._matches(data):
                reference = FakeDocumentReference(self._db, self._collection, path[len(prefix):])
                results.append(FakeSnapshot(reference, data))
        if self._limit is not None:
            results = results[: self._limit]
        return iter(results)


class FakeCollection(FakeQuery):
    def __init__(self, db, name: str):
        super().__init__(db, name)

    def document(self, doc_id: str) -> FakeDocumentReference:
        return FakeDocumentReference(self._db, self._collection, doc_id)


class FakeWriteBatch:
    def __init__(self, db):
        self._db = db
        self.writes = []

    def set(self, reference, data):
        self.writes.append(("set", reference.path, data))

    def delete(self, reference):
        self.writes.append(("delete", reference.path, None))

    def commit(self):
        self._db.apply(self.writes)
        self.writes = []


class FakeTransaction:
    _read_only = False
    # A single attempt: a conflicting commit surfaces instead of being retried
    _max_attempts = 1

    def __init__(self, db):
        self._db = db
        self._id = None
        self.writes = []
        self.reads = []

    @property
    def in_progress(self) -> bool:
        return self._id is not None

    def _clean_up(self):
        self.writes = []
        self._id = None

    def _begin(self, retry_id=None):
        self._id = b"fake-transaction"

    def _commit(self):
        if self._db.before_commit:
            hook, self._db.before_commit = self._db.before_commit, None
            hook(self._db)
        self._db.apply(self.writes)
        self._clean_up()
        return []

    def _rollback(self):
        self._db.rollbacks += 1
        self._clean_up()

    def create(self, reference, data):
        self.writes.append(("create", reference.path, data))

    def set(self, reference, data):
        self.writes.append(("set", reference.path, data))

    def update(self, reference, data):
        self.writes.append(("update", reference.path, data))


class FakeFirestore:
    def __init__(self):
        self.documents: dict[str, dict] = {}
        # One list of (op, path, data) per successful batch or transaction commit
        self.commits: list[list[tuple]] = []
        self.rollbacks = 0
        # Called once with this client right before the next transaction commit
        self.before_commit = None

    def collection(self, name: str) -> FakeCollection:
        return FakeCollection(self, name)

    def batch(self) -> FakeWriteBatch:
        return FakeWriteBatch(self)

    def transaction(self) -> FakeTransaction:
        return FakeTransaction(self)

    def apply(self, writes: list[tuple]) -> None:
        if len(writes) > MAX_COMMIT_WRITES:
            raise google_exceptions.InvalidArgument(f"{len(writes)} writes in one commit")
        for op, path, _ in writes:
            if op == "create" and path in self.documents:
                raise google_exceptions.AlreadyExists(path)
            if op == "update" and path not in self.documents:
                raise google_exceptions.NotFound(path)
        for op, path, data in writes:
            if op == "delete":
                self.documents.pop(path, None)
            elif op == "update":
                self.documents[path].update(copy.deepcopy(data))
            else:
                self.documents[path] = copy.deepcopy(data)
        self.commits.append(list(writes))

    def paths(self, collection: str) -> list[str]:
        return sorted(p for p in self.documents if p.startswith(f"{collection}/"))
