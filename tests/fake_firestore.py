"""
In-memory stand-in for the parts of `google.cloud.firestore.Client` the
app uses. Documents live in a flat dict keyed by their full path.
"""
import copy
import re
import uuid
from typing import Any, Callable, Dict, List, Optional

from google.api_core.exceptions import FailedPrecondition, NotFound
from google.cloud.firestore import DELETE_FIELD

_SEGMENT = re.compile(r"`([^`]*)`|([^.]+)")


def split_field_path(path: str) -> List[str]:
    return [quoted or plain for quoted, plain in _SEGMENT.findall(path)]


def _lookup(data: Dict[str, Any], field: str) -> Any:
    cur: Any = data
    for part in split_field_path(field):
        if not isinstance(cur, dict) or part not in cur:
            return None
        cur = cur[part]
    return cur


def _matches(data: Dict[str, Any], field: str, op: str, value: Any) -> bool:
    actual = _lookup(data, field)
    if op == "==":
        return actual == value
    if op == "!=":
        return actual != value
    if op == "array_contains":
        return isinstance(actual, list) and value in actual
    if op == "in":
        return actual in value
    raise NotImplementedError(op)


class FakeSnapshot:
    def __init__(self, reference: "FakeDocumentRef", data: Optional[Dict[str, Any]],
                 update_time: Optional[int] = None):
        self.reference = reference
        self.id = reference.id
        # снимок не должен видеть последующие записи
        self._data = copy.deepcopy(data)
        self.update_time = update_time

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._data)


class FakeWatch:
    def __init__(self, db: "FakeFirestore", entry):
        self._db = db
        self._entry = entry

    def unsubscribe(self) -> None:
        if self._entry in self._db.listeners:
            self._db.listeners.remove(self._entry)


class FakeDocumentRef:
    def __init__(self, db: "FakeFirestore", path: str):
        self._db = db
        self.path = path
        self.id = path.rsplit("/", 1)[-1]

    def collection(self, name: str) -> "FakeQuery":
        return FakeQuery(self._db, f"{self.path}/{name}")

    def get(self) -> FakeSnapshot:
        return FakeSnapshot(self, self._db.docs.get(self.path), self._db.update_times.get(self.path))

    def set(self, data: Dict[str, Any], merge: bool = False) -> None:
        data = copy.deepcopy(data)
        if merge and self.path in self._db.docs:
            self._db.docs[self.path].update(data)
        else:
            self._db.docs[self.path] = data
        self._db.touch(self.path)
        self._db.notify(self.path)

    def update(self, data: Dict[str, Any], option: Optional["FakeWriteOption"] = None) -> None:
        if self.path not in self._db.docs:
            raise NotFound(f"No document to update: {self.path}")
        if option is not None and option.last_update_time != self._db.update_times.get(self.path):
            raise FailedPrecondition(f"Document changed since it was read: {self.path}")
        doc = self._db.docs[self.path]
        for field, value in data.items():
            parts = split_field_path(field)
            cur = doc
            for part in parts[:-1]:
                cur = cur.setdefault(part, {})
            if value is DELETE_FIELD:
                cur.pop(parts[-1], None)
            else:
                cur[parts[-1]] = copy.deepcopy(value)
        self._db.touch(self.path)
        self._db.notify(self.path)

    def delete(self) -> None:
        self._db.docs.pop(self.path, None)
        self._db.update_times.pop(self.path, None)
        self._db.notify(self.path)

    def on_snapshot(self, callback: Callable) -> FakeWatch:
        entry = (self, callback)
        self._db.listeners.append(entry)
        callback([self.get()], [], None)
        return FakeWatch(self._db, entry)


class FakeQuery:
    def __init__(self, db: "FakeFirestore", path: str, group: bool = False, filters=None):
        self._db = db
        self.path = path
        self.group = group
        self.filters = list(filters or [])

    def document(self, doc_id: Optional[str] = None) -> FakeDocumentRef:
        return FakeDocumentRef(self._db, f"{self.path}/{doc_id or uuid.uuid4().hex[:20]}")

    def where(self, field_path=None, op_string=None, value=None, *, filter=None) -> "FakeQuery":
        if filter is not None:
            field_path, op_string, value = filter.field_path, filter.op_string, filter.value
        return FakeQuery(self._db, self.path, self.group,
                         self.filters + [(field_path, op_string, value)])

    def owns(self, doc_path: str) -> bool:
        parent = doc_path.rsplit("/", 1)[0]
        if self.group:
            return parent.rsplit("/", 1)[-1] == self.path
        return parent == self.path

    def stream(self) -> List[FakeSnapshot]:
        out = []
        for path in sorted(self._db.docs):
            if not self.owns(path):
                continue
            data = self._db.docs[path]
            if all(_matches(data, f, op, v) for f, op, v in self.filters):
                out.append(FakeSnapshot(FakeDocumentRef(self._db, path), data,
                                        self._db.update_times.get(path)))
        return out

    def on_snapshot(self, callback: Callable) -> FakeWatch:
        entry = (self, callback)
        self._db.listeners.append(entry)
        callback(self.stream(), [], None)
        return FakeWatch(self._db, entry)


class FakeBatch:
    def __init__(self):
        self.ops: List[tuple] = []

    def update(self, reference: FakeDocumentRef, data: Dict[str, Any]) -> None:
        self.ops.append((reference, data))

    def commit(self) -> None:
        for reference, data in self.ops:
            reference.update(data)


class FakeWriteOption:
    def __init__(self, last_update_time: Optional[int]):
        self.last_update_time = last_update_time


class FakeFirestore:
    def __init__(self):
        self.docs: Dict[str, Dict[str, Any]] = {}
        # вместо серверного времени обновления счётчик записей
        self.update_times: Dict[str, int] = {}
        self.listeners: List[tuple] = []
        self.batches: List[FakeBatch] = []
        self._writes = 0

    def touch(self, doc_path: str) -> None:
        self._writes += 1
        self.update_times[doc_path] = self._writes

    @staticmethod
    def write_option(last_update_time=None) -> FakeWriteOption:
        return FakeWriteOption(last_update_time)

    def collection(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def collection_group(self, name: str) -> FakeQuery:
        return FakeQuery(self, name, group=True)

    def batch(self) -> FakeBatch:
        batch = FakeBatch()
        self.batches.append(batch)
        return batch

    def notify(self, doc_path: str) -> None:
        for target, callback in list(self.listeners):
            if isinstance(target, FakeDocumentRef) and target.path == doc_path:
                callback([target.get()], [], None)
            elif isinstance(target, FakeQuery) and target.owns(doc_path):
                callback(target.stream(), [], None)
