from types import SimpleNamespace

import pytest
from bson.objectid import ObjectId
from pymongo.errors import CollectionInvalid, OperationFailure


def _matches(doc, flt):
    return all(doc.get(k) == v for k, v in (flt or {}).items())


class FakeCursor:
    def __init__(self, docs):
        self._docs = list(docs)

    def sort(self, key, direction=1):
        self._docs.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def skip(self, n):
        self._docs = self._docs[n:]
        return self

    def limit(self, n):
        self._docs = self._docs[:n]
        return self

    def __iter__(self):
        return iter([dict(d) for d in self._docs])


class FakeCollection:
    def __init__(self):
        self.docs = []

    def insert_one(self, doc):
        doc = dict(doc)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"], acknowledged=True)

    def find(self, flt=None):
        return FakeCursor(d for d in self.docs if _matches(d, flt))

    def find_one(self, flt=None):
        for d in self.docs:
            if _matches(d, flt):
                return dict(d)
        return None

    def count_documents(self, flt):
        return sum(1 for d in self.docs if _matches(d, flt))

    def update_one(self, flt, update):
        for d in self.docs:
            if _matches(d, flt):
                d.update(update.get("$set", {}))
                for key in update.get("$unset", {}):
                    d.pop(key, None)
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    def delete_one(self, flt):
        for i, d in enumerate(self.docs):
            if _matches(d, flt):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)


class FakeDatabase:
    """In-memory stand-in for a pymongo Database.

    ``collections`` maps a collection name to its creation options, and
    ``calls`` records every metadata operation as ``(operation, name)``.
    Set ``fail_on[(operation, name)]`` to an exception to make that call raise.
    """

    def __init__(self, collections=None):
        self.collections = {name: dict(opts) for name, opts in (collections or {}).items()}
        self.documents = {}
        self.calls = []
        self.fail_on = {}
        self.ping_error = None
        self.client = SimpleNamespace(admin=SimpleNamespace(command=self._admin_command))

    def _admin_command(self, cmd):
        if self.ping_error is not None:
            raise self.ping_error
        return {"ok": 1.0}

    def _record(self, op, name):
        self.calls.append((op, name))
        exc = self.fail_on.get((op, name))
        if exc is not None:
            raise exc

    def list_collection_names(self, filter=None):
        name = (filter or {}).get("name")
        self._record("list_collection_names", name)
        return [n for n in self.collections if name is None or n == name]

    def list_collections(self, filter=None):
        name = (filter or {}).get("name")
        self._record("list_collections", name)
        return iter(
            [
                {"name": n, "type": "collection", "options": dict(opts)}
                for n, opts in self.collections.items()
                if name is None or n == name
            ]
        )

    def create_collection(self, name, **options):
        self._record("create_collection", name)
        if name in self.collections:
            raise CollectionInvalid(f"collection {name} already exists")
        self.collections[name] = dict(options)

    def command(self, command, value=None, **kwargs):
        self._record(command, value)
        if command == "collMod":
            if value not in self.collections:
                raise OperationFailure(f"ns does not exist: {value}", code=26)
            self.collections[value].update(kwargs)
            return {"ok": 1.0}
        raise NotImplementedError(command)

    def __getitem__(self, name):
        return self.documents.setdefault(name, FakeCollection())


@pytest.fixture()
def fake_db():
    return FakeDatabase()


@pytest.fixture()
def make_db():
    return FakeDatabase
