"""Test doubles shared across the gateway tests."""
import asyncio
from types import SimpleNamespace

from bson import ObjectId

from gateway.client import MessagingClient
from gateway.errors import TransportError


# ---- in-memory Mongo double ----
class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    def sort(self, key, direction):
        self.docs = sorted(self.docs, key=lambda d: d[key], reverse=direction < 0)
        return self

    def limit(self, n):
        self.docs = self.docs[:n]
        return self

    async def to_list(self, length):
        return [dict(d) for d in self.docs[:length]]


def _matches(doc, query):
    return all(doc.get(k) == v for k, v in query.items())


class FakeCollection:
    def __init__(self):
        self.docs = []
        self.indexes = []

    async def create_indexes(self, indexes):
        self.indexes.extend(indexes)
        return [str(i) for i in indexes]

    async def insert_one(self, doc):
        doc = dict(doc)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    def find(self, query=None):
        return FakeCursor([d for d in self.docs if _matches(d, query or {})])

    async def find_one(self, query):
        for doc in self.docs:
            if _matches(doc, query):
                return dict(doc)
        return None

    async def update_one(self, query, update, upsert=False):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(update.get("$set", {}))
                return SimpleNamespace(modified_count=1, upserted_id=None)
        if upsert:
            doc = {**query, **update.get("$set", {})}
            self.docs.append(doc)
            return SimpleNamespace(modified_count=0, upserted_id=doc.get("_id"))
        return SimpleNamespace(modified_count=0, upserted_id=None)

    async def delete_one(self, query):
        for i, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def delete_many(self, query):
        kept = [d for d in self.docs if not _matches(d, query)]
        deleted = len(self.docs) - len(kept)
        self.docs = kept
        return SimpleNamespace(deleted_count=deleted)


class FakeDatabase(dict):
    def __missing__(self, name):
        collection = self[name] = FakeCollection()
        return collection


# ---- messaging client double ----
class FakeClient(MessagingClient):
    def __init__(self, fail_send=False):
        super().__init__()
        self.initialized = False
        self.destroyed = False
        self.fail_send = fail_send
        self.sent = []

    @property
    def listener_count(self):
        return len(self._listeners)

    async def initialize(self):
        self.initialized = True

    async def destroy(self):
        self.destroyed = True

    async def send_message(self, chat_id, body):
        if self.fail_send:
            raise TransportError("bridge went away")
        self.sent.append((chat_id, body))
        return f"true_{chat_id}_{len(self.sent)}"

    async def fire(self, kind, payload=None):
        await self._emit(kind, payload)


class ClientPool:
    """Client factory that remembers every client it built."""

    def __init__(self, **client_kwargs):
        self.clients = []
        self.client_kwargs = client_kwargs

    def __call__(self):
        client = FakeClient(**self.client_kwargs)
        self.clients.append(client)
        return client

    @property
    def current(self):
        return self.clients[-1]


def emitted(sio, event=None):
    """(event, data) pairs passed to the mocked Socket.IO server."""
    calls = [(c.args[0], c.args[1]) for c in sio.emit.await_args_list]
    if event is None:
        return calls
    return [data for name, data in calls if name == event]


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


