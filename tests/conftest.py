import asyncio
import copy
import json
from collections import defaultdict
from typing import NamedTuple

import httpx
import pytest

from booklet_library.database.store import LocalStore
from booklet_library.sync.engine import RemoteSyncEngine
from booklet_library.sync.outbox import SyncOutbox
from booklet_library.sync.remote import RemoteClient

REMOTE_URL = "http://remote.test"
PROXY_URL = "http://proxy.test/forward"


class Call(NamedTuple):
    method: str
    table: str
    via_proxy: bool
    size: int


class FakePostgrest:
    """In-memory table server answering the PostgREST calls the client makes."""

    def __init__(self):
        self.tables = defaultdict(dict)
        self.calls = []
        self.failing = set()
        # (method, table) pairs that answer 500, e.g. ("PATCH", "booklets")
        self.failing_methods = set()

    def seed(self, table, *rows):
        for row in rows:
            self.tables[table][row["id"]] = copy.deepcopy(row)

    def writes(self, table=None):
        return [c for c in self.calls if c.method != "GET" and (table is None or c.table == table)]

    def handle(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "proxy.test":
            envelope = json.loads(request.content)
            url = httpx.URL("http://proxy.test" + envelope["path"])
            return self.dispatch(envelope["method"], url.path, url.params, envelope.get("body"), True)
        body = json.loads(request.content) if request.content else None
        path = request.url.path[len("/rest/v1"):]
        return self.dispatch(request.method, path, request.url.params, body, False)

    def dispatch(self, method, path, params, body, via_proxy) -> httpx.Response:
        table = path.strip("/")
        size = len(json.dumps(body)) if body is not None else 0
        self.calls.append(Call(method, table, via_proxy, size))
        if table in self.failing or (method, table) in self.failing_methods:
            return httpx.Response(500, json={"message": f"{table} is down"})

        rows = self.tables[table]
        if method == "GET":
            offset = int(params.get("offset", 0))
            limit = int(params.get("limit", 1000))
            ordered = [rows[k] for k in sorted(rows)]
            return httpx.Response(200, json=ordered[offset:offset + limit])
        if method == "POST":
            for row in body:
                rows.setdefault(row["id"], {}).update(copy.deepcopy(row))
            return httpx.Response(201)
        if method == "PATCH":
            record_id = params["id"][len("eq."):]
            if record_id in rows:
                rows[record_id].update(copy.deepcopy(body))
            return httpx.Response(204)
        return httpx.Response(405, json={"message": "method not allowed"})


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'library.db'}"


@pytest.fixture
def store(db_url):
    s = LocalStore(db_url)
    assert s.open()
    yield s
    s.close()


@pytest.fixture
def remote():
    return FakePostgrest()


@pytest.fixture
def client(remote):
    c = RemoteClient(base_url=REMOTE_URL, api_key="test-key", proxy_url="", transport=httpx.MockTransport(remote.handle))
    yield c
    asyncio.run(c.aclose())


@pytest.fixture
def proxied_client(remote):
    c = RemoteClient(base_url=REMOTE_URL, api_key="test-key", proxy_url=PROXY_URL, transport=httpx.MockTransport(remote.handle))
    yield c
    asyncio.run(c.aclose())


@pytest.fixture
def engine(store, client):
    return RemoteSyncEngine(store, client, page_size=2)


@pytest.fixture
def outbox(store):
    return SyncOutbox(store, max_backoff=60, base_backoff=1.0)


def booklet_record(id, title="Algebra Booklet", updated_at=1000, questions=None, grade="Grade 10", subject="Maths", topic="Algebra"):
    return {
        "id": id,
        "title": title,
        "subject": subject,
        "grade": grade,
        "topic": topic,
        "compiler": "",
        "type": "With Solutions",
        "isPublished": False,
        "createdAt": 1,
        "updatedAt": updated_at,
        "questions": questions or [],
    }


def question_record(id, number=0, topic="Algebra", created_at=1, max_marks=5):
    return {
        "id": id,
        "topic": topic,
        "number": number,
        "maxMarks": max_marks,
        "imageUrls": [],
        "extractedQuestion": f"Question {id}",
        "createdAt": created_at,
    }


@pytest.fixture
def peer_store(tmp_path):
    """Second device sharing the same remote."""
    s = LocalStore(f"sqlite:///{tmp_path / 'peer.db'}")
    assert s.open()
    yield s
    s.close()


@pytest.fixture
def peer_engine(peer_store, client):
    return RemoteSyncEngine(peer_store, client, page_size=2)
