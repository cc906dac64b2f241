import itertools
import json as _json
import threading

import pytest
import pytest_asyncio

from telentir_core import InMemoryKeyCache, ObjectManager, ObjectManagerConfig, SoftwareCrypto
from telentir_core.servers import CurrentServer, encrypt
from telentir_core.transport.transport_base import BaseTransport, TransportPermanentError
from telentir_core.utils import hexe, now_ts


USER_ID = "user-1"
MAIN = "main"
REMOTE = "telentir"


class FakeTelentirApi(BaseTransport):
    """In-process stand-in for the Telentir REST API; records every call."""

    name = "fake"

    def __init__(self, main_public, main_private, remote_public, private_in_root=True):
        self.main_public = main_public
        self.main_private = main_private
        self.remote_public = remote_public
        self.private_in_root = private_in_root
        self.calls = []
        self.keys = {}
        self.objects = {}
        self.stores = {}
        self.jobs = {}
        self._key_ids = itertools.count(2)
        self._object_ids = itertools.count(2)
        self._lock = threading.Lock()

    def count(self, method, path):
        return sum(1 for m, p, _ in self.calls if m == method and p == path)

    # ------------------------------------------------------------------
    def request(self, method, path, json=None, query=None):
        with self._lock:
            self.calls.append((method, path, json))
            return self._route(method, path.strip("/").split("/"), json or {})

    def _route(self, method, parts, body):
        head = parts[0]
        rid = parts[1] if len(parts) > 1 else None

        if method == "GET" and head == "server":
            return {
                "current": REMOTE,
                "keys": {REMOTE: {"application/pkix-spki": self.remote_public, "application/jwk+json": {}}},
            }

        if method == "GET" and head == "root":
            main = {"publicKey": self.main_public, "deprecated": False}
            if self.private_in_root:
                main["privateKey"] = self.main_private
            return {"stores": self.stores, "servers": {MAIN: main}}

        if head == "keys":
            return self._keys(method, rid, body)

        if head == "objects":
            if method == "GET" and len(parts) == 3 and parts[2] == "related":
                return [o for o in self.objects.values() if o["related_object_id"] == rid]
            return self._objects(method, rid, body)

        if method == "POST" and head == "publish":
            self.jobs[(body["type"], body["related_id"])] = body["object_id"]
            return {"ok": True}

        if method == "POST" and head == "unpublish":
            self.jobs.pop((body["type"], body["related_id"]), None)
            return None

        raise TransportPermanentError(f"Unhandled request: {method} /{'/'.join(parts)}", status=404, reason="Not Found")

    def _missing(self, kind, rid):
        return TransportPermanentError(f"{kind} {rid} not found", status=404, reason="Not Found")

    def _keys(self, method, rid, body):
        if method == "POST" and rid is None:
            rid = f"key-{next(self._key_ids)}"
            self.keys[rid] = {
                "id": rid,
                "server": body["server"],
                "key": body["key"],
                "iv": body["iv"],
                "metadata": body.get("metadata") or {},
                "user_id": USER_ID,
                "created_at": now_ts(),
                "updated_at": now_ts(),
            }
            return dict(self.keys[rid])
        if rid not in self.keys:
            raise self._missing("Key", rid)
        if method == "GET":
            return dict(self.keys[rid])
        if method == "PATCH":
            record = self.keys[rid]
            for field in ("metadata", "server", "key", "iv"):
                if field in body:
                    record[field] = body[field]
            record["updated_at"] = now_ts()
            return dict(record)
        if method == "DELETE":
            del self.keys[rid]
            return None

    def _objects(self, method, rid, body):
        if method == "POST" and rid is None:
            rid = f"object-{next(self._object_ids)}"
            self.objects[rid] = {
                "id": rid,
                "key_id": body["key_id"],
                "auth_tag": body["auth_tag"],
                "content": body["content"],
                "related_object_id": body.get("related_object_id"),
                "metadata": body.get("metadata") or {},
                "user_id": USER_ID,
                "created_at": now_ts(),
                "updated_at": now_ts(),
            }
            return dict(self.objects[rid])
        if method == "DELETE":
            self.objects.pop(rid, None)
            return None
        if rid not in self.objects:
            raise self._missing("Object", rid)
        if method == "GET":
            return dict(self.objects[rid])
        if method == "PATCH":
            record = self.objects[rid]
            for field in ("metadata", "key_id", "auth_tag", "content", "related_object_id"):
                if field in body:
                    record[field] = body[field]
            record["updated_at"] = now_ts()
            return dict(record)

    # ------------------------------------------------------------------
    def seed(self, provider):
        """key-1 (main), a contacts store root and one contact {"name": "Alice"}."""
        server = CurrentServer(
            MAIN,
            provider.parse_public_key(self.main_public),
            provider.parse_private_key(self.main_private),
            provider,
        )
        context = server.create_context()
        self.keys["key-1"] = {
            "id": "key-1",
            "server": MAIN,
            "key": hexe(context.header.key),
            "iv": hexe(context.header.iv),
            "metadata": {},
            "user_id": USER_ID,
            "created_at": now_ts(),
            "updated_at": now_ts(),
        }
        self.stores["contacts"] = {"id": "store-contacts", "defaultKey": "key-1"}

        def _put(oid, parent, payload):
            sealed = encrypt(context, _json.dumps(payload).encode("utf-8"), provider)
            self.objects[oid] = {
                "id": oid,
                "key_id": "key-1",
                "auth_tag": hexe(sealed.auth_tag),
                "content": hexe(sealed.content),
                "related_object_id": parent,
                "metadata": {},
                "user_id": USER_ID,
                "created_at": now_ts(),
                "updated_at": now_ts(),
            }

        _put("store-contacts", "root", {"title": "Contacts Store"})
        _put("object-1", "store-contacts", {"name": "Alice"})
        return context


@pytest.fixture(scope="session")
def provider():
    return SoftwareCrypto()


@pytest.fixture(scope="session")
def main_keys(provider):
    public, private = provider.generate_key_pair()
    return provider.stringify_public_key(public), provider.stringify_private_key(private)


@pytest.fixture(scope="session")
def remote_keys(provider):
    public, private = provider.generate_key_pair()
    return provider.stringify_public_key(public), provider.stringify_private_key(private)


@pytest.fixture
def api(provider, main_keys, remote_keys):
    fake = FakeTelentirApi(main_keys[0], main_keys[1], remote_keys[0])
    fake.seed(provider)
    return fake


@pytest.fixture
def key_cache():
    return InMemoryKeyCache()


@pytest_asyncio.fixture
async def manager(provider, api, key_cache):
    config = ObjectManagerConfig(api_key="test-token", api="https://api.test", key_cache=key_cache)
    return await ObjectManager.create(provider, config, transport=api)
