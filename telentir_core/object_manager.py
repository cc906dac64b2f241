"""
telentir_core.object_manager
----------------------------
Orchestrates encrypted objects on top of trust parties and a key cache:

- loads the server rosters (``/server`` and ``/root``) and the store map
- resolves which symmetric context unwraps an object, consulting the key
  cache before the remote store
- creates, patches and deletes keys and objects, keeping process-local
  key, object and relation caches coherent
- publishes objects to the remote party and cancels publish jobs

All public operations are coroutines. Blocking transport calls run in a
worker thread; there are no internal retries.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple, Union
import asyncio, json

from .cache import KeyCache, WrappedKey
from .config import ObjectManagerConfig
from .crypto import CryptoProvider
from .errors import PreconditionError
from .logger import get_logger
from .models import KeyRecord, ObjectRecord, StoreRef
from .servers import (
    CurrentServer,
    EncryptedHeader,
    EncryptionContext,
    RemoteServer,
    Server,
    ServerManager,
    decrypt,
    encrypt,
)
from .transport import BaseTransport, HTTPTransport
from .utils import hexd, hexe

log = get_logger("Telentir.ObjectManager")

_UNSET: Any = object()


class ObjectManager:

    def __init__(self, provider: CryptoProvider, config: ObjectManagerConfig,
                 transport: Optional[BaseTransport] = None):
        self.provider = provider
        self.config = config
        self.transport = transport or HTTPTransport(config.api, config.api_key, config.timeout)
        self.key_cache: Optional[KeyCache] = config.key_cache

        self._servers: List[Server] = []
        self._remotes: List[RemoteServer] = []
        self._remote_name: Optional[str] = None
        self._stores: Optional[Dict[str, StoreRef]] = None

        # instance-owned caches, discarded with the manager
        self._keys: Dict[str, KeyRecord] = {}
        self._objects: Dict[str, ObjectRecord] = {}
        self._relations: Dict[str, List[str]] = {}

    @classmethod
    async def create(cls, provider: CryptoProvider, config: ObjectManagerConfig,
                     transport: Optional[BaseTransport] = None) -> "ObjectManager":
        manager = cls(provider, config, transport)
        await manager.refresh_remotes()
        await manager.refresh_root()
        return manager

    async def fetch(self, method: str, path: str, body: Any = None, query: Optional[dict] = None) -> Any:
        return await asyncio.to_thread(self.transport.request, method, path, body, query)

    def close(self) -> None:
        self._keys.clear()
        self._objects.clear()
        self._relations.clear()
        self.transport.close()

    # ------------------------------------------------------------------
    # Rosters
    # ------------------------------------------------------------------
    @property
    def remote_name(self) -> str:
        if self._remote_name is None:
            raise PreconditionError("Remote metadata not loaded. Call refresh_remotes first.")
        return self._remote_name

    @property
    def stores(self) -> Dict[str, StoreRef]:
        if self._stores is None:
            raise PreconditionError("Root metadata not loaded. Call refresh_root first.")
        return self._stores

    async def refresh_remotes(self) -> List[RemoteServer]:
        data = await self.fetch("GET", "/server")
        remotes = [
            RemoteServer(name, self.provider.parse_public_key(key_data["application/pkix-spki"]), self.provider)
            for name, key_data in data["keys"].items()
        ]
        self._remote_name = data["current"]
        self._remotes = remotes
        log.info(f"[ROSTER] remotes={[r.name for r in remotes]} current={self._remote_name}")
        return remotes

    async def refresh_root(self) -> List[Server]:
        data = await self.fetch("GET", "/root")
        servers: List[Server] = []

        for name, key_data in data["servers"].items():
            public_key = self.provider.parse_public_key(key_data["publicKey"])
            private_pem = key_data.get("privateKey")

            if not private_pem:
                local = next((a for a in self.config.local_auth if a.public_key == key_data["publicKey"]), None)
                private_pem = local.private_key if local else None

            if private_pem:
                servers.append(CurrentServer(name, public_key, self.provider.parse_private_key(private_pem), self.provider))
            else:
                servers.append(RemoteServer(name, public_key, self.provider))

        self._servers = servers
        self._stores = {name: StoreRef.from_dict(store) for name, store in data["stores"].items()}
        log.info(f"[ROSTER] servers={[(s.name, s.kind) for s in servers]} stores={list(self._stores)}")
        return servers

    def _require_rosters(self) -> None:
        if self._stores is None:
            raise PreconditionError("Root metadata not loaded. Call refresh_root first.")
        if self._remote_name is None:
            raise PreconditionError("Remote metadata not loaded. Call refresh_remotes first.")

    def _find_server(self, name: str, remotes_first: bool = False) -> Server:
        self._require_rosters()
        pools = (self._remotes, self._servers) if remotes_first else (self._servers, self._remotes)
        for pool in pools:
            for server in pool:
                if server.name == name:
                    return server
        raise PreconditionError(f"Server '{name}' is not part of the loaded rosters.")

    def server_manager_of(self, name: str) -> ServerManager:
        server = self._find_server(name)
        if not isinstance(server, CurrentServer):
            raise PreconditionError(f"Server with name {name} doesn't contain a private key.")
        remotes = [s for s in [*self._servers, *self._remotes] if isinstance(s, RemoteServer)]
        return ServerManager(server, remotes, self.provider)

    def default_current_server_name(self) -> str:
        self._require_rosters()
        server = next((s for s in self._servers if isinstance(s, CurrentServer)), None)
        if server is None:
            raise PreconditionError("No server with a private key is available.")
        return server.name

    # ------------------------------------------------------------------
    # Key cache (advisory: failures are logged, never raised)
    # ------------------------------------------------------------------
    async def _cache_call(self, op: str, id: str, *args):
        # every cache operation is optional; a backend may implement any subset
        operation = getattr(self.key_cache, op, None) if self.key_cache is not None else None
        if operation is None:
            return None
        try:
            return await operation(id, *args)
        except Exception as e:
            log.warning(f"[KEY CACHE] {op} failed id={id}: {e!r}")
            return None

    async def _cache_read(self, op: str, id: str):
        return await self._cache_call(op, id)

    async def _persist_context(self, id: str, context: EncryptionContext) -> None:
        header = WrappedKey(key=hexe(context.header.key), iv=hexe(context.header.iv))
        await self._cache_call("persist_decrypted_key", id, hexe(context.key), hexe(context.iv), header)

    async def _persist_wrapped(self, record: KeyRecord) -> None:
        await self._cache_call("persist_encrypted_key", record.id, record.key, record.iv)

    async def _remember(self, record: KeyRecord, server: Server, context: EncryptionContext) -> None:
        # material wrapped for a remote party is only cached in wrapped form
        if isinstance(server, CurrentServer):
            await self._persist_context(record.id, context)
        else:
            await self._persist_wrapped(record)

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------
    async def get_key(self, id: str) -> KeyRecord:
        record = self._keys.get(id)
        if record is not None:
            return record

        cached = await self._cache_read("get_encrypted_key", id)
        record = KeyRecord.from_dict(await self.fetch("GET", f"/keys/{id}"))
        if cached is not None:
            # a locally rotated wrap may be newer than what the store returned
            record = record.with_wrapped(cached.key, cached.iv)
        else:
            await self._persist_wrapped(record)

        self._keys[id] = record
        return record

    async def decrypt_key(self, key: Union[str, KeyRecord]) -> EncryptionContext:
        self._require_rosters()
        record = key if isinstance(key, KeyRecord) else self._keys.get(key)
        key_id = record.id if record else key
        if record is not None:
            self._require_current(record)

        cached = await self._cache_read("get_decrypted_key", key_id)
        if cached is not None:
            try:
                context = EncryptionContext(
                    header=EncryptedHeader(key=hexd(cached.header.key), iv=hexd(cached.header.iv)),
                    key=hexd(cached.key),
                    iv=hexd(cached.iv),
                )
                log.debug(f"[KEY CACHE] hit id={key_id}")
                return context
            except ValueError:
                log.warning(f"[KEY CACHE] undecodable entry id={key_id}")

        if record is None:
            record = await self.get_key(key_id)
        context = self._require_current(record).decrypt_context(record.header)
        await self._persist_context(key_id, context)
        return context

    def _require_current(self, record: KeyRecord) -> CurrentServer:
        server = self._find_server(record.server)
        if not isinstance(server, CurrentServer):
            raise PreconditionError(f"Server with name {record.server} doesn't contain a private key.")
        return server

    async def _create_key(self, server: Server, metadata: Optional[dict],
                          context: Optional[EncryptionContext]) -> Tuple[KeyRecord, EncryptionContext]:
        context = server.wrap(context.key, context.iv) if context else server.create_context()
        body = {
            "server": server.name,
            "key": hexe(context.header.key),
            "iv": hexe(context.header.iv),
            "metadata": metadata or {},
        }
        record = KeyRecord.from_dict(await self.fetch("POST", "/keys", body))
        self._keys[record.id] = record
        await self._remember(record, server, context)
        log.info(f"[KEY] created id={record.id} server={server.name}")
        return record, context

    async def insert_key(self, server: str, metadata: Optional[dict] = None,
                         context: Optional[EncryptionContext] = None) -> KeyRecord:
        record, _ = await self._create_key(self._find_server(server), metadata, context)
        return record

    async def patch_key(self, id: str, metadata: Optional[dict] = None,
                        context: Optional[EncryptionContext] = None, server: Optional[str] = None) -> KeyRecord:
        if metadata is None and context is None and server is None:
            raise PreconditionError("patch_key requires at least one of metadata, context or server.")

        body: Dict[str, Any] = {}
        if metadata is not None:
            body["metadata"] = metadata

        new_context = None
        if server is not None or context is not None:
            target = self._find_server(server or (await self.get_key(id)).server)
            if context is None:
                context = await self._current_material(id)
            new_context = target.wrap(context.key, context.iv) if context else target.create_context()
            body.update(server=target.name, key=hexe(new_context.header.key), iv=hexe(new_context.header.iv))

        record = KeyRecord.from_dict(await self.fetch("PATCH", f"/keys/{id}", body))
        self._keys[id] = record
        if new_context is not None:
            # replace the cached context so no stale material outlives the rewrap
            await self._persist_context(id, new_context)
        else:
            await self._persist_wrapped(record)
        log.info(f"[KEY] patched id={id} fields={sorted(body)}")
        return record

    async def _current_material(self, id: str) -> Optional[EncryptionContext]:
        """
        Unwrapped material of key ``id`` for a rewrap, or ``None`` when no
        local party can unwrap it. In that case the rewrap falls back to fresh
        material and objects sealed under the old material become unreadable.
        """
        try:
            return await self.decrypt_key(id)
        except PreconditionError as e:
            log.warning(f"[KEY] id={id} cannot be unwrapped locally, rotating to fresh material: {e}")
            return None

    async def delete_key(self, id: str) -> None:
        await self.fetch("DELETE", f"/keys/{id}")
        self._keys.pop(id, None)

    async def _new_key(self, key_server: Optional[str], key_metadata: Optional[dict],
                       context: Optional[EncryptionContext], fallback_key_id: Optional[str]):
        name = key_server
        if name is None and fallback_key_id is not None:
            name = (await self.get_key(fallback_key_id)).server
        if name is None:
            name = self.default_current_server_name()
        record, context = await self._create_key(self._find_server(name), key_metadata, context)
        return record.id, context

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------
    def _invalidate(self, *parents: Optional[str]) -> None:
        for parent in parents:
            if parent is not None:
                self._relations.pop(parent, None)

    def _seal(self, context: EncryptionContext, content: Any) -> Dict[str, str]:
        sealed = encrypt(context, json.dumps(content).encode("utf-8"), self.provider)
        return {"auth_tag": hexe(sealed.auth_tag), "content": hexe(sealed.content)}

    async def get_object(self, id: str) -> ObjectRecord:
        obj = self._objects.get(id)
        if obj is None:
            obj = ObjectRecord.from_dict(await self.fetch("GET", f"/objects/{id}"))
            self._objects[id] = obj
        return obj

    async def get_related_objects(self, parent_id: str) -> List[ObjectRecord]:
        ids = self._relations.get(parent_id)
        if ids is not None and all(i in self._objects for i in ids):
            return [self._objects[i] for i in ids]

        data = await self.fetch("GET", f"/objects/{parent_id}/related")
        objects = [ObjectRecord.from_dict(item) for item in data or []]
        for obj in objects:
            self._objects[obj.id] = obj
        self._relations[parent_id] = [obj.id for obj in objects]
        return objects

    async def insert_object(self, content: Any, related_object_id: Optional[str] = None,
                            metadata: Optional[dict] = None, key_id: Optional[str] = None,
                            key_server: Optional[str] = None, key_metadata: Optional[dict] = None,
                            context: Optional[EncryptionContext] = None) -> ObjectRecord:
        """
        Encrypt ``content`` (any JSON value) and store it.

        With ``key_id`` the existing key is reused; otherwise a new key is
        created for ``key_server`` (default: first current server).
        """
        if key_id is not None:
            context = context or await self.decrypt_key(key_id)
        else:
            key_id, context = await self._new_key(key_server, key_metadata, context, None)

        body = {
            "key_id": key_id,
            **self._seal(context, content),
            "metadata": metadata or {},
            "related_object_id": related_object_id,
        }
        obj = ObjectRecord.from_dict(await self.fetch("POST", "/objects", body))
        self._objects[obj.id] = obj
        self._invalidate(obj.related_object_id)
        log.info(f"[OBJECT] created id={obj.id} key={key_id} parent={obj.related_object_id}")
        return obj

    async def patch_object(self, id: str, content: Any = _UNSET, metadata: Optional[dict] = None,
                           related_object_id: Optional[str] = None, key_id: Optional[str] = None,
                           key_server: Optional[str] = None, key_metadata: Optional[dict] = None,
                           fallback_key_id: Optional[str] = None,
                           context: Optional[EncryptionContext] = None) -> ObjectRecord:
        """
        Mutate an object in place.

        The object's key is reused unless ``key_id`` names another key, or
        ``key_server``/``key_metadata`` ask for a new one. A new key's server
        defaults to the server of ``fallback_key_id`` (itself defaulting to
        the object's current key). Changing the key without new content
        re-encrypts the existing content.
        """
        wants_new_key = key_server is not None or key_metadata is not None
        if (content is _UNSET and metadata is None and related_object_id is None
                and key_id is None and not wants_new_key):
            raise PreconditionError("patch_object requires at least one field to change.")

        existing = await self.get_object(id)
        if key_id is None and wants_new_key:
            key_id, context = await self._new_key(key_server, key_metadata, context,
                                                  fallback_key_id or existing.key_id)
        elif key_id is None:
            key_id = existing.key_id

        if content is _UNSET and key_id != existing.key_id:
            content = await self.decrypt_object(existing)

        body: Dict[str, Any] = {}
        if content is not _UNSET:
            context = context or await self.decrypt_key(key_id)
            body.update(key_id=key_id, **self._seal(context, content))
        if metadata is not None:
            body["metadata"] = metadata
        if related_object_id is not None:
            body["related_object_id"] = related_object_id
        if not body:
            raise PreconditionError("patch_object requires at least one field to change.")

        updated = ObjectRecord.from_dict(await self.fetch("PATCH", f"/objects/{id}", body))
        self._objects[id] = updated
        if updated.related_object_id != existing.related_object_id:
            self._invalidate(existing.related_object_id, updated.related_object_id)
        log.info(f"[OBJECT] patched id={id} fields={sorted(body)}")
        return updated

    async def delete_object(self, id: str) -> None:
        await self.fetch("DELETE", f"/objects/{id}")
        existing = self._objects.pop(id, None)
        listing = [parent for parent, ids in self._relations.items() if id in ids]
        self._invalidate(*listing, existing.related_object_id if existing else None, id)
        log.info(f"[OBJECT] deleted id={id}")

    async def decrypt_object(self, obj: Union[str, ObjectRecord],
                             context: Optional[EncryptionContext] = None) -> Any:
        if isinstance(obj, str):
            obj = await self.get_object(obj)
        context = context or await self.decrypt_key(obj.key_id)
        return json.loads(decrypt(context, obj.payload, self.provider).decode("utf-8"))

    async def decrypt_related_objects(self, parent_id: str) -> List[Any]:
        related = await self.get_related_objects(parent_id)
        key_ids = list(dict.fromkeys(obj.key_id for obj in related))
        contexts = dict(zip(key_ids, await asyncio.gather(*(self.decrypt_key(k) for k in key_ids))))
        return list(await asyncio.gather(*(self.decrypt_object(obj, contexts[obj.key_id]) for obj in related)))

    # ------------------------------------------------------------------
    # Publish / unpublish
    # ------------------------------------------------------------------
    async def publish_object(self, type: str, related_id: str) -> ObjectRecord:
        """
        Hand ``related_id`` over to the remote party.

        The payload is decrypted under its current key, re-encrypted under a
        fresh key wrapped for the remote party, stored as a new child of
        ``related_id``, and a publish job is submitted for the new object.
        """
        source = await self.get_object(related_id)
        payload = await self.decrypt_object(source)

        remote = self._find_server(self.remote_name, remotes_first=True)
        record, context = await self._create_key(remote, {"type": type, "related_id": related_id}, None)
        published = await self.insert_object(
            payload,
            related_object_id=related_id,
            metadata=source.metadata,
            key_id=record.id,
            context=context,
        )

        await self.fetch("POST", "/publish", {"type": type, "related_id": related_id, "object_id": published.id})
        log.info(f"[PUBLISH] type={type} related={related_id} object={published.id} server={remote.name}")
        return published

    async def unpublish_object(self, type: str, related_id: str) -> None:
        await self.fetch("POST", "/unpublish", {"type": type, "related_id": related_id})
        log.info(f"[UNPUBLISH] type={type} related={related_id}")
