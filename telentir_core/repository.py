# telentir_core/repository.py
from __future__ import annotations
from typing import Any, Dict, List, Union
import asyncio

from .errors import PreconditionError
from .models import ObjectRecord
from .object_manager import ObjectManager


class ObjectRepository:
    """
    Store-bound view over an ``ObjectManager``.

    Every object of a named store is a child of the store's root object and
    is encrypted with the store's default key unless updated otherwise.
    Decrypted payloads are returned as dicts with the object ``id`` merged in.
    """

    def __init__(self, manager: ObjectManager, name: str, root_id: str, default_key: str):
        self.manager = manager
        self.name = name
        self.root_id = root_id
        self.default_key = default_key

    @classmethod
    def for_store(cls, manager: ObjectManager, name: str) -> "ObjectRepository":
        store = manager.stores.get(name)
        if store is None:
            raise PreconditionError(f"Unknown store '{name}'.")
        return cls(manager, name, store.id, store.default_key)

    async def _owned(self, id: str) -> ObjectRecord:
        obj = await self.manager.get_object(id)
        if obj.related_object_id != self.root_id:
            raise PreconditionError(f"'{id}' is not a valid instance of {self.name}")
        return obj

    async def all(self) -> List[Dict[str, Any]]:
        related = await self.manager.get_related_objects(self.root_id)
        key_ids = list(dict.fromkeys(obj.key_id for obj in related))
        contexts = dict(zip(key_ids, await asyncio.gather(*(self.manager.decrypt_key(k) for k in key_ids))))

        async def _decrypt(obj: ObjectRecord) -> Dict[str, Any]:
            return {**await self.manager.decrypt_object(obj, contexts[obj.key_id]), "id": obj.id}

        return list(await asyncio.gather(*(_decrypt(obj) for obj in related)))

    async def get(self, id: str) -> Dict[str, Any]:
        obj = await self._owned(id)
        return {**await self.manager.decrypt_object(obj), "id": obj.id}

    async def insert(self, payload: Dict[str, Any]) -> str:
        obj = await self.manager.insert_object(payload, related_object_id=self.root_id, key_id=self.default_key)
        return obj.id

    async def update(self, id: str, payload: Dict[str, Any]) -> None:
        obj = await self._owned(id)
        await self.manager.patch_object(id, content=payload, key_id=obj.key_id)

    async def delete(self, id: str) -> None:
        await self._owned(id)
        await self.manager.delete_object(id)

    async def publish(self, id: Union[str, ObjectRecord]) -> ObjectRecord:
        """Trigger downstream jobs (e.g. campaign execution) for the object."""
        return await self.manager.publish_object(self.name, id if isinstance(id, str) else id.id)

    async def unpublish(self, id: Union[str, ObjectRecord]) -> None:
        await self.manager.unpublish_object(self.name, id if isinstance(id, str) else id.id)
