"""
telentir_core.servers
---------------------
Trust parties ("servers"). A ``RemoteServer`` only holds a public key and can
be encrypted *for*; a ``CurrentServer`` also holds the private key, so it can
unwrap contexts wrapped for it and sign assertions.

The two are deliberately unrelated classes: code that wants to unwrap must
check ``isinstance(server, CurrentServer)`` first.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Optional, Union
import json

from .crypto import CryptoProvider, IV_SIZE, KEY_SIZE
from .errors import PreconditionError
from .utils import b64e, hexe


@dataclass(frozen=True)
class EncryptedHeader:
    """Symmetric key and IV, each wrapped for one trust party."""
    key: bytes
    iv: bytes


@dataclass(frozen=True)
class EncryptionContext:
    header: EncryptedHeader
    key: bytes
    iv: bytes


@dataclass(frozen=True)
class EncryptedPayload:
    auth_tag: bytes
    content: bytes


def wrap_context(provider: CryptoProvider, public_key: Any, key: bytes, iv: bytes) -> EncryptionContext:
    header = EncryptedHeader(
        key=provider.wrap(public_key, key),
        iv=provider.wrap(public_key, iv),
    )
    return EncryptionContext(header=header, key=key, iv=iv)


def create_context(provider: CryptoProvider, public_key: Any) -> EncryptionContext:
    return wrap_context(provider, public_key, provider.random_bytes(KEY_SIZE), provider.random_bytes(IV_SIZE))


def encrypt(context: EncryptionContext, data: bytes, provider: CryptoProvider) -> EncryptedPayload:
    auth_tag, content = provider.encrypt(context.key, context.iv, data)
    return EncryptedPayload(auth_tag=auth_tag, content=content)


def decrypt(context: EncryptionContext, payload: EncryptedPayload, provider: CryptoProvider) -> bytes:
    return provider.decrypt(context.key, context.iv, payload.auth_tag, payload.content)


@dataclass
class RemoteServer:
    name: str
    public_key: Any
    provider: CryptoProvider

    kind: ClassVar[str] = "remote"

    def is_current(self) -> bool:
        return False

    def create_context(self) -> EncryptionContext:
        return create_context(self.provider, self.public_key)

    def wrap(self, key: bytes, iv: bytes) -> EncryptionContext:
        return wrap_context(self.provider, self.public_key, key, iv)

    def encrypt_base64(self, payload: Any) -> str:
        """Seal a JSON payload for this party under a throwaway context."""
        context = self.create_context()
        sealed = encrypt(context, json.dumps(payload).encode("utf-8"), self.provider)
        envelope = {
            "key": hexe(context.header.key),
            "iv": hexe(context.header.iv),
            "auth_tag": hexe(sealed.auth_tag),
            "content": hexe(sealed.content),
        }
        return b64e(json.dumps(envelope, separators=(",", ":")).encode("utf-8"))


@dataclass
class CurrentServer:
    name: str
    public_key: Any
    private_key: Any
    provider: CryptoProvider

    kind: ClassVar[str] = "current"

    def is_current(self) -> bool:
        return True

    def create_context(self) -> EncryptionContext:
        return create_context(self.provider, self.public_key)

    def wrap(self, key: bytes, iv: bytes) -> EncryptionContext:
        return wrap_context(self.provider, self.public_key, key, iv)

    def decrypt_context(self, header: EncryptedHeader) -> EncryptionContext:
        return EncryptionContext(
            header=header,
            key=self.provider.unwrap(self.private_key, header.key),
            iv=self.provider.unwrap(self.private_key, header.iv),
        )

    def sign_jwt(self, payload: Dict[str, Any], expires_in: int = 600) -> str:
        return self.provider.sign_assertion(self.private_key, payload, expires_in)


Server = Union[CurrentServer, RemoteServer]


@dataclass(frozen=True)
class SealedAssertion:
    server: str
    jwt: str


class ServerManager:
    """A current (private-keyed) party paired with every known remote party."""

    def __init__(self, self_server: CurrentServer, remotes: List[RemoteServer], provider: CryptoProvider):
        if not isinstance(self_server, CurrentServer):
            raise PreconditionError(f"Server {getattr(self_server, 'name', self_server)!r} doesn't contain a private key.")
        self.self = self_server
        self.remotes = remotes
        self.provider = provider

    def get(self, name: str) -> Optional[RemoteServer]:
        return next((r for r in self.remotes if r.name == name), None)

    def seal(self, payload: Any, remote_name: str, expires_in: int = 600) -> SealedAssertion:
        """Encrypt ``payload`` for ``remote_name`` and sign it as this party."""
        remote = self.get(remote_name)
        if remote is None:
            raise PreconditionError(f"Remote server '{remote_name}' was not found.")
        data = remote.encrypt_base64(payload)
        return SealedAssertion(server=self.self.name, jwt=self.self.sign_jwt({"data": data}, expires_in))
