"""
Telentir Core Package
=====================
Encrypted object orchestration for the Telentir API.

Provides:
- Trust parties (current / remote servers) and symmetric encryption contexts
- Pluggable key caches (memory, filesystem, Web-Storage-style)
- ObjectManager: key resolution, encrypted object CRUD, publish/unpublish
- ObjectRepository: store-bound facade over ObjectManager
"""

from .cache import FsKeyCache, InMemoryKeyCache, KeyCache, StorageKeyCache, load_key_cache
from .config import LocalAuth, ObjectManagerConfig
from .crypto import CryptoProvider, SoftwareCrypto
from .errors import CryptoError, PreconditionError, TelentirError
from .models import KeyRecord, ObjectRecord, StoreRef
from .object_manager import ObjectManager
from .repository import ObjectRepository
from .servers import CurrentServer, EncryptionContext, RemoteServer, ServerManager
from .transport import HTTPTransport, TransportError

__version__ = "0.1.0"

__all__ = [
    "FsKeyCache",
    "InMemoryKeyCache",
    "KeyCache",
    "StorageKeyCache",
    "load_key_cache",
    "LocalAuth",
    "ObjectManagerConfig",
    "CryptoProvider",
    "SoftwareCrypto",
    "CryptoError",
    "PreconditionError",
    "TelentirError",
    "KeyRecord",
    "ObjectRecord",
    "StoreRef",
    "ObjectManager",
    "ObjectRepository",
    "CurrentServer",
    "EncryptionContext",
    "RemoteServer",
    "ServerManager",
    "HTTPTransport",
    "TransportError",
]
