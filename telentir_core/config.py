# telentir_core/config.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional
import json, os

from .cache import KeyCache, load_key_cache
from .errors import PreconditionError
from .transport import DEFAULT_API


@dataclass(frozen=True)
class LocalAuth:
    """PEM key pair held locally for a server whose private key the API does not return."""
    public_key: str
    private_key: str


@dataclass
class ObjectManagerConfig:
    api_key: str
    api: str = DEFAULT_API
    local_auth: List[LocalAuth] = field(default_factory=list)
    key_cache: Optional[KeyCache] = None
    timeout: float = 30.0

    def __post_init__(self):
        if not self.api_key:
            raise PreconditionError("ObjectManager requires an api_key.")
        self.api = (self.api or DEFAULT_API).rstrip("/")

    @classmethod
    def from_env(cls, key_cache_config: dict | None = None) -> "ObjectManagerConfig":
        """
        Build a config from TELENTIR_* environment variables.

        TELENTIR_LOCAL_AUTH is a JSON list of {"publicKey", "privateKey"}
        objects. The key cache comes from ``load_key_cache``.
        """
        local_auth = [
            LocalAuth(public_key=item["publicKey"], private_key=item["privateKey"])
            for item in json.loads(os.getenv("TELENTIR_LOCAL_AUTH") or "[]")
        ]
        return cls(
            api_key=os.getenv("TELENTIR_API_KEY", ""),
            api=os.getenv("TELENTIR_API_URL", DEFAULT_API),
            local_auth=local_auth,
            key_cache=load_key_cache(key_cache_config),
            timeout=float(os.getenv("TELENTIR_TIMEOUT", "30")),
        )
