"""
telentir_core.crypto
--------------------
Cryptographic capability consumed by the object orchestrator:

- RSA-OAEP (SHA-256): wraps symmetric key material for a trust party
- AES-256-GCM: payload confidentiality, auth tag kept separate
- RS256 compact JWS: time-bounded signed assertions

The orchestrator only depends on the ``CryptoProvider`` protocol, so a
hardware-backed or remote implementation can be swapped in.
"""

from __future__ import annotations
from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable
import json, os, time

from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CryptoError
from .utils import b64url, b64url_decode

KEY_SIZE = 32   # AES-256
IV_SIZE = 12    # GCM nonce
TAG_SIZE = 16


@runtime_checkable
class CryptoProvider(Protocol):
    def parse_public_key(self, encoded: str) -> Any: ...
    def parse_private_key(self, encoded: str) -> Any: ...
    def stringify_public_key(self, key: Any) -> str: ...
    def stringify_private_key(self, key: Any) -> str: ...
    def generate_key_pair(self) -> Tuple[Any, Any]: ...
    def wrap(self, public_key: Any, data: bytes) -> bytes: ...
    def unwrap(self, private_key: Any, data: bytes) -> bytes: ...
    def encrypt(self, key: bytes, iv: bytes, plaintext: bytes) -> Tuple[bytes, bytes]: ...
    def decrypt(self, key: bytes, iv: bytes, auth_tag: bytes, content: bytes) -> bytes: ...
    def sign_assertion(self, private_key: Any, payload: Dict[str, Any], ttl: int) -> str: ...
    def random_bytes(self, n: int) -> bytes: ...


# --------- RSA-OAEP (wrap/unwrap) ----------
_OAEP = padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA256()), algorithm=hashes.SHA256(), label=None)

def rsa_generate(bits: int = 2048) -> Tuple[rsa.RSAPrivateKey, rsa.RSAPublicKey]:
    sk = rsa.generate_private_key(public_exponent=65537, key_size=bits)
    return sk, sk.public_key()

def rsa_wrap(public_key: rsa.RSAPublicKey, data: bytes) -> bytes:
    return public_key.encrypt(data, _OAEP)

def rsa_unwrap(private_key: rsa.RSAPrivateKey, data: bytes) -> bytes:
    try:
        return private_key.decrypt(data, _OAEP)
    except ValueError as e:
        raise CryptoError("Unable to unwrap key material with the supplied private key") from e


# --------- AES-GCM (payload) ----------
def aead_encrypt(key: bytes, iv: bytes, plaintext: bytes, aad: Optional[bytes] = None) -> Tuple[bytes, bytes]:
    """Returns ``(auth_tag, ciphertext)``."""
    sealed = AESGCM(key).encrypt(iv, plaintext, aad)
    return sealed[-TAG_SIZE:], sealed[:-TAG_SIZE]

def aead_decrypt(key: bytes, iv: bytes, auth_tag: bytes, ciphertext: bytes, aad: Optional[bytes] = None) -> bytes:
    try:
        return AESGCM(key).decrypt(iv, ciphertext + auth_tag, aad)
    except InvalidTag as e:
        raise CryptoError("Payload failed authentication (tampered ciphertext or wrong key)") from e
    except ValueError as e:
        raise CryptoError(f"Invalid symmetric key material: {e}") from e


# --------- RS256 assertions ----------
def sign_jwt(private_key: rsa.RSAPrivateKey, payload: Dict[str, Any], ttl: int, now: Optional[int] = None) -> str:
    iat = int(now if now is not None else time.time())
    header = {"alg": "RS256", "typ": "JWT"}
    claims = dict(payload, iat=iat, exp=iat + int(ttl))
    signing_input = ".".join([
        b64url(json.dumps(header, separators=(",", ":")).encode("utf-8")),
        b64url(json.dumps(claims, separators=(",", ":")).encode("utf-8")),
    ])
    sig = private_key.sign(signing_input.encode("ascii"), padding.PKCS1v15(), hashes.SHA256())
    return f"{signing_input}.{b64url(sig)}"

def verify_jwt(public_key: rsa.RSAPublicKey, token: str, now: Optional[int] = None) -> Dict[str, Any]:
    """Verify signature and expiry; returns the claims."""
    try:
        header_b64, claims_b64, sig_b64 = token.split(".")
        public_key.verify(
            b64url_decode(sig_b64),
            f"{header_b64}.{claims_b64}".encode("ascii"),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
        claims = json.loads(b64url_decode(claims_b64))
    except (ValueError, InvalidSignature) as e:
        raise CryptoError("Invalid assertion") from e

    if int(now if now is not None else time.time()) >= claims.get("exp", 0):
        raise CryptoError("Assertion expired")
    return claims


class SoftwareCrypto:
    """
    Default ``CryptoProvider`` backed by the ``cryptography`` package.

    Keys travel as PEM: SubjectPublicKeyInfo for public keys and
    unencrypted PKCS8 for private keys.
    """

    def parse_public_key(self, encoded: str) -> rsa.RSAPublicKey:
        try:
            key = serialization.load_pem_public_key(encoded.encode("ascii"))
        except ValueError as e:
            raise CryptoError("Malformed public key") from e
        if not isinstance(key, rsa.RSAPublicKey):
            raise CryptoError(f"Unsupported public key type {type(key).__name__}")
        return key

    def parse_private_key(self, encoded: str) -> rsa.RSAPrivateKey:
        try:
            key = serialization.load_pem_private_key(encoded.encode("ascii"), password=None)
        except (ValueError, TypeError) as e:
            raise CryptoError("Malformed private key") from e
        if not isinstance(key, rsa.RSAPrivateKey):
            raise CryptoError(f"Unsupported private key type {type(key).__name__}")
        return key

    def stringify_public_key(self, key: rsa.RSAPublicKey) -> str:
        return key.public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("ascii")

    def stringify_private_key(self, key: rsa.RSAPrivateKey) -> str:
        return key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ).decode("ascii")

    def generate_key_pair(self):
        sk, pk = rsa_generate()
        return pk, sk

    def wrap(self, public_key, data: bytes) -> bytes:
        return rsa_wrap(public_key, data)

    def unwrap(self, private_key, data: bytes) -> bytes:
        return rsa_unwrap(private_key, data)

    def encrypt(self, key: bytes, iv: bytes, plaintext: bytes):
        return aead_encrypt(key, iv, plaintext)

    def decrypt(self, key: bytes, iv: bytes, auth_tag: bytes, content: bytes) -> bytes:
        return aead_decrypt(key, iv, auth_tag, content)

    def sign_assertion(self, private_key, payload: Dict[str, Any], ttl: int) -> str:
        return sign_jwt(private_key, payload, ttl)

    def random_bytes(self, n: int) -> bytes:
        return os.urandom(n)
