import pytest

from telentir_core.crypto import (
    aead_decrypt, aead_encrypt, rsa_generate, rsa_unwrap, rsa_wrap, sign_jwt, verify_jwt,
)
from telentir_core.errors import CryptoError
from telentir_core.utils import b64url, b64url_decode, hexd, hexe


def test_wrap_unwrap():
    sk, pk = rsa_generate()
    wrapped = rsa_wrap(pk, b"k" * 32)
    assert wrapped != b"k" * 32
    assert rsa_unwrap(sk, wrapped) == b"k" * 32


def test_unwrap_with_wrong_key_fails():
    _, pk = rsa_generate()
    other_sk, _ = rsa_generate()
    with pytest.raises(CryptoError):
        rsa_unwrap(other_sk, rsa_wrap(pk, b"secret"))


def test_encrypt_decrypt():
    key, iv = b"\x01" * 32, b"\x02" * 12
    tag, ct = aead_encrypt(key, iv, b'{"msg":"hi"}')
    assert len(tag) == 16
    assert aead_decrypt(key, iv, tag, ct) == b'{"msg":"hi"}'


def test_tampered_ciphertext_fails():
    key, iv = b"\x01" * 32, b"\x02" * 12
    tag, ct = aead_encrypt(key, iv, b"payload")
    with pytest.raises(CryptoError):
        aead_decrypt(key, iv, tag, bytes([ct[0] ^ 1]) + ct[1:])


def test_sign_verify_jwt():
    sk, pk = rsa_generate()
    token = sign_jwt(sk, {"data": "abc"}, ttl=60, now=1_000)
    claims = verify_jwt(pk, token, now=1_030)
    assert claims == {"data": "abc", "iat": 1_000, "exp": 1_060}


def test_expired_jwt_rejected():
    sk, pk = rsa_generate()
    token = sign_jwt(sk, {"data": "abc"}, ttl=60, now=1_000)
    with pytest.raises(CryptoError):
        verify_jwt(pk, token, now=1_060)


def test_encodings():
    assert hexd(hexe(b"\x00\xffab")) == b"\x00\xffab"
    assert "=" not in b64url(b"\xff\xfe")
    assert b64url_decode(b64url(b"\xff\xfe")) == b"\xff\xfe"
