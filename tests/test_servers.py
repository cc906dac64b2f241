import json

import pytest

from telentir_core.crypto import verify_jwt
from telentir_core.errors import PreconditionError
from telentir_core.servers import (
    CurrentServer, EncryptedHeader, EncryptedPayload, RemoteServer, ServerManager, decrypt, encrypt,
)
from telentir_core.utils import b64d, b64url_decode, hexd


@pytest.fixture
def current(provider, main_keys):
    return CurrentServer(
        "main",
        provider.parse_public_key(main_keys[0]),
        provider.parse_private_key(main_keys[1]),
        provider,
    )


@pytest.fixture
def remote(provider, remote_keys):
    return RemoteServer("telentir", provider.parse_public_key(remote_keys[0]), provider)


def test_current_server_unwraps_its_own_context(current, provider):
    context = current.create_context()
    restored = current.decrypt_context(context.header)
    assert restored == context

    sealed = encrypt(context, b"hello", provider)
    assert decrypt(restored, sealed, provider) == b"hello"


def test_remote_server_cannot_unwrap(remote):
    context = remote.create_context()
    assert not remote.is_current()
    assert not hasattr(remote, "decrypt_context")
    assert len(context.key) == 32 and len(context.iv) == 12


def test_wrap_reuses_material_for_another_party(current, remote):
    context = remote.create_context()
    rewrapped = current.wrap(context.key, context.iv)
    assert rewrapped.header != context.header
    assert current.decrypt_context(rewrapped.header).key == context.key


def test_server_manager_requires_current(remote, provider):
    with pytest.raises(PreconditionError):
        ServerManager(remote, [remote], provider)


def test_seal_encrypts_for_remote_and_signs(current, remote, provider, remote_keys):
    manager = ServerManager(current, [remote], provider)
    sealed = manager.seal({"type": "prompt", "prompt": "hi"}, "telentir", expires_in=120)

    assert sealed.server == "main"
    claims = verify_jwt(current.public_key, sealed.jwt)
    assert claims["exp"] - claims["iat"] == 120

    # only the remote's private key opens the payload
    envelope = json.loads(b64d(claims["data"]))
    owner = CurrentServer("telentir", remote.public_key, provider.parse_private_key(remote_keys[1]), provider)
    context = owner.decrypt_context(EncryptedHeader(key=hexd(envelope["key"]), iv=hexd(envelope["iv"])))
    plain = decrypt(context, EncryptedPayload(hexd(envelope["auth_tag"]), hexd(envelope["content"])), provider)
    assert json.loads(plain) == {"type": "prompt", "prompt": "hi"}


def test_seal_unknown_remote(current, remote, provider):
    manager = ServerManager(current, [remote], provider)
    assert manager.get("nope") is None
    with pytest.raises(PreconditionError):
        manager.seal({}, "nope")


def test_jwt_header_is_rs256(current):
    token = current.sign_jwt({"data": "x"})
    assert json.loads(b64url_decode(token.split(".")[0])) == {"alg": "RS256", "typ": "JWT"}
