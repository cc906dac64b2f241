"""
telentir_core.errors
--------------------
Error taxonomy shared by the orchestrator, trust parties and caches.
Transport failures live in telentir_core.transport.transport_base.
"""


class TelentirError(Exception):
    pass


class PreconditionError(TelentirError):
    """A call was made before required state existed, or with no effect."""


class CryptoError(TelentirError):
    """Unwrapping, decryption, authentication or key parsing failed."""
