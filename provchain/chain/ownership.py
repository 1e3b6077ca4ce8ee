"""Ed25519 ownership signatures over record digests.

An owned record carries the raw 32 byte verify key of its owner and a
signature over its ``self_digest``. The digest itself does not cover these
fields, so ownership can be attached without changing the record encoding.
"""

from __future__ import annotations

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

OWNER_KEY_SIZE = 32
SIGNATURE_SIZE = 64


def generate_keypair() -> tuple[SigningKey, VerifyKey]:
    """Generate an Ed25519 keypair."""

    signing_key = SigningKey.generate()
    return signing_key, signing_key.verify_key


def owner_bytes(owner: bytes | VerifyKey | SigningKey) -> bytes:
    """Raw verify key bytes identifying ``owner``."""

    if isinstance(owner, SigningKey):
        owner = owner.verify_key
    if isinstance(owner, VerifyKey):
        return bytes(owner)
    if not isinstance(owner, (bytes, bytearray, memoryview)):
        raise TypeError("Owners must be given as verify keys, signing keys or raw key bytes")
    return bytes(owner)


def sign_digest(signing_key: SigningKey, digest: bytes) -> bytes:
    return signing_key.sign(digest).signature


def verify_digest_signature(owner: bytes, digest: bytes, signature: bytes) -> bool:
    """Return ``True`` when ``signature`` is ``owner``'s signature over ``digest``."""

    try:
        VerifyKey(owner).verify(digest, signature)
    except (BadSignatureError, ValueError, TypeError):
        return False
    return True


__all__ = [
    "OWNER_KEY_SIZE",
    "SIGNATURE_SIZE",
    "generate_keypair",
    "owner_bytes",
    "sign_digest",
    "verify_digest_signature",
]
