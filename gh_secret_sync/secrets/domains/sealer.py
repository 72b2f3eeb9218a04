"""Sealed-box encryption of secret values for GitHub."""
import base64
import binascii

from nacl import exceptions as nacl_exceptions
from nacl import public

from .errors import EncryptionError
from .models import EncryptedPayload, PublicKey


def seal(public_key: PublicKey, name: str, value: str) -> EncryptedPayload:
    """
    Seal a secret value under a repository or environment public key.

    Uses an anonymous sealed box: only the holder of the matching private
    key can open it and no sender identity is embedded. The ciphertext
    differs on every call.

    Args:
        public_key: Key fetched for the target scope
        name: Secret name, carried through to the payload
        value: Plaintext value; encrypted as UTF-8

    Returns:
        Payload with the base64 ciphertext and the key's identifier

    Raises:
        EncryptionError: If the key is not valid base64 or is too short
    """
    try:
        key_bytes = base64.b64decode(public_key.key, validate=True)
    except (binascii.Error, ValueError) as e:
        raise EncryptionError(f"failed to decode public key {public_key.key_id}: {e}") from e

    if len(key_bytes) < public.PublicKey.SIZE:
        raise EncryptionError(
            f"invalid public key {public_key.key_id}: expected {public.PublicKey.SIZE} bytes, got {len(key_bytes)}"
        )

    try:
        sealed_box = public.SealedBox(public.PublicKey(key_bytes[:public.PublicKey.SIZE]))
        encrypted = sealed_box.encrypt(value.encode("utf-8"))
    except nacl_exceptions.CryptoError as e:
        raise EncryptionError(f"failed to encrypt secret {name}: {e}") from e

    return EncryptedPayload(
        name=name,
        key_id=public_key.key_id,
        encrypted_value=base64.b64encode(encrypted).decode("utf-8"),
    )
