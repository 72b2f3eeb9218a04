"""Tests for sealed-box encryption of secret values."""
import base64

import pytest
from nacl import public

from gh_secret_sync.secrets.domains.errors import EncryptionError
from gh_secret_sync.secrets.domains.models import PublicKey
from gh_secret_sync.secrets.domains.sealer import seal


@pytest.fixture
def key_pair():
    """A throwaway key pair standing in for a repository's sealing key."""
    private_key = public.PrivateKey.generate()
    encoded = base64.b64encode(bytes(private_key.public_key)).decode("utf-8")
    return private_key, PublicKey(key_id="568250167242549743", key=encoded)


def _open(private_key, payload):
    return public.SealedBox(private_key).decrypt(base64.b64decode(payload.encrypted_value)).decode("utf-8")


class TestSeal:
    def test_round_trips_with_private_key(self, key_pair):
        private_key, key = key_pair

        payload = seal(key, "DEPLOY_KEY", "hunter2")

        assert _open(private_key, payload) == "hunter2"

    def test_payload_carries_name_and_key_id(self, key_pair):
        _, key = key_pair

        payload = seal(key, "DEPLOY_KEY", "v")

        assert payload.name == "DEPLOY_KEY"
        assert payload.key_id == "568250167242549743"

    def test_ciphertext_differs_every_call(self, key_pair):
        """Sealing is non-deterministic, and both outputs are valid base64."""
        _, key = key_pair

        first = seal(key, "A", "same value")
        second = seal(key, "A", "same value")

        assert first.encrypted_value != second.encrypted_value
        base64.b64decode(first.encrypted_value, validate=True)
        base64.b64decode(second.encrypted_value, validate=True)

    def test_multiline_unicode_value(self, key_pair):
        private_key, key = key_pair
        value = "-----BEGIN KEY-----\nünïcødé ✓\n-----END KEY-----"

        assert _open(private_key, seal(key, "CERT", value)) == value

    def test_invalid_base64_key(self):
        with pytest.raises(EncryptionError) as exc_info:
            seal(PublicKey(key_id="1", key="not base64!"), "A", "v")

        assert "1" in str(exc_info.value)

    def test_short_key(self):
        short = base64.b64encode(b"\x01" * 16).decode("utf-8")

        with pytest.raises(EncryptionError) as exc_info:
            seal(PublicKey(key_id="1", key=short), "A", "v")

        assert "32" in str(exc_info.value)
