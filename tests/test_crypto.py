"""Tests for messageflow/storage/crypto.py: AES-GCM secret encryption."""

import base64

import pytest

from messageflow.storage.crypto import NONCE_SIZE, SecretCipher, SecretError

from tests.conftest import MASTER_KEY


@pytest.fixture
def cipher():
    return SecretCipher(MASTER_KEY)


class TestSecretCipher:

    def test_short_master_key_rejected(self):
        with pytest.raises(SecretError):
            SecretCipher("too-short")

    def test_decrypt_recovers_plaintext(self, cipher):
        assert cipher.decrypt(cipher.encrypt("sk-live-abc")) == "sk-live-abc"

    def test_ciphertext_is_unpadded_urlsafe(self, cipher):
        encoded = cipher.encrypt("sk-live-abc")
        assert "=" not in encoded
        assert "+" not in encoded and "/" not in encoded
        assert "sk-live-abc" not in encoded

    def test_nonce_prefix_and_tag(self, cipher):
        encoded = cipher.encrypt("abc")
        raw = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))
        # nonce + plaintext + 16-byte tag
        assert len(raw) == NONCE_SIZE + 3 + 16

    def test_fresh_nonce_each_time(self, cipher):
        assert cipher.encrypt("same") != cipher.encrypt("same")

    def test_only_first_32_bytes_used(self, cipher):
        longer = SecretCipher(MASTER_KEY + "ignored-suffix")
        assert longer.decrypt(cipher.encrypt("k")) == "k"

    def test_wrong_key_fails(self, cipher):
        other = SecretCipher("f" * 32)
        with pytest.raises(SecretError):
            other.decrypt(cipher.encrypt("k"))

    def test_tampered_ciphertext_fails(self, cipher):
        encoded = cipher.encrypt("secret")
        tampered = encoded[:-2] + ("A" if encoded[-2] != "A" else "B") + encoded[-1]
        with pytest.raises(SecretError):
            cipher.decrypt(tampered)

    @pytest.mark.parametrize("value", ["", "abc", "sk-plaintext-seed-key"])
    def test_garbage_rejected(self, cipher, value):
        with pytest.raises(SecretError):
            cipher.decrypt(value)
