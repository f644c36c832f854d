"""Tests for credential encryption at rest."""

import base64

import pytest

from pix_gateway.security.cipher import (
    CredentialCipher,
    DecryptionError,
    InvalidKeyError,
    generate_key,
    generate_key_base64,
)


@pytest.fixture
def cipher() -> CredentialCipher:
    return CredentialCipher(generate_key())


class TestRoundTrip:
    def test_ascii_secret(self, cipher):
        assert cipher.decrypt(cipher.encrypt("client-secret-123")) == "client-secret-123"

    def test_unicode_secret(self, cipher):
        secret = "senha-çãõ-€-🔐"
        assert cipher.decrypt(cipher.encrypt(secret)) == secret

    def test_empty_string_passes_through(self, cipher):
        assert cipher.encrypt("") == ""
        assert cipher.decrypt("") == ""

    def test_pem_blob(self, cipher, mtls_pair):
        assert cipher.decrypt_bytes(cipher.encrypt_bytes(mtls_pair.private_key)) == mtls_pair.private_key

    def test_empty_bytes_pass_through(self, cipher):
        assert cipher.encrypt_bytes(b"") == b""
        assert cipher.decrypt_bytes(b"") == b""


class TestTokenFormat:
    def test_fresh_nonce_per_call(self, cipher):
        assert cipher.encrypt("same") != cipher.encrypt("same")

    def test_layout_is_nonce_ciphertext_tag(self, cipher):
        raw = base64.b64decode(cipher.encrypt("abcd"))
        assert len(raw) == 12 + 4 + 16


class TestTampering:
    def test_every_flipped_bit_is_detected(self, cipher):
        raw = bytearray(base64.b64decode(cipher.encrypt("client-secret")))
        for i in range(len(raw)):
            for bit in range(8):
                tampered = bytearray(raw)
                tampered[i] ^= 1 << bit
                with pytest.raises(DecryptionError):
                    cipher.decrypt(base64.b64encode(bytes(tampered)).decode())

    def test_every_flipped_bit_of_the_token_is_detected(self, cipher):
        token = cipher.encrypt("client-secret")
        for i in range(len(token)):
            for bit in range(8):
                tampered = token[:i] + chr(ord(token[i]) ^ (1 << bit)) + token[i + 1 :]
                with pytest.raises(DecryptionError):
                    cipher.decrypt(tampered)

    def test_non_canonical_padding_bits(self, cipher):
        token = cipher.encrypt("client-secret")
        raw = base64.b64decode(token)
        assert len(raw) % 3 == 2
        last = token[-2]
        alphabet = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
        sibling = alphabet[alphabet.index(last) ^ 1]
        forged = token[:-2] + sibling + "="
        assert base64.b64decode(forged) == raw
        with pytest.raises(DecryptionError):
            cipher.decrypt(forged)

    def test_wrong_key(self, cipher):
        token = cipher.encrypt("client-secret")
        with pytest.raises(DecryptionError):
            CredentialCipher(generate_key()).decrypt(token)

    def test_invalid_base64(self, cipher):
        with pytest.raises(DecryptionError):
            cipher.decrypt("not base64 at all!!")

    def test_truncated_token(self, cipher):
        with pytest.raises(DecryptionError):
            cipher.decrypt(base64.b64encode(b"short").decode())


class TestKeys:
    @pytest.mark.parametrize("size", [0, 16, 24, 31, 33, 64])
    def test_rejects_wrong_key_size(self, size):
        with pytest.raises(InvalidKeyError):
            CredentialCipher(b"k" * size)

    def test_rejects_non_bytes_key(self):
        with pytest.raises(InvalidKeyError):
            CredentialCipher("a" * 32)

    def test_from_base64_key(self):
        encoded = generate_key_base64()
        cipher = CredentialCipher.from_base64_key(encoded)
        assert CredentialCipher.from_base64_key(encoded).decrypt(cipher.encrypt("x")) == "x"

    def test_from_base64_key_rejects_garbage(self):
        with pytest.raises(InvalidKeyError):
            CredentialCipher.from_base64_key("%%%")

    def test_from_base64_key_rejects_short_key(self):
        with pytest.raises(InvalidKeyError):
            CredentialCipher.from_base64_key(base64.b64encode(b"k" * 16).decode())

    def test_generated_keys_are_32_random_bytes(self):
        assert len(generate_key()) == 32
        assert generate_key() != generate_key()
        assert len(base64.b64decode(generate_key_base64())) == 32
