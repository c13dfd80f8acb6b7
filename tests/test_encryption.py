"""
Tests du chiffrement des gabarits
"""
import numpy as np
import pytest

from app.exceptions import DecryptionError, InvalidInput
from app.services.encryption_service import (
    EncryptedTemplate, NONCE_SIZE, SCHEME, TemplateCodec, template_aad
)


@pytest.fixture
def codec():
    return TemplateCodec("phrase-secrete-de-test")


@pytest.fixture
def embedding():
    rng = np.random.default_rng(42)
    vector = rng.normal(size=128)
    return vector / np.linalg.norm(vector)


class TestTemplateCodec:

    def test_round_trip(self, codec, embedding):
        encrypted = codec.encode(embedding)

        assert encrypted.scheme == SCHEME
        assert len(encrypted.nonce) == NONCE_SIZE
        assert np.array_equal(codec.decode(encrypted, dimension=128), embedding)

    def test_ciphertext_does_not_contain_plaintext(self, codec, embedding):
        encrypted = codec.encode(embedding)
        assert codec.serialize(embedding) not in encrypted.ciphertext

    def test_fresh_nonce_per_encryption(self, codec, embedding):
        first = codec.encode(embedding)
        second = codec.encode(embedding)

        assert first.nonce != second.nonce
        assert first.ciphertext != second.ciphertext

    def test_wrong_key_fails(self, codec, embedding):
        encrypted = codec.encode(embedding)
        with pytest.raises(DecryptionError):
            TemplateCodec("une-autre-cle").decode(encrypted)

    def test_tampered_ciphertext_fails(self, codec, embedding):
        encrypted = codec.encode(embedding)
        tampered = bytearray(encrypted.ciphertext)
        tampered[0] ^= 0x01

        with pytest.raises(DecryptionError):
            codec.decode(EncryptedTemplate(ciphertext=bytes(tampered), nonce=encrypted.nonce))

    def test_template_bound_to_owner_and_version(self, codec, embedding):
        encrypted = codec.encode(embedding, associated_data=template_aad(1, "grid-pool-v1"))

        assert np.array_equal(
            codec.decode(encrypted, associated_data=template_aad(1, "grid-pool-v1")), embedding
        )
        with pytest.raises(DecryptionError):
            codec.decode(encrypted, associated_data=template_aad(2, "grid-pool-v1"))
        with pytest.raises(DecryptionError):
            codec.decode(encrypted, associated_data=template_aad(1, "dlib-resnet-v1"))

    def test_unknown_scheme_fails(self, codec, embedding):
        encrypted = codec.encode(embedding)
        with pytest.raises(DecryptionError):
            codec.decode(EncryptedTemplate(encrypted.ciphertext, encrypted.nonce, scheme="AES-CBC-ZERO-IV"))

    def test_dimension_mismatch_fails(self, codec, embedding):
        encrypted = codec.encode(embedding)
        with pytest.raises(DecryptionError):
            codec.decode(encrypted, dimension=64)

    def test_raw_base64_key_is_used_directly(self, embedding):
        key = TemplateCodec.generate_key()
        encrypted = TemplateCodec(key).encode(embedding)

        assert np.array_equal(TemplateCodec(key).decode(encrypted), embedding)

    def test_empty_embedding_is_invalid(self, codec):
        with pytest.raises(InvalidInput):
            codec.encode([])
