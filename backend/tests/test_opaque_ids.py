"""Tests for opaque folder id encryption."""

from clouddrive.core.opaque_ids import OpaqueIdCodec


class TestOpaqueIdCodec:

    def test_roundtrip(self):
        codec = OpaqueIdCodec("secret")
        token = codec.encrypt(42)
        assert codec.decrypt(token) == "42"
        assert codec.decrypt_int(token) == 42

    def test_format_is_iv_and_ciphertext(self):
        iv, cipher = OpaqueIdCodec("secret").encrypt(7).split(":")
        assert len(iv) == 32
        assert len(cipher) % 32 == 0

    def test_random_iv_per_call(self):
        codec = OpaqueIdCodec("secret")
        assert codec.encrypt(1) != codec.encrypt(1)

    def test_none_passes_through(self):
        codec = OpaqueIdCodec("secret")
        assert codec.encrypt(None) is None
        assert codec.decrypt(None) is None

    def test_malformed_tokens_rejected(self):
        codec = OpaqueIdCodec("secret")
        for token in ("", "abc", "zz:yy", "a:b:c", "00" * 16 + ":" + "11" * 5):
            assert codec.decrypt(token) is None

    def test_wrong_key_does_not_yield_an_int(self):
        token = OpaqueIdCodec("secret").encrypt(12345)
        assert OpaqueIdCodec("other-secret").decrypt_int(token) != 12345

    def test_non_numeric_plaintext(self):
        codec = OpaqueIdCodec("secret")
        assert codec.decrypt_int(codec.encrypt("abc")) is None
