# tests/test_crypto.py — Token, TOTP and hashing helpers
import hashlib

import pytest

import crypto_utils

RFC6238_SECRET = b"12345678901234567890"


class TestRandomTokens:
    def test_gen_random_length_and_alphabet(self):
        value = crypto_utils.gen_random(32)
        assert len(value) == 32
        assert all(c in crypto_utils.TOKEN_ALPHABET for c in value)

    def test_login_token_length_range(self):
        for _ in range(20):
            token = crypto_utils.gen_login_token()
            assert 4196 <= len(token) < 6000
            assert token.isalnum()

    def test_tokens_are_unique(self):
        assert crypto_utils.gen_random(32) != crypto_utils.gen_random(32)


class TestTotp:
    @pytest.mark.parametrize("timestamp,expected", [
        (59, "94287082"),
        (1111111109, "07081804"),
        (1111111111, "14050471"),
        (1234567890, "89005924"),
        (2000000000, "69279037"),
    ])
    def test_rfc6238_sha1_vectors(self, timestamp, expected):
        assert crypto_utils.generate_totp(RFC6238_SECRET, timestamp, digits=8) == expected

    def test_six_digit_code_is_suffix_of_eight(self):
        assert crypto_utils.generate_totp(RFC6238_SECRET, 59) == "287082"

    def test_verify_current_step_only(self):
        code = crypto_utils.generate_totp(RFC6238_SECRET, 1_000_000_020)
        assert crypto_utils.verify_totp(code, RFC6238_SECRET, timestamp=1_000_000_020)
        # Same 30s step
        assert crypto_utils.verify_totp(code, RFC6238_SECRET, timestamp=1_000_000_049)
        # Next step is rejected with zero window
        assert not crypto_utils.verify_totp(code, RFC6238_SECRET, timestamp=1_000_000_020 + 30)

    def test_verify_with_window(self):
        code = crypto_utils.generate_totp(RFC6238_SECRET, 1_000_000_020)
        assert crypto_utils.verify_totp(code, RFC6238_SECRET, window=1, timestamp=1_000_000_020 + 30)

    @pytest.mark.parametrize("code", ["", "12345", "1234567", "abcdef", None])
    def test_malformed_codes_rejected(self, code):
        assert not crypto_utils.verify_totp(code, RFC6238_SECRET, timestamp=59)


class TestSecrets:
    def test_secret_is_160_bits(self):
        assert len(crypto_utils.generate_totp_secret()) == 20

    def test_base32_roundtrip_tolerates_case_and_padding(self):
        secret = crypto_utils.generate_totp_secret()
        encoded = crypto_utils.encode_secret(secret)
        assert crypto_utils.decode_secret(encoded.lower().rstrip("=")) == secret

    def test_decode_invalid_secret(self):
        with pytest.raises(ValueError):
            crypto_utils.decode_secret("not base32!!")

    def test_otp_uri(self):
        uri = crypto_utils.otp_uri("JBSWY3DPEHPK3PXP")
        assert uri.startswith("otpauth://totp/Infinity%20Bot%20List%3Astaff%40infinitybots.gg?")
        assert "secret=JBSWY3DPEHPK3PXP" in uri
        assert "issuer=Infinity%20Bot%20List" in uri

    def test_qr_is_svg(self):
        svg = crypto_utils.render_qr_svg("otpauth://totp/test?secret=JBSWY3DPEHPK3PXP")
        assert "<svg" in svg


class TestHashing:
    def test_sha512_file(self, tmp_path):
        path = tmp_path / "blob.bin"
        data = b"arcadia" * 1000
        path.write_bytes(data)
        assert crypto_utils.sha512_file(str(path), block_size=64) == hashlib.sha512(data).hexdigest()

    def test_constant_time_equals(self):
        assert crypto_utils.constant_time_equals("abc", "abc")
        assert not crypto_utils.constant_time_equals("abc", "abd")
