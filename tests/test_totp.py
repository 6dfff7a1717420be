import unittest

from caalm.totp import (
    ALPHABET, PERIOD,
    base32_decode, generate_secret, generate_hotp, generate_code,
    verify_code, generate_qr_url, timecode,
)

# base32 of the ASCII key "12345678901234567890" used by RFC 4226 / RFC 6238
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


class TestBase32Decode(unittest.TestCase):

    def test_rfc_secret(self):
        assert base32_decode(RFC_SECRET) == b"12345678901234567890"

    def test_known_value(self):
        assert base32_decode("JBSWY3DPEHPK3PXP") == b"Hello!\xde\xad\xbe\xef"

    def test_lowercase_and_spaces(self):
        assert base32_decode("gezd gnbv gy3t qojq gezd gnbv gy3t qojq") == b"12345678901234567890"

    def test_padding_and_trailing_bits_dropped(self):
        assert base32_decode("MZXW6===") == b"foo"
        assert base32_decode("MZXW6") == b"foo"

    def test_invalid_characters_skipped(self):
        assert base32_decode("MZ-XW!6") == b"foo"
        assert base32_decode("0189") == b""
        assert base32_decode("") == b""

    def test_multi_letter_uppercase_skipped(self):
        assert base32_decode("\u00df" * 8) == b""
        assert base32_decode("\ufb06" * 8) == b""
        assert base32_decode("MZ\u00dfXW6") == b"foo"


class TestHOTP(unittest.TestCase):

    def test_rfc4226_vectors(self):
        expected = [
            "755224", "287082", "359152", "969429", "338314",
            "254676", "287922", "162583", "399871", "520489",
        ]
        for counter, code in enumerate(expected):
            assert generate_hotp(RFC_SECRET, counter) == code

    def test_deterministic(self):
        assert generate_hotp("JBSWY3DPEHPK3PXP", 42) == generate_hotp("JBSWY3DPEHPK3PXP", 42)

    def test_negative_counter(self):
        with self.assertRaises(ValueError):
            generate_hotp(RFC_SECRET, -1)


class TestTOTP(unittest.TestCase):

    def test_rfc6238_sha1_vectors(self):
        # RFC 6238 appendix B publishes 8 digits; the 6-digit code is the tail.
        vectors = {
            59: "287082",
            1111111109: "081804",
            1111111111: "050471",
            1234567890: "005924",
            2000000000: "279037",
            20000000000: "353130",
        }
        for ts, code in vectors.items():
            assert generate_code(RFC_SECRET, ts) == code

    def test_zero_padded(self):
        code = generate_code(RFC_SECRET, 1234567890)
        assert code == "005924"
        assert len(code) == 6

    def test_time_zero_is_explicit(self):
        assert generate_code(RFC_SECRET, 0) == generate_hotp(RFC_SECRET, 0)

    def test_same_window(self):
        assert timecode(1700000000) == 56666666
        assert generate_code(RFC_SECRET, 1699999980) == generate_code(RFC_SECRET, 1700000009)
        assert timecode(1700000015) == 56666667

    def test_next_window_differs(self):
        assert generate_code(RFC_SECRET, 1111111109) != generate_code(RFC_SECRET, 1111111109 + PERIOD)

    def test_current_code_verifies(self):
        secret = generate_secret()
        assert verify_code(secret, generate_code(secret))

    def test_window_tolerance(self):
        t = 1700000010
        for drift in (-PERIOD, 0, PERIOD):
            assert verify_code(RFC_SECRET, generate_code(RFC_SECRET, t + drift), for_time=t)
        for drift in (-2 * PERIOD, 2 * PERIOD):
            assert not verify_code(RFC_SECRET, generate_code(RFC_SECRET, t + drift), for_time=t)

    def test_window_zero(self):
        t = 1700000010
        assert verify_code(RFC_SECRET, generate_code(RFC_SECRET, t), window=0, for_time=t)
        assert not verify_code(RFC_SECRET, generate_code(RFC_SECRET, t - PERIOD), window=0, for_time=t)

    def test_mismatch_returns_false(self):
        assert not verify_code(RFC_SECRET, "", for_time=59)
        assert not verify_code(RFC_SECRET, "abcdef", for_time=59)
        assert not verify_code(RFC_SECRET, "287082 ", for_time=59)
        assert verify_code(RFC_SECRET, "287082", for_time=59)

    def test_non_string_code_returns_false(self):
        assert not verify_code(RFC_SECRET, 287082, for_time=59)
        assert not verify_code(RFC_SECRET, None, for_time=59)

    def test_first_period_skips_negative_counter(self):
        assert verify_code(RFC_SECRET, "755224", for_time=10)


class TestSecretAndUri(unittest.TestCase):

    def test_secret_alphabet_and_length(self):
        for n in (1, 16, 32, 64):
            secret = generate_secret(n)
            assert len(secret) == n
            assert all(c in ALPHABET for c in secret)

    def test_default_length(self):
        assert len(generate_secret()) == 32

    def test_secret_length_must_be_positive(self):
        with self.assertRaises(ValueError):
            generate_secret(0)

    def test_qr_url(self):
        uri = generate_qr_url("ABC123", "user@x.com", "Issuer")
        assert uri == (
            "otpauth://totp/Issuer:user%40x.com"
            "?secret=ABC123&issuer=Issuer&algorithm=SHA1&digits=6&period=30"
        )

    def test_qr_url_encodes_reserved_characters(self):
        uri = generate_qr_url("AB CD", "jane doe+1@x.com", "CAALM & Co")
        assert uri.startswith("otpauth://totp/CAALM%20%26%20Co:jane%20doe%2B1%40x.com?")
        assert "secret=AB%20CD&issuer=CAALM%20%26%20Co&" in uri

    def test_qr_url_default_issuer(self):
        assert generate_qr_url("ABC", "a").startswith("otpauth://totp/CAALM:a?secret=ABC&issuer=CAALM")


if __name__ == "__main__":
    unittest.main()
