# TOTP utilities (RFC 4226 / RFC 6238), no external deps
import hashlib
import hmac
import secrets
import struct
import time
from urllib.parse import quote

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
DIGITS = 6
PERIOD = 30
ALGORITHM = "SHA1"
DEFAULT_ISSUER = "CAALM"

# Same unreserved set as JavaScript's encodeURIComponent.
_URI_SAFE = "!~*'()"


def base32_decode(secret: str) -> bytes:
    """
    Decode a base32 secret into raw key bytes.

    Characters outside the alphabet (spaces, '=' padding, dashes) are skipped
    silently and trailing bits that do not fill a byte are dropped, so a
    mistyped secret decodes to a different key instead of raising.
    """
    out = bytearray()
    value = 0
    bits = 0
    for char in secret:
        upper = char.upper()
        # Some characters uppercase to two letters (e.g. "ß" -> "SS"); skip them.
        index = ALPHABET.find(upper) if len(upper) == 1 else -1
        if index == -1:
            continue
        value = (value << 5) | index
        bits += 5
        if bits >= 8:
            out.append((value >> (bits - 8)) & 0xFF)
            bits -= 8
            value &= (1 << bits) - 1
    return bytes(out)


def generate_secret(length: int = 32) -> str:
    """
    Generate a random secret over the base32 alphabet.

    Each character comes from one random byte (byte % 32), so this is not a
    base32 encoding of those bytes and must not be paired with
    base32_decode() to round-trip data.
    """
    if length <= 0:
        raise ValueError("secret length must be positive")
    return "".join(ALPHABET[b % len(ALPHABET)] for b in secrets.token_bytes(length))


def generate_hotp(secret: str, counter: int, digits: int = DIGITS) -> str:
    """Generate the HOTP code for a base32 secret and counter."""
    if counter < 0:
        raise ValueError("counter must be a non-negative integer")
    msg = struct.pack(">Q", counter)
    digest = hmac.new(base32_decode(secret), msg, hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    code_int = (
        (digest[offset] & 0x7F) << 24
        | digest[offset + 1] << 16
        | digest[offset + 2] << 8
        | digest[offset + 3]
    )
    return str(code_int % (10 ** digits)).zfill(digits)


def timecode(for_time: float, period: int = PERIOD) -> int:
    return int(for_time // period)


def generate_code(secret: str, for_time: float | None = None, period: int = PERIOD, digits: int = DIGITS) -> str:
    """Generate the TOTP code for the given secret/time."""
    if for_time is None:
        for_time = time.time()
    return generate_hotp(secret, timecode(for_time, period), digits=digits)


def verify_code(
    secret: str,
    code: str,
    window: int = 1,
    for_time: float | None = None,
    period: int = PERIOD,
    digits: int = DIGITS,
) -> bool:
    """
    Verify a TOTP code allowing +/- window steps for clock skew.

    Codes are compared as exact strings. A code that was already accepted
    inside the window verifies again; callers that need replay protection
    must remember the last accepted counter themselves.
    """
    if not isinstance(code, str):
        return False
    if for_time is None:
        for_time = time.time()
    counter = timecode(for_time, period)
    submitted = code.encode("utf-8")
    for offset in range(-window, window + 1):
        candidate = counter + offset
        if candidate < 0:
            continue
        expected = generate_hotp(secret, candidate, digits=digits)
        if hmac.compare_digest(expected.encode("utf-8"), submitted):
            return True
    return False


def generate_qr_url(secret: str, account_name: str, issuer: str = DEFAULT_ISSUER) -> str:
    """Build the otpauth:// URI that authenticator apps scan from a QR code."""
    enc_secret = quote(secret, safe=_URI_SAFE)
    enc_account = quote(account_name, safe=_URI_SAFE)
    enc_issuer = quote(issuer, safe=_URI_SAFE)
    return (
        f"otpauth://totp/{enc_issuer}:{enc_account}"
        f"?secret={enc_secret}&issuer={enc_issuer}"
        f"&algorithm={ALGORITHM}&digits={DIGITS}&period={PERIOD}"
    )
