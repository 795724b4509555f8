# crypto_utils.py — Tokens, TOTP and content hashing for the staff panel
# - Login tokens / chunk ids from the OS CSPRNG
# - RFC 6238 TOTP (HMAC-SHA1, 6 digits, 30s step) with base32 secrets
# - otpauth:// enrollment URIs rendered as SVG QR codes
# - Streaming SHA-512 digests for CDN uploads

import base64
import hashlib
import hmac
import secrets
import string
import struct
import time
from typing import Optional
from urllib.parse import quote

import qrcode
import qrcode.image.svg

TOKEN_ALPHABET = string.ascii_letters + string.digits

TOTP_STEP_SECONDS = 30
TOTP_DIGITS = 6
TOTP_SECRET_BITS = 160

OTP_ISSUER = "Infinity Bot List"
OTP_LABEL = "Infinity Bot List:staff@infinitybots.gg"

LOGIN_TOKEN_MIN_LENGTH = 4196
LOGIN_TOKEN_MAX_LENGTH = 6000


def gen_random(length: int) -> str:
    """Random alphanumeric string of exactly ``length`` characters."""
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def gen_login_token() -> str:
    # Length itself is random so tokens cannot be sized up from the outside
    length = LOGIN_TOKEN_MIN_LENGTH + secrets.randbelow(LOGIN_TOKEN_MAX_LENGTH - LOGIN_TOKEN_MIN_LENGTH)
    return gen_random(length)


# ============================================================
# TOTP
# ============================================================

def generate_totp_secret(bits: int = TOTP_SECRET_BITS) -> bytes:
    return secrets.token_bytes(bits // 8)


def encode_secret(secret: bytes) -> str:
    return base64.b32encode(secret).decode("ascii")


def decode_secret(encoded: str) -> bytes:
    """Decode a base32 secret, tolerating missing padding and lowercase input."""
    cleaned = encoded.strip().replace(" ", "").upper()
    padded = cleaned + "=" * ((8 - len(cleaned) % 8) % 8)
    try:
        return base64.b32decode(padded)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid base32 secret: {e}") from e


def generate_totp(secret: bytes, timestamp: Optional[float] = None, *, step: int = TOTP_STEP_SECONDS,
                  digits: int = TOTP_DIGITS) -> str:
    if timestamp is None:
        timestamp = time.time()
    counter = struct.pack(">Q", int(timestamp // step))
    digest = hmac.new(secret, counter, hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    code = (struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF) % (10 ** digits)
    return str(code).zfill(digits)


def verify_totp(code: str, secret: bytes, *, window: int = 0, timestamp: Optional[float] = None) -> bool:
    """Check ``code`` against the current step, plus ``window`` steps either side."""
    if not code or not code.isdigit() or len(code) != TOTP_DIGITS:
        return False
    now = time.time() if timestamp is None else timestamp
    for offset in range(-window, window + 1):
        expected = generate_totp(secret, now + offset * TOTP_STEP_SECONDS)
        if hmac.compare_digest(expected, code):
            return True
    return False


def otp_uri(secret: str, label: str = OTP_LABEL, issuer: str = OTP_ISSUER) -> str:
    return f"otpauth://totp/{quote(label)}?secret={secret}&issuer={quote(issuer)}"


def render_qr_svg(data: str) -> str:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        image_factory=qrcode.image.svg.SvgPathImage,
    )
    qr.add_data(data)
    qr.make(fit=True)
    return qr.make_image().to_string(encoding="unicode")


# ============================================================
# HASHING
# ============================================================

def sha512_file(path: str, block_size: int = 1024 * 1024) -> str:
    hasher = hashlib.sha512()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(block_size), b""):
            hasher.update(block)
    return hasher.hexdigest()


def constant_time_equals(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))
