# twofactor/totp.py
# RFC 4226 / RFC 6238 one-time password utilities
import hashlib
import hmac
import logging
import re
import secrets
import struct
import time
from typing import Callable, List, Optional
from urllib.parse import quote

logger = logging.getLogger(__name__)

BASE32_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
BASE36_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"

DEFAULT_STEP = 30
DEFAULT_DIGITS = 6
BACKUP_CODE_LENGTH = 8

_NOT_BASE32 = re.compile(r"[^A-Z2-7]")
_TOKEN_RE = re.compile(r"[0-9]{6}")
_BACKUP_CODE_RE = re.compile(r"[A-Za-z0-9]{6,10}")

RandomBytes = Callable[[int], bytes]
HmacSha1 = Callable[[bytes, bytes], bytes]


class InvalidSecretError(ValueError):
    """The shared secret contains no usable Base32 symbols."""


def hmac_sha1(key: bytes, msg: bytes) -> bytes:
    return hmac.new(key, msg, hashlib.sha1).digest()


def decode_base32(value: str) -> bytes:
    """Decode a Base32 secret, ignoring anything outside the alphabet.

    Never raises: an empty or fully invalid string gives ``b""``.
    """
    cleaned = _NOT_BASE32.sub("", (value or "").upper())
    out = bytearray()
    buffer = 0
    bits = 0
    for ch in cleaned:
        buffer = (buffer << 5) | BASE32_ALPHABET.index(ch)
        bits += 5
        if bits >= 8:
            bits -= 8
            out.append((buffer >> bits) & 0xFF)
            buffer &= (1 << bits) - 1
    return bytes(out)


def generate_secret(length: int = 20, randbytes: RandomBytes = secrets.token_bytes) -> str:
    """Generate a Base32 secret whose length is a multiple of 8."""
    if length < 1:
        raise ValueError("secret length must be positive")
    chars = [BASE32_ALPHABET[b % 32] for b in randbytes(length)]
    pad = -len(chars) % 8
    if pad:
        chars.extend(BASE32_ALPHABET[b % 32] for b in randbytes(pad))
    return "".join(chars)


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(BASE36_ALPHABET[rem])
    return "".join(reversed(digits))


def generate_backup_codes(count: int = 10, randbytes: RandomBytes = secrets.token_bytes) -> List[str]:
    """Generate ``count`` 8-character recovery codes from 4 random bytes each.

    Duplicates are not filtered out.
    """
    if count < 1:
        return []
    raw = randbytes(count * 4)
    codes = []
    for i in range(count):
        value = struct.unpack(">I", raw[i * 4:i * 4 + 4])[0]
        codes.append(_base36(value)[:BACKUP_CODE_LENGTH].rjust(BACKUP_CODE_LENGTH, "0"))
    return codes


def _totp_digest(key: bytes, for_time: float, step: int, hmac_fn: HmacSha1) -> bytes:
    counter = int(for_time // step)
    msg = struct.pack(">II", counter // 2**32, counter % 2**32)
    return hmac_fn(key, msg)


def generate_totp(
    secret: str,
    for_time: Optional[float] = None,
    step: int = DEFAULT_STEP,
    digits: int = DEFAULT_DIGITS,
    hmac_sha1: HmacSha1 = hmac_sha1,
) -> str:
    """Generate the TOTP code for the given secret/time."""
    if for_time is None:
        for_time = time.time()
    if for_time < 0:
        raise ValueError("timestamp must not be negative")
    key = decode_base32(secret)
    if not key:
        raise InvalidSecretError("secret does not decode to any key bytes")

    digest = _totp_digest(key, for_time, step, hmac_sha1)
    offset = digest[19] & 0x0F
    code_int = struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF
    return str(code_int % (10 ** digits)).zfill(digits)


def constant_time_compare(a: str, b: str) -> bool:
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def verify_totp(
    secret: str,
    code: str,
    window: int = 1,
    step: int = DEFAULT_STEP,
    digits: int = DEFAULT_DIGITS,
    for_time: Optional[float] = None,
    hmac_sha1: HmacSha1 = hmac_sha1,
) -> bool:
    """Verify a TOTP code allowing +/- window steps for clock skew."""
    if not isinstance(secret, str) or not isinstance(code, str) or not secret or not code:
        return False
    now = int(time.time() if for_time is None else for_time)

    for offset in range(-window, window + 1):
        check_time = now + offset * step
        if check_time < 0:
            continue
        try:
            expected = generate_totp(secret, check_time, step=step, digits=digits, hmac_sha1=hmac_sha1)
        except InvalidSecretError:
            logger.warning("TOTP verification attempted with an undecodable secret")
            return False
        if constant_time_compare(code, expected):
            return True
    return False


def seconds_remaining(for_time: Optional[float] = None, step: int = DEFAULT_STEP) -> int:
    """Seconds left before the code for ``for_time`` rolls over."""
    if for_time is None:
        for_time = time.time()
    return step - int(for_time) % step


def provisioning_uri(issuer: str, account_name: str, secret: str) -> str:
    """Build the otpauth:// URI that authenticator apps import from a QR code."""
    enc_issuer = _uri_component(issuer)
    enc_account = _uri_component(account_name)
    enc_secret = _uri_component(secret)
    return (
        f"otpauth://totp/{enc_issuer}:{enc_account}"
        f"?secret={enc_secret}&issuer={enc_issuer}&algorithm=SHA1&digits=6&period=30"
    )


def _uri_component(value: str) -> str:
    # same reserved set as JavaScript's encodeURIComponent
    return quote(value, safe="!*'()~")


def is_valid_token_format(token) -> bool:
    return isinstance(token, str) and _TOKEN_RE.fullmatch(token) is not None


def is_valid_backup_code(code) -> bool:
    return isinstance(code, str) and _BACKUP_CODE_RE.fullmatch(code) is not None
