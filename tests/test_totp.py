import re

import pytest

from twofactor.totp import (
    BASE32_ALPHABET,
    InvalidSecretError,
    constant_time_compare,
    decode_base32,
    generate_backup_codes,
    generate_secret,
    generate_totp,
    is_valid_backup_code,
    is_valid_token_format,
    provisioning_uri,
    seconds_remaining,
    verify_totp,
)

# base32 of the RFC 4226 / RFC 6238 SHA1 seed "12345678901234567890"
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"
DEMO_SECRET = "JBSWY3DPEHPK3PXP"


# ------------------------------------------------------
# Base32
# ------------------------------------------------------
def test_decode_known_values():
    assert decode_base32(DEMO_SECRET) == b"Hello!\xde\xad\xbe\xef"
    assert decode_base32(RFC_SECRET) == b"12345678901234567890"


def test_decode_is_case_insensitive_and_skips_noise():
    assert decode_base32("jbsw y3dp-ehpk 3pxp====") == decode_base32(DEMO_SECRET)


@pytest.mark.parametrize("value", ["", "0189!!", None])
def test_decode_garbage_gives_empty_bytes(value):
    assert decode_base32(value) == b""


def test_decode_drops_trailing_partial_byte():
    # 2 symbols = 10 bits -> one byte
    assert decode_base32("ME") == b"a"


# ------------------------------------------------------
# Generators
# ------------------------------------------------------
def test_generate_secret_shape():
    secret = generate_secret(20)
    assert len(secret) % 8 == 0
    assert len(secret) == 24
    assert all(ch in BASE32_ALPHABET for ch in secret)


def test_generate_secret_uses_injected_random_source():
    calls = []

    def fake(n):
        calls.append(n)
        return bytes(range(n))

    assert generate_secret(20, randbytes=fake) == "ABCDEFGHIJKLMNOPQRSTABCD"
    assert calls == [20, 4]


def test_generate_secret_multiple_of_eight_needs_no_padding():
    calls = []

    def fake(n):
        calls.append(n)
        return bytes(n)

    assert generate_secret(16, randbytes=fake) == "A" * 16
    assert calls == [16]


def test_generate_secret_rejects_empty_length():
    with pytest.raises(ValueError):
        generate_secret(0)


def test_random_provider_failure_propagates():
    def broken(n):
        raise OSError("no entropy")

    with pytest.raises(OSError):
        generate_secret(20, randbytes=broken)
    with pytest.raises(OSError):
        generate_backup_codes(10, randbytes=broken)


def test_generate_backup_codes_shape():
    codes = generate_backup_codes(10)
    assert len(codes) == 10
    for code in codes:
        assert re.fullmatch(r"[0-9A-Z]{8}", code)


def test_generate_backup_codes_known_values():
    raw = b"\x00\x00\x00\x00" + b"\xff\xff\xff\xff" + b"\x00\x00\x00\x24"
    codes = generate_backup_codes(3, randbytes=lambda n: raw[:n])
    assert codes == ["00000000", "01Z141Z3", "00000010"]


# ------------------------------------------------------
# TOTP engine
# ------------------------------------------------------
@pytest.mark.parametrize("timestamp,expected", [
    (59, "94287082"),
    (1111111109, "07081804"),
    (1111111111, "14050471"),
    (1234567890, "89005924"),
    (2000000000, "69279037"),
    (20000000000, "65353130"),
])
def test_rfc6238_sha1_vectors(timestamp, expected):
    assert generate_totp(RFC_SECRET, timestamp, step=30, digits=8) == expected


@pytest.mark.parametrize("counter,expected", [
    (0, "755224"), (1, "287082"), (2, "359152"), (3, "969429"), (4, "338314"),
    (5, "254676"), (6, "287922"), (7, "162583"), (8, "399871"), (9, "520489"),
])
def test_rfc4226_hotp_vectors(counter, expected):
    # step=1 turns the timestamp into the raw HOTP counter
    assert generate_totp(RFC_SECRET, counter, step=1) == expected


def test_code_is_deterministic():
    first = generate_totp(DEMO_SECRET, 59)
    assert first == generate_totp(DEMO_SECRET, 59)
    assert re.fullmatch(r"[0-9]{6}", first)


def test_code_is_stable_within_a_step_and_changes_at_boundary():
    assert generate_totp(RFC_SECRET, 30) == generate_totp(RFC_SECRET, 59) == "287082"
    assert generate_totp(RFC_SECRET, 60) == "359152"


def test_empty_secret_raises_invalid_secret():
    with pytest.raises(InvalidSecretError):
        generate_totp("!!!!", 59)


def test_negative_timestamp_rejected():
    with pytest.raises(ValueError):
        generate_totp(DEMO_SECRET, -1)


def test_injected_hmac_and_truncation_mask():
    digest = b"\x80\x00\x00\x01" + bytes(15) + b"\x00"
    assert generate_totp(DEMO_SECRET, 0, hmac_sha1=lambda k, m: digest) == "000001"

    seen = {}

    def recorder(key, msg):
        seen["key"], seen["msg"] = key, msg
        return bytes(20)

    generate_totp(DEMO_SECRET, 30 * (2**32 + 5), hmac_sha1=recorder)
    assert seen["key"] == b"Hello!\xde\xad\xbe\xef"
    assert seen["msg"] == b"\x00\x00\x00\x01\x00\x00\x00\x05"


# ------------------------------------------------------
# Verifier
# ------------------------------------------------------
NOW = 1_700_000_010


def test_verify_current_code():
    assert verify_totp(DEMO_SECRET, generate_totp(DEMO_SECRET, NOW), for_time=NOW)


def test_verify_real_clock():
    assert verify_totp(DEMO_SECRET, generate_totp(DEMO_SECRET))


@pytest.mark.parametrize("drift", [-29, 29])
def test_verify_accepts_one_step_of_drift(drift):
    code = generate_totp(DEMO_SECRET, NOW + drift)
    assert verify_totp(DEMO_SECRET, code, window=1, for_time=NOW)


def test_verify_rejects_outside_window():
    code = generate_totp(RFC_SECRET, 59)
    assert not verify_totp(RFC_SECRET, code, window=1, for_time=59 + 61)
    assert verify_totp(RFC_SECRET, code, window=3, for_time=59 + 61)


def test_verify_zero_window_only_checks_current_step():
    assert verify_totp(RFC_SECRET, "287082", window=0, for_time=45)
    assert not verify_totp(RFC_SECRET, "755224", window=0, for_time=45)


def test_verify_rejects_wrong_and_empty_input():
    assert not verify_totp(RFC_SECRET, "000000", window=0, for_time=45)
    assert not verify_totp(RFC_SECRET, "", for_time=45)
    assert not verify_totp("", "287082", for_time=45)


def test_verify_with_garbage_secret_is_false():
    assert verify_totp("0000", "123456", for_time=NOW) is False


def test_constant_time_compare():
    assert constant_time_compare("abc", "abc")
    assert constant_time_compare("ümlaut", "ümlaut")
    assert not constant_time_compare("abc", "abd")
    assert not constant_time_compare("abc", "ab")


# ------------------------------------------------------
# Formats / provisioning
# ------------------------------------------------------
@pytest.mark.parametrize("token,ok", [
    ("123456", True),
    ("12345", False),
    ("1234567", False),
    ("12a456", False),
    ("123456\n", False),
    ("١٢٣٤٥٦", False),
    (None, False),
])
def test_is_valid_token_format(token, ok):
    assert is_valid_token_format(token) is ok


@pytest.mark.parametrize("code,ok", [
    ("ABC123", True),
    ("abcd1234", True),
    ("ABCDEFGHIJ", True),
    ("ABC12", False),
    ("ABCDEFGHIJK", False),
    ("ABCD-123", False),
])
def test_is_valid_backup_code(code, ok):
    assert is_valid_backup_code(code) is ok


def test_provisioning_uri_format():
    uri = provisioning_uri("EatLocal", "admin@example.com", "JBSWY3DPEHPK3PXP")
    assert uri == (
        "otpauth://totp/EatLocal:admin%40example.com"
        "?secret=JBSWY3DPEHPK3PXP&issuer=EatLocal&algorithm=SHA1&digits=6&period=30"
    )


def test_provisioning_uri_encodes_like_encode_uri_component():
    uri = provisioning_uri("Eat Local&Co", "a/b", "AB")
    assert uri.startswith("otpauth://totp/Eat%20Local%26Co:a%2Fb?")
    assert "issuer=Eat%20Local%26Co&" in uri


def test_seconds_remaining():
    assert seconds_remaining(60) == 30
    assert seconds_remaining(89) == 1
    assert seconds_remaining(75, step=30) == 15


def test_hmac_provider_failure_propagates():
    def broken(key, msg):
        raise RuntimeError("hmac unavailable")

    with pytest.raises(RuntimeError):
        generate_totp(DEMO_SECRET, NOW, hmac_sha1=broken)
    with pytest.raises(RuntimeError):
        verify_totp(DEMO_SECRET, "123456", for_time=NOW, hmac_sha1=broken)


@pytest.mark.parametrize("secret,code", [
    (DEMO_SECRET, 123456),
    (DEMO_SECRET, None),
    (None, "123456"),
    (b"JBSWY3DPEHPK3PXP", "123456"),
])
def test_verify_non_string_input_is_false(secret, code):
    assert verify_totp(secret, code, for_time=NOW) is False
