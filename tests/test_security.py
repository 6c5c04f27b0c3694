import json
import re

from license_server.security import (
    derive_license_key, is_license_key_format, is_valid_email, mask_license_key,
    normalize_email, sign_webhook_payload, verify_webhook_signature,
)

SECRET = "whsec_abc"


def test_derive_is_deterministic():
    assert derive_license_key("x@y.com") == derive_license_key("x@y.com")


def test_derive_ignores_case_and_whitespace():
    assert derive_license_key("A@B.com") == derive_license_key("a@b.com")
    assert derive_license_key("  a@b.com ") == derive_license_key("a@b.com")


def test_derive_known_value():
    # md5("test@example.com") = 55502f40dc8b7c769880b10874abc9d0
    key = derive_license_key("test@example.com")
    assert key == "5550-2F40-DC8B-7C76"
    assert len(key) == 19
    assert re.fullmatch(r"[A-F0-9-]+", key)
    assert is_license_key_format(key)


def test_different_emails_different_keys():
    assert derive_license_key("a@x.com") != derive_license_key("b@x.com")


def test_email_helpers():
    assert normalize_email("  Foo@Bar.COM ") == "foo@bar.com"
    assert is_valid_email("foo@bar.com")
    assert not is_valid_email("foo@bar")
    assert not is_valid_email("foo bar@baz.com")
    assert not is_valid_email(None)
    assert mask_license_key("ABCD-EFGH-IJKL-MNOP") == "ABCD-EFG..."


def test_license_key_format():
    assert is_license_key_format("ABCD-1234-EFGH-5678")
    assert not is_license_key_format("abcd-1234-efgh-5678")
    assert not is_license_key_format("ABCD1234EFGH5678")


def test_signature_roundtrip():
    body = json.dumps({"type": "ping"}).encode()
    header = sign_webhook_payload(body, SECRET, timestamp=1_700_000_000)
    assert verify_webhook_signature(body, header, SECRET, now=1_700_000_010)


def test_signature_rejects_wrong_secret_and_tampered_body():
    body = b'{"type": "ping"}'
    header = sign_webhook_payload(body, SECRET, timestamp=1_700_000_000)
    assert not verify_webhook_signature(body, header, "whsec_other", now=1_700_000_000)
    assert not verify_webhook_signature(b'{"type": "pong"}', header, SECRET, now=1_700_000_000)


def test_signature_rejects_stale_timestamp():
    body = b"{}"
    header = sign_webhook_payload(body, SECRET, timestamp=1_700_000_000)
    assert not verify_webhook_signature(body, header, SECRET, tolerance=300, now=1_700_000_301)


def test_signature_rejects_malformed_headers():
    body = b"{}"
    assert not verify_webhook_signature(body, "", SECRET)
    assert not verify_webhook_signature(body, "t=abc,v1=deadbeef", SECRET)
    assert not verify_webhook_signature(body, "v1=deadbeef", SECRET)
    assert not verify_webhook_signature(body, sign_webhook_payload(body, SECRET), "")
