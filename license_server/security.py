import hashlib, hmac, re, time

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
LICENSE_KEY_RE = re.compile(r"^[A-Z0-9]{4}(-[A-Z0-9]{4}){3}$")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def is_valid_email(email) -> bool:
    return isinstance(email, str) and bool(EMAIL_RE.match(email.strip()))


def is_license_key_format(key) -> bool:
    return isinstance(key, str) and bool(LICENSE_KEY_RE.match(key))


def mask_license_key(key: str) -> str:
    return f"{(key or '')[:8]}..."


def derive_license_key(email: str) -> str:
    """MD5 of the normalized email, first 16 hex chars as XXXX-XXXX-XXXX-XXXX.

    Kept on MD5 so keys issued before the port keep matching.
    """
    chars = hashlib.md5(normalize_email(email).encode("utf-8")).hexdigest().upper()[:16]
    return "-".join(chars[i:i + 4] for i in range(0, 16, 4))


def _parse_signature_header(header: str):
    ts, sigs = None, []
    for part in (header or "").split(","):
        k, _, v = part.strip().partition("=")
        if k == "t":
            ts = v
        elif k == "v1" and v:
            sigs.append(v)
    return ts, sigs


def sign_webhook_payload(body_bytes: bytes, secret: str, timestamp=None) -> str:
    ts = str(int(timestamp if timestamp is not None else time.time()))
    digest = hmac.new(secret.encode(), msg=ts.encode() + b"." + body_bytes, digestmod="sha256").hexdigest()
    return f"t={ts},v1={digest}"


def verify_webhook_signature(body_bytes: bytes, header_signature: str, secret: str,
                             tolerance=300, now=None) -> bool:
    if not (header_signature and secret):
        return False
    ts, sigs = _parse_signature_header(header_signature)
    if not ts or not sigs:
        return False
    try:
        ts_int = int(ts)
    except ValueError:
        return False
    now = time.time() if now is None else now
    if tolerance and abs(now - ts_int) > tolerance:
        return False
    expected = hmac.new(secret.encode(), msg=ts.encode() + b"." + body_bytes, digestmod="sha256").hexdigest()
    return any(hmac.compare_digest(expected, s) for s in sigs)
