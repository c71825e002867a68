"""
HMAC-SHA256 URL signatures.

The signed payload is the canonical path "{operations}/{image_path}", with
"?exp={unix_seconds}" appended when the URL expires. Digests are base64url
encoded without padding and truncated to SIGNATURE_LENGTH characters (192 bits
of the 256-bit MAC) to keep URLs short. Changing the length invalidates every
signed URL already issued.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import time
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import urlencode

SIGNATURE_LENGTH = 32


@dataclass(frozen=True)
class SignatureParams:
    public_key: str
    signature: str
    expires_at: int | None


def _payload(path: str, expires_at: int | None) -> str:
    return f"{path}?exp={expires_at}" if expires_at else path


def sign(secret: str, path: str, expires_at: int | None = None) -> str:
    digest = hmac.new(
        secret.encode("utf-8"),
        _payload(path, expires_at).encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")[:SIGNATURE_LENGTH]


def verify(
    secret: str,
    path: str,
    signature: str,
    expires_at: int | None = None,
    now: float | None = None,
) -> bool:
    now_ms = (time.time() if now is None else now) * 1000
    if expires_at and now_ms > expires_at * 1000:
        return False

    expected = sign(secret, path, expires_at).encode("utf-8")
    given = signature.encode("utf-8")
    if len(given) != len(expected):
        return False
    return hmac.compare_digest(given, expected)


def is_expired(expires_at: int | None, now: float | None = None) -> bool:
    if not expires_at:
        return False
    return (time.time() if now is None else now) * 1000 > expires_at * 1000


def _positive_int(value: str | None) -> int | None:
    if not value:
        return None
    try:
        parsed = int(value)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def parse_signature_params(query: Mapping[str, str]) -> SignatureParams | None:
    public_key = query.get("key")
    signature = query.get("sig")
    if not public_key or not signature:
        return None
    return SignatureParams(
        public_key=public_key,
        signature=signature,
        expires_at=_positive_int(query.get("exp")),
    )


def build_signed_query(public_key: str, secret: str, path: str, expires_at: int | None = None) -> str:
    """Query string ("key=..&exp=..&sig=..") for a signed optimize URL."""
    params = {"key": public_key}
    if expires_at:
        params["exp"] = str(expires_at)
    params["sig"] = sign(secret, path, expires_at)
    return urlencode(params)
