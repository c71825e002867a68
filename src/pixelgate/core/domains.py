from __future__ import annotations

from typing import Sequence
from urllib.parse import urlsplit


def _normalize(domain: str) -> str:
    return domain.strip().lower().rstrip(".")


def is_allowed(hostname: str, allow_list: Sequence[str] | None) -> bool:
    """
    Exact or subdomain match of `hostname` against `allow_list`.

    An absent or empty list means "allow all": new projects are unrestricted
    until an owner configures domains.
    """
    if not allow_list:
        return True

    host = _normalize(hostname)
    if not host:
        return False

    for entry in allow_list:
        domain = _normalize(entry)
        if not domain:
            continue
        if host == domain or host.endswith(f".{domain}"):
            return True
    return False


def hostname_of(url: str | None) -> str | None:
    """Hostname only (no scheme, userinfo, port or path), or None when unparseable."""
    if not url:
        return None
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return None
    return host or None


def is_url_allowed(url: str | None, allow_list: Sequence[str] | None) -> bool:
    if not allow_list:
        return True

    # fail closed on anything we cannot reduce to a hostname
    host = hostname_of(url)
    if host is None:
        return False
    return is_allowed(host, allow_list)
