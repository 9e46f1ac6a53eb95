from __future__ import annotations

import ipaddress
import re
from urllib.parse import urlparse

import tldextract

_ABSOLUTE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
_HOST_SPLIT_RE = re.compile(r"[/?#]")
_LABEL_STRIP_RE = re.compile(r"[^a-z0-9-]")

# Bundled public suffix snapshot only; company names must not depend on a network fetch.
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=(), include_psl_private_domains=True)


def extract_host(value: str | None) -> str:
    """Return the lowercase host of a URL or host-like string, or ``""``."""
    raw = (value or "").strip()
    if not raw:
        return ""
    if _ABSOLUTE_URL_RE.match(raw):
        try:
            return (urlparse(raw).hostname or "").lower()
        except ValueError:
            return ""
    host = _HOST_SPLIT_RE.split(raw, maxsplit=1)[0].strip().lower()
    if host.count(":") == 1:
        host = host.split(":", maxsplit=1)[0]
    return host


def normalize_domain(value: str | None) -> str | None:
    """Normalize a website to a bare hostname usable as the company dedup key.

    ``https://www.Acme.io/careers`` becomes ``acme.io``. Inputs without a dot
    after normalization (``localhost``, garbage) yield ``None``.
    """
    host = extract_host(value)
    if host.startswith("www."):
        host = host[4:]
    if "." not in host:
        return None
    return host


def company_name_from_url(value: str | None) -> str:
    """Derive a display name from a website using the public suffix list.

    ``https://jobs.robco.co.uk`` yields ``robco``. IP hosts yield ``""``.
    """
    host = extract_host(value)
    if not host or _is_ip(host):
        return ""
    extracted = _EXTRACT(host)
    if extracted.suffix:
        label = extracted.domain or host.split(".")[0]
    else:
        # unknown suffix: treat the last label as the suffix
        labels = host.split(".")
        label = labels[-2] if len(labels) > 1 else labels[0]
    return _LABEL_STRIP_RE.sub("", label.lower())


def _is_ip(host: str) -> bool:
    try:
        ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return True
