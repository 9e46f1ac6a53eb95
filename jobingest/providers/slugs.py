from __future__ import annotations

import re

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_LABEL_STRIP_RE = re.compile(r"[^a-z0-9-]")


def slug_candidates(name: str | None, website: str | None = None) -> list[str]:
    """Guess provider account slugs for a company, most likely first.

    ``"Acme & Sons"`` with ``https://acme-sons.io`` yields
    ``["acmeandsons", "acme-and-sons", "acme_and_sons", "acme-sons"]``.
    Providers are probed in this order and the first live slug wins.
    """
    base = _NON_ALNUM_RE.sub(" ", (name or "").lower().replace("&", "and")).strip()
    tokens = base.split()
    candidates = ["".join(tokens), "-".join(tokens), "_".join(tokens)]

    if website:
        host = _SCHEME_RE.sub("", website.strip()).split("/")[0]
        left = host.split(".")[0]
        candidates.append(_LABEL_STRIP_RE.sub("", left.lower()))

    return list(dict.fromkeys(candidate for candidate in candidates if candidate))
