"""Domain and TLD normalization utilities."""

from __future__ import annotations

import re
from urllib.parse import urlparse

import tldextract

from ..errors import ValidationError

_TLD_SPLIT_RE = re.compile(r"[\s,;]+")
_TLD_LABEL_RE = re.compile(r"^[a-z0-9-]+$")

# Bundled public suffix snapshot; never fetched over the network.
_extract = tldextract.TLDExtract(suffix_list_urls=())


def canonicalize_domain(value: str) -> str:
    """
    Normalize a domain/URL to a canonical host key.

    - Lowercase
    - Strip leading "www."
    - Ignore scheme, port, path, query and fragment
    """
    raw = (value or "").strip()
    if not raw:
        return ""

    candidate = raw if "://" in raw else f"https://{raw}"
    try:
        host = urlparse(candidate).hostname or ""
    except ValueError:
        host = ""
    host = (host or raw.split("/")[0].split(":")[0]).strip().lower().strip(".")
    if host.startswith("www.") and len(host) > 4:
        host = host[4:]
    return host


def public_suffix(value: str) -> str:
    """Public suffix of a host, with a leading dot ("" when unknown)."""
    host = canonicalize_domain(value)
    if not host:
        return ""
    suffix = _extract(host).suffix
    return f".{suffix}" if suffix else ""


def normalize_tld(value: str) -> str:
    """
    Normalize a TLD whitelist entry to ".label.label" form.

    Returns "" for blank input; raises ValidationError for entries that are
    not dot-separated labels.
    """
    raw = (value or "").strip().lower().lstrip("*").strip(".")
    if not raw:
        return ""
    labels = raw.split(".")
    if any(not label or not _TLD_LABEL_RE.match(label) for label in labels):
        raise ValidationError(f"Invalid TLD: {value!r}")
    return "." + ".".join(labels)


def split_tld_input(value: str) -> list[str]:
    """Split free-form TLD input on whitespace, commas and semicolons."""
    return [part for part in _TLD_SPLIT_RE.split(value or "") if part]


def normalize_search(value: str) -> str:
    """
    Search text as sent to the backend.

    URLs are reduced to their host so pasting a full link finds the domain;
    anything else is just trimmed.
    """
    raw = (value or "").strip()
    if "://" in raw:
        return canonicalize_domain(raw)
    return raw
