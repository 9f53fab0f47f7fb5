"""
Email/domain helpers used by the enrichment pipeline.

All functions are pure so they can be shared by the worker, the company
upsert service and the API layer.
"""

import re

# Consumer mailbox providers never identify a company
GENERIC_EMAIL_DOMAINS = frozenset(
    {
        "gmail.com",
        "googlemail.com",
        "yahoo.com",
        "hotmail.com",
        "outlook.com",
        "live.com",
        "msn.com",
        "icloud.com",
        "me.com",
        "aol.com",
        "protonmail.com",
        "proton.me",
        "mail.com",
        "mail.ru",
        "yandex.ru",
        "yandex.com",
        "zoho.com",
        "gmx.com",
        "fastmail.com",
    }
)

_SECONDARY_LABELS = ("co", "com", "org", "net", "ac", "gov")
_OBFUSCATED_RE = re.compile(r"\*{2,}")
_LOCAL_PART_SPLIT_RE = re.compile(r"[._\-+]")


def normalize_domain(domain: str | None) -> str:
    """Lower-case, trim and strip a leading ``www.``. Idempotent."""
    if not domain:
        return ""
    normalized = domain.strip().lower()
    while normalized.startswith("www."):
        normalized = normalized[4:]
    return normalized


def email_domain(email: str | None) -> str:
    """Normalized domain part of an email address, or an empty string."""
    if not email or "@" not in email:
        return ""
    return normalize_domain(email.rsplit("@", 1)[1])


def is_generic_domain(domain: str | None) -> bool:
    return normalize_domain(domain) in GENERIC_EMAIL_DOMAINS


def is_business_domain(domain: str | None) -> bool:
    normalized = normalize_domain(domain)
    return bool(normalized) and "." in normalized and normalized not in GENERIC_EMAIL_DOMAINS


def company_name_from_domain(domain: str) -> str:
    """
    Human-readable fallback name for a company we know nothing about.

    Examples:
        acme.com -> Acme
        acme.co.uk -> Acme
        data.acme.io -> Data Acme
    """
    normalized = normalize_domain(domain)
    labels = normalized.split(".")
    if len(labels) > 1:
        labels = labels[:-1]
    if len(labels) > 1 and labels[-1] in _SECONDARY_LABELS:
        labels = labels[:-1]
    return " ".join(label[:1].upper() + label[1:] for label in labels if label)


def is_obfuscated_name(name: str | None) -> bool:
    """The provider's free tier masks surnames like ``Sh***K``."""
    return bool(name) and bool(_OBFUSCATED_RE.search(name))


def name_from_email(email: str) -> str:
    """
    Guess a lower-case name from the local part of an address.

    john.smith@acme.com -> "john smith"; single-letter initials are kept,
    purely numeric parts are dropped.
    """
    local = email.split("@", 1)[0] if email else ""
    parts = [p for p in _LOCAL_PART_SPLIT_RE.split(local) if p and not p.isdigit()]
    return " ".join(parts).lower()


def split_name(name: str) -> tuple[str, str]:
    """Split a full name into (first, rest)."""
    parts = name.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])
