"""Data normalization utilities for consistent data quality."""

from typing import Optional


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Normalize email to lowercase.

    Args:
        email: Raw email input

    Returns:
        Lowercased email or None if empty
    """
    if not email:
        return None
    cleaned = email.strip().lower()
    return cleaned or None


def normalize_name(name: Optional[str]) -> Optional[str]:
    """
    Normalize name by stripping whitespace and collapsing multiple spaces.

    Args:
        name: Raw name input

    Returns:
        Cleaned name or None if empty
    """
    if not name:
        return None
    # Strip leading/trailing whitespace and collapse internal spaces
    return " ".join(name.split()) or None


def normalize_tag(tag: Optional[str]) -> Optional[str]:
    """Collapse whitespace in a free-form tag; case is preserved."""
    if not tag:
        return None
    return " ".join(tag.split()) or None


def extract_email_domain(email: Optional[str]) -> Optional[str]:
    """
    Extract lowercased email domain.

    Expects a normalized email, but will normalize if needed.
    """
    normalized = normalize_email(email)
    if not normalized or "@" not in normalized:
        return None
    return normalized.split("@", 1)[1]


def strip_html(value: Optional[str]) -> str:
    """Crude tag strip used for body previews."""
    if not value:
        return ""
    out: list[str] = []
    inside = False
    for ch in value:
        if ch == "<":
            inside = True
            continue
        if ch == ">":
            inside = False
            continue
        if not inside:
            out.append(ch)
    return " ".join("".join(out).split())
