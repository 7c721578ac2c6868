import re
from typing import Any, List, Optional


# Whole-name placeholders only; single tokens that can be real names (e.g. "None") stay out
PLACEHOLDER_NAMES = {
    "unknown",
    "unknown driver",
    "driver unknown",
    "no driver",
    "no driver assigned",
    "unassigned",
    "not assigned",
    "null",
}


def normalize_name(name: Any) -> str:
    """
    Lower-cases, keeps only letters, digits and whitespace, collapses
    whitespace runs and trims. Anything that is not a non-empty string
    normalizes to "".
    """
    if not name or not isinstance(name, str):
        return ""
    name = name.lower()
    name = "".join(ch for ch in name if ch.isalnum() or ch.isspace())
    name = re.sub(r"\s+", " ", name)
    return name.strip()


def tokenize_name(name: Any) -> List[str]:
    normalized = normalize_name(name)
    if not normalized:
        return []
    return normalized.split(" ")


def full_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    parts = [p.strip() for p in (first_name, last_name) if isinstance(p, str) and p.strip()]
    return " ".join(parts)


def is_placeholder_name(name: Any) -> bool:
    """True for names that carry no driver information (empty or placeholder)."""
    normalized = normalize_name(name)
    return not normalized or normalized in PLACEHOLDER_NAMES
