"""
Identity Resolver — deterministic (owner, display name) -> entity key.

    resolve("u1", "  Ana   Gómez") == resolve("u1", "ana gómez") == "u1_ana-gómez"

Pure functions, no I/O. Callers must reject empty names before reconciling
(see EmptyNameError); an identity is never fabricated from a blank row.
"""

from roster.errors import EmptyNameError, InputQualityError

KEY_DELIMITER = "_"
SLUG_SEPARATOR = "-"


def normalize_name(raw_name: str | None) -> str:
    """Trim, lower-case and collapse whitespace runs to a single hyphen."""
    if not raw_name:
        return ""
    return SLUG_SEPARATOR.join(raw_name.lower().split())


def display_name(raw_name: str | None) -> str:
    """Trimmed name with internal whitespace collapsed, case preserved."""
    if not raw_name:
        return ""
    return " ".join(raw_name.split())


def is_resolvable(raw_name: str | None) -> bool:
    return bool(normalize_name(raw_name))


def resolve(owner_id: str, raw_name: str | None) -> str:
    """
    Entity key for a member.

    Raises:
        InputQualityError: owner_id is empty
        EmptyNameError: raw_name is empty after normalization
    """
    if not owner_id:
        raise InputQualityError("owner_id is required to resolve an identity")
    slug = normalize_name(raw_name)
    if not slug:
        raise EmptyNameError(raw_name)
    return f"{owner_id}{KEY_DELIMITER}{slug}"
