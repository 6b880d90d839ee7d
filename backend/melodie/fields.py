"""Coalesce loosely-typed submitted form fields into trimmed scalars.

Form parsers hand back either a plain string or a one-element list per key.
This is the only place that ambiguity is resolved; everything downstream
works with plain strings.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .schemas import Person

Submission = Mapping[str, Any]


def normalize_field(fields: Submission | None, key: str, default: str = "") -> str:
    if not fields:
        return default
    value = fields.get(key)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def first_field(fields: Submission | None, *keys: str, default: str = "") -> str:
    for key in keys:
        value = normalize_field(fields, key)
        if value:
            return value
    return default


def normalize_submission(fields: Submission | None) -> dict[str, str]:
    """Return a flat ``{key: str}`` snapshot suitable for storage."""
    if not fields:
        return {}
    return {key: normalize_field(fields, key) for key in fields}


def person_from_fields(fields: Submission | None, prefix: str = "") -> Person:
    def key(name: str) -> str:
        # partnerName, partnerBirthDate, ... for the second compat person
        return f"{prefix}{name[0].upper()}{name[1:]}" if prefix else name

    return Person(
        full_name=first_field(fields, key("fullName"), key("name")),
        email=normalize_field(fields, key("email")),
        date_of_birth=first_field(fields, key("birthDate"), key("dateOfBirth")),
        time_of_birth=first_field(fields, key("birthTime"), key("timeOfBirth")),
        birth_place=first_field(fields, key("birthPlace"), key("birthCity")),
    )
