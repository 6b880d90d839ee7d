"""Pure Python Pythagorean numerology calculations. No I/O."""
from __future__ import annotations

import re

from .schemas import NumerologyProfile


# ── Pythagorean letter-to-digit table ───────────────────────────────

# A=1 B=2 C=3 D=4 E=5 F=6 G=7 H=8 I=9
# J=1 K=2 L=3 M=4 N=5 O=6 P=7 Q=8 R=9
# S=1 T=2 U=3 V=4 W=5 X=6 Y=7 Z=8
LETTER_TABLE: dict[str, int] = {
    "A": 1, "B": 2, "C": 3, "D": 4, "E": 5, "F": 6, "G": 7, "H": 8, "I": 9,
    "J": 1, "K": 2, "L": 3, "M": 4, "N": 5, "O": 6, "P": 7, "Q": 8, "R": 9,
    "S": 1, "T": 2, "U": 3, "V": 4, "W": 5, "X": 6, "Y": 7, "Z": 8,
}

MASTER_NUMBERS: frozenset[int] = frozenset({11, 22})

# Y counts as a vowel for Soul Urge
VOWELS: frozenset[str] = frozenset("AEIOUY")

_NON_DIGIT_RE = re.compile(r"\D")

LIFE_PATH_MEANINGS: dict[int, str] = {
    1: "Leadership energy, independence, new beginnings.",
    2: "Partnership, intuition, harmony.",
    3: "Creativity, communication, optimism.",
    4: "Stability, discipline, foundations.",
    5: "Freedom, change, adventure.",
    6: "Love, family, responsibility.",
    7: "Introspection, spirituality, inner wisdom.",
    8: "Power, success, material mastery.",
    9: "Completion, compassion, higher purpose.",
    11: "Spiritual illumination, destiny, intuition.",
    22: "Master builder, manifestation, big achievements.",
}

EXPRESSION_MEANINGS: dict[int, str] = {
    1: "Initiator with a natural drive to lead.",
    3: "Creative and expressive communicator.",
    7: "Analytical and introspective seeker.",
}


# ── Core reduction logic ─────────────────────────────────────────────

def _digit_sum(n: int) -> int:
    return sum(int(d) for d in str(n))


def reduce_number(n: int) -> int:
    """Reduce n to a single digit, stopping early on master numbers 11 and 22.

    ``reduce_number(0)`` is 0: nothing to reduce.
    """
    n = abs(n)
    while n > 9 and n not in MASTER_NUMBERS:
        n = _digit_sum(n)
    return n


def _letters(full_name: str) -> list[str]:
    return [c for c in full_name.upper() if c in LETTER_TABLE]


def _name_total(full_name: str, *, vowels: bool | None = None) -> int:
    total = 0
    for char in _letters(full_name):
        if vowels is True and char not in VOWELS:
            continue
        if vowels is False and char in VOWELS:
            continue
        total += LETTER_TABLE[char]
    return total


# ── Calculation functions ────────────────────────────────────────────

def calculate_life_path(date_of_birth: str) -> int:
    """Life Path: reduce the sum of every digit in the date, separators ignored."""
    digits = _NON_DIGIT_RE.sub("", date_of_birth or "")
    return reduce_number(sum(int(d) for d in digits))


def calculate_expression(full_name: str) -> int:
    """Expression (Destiny): sum of all letter values."""
    return reduce_number(_name_total(full_name))


def calculate_soul_urge(full_name: str) -> int:
    """Soul Urge (Heart's Desire): vowels only."""
    return reduce_number(_name_total(full_name, vowels=True))


def calculate_personality(full_name: str) -> int:
    """Personality: consonants only."""
    return reduce_number(_name_total(full_name, vowels=False))


def calculate_birthday(date_of_birth: str) -> int:
    """Birthday: day of month of an ISO ``YYYY-MM-DD`` date, reduced. 0 when unparseable."""
    parts = (date_of_birth or "").strip().split("-")
    if len(parts) != 3 or not parts[2][:2].isdigit():
        return 0
    return reduce_number(int(parts[2][:2]))


def calculate_all(full_name: str, date_of_birth: str) -> NumerologyProfile:
    """Compute the full profile at once."""
    life_path = calculate_life_path(date_of_birth)
    expression = calculate_expression(full_name)
    soul_urge = calculate_soul_urge(full_name)
    personality = calculate_personality(full_name)
    birthday = calculate_birthday(date_of_birth)

    return NumerologyProfile(
        life_path=life_path,
        expression=expression,
        personality=personality,
        soul_urge=soul_urge,
        birthday=birthday,
        maturity=reduce_number(life_path + expression),
        pinnacles={
            "first": reduce_number(life_path + birthday),
            "second": reduce_number(expression + soul_urge),
        },
        challenges={
            "first": reduce_number(abs(life_path - birthday)),
            "second": reduce_number(abs(expression - soul_urge)),
        },
    )


def describe_life_path(n: int) -> str:
    return LIFE_PATH_MEANINGS.get(n, "General soul trajectory.")


def describe_expression(n: int) -> str:
    return EXPRESSION_MEANINGS.get(n, "General expression pattern.")
